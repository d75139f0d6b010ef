from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import deque
from typing import Deque, List

from screener.models.messages import AlertMessage

log = logging.getLogger("alerts")


class AlertSink(ABC):
    """Receives pattern/alert payloads exactly as they arrived."""

    @abstractmethod
    def publish(self, alert: AlertMessage) -> None:
        raise NotImplementedError


class RecentAlertsSink(AlertSink):
    """Logs each alert and keeps the latest few for the API."""

    def __init__(self, maxlen: int = 50) -> None:
        self._recent: Deque[AlertMessage] = deque(maxlen=maxlen)

    def publish(self, alert: AlertMessage) -> None:
        self._recent.append(alert)
        log.info("Alert received ticker=%s", alert.ticker)

    def recent(self) -> List[dict]:
        return [a.payload for a in reversed(self._recent)]
