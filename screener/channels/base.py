from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncIterator, Callable, List, Union

from screener.models.market import StockRecord

Frame = Union[str, bytes]


class MessageChannel(ABC):
    """
    Push channel contract (interface).

    Any channel must implement:
    - messages(): raw inbound frames (async iterator), reconnecting on its own
    - post(): queue one outbound JSON message; dropped while disconnected
    - on_open(): hooks run after every (re)connect, before any frame is yielded
    """

    @abstractmethod
    def messages(self) -> AsyncIterator[Frame]:
        raise NotImplementedError

    @abstractmethod
    def post(self, payload: dict) -> None:
        raise NotImplementedError

    @abstractmethod
    def on_open(self, hook: Callable[[], None]) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class SnapshotProvider(ABC):
    """Poll channel contract: one full list of stock records per call."""

    @abstractmethod
    async def fetch_snapshot(self) -> List[StockRecord]:
        raise NotImplementedError

    async def close(self) -> None:
        return None
