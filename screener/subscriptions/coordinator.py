from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Callable, FrozenSet, Iterable, Iterator, Optional, Tuple

from screener.models.messages import subscribe_message, unsubscribe_message
from screener.scheduling import ScheduledTask, Scheduler

log = logging.getLogger("subscriptions")

DEFAULT_QUIET_SECONDS = 0.3

Diff = Tuple[FrozenSet[str], FrozenSet[str]]


def desired_set(keys: Iterable[Optional[str]]) -> FrozenSet[str]:
    """Project assignments (slot tickers, table rows) onto a clean ticker set."""
    out = set()
    for key in keys:
        if key is None:
            continue
        ticker = str(key).strip().upper()
        if ticker:
            out.add(ticker)
    return frozenset(out)


class SubscriptionCoordinator:
    """
    Keeps the channel subscribed to the tickers we care about.

    desired:   what the UI wants right now (changes synchronously)
    effective: what we told the channel (changes after a quiet window)

    Every desired change restarts the quiet window, so a burst of churn
    produces one diff. Inside bulk_reassignment() there is no window at
    all; the diff is sent once when the outermost block exits.
    """

    def __init__(
        self,
        send: Callable[[dict], None],
        scheduler: Scheduler,
        quiet_seconds: float = DEFAULT_QUIET_SECONDS,
    ) -> None:
        self._send = send
        self.scheduler = scheduler
        self.quiet_seconds = quiet_seconds
        self._desired: FrozenSet[str] = frozenset()
        self._effective: FrozenSet[str] = frozenset()
        self._timer: Optional[ScheduledTask] = None
        self._bulk_depth = 0

    @property
    def desired(self) -> FrozenSet[str]:
        return self._desired

    @property
    def effective(self) -> FrozenSet[str]:
        return self._effective

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def wants(self, ticker: str) -> bool:
        return ticker in self._desired or ticker in self._effective

    def update(self, tickers: Iterable[Optional[str]]) -> None:
        self._desired = desired_set(tickers)
        if self._bulk_depth:
            return
        self._cancel_timer()
        self._timer = self.scheduler.call_later(self.quiet_seconds, self._on_quiet)

    @contextmanager
    def bulk_reassignment(self) -> Iterator["SubscriptionCoordinator"]:
        self._bulk_depth += 1
        self._cancel_timer()
        try:
            yield self
        finally:
            self._bulk_depth -= 1
            if self._bulk_depth == 0:
                self.flush()

    def flush(self) -> Diff:
        """Sync effective := desired now and emit the diff."""
        self._cancel_timer()
        added = self._desired - self._effective
        removed = self._effective - self._desired
        self._effective = self._desired

        for ticker in sorted(removed):
            self._emit(unsubscribe_message(ticker))
        for ticker in sorted(added):
            self._emit(subscribe_message(ticker))

        if added or removed:
            log.info("Subscriptions synced added=%s removed=%s", sorted(added), sorted(removed))
        return added, removed

    def on_channel_open(self) -> None:
        """The channel (re)connected and forgot everything: resubscribe the effective set."""
        for ticker in sorted(self._effective):
            self._emit(subscribe_message(ticker))
        log.info("Resubscribed after channel open count=%d", len(self._effective))

    def _on_quiet(self) -> None:
        self._timer = None
        self.flush()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _emit(self, message: dict) -> None:
        try:
            self._send(message)
        except Exception:
            log.warning("Failed to send %s", message, exc_info=True)
