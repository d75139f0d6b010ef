from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from screener.candles.store import BackgroundCandleStore
from screener.charts.manager import ChartSurfaceManager
from screener.charts.renderer import ChartKind
from screener.subscriptions.coordinator import SubscriptionCoordinator

log = logging.getLogger("chart_board")


class ChartBoard:
    """
    Chart slots and the tickers assigned to them.

    This is where slot events land (assign, swap by drag-and-drop, close,
    resize). It only talks to the chart manager and the subscription
    coordinator; candle history is read once per (re)attach.
    """

    def __init__(
        self,
        charts: ChartSurfaceManager,
        subscriptions: SubscriptionCoordinator,
        store: BackgroundCandleStore,
        container_factory: Callable[[str], Any],
        slots: int = 4,
    ) -> None:
        self.charts = charts
        self.subscriptions = subscriptions
        self.store = store
        self._container_factory = container_factory
        self._watchlist: frozenset = frozenset()
        self._slots: Dict[str, Optional[str]] = {f"slot-{i}": None for i in range(slots)}
        self._kinds: Dict[str, ChartKind] = {key: ChartKind.CANDLESTICK for key in self._slots}
        self._containers: Dict[str, Any] = {}

    def _check_slot(self, slot: str) -> None:
        if slot not in self._slots:
            raise KeyError(f"unknown chart slot: {slot}")

    def _container(self, slot: str) -> Any:
        container = self._containers.get(slot)
        if container is None:
            container = self._containers[slot] = self._container_factory(slot)
        return container

    def _attach(self, slot: str) -> bool:
        ticker = self._slots[slot]
        if ticker is None:
            self.charts.destroy(slot)
            return False
        return self.charts.attach(
            slot,
            self._container(slot),
            self._kinds[slot],
            self.store.get_history(ticker),
        )

    def refresh_interest(self) -> None:
        self.subscriptions.update(list(self._slots.values()) + list(self._watchlist))

    def watch(self, tickers: Iterable[str]) -> None:
        """Add tickers wanted outside any chart slot (e.g. every screener row)."""
        watchlist = self._watchlist | frozenset(t.upper() for t in tickers if t)
        if watchlist == self._watchlist:
            return
        self._watchlist = watchlist
        self.refresh_interest()

    def unwatch(self, tickers: Iterable[str]) -> None:
        """Tickers still assigned to a slot stay subscribed through the slot."""
        watchlist = self._watchlist - frozenset(t.upper() for t in tickers if t)
        if watchlist == self._watchlist:
            return
        self._watchlist = watchlist
        self.refresh_interest()

    def watchlist(self) -> List[str]:
        return sorted(self._watchlist)

    # -------------------------
    # Slot events
    # -------------------------
    def assign(self, slot: str, ticker: Optional[str], kind: ChartKind = ChartKind.CANDLESTICK) -> bool:
        self._check_slot(slot)
        ticker = ticker.strip().upper() if ticker else None
        self._slots[slot] = ticker or None
        self._kinds[slot] = ChartKind(kind)
        attached = self._attach(slot)
        self.refresh_interest()
        log.info("Slot assigned slot=%s ticker=%s kind=%s", slot, ticker, self._kinds[slot].value)
        return attached

    def swap(self, a: str, b: str) -> None:
        self._check_slot(a)
        self._check_slot(b)
        if a == b:
            return
        with self.subscriptions.bulk_reassignment():
            self._slots[a], self._slots[b] = self._slots[b], self._slots[a]
            self._kinds[a], self._kinds[b] = self._kinds[b], self._kinds[a]
            self._attach(a)
            self._attach(b)
            self.refresh_interest()
        log.info("Slots swapped a=%s b=%s", a, b)

    def close(self, slot: str) -> None:
        self._check_slot(slot)
        self._slots[slot] = None
        self.charts.destroy(slot)
        self.refresh_interest()

    def resize(self, slot: str, width: int) -> None:
        self._check_slot(slot)
        self.charts.resize(slot, width)

    def close_all(self) -> None:
        for slot in self._slots:
            self._slots[slot] = None
        self.charts.destroy_all()

    # -------------------------
    # Read side
    # -------------------------
    def slots_for(self, ticker: str) -> List[str]:
        return [slot for slot, t in self._slots.items() if t == ticker]

    def tickers(self) -> List[str]:
        return sorted({t for t in self._slots.values() if t})

    def describe(self) -> List[dict]:
        out = []
        for slot, ticker in self._slots.items():
            out.append(
                {
                    "slot": slot,
                    "ticker": ticker,
                    "kind": self._kinds[slot].value,
                    "live": self.charts.is_live(slot),
                    "surface": self.charts.describe(slot),
                }
            )
        return out
