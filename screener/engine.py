from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Union

from screener.alerts import AlertSink
from screener.candles.store import BackgroundCandleStore
from screener.charts.board import ChartBoard
from screener.charts.manager import ChartSurfaceManager
from screener.metrics import ScreenerMetrics
from screener.models.market import PriceChange, StockRecord, Tick
from screener.models.messages import (
    AlertMessage,
    ControlMessage,
    InboundMessage,
    MalformedMessage,
    TickMessage,
    decode_message,
)
from screener.prices.reconciler import PriceReconciler
from screener.subscriptions.coordinator import SubscriptionCoordinator

log = logging.getLogger("screener_engine")


class ScreenerEngine:
    """
    Tick handler + snapshot ingestion.

    tick     -> candle store (always), every chart showing the ticker,
                price reconciler (live price, delta, flash decision)
    snapshot -> price reconciler (baseline + non-price fields)
    alert    -> alert sink, untouched
    control  -> logged

    A tick the candle store drops as too late goes nowhere else, so
    candles, charts and prices always agree on the latest price.
    """

    def __init__(
        self,
        store: BackgroundCandleStore,
        reconciler: PriceReconciler,
        charts: ChartSurfaceManager,
        subscriptions: SubscriptionCoordinator,
        board: ChartBoard,
        alerts: AlertSink,
        watch_snapshot_tickers: bool = True,
        ticker_idle_ttl_seconds: float = 0,
        metrics: Optional[ScreenerMetrics] = None,
    ) -> None:
        self.store = store
        self.reconciler = reconciler
        self.charts = charts
        self.subscriptions = subscriptions
        self.board = board
        self.alerts = alerts
        self.watch_snapshot_tickers = watch_snapshot_tickers
        self.ticker_idle_ttl_seconds = ticker_idle_ttl_seconds
        self.metrics = metrics or ScreenerMetrics()

    def stats(self) -> Dict[str, int]:
        return self.metrics.counts()

    # -------------------------
    # Push channel
    # -------------------------
    def handle_raw(self, raw: Union[str, bytes, dict, list]) -> None:
        try:
            messages = decode_message(raw)
        except MalformedMessage as e:
            self.metrics.malformed.inc()
            log.warning("Dropping malformed message: %s", e)
            return

        for msg in messages:
            self.handle_message(msg)

    def handle_message(self, msg: InboundMessage) -> Optional[PriceChange]:
        if isinstance(msg, TickMessage):
            return self.on_tick(Tick(ticker=msg.ticker, timestamp=msg.timestamp, price=msg.price))
        if isinstance(msg, AlertMessage):
            self.metrics.alerts.inc()
            self.alerts.publish(msg)
            return None
        if isinstance(msg, ControlMessage):
            self.metrics.controls.inc()
            log.debug("Control message type=%s", msg.type)
            return None

        self.metrics.malformed.inc()
        log.warning("Dropping unknown message type=%s", type(msg).__name__)
        return None

    def on_tick(self, tick: Tick) -> Optional[PriceChange]:
        if not self.subscriptions.wants(tick.ticker):
            self.metrics.ticks_ignored.inc()
            return None

        result = self.store.record_tick(tick.ticker, tick.timestamp, tick.price)
        if not result.accepted:
            self.metrics.ticks_dropped_late.inc()
            return None

        self.metrics.ticks.inc()
        if result.late:
            self.metrics.ticks_late_merged.inc()
        if result.is_new_bucket:
            self.metrics.candles_opened.inc()

        for slot in self.board.slots_for(tick.ticker):
            self.charts.update_with_price(slot, tick.timestamp, tick.price)
        change = self.reconciler.apply_tick(tick.ticker, tick.price)
        self.metrics.tickers_tracked.set(len(self.reconciler))
        return change

    # -------------------------
    # Poll channel
    # -------------------------
    def apply_snapshot(self, records: Iterable[StockRecord]) -> Dict[str, PriceChange]:
        changes: Dict[str, PriceChange] = {}
        for record in records:
            changes[record.ticker] = self.reconciler.apply_snapshot(record)

        self.metrics.snapshots.inc()
        self.metrics.tickers_tracked.set(len(self.reconciler))
        # A ticker missing from one snapshot stays watched; only eviction unwatches it.
        if self.watch_snapshot_tickers and changes:
            self.board.watch(changes.keys())
        return changes

    def evict_idle(self) -> List[str]:
        if self.ticker_idle_ttl_seconds <= 0:
            return []
        evicted = self.reconciler.evict_idle(self.ticker_idle_ttl_seconds)
        if evicted:
            self.board.unwatch(evicted)
            self.metrics.tickers_tracked.set(len(self.reconciler))
        return evicted
