from __future__ import annotations

import random
import time

from screener.alerts import RecentAlertsSink
from screener.candles.store import BackgroundCandleStore
from screener.charts.board import ChartBoard
from screener.charts.manager import ChartSurfaceManager
from screener.charts.memory import InMemoryRenderer, SlotContainer
from screener.engine import ScreenerEngine
from screener.models.market import StockRecord, Tick
from screener.prices.reconciler import PriceReconciler
from screener.scheduling import ManualScheduler
from screener.subscriptions.coordinator import SubscriptionCoordinator


def run(ticker: str = "TSLA", seconds: int = 360) -> None:
    """
    Replays fake ticks for `seconds` seconds through the whole engine
    on a virtual clock.

    - 1 tick per second, price does a random walk
    - a snapshot lands every 10 seconds with a fixed baseline
    - one candlestick chart is attached to slot-0
    Prints every significant price move and the candle summary at the end.
    """
    start = int(time.time()) // 60 * 60
    scheduler = ManualScheduler(start=start)
    renderer = InMemoryRenderer()
    store = BackgroundCandleStore()
    reconciler = PriceReconciler()
    charts = ChartSurfaceManager(renderer, scheduler)
    sent: list[dict] = []
    subscriptions = SubscriptionCoordinator(sent.append, scheduler)
    board = ChartBoard(charts, subscriptions, store, container_factory=SlotContainer)
    engine = ScreenerEngine(store, reconciler, charts, subscriptions, board, RecentAlertsSink())

    board.assign("slot-0", ticker)
    scheduler.advance(1)

    price = 100.0
    baseline = 100.0

    print(f"Simulating ticks for {ticker} for {seconds} seconds...\n")

    for i in range(seconds):
        if i % 10 == 0:
            engine.apply_snapshot([StockRecord(ticker=ticker, baseline_price=baseline, volume=1000.0 * i)])

        price += random.uniform(-0.6, 0.6)
        tick = Tick(ticker=ticker, timestamp=int(scheduler.now() * 1000), price=round(price, 2))
        change = engine.on_tick(tick)
        if change is not None and change.price_significant:
            print(f"[FLASH {change.direction}] {ticker} {tick.price} delta={reconciler.get(ticker).delta:.4f}")

        scheduler.advance(1)

    history = store.get_history(ticker)
    print("\nDone.")
    print(f"Subscribe messages sent: {sent}")
    print(f"Candles (closed + current): {len(history)}")
    for c in history[-3:]:
        print(f"  {c.bucket_start} O={c.o} H={c.h} L={c.l} C={c.c}")
    print(f"Chart slot-0: {charts.describe('slot-0')}")


if __name__ == "__main__":
    run()
