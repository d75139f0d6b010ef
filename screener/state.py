from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from screener.alerts import RecentAlertsSink
from screener.candles.store import BackgroundCandleStore
from screener.channels.base import MessageChannel, SnapshotProvider
from screener.channels.loader import get_channel, get_snapshot_provider
from screener.charts.board import ChartBoard
from screener.charts.manager import ChartSurfaceManager
from screener.charts.memory import InMemoryRenderer, SlotContainer
from screener.config import Settings
from screener.engine import ScreenerEngine
from screener.metrics import ScreenerMetrics
from screener.prices.reconciler import PriceReconciler
from screener.scheduling import AsyncioScheduler, Scheduler
from screener.subscriptions.coordinator import SubscriptionCoordinator


@dataclass
class Runtime:
    """Everything one running screener process owns."""
    settings: Settings
    channel: MessageChannel
    snapshots: SnapshotProvider
    scheduler: Scheduler
    renderer: InMemoryRenderer
    store: BackgroundCandleStore
    reconciler: PriceReconciler
    charts: ChartSurfaceManager
    subscriptions: SubscriptionCoordinator
    board: ChartBoard
    alerts: RecentAlertsSink
    engine: ScreenerEngine
    metrics: ScreenerMetrics
    tasks: list = field(default_factory=list)


def build_runtime(
    settings: Settings,
    channel: Optional[MessageChannel] = None,
    snapshots: Optional[SnapshotProvider] = None,
    scheduler: Optional[Scheduler] = None,
    renderer: Optional[InMemoryRenderer] = None,
) -> Runtime:
    channel = channel or get_channel(settings)
    snapshots = snapshots or get_snapshot_provider(settings)
    scheduler = scheduler or AsyncioScheduler()
    renderer = renderer or InMemoryRenderer()

    store = BackgroundCandleStore(
        max_history=settings.candle_history_limit,
        late_tolerance_seconds=settings.late_tick_tolerance_seconds,
    )
    reconciler = PriceReconciler(
        delta_threshold=settings.delta_flash_threshold,
        price_threshold=settings.price_flash_threshold,
    )
    charts = ChartSurfaceManager(
        renderer,
        scheduler,
        finalize_buffer_seconds=settings.finalize_buffer_seconds,
        late_tolerance_seconds=settings.late_tick_tolerance_seconds,
    )
    subscriptions = SubscriptionCoordinator(channel.post, scheduler, quiet_seconds=settings.subscribe_quiet_seconds)
    channel.on_open(subscriptions.on_channel_open)

    board = ChartBoard(charts, subscriptions, store, container_factory=SlotContainer, slots=settings.chart_slots)
    alerts = RecentAlertsSink(maxlen=settings.alert_history)
    metrics = ScreenerMetrics()
    engine = ScreenerEngine(
        store,
        reconciler,
        charts,
        subscriptions,
        board,
        alerts,
        watch_snapshot_tickers=settings.subscribe_snapshot_tickers,
        ticker_idle_ttl_seconds=settings.ticker_idle_ttl_seconds,
        metrics=metrics,
    )

    return Runtime(
        settings=settings,
        channel=channel,
        snapshots=snapshots,
        scheduler=scheduler,
        renderer=renderer,
        store=store,
        reconciler=reconciler,
        charts=charts,
        subscriptions=subscriptions,
        board=board,
        alerts=alerts,
        engine=engine,
        metrics=metrics,
    )
