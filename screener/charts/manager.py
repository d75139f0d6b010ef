from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from screener.candles.aggregator import BUCKET_SECONDS, DEFAULT_LATE_TOLERANCE_SECONDS, bucket_start_for
from screener.charts.renderer import ChartKind, ChartRenderer, ResizeObserver
from screener.models.market import Candle
from screener.scheduling import ScheduledTask, Scheduler

log = logging.getLogger("chart_manager")

DEFAULT_FINALIZE_BUFFER_SECONDS = 1.0


@dataclass(eq=False)
class ChartSurface:
    """
    One live chart. Owned by ChartSurfaceManager and never handed out.

    cursor: the candle this surface is currently drawing (candlestick only)
    last_time: time of the last point pushed (area only)
    pending_timers: minute finalize timers keyed by bucket_start
    """
    key: str
    kind: ChartKind
    container: Any
    instance: Any = None
    series: Any = None
    observer: Optional[ResizeObserver] = None
    cursor: Optional[Candle] = None
    last_time: Optional[int] = None
    pending_timers: Dict[int, ScheduledTask] = field(default_factory=dict)
    destroyed: bool = False


def _initial_points(kind: ChartKind, candles: Sequence[Candle]) -> List[dict]:
    if kind == ChartKind.CANDLESTICK:
        return [c.as_point() for c in candles]
    return [{"time": c.bucket_start, "value": c.c} for c in candles]


class ChartSurfaceManager:
    """
    Maps a slot key to at most one live chart surface.

    attach() always tears down the previous surface for the key first.
    Every renderer call is wrapped: a failure destroys that one surface
    and is logged, never raised to the caller.
    """

    def __init__(
        self,
        renderer: ChartRenderer,
        scheduler: Scheduler,
        finalize_buffer_seconds: float = DEFAULT_FINALIZE_BUFFER_SECONDS,
        late_tolerance_seconds: int = DEFAULT_LATE_TOLERANCE_SECONDS,
    ) -> None:
        self.renderer = renderer
        self.scheduler = scheduler
        self.finalize_buffer_seconds = finalize_buffer_seconds
        self.late_tolerance_seconds = late_tolerance_seconds
        self._surfaces: Dict[str, ChartSurface] = {}

    # -------------------------
    # Lifecycle
    # -------------------------
    def attach(
        self,
        key: str,
        container: Any,
        kind: ChartKind = ChartKind.CANDLESTICK,
        initial_data: Sequence[Candle] = (),
    ) -> bool:
        """
        Create a surface for key, loading initial_data as one bulk write.
        Returns False when the renderer failed and nothing is attached.
        """
        self.destroy(key)

        kind = ChartKind(kind)
        surface = ChartSurface(key=key, kind=kind, container=container)
        candles = list(initial_data)

        try:
            surface.instance = self.renderer.create_surface(container, kind)
            surface.series = self.renderer.create_series(surface.instance, kind)
            self.renderer.bulk_set_data(surface.series, _initial_points(kind, candles))
            surface.observer = self.renderer.observe_resize(
                container, lambda width: self._on_container_resize(surface, width)
            )
        except Exception:
            log.exception("Chart attach failed key=%s kind=%s", key, kind.value)
            self._teardown(surface)
            return False

        if candles:
            last = candles[-1]
            if kind == ChartKind.CANDLESTICK:
                surface.cursor = last.copy()
                self._schedule_finalize(surface, last.bucket_start)
            else:
                surface.last_time = last.bucket_start

        self._surfaces[key] = surface
        log.info("Chart attached key=%s kind=%s points=%d", key, kind.value, len(candles))
        return True

    def destroy(self, key: str) -> None:
        """Idempotent. Safe from explicit close and from replace-on-attach."""
        surface = self._surfaces.pop(key, None)
        if surface is None:
            return
        self._teardown(surface)
        log.info("Chart destroyed key=%s", key)

    def destroy_all(self) -> None:
        for key in list(self._surfaces):
            self.destroy(key)

    def _teardown(self, surface: ChartSurface) -> None:
        # Flag first so any callback racing with teardown bails out.
        surface.destroyed = True

        for task in surface.pending_timers.values():
            task.cancel()
        surface.pending_timers.clear()

        if surface.observer is not None:
            try:
                surface.observer.disconnect()
            except Exception:
                log.warning("Resize observer disconnect failed key=%s", surface.key, exc_info=True)

        if surface.instance is not None:
            try:
                self.renderer.destroy(surface.instance)
            except Exception:
                log.warning("Renderer destroy failed key=%s", surface.key, exc_info=True)

        surface.observer = None
        surface.series = None
        surface.instance = None
        surface.cursor = None

    def _fail(self, surface: ChartSurface, op: str) -> None:
        log.exception("Chart %s failed key=%s, dropping surface", op, surface.key)
        if self._surfaces.get(surface.key) is surface:
            del self._surfaces[surface.key]
        self._teardown(surface)

    # -------------------------
    # Updates
    # -------------------------
    def update_with_price(self, key: str, timestamp: int, price: float) -> None:
        surface = self._surfaces.get(key)
        if surface is None or surface.destroyed:
            return

        try:
            if surface.kind == ChartKind.CANDLESTICK:
                self._update_candle(surface, timestamp, price)
            else:
                self._update_area(surface, timestamp, price)
        except Exception:
            self._fail(surface, "update")

    def _update_candle(self, surface: ChartSurface, timestamp: int, price: float) -> None:
        bucket_start = bucket_start_for(timestamp)
        cursor = surface.cursor

        if cursor is None or bucket_start > cursor.bucket_start:
            if cursor is not None:
                # Final state of the finished minute, then the new one on top.
                self.renderer.update_latest(surface.series, cursor.as_point())
            surface.cursor = cursor = Candle.opened_at(bucket_start, price)
            self.renderer.update_latest(surface.series, cursor.as_point())
            self._schedule_finalize(surface, bucket_start)
            return

        if bucket_start < cursor.bucket_start and cursor.bucket_start - bucket_start >= self.late_tolerance_seconds:
            return

        cursor.update(price)
        self.renderer.update_latest(surface.series, cursor.as_point())

    def _update_area(self, surface: ChartSurface, timestamp: int, price: float) -> None:
        t = int(timestamp) // 1000
        if surface.last_time is not None and t < surface.last_time:
            return
        self.renderer.update_latest(surface.series, {"time": t, "value": price})
        surface.last_time = t

    def resize(self, key: str, width: int) -> None:
        surface = self._surfaces.get(key)
        if surface is None or surface.destroyed:
            return
        try:
            self.renderer.resize(surface.instance, width)
        except Exception:
            self._fail(surface, "resize")

    def _on_container_resize(self, surface: ChartSurface, width: int) -> None:
        if surface.destroyed or self._surfaces.get(surface.key) is not surface:
            return
        self.resize(surface.key, width)

    # -------------------------
    # Minute finalize timer
    # -------------------------
    def _schedule_finalize(self, surface: ChartSurface, bucket_start: int) -> None:
        for task in surface.pending_timers.values():
            task.cancel()
        surface.pending_timers.clear()

        due = bucket_start + BUCKET_SECONDS + self.finalize_buffer_seconds
        delay = max(0.0, due - self.scheduler.now())
        surface.pending_timers[bucket_start] = self.scheduler.call_later(
            delay, lambda: self._on_bucket_elapsed(surface, bucket_start)
        )

    def _on_bucket_elapsed(self, surface: ChartSurface, bucket_start: int) -> None:
        surface.pending_timers.pop(bucket_start, None)
        if surface.destroyed or self._surfaces.get(surface.key) is not surface:
            return
        try:
            self.renderer.fit_content(surface.instance)
        except Exception:
            self._fail(surface, "fit_content")

    # -------------------------
    # Read side
    # -------------------------
    def keys(self) -> List[str]:
        return sorted(self._surfaces)

    def is_live(self, key: str) -> bool:
        surface = self._surfaces.get(key)
        return surface is not None and not surface.destroyed

    def describe(self, key: str) -> Optional[dict]:
        surface = self._surfaces.get(key)
        if surface is None:
            return None
        return {
            "key": surface.key,
            "kind": surface.kind.value,
            "cursor": surface.cursor.as_point() if surface.cursor else None,
            "last_time": surface.last_time,
            "pending_timers": sorted(surface.pending_timers),
            "destroyed": surface.destroyed,
        }
