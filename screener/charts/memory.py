from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from screener.charts.renderer import ChartKind, ChartRenderer, ResizeObserver


@dataclass
class SlotContainer:
    """Headless stand-in for a DOM container: a name and a width."""
    name: str
    width: int = 600
    observers: List["MemoryObserver"] = field(default_factory=list)

    def set_width(self, width: int) -> None:
        self.width = int(width)
        for obs in list(self.observers):
            obs.notify(self.width)


class MemoryObserver(ResizeObserver):
    def __init__(self, container: SlotContainer, callback: Callable[[int], None]) -> None:
        self.container = container
        self.callback: Optional[Callable[[int], None]] = callback
        container.observers.append(self)

    def notify(self, width: int) -> None:
        if self.callback is not None:
            self.callback(width)

    def disconnect(self) -> None:
        self.callback = None
        if self in self.container.observers:
            self.container.observers.remove(self)


@dataclass
class MemorySeries:
    kind: ChartKind
    points: List[dict] = field(default_factory=list)


@dataclass
class MemorySurface:
    id: int
    kind: ChartKind
    width: int
    series: List[MemorySeries] = field(default_factory=list)
    fit_count: int = 0
    destroyed: bool = False


class InMemoryRenderer(ChartRenderer):
    """
    Renderer that keeps series points in memory.

    Enforces the same ordering rules as a streaming chart library:
    bulk data must be strictly ascending by time, and update_latest may
    only replace the last point or append a newer one.
    """

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self.surfaces: Dict[int, MemorySurface] = {}

    def _check(self, surface: MemorySurface) -> None:
        if surface.destroyed:
            raise RuntimeError(f"surface {surface.id} is destroyed")

    def create_surface(self, container: Any, kind: ChartKind) -> MemorySurface:
        surface = MemorySurface(id=next(self._ids), kind=ChartKind(kind), width=int(getattr(container, "width", 0)))
        self.surfaces[surface.id] = surface
        return surface

    def create_series(self, instance: MemorySurface, kind: ChartKind) -> MemorySeries:
        self._check(instance)
        series = MemorySeries(kind=ChartKind(kind))
        instance.series.append(series)
        return series

    def bulk_set_data(self, series: MemorySeries, points: List[dict]) -> None:
        times = [p["time"] for p in points]
        if any(b <= a for a, b in zip(times, times[1:])):
            raise ValueError("bulk data must be strictly ascending by time")
        series.points = [dict(p) for p in points]

    def update_latest(self, series: MemorySeries, point: dict) -> None:
        if series.points:
            last = series.points[-1]["time"]
            if point["time"] < last:
                raise ValueError(f"cannot update oldest data, last time={last} new time={point['time']}")
            if point["time"] == last:
                series.points[-1] = dict(point)
                return
        series.points.append(dict(point))

    def resize(self, instance: MemorySurface, width: int) -> None:
        self._check(instance)
        instance.width = int(width)

    def fit_content(self, instance: MemorySurface) -> None:
        self._check(instance)
        instance.fit_count += 1

    def observe_resize(self, container: SlotContainer, callback: Callable[[int], None]) -> MemoryObserver:
        return MemoryObserver(container, callback)

    def destroy(self, instance: MemorySurface) -> None:
        instance.destroyed = True
        self.surfaces.pop(instance.id, None)

    def points(self, instance: MemorySurface) -> List[dict]:
        if not instance.series:
            return []
        return [dict(p) for p in instance.series[0].points]
