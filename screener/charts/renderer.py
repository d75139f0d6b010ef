from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, List


class ChartKind(str, Enum):
    CANDLESTICK = "candlestick"
    AREA = "area"


class ResizeObserver(ABC):
    @abstractmethod
    def disconnect(self) -> None:
        raise NotImplementedError


class ChartRenderer(ABC):
    """
    Rendering collaborator contract.

    Calls are synchronous and may raise; the chart manager wraps every
    call so a failure only takes down the surface it was made for.

    Points are dicts keyed by "time" (epoch seconds) plus either
    open/high/low/close (candlestick) or value (area).
    """

    @abstractmethod
    def create_surface(self, container: Any, kind: ChartKind) -> Any:
        raise NotImplementedError

    @abstractmethod
    def create_series(self, instance: Any, kind: ChartKind) -> Any:
        raise NotImplementedError

    @abstractmethod
    def bulk_set_data(self, series: Any, points: List[dict]) -> None:
        """Replace every point of the series."""
        raise NotImplementedError

    @abstractmethod
    def update_latest(self, series: Any, point: dict) -> None:
        """Append a point, or replace the last one when times match."""
        raise NotImplementedError

    @abstractmethod
    def resize(self, instance: Any, width: int) -> None:
        raise NotImplementedError

    @abstractmethod
    def fit_content(self, instance: Any) -> None:
        raise NotImplementedError

    @abstractmethod
    def observe_resize(self, container: Any, callback: Callable[[int], None]) -> ResizeObserver:
        raise NotImplementedError

    @abstractmethod
    def destroy(self, instance: Any) -> None:
        raise NotImplementedError
