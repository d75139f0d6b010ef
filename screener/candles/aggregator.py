from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from screener.models.market import Candle

log = logging.getLogger("candle_aggregator")

BUCKET_SECONDS = 60
DEFAULT_LATE_TOLERANCE_SECONDS = 120


def bucket_start_for(timestamp_ms: int) -> int:
    """Epoch ms -> start of its minute bucket in epoch seconds."""
    return (int(timestamp_ms) // 1000) // BUCKET_SECONDS * BUCKET_SECONDS


@dataclass(frozen=True)
class IngestResult:
    """
    Outcome of folding one tick.

    is_new_bucket: the tick opened a candle ("candle open"); otherwise it
      was an update to the current one ("candle update")
    accepted: False when the tick was too late and dropped
    late: the tick belonged to an older bucket but was merged into the current candle
    closed: the candle finalized by this tick, if any
    """
    bucket_start: int
    is_new_bucket: bool
    accepted: bool = True
    late: bool = False
    closed: Optional[Candle] = None


class CandleAggregator:
    """
    Folds (timestamp, price) ticks for one ticker into a running 1m candle.

    Ticks for an older bucket are merged into the current candle when the
    gap is below late_tolerance_seconds and dropped otherwise.
    """

    def __init__(self, ticker: str = "", late_tolerance_seconds: int = DEFAULT_LATE_TOLERANCE_SECONDS):
        self.ticker = ticker
        self.late_tolerance_seconds = int(late_tolerance_seconds)
        self._current: Optional[Candle] = None
        self._stats = {
            "ticks_total": 0,
            "ticks_late_merged": 0,
            "ticks_dropped_late": 0,
            "candles_opened": 0,
        }

    @property
    def current(self) -> Optional[Candle]:
        return self._current

    def stats(self) -> Dict[str, int]:
        return dict(self._stats)

    def ingest(self, timestamp: int, price: float) -> IngestResult:
        self._stats["ticks_total"] += 1
        bucket_start = bucket_start_for(timestamp)
        current = self._current

        # Start a new candle if none exists or the minute rolled forward.
        if current is None or bucket_start > current.bucket_start:
            self._current = Candle.opened_at(bucket_start, price)
            self._stats["candles_opened"] += 1
            return IngestResult(bucket_start=bucket_start, is_new_bucket=True, closed=current)

        # Still inside the current window -> update.
        if bucket_start == current.bucket_start:
            current.update(price)
            return IngestResult(bucket_start=bucket_start, is_new_bucket=False)

        gap = current.bucket_start - bucket_start
        if gap < self.late_tolerance_seconds:
            current.update(price)
            self._stats["ticks_late_merged"] += 1
            return IngestResult(bucket_start=current.bucket_start, is_new_bucket=False, late=True)

        self._stats["ticks_dropped_late"] += 1
        log.warning(
            "Dropping late tick ticker=%s bucket=%d current=%d gap_s=%d price=%s",
            self.ticker,
            bucket_start,
            current.bucket_start,
            gap,
            price,
        )
        return IngestResult(bucket_start=bucket_start, is_new_bucket=False, accepted=False)
