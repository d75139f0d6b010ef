from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional

from screener.candles.aggregator import DEFAULT_LATE_TOLERANCE_SECONDS, CandleAggregator, IngestResult
from screener.models.market import Candle


@dataclass
class BackgroundCandleStore:
    """
    In-memory 1m candles for every ticker we receive ticks for,
    independent of whether any chart is showing it.

    aggregators[ticker] -> builds the in-progress candle
    history[ticker]     -> closed candles (latest max_history, oldest dropped)
    """
    max_history: int = 100
    late_tolerance_seconds: int = DEFAULT_LATE_TOLERANCE_SECONDS
    aggregators: Dict[str, CandleAggregator] = field(default_factory=dict)
    history: Dict[str, Deque[Candle]] = field(default_factory=dict)

    def _aggregator(self, ticker: str) -> CandleAggregator:
        agg = self.aggregators.get(ticker)
        if agg is None:
            agg = CandleAggregator(ticker, late_tolerance_seconds=self.late_tolerance_seconds)
            self.aggregators[ticker] = agg
        return agg

    def record_tick(self, ticker: str, timestamp: int, price: float) -> IngestResult:
        result = self._aggregator(ticker).ingest(timestamp, price)
        if result.closed is not None:
            hist = self.history.get(ticker)
            if hist is None:
                hist = self.history[ticker] = deque(maxlen=self.max_history)
            hist.append(result.closed)
        return result

    def get_current(self, ticker: str) -> Optional[Candle]:
        agg = self.aggregators.get(ticker)
        if agg is None or agg.current is None:
            return None
        return agg.current.copy()

    def get_history(self, ticker: str) -> List[Candle]:
        """Closed candles plus the in-progress one at the end, oldest first. Returns copies."""
        out = [c.copy() for c in self.history.get(ticker, ())]
        current = self.get_current(ticker)
        if current is not None:
            out.append(current)
        return out

    def has_any_data(self, ticker: str) -> bool:
        return ticker in self.aggregators

    def tickers(self) -> List[str]:
        return sorted(self.aggregators)

    def stats(self, ticker: str) -> Dict[str, int]:
        agg = self.aggregators.get(ticker)
        return agg.stats() if agg is not None else {}
