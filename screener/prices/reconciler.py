from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from screener.models.market import PriceChange, StockRecord, TickerState

log = logging.getLogger("price_reconciler")

DELTA_FLASH_THRESHOLD = 0.005
PRICE_FLASH_THRESHOLD = 0.005


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def calculate_delta(live_price: Optional[float], baseline_price: Optional[float]) -> Optional[float]:
    """Relative change of live vs baseline. None if either side is unknown, 0 for a zero baseline."""
    if live_price is None or baseline_price is None:
        return None
    if baseline_price == 0:
        return 0.0
    return (live_price - baseline_price) / baseline_price


def _delta_moved(old: Optional[float], new: Optional[float], threshold: float) -> bool:
    if old == new:
        return False
    if old is None or new is None:
        return True
    return abs(new - old) > threshold


def _price_moved(old: Optional[float], new: Optional[float], threshold: float) -> bool:
    if old == new:
        return False
    if old is None or new is None:
        return True
    if old == 0:
        return False
    return abs(new - old) / old > threshold


def _direction(old: Optional[float], new: Optional[float]) -> Optional[str]:
    if new is None or old == new:
        return None
    return "up" if new > (old or 0.0) else "down"


class PriceReconciler:
    """
    Merges the snapshot feed and the tick feed into one price view per ticker.

    The two feeds own disjoint fields:
    - snapshots write baseline_price and the non-price fields
      (volume, multiplier, float, mav10)
    - ticks write live_price
    delta is recomputed from both on every write, so neither feed can
    clobber the other and delta can never drift from its inputs.
    """

    def __init__(
        self,
        delta_threshold: float = DELTA_FLASH_THRESHOLD,
        price_threshold: float = PRICE_FLASH_THRESHOLD,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.delta_threshold = delta_threshold
        self.price_threshold = price_threshold
        self._clock = clock
        self._states: Dict[str, TickerState] = {}
        # last time either feed mentioned the ticker (idle eviction only)
        self._last_seen: Dict[str, datetime] = {}

    def __len__(self) -> int:
        return len(self._states)

    def __contains__(self, ticker: str) -> bool:
        return ticker in self._states

    def get(self, ticker: str) -> Optional[TickerState]:
        state = self._states.get(ticker)
        return replace(state) if state is not None else None

    def all(self) -> List[TickerState]:
        return [replace(s) for _, s in sorted(self._states.items())]

    def apply_snapshot(self, record: StockRecord) -> PriceChange:
        now = self._clock()
        ticker = record.ticker
        self._last_seen[ticker] = now
        state = self._states.get(ticker)

        if state is None:
            state = TickerState(
                ticker=ticker,
                first_seen=now,
                baseline_price=record.baseline_price,
                live_price=record.live_price,
                volume=record.volume,
                multiplier=record.multiplier,
                float_shares=record.float_shares,
                mav10=record.mav10,
                last_snapshot_at=now,
            )
            state.delta = calculate_delta(state.live_price, state.baseline_price)
            self._states[ticker] = state
            return PriceChange(
                ticker=ticker,
                delta_significant=state.delta is not None,
                direction=_direction(state.baseline_price, state.live_price),
                is_new=True,
            )

        old_delta = state.delta
        state.baseline_price = record.baseline_price
        state.volume = record.volume
        state.multiplier = record.multiplier
        state.float_shares = record.float_shares
        state.mav10 = record.mav10
        state.last_snapshot_at = now

        # A known live price always wins over the snapshot's copy. Only a
        # ticker that never had one (snapshot row without price) takes it.
        if state.live_price is None and record.live_price is not None:
            state.live_price = record.live_price

        state.delta = calculate_delta(state.live_price, state.baseline_price)
        return PriceChange(
            ticker=ticker,
            delta_significant=_delta_moved(old_delta, state.delta, self.delta_threshold),
        )

    def apply_tick(self, ticker: str, price: float) -> PriceChange:
        now = self._clock()
        self._last_seen[ticker] = now
        state = self._states.get(ticker)
        is_new = state is None
        if state is None:
            state = TickerState(ticker=ticker, first_seen=now)
            self._states[ticker] = state

        old_price = state.live_price
        old_delta = state.delta

        state.live_price = price
        state.delta = calculate_delta(price, state.baseline_price)

        return PriceChange(
            ticker=ticker,
            delta_significant=_delta_moved(old_delta, state.delta, self.delta_threshold),
            price_significant=_price_moved(old_price, price, self.price_threshold),
            direction=_direction(old_price, price),
            is_new=is_new,
        )

    def evict_idle(self, max_idle_seconds: float) -> List[str]:
        """Forget tickers neither feed has mentioned for max_idle_seconds."""
        cutoff = self._clock() - timedelta(seconds=max_idle_seconds)
        stale = [t for t, seen in self._last_seen.items() if seen < cutoff]
        for ticker in stale:
            self._states.pop(ticker, None)
            self._last_seen.pop(ticker, None)
        if stale:
            log.info("Evicted idle tickers count=%d tickers=%s", len(stale), stale)
        return stale
