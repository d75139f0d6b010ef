from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional


@dataclass(frozen=True)
class Tick:
    """
    Tick = a single live price update from the push channel.

    ticker: which stock (e.g., TSLA)
    timestamp: when the tick happened (epoch milliseconds)
    price: traded price
    """
    ticker: str
    timestamp: int
    price: float


@dataclass
class Candle:
    """
    1 minute OHLC candle.

    bucket_start: start of the minute window in epoch seconds (always % 60 == 0)
    o/h/l/c: open/high/low/close prices during the window
    """
    bucket_start: int
    o: float
    h: float
    l: float
    c: float

    @classmethod
    def opened_at(cls, bucket_start: int, price: float) -> "Candle":
        return cls(bucket_start=bucket_start, o=price, h=price, l=price, c=price)

    def update(self, price: float) -> None:
        """Update this candle with a new tick."""
        self.h = max(self.h, price)
        self.l = min(self.l, price)
        self.c = price

    def copy(self) -> "Candle":
        return Candle(bucket_start=self.bucket_start, o=self.o, h=self.h, l=self.l, c=self.c)

    def as_point(self) -> dict:
        return {"time": self.bucket_start, "open": self.o, "high": self.h, "low": self.l, "close": self.c}


def _opt_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        out = float(value)
    except (TypeError, ValueError):
        return None
    return out if math.isfinite(out) else None


@dataclass(frozen=True)
class StockRecord:
    """
    One row of the snapshot feed.

    baseline_price: the reference price delta is measured against
      (the snapshot source calls it prev_price)
    live_price: the price the snapshot source last saw; only used
      for tickers we have never seen before
    """
    ticker: str
    baseline_price: Optional[float] = None
    live_price: Optional[float] = None
    volume: Optional[float] = None
    multiplier: Optional[float] = None
    float_shares: Optional[float] = None
    mav10: Optional[float] = None

    @classmethod
    def from_dict(cls, row: dict) -> "StockRecord":
        ticker = row.get("ticker")
        if not isinstance(ticker, str) or not ticker.strip():
            raise ValueError(f"snapshot row without ticker: {row!r}")

        baseline = row["baseline_price"] if "baseline_price" in row else row.get("prev_price")
        live = row["live_price"] if "live_price" in row else row.get("price")

        return cls(
            ticker=ticker.strip().upper(),
            baseline_price=_opt_float(baseline),
            live_price=_opt_float(live),
            volume=_opt_float(row.get("volume")),
            multiplier=_opt_float(row.get("multiplier")),
            float_shares=_opt_float(row.get("float")),
            mav10=_opt_float(row.get("mav10")),
        )


@dataclass
class TickerState:
    """
    Reconciled per-ticker view.

    baseline_price is only ever written by snapshot ingestion and
    live_price only by tick ingestion; delta is derived from both.
    """
    ticker: str
    first_seen: datetime
    baseline_price: Optional[float] = None
    live_price: Optional[float] = None
    delta: Optional[float] = None
    volume: Optional[float] = None
    multiplier: Optional[float] = None
    float_shares: Optional[float] = None
    mav10: Optional[float] = None
    last_snapshot_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "ticker": self.ticker,
            "baseline_price": self.baseline_price,
            "live_price": self.live_price,
            "delta": self.delta,
            "volume": self.volume,
            "multiplier": self.multiplier,
            "float": self.float_shares,
            "mav10": self.mav10,
            "first_seen": self.first_seen.isoformat(),
            "last_snapshot_at": self.last_snapshot_at.isoformat() if self.last_snapshot_at else None,
        }


@dataclass(frozen=True)
class PriceChange:
    """What changed on one reconciler write, used to drive flash/highlight state."""
    ticker: str
    delta_significant: bool = False
    price_significant: bool = False
    direction: Optional[str] = None  # "up" / "down" / None when price did not move
    is_new: bool = False
