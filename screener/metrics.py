from __future__ import annotations

from typing import Dict, Optional

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Gauge, generate_latest


class ScreenerMetrics:
    """
    Prometheus counters for one runtime.

    Each runtime owns its registry, so tests and side-by-side runtimes
    never share counts.
    """

    content_type = CONTENT_TYPE_LATEST

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self.registry = registry or CollectorRegistry()

        self.ticks = Counter("screener_ticks", "Ticks fanned out to candles, charts and prices", registry=self.registry)
        self.ticks_ignored = Counter(
            "screener_ticks_ignored", "Ticks for tickers outside the subscribed set", registry=self.registry
        )
        self.ticks_late_merged = Counter(
            "screener_ticks_late_merged", "Late ticks merged into the current candle", registry=self.registry
        )
        self.ticks_dropped_late = Counter(
            "screener_ticks_dropped_late", "Ticks dropped for arriving past the late tolerance", registry=self.registry
        )
        self.candles_opened = Counter("screener_candles_opened", "1m candles opened", registry=self.registry)
        self.malformed = Counter("screener_messages_malformed", "Inbound frames dropped as malformed", registry=self.registry)
        self.alerts = Counter("screener_alerts", "Pattern/alert messages routed to the sink", registry=self.registry)
        self.controls = Counter("screener_controls", "Control messages received", registry=self.registry)
        self.snapshots = Counter("screener_snapshots", "Snapshots applied", registry=self.registry)
        self.snapshot_failures = Counter(
            "screener_snapshot_failures", "Snapshot polls that raised", registry=self.registry
        )
        self.tickers_tracked = Gauge("screener_tickers_tracked", "Tickers in the price view", registry=self.registry)

    def value(self, name: str) -> float:
        return self.registry.get_sample_value(name) or 0.0

    def counts(self) -> Dict[str, int]:
        """Plain counter values, keyed without the prefix and _total suffix."""
        out = {}
        for metric in self.registry.collect():
            if metric.type != "counter":
                continue
            key = metric.name[len("screener_"):]
            out[key] = int(self.value(f"{metric.name}_total"))
        return out

    def render(self) -> bytes:
        return generate_latest(self.registry)
