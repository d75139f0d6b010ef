from __future__ import annotations

import asyncio
import logging
import traceback

from screener.channels.base import SnapshotProvider
from screener.engine import ScreenerEngine


async def poll_once(provider: SnapshotProvider, engine: ScreenerEngine) -> int:
    records = await provider.fetch_snapshot()
    engine.apply_snapshot(records)
    engine.evict_idle()
    return len(records)


async def snapshot_poll_loop(provider: SnapshotProvider, engine: ScreenerEngine, interval_s: float = 10.0) -> None:
    """
    Background loop:
    pulls the full snapshot every interval_s and applies it to the price view.
    Runs on its own cadence, independent of the tick stream.
    """
    log = logging.getLogger("snapshot_poller")

    while True:
        try:
            count = await poll_once(provider, engine)
            log.debug("Snapshot applied records=%d", count)
        except Exception as e:
            # Keep loop alive even if the snapshot source temporarily fails, but log the error.
            engine.metrics.snapshot_failures.inc()
            log.error("Snapshot poll failed error=%s", repr(e))
            log.error(traceback.format_exc())

        await asyncio.sleep(interval_s)
