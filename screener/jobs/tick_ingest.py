from __future__ import annotations

import logging

from screener.channels.base import MessageChannel
from screener.engine import ScreenerEngine

log = logging.getLogger("tick_ingest")


async def tick_ingest_loop(channel: MessageChannel, engine: ScreenerEngine) -> None:
    """
    Background loop:
    - reads raw frames from channel.messages()
    - hands each to the engine, which decodes and fans it out
    """
    async for raw in channel.messages():
        try:
            engine.handle_raw(raw)
        except Exception:
            # One bad frame must not stop the stream.
            log.exception("Tick handling failed")
