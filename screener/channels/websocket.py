from __future__ import annotations

import asyncio
import json
import logging
from typing import AsyncIterator, Callable, List, Optional

import websockets

from screener.channels.base import Frame, MessageChannel

log = logging.getLogger("ws_channel")


class WebSocketChannel(MessageChannel):
    """
    WS client channel.

    - reconnects forever with exponential backoff (1s -> 30s)
    - after each connect, runs on_open hooks (resubscribe) and then
      drains the outbound queue while the socket is up
    - yields raw text frames
    """

    def __init__(
        self,
        url: str,
        ping_interval: float = 20,
        max_backoff: float = 30.0,
    ) -> None:
        self.url = url
        self.ping_interval = ping_interval
        self.max_backoff = max_backoff
        self._hooks: List[Callable[[], None]] = []
        self._outbox: asyncio.Queue = asyncio.Queue()
        self._connected = False
        self._closed = False
        self._ws = None

    @property
    def connected(self) -> bool:
        return self._connected

    def on_open(self, hook: Callable[[], None]) -> None:
        self._hooks.append(hook)

    def post(self, payload: dict) -> None:
        if not self._connected:
            # Subscriptions are replayed by the on_open hooks after reconnect.
            log.debug("WS not connected, dropping outbound %s", payload)
            return
        self._outbox.put_nowait(json.dumps(payload))

    async def _drain(self, ws) -> None:
        while True:
            text = await self._outbox.get()
            await ws.send(text)

    def _reset_outbox(self) -> None:
        while not self._outbox.empty():
            self._outbox.get_nowait()

    def _run_hooks(self) -> None:
        for hook in self._hooks:
            try:
                hook()
            except Exception:
                log.exception("WS on_open hook failed")

    async def messages(self) -> AsyncIterator[Frame]:
        backoff = 1.0

        while not self._closed:
            writer: Optional[asyncio.Task] = None
            try:
                async with websockets.connect(
                    self.url, ping_interval=self.ping_interval, ping_timeout=self.ping_interval
                ) as ws:
                    self._ws = ws
                    self._connected = True
                    self._reset_outbox()
                    log.warning("WS connected url=%s", self.url)
                    backoff = 1.0

                    self._run_hooks()
                    writer = asyncio.create_task(self._drain(ws))

                    async for raw in ws:
                        yield raw

            except asyncio.CancelledError:
                raise
            except Exception as e:
                log.warning("WS error: %s", e)
            finally:
                self._connected = False
                self._ws = None
                if writer is not None:
                    writer.cancel()

            if self._closed:
                break
            log.warning("WS disconnected, reconnecting in %.1fs", backoff)
            await asyncio.sleep(backoff)
            backoff = min(backoff * 2, self.max_backoff)

    async def close(self) -> None:
        self._closed = True
        ws = self._ws
        if ws is not None:
            await ws.close()
