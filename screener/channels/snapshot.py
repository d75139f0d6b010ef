from __future__ import annotations

import logging
from typing import List, Optional

import httpx

from screener.channels.base import SnapshotProvider
from screener.models.market import StockRecord

log = logging.getLogger("snapshot_provider")


class HttpSnapshotProvider(SnapshotProvider):
    """
    Snapshot provider over HTTP.

      GET {url} -> [{"ticker": ..., "prev_price": ..., "price": ..., "volume": ..., ...}, ...]

    A {"data": [...]} envelope is unwrapped. Rows that do not parse are skipped.
    """

    def __init__(self, url: str, timeout_s: float = 20.0, client: Optional[httpx.AsyncClient] = None) -> None:
        self.url = url
        self._client = client or httpx.AsyncClient(timeout=timeout_s)

    async def fetch_snapshot(self) -> List[StockRecord]:
        resp = await self._client.get(self.url)
        resp.raise_for_status()

        data = resp.json()
        if isinstance(data, dict) and "data" in data:
            data = data["data"]
        if not isinstance(data, list):
            log.warning("Unexpected snapshot payload type=%s", type(data))
            return []

        out: List[StockRecord] = []
        for row in data:
            if not isinstance(row, dict):
                continue
            try:
                out.append(StockRecord.from_dict(row))
            except ValueError:
                continue
        return out

    async def close(self) -> None:
        await self._client.aclose()
