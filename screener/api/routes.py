from __future__ import annotations

import time

from fastapi import APIRouter, HTTPException, Query, Request, Response

from screener.charts.renderer import ChartKind
from screener.models.market import Tick
from screener.state import Runtime

router = APIRouter()


def _runtime(request: Request) -> Runtime:
    return request.app.state.runtime


def _check_slot(rt: Runtime, slot: str) -> None:
    if slot not in {s["slot"] for s in rt.board.describe()}:
        raise HTTPException(status_code=404, detail=f"unknown chart slot: {slot}")


# Handlers that touch charts or subscriptions schedule timers on the
# event loop, so they are all async.


@router.get("/tickers")
async def tickers(request: Request):
    rt = _runtime(request)
    return [s.to_dict() for s in rt.reconciler.all()]


@router.get("/tickers/{ticker}")
async def ticker_state(request: Request, ticker: str):
    state = _runtime(request).reconciler.get(ticker.upper())
    if state is None:
        raise HTTPException(status_code=404, detail=f"unknown ticker: {ticker}")
    return state.to_dict()


@router.get("/candles/{ticker}")
async def candles(request: Request, ticker: str):
    """
    Candles v1:
    - closed 1m candles (oldest first) plus the forming one at the end
    - aggregator counters (late merges / drops)
    """
    rt = _runtime(request)
    symbol = ticker.upper()
    return {
        "ticker": symbol,
        "candles": [c.as_point() for c in rt.store.get_history(symbol)],
        "stats": rt.store.stats(symbol),
    }


@router.get("/subscriptions")
async def subscriptions(request: Request):
    rt = _runtime(request)
    subs = rt.subscriptions
    return {
        "desired": sorted(subs.desired),
        "effective": sorted(subs.effective),
        "pending": subs.pending,
        "watchlist": rt.board.watchlist(),
    }


@router.get("/metrics")
async def metrics(request: Request):
    """Prometheus text exposition of this runtime's counters."""
    m = _runtime(request).metrics
    return Response(content=m.render(), media_type=m.content_type)


@router.get("/alerts")
async def alerts(request: Request):
    return _runtime(request).alerts.recent()


@router.get("/charts")
async def charts(request: Request):
    return _runtime(request).board.describe()


@router.post("/charts/swap")
async def swap_charts(
    request: Request,
    a: str = Query(..., description="Dragged slot, e.g. slot-0"),
    b: str = Query(..., description="Drop target slot, e.g. slot-2"),
):
    rt = _runtime(request)
    _check_slot(rt, a)
    _check_slot(rt, b)
    rt.board.swap(a, b)
    return rt.board.describe()


@router.put("/charts/{slot}")
async def assign_chart(
    request: Request,
    slot: str,
    ticker: str = Query(..., description="Ticker symbol, e.g. TSLA"),
    kind: ChartKind = Query(ChartKind.CANDLESTICK, description="candlestick or area"),
):
    rt = _runtime(request)
    _check_slot(rt, slot)
    attached = rt.board.assign(slot, ticker, kind)
    return {"ok": attached, "slot": slot, "surface": rt.charts.describe(slot)}


@router.delete("/charts/{slot}")
async def close_chart(request: Request, slot: str):
    rt = _runtime(request)
    _check_slot(rt, slot)
    rt.board.close(slot)
    return {"ok": True, "slot": slot}


@router.post("/charts/{slot}/resize")
async def resize_chart(request: Request, slot: str, width: int = Query(..., gt=0)):
    rt = _runtime(request)
    _check_slot(rt, slot)
    rt.board.resize(slot, width)
    return {"ok": rt.charts.is_live(slot), "slot": slot}


@router.post("/dev/simulate_tick")
async def dev_simulate_tick(
    request: Request,
    ticker: str = Query(..., description="Ticker symbol, e.g. TSLA"),
    price: float = Query(..., description="Tick price"),
):
    """
    Dev-only helper:
    Feeds ONE tick into the engine inside the running API process,
    as if it had arrived on the channel right now.
    """
    rt = _runtime(request)
    tick = Tick(ticker=ticker.upper(), timestamp=int(time.time() * 1000), price=price)
    if not rt.subscriptions.wants(tick.ticker):
        return {"ok": False, "reason": "ticker not subscribed"}
    change = rt.engine.on_tick(tick)
    if change is None:
        return {"ok": False, "reason": "tick dropped as late"}
    return {
        "ok": True,
        "delta_significant": change.delta_significant,
        "price_significant": change.price_significant,
        "direction": change.direction,
    }
