import asyncio
import logging
from typing import Optional

from fastapi import FastAPI

from screener.api.routes import router as api_router
from screener.config import get_settings
from screener.jobs.snapshot_poller import snapshot_poll_loop
from screener.jobs.tick_ingest import tick_ingest_loop
from screener.state import Runtime, build_runtime


def create_app(runtime: Optional[Runtime] = None) -> FastAPI:
    if runtime is None:
        runtime = build_runtime(get_settings())
    settings = runtime.settings

    app = FastAPI(title="Screener API", version="0.1.0")
    app.state.runtime = runtime
    app.include_router(api_router)

    @app.on_event("startup")
    async def _startup():
        logging.basicConfig(level=settings.log_level)

        # Initial chart slots from CHART_TICKERS (slot-0, slot-1, ...)
        for i, ticker in enumerate(settings.chart_tickers[: settings.chart_slots]):
            runtime.board.assign(f"slot-{i}", ticker)

        # WS ingest (ticks -> candles, charts, live prices)
        runtime.tasks.append(asyncio.create_task(tick_ingest_loop(runtime.channel, runtime.engine)))

        # Snapshot poller (baseline prices + screener fields)
        runtime.tasks.append(
            asyncio.create_task(
                snapshot_poll_loop(runtime.snapshots, runtime.engine, settings.snapshot_interval_seconds)
            )
        )

    @app.on_event("shutdown")
    async def _shutdown():
        for task in runtime.tasks:
            task.cancel()
        runtime.tasks.clear()
        runtime.board.close_all()
        await runtime.channel.close()
        await runtime.snapshots.close()

    @app.get("/health")
    def health():
        return {
            "status": "ok",
            "app_env": settings.app_env,
            "channel_config": settings.channel,
            "channel_loaded": runtime.channel.__class__.__name__,
        }

    return app


app = create_app()
