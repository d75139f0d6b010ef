# screener/config.py
import os
from dataclasses import dataclass
from dotenv import load_dotenv

# Loads variables from a local .env file into environment variables (dev only).
load_dotenv()


@dataclass(frozen=True)
class Settings:
    # App config
    app_env: str
    log_level: str
    channel: str

    # Feeds
    ws_url: str
    snapshot_url: str
    snapshot_interval_seconds: float
    http_timeout_seconds: float

    # Candles / prices
    candle_history_limit: int
    late_tick_tolerance_seconds: int
    delta_flash_threshold: float
    price_flash_threshold: float
    ticker_idle_ttl_seconds: float

    # Charts / subscriptions
    subscribe_quiet_seconds: float
    finalize_buffer_seconds: float
    chart_slots: int
    chart_tickers: list[str]
    subscribe_snapshot_tickers: bool
    alert_history: int


def _num(name: str, default: str, cast=float):
    raw = os.getenv(name, default).strip()
    try:
        return cast(raw)
    except ValueError as e:
        raise RuntimeError(f"{name}={raw!r} is not a valid {cast.__name__}") from e


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def get_settings() -> Settings:
    """
    Reads env vars and returns a Settings object.
    """
    chart_tickers = [s.strip().upper() for s in os.getenv("CHART_TICKERS", "").split(",") if s.strip()]

    return Settings(
        app_env=os.getenv("APP_ENV", "local"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        channel=os.getenv("CHANNEL", "WS"),
        ws_url=os.getenv("WS_URL", "ws://localhost:8080/ws"),
        snapshot_url=os.getenv("SNAPSHOT_URL", "http://localhost:3000/api/stock-data"),
        snapshot_interval_seconds=_num("SNAPSHOT_INTERVAL_SECONDS", "10"),
        http_timeout_seconds=_num("HTTP_TIMEOUT_SECONDS", "20"),
        candle_history_limit=_num("CANDLE_HISTORY_LIMIT", "100", int),
        late_tick_tolerance_seconds=_num("LATE_TICK_TOLERANCE_SECONDS", "120", int),
        delta_flash_threshold=_num("DELTA_FLASH_THRESHOLD", "0.005"),
        price_flash_threshold=_num("PRICE_FLASH_THRESHOLD", "0.005"),
        ticker_idle_ttl_seconds=_num("TICKER_IDLE_TTL_SECONDS", "0"),
        subscribe_quiet_seconds=_num("SUBSCRIBE_QUIET_SECONDS", "0.3"),
        finalize_buffer_seconds=_num("FINALIZE_BUFFER_SECONDS", "1.0"),
        chart_slots=_num("CHART_SLOTS", "4", int),
        chart_tickers=chart_tickers,
        subscribe_snapshot_tickers=_flag("SUBSCRIBE_SNAPSHOT_TICKERS", "true"),
        alert_history=_num("ALERT_HISTORY", "50", int),
    )
