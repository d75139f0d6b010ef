from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional, Union

log = logging.getLogger("messages")

ALERT_TOPIC = "pattern_detection"
ALERT_FIELDS = ("pattern", "confidence", "alert_level")


class MalformedMessage(ValueError):
    """Payload does not match any known inbound shape."""


@dataclass(frozen=True)
class TickMessage:
    ticker: str
    price: float
    timestamp: int  # epoch ms


@dataclass(frozen=True)
class ControlMessage:
    type: str
    payload: dict


@dataclass(frozen=True)
class AlertMessage:
    """Pattern/alert payload, handed to the alert sink verbatim."""
    payload: dict
    ticker: Optional[str] = None


InboundMessage = Union[TickMessage, ControlMessage, AlertMessage]


def parse_timestamp_ms(ts_raw: Any) -> int:
    """
    Converts a wire timestamp to epoch milliseconds.
    Handles:
      - epoch millis / seconds (numbers or numeric strings)
      - ISO strings ("2024-05-01T14:30:00Z", "2024-05-01 14:30:00")
    """
    if isinstance(ts_raw, bool) or ts_raw is None:
        raise MalformedMessage(f"bad timestamp: {ts_raw!r}")

    if isinstance(ts_raw, (int, float)):
        if not math.isfinite(ts_raw):
            raise MalformedMessage(f"bad timestamp: {ts_raw!r}")
        if ts_raw > 1_000_000_000_000:  # millis
            return int(ts_raw)
        return int(ts_raw * 1000)

    s = str(ts_raw).strip()
    try:
        return parse_timestamp_ms(float(s))
    except ValueError:
        pass

    s = s.replace(" ", "T")
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError as e:
        raise MalformedMessage(f"bad timestamp: {ts_raw!r}") from e
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def _is_alert(data: dict) -> bool:
    if data.get("topic") == ALERT_TOPIC:
        return True
    if any(k in data for k in ALERT_FIELDS):
        return True
    inner = data.get("data")
    return isinstance(inner, dict) and any(k in inner for k in ALERT_FIELDS)


def _alert_ticker(data: dict) -> Optional[str]:
    ticker = data.get("ticker")
    if ticker is None and isinstance(data.get("data"), dict):
        ticker = data["data"].get("ticker")
    return ticker.upper() if isinstance(ticker, str) and ticker.strip() else None


def _decode_tick(data: dict) -> TickMessage:
    ticker = data.get("ticker")
    if not isinstance(ticker, str) or not ticker.strip():
        raise MalformedMessage(f"tick without ticker: {data!r}")

    price = data.get("price")
    if isinstance(price, bool) or not isinstance(price, (int, float)) or not math.isfinite(price):
        raise MalformedMessage(f"tick with bad price: {data!r}")

    if "timestamp" not in data:
        raise MalformedMessage(f"tick without timestamp: {data!r}")

    # volume/multiplier/float/mav10 on a tick are ignored: snapshots own them.
    return TickMessage(
        ticker=ticker.strip().upper(),
        price=float(price),
        timestamp=parse_timestamp_ms(data["timestamp"]),
    )


def decode_object(data: Any) -> InboundMessage:
    """Classify one decoded JSON value. Alert checks run first so alerts never fold into prices."""
    if not isinstance(data, dict):
        raise MalformedMessage(f"expected object, got {type(data).__name__}")

    if _is_alert(data):
        return AlertMessage(payload=data, ticker=_alert_ticker(data))

    if "type" in data and "ticker" not in data:
        return ControlMessage(type=str(data["type"]), payload=data)

    if "ticker" in data:
        return _decode_tick(data)

    raise MalformedMessage(f"unknown message shape: {data!r}")


def decode_message(raw: Union[str, bytes, dict, list]) -> list[InboundMessage]:
    """
    Decode one channel frame.

    A frame is a single object or an array of objects. Malformed items
    inside an array are dropped; a malformed single frame raises.
    """
    if isinstance(raw, (str, bytes, bytearray)):
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise MalformedMessage(f"invalid JSON: {e}") from e
    else:
        data = raw

    if not isinstance(data, list):
        return [decode_object(data)]

    out: list[InboundMessage] = []
    for item in data:
        try:
            out.append(decode_object(item))
        except MalformedMessage as e:
            log.warning("Dropping malformed item in batch: %s", e)
    return out


def subscribe_message(ticker: str) -> dict:
    return {"type": "subscribe", "topic": f"stock:{ticker.upper()}"}


def unsubscribe_message(ticker: str) -> dict:
    return {"type": "unsubscribe", "topic": f"stock:{ticker.upper()}"}
