from screener.channels.base import MessageChannel, SnapshotProvider
from screener.channels.snapshot import HttpSnapshotProvider
from screener.channels.websocket import WebSocketChannel
from screener.config import Settings


def get_channel(settings: Settings) -> MessageChannel:
    """
    Channel loader / factory.

    Reads CHANNEL from config and returns an instance of the selected channel.
    This is the single place that knows about concrete channels.
    """
    channel_name = settings.channel.strip().upper()

    if channel_name == "WS":
        return WebSocketChannel(settings.ws_url)

    raise ValueError(f"Unknown CHANNEL='{settings.channel}'. Expected: WS")


def get_snapshot_provider(settings: Settings) -> SnapshotProvider:
    return HttpSnapshotProvider(settings.snapshot_url, timeout_s=settings.http_timeout_seconds)
