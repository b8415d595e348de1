"""
Pub/sub sink: publishes each record on a channel.
"""

from typing import Any, Callable, Optional, Protocol

from ..core.dispatch import running_loop
from ..core.levels import LevelLike
from ..models.record import LogRecord
from .base import record_to_json


class PubSubClient(Protocol):
    """Anything with ``publish(channel, message)``, e.g. a redis-py client."""

    def publish(self, channel: str, message: str) -> Any: ...


class PubSubSink:
    """
    ``publish`` may be synchronous or return an awaitable (redis.asyncio);
    either result is passed back to the pipeline.
    """

    def __init__(
        self,
        client: PubSubClient,
        channel: str = "logs",
        name: str = "pubsub",
        level: Optional[LevelLike] = None,
        serializer: Optional[Callable[[LogRecord], str]] = None,
        close_client: bool = False,
    ) -> None:
        self.client = client
        self.channel = channel
        self.name = name
        self.level = level
        self.serializer = serializer or record_to_json
        self.close_client = close_client

    def deliver(self, record: LogRecord) -> Any:
        return self.client.publish(self.channel, self.serializer(record))

    def close(self) -> Any:
        if not self.close_client:
            return None
        # redis.asyncio exposes aclose(); sync clients close().
        closer = getattr(self.client, "aclose", None) if running_loop() else None
        if closer is None:
            closer = getattr(self.client, "close", None)
        if callable(closer):
            return closer()
        return None
