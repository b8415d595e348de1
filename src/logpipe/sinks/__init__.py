"""
Built-in sinks.

Thin adapters that serialize finalized records and write them somewhere:
- Console and NDJSON streams
- Files (aiofiles)
- HTTP webhooks (aiohttp)
- Pub/sub channels
- Batching wrapper for any sink
"""

from .base import FunctionSink, Sink, create_sink, record_to_json
from .batch import BatchingSink, BatchState
from .console import ConsoleSink
from .pubsub import PubSubClient, PubSubSink
from .stream import FileSink, JsonStreamSink
from .webhook import WebhookSink

__all__ = [
    "Sink",
    "FunctionSink",
    "create_sink",
    "record_to_json",
    "BatchingSink",
    "BatchState",
    "ConsoleSink",
    "JsonStreamSink",
    "FileSink",
    "WebhookSink",
    "PubSubClient",
    "PubSubSink",
]
