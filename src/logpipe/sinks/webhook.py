"""
Webhook sink for posting batches of records over HTTP.

Features:
- Buffers records and posts them as a JSON array
- Retry logic with backoff
- Raises WebhookError once retries are exhausted so the pipeline reports
  a delivery failure
"""

import asyncio
from typing import Any, Dict, List, Optional

import aiohttp
import structlog

from ..config import WebhookSettings
from ..core.exceptions import ConfigurationError, WebhookError
from ..core.levels import LevelLike
from ..models.record import LogRecord

logger = structlog.get_logger(__name__)


class WebhookSink:
    """
    Posts records to ``url`` in batches of ``batch_size``.

    ``deliver`` returns a coroutine only when a batch is full; the pipeline
    schedules it on the running loop, or runs it in place for sync callers.
    ``flush`` posts any partial batch. Without an injected ``session`` each
    post opens its own, bound to the loop the post runs on.
    """

    def __init__(
        self,
        url: str,
        name: str = "webhook",
        level: Optional[LevelLike] = None,
        batch_size: int = 50,
        headers: Optional[Dict[str, str]] = None,
        timeout_seconds: float = 30,
        max_retries: int = 3,
        backoff_seconds: Optional[List[float]] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        if not url:
            raise ConfigurationError("Webhook sink requires a url")
        if batch_size < 1:
            raise ConfigurationError(
                "batch_size must be at least 1",
                details={"batch_size": batch_size},
            )

        self.url = url
        self.name = name
        self.level = level
        self.batch_size = batch_size
        self.headers = {
            "Content-Type": "application/json",
            "User-Agent": "logpipe-webhook/0.1",
            **(headers or {}),
        }
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds or [1, 2, 4]
        self.session = session
        self._buffer: List[LogRecord] = []

        logger.info("Webhook sink initialized", sink=name, url=url, batch_size=batch_size)

    @classmethod
    def from_settings(cls, settings: WebhookSettings, **overrides: Any) -> "WebhookSink":
        options: Dict[str, Any] = {
            "url": settings.url,
            "batch_size": settings.batch_size,
            "headers": settings.headers,
            "timeout_seconds": settings.timeout_seconds,
            "max_retries": settings.max_retries,
            "backoff_seconds": settings.backoff_seconds,
        }
        options.update(overrides)
        return cls(**options)

    def deliver(self, record: LogRecord) -> Optional[Any]:
        self._buffer.append(record)
        if len(self._buffer) >= self.batch_size:
            batch, self._buffer = self._buffer, []
            return self._post(batch)
        return None

    async def flush(self) -> None:
        if not self._buffer:
            return
        batch, self._buffer = self._buffer, []
        await self._post(batch)

    async def close(self) -> None:
        """Post any partial batch. A session passed in is left open for its owner."""
        await self.flush()
        logger.info("Webhook sink closed", sink=self.name)

    async def _post(self, records: List[LogRecord]) -> None:
        """Post one batch, retrying with backoff."""
        if self.session is not None:
            await self._send(self.session, records)
            return

        # One session per post; it never outlives the loop the post runs on.
        async with aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout_seconds)
        ) as session:
            await self._send(session, records)

    async def _send(self, session: aiohttp.ClientSession, records: List[LogRecord]) -> None:
        payload = [record.to_dict() for record in records]
        last_error = "unknown error"

        for attempt in range(self.max_retries + 1):
            try:
                async with session.post(self.url, json=payload, headers=self.headers) as response:
                    if 200 <= response.status < 300:
                        logger.debug(
                            "Webhook batch delivered",
                            sink=self.name,
                            entries=len(records),
                            status=response.status,
                        )
                        return
                    error_text = await response.text()
                    last_error = f"HTTP {response.status}: {error_text}"

            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_error = str(e) or type(e).__name__

            logger.warning(
                "Webhook delivery attempt failed",
                sink=self.name,
                attempt=attempt + 1,
                max_retries=self.max_retries,
                error=last_error,
            )

            if attempt < self.max_retries:
                backoff = self.backoff_seconds[min(attempt, len(self.backoff_seconds) - 1)]
                await asyncio.sleep(backoff)

        raise WebhookError(
            f"Webhook delivery failed after {self.max_retries + 1} attempts",
            details={"sink": self.name, "entries": len(records), "error": last_error},
        )
