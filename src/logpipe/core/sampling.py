"""
Sampling middleware: fixed-window rate limiting per key.

Windows are anchored to the first record seen after the previous window
for that key expired, not to wall-clock boundaries. Time comes from the
record's timestamp, so the limiter is deterministic under a fake clock.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Optional

import structlog

from ..models.record import LogRecord
from .chain import Proceed
from .exceptions import ConfigurationError

logger = structlog.get_logger(__name__)

KeyFunction = Callable[[LogRecord], str]

SWEEP_THRESHOLD = 10_000


@dataclass
class WindowBucket:
    """Counting state for one key."""
    count: int
    window_start: int


def message_key(record: LogRecord) -> str:
    return record.message


class RateLimiter:
    """
    Per-key fixed-window counter, usable directly as a middleware stage.

    At most ``max_per_window`` records per key are forwarded in each
    window; the rest are dropped.
    """

    name = "sampling"

    def __init__(
        self,
        key_fn: Optional[KeyFunction] = None,
        max_per_window: int = 100,
        window_ms: int = 60_000,
        sweep_threshold: int = SWEEP_THRESHOLD,
    ) -> None:
        if max_per_window < 1:
            raise ConfigurationError(
                "max_per_window must be at least 1",
                details={"max_per_window": max_per_window},
            )
        if window_ms <= 0:
            raise ConfigurationError(
                "window_ms must be positive",
                details={"window_ms": window_ms},
            )

        self.key_fn = key_fn or message_key
        self.max_per_window = max_per_window
        self.window_ms = window_ms
        self.sweep_threshold = sweep_threshold
        self.buckets: Dict[str, WindowBucket] = {}

    def admit(self, key: str, now: int) -> bool:
        """Count one observation of ``key`` at ``now``; True if it is within the limit."""
        bucket = self.buckets.get(key)
        if bucket is None or now - bucket.window_start >= self.window_ms:
            bucket = WindowBucket(count=0, window_start=now)
            self.buckets[key] = bucket

        bucket.count += 1
        admitted = bucket.count <= self.max_per_window

        if len(self.buckets) > self.sweep_threshold:
            self.sweep(now)

        return admitted

    def sweep(self, now: int) -> int:
        """Remove buckets whose window ended at least one full window before ``now``."""
        stale = [
            key for key, bucket in self.buckets.items()
            if now - bucket.window_start >= self.window_ms * 2
        ]
        for key in stale:
            del self.buckets[key]

        logger.debug(
            "Swept sampling buckets",
            removed=len(stale),
            remaining=len(self.buckets),
        )
        return len(stale)

    def __call__(self, record: LogRecord, proceed: Proceed) -> None:
        if self.admit(self.key_fn(record), record.timestamp):
            proceed(record)


def sampling_middleware(
    key_fn: Optional[KeyFunction] = None,
    max_per_window: int = 100,
    window_ms: int = 60_000,
) -> RateLimiter:
    """Create a sampling stage that drops records exceeding the per-key rate."""
    return RateLimiter(key_fn=key_fn, max_per_window=max_per_window, window_ms=window_ms)
