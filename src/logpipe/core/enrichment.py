"""
Enrichment middleware.
"""

import json
from typing import Any, Optional

import structlog

from ..models.record import LogRecord
from .chain import Proceed, Stage

logger = structlog.get_logger(__name__)


def payload_size(meta: Any) -> Optional[int]:
    """Length of ``meta`` serialized as JSON, or None if it cannot be serialized."""
    try:
        return len(json.dumps(meta, default=str, ensure_ascii=False))
    except (TypeError, ValueError) as e:
        logger.debug("Payload size not computed", error=str(e))
        return None


def correlation_middleware(
    meta_key: str = "correlation_id",
    payload_size_key: Optional[str] = None,
) -> Stage:
    """
    Promote ``meta[meta_key]`` to ``record.correlation_id``.

    Records that already carry a correlation id keep it. With
    ``payload_size_key`` set, the JSON size of ``meta`` is stored under that
    key when the record does not already carry one.
    """

    def correlation(record: LogRecord, proceed: Proceed) -> None:
        if payload_size_key and payload_size_key not in record.meta:
            size = payload_size(record.meta)
            if size is not None:
                record = record.with_meta(**{payload_size_key: size})

        value = record.meta.get(meta_key)
        if value is not None and not record.correlation_id:
            record = record.model_copy(update={"correlation_id": str(value)})
        proceed(record)

    return correlation


def enrich_middleware(**fields: Any) -> Stage:
    """Add static fields to ``meta``; keys already present are left alone."""

    def enrich(record: LogRecord, proceed: Proceed) -> None:
        missing = {k: v for k, v in fields.items() if k not in record.meta}
        if missing:
            record = record.with_meta(**missing)
        proceed(record)

    return enrich
