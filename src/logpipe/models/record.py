"""
Log record data models.

A ``LogRecord`` is the unit flowing through the pipeline. It is frozen:
stages that need to change a record build a copy with ``model_copy``.
"""

import traceback
import uuid
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..core.levels import level_name


def new_record_id() -> str:
    """Process-unique record identifier."""
    return uuid.uuid4().hex


class LogError(BaseModel):
    """Structured description of an error attached to a record."""

    message: str = Field(description="Error message")
    name: Optional[str] = Field(default=None, description="Exception class name")
    code: Optional[str] = Field(default=None, description="Application or OS error code")
    stack: Optional[str] = Field(default=None, description="Formatted stack trace")

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_exception(cls, exc: BaseException, include_stack: bool = True) -> "LogError":
        code = getattr(exc, "code", None)
        if code is None:
            code = getattr(exc, "errno", None)
        if code is None:
            code = getattr(exc, "error_code", None)

        stack = None
        if include_stack:
            stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))

        return cls(
            message=str(exc),
            name=type(exc).__name__,
            code=str(code) if code is not None else None,
            stack=stack,
        )


class LogRecord(BaseModel):
    """
    A single log event.

    ``meta`` is the per-call payload; ``bound_context`` is the snapshot of
    the emitting scope's bindings. They are kept apart so leaf metadata can
    never overwrite scope bindings.
    """

    id: str = Field(default_factory=new_record_id, description="Process-unique identifier")
    level: int = Field(description="Numeric severity")
    message: str = Field(description="Log message")
    timestamp: int = Field(description="Event time in epoch milliseconds")
    meta: Dict[str, Any] = Field(default_factory=dict, description="Per-call metadata")
    bound_context: Dict[str, Any] = Field(
        default_factory=dict,
        description="Bindings inherited from the emitting scope",
    )
    correlation_id: Optional[str] = Field(default=None, description="Cross-event correlation id")
    error: Optional[LogError] = Field(default=None, description="Attached error")

    model_config = ConfigDict(frozen=True)

    @property
    def level_name(self) -> str:
        return level_name(self.level)

    def with_meta(self, **updates: Any) -> "LogRecord":
        """Copy of the record with ``updates`` merged into ``meta``."""
        return self.model_copy(update={"meta": {**self.meta, **updates}})

    def to_dict(self) -> Dict[str, Any]:
        """Plain-dict form used by the serialising sinks."""
        data = self.model_dump(exclude_none=True)
        data["level_name"] = self.level_name
        if not data["bound_context"]:
            del data["bound_context"]
        return data
