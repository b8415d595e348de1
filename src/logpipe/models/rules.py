"""
Alert rule configuration model.
"""

from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..core.exceptions import ConfigurationError
from .record import LogRecord


class AlertRule(BaseModel):
    """
    Threshold alert definition.

    ``window_ms`` of ``None`` accumulates matches without time decay.
    ``on_alert`` receives the accumulated records and may be a coroutine
    function.
    """

    name: str = Field(min_length=1, description="Rule identifier")
    when: Callable[[LogRecord], bool] = Field(description="Match predicate")
    on_alert: Callable[..., Any] = Field(description="Callback fired with the matched records")
    threshold: int = Field(default=1, description="Matches required to fire")
    window_ms: Optional[int] = Field(default=None, description="Accumulation window")
    cooldown_ms: int = Field(default=0, description="Minimum time between fires")

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    @model_validator(mode="after")
    def validate_limits(self) -> "AlertRule":
        if self.threshold < 1:
            raise ConfigurationError(
                f"Alert rule '{self.name}' threshold must be at least 1",
                details={"rule": self.name, "threshold": self.threshold},
            )
        if self.window_ms is not None and self.window_ms <= 0:
            raise ConfigurationError(
                f"Alert rule '{self.name}' window_ms must be positive",
                details={"rule": self.name, "window_ms": self.window_ms},
            )
        if self.cooldown_ms < 0:
            raise ConfigurationError(
                f"Alert rule '{self.name}' cooldown_ms cannot be negative",
                details={"rule": self.name, "cooldown_ms": self.cooldown_ms},
            )
        return self
