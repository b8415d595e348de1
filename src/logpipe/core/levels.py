"""
Severity levels and level-based policies.
"""

import math
from enum import IntEnum
from typing import Optional, Union

from .exceptions import ConfigurationError


class LogLevel(IntEnum):
    """Record severities. Higher is more severe."""

    TRACE = 10
    DEBUG = 20
    INFO = 30
    WARN = 40
    ERROR = 50
    FATAL = 60


# Threshold-only sentinel, never a record level.
SILENT = math.inf

LevelLike = Union[str, int, float, LogLevel]

_ALIASES = {"warning": "WARN", "critical": "FATAL"}


def resolve_level(level: Optional[LevelLike], default: LevelLike = LogLevel.INFO) -> float:
    """
    Turn a level name or number into its numeric value.

    Names are case-insensitive; ``"silent"`` resolves to infinity.
    """
    if level is None:
        level = default
    if isinstance(level, bool):
        raise ConfigurationError(f"Invalid log level: {level!r}")
    if isinstance(level, (int, float)):
        return level
    name = str(level).strip()
    if name.lower() == "silent":
        return SILENT
    name = _ALIASES.get(name.lower(), name.upper())
    try:
        return LogLevel[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown log level: {level!r}",
            details={"allowed": [lvl.name for lvl in LogLevel] + ["SILENT"]},
        ) from None


def level_name(level: float) -> str:
    """Name for a numeric level; unknown values render as ``LEVEL<n>``."""
    if level == SILENT:
        return "SILENT"
    try:
        return LogLevel(int(level)).name
    except ValueError:
        return f"LEVEL{int(level)}"


def should_log(level: float, minimum: float) -> bool:
    return level >= minimum


def should_include_stack(policy: Union[bool, LevelLike], level: float) -> bool:
    """
    Decide whether an error's stack trace is kept on a record.

    ``True``/``False`` always/never include it; a level includes it for
    records at that level and above.
    """
    if isinstance(policy, bool):
        return policy
    return level >= resolve_level(policy)
