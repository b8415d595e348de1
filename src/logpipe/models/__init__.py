"""
Pydantic data models package.

Contains:
- Log record and error description
- Alert rule configuration
"""

from .record import LogError, LogRecord, new_record_id
from .rules import AlertRule

__all__ = [
    "LogError",
    "LogRecord",
    "new_record_id",
    "AlertRule",
]
