"""
Error Tracking Bounded Context

Persistent records of pipeline failures.
"""

from .entities import ErrorLog, derive_severity
from .repositories import ErrorLogRepository

__all__ = ["ErrorLog", "ErrorLogRepository", "derive_severity"]
