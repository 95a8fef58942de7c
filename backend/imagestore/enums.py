# backend/imagestore/enums.py
"""
Application Enums - Centralized enum definitions.

Kept apart from constants.py so models and constants can both import them
without circular dependencies.
"""

from enum import Enum


class LogLevel(str, Enum):
    """Log levels understood by the logging configuration."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class QueueStatus(str, Enum):
    """Admission state of the thumbnail scheduler."""

    OPEN = "open"
    PAUSED = "paused"


class JobOutcome(str, Enum):
    """Terminal outcome of a dispatched thumbnail job."""

    COMPLETED = "completed"
    PROCESSOR_FAILED = "processor_failed"
    PERSIST_FAILED = "persist_failed"
