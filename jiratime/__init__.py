"""Track work time against Jira tickets and submit it as worklogs."""

from .config import AppSettings
from .duration import WorklogDuration, format_duration, format_live_duration, parse_duration
from .errors import (
    ConfigError,
    DiscardConfirmed,
    JiraApiError,
    JiraTimeError,
    PermissionCheckFailed,
    PermissionDenied,
    SessionBusy,
    SubmissionFailed,
    ValidationFailed,
)
from .session import TimerSession
from .storage import ActiveTimer, FileTimerStore, MemoryTimerStore, TimerStore

__version__ = "1.0.0"

__all__ = [
    "ActiveTimer",
    "AppSettings",
    "ConfigError",
    "DiscardConfirmed",
    "FileTimerStore",
    "JiraApiError",
    "JiraTimeError",
    "MemoryTimerStore",
    "PermissionCheckFailed",
    "PermissionDenied",
    "SessionBusy",
    "SubmissionFailed",
    "TimerSession",
    "TimerStore",
    "ValidationFailed",
    "WorklogDuration",
    "format_duration",
    "format_live_duration",
    "parse_duration",
]
