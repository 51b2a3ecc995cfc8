"""
Harvester - Shared Module

Common utilities, configurations, and constants used across all packages.
"""

from harvester.shared.config import Settings, get_settings, settings
from harvester.shared.constants import CompletionReason, ErrorCategory, EventName, JobState
from harvester.shared.exceptions import (
    AlreadyRunningError,
    HarvesterError,
    JobCancelledError,
    NoActiveJobError,
    NotPausedError,
    ScraperError,
    StorageError,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    "settings",
    # Constants
    "CompletionReason",
    "ErrorCategory",
    "EventName",
    "JobState",
    # Exceptions
    "HarvesterError",
    "ScraperError",
    "StorageError",
    "AlreadyRunningError",
    "NoActiveJobError",
    "NotPausedError",
    "JobCancelledError",
]
