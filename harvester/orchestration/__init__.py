"""
Harvester - Orchestration

Job controller, batch scheduler, rate limiter, retry executor, error
classifier and progress events.
"""

from harvester.orchestration.controller import JobController
from harvester.orchestration.error_classifier import Classification, ErrorClassifier, error_classifier
from harvester.orchestration.events import (
    AttachmentDownloaded,
    BatchCompleted,
    BatchStarted,
    ExtractionCompleted,
    ExtractionError,
    ExtractionPaused,
    ExtractionProgress,
    ExtractionResumed,
    ExtractionStarted,
    ProgressEvent,
    ProgressEventBus,
)
from harvester.orchestration.models import (
    Batch,
    ErrorRecord,
    ExtractionJob,
    JobConfig,
    JobReport,
    JobSnapshot,
    ProcessedOutcome,
    RateLimitState,
)
from harvester.orchestration.rate_limiter import RateLimiter
from harvester.orchestration.retry import BackoffWait, RetryExecutor
from harvester.orchestration.scheduler import BatchScheduler, RunControl, ScheduleResult

__all__ = [
    "JobController",
    "Classification",
    "ErrorClassifier",
    "error_classifier",
    "ProgressEvent",
    "ProgressEventBus",
    "ExtractionStarted",
    "ExtractionProgress",
    "ExtractionPaused",
    "ExtractionResumed",
    "ExtractionCompleted",
    "ExtractionError",
    "BatchStarted",
    "BatchCompleted",
    "AttachmentDownloaded",
    "Batch",
    "ErrorRecord",
    "ExtractionJob",
    "JobConfig",
    "JobReport",
    "JobSnapshot",
    "ProcessedOutcome",
    "RateLimitState",
    "RateLimiter",
    "BackoffWait",
    "RetryExecutor",
    "BatchScheduler",
    "RunControl",
    "ScheduleResult",
]
