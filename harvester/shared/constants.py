"""
Harvester - Constants and Enumerations

Defines all constants, enums, and type definitions used across the application.
"""

from enum import Enum


class JobState(str, Enum):
    """Lifecycle states of an extraction job."""

    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPING = "stopping"
    COMPLETED = "completed"
    FAILED = "failed"
    STOPPED = "stopped"

    @property
    def is_active(self) -> bool:
        return self in (JobState.RUNNING, JobState.PAUSED, JobState.STOPPING)

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED, JobState.STOPPED)

    def __str__(self) -> str:
        return self.value


class ErrorCategory(str, Enum):
    """Error taxonomy shared by the classifier, the retry executor and events."""

    AUTH = "AUTH_ERROR"
    NAVIGATION = "NAVIGATION_ERROR"
    TIMEOUT = "TIMEOUT_ERROR"
    RATE_LIMIT = "RATE_LIMIT_ERROR"
    SECURITY_CHECK = "SECURITY_CHECK_ERROR"
    DOWNLOAD = "DOWNLOAD_ERROR"
    PARSING = "PARSING_ERROR"
    GENERAL = "GENERAL_ERROR"

    @property
    def recoverable(self) -> bool:
        # Auth failures and security challenges need a human.
        return self not in (ErrorCategory.AUTH, ErrorCategory.SECURITY_CHECK)

    def __str__(self) -> str:
        return self.value


class EventName(str, Enum):
    """Fixed vocabulary of progress events delivered to subscribers."""

    EXTRACTION_STARTED = "extraction-started"
    EXTRACTION_PROGRESS = "extraction-progress"
    EXTRACTION_PAUSED = "extraction-paused"
    EXTRACTION_RESUMED = "extraction-resumed"
    EXTRACTION_COMPLETED = "extraction-completed"
    EXTRACTION_ERROR = "extraction-error"
    BATCH_STARTED = "batch-started"
    BATCH_COMPLETED = "batch-completed"
    ATTACHMENT_DOWNLOADED = "attachment-downloaded"

    def __str__(self) -> str:
        return self.value


class CompletionReason(str, Enum):
    """Why a job reached its end."""

    COMPLETED = "completed"
    MAX_REACHED = "max_reached"
    STOPPED = "stopped"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value


class ExportFormat(str, Enum):
    """Supported report export formats."""

    JSON = "json"
    CSV = "csv"
    PARQUET = "parquet"

    def __str__(self) -> str:
        return self.value


# -----------------------------------------------------------------------------
# Batch Defaults
# -----------------------------------------------------------------------------
DEFAULT_BATCH_SIZE = 5
DEFAULT_CONCURRENCY = 1
DEFAULT_PAUSE_BETWEEN_BATCHES_MS = 3000

# -----------------------------------------------------------------------------
# Rate Limit Defaults
# -----------------------------------------------------------------------------
DEFAULT_REQUESTS_PER_HOUR = 30
DEFAULT_COOLDOWN_PERIOD_MS = 10_000
DEFAULT_COOLDOWN_JITTER_MS = 2000
RATE_WINDOW_SECONDS = 3600.0

# -----------------------------------------------------------------------------
# Retry Configuration
# -----------------------------------------------------------------------------
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BASE_DELAY_MS = 5000
DEFAULT_PER_CALL_TIMEOUT_MS = 30_000
RETRY_BACKOFF_FACTOR = 1.5
RETRY_JITTER_RANGE = (0.9, 1.1)

# -----------------------------------------------------------------------------
# Events
# -----------------------------------------------------------------------------
EVENT_HISTORY_SIZE = 1000
PAUSE_REASON_USER = "user_requested"

# -----------------------------------------------------------------------------
# HTTP Headers
# -----------------------------------------------------------------------------
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
