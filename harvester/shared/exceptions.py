"""
Harvester - Custom Exceptions

Defines the exception hierarchy for the application.
All exceptions inherit from HarvesterError for unified error handling.
"""

from typing import Any

from harvester.shared.constants import ErrorCategory


class HarvesterError(Exception):
    """Base exception for all harvester errors."""

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


# -----------------------------------------------------------------------------
# Scraper Exceptions
# -----------------------------------------------------------------------------


class ScraperError(HarvesterError):
    """
    Base exception for failures raised by a Scraper.

    Subclasses pin an ErrorCategory so the classifier does not have to guess
    from the message text.
    """

    category: ErrorCategory = ErrorCategory.GENERAL


class AuthenticationError(ScraperError):
    """Raised when login fails or the session is no longer authenticated."""

    category = ErrorCategory.AUTH


class SecurityCheckError(ScraperError):
    """Raised when the source presents a captcha or verification challenge."""

    category = ErrorCategory.SECURITY_CHECK


class NavigationError(ScraperError):
    """Raised when a page or endpoint cannot be reached or loaded."""

    category = ErrorCategory.NAVIGATION


class ScraperTimeoutError(ScraperError):
    """Raised when a scraper call exceeds its time budget."""

    category = ErrorCategory.TIMEOUT


class RateLimitError(ScraperError):
    """Raised when the source reports that too many requests were made."""

    category = ErrorCategory.RATE_LIMIT

    def __init__(self, source: str, retry_after: int | None = None, **kwargs: Any) -> None:
        super().__init__(
            f"Rate limit exceeded for {source}",
            details={"source": source, "retry_after": retry_after},
            **kwargs,
        )
        self.source = source
        self.retry_after = retry_after


class DownloadError(ScraperError):
    """Raised when an attachment download fails."""

    category = ErrorCategory.DOWNLOAD


class ParsingError(ScraperError):
    """Raised when a response cannot be parsed into a record."""

    category = ErrorCategory.PARSING


# -----------------------------------------------------------------------------
# Storage Exceptions
# -----------------------------------------------------------------------------


class StorageError(HarvesterError):
    """Base exception for persistence errors."""


# -----------------------------------------------------------------------------
# Export Exceptions
# -----------------------------------------------------------------------------


class ExportError(HarvesterError):
    """Base exception for export-related errors."""


class UnsupportedFormatError(ExportError):
    """Raised when an unsupported export format is requested."""

    def __init__(self, format: str, supported: list[str], **kwargs: Any) -> None:
        super().__init__(
            f"Unsupported format: {format}. Supported: {', '.join(supported)}",
            details={"format": format, "supported": supported},
            **kwargs,
        )


# -----------------------------------------------------------------------------
# Orchestration Exceptions
# -----------------------------------------------------------------------------


class OrchestrationError(HarvesterError):
    """Base exception for job orchestration errors."""


class AlreadyRunningError(OrchestrationError):
    """Raised when a job is started while another one is active."""

    def __init__(self, job_id: str, state: str, **kwargs: Any) -> None:
        super().__init__(
            f"Job {job_id} is already {state}",
            details={"job_id": job_id, "state": state},
            **kwargs,
        )


class NoActiveJobError(OrchestrationError):
    """Raised when a control request needs a running job and there is none."""


class NotPausedError(OrchestrationError):
    """Raised when resume is requested for a job that is not paused."""


class JobCancelledError(OrchestrationError):
    """Raised at a checkpoint once a stop has been requested."""


class JobSetupError(OrchestrationError):
    """Raised when session setup or item listing fails and the job cannot run."""

    def __init__(self, message: str, *, category: ErrorCategory, **kwargs: Any) -> None:
        super().__init__(message, details={"category": str(category)}, **kwargs)
        self.category = category
