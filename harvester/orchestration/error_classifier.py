"""
Harvester - Error Classifier

Maps raw failures into the error taxonomy and decides recoverability.

The external source has no structured error surface, so classification is
heuristic. Priority:
1. Category pinned by a typed ScraperError
2. Timeout exception types
3. Keyword matching over the message (security check first)
4. GENERAL fallback, which is recoverable
"""

import asyncio
import re
from dataclasses import dataclass

from harvester.orchestration.models import ErrorRecord
from harvester.shared.constants import ErrorCategory
from harvester.shared.exceptions import JobSetupError, ScraperError


@dataclass(frozen=True)
class Classification:
    category: ErrorCategory
    recoverable: bool

    @property
    def code(self) -> str:
        return self.category.value


class ErrorClassifier:
    """
    Pure classifier; safe to share across jobs.

    Keyword groups are checked in order. Security challenges come first so
    that "verification required, please log in" never looks like a plain
    auth failure that some caller might retry.
    """

    SECURITY_CHECK_KEYWORDS = [
        r"captcha",
        r"security (check|challenge|verification)",
        r"verify (you are|that you.re) (a )?human",
        r"(complete|solve) (the|this) (challenge|puzzle)",
        r"identity verification required",
        r"unusual activity",
    ]

    AUTH_KEYWORDS = [
        r"\bauth(entication|enticate[ds]?|ori[sz]ation)?\b",
        r"\blog ?in\b",
        r"\bsign[- ]?in\b",
        r"unauthori[sz]ed",
        r"credential",
        r"session (expired|invalid)",
        r"access denied",
    ]

    TIMEOUT_KEYWORDS = [
        r"timeout",
        r"timed out",
    ]

    RATE_LIMIT_KEYWORDS = [
        r"rate[- ]?limit",
        r"too many requests",
        r"\b429\b",
        r"throttl",
        r"\blimit\b",
    ]

    NAVIGATION_KEYWORDS = [
        r"navigat",
        r"\bpage\b",
        r"\bload",
        r"net::err",
        r"redirect",
        r"connection",
    ]

    DOWNLOAD_KEYWORDS = [
        r"download",
        r"\bfile\b",
    ]

    PARSING_KEYWORDS = [
        r"pars(e|ing)",
        r"extract",
        r"selector",
        r"unexpected (format|structure)",
    ]

    def __init__(self) -> None:
        self._rules: list[tuple[ErrorCategory, re.Pattern[str]]] = [
            (ErrorCategory.SECURITY_CHECK, self._compile(self.SECURITY_CHECK_KEYWORDS)),
            (ErrorCategory.AUTH, self._compile(self.AUTH_KEYWORDS)),
            (ErrorCategory.TIMEOUT, self._compile(self.TIMEOUT_KEYWORDS)),
            (ErrorCategory.RATE_LIMIT, self._compile(self.RATE_LIMIT_KEYWORDS)),
            (ErrorCategory.NAVIGATION, self._compile(self.NAVIGATION_KEYWORDS)),
            (ErrorCategory.DOWNLOAD, self._compile(self.DOWNLOAD_KEYWORDS)),
            (ErrorCategory.PARSING, self._compile(self.PARSING_KEYWORDS)),
        ]

    @staticmethod
    def _compile(patterns: list[str]) -> re.Pattern[str]:
        return re.compile("|".join(f"(?:{p})" for p in patterns), re.IGNORECASE)

    def classify(self, error: BaseException | str | None) -> Classification:
        """
        Classify an exception or a bare error message.

        Args:
            error: The failure to classify

        Returns:
            Category and recoverability
        """
        category = self.categorize(error)
        return Classification(category=category, recoverable=category.recoverable)

    def categorize(self, error: BaseException | str | None) -> ErrorCategory:
        if error is None:
            return ErrorCategory.GENERAL

        if isinstance(error, ScraperError):
            if error.category is not ErrorCategory.GENERAL:
                return error.category
        elif isinstance(error, JobSetupError):
            return error.category
        elif isinstance(error, (asyncio.TimeoutError, TimeoutError)):
            return ErrorCategory.TIMEOUT

        message = error if isinstance(error, str) else self._describe(error)
        for category, pattern in self._rules:
            if pattern.search(message):
                return category

        return ErrorCategory.GENERAL

    def is_recoverable(self, error: BaseException) -> bool:
        return self.classify(error).recoverable

    def to_record(
        self,
        error: BaseException,
        context: str,
        *,
        item_id: str | None = None,
        category: ErrorCategory | None = None,
    ) -> ErrorRecord:
        """Build an ErrorRecord; an explicit category overrides classification."""
        category = category or self.categorize(error)
        return ErrorRecord(
            code=category.value,
            message=self._describe(error),
            context=context,
            recoverable=category.recoverable,
            item_id=item_id,
        )

    @staticmethod
    def _describe(error: BaseException) -> str:
        return str(error) or error.__class__.__name__


# Global classifier instance
error_classifier = ErrorClassifier()
