"""
Harvester - Abstract Base Scraper

Defines the narrow interface the orchestration engine consumes, plus the
standardized records that flow between a scraper and the engine. Everything
site-specific (navigation, selectors, sessions) lives behind this interface.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from harvester.shared.logging import LoggerMixin


@dataclass(frozen=True)
class WorkItem:
    """Reference to one external record, produced by the listing call."""

    id: str
    url: str | None = None
    label: str | None = None  # Human readable name used in progress events
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def display_name(self) -> str:
        return self.label or self.id

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "label": self.label,
            "metadata": dict(self.metadata),
        }


@dataclass
class DetailRecord:
    """Full detail fetched for a single work item."""

    item_id: str
    url: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    fetched_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "url": self.url,
            "data": self.data,
            "fetched_at": self.fetched_at.isoformat(),
        }


@dataclass(frozen=True)
class AttachmentResult:
    """Outcome of an attachment download for a work item."""

    item_id: str
    path: str | None = None
    size_bytes: int = 0
    success: bool = True


class BaseScraper(ABC, LoggerMixin):
    """
    Abstract base class for all source scrapers.

    A scraper owns exactly one session with the external source (one
    authenticated client or browser context). The engine never shares it
    across concurrent calls beyond what the implementation allows.

    Implementations raise the typed errors in harvester.shared.exceptions
    (AuthenticationError, SecurityCheckError, ...) so failures classify
    without relying on message text.
    """

    name: str = "base"

    @abstractmethod
    async def login(self) -> None:
        """Authenticate with the source."""
        ...

    @abstractmethod
    async def ensure_logged_in(self) -> bool:
        """
        Check the session.

        Returns:
            True if the session is authenticated, False if login() is needed
        """
        ...

    @abstractmethod
    async def list_work_items(self, source_id: str) -> list[WorkItem]:
        """
        List every work item for an extraction target.

        Implementations paginate internally and return the full list.

        Args:
            source_id: Identifier of the extraction target

        Returns:
            Ordered list of work items
        """
        ...

    @abstractmethod
    async def fetch_detail(self, item: WorkItem) -> DetailRecord:
        """Fetch the full record for a work item."""
        ...

    async def download_attachment(self, item: WorkItem, dest_path: str | Path) -> AttachmentResult:
        """
        Download the attachment of a work item, if the source has one.

        Optional: the default reports that nothing was downloaded.
        """
        return AttachmentResult(item_id=item.id, path=None, size_bytes=0, success=False)

    async def close(self) -> None:
        """Release the session."""

    async def __aenter__(self) -> "BaseScraper":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
