"""
Harvester - Persistence Sink Interface

Where fetched detail records go. The engine only needs to know whether a
record was new; deduplication is the sink's business.
"""

from abc import ABC, abstractmethod

from harvester.scrapers.base import DetailRecord
from harvester.shared.logging import LoggerMixin


class BasePersistenceSink(ABC, LoggerMixin):
    """
    Abstract base class for record sinks.

    Subclasses must implement:
    - save(): Persist one record and report whether it was new
    """

    @abstractmethod
    async def save(self, record: DetailRecord) -> bool:
        """
        Persist a detail record.

        Args:
            record: Record returned by the scraper

        Returns:
            True if the record was not stored before

        Raises:
            StorageError: If the record could not be written
        """
        ...

    async def close(self) -> None:
        """Flush and release resources."""
