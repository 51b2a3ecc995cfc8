"""
Harvester - In-Memory Sink
"""

from harvester.scrapers.base import DetailRecord
from harvester.storage.base import BasePersistenceSink


class MemorySink(BasePersistenceSink):
    """Keeps records in a dict keyed by item id. Used by tests and dry runs."""

    def __init__(self) -> None:
        self.records: dict[str, DetailRecord] = {}

    async def save(self, record: DetailRecord) -> bool:
        is_new = record.item_id not in self.records
        self.records[record.item_id] = record
        return is_new

    def __len__(self) -> int:
        return len(self.records)
