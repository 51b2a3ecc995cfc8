"""
Harvester - JSON Lines Sink

Appends one JSON object per record. Item ids already present in the file
are loaded on first use so a continued job does not duplicate rows.
"""

import asyncio
import json
from pathlib import Path

from harvester.scrapers.base import DetailRecord
from harvester.shared.exceptions import StorageError
from harvester.storage.base import BasePersistenceSink


class JsonlSink(BasePersistenceSink):
    """
    Append-only JSON Lines file sink.

    Usage:
        sink = JsonlSink("output/records.jsonl")
        is_new = await sink.save(record)
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._seen: set[str] | None = None
        self._lock = asyncio.Lock()

    def _load_seen(self) -> set[str]:
        seen: set[str] = set()
        if not self.path.exists():
            return seen

        with open(self.path, encoding="utf-8") as f:
            for line_number, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    seen.add(str(json.loads(line)["item_id"]))
                except (ValueError, KeyError, TypeError):
                    self.logger.warning("Skipping malformed line", path=str(self.path), line=line_number)
        self.logger.debug("Loaded existing records", path=str(self.path), count=len(seen))
        return seen

    async def save(self, record: DetailRecord) -> bool:
        async with self._lock:
            if self._seen is None:
                self._seen = self._load_seen()

            if record.item_id in self._seen:
                return False

            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(json.dumps(record.to_dict(), ensure_ascii=False, default=str))
                    f.write("\n")
            except OSError as e:
                raise StorageError(
                    f"Failed to write record {record.item_id}: {e}",
                    details={"path": str(self.path)},
                ) from e

            self._seen.add(record.item_id)
            return True

    def __len__(self) -> int:
        if self._seen is None:
            self._seen = self._load_seen()
        return len(self._seen)
