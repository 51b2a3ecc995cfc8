"""
Shared fixtures and fakes for the unit tests.
"""

import asyncio
from pathlib import Path
from typing import Callable

import pytest

from harvester.orchestration import JobConfig
from harvester.scrapers.base import AttachmentResult, BaseScraper, DetailRecord, WorkItem


class FakeClock:
    """Monotonic clock whose sleep() advances time instantly."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeScraper(BaseScraper):
    """In-memory scraper that records every call made against it."""

    name = "fake"

    def __init__(
        self,
        items: list[WorkItem],
        *,
        failures: dict[str, Callable[[], Exception]] | None = None,
        logged_in: bool = True,
        list_error: Exception | None = None,
    ) -> None:
        self.items = items
        self.failures = failures or {}
        self.logged_in = logged_in
        self.list_error = list_error
        self.fetch_calls: list[str] = []
        self.list_calls = 0
        self.login_calls = 0
        self.closed = False

    async def login(self) -> None:
        self.login_calls += 1
        self.logged_in = True

    async def ensure_logged_in(self) -> bool:
        return self.logged_in

    async def list_work_items(self, source_id: str) -> list[WorkItem]:
        self.list_calls += 1
        if self.list_error is not None:
            raise self.list_error
        return list(self.items)

    async def fetch_detail(self, item: WorkItem) -> DetailRecord:
        self.fetch_calls.append(item.id)
        await asyncio.sleep(0)
        if item.id in self.failures:
            raise self.failures[item.id]()
        return DetailRecord(item_id=item.id, url=item.url, data={"title": f"Record {item.id}"})

    async def download_attachment(self, item: WorkItem, dest_path: str | Path) -> AttachmentResult:
        dest = Path(dest_path)
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(b"attachment")
        return AttachmentResult(item_id=item.id, path=str(dest), size_bytes=10, success=True)

    async def close(self) -> None:
        self.closed = True


def make_items(count: int) -> list[WorkItem]:
    return [
        WorkItem(id=str(n), url=f"https://source.test/items/{n}", label=f"Item {n}")
        for n in range(1, count + 1)
    ]


def make_config(**overrides) -> JobConfig:
    values = {
        "batch_size": 3,
        "concurrency": 1,
        "pause_between_batches_ms": 0,
        "requests_per_hour": 1000,
        "cooldown_period_ms": 0,
        "max_retries": 2,
        "retry_base_delay_ms": 0,
        "per_call_timeout_ms": 5000,
    }
    values.update(overrides)
    return JobConfig(**values)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    return make_config()
