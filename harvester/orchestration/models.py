"""
Harvester - Orchestration Models

Job configuration, the mutable job record owned by the controller, and the
immutable snapshots and logs handed out to callers.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from harvester.scrapers.base import WorkItem
from harvester.shared.config import Settings
from harvester.shared.constants import CompletionReason, JobState


class JobConfig(BaseModel):
    """Immutable configuration supplied when a job starts."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    batch_size: int = Field(gt=0)
    concurrency: int = Field(gt=0)
    pause_between_batches_ms: int = Field(ge=0)
    max_items: int = Field(default=0, ge=0)  # 0 = unbounded
    requests_per_hour: int = Field(gt=0)
    cooldown_period_ms: int = Field(ge=0)
    cooldown_jitter_ms: int = Field(default=0, ge=0)
    max_retries: int = Field(ge=0)
    retry_base_delay_ms: int = Field(ge=0)
    per_call_timeout_ms: int = Field(gt=0)
    download_attachments: bool = False
    download_dir: str = "output/attachments"

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: Any) -> "JobConfig":
        """Build a job config from application settings, with per-job overrides."""
        values: dict[str, Any] = {
            "batch_size": settings.batch.batch_size,
            "concurrency": settings.batch.concurrency,
            "pause_between_batches_ms": settings.batch.pause_between_batches_ms,
            "max_items": settings.batch.max_items,
            "requests_per_hour": settings.rate_limit.requests_per_hour,
            "cooldown_period_ms": settings.rate_limit.cooldown_period_ms,
            "cooldown_jitter_ms": settings.rate_limit.cooldown_jitter_ms,
            "max_retries": settings.retry.max_retries,
            "retry_base_delay_ms": settings.retry.retry_base_delay_ms,
            "per_call_timeout_ms": settings.retry.per_call_timeout_ms,
            "download_attachments": settings.scraper.download_attachments,
            "download_dir": settings.scraper.download_dir,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    @property
    def pause_between_batches(self) -> float:
        return self.pause_between_batches_ms / 1000

    @property
    def retry_base_delay(self) -> float:
        return self.retry_base_delay_ms / 1000

    @property
    def per_call_timeout(self) -> float:
        return self.per_call_timeout_ms / 1000


@dataclass(frozen=True)
class Batch:
    """Ordered slice of work items; a scheduling grouping only."""

    index: int
    items: tuple[WorkItem, ...]

    def __len__(self) -> int:
        return len(self.items)


@dataclass(frozen=True)
class ErrorRecord:
    """A classified failure, kept for the audit trail of a job."""

    code: str
    message: str
    context: str
    recoverable: bool
    item_id: str | None = None
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "context": self.context,
            "recoverable": self.recoverable,
            "item_id": self.item_id,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class ProcessedOutcome:
    """Result of processing one work item."""

    item: WorkItem
    success: bool
    error: ErrorRecord | None = None
    attempts: int = 0
    is_new: bool | None = None
    attachment_path: str | None = None
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": self.item.id,
            "url": self.item.url,
            "label": self.item.label,
            "success": self.success,
            "attempts": self.attempts,
            "is_new": self.is_new,
            "attachment_path": self.attachment_path,
            "error_code": self.error.code if self.error else None,
            "error_message": self.error.message if self.error else None,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class RateLimitState:
    """Snapshot of the request budget."""

    request_count: int
    window_started_at: float
    last_request_at: float | None


@dataclass
class ExtractionJob:
    """
    The one active job of a controller.

    Mutated only by JobController; callers see JobSnapshot copies.
    """

    id: str
    config: JobConfig
    state: JobState = JobState.IDLE
    total_items: int = 0
    processed_count: int = 0
    succeeded_count: int = 0
    failed_count: int = 0
    current_batch_index: int = 0
    total_batches: int = 0
    completed_batches: int = 0
    failed_batches: int = 0  # batches where every processed item failed
    started_at: datetime | None = None
    paused_at: datetime | None = None
    completed_at: datetime | None = None
    completion_reason: CompletionReason | None = None
    errors: list[ErrorRecord] = field(default_factory=list)


@dataclass(frozen=True)
class JobSnapshot:
    """Immutable view of a job returned by JobController.get_state()."""

    job_id: str | None
    state: JobState
    config: JobConfig | None
    total_items: int
    processed_count: int
    succeeded_count: int
    failed_count: int
    current_batch_index: int
    total_batches: int
    completed_batches: int
    failed_batches: int
    started_at: datetime | None
    paused_at: datetime | None
    completed_at: datetime | None
    completion_reason: CompletionReason | None
    errors: tuple[ErrorRecord, ...]
    outcomes: tuple[ProcessedOutcome, ...]
    elapsed_ms: int
    eta_seconds: float | None

    @property
    def percentage(self) -> int:
        return percentage(self.processed_count, self.total_items)

    @property
    def estimated_time_remaining(self) -> float | str:
        return "unknown" if self.eta_seconds is None else self.eta_seconds

    def to_dict(self, include_outcomes: bool = False) -> dict[str, Any]:
        data = {
            "job_id": self.job_id,
            "state": str(self.state),
            "config": self.config.model_dump() if self.config else None,
            "total_items": self.total_items,
            "processed_count": self.processed_count,
            "succeeded_count": self.succeeded_count,
            "failed_count": self.failed_count,
            "percentage": self.percentage,
            "current_batch_index": self.current_batch_index,
            "total_batches": self.total_batches,
            "completed_batches": self.completed_batches,
            "failed_batches": self.failed_batches,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "paused_at": self.paused_at.isoformat() if self.paused_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "completion_reason": str(self.completion_reason) if self.completion_reason else None,
            "elapsed_ms": self.elapsed_ms,
            "estimated_time_remaining": self.estimated_time_remaining,
            "errors": [e.to_dict() for e in self.errors],
        }
        if include_outcomes:
            data["outcomes"] = [o.to_dict() for o in self.outcomes]
        return data


@dataclass(frozen=True)
class JobReport:
    """Audit report written by JobController.export_results()."""

    snapshot: JobSnapshot
    generated_at: datetime = field(default_factory=datetime.now)

    @property
    def success_rate(self) -> float:
        outcomes = self.snapshot.outcomes
        if not outcomes:
            return 0.0
        return sum(1 for o in outcomes if o.success) / len(outcomes) * 100

    @property
    def batch_stats(self) -> dict[str, int]:
        return {
            "total": self.snapshot.total_batches,
            "completed": self.snapshot.completed_batches,
            "failed": self.snapshot.failed_batches,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "generated_at": self.generated_at.isoformat(),
            "job": self.snapshot.to_dict(),
            "outcomes": [o.to_dict() for o in self.snapshot.outcomes],
            "errors": [e.to_dict() for e in self.snapshot.errors],
            "stats": {
                "success_rate": round(self.success_rate, 2),
                "total_time_ms": self.snapshot.elapsed_ms,
                "batch_stats": self.batch_stats,
            },
        }


def percentage(current: int, total: int) -> int:
    """Round half up, like the progress bars expect."""
    if total <= 0:
        return 0
    return int(math.floor(current / total * 100 + 0.5))
