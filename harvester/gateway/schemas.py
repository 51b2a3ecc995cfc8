"""
Harvester - API Request/Response Schemas

Pydantic models for API request validation and response serialization.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from harvester.shared.constants import ExportFormat, JobState


# -----------------------------------------------------------------------------
# Request Schemas
# -----------------------------------------------------------------------------


class StartJobRequest(BaseModel):
    """Request to start (or continue) an extraction job.

    Unset fields fall back to the configured defaults.
    """

    job_id: str = Field(..., description="Extraction target id", min_length=1, max_length=200)
    batch_size: int | None = Field(default=None, gt=0)
    concurrency: int | None = Field(default=None, gt=0)
    pause_between_batches_ms: int | None = Field(default=None, ge=0)
    max_items: int | None = Field(default=None, ge=0, description="0 = unbounded")
    requests_per_hour: int | None = Field(default=None, gt=0)
    cooldown_period_ms: int | None = Field(default=None, ge=0)
    cooldown_jitter_ms: int | None = Field(default=None, ge=0)
    max_retries: int | None = Field(default=None, ge=0)
    retry_base_delay_ms: int | None = Field(default=None, ge=0)
    per_call_timeout_ms: int | None = Field(default=None, gt=0)
    download_attachments: bool | None = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "job_id": "job-42",
                "batch_size": 5,
                "concurrency": 1,
                "requests_per_hour": 30,
                "max_items": 100,
            }
        }
    )

    def overrides(self) -> dict[str, Any]:
        return self.model_dump(exclude={"job_id"}, exclude_none=True)


class ExportRequest(BaseModel):
    """Request to export the current job's results."""

    filename: str | None = Field(default=None, description="Defaults to <job_id>.<format>")
    format: str | None = Field(default=None, description="json, csv or parquet; inferred from filename")


# -----------------------------------------------------------------------------
# Response Schemas
# -----------------------------------------------------------------------------


class ErrorRecordSchema(BaseModel):
    code: str
    message: str
    context: str
    recoverable: bool
    item_id: str | None = None
    timestamp: datetime


class JobStateResponse(BaseModel):
    """Snapshot of the current job."""

    job_id: str | None
    state: JobState
    total_items: int
    processed_count: int
    succeeded_count: int
    failed_count: int
    percentage: int = Field(ge=0, le=100, description="Progress percentage")
    current_batch_index: int
    total_batches: int
    completed_batches: int
    failed_batches: int
    started_at: datetime | None = None
    paused_at: datetime | None = None
    completed_at: datetime | None = None
    completion_reason: str | None = None
    elapsed_ms: int
    estimated_time_remaining: float | str
    config: dict[str, Any] | None = None
    errors: list[ErrorRecordSchema] = []


class ControlResponse(BaseModel):
    """Response to a pause/resume/stop/reset request."""

    message: str
    state: JobState


class ExportResponse(BaseModel):
    """Response after exporting results."""

    job_id: str | None
    path: str
    format: ExportFormat
    total_outcomes: int


class EventSchema(BaseModel):
    sequence: int
    event: str
    payload: dict[str, Any]


class EventsResponse(BaseModel):
    """Events published after the requested sequence number."""

    events: list[EventSchema]
    last_sequence: int


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    uptime_seconds: float
    job_state: JobState


class ErrorResponse(BaseModel):
    """Error response."""

    error: str
    message: str
    details: dict[str, Any] = {}
