"""
Harvester - Job Controller

Owns the extraction job state machine and drives one background task per
job:

    idle --start--> running --pause--> paused --resume--> running
    running|paused --stop--> stopping --> stopped
    running --> completed | failed

Pause and stop are requests; they take effect at the scheduler's next
checkpoint. Callers observe progress through subscribe() or get_state().
"""

import asyncio
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Awaitable, Callable

from harvester.orchestration.error_classifier import ErrorClassifier, error_classifier
from harvester.orchestration.events import (
    AttachmentDownloaded,
    ExtractionCompleted,
    ExtractionError,
    ExtractionPaused,
    ExtractionProgress,
    ExtractionResumed,
    ExtractionStarted,
    Handler,
    ProgressEventBus,
)
from harvester.orchestration.models import (
    Batch,
    ErrorRecord,
    ExtractionJob,
    JobConfig,
    JobReport,
    JobSnapshot,
    ProcessedOutcome,
    percentage,
)
from harvester.orchestration.rate_limiter import RateLimiter
from harvester.orchestration.retry import RetryExecutor
from harvester.orchestration.scheduler import BatchScheduler, RunControl
from harvester.scrapers.base import BaseScraper, WorkItem
from harvester.shared.constants import (
    PAUSE_REASON_USER,
    CompletionReason,
    ErrorCategory,
    EventName,
    ExportFormat,
    JobState,
)
from harvester.shared.exceptions import (
    AlreadyRunningError,
    JobCancelledError,
    JobSetupError,
    NoActiveJobError,
    NotPausedError,
)
from harvester.shared.logging import LoggerMixin, bind_job_context
from harvester.storage.base import BasePersistenceSink

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]


class JobController(LoggerMixin):
    """
    Control surface for extraction jobs.

    Usage:
        controller = JobController(scraper, sink)
        controller.subscribe("extraction-progress", on_progress)
        await controller.start("job-42", config)
        ...
        await controller.pause()
        await controller.resume()
        snapshot = await controller.wait()
        controller.export_results("output/job-42.json")

    One job is active at a time. All transitions go through an asyncio.Lock;
    events are published outside it so handlers may call back into the
    controller.
    """

    def __init__(
        self,
        scraper: BaseScraper,
        sink: BasePersistenceSink,
        *,
        events: ProgressEventBus | None = None,
        rate_limiter: RateLimiter | None = None,
        classifier: ErrorClassifier | None = None,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.scraper = scraper
        self.sink = sink
        self.events = events or ProgressEventBus()
        self.classifier = classifier or error_classifier
        self._rate_limiter = rate_limiter
        self._clock = clock
        self._sleep = sleep

        self._lock = asyncio.Lock()
        self._job: ExtractionJob | None = None
        self._control: RunControl | None = None
        self._retry: RetryExecutor | None = None
        self._task: asyncio.Task[None] | None = None
        self._outcomes: list[ProcessedOutcome] = []
        self._succeeded: set[str] = set()

        # Monotonic bookkeeping for elapsed time and ETA
        self._started_mono: float | None = None
        self._finished_mono: float | None = None
        self._paused_mono: float | None = None
        self._paused_total = 0.0
        self._run_processed = 0

    # ------------------------------------------------------------------
    # Public control surface
    # ------------------------------------------------------------------

    @property
    def state(self) -> JobState:
        return self._job.state if self._job else JobState.IDLE

    @property
    def rate_limiter(self) -> RateLimiter | None:
        return self._rate_limiter

    def subscribe(self, event_name: EventName | str, handler: Handler) -> Callable[[], None]:
        """Subscribe to progress events; returns an unsubscribe callable."""
        return self.events.subscribe(event_name, handler)

    async def start(self, job_id: str, config: JobConfig | dict[str, Any]) -> JobSnapshot:
        """
        Start a job in the background and return immediately.

        A paused job with the same id is resumed instead. A stopped or failed
        job with the same id continues where it left off: the item list is
        fetched again and items that already succeeded are skipped.

        Raises:
            AlreadyRunningError: If another job (or this one) is active
        """
        if not isinstance(config, JobConfig):
            config = JobConfig.model_validate(config)

        delegate_to_resume = False
        async with self._lock:
            job = self._job
            if job is not None and job.state.is_active:
                if job.state is JobState.PAUSED and job.id == job_id:
                    delegate_to_resume = True
                else:
                    raise AlreadyRunningError(job.id, str(job.state))
            else:
                carry_over = (
                    job is not None
                    and job.id == job_id
                    and job.state in (JobState.STOPPED, JobState.FAILED)
                )
                self._prepare_job(job_id, config, carry_over=carry_over)
                self._task = asyncio.create_task(
                    self._run(carry_over=carry_over),
                    name=f"extraction-{job_id}",
                )
                self.logger.info(
                    "Job started",
                    job_id=job_id,
                    continuing=carry_over,
                    batch_size=config.batch_size,
                    concurrency=config.concurrency,
                )

        if delegate_to_resume:
            self.logger.info("Start requested for paused job, resuming", job_id=job_id)
            await self.resume()

        return self.get_state()

    async def pause(self) -> None:
        """
        Request a pause; it takes effect at the next checkpoint.

        Raises:
            NoActiveJobError: If no job is running
        """
        async with self._lock:
            if self._job is None or self._job.state is not JobState.RUNNING:
                raise NoActiveJobError(f"No running job to pause (state: {self.state})")
            assert self._control is not None
            self._control.request_pause()
            self.logger.info("Pause requested", job_id=self._job.id)

    async def resume(self) -> None:
        """
        Resume a paused job.

        A pause that was requested but not yet reached is simply cancelled.

        Raises:
            NotPausedError: If the job is not paused
        """
        async with self._lock:
            job = self._job
            if job is None:
                raise NotPausedError("No job to resume")
            assert self._control is not None

            if job.state is JobState.RUNNING and self._control.pause_requested:
                self._control.release()
                self.logger.info("Pending pause cancelled", job_id=job.id)
                return

            if job.state is not JobState.PAUSED:
                raise NotPausedError(f"Job {job.id} is {job.state}, not paused")

            job.state = JobState.RUNNING
            job.paused_at = None
            self._close_pause_interval()
            self._control.release()
            event = ExtractionResumed(
                current=job.processed_count,
                total=job.total_items,
                percentage=percentage(job.processed_count, job.total_items),
            )

        self.logger.info("Job resumed", job_id=job.id, current=event.current, total=event.total)
        await self.events.publish(event)

    async def stop(self) -> None:
        """
        Request a stop; the job ends at the next checkpoint with partial results.

        Raises:
            NoActiveJobError: If no job is running or paused
        """
        async with self._lock:
            job = self._job
            if job is None or job.state not in (JobState.RUNNING, JobState.PAUSED):
                raise NoActiveJobError(f"No active job to stop (state: {self.state})")
            assert self._control is not None
            if job.state is JobState.PAUSED:
                self._close_pause_interval()
            job.state = JobState.STOPPING
            self._control.request_stop()
            self.logger.info("Stop requested", job_id=job.id)

    async def reset(self) -> None:
        """
        Acknowledge a finished job and return to idle.

        Raises:
            AlreadyRunningError: If the job is still active
        """
        async with self._lock:
            if self._job is not None and self._job.state.is_active:
                raise AlreadyRunningError(self._job.id, str(self._job.state))
            self._job = None
            self._control = None
            self._task = None
            self._outcomes = []
            self._succeeded = set()
            self._started_mono = self._finished_mono = self._paused_mono = None
            self._paused_total = 0.0
            self._run_processed = 0

    async def wait(self) -> JobSnapshot:
        """Wait for the background task of the current job to finish."""
        if self._task is not None:
            await asyncio.shield(self._task)
        return self.get_state()

    async def shutdown(self) -> None:
        """Stop an active job, wait for it, and release the scraper session."""
        if self.state in (JobState.RUNNING, JobState.PAUSED):
            await self.stop()
        if self._task is not None:
            await self.wait()
        await self.scraper.close()

    def get_state(self) -> JobSnapshot:
        """Return an immutable snapshot of the current job."""
        job = self._job
        if job is None:
            return JobSnapshot(
                job_id=None,
                state=JobState.IDLE,
                config=None,
                total_items=0,
                processed_count=0,
                succeeded_count=0,
                failed_count=0,
                current_batch_index=0,
                total_batches=0,
                completed_batches=0,
                failed_batches=0,
                started_at=None,
                paused_at=None,
                completed_at=None,
                completion_reason=None,
                errors=(),
                outcomes=(),
                elapsed_ms=0,
                eta_seconds=None,
            )

        elapsed = self._active_seconds()
        eta = None
        if self._run_processed > 0:
            remaining = max(job.total_items - job.processed_count, 0)
            eta = round(elapsed / self._run_processed * remaining, 1)

        return JobSnapshot(
            job_id=job.id,
            state=job.state,
            config=job.config,
            total_items=job.total_items,
            processed_count=job.processed_count,
            succeeded_count=job.succeeded_count,
            failed_count=job.failed_count,
            current_batch_index=job.current_batch_index,
            total_batches=job.total_batches,
            completed_batches=job.completed_batches,
            failed_batches=job.failed_batches,
            started_at=job.started_at,
            paused_at=job.paused_at,
            completed_at=job.completed_at,
            completion_reason=job.completion_reason,
            errors=tuple(job.errors),
            outcomes=tuple(self._outcomes),
            elapsed_ms=int(elapsed * 1000),
            eta_seconds=eta,
        )

    def export_results(self, path: str | Path, format: ExportFormat | str | None = None) -> Path:
        """
        Write outcomes, errors and timing stats to a file for audit.

        The format follows the file suffix (.json, .csv, .parquet) unless
        given explicitly.
        """
        # Imported here: the export package depends on orchestration models
        from harvester.export import ExportManager

        path = Path(path)
        report = JobReport(snapshot=self.get_state())
        manager = ExportManager(output_dir=path.parent)
        written = manager.export(report, path.name, format)
        self.logger.info("Results exported", path=str(written), outcomes=len(report.snapshot.outcomes))
        return written

    # ------------------------------------------------------------------
    # Background task
    # ------------------------------------------------------------------

    def _prepare_job(self, job_id: str, config: JobConfig, *, carry_over: bool) -> None:
        errors: list[ErrorRecord] = []
        if carry_over and self._job is not None:
            errors = self._job.errors
        else:
            self._outcomes = []
            self._succeeded = set()

        self._job = ExtractionJob(
            id=job_id,
            config=config,
            state=JobState.RUNNING,
            started_at=datetime.now(),
            errors=errors,
        )
        self._control = RunControl()
        self._retry = RetryExecutor(
            max_retries=config.max_retries,
            base_delay=config.retry_base_delay,
            classifier=self.classifier,
            sleep=self._sleep,
        )

        if self._rate_limiter is None:
            self._rate_limiter = RateLimiter(
                config.requests_per_hour,
                config.cooldown_period_ms,
                config.cooldown_jitter_ms,
                clock=self._clock,
                sleep=self._sleep,
            )
        else:
            self._rate_limiter.reconfigure(
                config.requests_per_hour,
                config.cooldown_period_ms,
                config.cooldown_jitter_ms,
            )

        self._started_mono = self._clock()
        self._finished_mono = None
        self._paused_mono = None
        self._paused_total = 0.0
        self._run_processed = 0

    async def _run(self, *, carry_over: bool) -> None:
        job = self._job
        control = self._control
        assert job is not None and control is not None

        bind_job_context(job.id)
        try:
            await control.checkpoint(self._enter_paused)
            await self._prepare_session()
            items, truncated = await self._list_items(job)

            batches = BatchScheduler.partition(items, job.config.batch_size)
            job.total_items = len(items)
            job.total_batches = len(batches)
            if carry_over:
                done = sum(1 for item in items if item.id in self._succeeded)
                job.processed_count = job.succeeded_count = done

            self.logger.info(
                "Work items listed",
                job_id=job.id,
                total_items=job.total_items,
                total_batches=job.total_batches,
                truncated=truncated,
            )
            await self.events.publish(ExtractionStarted(job_id=job.id, estimated_total=job.total_items))

            scheduler = BatchScheduler(job.config, control, self.events)
            await scheduler.run(
                batches,
                self._process_item,
                self._record_outcome,
                start_index=0,
                skip=lambda item: item.id in self._succeeded,
                on_batch_start=self._on_batch_start,
                on_batch_end=self._on_batch_end,
                on_pause=self._enter_paused,
            )

            reason = CompletionReason.MAX_REACHED if truncated else CompletionReason.COMPLETED
            await self._finish(JobState.COMPLETED, reason)

        except JobCancelledError:
            await self._finish(JobState.STOPPED, CompletionReason.STOPPED)

        except JobSetupError as e:
            self.logger.error("Job setup failed", job_id=job.id, error=e.message, category=str(e.category))
            await self._fail(e, e.category)

        except Exception as e:
            self.logger.exception("Extraction job crashed", job_id=job.id)
            await self._fail(e, self.classifier.categorize(e))

    async def _call(self, fn: Callable[..., Awaitable[Any]], *args: Any, context: str) -> Any:
        """One scraper call under the retry executor, rate limiter and per-call timeout."""
        assert self._job is not None and self._retry is not None and self._rate_limiter is not None
        limiter = self._rate_limiter
        timeout = self._job.config.per_call_timeout

        async def attempt() -> Any:
            await limiter.acquire()
            return await asyncio.wait_for(fn(*args), timeout=timeout)

        return await self._retry.run(attempt, context=context)

    async def _prepare_session(self) -> None:
        try:
            logged_in = await self._call(self.scraper.ensure_logged_in, context="session check")
            if not logged_in:
                self.logger.info("Session not authenticated, logging in")
                await self._call(self.scraper.login, context="login")
        except Exception as e:
            raise JobSetupError(
                f"Session setup failed: {e}",
                category=self.classifier.categorize(e),
            ) from e

    async def _list_items(self, job: ExtractionJob) -> tuple[list[WorkItem], bool]:
        try:
            items = await self._call(
                self.scraper.list_work_items,
                job.id,
                context=f"listing work items for {job.id}",
            )
        except Exception as e:
            raise JobSetupError(
                f"Listing work items failed: {e}",
                category=self.classifier.categorize(e),
            ) from e

        max_items = job.config.max_items
        truncated = bool(max_items) and len(items) > max_items
        if truncated:
            items = items[:max_items]
        return list(items), truncated

    async def _process_item(self, item: WorkItem) -> ProcessedOutcome:
        """Fetch, persist and optionally download one item. Never raises."""
        assert self._job is not None and self._retry is not None and self._rate_limiter is not None
        config = self._job.config
        limiter = self._rate_limiter
        attempts = 0

        async def fetch() -> Any:
            nonlocal attempts
            attempts += 1
            await limiter.acquire()
            return await asyncio.wait_for(self.scraper.fetch_detail(item), timeout=config.per_call_timeout)

        try:
            record = await self._retry.run(fetch, context=f"fetch_detail {item.id}")
        except Exception as e:
            error = await self._report_error(
                e,
                f"Failed to fetch detail for item {item.display_name}",
                item_id=item.id,
            )
            return ProcessedOutcome(item=item, success=False, error=error, attempts=attempts)

        try:
            is_new = await self.sink.save(record)
        except Exception as e:
            error = await self._report_error(
                e,
                f"Failed to persist record for item {item.display_name}",
                item_id=item.id,
                category=ErrorCategory.GENERAL,
            )
            return ProcessedOutcome(item=item, success=False, error=error, attempts=attempts)

        attachment_path = None
        if config.download_attachments:
            attachment_path = await self._download_attachment(item)

        return ProcessedOutcome(
            item=item,
            success=True,
            attempts=attempts,
            is_new=is_new,
            attachment_path=attachment_path,
        )

    async def _download_attachment(self, item: WorkItem) -> str | None:
        assert self._job is not None
        safe_id = "".join(c if c.isalnum() or c in "-_." else "_" for c in item.id)
        suffix = Path(str(item.metadata.get("attachment_url", ""))).suffix
        dest = Path(self._job.config.download_dir) / self._job.id / f"{safe_id}{suffix}"

        try:
            result = await self._call(
                self.scraper.download_attachment,
                item,
                dest,
                context=f"download_attachment {item.id}",
            )
        except Exception as e:
            # Attachment failures never fail the item
            await self._report_error(e, f"Failed to download attachment for item {item.display_name}", item_id=item.id)
            return None

        if not result.success:
            return None

        await self.events.publish(
            AttachmentDownloaded(item_id=item.id, path=result.path, size_bytes=result.size_bytes)
        )
        return result.path

    async def _report_error(
        self,
        error: Exception,
        context: str,
        *,
        item_id: str | None = None,
        category: ErrorCategory | None = None,
    ) -> ErrorRecord:
        assert self._job is not None
        record = self.classifier.to_record(error, context, item_id=item_id, category=category)
        self._job.errors.append(record)

        self.logger.warning(
            "Item failed",
            job_id=self._job.id,
            item_id=item_id,
            code=record.code,
            recoverable=record.recoverable,
            error=record.message,
        )
        await self.events.publish(
            ExtractionError(
                code=record.code,
                message=record.message,
                context=record.context,
                recoverable=record.recoverable,
                partial=self._job.succeeded_count,
            )
        )
        return record

    async def _record_outcome(self, outcome: ProcessedOutcome) -> None:
        job = self._job
        assert job is not None

        self._outcomes.append(outcome)
        self._run_processed += 1
        job.processed_count = min(job.processed_count + 1, job.total_items)
        if outcome.success:
            job.succeeded_count += 1
            self._succeeded.add(outcome.item.id)
        else:
            job.failed_count += 1

        await self.events.publish(
            ExtractionProgress(
                current=job.processed_count,
                total=job.total_items,
                percentage=percentage(job.processed_count, job.total_items),
                current_item=outcome.item.display_name,
            )
        )

    async def _on_batch_start(self, batch: Batch) -> None:
        assert self._job is not None
        self._job.current_batch_index = batch.index

    async def _on_batch_end(self, batch: Batch, succeeded: int, failed: int) -> None:
        assert self._job is not None
        self._job.completed_batches += 1
        if failed and not succeeded:
            self._job.failed_batches += 1

    async def _enter_paused(self) -> None:
        """Checkpoint hook: the scheduler has halted for a pause request."""
        async with self._lock:
            job = self._job
            control = self._control
            if job is None or control is None or not control.pause_requested:
                return
            if job.state is not JobState.RUNNING:
                return
            job.state = JobState.PAUSED
            job.paused_at = datetime.now()
            self._paused_mono = self._clock()
            event = ExtractionPaused(
                current=job.processed_count,
                total=job.total_items,
                percentage=percentage(job.processed_count, job.total_items),
                reason=PAUSE_REASON_USER,
            )

        self.logger.info("Job paused", job_id=job.id, current=event.current, total=event.total)
        await self.events.publish(event)

    async def _finish(self, state: JobState, reason: CompletionReason) -> None:
        async with self._lock:
            job = self._job
            assert job is not None
            self._close_pause_interval()
            job.state = state
            job.completion_reason = reason
            job.completed_at = datetime.now()
            job.paused_at = None
            self._finished_mono = self._clock()
            succeeded_ids = tuple(dict.fromkeys(o.item.id for o in self._outcomes if o.success))
            event = ExtractionCompleted(
                job_id=job.id,
                items=succeeded_ids,
                total=job.processed_count,
                succeeded=job.succeeded_count,
                failed=job.failed_count,
                reason=str(reason),
                completion_time_ms=int(self._active_seconds() * 1000),
            )

        self.logger.info(
            "Job finished",
            job_id=job.id,
            state=str(state),
            reason=str(reason),
            processed=job.processed_count,
            succeeded=job.succeeded_count,
            failed=job.failed_count,
            errors=len(job.errors),
        )
        await self.events.publish(event)

    async def _fail(self, error: Exception, category: ErrorCategory) -> None:
        async with self._lock:
            job = self._job
            assert job is not None
            record = self.classifier.to_record(error, f"Extraction job {job.id} failed", category=category)
            job.errors.append(record)
            self._close_pause_interval()
            job.state = JobState.FAILED
            job.completion_reason = CompletionReason.FAILED
            job.completed_at = datetime.now()
            self._finished_mono = self._clock()
            event = ExtractionError(
                code=record.code,
                message=record.message,
                context=record.context,
                recoverable=record.recoverable,
                partial=job.succeeded_count,
            )

        await self.events.publish(event)

    def _close_pause_interval(self) -> None:
        if self._paused_mono is not None:
            self._paused_total += self._clock() - self._paused_mono
            self._paused_mono = None

    def _active_seconds(self) -> float:
        if self._started_mono is None:
            return 0.0
        end = self._finished_mono if self._finished_mono is not None else self._clock()
        paused = self._paused_total
        if self._paused_mono is not None and self._finished_mono is None:
            paused += end - self._paused_mono
        return max(end - self._started_mono - paused, 0.0)
