"""
Harvester - Batch Scheduler

Partitions work items into ordered batches and runs them with a bounded
concurrency window. Pause and stop requests take effect only at checkpoints:
before every batch and before every concurrency window. In-flight item
fetches are always allowed to finish.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Sequence

from harvester.orchestration.events import BatchCompleted, BatchStarted, ProgressEventBus
from harvester.orchestration.models import Batch, JobConfig, ProcessedOutcome
from harvester.scrapers.base import WorkItem
from harvester.shared.exceptions import JobCancelledError
from harvester.shared.logging import LoggerMixin

Worker = Callable[[WorkItem], Awaitable[ProcessedOutcome]]
OutcomeHook = Callable[[ProcessedOutcome], Awaitable[None]]
BatchHook = Callable[[Batch], Awaitable[None]]
PauseHook = Callable[[], Awaitable[None]]


class RunControl:
    """
    Cooperative pause/stop flags shared by the controller and the scheduler.

    The controller requests transitions; the scheduler observes them at
    checkpoints.
    """

    def __init__(self) -> None:
        self._running = asyncio.Event()
        self._running.set()
        self._stopped = asyncio.Event()

    @property
    def pause_requested(self) -> bool:
        return not self._running.is_set()

    @property
    def stop_requested(self) -> bool:
        return self._stopped.is_set()

    def request_pause(self) -> None:
        self._running.clear()

    def release(self) -> None:
        self._running.set()

    def request_stop(self) -> None:
        self._stopped.set()
        # Wake a checkpoint blocked on pause so it can observe the stop
        self._running.set()

    async def checkpoint(self, on_pause: PauseHook | None = None) -> None:
        """
        Raise on stop; block while paused.

        Raises:
            JobCancelledError: If a stop was requested
        """
        if self.stop_requested:
            raise JobCancelledError("Operation was stopped by user")

        if self.pause_requested:
            if on_pause is not None:
                await on_pause()
            await self._running.wait()
            if self.stop_requested:
                raise JobCancelledError("Operation was stopped by user")

    async def sleep(self, seconds: float) -> None:
        """Sleep, waking early if a stop is requested."""
        if seconds <= 0 or self.stop_requested:
            return
        try:
            await asyncio.wait_for(self._stopped.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass


@dataclass(frozen=True)
class ScheduleResult:
    batches_run: int
    processed: int
    succeeded: int
    failed: int
    skipped: int


class BatchScheduler(LoggerMixin):
    """
    Runs batches of work items in order.

    For each batch: checkpoint, batch-started, windows of `concurrency`
    items (checkpoint before each window), batch-completed, then the
    humanization pause unless it was the last batch.

    The scheduler owns no job state: per-item bookkeeping is delegated to
    the on_outcome hook supplied by the controller.
    """

    def __init__(
        self,
        config: JobConfig,
        control: RunControl,
        events: ProgressEventBus,
    ) -> None:
        self.config = config
        self.control = control
        self.events = events

    @staticmethod
    def partition(items: Sequence[WorkItem], batch_size: int) -> list[Batch]:
        """Split items into ordered batches; the last one may be shorter."""
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        return [
            Batch(index=index, items=tuple(items[start : start + batch_size]))
            for index, start in enumerate(range(0, len(items), batch_size))
        ]

    async def run(
        self,
        batches: Sequence[Batch],
        worker: Worker,
        on_outcome: OutcomeHook,
        *,
        start_index: int = 0,
        skip: Callable[[WorkItem], bool] | None = None,
        on_batch_start: BatchHook | None = None,
        on_batch_end: Callable[[Batch, int, int], Awaitable[None]] | None = None,
        on_pause: PauseHook | None = None,
    ) -> ScheduleResult:
        """
        Run batches from start_index to the end.

        Args:
            batches: Output of partition()
            worker: Processes one item; must return an outcome, not raise
            on_outcome: Called once per processed item, in completion order
            start_index: First batch to run (resume point)
            skip: Items for which this returns True are not processed
            on_batch_start: Called after the batch checkpoint passes
            on_batch_end: Called with (batch, succeeded, failed)
            on_pause: Called when a checkpoint halts for a pause

        Raises:
            JobCancelledError: If a stop was requested
        """
        total_batches = len(batches)
        processed = succeeded = failed = skipped = batches_run = 0

        for batch in batches[start_index:]:
            await self.control.checkpoint(on_pause)

            pending = [item for item in batch.items if not (skip and skip(item))]
            skipped += len(batch) - len(pending)

            if on_batch_start is not None:
                await on_batch_start(batch)

            await self.events.publish(
                BatchStarted(
                    batch_index=batch.index,
                    total_batches=total_batches,
                    batch_size=len(batch),
                )
            )
            self.logger.info(
                "Batch started",
                batch_index=batch.index,
                total_batches=total_batches,
                size=len(batch),
                skipped=len(batch) - len(pending),
            )

            batch_succeeded = batch_failed = 0
            for start in range(0, len(pending), self.config.concurrency):
                await self.control.checkpoint(on_pause)
                window = pending[start : start + self.config.concurrency]
                outcomes = await asyncio.gather(
                    *(self._run_item(item, worker, on_outcome) for item in window)
                )
                for outcome in outcomes:
                    if outcome.success:
                        batch_succeeded += 1
                    else:
                        batch_failed += 1

            processed += batch_succeeded + batch_failed
            succeeded += batch_succeeded
            failed += batch_failed
            batches_run += 1

            if on_batch_end is not None:
                await on_batch_end(batch, batch_succeeded, batch_failed)

            await self.events.publish(
                BatchCompleted(
                    batch_index=batch.index,
                    total_batches=total_batches,
                    processed=batch_succeeded + batch_failed,
                    succeeded=batch_succeeded,
                    failed=batch_failed,
                )
            )
            self.logger.info(
                "Batch completed",
                batch_index=batch.index,
                succeeded=batch_succeeded,
                failed=batch_failed,
            )

            is_last = batch.index >= total_batches - 1
            if not is_last and self.config.pause_between_batches > 0:
                await self.control.sleep(self.config.pause_between_batches)

        return ScheduleResult(
            batches_run=batches_run,
            processed=processed,
            succeeded=succeeded,
            failed=failed,
            skipped=skipped,
        )

    @staticmethod
    async def _run_item(item: WorkItem, worker: Worker, on_outcome: OutcomeHook) -> ProcessedOutcome:
        outcome = await worker(item)
        await on_outcome(outcome)
        return outcome
