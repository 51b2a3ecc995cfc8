"""
Unit tests for batch partitioning and checkpoint handling.
"""

import asyncio

import pytest

from conftest import make_config, make_items
from harvester.orchestration import (
    BatchScheduler,
    ProcessedOutcome,
    ProgressEventBus,
    RunControl,
)
from harvester.shared.exceptions import JobCancelledError


class TestPartition:
    """Tests for splitting items into batches."""

    def test_partition_seven_by_three(self):
        batches = BatchScheduler.partition(make_items(7), 3)

        assert [len(b) for b in batches] == [3, 3, 1]
        assert [b.index for b in batches] == [0, 1, 2]
        assert [i.id for b in batches for i in b.items] == [str(n) for n in range(1, 8)]

    def test_partition_exact_multiple(self):
        assert [len(b) for b in BatchScheduler.partition(make_items(6), 3)] == [3, 3]

    def test_partition_empty(self):
        assert BatchScheduler.partition([], 3) == []

    def test_partition_rejects_zero_batch_size(self):
        with pytest.raises(ValueError):
            BatchScheduler.partition(make_items(3), 0)


class Recorder:
    """Worker plus outcome hook that log what the scheduler asked for."""

    def __init__(self, control: RunControl | None = None, pause_after: int | None = None) -> None:
        self.control = control
        self.pause_after = pause_after
        self.processed: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def worker(self, item):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        await asyncio.sleep(0)
        self.in_flight -= 1
        return ProcessedOutcome(item=item, success=True, attempts=1)

    async def on_outcome(self, outcome):
        self.processed.append(outcome.item.id)
        if self.control and len(self.processed) == self.pause_after:
            self.control.request_pause()


def run_scheduler(config, batches, recorder, control, bus=None, **kwargs):
    scheduler = BatchScheduler(config, control, bus or ProgressEventBus())
    return scheduler.run(batches, recorder.worker, recorder.on_outcome, **kwargs)


class TestRun:
    """Tests for running batches."""

    def test_runs_every_item_and_reports_batches(self):
        config = make_config(batch_size=3)
        control = RunControl()
        recorder = Recorder()
        bus = ProgressEventBus()
        names = []
        bus.subscribe("*", lambda e: names.append(str(e.name)))

        result = asyncio.run(
            run_scheduler(config, BatchScheduler.partition(make_items(7), 3), recorder, control, bus)
        )

        assert recorder.processed == [str(n) for n in range(1, 8)]
        assert result.batches_run == 3
        assert result.succeeded == 7
        assert names == ["batch-started", "batch-completed"] * 3

    def test_concurrency_bounds_in_flight_items(self):
        config = make_config(batch_size=10, concurrency=2)
        recorder = Recorder()

        asyncio.run(
            run_scheduler(config, BatchScheduler.partition(make_items(10), 10), recorder, RunControl())
        )

        assert recorder.max_in_flight == 2
        assert len(recorder.processed) == 10

    def test_skip_and_start_index(self):
        config = make_config(batch_size=3)
        recorder = Recorder()

        result = asyncio.run(
            run_scheduler(
                config,
                BatchScheduler.partition(make_items(7), 3),
                recorder,
                RunControl(),
                start_index=1,
                skip=lambda item: item.id == "5",
            )
        )

        assert recorder.processed == ["4", "6", "7"]
        assert result.skipped == 1
        assert result.batches_run == 2

    def test_stop_raises_at_checkpoint(self):
        config = make_config(batch_size=3)
        control = RunControl()
        recorder = Recorder()

        async def on_outcome(outcome):
            recorder.processed.append(outcome.item.id)
            if len(recorder.processed) == 2:
                control.request_stop()

        async def run():
            scheduler = BatchScheduler(config, control, ProgressEventBus())
            await scheduler.run(BatchScheduler.partition(make_items(7), 3), recorder.worker, on_outcome)

        with pytest.raises(JobCancelledError):
            asyncio.run(run())
        assert recorder.processed == ["1", "2"]


class TestCheckpointFidelity:
    """A pause lets in-flight items finish, then halts."""

    def test_pause_halts_within_one_window(self):
        config = make_config(batch_size=10, concurrency=2)
        control = RunControl()
        recorder = Recorder(control, pause_after=3)
        halted_at = []

        async def on_pause():
            halted_at.append(len(recorder.processed))
            control.release()

        asyncio.run(
            run_scheduler(
                config,
                BatchScheduler.partition(make_items(10), 10),
                recorder,
                control,
                on_pause=on_pause,
            )
        )

        assert halted_at
        assert halted_at[0] - 3 <= config.concurrency
        assert len(recorder.processed) == 10

    def test_blocked_checkpoint_observes_stop(self):
        control = RunControl()
        control.request_pause()

        async def run():
            waiter = asyncio.create_task(control.checkpoint())
            await asyncio.sleep(0)
            assert not waiter.done()
            control.request_stop()
            await waiter

        with pytest.raises(JobCancelledError):
            asyncio.run(run())

    def test_sleep_wakes_on_stop(self):
        control = RunControl()

        async def run():
            loop = asyncio.get_running_loop()
            loop.call_later(0.01, control.request_stop)
            started = loop.time()
            await control.sleep(30)
            return loop.time() - started

        assert asyncio.run(run()) < 5
