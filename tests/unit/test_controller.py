"""
Unit tests for the job controller state machine.
"""

import asyncio
import json

import pytest

from conftest import FakeScraper, make_config, make_items
from harvester.orchestration import JobController
from harvester.shared.constants import CompletionReason, JobState
from harvester.shared.exceptions import (
    AlreadyRunningError,
    NavigationError,
    NoActiveJobError,
    NotPausedError,
    SecurityCheckError,
    StorageError,
)
from harvester.storage import MemorySink


class EventLog:
    """Collects every published event as (name, payload) pairs."""

    def __init__(self, controller: JobController) -> None:
        self.events = []
        controller.subscribe("*", self.events.append)

    def names(self):
        return [str(e.name) for e in self.events]

    def of(self, name):
        return [e for e in self.events if str(e.name) == name]


def make_controller(scraper, clock, sink=None):
    return JobController(scraper, sink if sink is not None else MemorySink(), clock=clock, sleep=clock.sleep)


def run_job(controller, job_id, config):
    async def run():
        await controller.start(job_id, config)
        return await controller.wait()

    return asyncio.run(run())


class TestHappyPath:
    """Seven items, batch size 3, concurrency 1."""

    def test_batches_progress_and_completion(self, clock, config):
        scraper = FakeScraper(make_items(7))
        sink = MemorySink()
        controller = make_controller(scraper, clock, sink)
        log = EventLog(controller)

        snapshot = run_job(controller, "job-1", config)

        assert snapshot.state is JobState.COMPLETED
        assert snapshot.completion_reason is CompletionReason.COMPLETED
        assert snapshot.total_batches == 3
        assert snapshot.completed_batches == 3
        assert snapshot.processed_count == snapshot.total_items == 7
        assert snapshot.percentage == 100

        assert [e.current for e in log.of("extraction-progress")] == list(range(1, 8))
        assert [e.batch_size for e in log.of("batch-started")] == [3, 3, 1]

        completed = log.of("extraction-completed")
        assert len(completed) == 1
        assert completed[0].total == 7
        assert completed[0].reason == "completed"
        assert completed[0].items == tuple(str(n) for n in range(1, 8))

        assert log.names()[0] == "extraction-started"
        assert log.names()[-1] == "extraction-completed"
        assert len(sink) == 7

    def test_progress_is_monotonic(self, clock):
        controller = make_controller(FakeScraper(make_items(10)), clock)
        log = EventLog(controller)

        run_job(controller, "job-1", make_config(batch_size=4, concurrency=3))

        currents = [e.current for e in log.of("extraction-progress")]
        assert currents == sorted(currents)
        assert all(e.current <= e.total for e in log.of("extraction-progress"))
        assert currents[-1] == 10

    def test_slow_subscriber_sees_ordered_progress(self, clock):
        controller = make_controller(FakeScraper(make_items(4)), clock)
        seen = []

        async def slow(event):
            if event.current % 2:
                for _ in range(5):
                    await asyncio.sleep(0)

        controller.subscribe("extraction-progress", slow)
        controller.subscribe("extraction-progress", lambda e: seen.append(e.current))

        snapshot = run_job(controller, "job-1", make_config(batch_size=4, concurrency=2))

        assert snapshot.state is JobState.COMPLETED
        assert seen == [1, 2, 3, 4]

    def test_max_items_truncates(self, clock):
        controller = make_controller(FakeScraper(make_items(7)), clock)
        log = EventLog(controller)

        snapshot = run_job(controller, "job-1", make_config(max_items=4))

        assert snapshot.total_items == 4
        assert snapshot.completion_reason is CompletionReason.MAX_REACHED
        assert log.of("extraction-completed")[0].reason == "max_reached"

    def test_empty_listing_completes(self, clock, config):
        controller = make_controller(FakeScraper([]), clock)

        snapshot = run_job(controller, "job-1", config)

        assert snapshot.state is JobState.COMPLETED
        assert snapshot.total_items == 0
        assert snapshot.percentage == 0

    def test_logs_in_when_session_missing(self, clock, config):
        scraper = FakeScraper(make_items(2), logged_in=False)
        controller = make_controller(scraper, clock)

        run_job(controller, "job-1", config)
        assert scraper.login_calls == 1

    def test_accepts_plain_dict_config(self, clock, config):
        controller = make_controller(FakeScraper(make_items(2)), clock)

        snapshot = run_job(controller, "job-1", config.model_dump())
        assert snapshot.state is JobState.COMPLETED


class TestItemFailures:
    """Item-level failures never halt the job."""

    def test_navigation_failure_retried_then_recorded(self, clock):
        scraper = FakeScraper(
            make_items(5),
            failures={"3": lambda: NavigationError("Page load failed")},
        )
        controller = make_controller(scraper, clock)
        log = EventLog(controller)

        snapshot = run_job(controller, "job-1", make_config(max_retries=2))

        assert scraper.fetch_calls.count("3") == 3
        assert snapshot.state is JobState.COMPLETED
        assert snapshot.succeeded_count == 4
        assert snapshot.failed_count == 1
        assert len(snapshot.errors) == 1
        assert snapshot.errors[0].code == "NAVIGATION_ERROR"
        assert snapshot.errors[0].item_id == "3"

        failed = [o for o in snapshot.outcomes if not o.success]
        assert [o.item.id for o in failed] == ["3"]
        assert failed[0].attempts == 3

        error_event = log.of("extraction-error")[0]
        assert error_event.recoverable is True
        assert error_event.partial == 2

    def test_security_check_attempted_once(self, clock, config):
        scraper = FakeScraper(
            make_items(3),
            failures={"2": lambda: SecurityCheckError("captcha")},
        )
        controller = make_controller(scraper, clock)
        log = EventLog(controller)

        snapshot = run_job(controller, "job-1", make_config(max_retries=5))

        assert scraper.fetch_calls.count("2") == 1
        assert log.of("extraction-error")[0].recoverable is False
        assert snapshot.state is JobState.COMPLETED

    def test_sink_failure_marks_item_failed(self, clock, config):
        class BrokenSink(MemorySink):
            async def save(self, record):
                if record.item_id == "2":
                    raise StorageError("disk full")
                return await super().save(record)

        controller = make_controller(FakeScraper(make_items(3)), clock, BrokenSink())

        snapshot = run_job(controller, "job-1", config)

        assert snapshot.state is JobState.COMPLETED
        assert snapshot.failed_count == 1
        assert snapshot.errors[0].code == "GENERAL_ERROR"

    def test_listing_failure_fails_job(self, clock, config):
        scraper = FakeScraper([], list_error=NavigationError("Could not load listing"))
        controller = make_controller(scraper, clock)
        log = EventLog(controller)

        snapshot = run_job(controller, "job-1", config)

        assert snapshot.state is JobState.FAILED
        assert snapshot.completion_reason is CompletionReason.FAILED
        assert scraper.list_calls == config.max_retries + 1
        assert log.of("extraction-error")[0].code == "NAVIGATION_ERROR"
        assert log.of("extraction-completed") == []


class TestPauseResume:
    """Pause is honoured at checkpoints; resume never repeats work."""

    def test_pause_after_second_item(self, clock, config):
        scraper = FakeScraper(make_items(7))
        controller = make_controller(scraper, clock)
        log = EventLog(controller)
        states_while_paused = []

        async def on_progress(event):
            if event.current == 2:
                await controller.pause()

        async def on_paused(event):
            states_while_paused.append(controller.get_state().state)
            await controller.resume()

        controller.subscribe("extraction-progress", on_progress)
        controller.subscribe("extraction-paused", on_paused)

        snapshot = run_job(controller, "job-1", config)

        paused = log.of("extraction-paused")
        assert len(paused) == 1
        assert paused[0].current == 2
        assert paused[0].total == 7
        assert paused[0].reason == "user_requested"
        assert states_while_paused == [JobState.PAUSED]

        names = log.names()
        assert names.index("extraction-resumed") == names.index("extraction-paused") + 1

        assert snapshot.state is JobState.COMPLETED
        assert snapshot.processed_count == 7
        assert scraper.fetch_calls == [str(n) for n in range(1, 8)]

    def test_resume_cancels_pending_pause(self, clock, config):
        controller = make_controller(FakeScraper(make_items(4)), clock)
        log = EventLog(controller)

        async def run():
            await controller.start("job-1", config)
            await controller.pause()
            await controller.resume()
            return await controller.wait()

        snapshot = asyncio.run(run())

        assert snapshot.state is JobState.COMPLETED
        assert log.of("extraction-paused") == []
        assert log.of("extraction-resumed") == []

    def test_start_on_paused_job_resumes(self, clock, config):
        controller = make_controller(FakeScraper(make_items(4)), clock)

        async def on_paused(event):
            await controller.start("job-1", config)

        controller.subscribe("extraction-paused", on_paused)

        async def run():
            await controller.start("job-1", config)
            await controller.pause()
            return await controller.wait()

        snapshot = asyncio.run(run())
        assert snapshot.state is JobState.COMPLETED


class TestStop:
    """Stop ends the job at a checkpoint and keeps partial results."""

    def test_stop_then_continue_same_job(self, clock, config):
        scraper = FakeScraper(make_items(7))
        controller = make_controller(scraper, clock)
        log = EventLog(controller)

        async def on_progress(event):
            if event.current == 4 and controller.state is JobState.RUNNING:
                await controller.stop()

        async def run():
            unsubscribe = controller.subscribe("extraction-progress", on_progress)
            await controller.start("job-1", config)
            stopped = await controller.wait()
            unsubscribe()

            await controller.start("job-1", config)
            return stopped, await controller.wait()

        stopped, finished = asyncio.run(run())

        assert stopped.state is JobState.STOPPED
        assert stopped.completion_reason is CompletionReason.STOPPED
        assert stopped.processed_count == 4
        completed = log.of("extraction-completed")
        assert completed[0].reason == "stopped"
        assert completed[0].total == 4

        assert finished.state is JobState.COMPLETED
        assert finished.processed_count == 7
        assert finished.succeeded_count == 7
        assert scraper.fetch_calls == [str(n) for n in range(1, 8)]
        assert scraper.list_calls == 2

    def test_stop_while_paused(self, clock, config):
        controller = make_controller(FakeScraper(make_items(5)), clock)

        async def on_paused(event):
            await controller.stop()

        controller.subscribe("extraction-paused", on_paused)

        async def run():
            await controller.start("job-1", config)
            await controller.pause()
            return await controller.wait()

        snapshot = asyncio.run(run())
        assert snapshot.state is JobState.STOPPED
        assert snapshot.processed_count == 0


class TestControlErrors:
    """Invalid transitions raise typed errors."""

    def test_pause_without_job(self, clock):
        controller = make_controller(FakeScraper([]), clock)
        with pytest.raises(NoActiveJobError):
            asyncio.run(controller.pause())

    def test_stop_without_job(self, clock):
        controller = make_controller(FakeScraper([]), clock)
        with pytest.raises(NoActiveJobError):
            asyncio.run(controller.stop())

    def test_resume_without_pause(self, clock, config):
        controller = make_controller(FakeScraper(make_items(2)), clock)

        async def run():
            await controller.start("job-1", config)
            try:
                await controller.resume()
            finally:
                await controller.wait()

        with pytest.raises(NotPausedError):
            asyncio.run(run())

    def test_start_while_running(self, clock, config):
        controller = make_controller(FakeScraper(make_items(2)), clock)

        async def run():
            await controller.start("job-1", config)
            try:
                await controller.start("job-2", config)
            finally:
                await controller.wait()

        with pytest.raises(AlreadyRunningError):
            asyncio.run(run())

    def test_reset_returns_to_idle(self, clock, config):
        controller = make_controller(FakeScraper(make_items(2)), clock)

        async def run():
            await controller.start("job-1", config)
            await controller.wait()
            await controller.reset()

        asyncio.run(run())
        snapshot = controller.get_state()
        assert snapshot.state is JobState.IDLE
        assert snapshot.job_id is None
        assert snapshot.estimated_time_remaining == "unknown"


class TestSnapshotAndExport:
    """Tests for get_state() and export_results()."""

    def test_snapshot_is_a_copy(self, clock, config):
        controller = make_controller(FakeScraper(make_items(3)), clock)
        snapshot = run_job(controller, "job-1", config)

        assert isinstance(snapshot.errors, tuple)
        assert isinstance(snapshot.outcomes, tuple)
        assert snapshot.eta_seconds == 0

    def test_export_json_report(self, clock, config, tmp_path):
        scraper = FakeScraper(make_items(3), failures={"2": lambda: NavigationError("Page load failed")})
        controller = make_controller(scraper, clock)
        run_job(controller, "job-1", make_config(max_retries=0))

        path = controller.export_results(tmp_path / "report.json")

        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["job"]["job_id"] == "job-1"
        assert len(data["outcomes"]) == 3
        assert len(data["errors"]) == 1
        assert data["stats"]["success_rate"] == pytest.approx(66.67)
        assert data["stats"]["batch_stats"] == {"total": 1, "completed": 1, "failed": 0}

    def test_attachments_downloaded(self, clock, tmp_path):
        controller = make_controller(FakeScraper(make_items(2)), clock)
        log = EventLog(controller)

        snapshot = run_job(
            controller,
            "job-1",
            make_config(download_attachments=True, download_dir=str(tmp_path)),
        )

        assert len(log.of("attachment-downloaded")) == 2
        assert all(o.attachment_path for o in snapshot.outcomes)
        assert (tmp_path / "job-1" / "1").exists()
