"""
Unit tests for the REST control surface.
"""

import time

import pytest
from fastapi.testclient import TestClient

from conftest import FakeClock, FakeScraper, make_items
from harvester.gateway.main import create_app
from harvester.orchestration import JobController
from harvester.shared.config import settings
from harvester.storage import MemorySink

JOB_BODY = {
    "job_id": "job-1",
    "batch_size": 2,
    "concurrency": 1,
    "pause_between_batches_ms": 0,
    "requests_per_hour": 1000,
    "cooldown_period_ms": 0,
    "retry_base_delay_ms": 0,
}


@pytest.fixture
def scraper():
    return FakeScraper(make_items(5))


@pytest.fixture
def client(scraper, tmp_path, monkeypatch):
    monkeypatch.setattr(settings.storage, "export_dir", str(tmp_path))
    clock = FakeClock()
    controller = JobController(scraper, MemorySink(), clock=clock, sleep=clock.sleep)
    with TestClient(create_app(controller)) as test_client:
        yield test_client


def wait_for_state(client, *states, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        body = client.get("/jobs/state").json()
        if body["state"] in states:
            return body
        time.sleep(0.01)
    raise AssertionError(f"job never reached {states}")


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["job_state"] == "idle"


class TestJobLifecycle:
    """Tests for starting and inspecting a job."""

    def test_start_runs_to_completion(self, client, scraper):
        response = client.post("/jobs", json=JOB_BODY)
        assert response.status_code == 202
        assert response.json()["job_id"] == "job-1"

        body = wait_for_state(client, "completed")
        assert body["processed_count"] == 5
        assert body["percentage"] == 100
        assert body["total_batches"] == 3
        assert body["completion_reason"] == "completed"
        assert scraper.closed is False

    def test_events_polling(self, client):
        client.post("/jobs", json=JOB_BODY)
        wait_for_state(client, "completed")

        body = client.get("/events", params={"since": 0}).json()
        names = [e["event"] for e in body["events"]]
        assert names[0] == "extraction-started"
        assert names[-1] == "extraction-completed"
        assert names.count("extraction-progress") == 5

        later = client.get("/events", params={"since": body["last_sequence"]}).json()
        assert later["events"] == []

    def test_reset_after_completion(self, client):
        client.post("/jobs", json=JOB_BODY)
        wait_for_state(client, "completed")

        response = client.post("/jobs/reset")
        assert response.status_code == 200
        assert response.json()["state"] == "idle"

    def test_invalid_config_rejected(self, client):
        response = client.post("/jobs", json={**JOB_BODY, "batch_size": 0})
        assert response.status_code == 422


class TestConflicts:
    """State conflicts map to 409."""

    @pytest.mark.parametrize("action", ["pause", "resume", "stop"])
    def test_control_without_job(self, client, action):
        response = client.post(f"/jobs/{action}")

        assert response.status_code == 409
        assert response.json()["detail"]["message"]

    def test_export_without_job(self, client):
        assert client.post("/jobs/export", json={}).status_code == 409


class TestExport:
    """Tests for report export."""

    def test_export_json(self, client, tmp_path):
        client.post("/jobs", json=JOB_BODY)
        wait_for_state(client, "completed")

        response = client.post("/jobs/export", json={"format": "csv"})

        assert response.status_code == 200
        body = response.json()
        assert body["format"] == "csv"
        assert body["total_outcomes"] == 5
        assert (tmp_path / "job-1.csv").exists()

    def test_export_bad_format(self, client):
        client.post("/jobs", json=JOB_BODY)
        wait_for_state(client, "completed")

        response = client.post("/jobs/export", json={"filename": "report.xml"})
        assert response.status_code == 400
