"""
Harvester - API Gateway

FastAPI-based REST control surface for the extraction engine.
Provides endpoints to start, pause, resume, stop and inspect a job, poll
progress events, and export results.
"""

import time
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware

from harvester import __version__
from harvester.gateway.schemas import (
    ControlResponse,
    ErrorResponse,
    EventSchema,
    EventsResponse,
    ExportRequest,
    ExportResponse,
    HealthResponse,
    JobStateResponse,
    StartJobRequest,
)
from harvester.orchestration import JobConfig, JobController, JobSnapshot
from harvester.scrapers import HttpScraper
from harvester.shared.config import settings
from harvester.shared.exceptions import ExportError, OrchestrationError
from harvester.shared.logging import get_logger
from harvester.storage import JsonlSink

logger = get_logger(__name__)


def _build_default_controller() -> JobController:
    return JobController(
        HttpScraper(settings.scraper),
        JsonlSink(settings.storage.results_path),
    )


def _state_response(snapshot: JobSnapshot) -> JobStateResponse:
    data = snapshot.to_dict()
    return JobStateResponse(**data)


def _conflict(error: OrchestrationError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=error.to_dict())


def create_app(controller: JobController | None = None) -> FastAPI:
    """
    Build the API application around a controller.

    Args:
        controller: Controller to expose (default: HttpScraper + JsonlSink
            from settings)
    """
    start_time = time.time()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""
        logger.info("Starting Harvester API", version=__version__)
        yield
        logger.info("Shutting down Harvester API")
        await app.state.controller.shutdown()

    app = FastAPI(
        title="Harvester API",
        description="Rate-limited, resumable extraction job engine",
        version=__version__,
        lifespan=lifespan,
        responses={
            500: {"model": ErrorResponse},
        },
    )
    app.state.controller = controller or _build_default_controller()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def get_controller(request: Request) -> JobController:
        return request.app.state.controller

    # -------------------------------------------------------------------------
    # Health Check
    # -------------------------------------------------------------------------

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check(request: Request) -> HealthResponse:
        """Check API health status."""
        return HealthResponse(
            status="healthy",
            version=__version__,
            uptime_seconds=time.time() - start_time,
            job_state=get_controller(request).state,
        )

    # -------------------------------------------------------------------------
    # Job Control
    # -------------------------------------------------------------------------

    @app.post(
        "/jobs",
        response_model=JobStateResponse,
        status_code=status.HTTP_202_ACCEPTED,
        tags=["Jobs"],
    )
    async def start_job(body: StartJobRequest, request: Request) -> JobStateResponse:
        """
        Start an extraction job.

        The job runs in the background. Poll /jobs/state or /events for progress.
        """
        controller = get_controller(request)
        config = JobConfig.from_settings(settings, **body.overrides())
        try:
            snapshot = await controller.start(body.job_id, config)
        except OrchestrationError as e:
            raise _conflict(e) from e

        logger.info("Job start accepted", job_id=body.job_id)
        return _state_response(snapshot)

    @app.post("/jobs/pause", response_model=ControlResponse, tags=["Jobs"])
    async def pause_job(request: Request) -> ControlResponse:
        """Request a pause at the next checkpoint."""
        controller = get_controller(request)
        try:
            await controller.pause()
        except OrchestrationError as e:
            raise _conflict(e) from e
        return ControlResponse(message="Pause requested", state=controller.state)

    @app.post("/jobs/resume", response_model=ControlResponse, tags=["Jobs"])
    async def resume_job(request: Request) -> ControlResponse:
        """Resume a paused job."""
        controller = get_controller(request)
        try:
            await controller.resume()
        except OrchestrationError as e:
            raise _conflict(e) from e
        return ControlResponse(message="Job resumed", state=controller.state)

    @app.post("/jobs/stop", response_model=ControlResponse, tags=["Jobs"])
    async def stop_job(request: Request) -> ControlResponse:
        """Request a stop; partial results are kept."""
        controller = get_controller(request)
        try:
            await controller.stop()
        except OrchestrationError as e:
            raise _conflict(e) from e
        return ControlResponse(message="Stop requested", state=controller.state)

    @app.post("/jobs/reset", response_model=ControlResponse, tags=["Jobs"])
    async def reset_job(request: Request) -> ControlResponse:
        """Clear a finished job."""
        controller = get_controller(request)
        try:
            await controller.reset()
        except OrchestrationError as e:
            raise _conflict(e) from e
        return ControlResponse(message="Job reset", state=controller.state)

    @app.get("/jobs/state", response_model=JobStateResponse, tags=["Jobs"])
    async def get_job_state(request: Request) -> JobStateResponse:
        """Get a snapshot of the current job."""
        return _state_response(get_controller(request).get_state())

    # -------------------------------------------------------------------------
    # Export
    # -------------------------------------------------------------------------

    @app.post("/jobs/export", response_model=ExportResponse, tags=["Export"])
    async def export_results(body: ExportRequest, request: Request) -> ExportResponse:
        """Export outcomes, errors and stats of the current job."""
        controller = get_controller(request)
        snapshot = controller.get_state()
        if snapshot.job_id is None:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="No job to export")

        filename = body.filename or f"{snapshot.job_id}.{body.format or 'json'}"
        # Reports always land in the configured export directory
        path = Path(settings.storage.export_dir) / Path(filename).name
        try:
            written = controller.export_results(path, body.format)
        except ExportError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.to_dict()) from e

        return ExportResponse(
            job_id=snapshot.job_id,
            path=str(written),
            format=written.suffix.lstrip("."),
            total_outcomes=len(snapshot.outcomes),
        )

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    @app.get("/events", response_model=EventsResponse, tags=["Events"])
    async def list_events(
        request: Request,
        since: int = Query(default=0, ge=0, description="Last sequence number seen"),
    ) -> EventsResponse:
        """Progress events published after `since`, oldest first."""
        bus = get_controller(request).events
        events = [
            EventSchema(sequence=seq, event=str(event.name), payload=event.to_dict())
            for seq, event in bus.recent(since)
        ]
        return EventsResponse(events=events, last_sequence=bus.last_sequence)

    return app


app = create_app()


# Entry point for running with uvicorn
def run():
    """Run the API server."""
    import uvicorn

    uvicorn.run(
        "harvester.gateway.main:app",
        host=settings.app.api_host,
        port=settings.app.api_port,
        reload=settings.app.api_reload,
    )


if __name__ == "__main__":
    run()
