"""Batches API: submit, observe and cancel the current article batch.

Implements:
  POST   /api/batches                   start a batch (202)
  GET    /api/batches/current           run summary, jobs and progress
  GET    /api/batches/current/progress  progress snapshot only
  GET    /api/batches/current/jobs      jobs, optionally filtered by status
  POST   /api/batches/current/cancel    request cooperative cancellation (202)
  GET    /api/batches/current/events    SSE stream of job/progress events
  DELETE /api/batches/current           forget a finished batch
"""

import json
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from batch_article_agent.errors import AlreadyRunning, ConfigurationError, InvalidRequest
from batch_article_agent.events import serialize_job, serialize_run
from batch_article_agent.orchestrator import BatchOrchestrator
from batch_article_agent.state import Audience, BatchRun, JobStatus, Tone, job_specs_from_keywords

from app.services.batch_service import get_orchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/batches", tags=["batches"])


# ---------------------------------------------------------------------------
# Request / response schemas
# ---------------------------------------------------------------------------


class BatchConfigRequest(BaseModel):
    """Per-batch scheduling overrides; durations in milliseconds."""

    max_concurrent_jobs: int | None = Field(default=None, ge=1)
    delay_between_jobs_ms: int | None = Field(default=None, ge=0)
    retry_attempts: int | None = Field(default=None, ge=0)
    timeout_ms: int | None = Field(default=None, gt=0)

    def to_overrides(self) -> dict:
        return {
            "max_concurrent_jobs": self.max_concurrent_jobs,
            "delay_between_jobs": (
                self.delay_between_jobs_ms / 1000
                if self.delay_between_jobs_ms is not None
                else None
            ),
            "retry_attempts": self.retry_attempts,
            "timeout": self.timeout_ms / 1000 if self.timeout_ms is not None else None,
        }


class BatchCreateRequest(BaseModel):
    keywords: list[str] = Field(min_length=1)
    tone: Tone = Tone.POLITE
    audience: Audience = Audience.BEGINNER
    target_length: int = Field(default=5000, ge=1)
    image_theme: str = ""
    config: BatchConfigRequest | None = None


class ProgressResponse(BaseModel):
    total: int
    pending: int
    running: int
    completed: int
    failed: int
    cancelled: int
    overall_progress: int
    estimated_time_remaining: float | None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _orchestrator() -> BatchOrchestrator:
    try:
        return get_orchestrator()
    except ConfigurationError as e:
        logger.error("Batch orchestrator unavailable: %s", e)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Article generation is not configured on this server",
        )


def _current_run(orchestrator: BatchOrchestrator) -> BatchRun:
    run = orchestrator.current_run
    if run is None:
        raise HTTPException(status_code=404, detail="No batch has been submitted")
    return run


def _sse_event(event: str, data: dict) -> str:
    """Format a Server-Sent Event string."""
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("", status_code=status.HTTP_202_ACCEPTED)
async def create_batch(
    body: BatchCreateRequest,
    orchestrator: BatchOrchestrator = Depends(_orchestrator),
) -> dict:
    """Start a batch in the background.

    Blank keywords are dropped before validation.
    Returns 409 if a batch is already running, 422 for an invalid request.
    """
    keywords = [k.strip() for k in body.keywords if k.strip()]
    specs = job_specs_from_keywords(
        keywords,
        tone=body.tone.value,
        audience=body.audience.value,
        target_length=body.target_length,
        image_theme=body.image_theme,
    )
    overrides = body.config.to_overrides() if body.config else None

    try:
        run = orchestrator.submit(specs, overrides)
    except AlreadyRunning as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except InvalidRequest as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    logger.info("Batch %s accepted with %d keywords", run.id, len(specs))
    return serialize_run(run)


@router.get("/current")
async def get_current_batch(orchestrator: BatchOrchestrator = Depends(_orchestrator)) -> dict:
    data = serialize_run(_current_run(orchestrator))
    data["is_running"] = orchestrator.is_running
    return data


@router.get("/current/progress", response_model=ProgressResponse)
async def get_current_progress(
    orchestrator: BatchOrchestrator = Depends(_orchestrator),
) -> ProgressResponse:
    _current_run(orchestrator)
    return ProgressResponse(**orchestrator.progress().to_dict())


@router.get("/current/jobs")
async def list_current_jobs(
    orchestrator: BatchOrchestrator = Depends(_orchestrator),
    job_status: JobStatus | None = Query(default=None, alias="status"),
) -> list[dict]:
    run = _current_run(orchestrator)
    jobs = run.jobs if job_status is None else run.jobs_with_status(job_status)
    return [serialize_job(job) for job in jobs]


@router.post("/current/cancel", status_code=status.HTTP_202_ACCEPTED)
async def cancel_current_batch(orchestrator: BatchOrchestrator = Depends(_orchestrator)) -> dict:
    """Request cancellation.  Jobs already in flight run to completion."""
    run = _current_run(orchestrator)
    orchestrator.cancel()
    return {"id": run.id, "cancelled": run.cancelled, "is_running": orchestrator.is_running}


@router.get("/current/events")
async def stream_current_batch(
    orchestrator: BatchOrchestrator = Depends(_orchestrator),
) -> StreamingResponse:
    """SSE stream of ``job_update`` and ``progress`` events.

    Starts with a ``snapshot`` of the whole run and ends after the terminal
    ``batch_complete`` / ``batch_cancelled`` / ``batch_aborted`` event.
    """
    run = _current_run(orchestrator)
    # Register before taking the snapshot so nothing falls in between
    events = orchestrator.events.stream()
    snapshot = serialize_run(run)

    async def event_stream() -> AsyncGenerator[str, None]:
        try:
            yield _sse_event("snapshot", snapshot)
            async for event in events:
                yield _sse_event(event["event"], event["data"])
        finally:
            # Client gone or run over; stop queueing events for this stream
            await events.aclose()

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.delete("/current", status_code=status.HTTP_204_NO_CONTENT)
async def discard_current_batch(orchestrator: BatchOrchestrator = Depends(_orchestrator)) -> Response:
    """Forget a finished batch.  Returns 409 while it is still running."""
    _current_run(orchestrator)
    try:
        orchestrator.discard()
    except AlreadyRunning as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
