"""Observer surface between the batch orchestrator and any UI layer.

Two notification kinds, both fire-and-forget:

    job_update   every status or phase change of a single job
    progress     after each wave completes

Listeners register with ``subscribe_progress`` / ``subscribe_jobs`` (each
returns an unsubscribe callable) or iterate ``stream()``, which yields
SSE-compatible ``{"event": ..., "data": ...}`` dicts until the run ends.
"""

import asyncio
import dataclasses
import logging
from typing import Any, Callable, Optional

from batch_article_agent.state import BatchJob, BatchRun, ProgressSnapshot

logger = logging.getLogger(__name__)

ProgressListener = Callable[[ProgressSnapshot], None]
JobListener = Callable[[BatchJob], None]

# Terminal stream events; the stream closes after one of these
EVENT_BATCH_COMPLETE = "batch_complete"
EVENT_BATCH_CANCELLED = "batch_cancelled"
EVENT_BATCH_ABORTED = "batch_aborted"

_STREAM_END = object()


def serialize_output(output: Any) -> Any:
    """Best-effort JSON-friendly form of an opaque producer output."""
    if output is None:
        return None
    if hasattr(output, "to_dict"):
        return output.to_dict()
    if dataclasses.is_dataclass(output) and not isinstance(output, type):
        return dataclasses.asdict(output)
    if isinstance(output, (dict, list, str, int, float, bool)):
        return output
    return str(output)


def serialize_job(job: BatchJob, include_output: bool = True) -> dict[str, Any]:
    data = {
        "id": job.id,
        "keyword": job.spec.keyword,
        "tone": job.spec.tone,
        "audience": job.spec.audience,
        "target_length": job.spec.target_length,
        "image_theme": job.spec.image_theme,
        "status": job.status.value,
        "phase": job.phase.value,
        "phase_label": job.phase.label,
        "error": job.error,
        "attempts": job.attempts,
        "created_at": job.created_at.isoformat(),
        "updated_at": job.updated_at.isoformat(),
        "estimated_duration": job.estimated_duration,
        "actual_duration": job.actual_duration,
    }
    if include_output:
        data["output"] = serialize_output(job.output)
    return data


def serialize_run(run: BatchRun, include_jobs: bool = True) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": run.id,
        "started_at": run.started_at.isoformat(),
        "ended_at": run.ended_at.isoformat() if run.ended_at else None,
        "cancelled": run.cancelled,
        "aborted": run.aborted,
        "config": dataclasses.asdict(run.config),
        "progress": run.progress().to_dict(),
    }
    if include_jobs:
        data["jobs"] = [serialize_job(job) for job in run.jobs]
    return data


class BatchEventBus:
    """Subscriber lists plus queue-backed async streams."""

    def __init__(self) -> None:
        self._progress_listeners: list[ProgressListener] = []
        self._job_listeners: list[JobListener] = []
        self._queues: list[asyncio.Queue] = []
        self._final_event: Optional[dict[str, Any]] = None

    # ------------------------------------------------------------------
    # Subscription
    # ------------------------------------------------------------------

    def subscribe_progress(self, listener: ProgressListener) -> Callable[[], None]:
        self._progress_listeners.append(listener)
        return lambda: self._remove(self._progress_listeners, listener)

    def subscribe_jobs(self, listener: JobListener) -> Callable[[], None]:
        self._job_listeners.append(listener)
        return lambda: self._remove(self._job_listeners, listener)

    @staticmethod
    def _remove(listeners: list, listener: Callable) -> None:
        if listener in listeners:
            listeners.remove(listener)

    def stream(self) -> "EventStream":
        """Return an async iterator over events of the current run.

        The queue is registered immediately, so events published between
        this call and the first iteration are not lost.  If the run already
        ended, only its terminal event is yielded.  Call ``aclose()`` when a
        consumer stops early so the queue is released.
        """
        queue: asyncio.Queue = asyncio.Queue()
        if self._final_event is not None:
            queue.put_nowait(self._final_event)
            queue.put_nowait(_STREAM_END)
        else:
            self._queues.append(queue)
        return EventStream(self, queue)

    def _release(self, queue: asyncio.Queue) -> None:
        self._remove(self._queues, queue)

    # ------------------------------------------------------------------
    # Publishing (orchestrator side)
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Prepare for a new run; listeners stay registered."""
        self._final_event = None

    def publish_job(self, job: BatchJob) -> None:
        snapshot = job.snapshot()
        for listener in list(self._job_listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Job listener failed for job %s", job.id)
        self._put({"event": "job_update", "data": serialize_job(snapshot)})

    def publish_progress(self, snapshot: ProgressSnapshot) -> None:
        for listener in list(self._progress_listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Progress listener failed")
        self._put({"event": "progress", "data": snapshot.to_dict()})

    def close(self, event: str, data: dict[str, Any]) -> None:
        """Publish the terminal event and end every open stream."""
        self._final_event = {"event": event, "data": data}
        self._put(self._final_event)
        for queue in list(self._queues):
            queue.put_nowait(_STREAM_END)

    def _put(self, item: dict[str, Any]) -> None:
        for queue in list(self._queues):
            queue.put_nowait(item)


class EventStream:
    """One consumer's view of the bus; ends after the terminal event."""

    def __init__(self, bus: BatchEventBus, queue: asyncio.Queue) -> None:
        self._bus = bus
        self._queue: Optional[asyncio.Queue] = queue

    def __aiter__(self) -> "EventStream":
        return self

    async def __anext__(self) -> dict[str, Any]:
        if self._queue is None:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _STREAM_END:
            await self.aclose()
            raise StopAsyncIteration
        return item

    async def aclose(self) -> None:
        if self._queue is not None:
            self._bus._release(self._queue)
            self._queue = None
