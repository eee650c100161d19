"""Batch orchestrator: runs many article jobs with bounded concurrency.

Jobs are processed in fixed-size waves of ``max_concurrent_jobs``.  Every job
in a wave runs concurrently; the next wave starts only after every job of the
current one has settled, with ``delay_between_jobs`` seconds in between to
smooth the request rate against upstream rate limits.

Each job attempt awaits the producer under a single timeout covering all of
its phases.  A failed attempt is retried inside the job's own loop after
``attempt * retry_base_delay`` seconds, up to ``retry_attempts`` retries.

Cancellation is cooperative: the flag is checked at wave boundaries and
before a retry.  ``cancel()`` never preempts an in-flight attempt;
``shutdown()`` interrupts attempts still running after its grace period.

One batch at a time per orchestrator instance; concurrent batches need
separate instances.
"""

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any, Iterable, Mapping, Optional, Union

from batch_article_agent.errors import (
    AlreadyRunning,
    AttemptFailure,
    BatchAborted,
    InvalidRequest,
    TimeoutFailure,
    describe_error,
)
from batch_article_agent.events import (
    EVENT_BATCH_ABORTED,
    EVENT_BATCH_CANCELLED,
    EVENT_BATCH_COMPLETE,
    BatchEventBus,
    serialize_run,
)
from batch_article_agent.progress import calculate_progress
from batch_article_agent.state import (
    BatchConfig,
    BatchJob,
    BatchRun,
    JobSpec,
    JobStatus,
    ProcessStep,
    ProgressSnapshot,
    utcnow,
)

if TYPE_CHECKING:
    from batch_article_agent.producer import ArticleProducer, PhaseReporter

logger = logging.getLogger(__name__)

# Keywords accepted per batch
MAX_BATCH_JOBS = 20


class BatchOrchestrator:
    """Schedules, retries, times out and tracks a batch of article jobs."""

    def __init__(
        self,
        producer: "ArticleProducer",
        *,
        max_jobs: int = MAX_BATCH_JOBS,
        default_config: Optional[BatchConfig] = None,
        events: Optional[BatchEventBus] = None,
    ) -> None:
        self._producer = producer
        self._max_jobs = max_jobs
        self._default_config = default_config or BatchConfig()
        self.events = events or BatchEventBus()

        self._run: Optional[BatchRun] = None
        self._task: Optional[asyncio.Task] = None
        self._running = False
        self._cancel_requested = False

    # ------------------------------------------------------------------
    # Read-only accessors
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def current_run(self) -> Optional[BatchRun]:
        return self._run

    @property
    def jobs(self) -> list[BatchJob]:
        return list(self._run.jobs) if self._run else []

    @property
    def max_jobs(self) -> int:
        return self._max_jobs

    @property
    def default_config(self) -> BatchConfig:
        return self._default_config

    def progress(self) -> ProgressSnapshot:
        """Recompute the progress snapshot from the current job states."""
        if self._run is None:
            return calculate_progress([])
        return self._run.progress()

    # ------------------------------------------------------------------
    # Subscriptions (delegated to the event bus)
    # ------------------------------------------------------------------

    def subscribe_progress(self, listener):
        return self.events.subscribe_progress(listener)

    def subscribe_jobs(self, listener):
        return self.events.subscribe_jobs(listener)

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def submit(
        self,
        specs: Iterable[JobSpec],
        config: Union[BatchConfig, Mapping[str, Any], None] = None,
    ) -> BatchRun:
        """Create one job per spec and start processing in the background.

        Must be called from a running event loop.  Returns immediately.

        Raises:
            AlreadyRunning: a batch is already active on this instance.
            InvalidRequest: empty or oversized spec list, or invalid config.
        """
        if self._running:
            raise AlreadyRunning("A batch is already running")

        specs = list(specs)
        if not specs:
            raise InvalidRequest("At least one keyword is required")
        if len(specs) > self._max_jobs:
            raise InvalidRequest(
                f"At most {self._max_jobs} keywords can be processed at once "
                f"(got {len(specs)})"
            )

        if config is None:
            config = self._default_config
        elif not isinstance(config, BatchConfig):
            config = BatchConfig.from_overrides(config, base=self._default_config)

        loop = asyncio.get_running_loop()

        run = BatchRun(jobs=[BatchJob(spec=spec) for spec in specs], config=config)
        self._run = run
        self._running = True
        self._cancel_requested = False
        self.events.reset()

        self._task = loop.create_task(self._execute(run))
        self._task.add_done_callback(self._on_task_done)

        logger.info(
            "Batch %s submitted: %d jobs, concurrency=%d, retries=%d, timeout=%.0fs",
            run.id,
            len(run.jobs),
            config.max_concurrent_jobs,
            config.retry_attempts,
            config.timeout,
        )
        return run

    async def wait(self) -> BatchRun:
        """Wait for the submitted batch to finish.

        Raises:
            BatchAborted: the run failed at orchestrator level.
        """
        if self._task is None:
            raise InvalidRequest("No batch has been submitted")
        task = self._task
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            # Only a cancelled batch task is an abort; a cancelled waiter re-raises
            if task.cancelled():
                raise BatchAborted("Batch task was cancelled") from None
            raise

    async def run(
        self,
        specs: Iterable[JobSpec],
        config: Union[BatchConfig, Mapping[str, Any], None] = None,
    ) -> BatchRun:
        """Submit a batch and wait for it to finish."""
        self.submit(specs, config)
        return await self.wait()

    def cancel(self) -> None:
        """Request cooperative cancellation.  A second call is a no-op."""
        if not self._running or self._cancel_requested:
            return
        self._cancel_requested = True
        if self._run is not None:
            self._run.cancelled = True
            logger.info("Cancellation requested for batch %s", self._run.id)

    async def shutdown(self, grace_period: float) -> None:
        """Cancel the active batch and let in-flight attempts settle.

        Attempts still running after ``grace_period`` seconds are interrupted
        and the run is aborted.
        """
        task = self._task
        if task is None or task.done():
            return
        self.cancel()
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=grace_period)
        except asyncio.TimeoutError:
            logger.warning(
                "Batch %s still running after %.0fs grace period; aborting",
                self._run.id if self._run else "?",
                grace_period,
            )
            task.cancel()
            await asyncio.wait({task})
        except BatchAborted:
            pass

    def discard(self) -> None:
        """Forget a finished batch."""
        if self._running:
            raise AlreadyRunning("Cannot discard a batch while it is running")
        self._run = None
        self._task = None

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _on_task_done(self, task: asyncio.Task) -> None:
        # Mark the exception retrieved; wait() still re-raises it
        if not task.cancelled():
            task.exception()

    async def _execute(self, run: BatchRun) -> BatchRun:
        try:
            await self._process_batch(run)
        except Exception as exc:
            message = describe_error(exc)
            logger.exception("Batch %s aborted", run.id)
            self._abort(run, message)
            raise BatchAborted(message) from exc
        except asyncio.CancelledError:
            logger.warning("Batch %s task was cancelled", run.id)
            self._abort(run, "Batch task was cancelled")
            raise
        else:
            run.ended_at = utcnow()
            event = EVENT_BATCH_CANCELLED if run.cancelled else EVENT_BATCH_COMPLETE
            snapshot = run.progress()
            logger.info(
                "Batch %s finished (%s): %d completed, %d failed, %d cancelled, %d pending",
                run.id,
                event,
                snapshot.completed,
                snapshot.failed,
                snapshot.cancelled,
                snapshot.pending,
            )
            self.events.close(event, serialize_run(run, include_jobs=False))
            return run
        finally:
            self._running = False

    def _abort(self, run: BatchRun, message: str) -> None:
        """Force every non-terminal job to FAILED after an orchestrator error."""
        for job in run.jobs:
            if not job.status.is_terminal:
                job.status = JobStatus.FAILED
                job.output = None
                job.error = f"Batch aborted: {message}"
                job.touch()
                self.events.publish_job(job)
        run.aborted = True
        run.ended_at = utcnow()
        self.events.close(EVENT_BATCH_ABORTED, {"id": run.id, "message": message})

    @staticmethod
    def _waves(jobs: list[BatchJob], size: int) -> list[list[BatchJob]]:
        """Partition jobs into consecutive waves of at most ``size``."""
        return [jobs[i : i + size] for i in range(0, len(jobs), size)]

    async def _process_batch(self, run: BatchRun) -> None:
        config = run.config
        pending = [job for job in run.jobs if job.status == JobStatus.PENDING]
        waves = self._waves(pending, config.max_concurrent_jobs)

        for index, wave in enumerate(waves):
            if self._cancel_requested:
                logger.info("Batch %s cancelled before wave %d/%d", run.id, index + 1, len(waves))
                return

            if index > 0 and config.delay_between_jobs > 0:
                await asyncio.sleep(config.delay_between_jobs)
                if self._cancel_requested:
                    logger.info("Batch %s cancelled before wave %d/%d", run.id, index + 1, len(waves))
                    return

            logger.info(
                "Batch %s wave %d/%d: %s",
                run.id,
                index + 1,
                len(waves),
                ", ".join(job.keyword for job in wave),
            )
            results = await asyncio.gather(
                *(self._process_job(job, config) for job in wave),
                return_exceptions=True,
            )
            # _process_job captures producer errors; anything surfacing here
            # is an orchestrator fault.
            for result in results:
                if isinstance(result, BaseException):
                    raise result

            self.events.publish_progress(run.progress())

    # ------------------------------------------------------------------
    # Per-job execution
    # ------------------------------------------------------------------

    async def _process_job(self, job: BatchJob, config: BatchConfig) -> None:
        started = time.monotonic()
        max_attempts = config.retry_attempts + 1

        while True:
            job.attempts += 1
            attempt = job.attempts
            self._set_status(job, JobStatus.RUNNING)

            try:
                output = await self._run_attempt(job, attempt, config.timeout)
            except AttemptFailure as exc:
                error = exc
            else:
                job.output = output
                job.error = None
                job.status = JobStatus.COMPLETED
                job.actual_duration = time.monotonic() - started
                job.touch()
                self.events.publish_job(job)
                logger.info(
                    "Job %s (%s) completed in %.1fs after %d attempt(s)",
                    job.id,
                    job.keyword,
                    job.actual_duration,
                    attempt,
                )
                return

            logger.warning(
                "Job %s (%s) attempt %d/%d failed: %s",
                job.id,
                job.keyword,
                attempt,
                max_attempts,
                error,
            )

            if self._cancel_requested:
                self._finish(job, JobStatus.CANCELLED, f"Cancelled after {attempt} attempts: {error}", started)
                return
            if attempt >= max_attempts:
                self._finish(job, JobStatus.FAILED, f"Failed after {attempt} attempts: {error}", started)
                return

            # Back to PENDING until the backoff elapses
            job.status = JobStatus.PENDING
            job.phase = ProcessStep.IDLE
            job.touch()
            self.events.publish_job(job)

            await asyncio.sleep(attempt * config.retry_base_delay)

            if self._cancel_requested:
                self._finish(job, JobStatus.CANCELLED, f"Cancelled after {attempt} attempts: {error}", started)
                return

    async def _run_attempt(self, job: BatchJob, attempt: int, timeout: float) -> Any:
        """Run one producer attempt under the deadline.

        The producer runs as its own task so that a deadline is told apart
        from a ``TimeoutError`` or ``CancelledError`` the producer raises
        itself.  Every attempt failure surfaces as ``AttemptFailure``.
        """
        task = asyncio.ensure_future(
            self._producer.produce(job.spec, self._phase_reporter(job, attempt))
        )
        try:
            done, _ = await asyncio.wait({task}, timeout=timeout)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if not done:
            task.cancel()
            await asyncio.wait({task})
            if not task.cancelled():
                task.exception()
            raise TimeoutFailure(f"Job timed out after {timeout:g}s", attempt)

        if task.cancelled():
            raise AttemptFailure("Producer was cancelled unexpectedly", attempt)
        exc = task.exception()
        if exc is not None:
            raise AttemptFailure(describe_error(exc), attempt) from exc
        return task.result()

    def _set_status(self, job: BatchJob, status: JobStatus) -> None:
        job.status = status
        job.touch()
        self.events.publish_job(job)

    def _finish(self, job: BatchJob, status: JobStatus, error: str, started: float) -> None:
        job.status = status
        job.output = None
        job.error = error
        job.actual_duration = time.monotonic() - started
        job.touch()
        self.events.publish_job(job)
        if status == JobStatus.FAILED:
            logger.error("Job %s (%s) %s", job.id, job.keyword, error)
        else:
            logger.info("Job %s (%s) %s", job.id, job.keyword, error)

    def _phase_reporter(self, job: BatchJob, attempt: int) -> "PhaseReporter":
        def report(step: ProcessStep) -> None:
            # Ignore reports from an attempt that is no longer current
            if job.status != JobStatus.RUNNING or job.attempts != attempt:
                return
            step = ProcessStep(step)
            if step == job.phase:
                return
            job.phase = step
            job.touch()
            self.events.publish_job(job)

        return report
