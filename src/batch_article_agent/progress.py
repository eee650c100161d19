"""Progress aggregation for a batch run.

The snapshot is never stored as the source of truth: it is recomputed from
the job records every time it is requested so it cannot drift.
"""

from collections import Counter
from typing import Iterable, Optional

from batch_article_agent.state import BatchJob, JobStatus, ProgressSnapshot


def calculate_progress(jobs: Iterable[BatchJob]) -> ProgressSnapshot:
    """Count jobs per status and derive percentage and remaining time.

    ``overall_progress`` tracks successful throughput only: failed and
    cancelled jobs do not count toward it.
    """
    jobs = list(jobs)
    counts = Counter(job.status for job in jobs)
    total = len(jobs)
    completed = counts[JobStatus.COMPLETED]
    pending = counts[JobStatus.PENDING]
    running = counts[JobStatus.RUNNING]

    # Half-up rounding in integer maths (round() would round 12.5 to 12)
    overall = (200 * completed + total) // (2 * total) if total else 0

    return ProgressSnapshot(
        total=total,
        pending=pending,
        running=running,
        completed=completed,
        failed=counts[JobStatus.FAILED],
        cancelled=counts[JobStatus.CANCELLED],
        overall_progress=overall,
        estimated_time_remaining=estimate_remaining(jobs, pending + running),
    )


def estimate_remaining(jobs: list[BatchJob], outstanding: int) -> Optional[float]:
    """Mean duration of completed jobs times the outstanding job count.

    Returns ``None`` until at least one job has completed.
    """
    durations = [
        job.actual_duration
        for job in jobs
        if job.status == JobStatus.COMPLETED and job.actual_duration is not None
    ]
    if not durations:
        return None
    return sum(durations) / len(durations) * outstanding
