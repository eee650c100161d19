# Tests for progress aggregation

from batch_article_agent.progress import calculate_progress, estimate_remaining
from batch_article_agent.state import BatchJob, JobSpec, JobStatus


def _job(status, duration=None):
    job = BatchJob(spec=JobSpec(keyword="k"))
    job.status = status
    job.actual_duration = duration
    return job


class TestCalculateProgress:
    def test_empty_batch(self):
        snapshot = calculate_progress([])
        assert snapshot.total == 0
        assert snapshot.overall_progress == 0
        assert snapshot.estimated_time_remaining is None

    def test_counts_every_status(self):
        jobs = [
            _job(JobStatus.PENDING),
            _job(JobStatus.RUNNING),
            _job(JobStatus.COMPLETED, 10.0),
            _job(JobStatus.FAILED, 5.0),
            _job(JobStatus.CANCELLED, 1.0),
        ]
        snapshot = calculate_progress(jobs)
        assert (snapshot.pending, snapshot.running, snapshot.completed) == (1, 1, 1)
        assert (snapshot.failed, snapshot.cancelled) == (1, 1)
        assert snapshot.total == 5
        assert snapshot.total == (
            snapshot.pending
            + snapshot.running
            + snapshot.completed
            + snapshot.failed
            + snapshot.cancelled
        )

    def test_failed_jobs_do_not_count_toward_progress(self):
        jobs = [_job(JobStatus.COMPLETED, 1.0), _job(JobStatus.COMPLETED, 1.0), _job(JobStatus.FAILED)]
        assert calculate_progress(jobs).overall_progress == 67

    def test_progress_rounds_half_up(self):
        # 1/8 = 12.5%
        jobs = [_job(JobStatus.COMPLETED, 1.0)] + [_job(JobStatus.PENDING) for _ in range(7)]
        assert calculate_progress(jobs).overall_progress == 13

    def test_all_completed_is_100(self):
        jobs = [_job(JobStatus.COMPLETED, 2.0) for _ in range(3)]
        snapshot = calculate_progress(jobs)
        assert snapshot.overall_progress == 100
        assert snapshot.estimated_time_remaining == 0

    def test_to_dict(self):
        data = calculate_progress([_job(JobStatus.PENDING)]).to_dict()
        assert data["total"] == 1
        assert data["pending"] == 1
        assert data["estimated_time_remaining"] is None


class TestEstimateRemaining:
    def test_none_until_a_job_completes(self):
        jobs = [_job(JobStatus.FAILED, 30.0), _job(JobStatus.PENDING)]
        assert estimate_remaining(jobs, 1) is None

    def test_mean_completed_duration_times_outstanding(self):
        jobs = [
            _job(JobStatus.COMPLETED, 10.0),
            _job(JobStatus.COMPLETED, 20.0),
            _job(JobStatus.RUNNING),
            _job(JobStatus.PENDING),
            _job(JobStatus.PENDING),
        ]
        assert estimate_remaining(jobs, 3) == 45.0
        assert calculate_progress(jobs).estimated_time_remaining == 45.0
