# Batch job state definitions
# Data structures for jobs, batch runs, configuration and generated output

import uuid
from dataclasses import asdict, dataclass, field, fields, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional

from batch_article_agent.errors import InvalidRequest


class JobStatus(str, Enum):
    """Lifecycle status of a single batch job."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})


class ProcessStep(str, Enum):
    """Phase marker: which producer step is in flight."""

    IDLE = "idle"
    ANALYZING = "analyzing"
    OUTLINING = "outlining"
    WRITING = "writing"
    FACT_CHECKING = "fact_checking"
    GENERATING_IMAGE = "generating_image"
    GENERATING_X_POSTS = "generating_x_posts"
    DONE = "done"

    @property
    def label(self) -> str:
        return _STEP_LABELS[self]


_STEP_LABELS = {
    ProcessStep.IDLE: "Idle",
    ProcessStep.ANALYZING: "Analyzing search results...",
    ProcessStep.OUTLINING: "Creating article outline...",
    ProcessStep.WRITING: "Writing article...",
    ProcessStep.FACT_CHECKING: "Fact-checking claims...",
    ProcessStep.GENERATING_IMAGE: "Generating image...",
    ProcessStep.GENERATING_X_POSTS: "Generating X posts...",
    ProcessStep.DONE: "Done",
}


class Tone(str, Enum):
    POLITE = "polite"
    FRIENDLY = "friendly"
    PROFESSIONAL = "professional"


class Audience(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    EXPERT = "expert"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ===== Inputs =====


@dataclass(frozen=True)
class JobSpec:
    """Input parameters for one keyword."""

    keyword: str
    tone: str = Tone.POLITE.value
    audience: str = Audience.BEGINNER.value
    target_length: int = 5000  # characters
    image_theme: str = ""


def job_specs_from_keywords(
    keywords: list[str],
    tone: str = Tone.POLITE.value,
    audience: str = Audience.BEGINNER.value,
    target_length: int = 5000,
    image_theme: str = "",
) -> list[JobSpec]:
    """Build one JobSpec per keyword, sharing the batch-wide settings."""
    return [
        JobSpec(
            keyword=keyword,
            tone=tone,
            audience=audience,
            target_length=target_length,
            image_theme=image_theme,
        )
        for keyword in keywords
    ]


@dataclass(frozen=True)
class BatchConfig:
    """Scheduling configuration. Immutable once a run starts.

    ``retry_attempts`` counts retries after the first attempt, so a job
    whose producer always fails is attempted ``retry_attempts + 1`` times.
    """

    max_concurrent_jobs: int = 2  # jobs per wave
    delay_between_jobs: float = 3.0  # seconds between waves
    retry_attempts: int = 2
    timeout: float = 300.0  # seconds per attempt
    retry_base_delay: float = 1.0  # backoff = attempt * retry_base_delay

    def __post_init__(self) -> None:
        if self.max_concurrent_jobs < 1:
            raise InvalidRequest("max_concurrent_jobs must be at least 1")
        if self.delay_between_jobs < 0:
            raise InvalidRequest("delay_between_jobs must not be negative")
        if self.retry_attempts < 0:
            raise InvalidRequest("retry_attempts must not be negative")
        if self.timeout <= 0:
            raise InvalidRequest("timeout must be positive")
        if self.retry_base_delay < 0:
            raise InvalidRequest("retry_base_delay must not be negative")

    @classmethod
    def from_overrides(
        cls,
        overrides: Optional[Mapping[str, Any]] = None,
        base: Optional["BatchConfig"] = None,
    ) -> "BatchConfig":
        """Merge a partial mapping over ``base`` (or the defaults).

        Unknown keys and ``None`` values are ignored.
        """
        base = base or cls()
        if not overrides:
            return base
        known = {f.name for f in fields(cls)}
        changes = {k: v for k, v in overrides.items() if k in known and v is not None}
        return replace(base, **changes)


# ===== Output =====


@dataclass
class XPost:
    target: str
    text: str
    type: str = "short"  # short | long | thread


@dataclass
class FactCheckSource:
    title: str
    url: str
    snippet: str = ""
    score: Optional[float] = None


@dataclass
class FactCheckResult:
    claim: str
    verdict: str  # correct | incorrect | partially-correct | unverified
    confidence: str = "low"  # high | medium | low
    explanation: str = ""
    suggested_correction: Optional[str] = None
    sources: list[FactCheckSource] = field(default_factory=list)

    @property
    def is_verified(self) -> bool:
        return self.verdict == "correct"


@dataclass
class FactCheckSummary:
    results: list[FactCheckResult] = field(default_factory=list)

    @property
    def total_claims(self) -> int:
        return len(self.results)

    @property
    def verified_claims(self) -> int:
        return sum(1 for r in self.results if r.is_verified)

    @property
    def incorrect_claims(self) -> int:
        return sum(1 for r in self.results if r.verdict == "incorrect")

    @property
    def unverified_claims(self) -> int:
        return sum(1 for r in self.results if r.verdict == "unverified")

    @property
    def overall_score(self) -> int:
        if not self.results:
            return 0
        return round(self.verified_claims / self.total_claims * 100)

    @property
    def overall_confidence(self) -> str:
        """Majority vote: high or low when more than half agree, else medium."""
        high = sum(1 for r in self.results if r.confidence == "high")
        low = sum(1 for r in self.results if r.confidence == "low")
        if high > self.total_claims / 2:
            return "high"
        if low > self.total_claims / 2:
            return "low"
        return "medium"

    @property
    def needs_review(self) -> bool:
        return (
            self.incorrect_claims > 0
            or self.unverified_claims > self.total_claims / 2
            or self.overall_confidence == "low"
        )


@dataclass
class ArticleOutput:
    """Everything produced for one keyword."""

    title: str
    markdown_content: str
    meta_description: str
    image_url: str = ""
    x_posts: list[XPost] = field(default_factory=list)
    fact_check: Optional[FactCheckSummary] = None
    cost_usd: float = 0.0

    def to_dict(self) -> dict:
        data = asdict(self)
        if self.fact_check is not None:
            data["fact_check"].update(
                total_claims=self.fact_check.total_claims,
                verified_claims=self.fact_check.verified_claims,
                unverified_claims=self.fact_check.unverified_claims,
                incorrect_claims=self.fact_check.incorrect_claims,
                overall_score=self.fact_check.overall_score,
                overall_confidence=self.fact_check.overall_confidence,
                needs_review=self.fact_check.needs_review,
            )
        return data


# ===== Jobs and runs =====


def estimate_job_duration(target_length: int) -> float:
    """Rough duration estimate in seconds: 1 minute per 2500 chars, plus 50%."""
    base = 60.0
    return float(round(base * (target_length / 2500) * 1.5))


@dataclass
class BatchJob:
    """One keyword's unit of work. Mutated only by the orchestrator."""

    spec: JobSpec
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: JobStatus = JobStatus.PENDING
    phase: ProcessStep = ProcessStep.IDLE
    output: Any = None
    error: Optional[str] = None
    attempts: int = 0
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    estimated_duration: Optional[float] = None  # seconds
    actual_duration: Optional[float] = None  # seconds

    def __post_init__(self) -> None:
        if self.estimated_duration is None:
            self.estimated_duration = estimate_job_duration(self.spec.target_length)

    @property
    def keyword(self) -> str:
        return self.spec.keyword

    def touch(self) -> None:
        self.updated_at = utcnow()

    def snapshot(self) -> "BatchJob":
        """Shallow copy handed to listeners so they never hold the live record."""
        return replace(self)


@dataclass
class ProgressSnapshot:
    """Derived view of a batch; always recomputed from the jobs."""

    total: int
    pending: int
    running: int
    completed: int
    failed: int
    cancelled: int
    overall_progress: int  # 0-100, completed / total
    estimated_time_remaining: Optional[float] = None  # seconds

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "pending": self.pending,
            "running": self.running,
            "completed": self.completed,
            "failed": self.failed,
            "cancelled": self.cancelled,
            "overall_progress": self.overall_progress,
            "estimated_time_remaining": self.estimated_time_remaining,
        }


@dataclass
class BatchRun:
    """All jobs submitted together, in submission order."""

    jobs: list[BatchJob]
    config: BatchConfig
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    started_at: datetime = field(default_factory=utcnow)
    ended_at: Optional[datetime] = None
    cancelled: bool = False
    aborted: bool = False

    @property
    def is_finished(self) -> bool:
        return self.ended_at is not None

    def get_job(self, job_id: str) -> Optional[BatchJob]:
        for job in self.jobs:
            if job.id == job_id:
                return job
        return None

    def jobs_with_status(self, status: JobStatus) -> list[BatchJob]:
        return [job for job in self.jobs if job.status == status]

    def progress(self) -> ProgressSnapshot:
        from batch_article_agent.progress import calculate_progress

        return calculate_progress(self.jobs)
