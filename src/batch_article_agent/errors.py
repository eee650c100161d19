"""Errors raised at the batch orchestrator boundary.

``InvalidRequest`` and ``AlreadyRunning`` are raised synchronously by
``BatchOrchestrator.submit``.  Per-job failures (``AttemptFailure`` and its
``TimeoutFailure`` subclass) are captured on the job record and never reach
the batch caller.  ``BatchAborted`` is the only error raised when awaiting a
run.
"""


class BatchError(Exception):
    """Base class for all batch pipeline errors."""


class InvalidRequest(BatchError):
    """Bad batch submission (empty or oversized keyword list, bad config)."""


class AlreadyRunning(BatchError):
    """A batch is already active on this orchestrator instance."""


class AttemptFailure(BatchError):
    """A single job attempt failed."""

    def __init__(self, message: str, attempt: int = 0) -> None:
        super().__init__(message)
        self.attempt = attempt


class TimeoutFailure(AttemptFailure):
    """A job attempt exceeded its deadline."""


class BatchAborted(BatchError):
    """Orchestrator-level failure outside any single job."""


class ConfigurationError(BatchError):
    """Producer configuration is missing or invalid (raised at startup)."""


def describe_error(exc: BaseException) -> str:
    """Convert an exception into display text."""
    message = str(exc).strip()
    return message or type(exc).__name__
