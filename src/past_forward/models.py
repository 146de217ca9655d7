"""Data models for Past Forward."""

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

UNKNOWN_ERROR = "An unknown error occurred."


class JobStatus(Enum):
    """Job processing status."""

    PENDING = "pending"
    DONE = "done"
    FAILED = "error"

    @property
    def is_terminal(self) -> bool:
        return self is not JobStatus.PENDING


@dataclass
class Job:
    """One period's generation attempt."""

    key: str
    status: JobStatus = JobStatus.PENDING
    result: Optional[Any] = None
    error: Optional[str] = None
    attempts: int = 0
    updated_at: datetime = None

    def __post_init__(self):
        if self.updated_at is None:
            self.updated_at = datetime.now(timezone.utc)

    def mark_pending(self):
        self.status = JobStatus.PENDING
        self.result = None
        self.error = None
        self.updated_at = datetime.now(timezone.utc)

    def mark_done(self, result: Any):
        self.status = JobStatus.DONE
        self.result = result
        self.error = None
        self.updated_at = datetime.now(timezone.utc)

    def mark_failed(self, error: str):
        self.status = JobStatus.FAILED
        self.result = None
        self.error = error
        self.updated_at = datetime.now(timezone.utc)

    def copy(self) -> "Job":
        return replace(self)

    def to_dict(self):
        """Convert to dictionary for the presentation layer."""
        d = {"key": self.key, "status": self.status.value, "attempts": self.attempts}
        if self.status is JobStatus.DONE:
            d["result"] = self.result
        if self.status is JobStatus.FAILED:
            d["error"] = self.error
        d["updated_at"] = self.updated_at.isoformat()
        return d


@dataclass(frozen=True)
class JobUpdate:
    """A single published job transition."""

    key: str
    status: JobStatus
    attempt: int
    result: Optional[Any] = None
    error: Optional[str] = None

    @classmethod
    def from_job(cls, job: Job) -> "JobUpdate":
        return cls(
            key=job.key,
            status=job.status,
            attempt=job.attempts,
            result=job.result,
            error=job.error,
        )


class GenerationFailed(Exception):
    """Generation of one period's image failed."""

    def __init__(self, key: str, reason: str):
        super().__init__(f"{key}: {reason}")
        self.key = key
        self.reason = reason

    @classmethod
    def from_exception(cls, key: str, exc: BaseException) -> "GenerationFailed":
        reason = str(exc) or UNKNOWN_ERROR
        return cls(key, reason)


class GeneratorError(Exception):
    """Raised by image generator backends."""


class ConfigError(Exception):
    """Invalid or missing configuration."""


@dataclass(frozen=True)
class MotionSample:
    """Instantaneous drag velocity, in input units per second."""

    x: float
    y: float
    timestamp_ms: float


@dataclass(frozen=True)
class ShakeEvent:
    """Retry trigger emitted by a shake detector."""

    timestamp_ms: float
    magnitude: float
