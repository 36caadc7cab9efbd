"""Pydantic models for the job queue: states, retry policy, stats."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class JobState(str, Enum):
    """State of a queue job."""

    waiting = "waiting"
    active = "active"
    completed = "completed"
    failed = "failed"
    dead_lettered = "dead_lettered"
    cancelled = "cancelled"


TERMINAL_STATES = frozenset({JobState.completed, JobState.dead_lettered, JobState.cancelled})


class RetryPolicy(BaseModel):
    """Attempt limit, exponential backoff and per-attempt timeout for one queue."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=3, ge=1)
    base_delay: float = Field(default=2.0, ge=0)
    multiplier: float = Field(default=2.0, ge=1)
    max_delay: float = Field(default=30.0, ge=0)
    attempt_timeout: float | None = Field(default=30.0, gt=0)

    def delay_for(self, attempt: int) -> float:
        """Backoff before the attempt following ``attempt`` (1-based)."""
        return min(self.base_delay * self.multiplier ** (attempt - 1), self.max_delay)

    def should_retry(self, attempt: int, error: BaseException) -> bool:
        if not getattr(error, "retryable", True):
            return False
        return attempt < self.max_attempts


class QueueStats(BaseModel):
    """Job counts per state for one queue."""

    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    dead_lettered: int = 0
    cancelled: int = 0
