"""GenerationJob entity - in-memory lifecycle of one synthesis request."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from beatfoundry.core.timezone import utcnow


class JobStatus(str, Enum):
    """Status vocabulary reported by the synthesis service."""

    INITIALIZING = "INITIALIZING"
    PENDING = "PENDING"
    TEXT_SUCCESS = "TEXT_SUCCESS"
    FIRST_SUCCESS = "FIRST_SUCCESS"
    SUCCESS = "SUCCESS"
    CREATE_TASK_FAILED = "CREATE_TASK_FAILED"
    GENERATE_AUDIO_FAILED = "GENERATE_AUDIO_FAILED"
    CALLBACK_EXCEPTION = "CALLBACK_EXCEPTION"
    SENSITIVE_WORD_ERROR = "SENSITIVE_WORD_ERROR"
    ERROR = "ERROR"


# Asset list is available and is handed to reconciliation
SUCCESS_STATUSES = frozenset({JobStatus.FIRST_SUCCESS.value, JobStatus.SUCCESS.value})

FAILURE_STATUSES = frozenset(
    {
        JobStatus.CREATE_TASK_FAILED.value,
        JobStatus.GENERATE_AUDIO_FAILED.value,
        JobStatus.CALLBACK_EXCEPTION.value,
        JobStatus.SENSITIVE_WORD_ERROR.value,
        JobStatus.ERROR.value,
    }
)

TERMINAL_STATUSES = SUCCESS_STATUSES | FAILURE_STATUSES


def is_terminal_status(status: str) -> bool:
    """Return True for statuses after which no further polling occurs."""
    return status in TERMINAL_STATUSES


class InvalidStateTransition(Exception):
    """Raised when a job that already reached a terminal state is updated."""

    pass


@dataclass
class GenerationJob:
    """One outstanding synthesis request tracked while its poller runs.

    Any status string is accepted while the job is active; values outside the
    known vocabulary are treated as non-terminal progress updates.

    Attributes:
        job_id: Identifier assigned by the synthesis service
        foundry_id: Foundry that owns the resulting tracks
        title: Display label shown while the job is pending
        status: Last observed status
        error: Failure status tag once the job failed
    """

    job_id: str
    foundry_id: str
    title: str
    status: str = JobStatus.INITIALIZING.value
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return is_terminal_status(self.status)

    @property
    def succeeded(self) -> bool:
        return self.status in SUCCESS_STATUSES

    @property
    def failed(self) -> bool:
        return self.status in FAILURE_STATUSES

    def observe(self, status: str) -> bool:
        """Record a status reported by the synthesis service.

        Args:
            status: Raw status value from the status envelope

        Returns:
            True if the status changed, False if it repeated the previous value

        Raises:
            InvalidStateTransition: If the job is already in a terminal state
            ValueError: If status is empty
        """
        if not status:
            raise ValueError("status is required")
        if self.is_terminal:
            raise InvalidStateTransition(
                f"Cannot observe {status} for job {self.job_id}: "
                f"already terminal in {self.status}."
            )
        changed = status != self.status
        self.status = status
        self.updated_at = utcnow()
        if self.failed:
            self.error = status
        return changed

    def snapshot(self) -> dict:
        """Serializable view for API responses and progress events."""
        return {
            "jobId": self.job_id,
            "foundryId": self.foundry_id,
            "title": self.title,
            "status": self.status,
            "error": self.error,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }
