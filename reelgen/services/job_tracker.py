"""In-memory generation job tracker.

Records are memory-resident and per-instance. A job moves
initializing -> processing -> completed | error and never leaves a terminal
state; terminal records disappear after a short grace period so a polling
client can still observe the outcome.
"""

import logging
import threading
import time
import uuid
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)


class JobStatus(str, Enum):
    """Generation job status."""

    INITIALIZING = "initializing"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.ERROR})


@dataclass
class GenerationJob:
    """A generation request's lifecycle record."""

    id: str
    status: JobStatus = JobStatus.INITIALIZING
    progress: int = 0
    message: str = "Starting video generation..."
    result: dict[str, Any] | None = None
    error: str | None = None
    created_at: float = 0.0
    finished_at: float | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the progress endpoint."""
        data: dict[str, Any] = {
            "jobId": self.id,
            "progress": self.progress,
            "status": self.status.value,
            "message": self.message,
        }
        if self.result is not None:
            data["result"] = self.result
        if self.error is not None:
            data["error"] = self.error
        return data


class JobTracker:
    """Thread-safe job store with a terminal-state grace period."""

    def __init__(
        self,
        grace_period_s: float = 30.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._jobs: dict[str, GenerationJob] = {}
        self._lock = threading.Lock()
        self._grace = grace_period_s
        self._clock = clock

    def create(self, job_id: str | None = None) -> GenerationJob:
        """Insert a fresh record at 0% and return a snapshot of it."""
        job = GenerationJob(id=job_id or f"job_{uuid.uuid4().hex}", created_at=self._clock())
        with self._lock:
            if job.id in self._jobs:
                raise ValueError(f"Job already exists: {job.id}")
            self._jobs[job.id] = job
            return replace(job)

    def get(self, job_id: str) -> GenerationJob | None:
        """Snapshot of a job, or None if unknown or reclaimed."""
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            if self._is_reclaimable(job, self._clock()):
                del self._jobs[job_id]
                return None
            return replace(job)

    def update_progress(self, job_id: str, progress: int, message: str) -> bool:
        """Record progress; the first update moves the job to processing.

        Progress never decreases and stays below 100 until completion.
        Returns False when the job is unknown or already terminal.
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.is_terminal:
                return False
            job.status = JobStatus.PROCESSING
            job.progress = max(job.progress, min(99, max(0, int(progress))))
            job.message = message
            return True

    def complete(self, job_id: str, result: dict[str, Any]) -> bool:
        """Terminal success transition."""
        return self._finish(
            job_id,
            JobStatus.COMPLETED,
            message="Video generated successfully!",
            result=result,
        )

    def fail(self, job_id: str, error: str) -> bool:
        """Terminal failure transition."""
        return self._finish(
            job_id,
            JobStatus.ERROR,
            message="Video processing failed",
            error=error,
        )

    def _finish(
        self,
        job_id: str,
        status: JobStatus,
        *,
        message: str,
        result: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> bool:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                logger.warning(f"[JOBS] Terminal transition for unknown job {job_id}")
                return False
            if job.is_terminal:
                logger.warning(
                    f"[JOBS] Ignoring {status.value} for job {job_id}, already {job.status.value}"
                )
                return False
            job.status = status
            job.message = message
            job.finished_at = self._clock()
            if status == JobStatus.COMPLETED:
                job.progress = 100
                job.result = result
            else:
                job.error = error
            return True

    def active_ids(self) -> list[str]:
        """Ids of jobs that have not reached a terminal state."""
        with self._lock:
            return [k for k, v in self._jobs.items() if not v.is_terminal]

    def prune(self) -> int:
        """Delete terminal records past their grace period."""
        with self._lock:
            now = self._clock()
            expired = [k for k, v in self._jobs.items() if self._is_reclaimable(v, now)]
            for k in expired:
                del self._jobs[k]
            return len(expired)

    def _is_reclaimable(self, job: GenerationJob, now: float) -> bool:
        """Terminal and past the grace period (called under lock)."""
        return job.finished_at is not None and now - job.finished_at >= self._grace

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)
