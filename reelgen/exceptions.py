"""Custom exceptions for the reelgen backend.

Request-level errors carry an HTTP status and are rendered by the handlers
in ``reelgen.main``. Pipeline errors never reach a request: the job runner
turns them into the job's terminal error state.
"""

from datetime import datetime
from typing import Any

from reelgen.constants.error_codes import get_error_spec


class ReelgenError(Exception):
    """Base exception for all reelgen application errors."""

    code: str = "INTERNAL_ERROR"
    status_code: int = 500
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        status_code: int | None = None,
        suggested_fix: str | None = None,
    ):
        self.message = message or self.__class__.message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.suggested_fix = suggested_fix
        super().__init__(self.message)

    def to_error_info(self) -> dict[str, Any]:
        """Convert exception to the JSON error payload."""
        spec = get_error_spec(self.code)
        info: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "retryable": spec.get("retryable", False),
        }
        suggested_fix = self.suggested_fix or spec.get("suggested_fix")
        if suggested_fix:
            info["suggested_fix"] = suggested_fix
        return info


# =============================================================================
# Input Validation Errors (400)
# =============================================================================


class InvalidInputError(ReelgenError):
    """Request input is malformed or references unusable media."""

    code = "INVALID_INPUT"
    status_code = 400
    message = "Invalid input"


class MissingInputError(InvalidInputError):
    """A required media reference is absent or does not exist on disk."""

    code = "MISSING_INPUT"
    message = "Photos and music are required"


class DurationLimitError(InvalidInputError):
    """Requested or probed duration exceeds the platform cap."""

    code = "DURATION_LIMIT_EXCEEDED"
    message = "Duration exceeds the allowed maximum"

    def __init__(self, duration_s: float, limit_s: float, subject: str = "Requested duration"):
        self.duration_s = duration_s
        self.limit_s = limit_s
        super().__init__(
            f"{subject} {duration_s:.1f}s exceeds the maximum of {limit_s:.0f}s"
        )


# =============================================================================
# Quota Errors (429)
# =============================================================================


class RateLimitExceededError(ReelgenError):
    """Generation quota exhausted for one of the caller's identities."""

    code = "RATE_LIMIT_EXCEEDED"
    status_code = 429
    message = "Rate limit exceeded"

    def __init__(
        self,
        limit_type: str,
        details: dict[str, Any],
        reset_time: datetime | None,
    ):
        self.limit_type = limit_type
        self.details = details
        self.reset_time = reset_time
        label = "IP address" if limit_type == "ip" else "session"
        super().__init__(f"Too many video generations from this {label}. Please try again later.")


# =============================================================================
# Resource Errors (404 / 410)
# =============================================================================


class ResourceNotFoundError(ReelgenError):
    """Base class for resource not found errors."""

    status_code = 404


class JobNotFoundError(ResourceNotFoundError):
    """Job unknown or already reclaimed."""

    code = "JOB_NOT_FOUND"
    message = "Job not found"

    def __init__(self, job_id: str | None = None):
        self.job_id = job_id
        super().__init__(self.message)


class ArtifactNotFoundError(ResourceNotFoundError):
    """Artifact link unknown, or its backing file is gone."""

    code = "ARTIFACT_NOT_FOUND"
    message = "Video not found"


class ArtifactExpiredError(ReelgenError):
    """Artifact link is past its validity window."""

    code = "ARTIFACT_EXPIRED"
    status_code = 410
    message = "Video link has expired"


# =============================================================================
# Pipeline Errors (job terminal state only)
# =============================================================================


class CompositionError(ReelgenError):
    """The external encoder failed or produced no output."""

    code = "COMPOSITION_FAILED"
    message = "Video processing failed"

    def __init__(self, message: str | None = None, *, diagnostic: str = ""):
        self.diagnostic = diagnostic
        super().__init__(message)

    def __str__(self) -> str:
        if self.diagnostic:
            return f"{self.message}: {self.diagnostic}"
        return self.message


class SourceNotFoundError(CompositionError):
    """An input file vanished between validation and composition."""

    code = "SOURCE_NOT_FOUND"
    message = "Source not found"

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Source not found: {path}")


class EncoderTimeoutError(CompositionError):
    """The encoder ran past its ceiling and was killed."""

    code = "ENCODER_TIMEOUT"
    message = "Encoder timed out"

    def __init__(self, timeout_s: float):
        self.timeout_s = timeout_s
        super().__init__(f"Encoder timed out after {timeout_s:.0f}s")


class MediaProbeError(CompositionError):
    """ffprobe could not read a media file."""

    code = "MEDIA_PROBE_FAILED"
    message = "Could not read media file"
