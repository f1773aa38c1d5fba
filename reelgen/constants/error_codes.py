"""Error codes dictionary.

Single source of truth for every error code, its retryability and the
suggested recovery hint returned to clients.
"""

from typing import TypedDict


class ErrorCodeSpec(TypedDict, total=False):
    """Specification for an error code."""

    retryable: bool
    suggested_fix: str


ERROR_CODES: dict[str, ErrorCodeSpec] = {
    # ==========================================================================
    # Input validation errors (not retryable, fix input)
    # ==========================================================================
    "INVALID_INPUT": {
        "retryable": False,
    },
    "MISSING_INPUT": {
        "retryable": False,
        "suggested_fix": "Upload at least one photo or clip and one audio track",
    },
    "DURATION_LIMIT_EXCEEDED": {
        "retryable": False,
        "suggested_fix": "Shorten the requested duration or the uploaded clips",
    },
    # ==========================================================================
    # Quota errors (retryable after reset time)
    # ==========================================================================
    "RATE_LIMIT_EXCEEDED": {
        "retryable": True,
        "suggested_fix": "Wait until resetTime before generating again",
    },
    # ==========================================================================
    # Resource errors
    # ==========================================================================
    "JOB_NOT_FOUND": {
        "retryable": False,
        "suggested_fix": "Jobs are reclaimed shortly after they finish; start a new generation",
    },
    "ARTIFACT_NOT_FOUND": {
        "retryable": False,
    },
    "ARTIFACT_EXPIRED": {
        "retryable": False,
        "suggested_fix": "Generate the video again to get a fresh link",
    },
    # ==========================================================================
    # Pipeline errors (surface only through job status)
    # ==========================================================================
    "SOURCE_NOT_FOUND": {
        "retryable": False,
    },
    "COMPOSITION_FAILED": {
        "retryable": True,
    },
    "ENCODER_TIMEOUT": {
        "retryable": True,
    },
    "MEDIA_PROBE_FAILED": {
        "retryable": False,
    },
    # ==========================================================================
    # Server errors
    # ==========================================================================
    "INTERNAL_ERROR": {
        "retryable": True,
    },
}


def get_error_spec(code: str) -> ErrorCodeSpec:
    """Get the specification for an error code.

    Unknown codes are treated as non-retryable.
    """
    return ERROR_CODES.get(code, {"retryable": False})
