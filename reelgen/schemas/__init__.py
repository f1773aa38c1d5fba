from reelgen.schemas.generation import (
    AvatarPlacementRequest,
    GenerateRequest,
    GenerateResponse,
    GenerationSettings,
    MediaReference,
    ProgressResponse,
    QrCodeResponse,
    RateLimitExceededResponse,
    RateLimitStatusResponse,
)
from reelgen.schemas.session import (
    CleanupResponse,
    HeartbeatRequest,
    HeartbeatResponse,
    RegisterFilesRequest,
    RegisterFilesResponse,
)

__all__ = [
    "AvatarPlacementRequest",
    "GenerateRequest",
    "GenerateResponse",
    "GenerationSettings",
    "MediaReference",
    "ProgressResponse",
    "QrCodeResponse",
    "RateLimitExceededResponse",
    "RateLimitStatusResponse",
    "CleanupResponse",
    "HeartbeatRequest",
    "HeartbeatResponse",
    "RegisterFilesRequest",
    "RegisterFilesResponse",
]
