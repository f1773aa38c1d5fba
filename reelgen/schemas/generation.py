"""Request/response models for the generation API.

Accepts both snake_case and camelCase input; responses use camelCase.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class MediaReference(BaseModel):
    """A photo or clip already stored by the upload component."""

    path: str = Field(min_length=1)
    name: str | None = None


class AvatarPlacementRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    character: str = Field(pattern=r"^[A-Za-z0-9_-]+$", max_length=64)
    slide_index: int = Field(default=0, ge=0, alias="slideIndex")
    x: float = Field(default=50.0, ge=0, le=100)  # % of visible photo width
    y: float = Field(default=50.0, ge=0, le=100)  # % of visible photo height
    scale: float = Field(default=1.0, gt=0, le=5)


class GenerationSettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    duration: float | None = Field(default=None, gt=0)  # total seconds
    fps: int | None = Field(default=None, ge=1, le=60)
    resolution: str | None = None  # informational, canvas is fixed portrait
    timing_mode: Literal["even", "audio", "auto"] | None = Field(default=None, alias="timingMode")


class GenerateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    photos: list[MediaReference] = Field(default_factory=list)
    music: MediaReference | None = None
    settings: GenerationSettings = Field(default_factory=GenerationSettings)
    avatars: list[AvatarPlacementRequest] = Field(default_factory=list)
    session_id: str | None = Field(default=None, alias="sessionId", max_length=128)

    @field_validator("session_id")
    @classmethod
    def blank_session_is_none(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            return None
        return v


class GenerateResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    job_id: str = Field(alias="jobId")
    message: str = "Video generation started"


class ProgressResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(alias="jobId")
    progress: int
    status: str
    message: str
    result: dict[str, Any] | None = None
    error: str | None = None


class RateLimitExceededResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    error: str = "Rate limit exceeded"
    limit_type: str = Field(alias="limitType")
    details: dict[str, Any]
    reset_time: str | None = Field(default=None, alias="resetTime")
    message: str
    detail: str


class RateLimitStatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    can_generate: bool = Field(alias="canGenerate")
    backend: str
    shared: bool
    ip: dict[str, Any]
    session: dict[str, Any] | None = None


class QrCodeResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    qr_code_data_url: str = Field(alias="qrCodeDataUrl")
    video_url: str = Field(alias="videoUrl")
    expires_at: str = Field(alias="expiresAt")
