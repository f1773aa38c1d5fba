import json
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    app_name: str = "Reelgen API"
    app_version: str = "0.1.0"
    git_hash: str = "unknown"  # Set via GIT_HASH env var at build time
    environment: Literal["development", "production"] = "development"
    debug: bool = True
    log_level: str = "INFO"

    # CORS - stored as string, parsed via computed property
    cors_origins_raw: str = "http://localhost:5173,http://localhost:3000"

    @computed_field
    @property
    def cors_origins(self) -> list[str]:
        """Parse CORS origins from pipe/comma-separated string or JSON array."""
        v = self.cors_origins_raw
        if v.startswith("["):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                pass
        if "|" in v:
            return [origin.strip() for origin in v.split("|") if origin.strip()]
        return [origin.strip() for origin in v.split(",") if origin.strip()]

    # FFmpeg
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"

    # Output canvas (portrait)
    render_output_width: int = 1080
    render_output_height: int = 1920
    render_fps: int = 30
    render_crf: int = 18
    render_preset: str = "medium"
    render_audio_bitrate: str = "192k"
    # Encoder ceiling = max(floor, multiplier * expected output duration)
    encoder_timeout_multiplier: float = 10.0
    encoder_timeout_floor_s: float = 120.0

    # Composition limits
    max_total_duration_s: float = 180.0
    max_clip_duration_s: float = 180.0
    max_slides: int = 20
    default_total_duration_s: float = 30.0

    # Avatar overlays
    avatar_base_size: int = 160
    default_bpm: float = 120.0
    avatar_baseline_bpm: float = 120.0
    tempo_min_multiplier: float = 0.5
    tempo_max_multiplier: float = 2.0

    # Working directories
    data_root: str = "/tmp/reelgen"
    uploads_dir_name: str = "uploads"
    videos_dir_name: str = "videos"
    temp_artifacts_dir_name: str = "temp-videos"
    temp_clips_dir_name: str = "temp_clips"
    avatars_dir_name: str = "avatars"

    # Rate limiting
    redis_url: str = ""  # Empty = in-process counters only
    rate_limit_key_prefix: str = "rate_limit"
    rate_limit_ip_hourly: int | None = None
    rate_limit_ip_daily: int | None = None
    rate_limit_ip_weekly: int | None = None
    rate_limit_session_hourly: int | None = None
    rate_limit_session_daily: int | None = None
    rate_limit_session_weekly: int | None = None

    # Resource lifecycle
    artifact_ttl_s: float = 300.0
    session_idle_timeout_s: float = 300.0
    session_leaving_age_s: float = 600.0
    sweep_interval_s: float = 120.0
    intermediate_max_age_s: float = 300.0
    general_max_age_s: float = 1800.0
    job_grace_period_s: float = 30.0

    @property
    def data_path(self) -> Path:
        return Path(self.data_root)

    @property
    def uploads_path(self) -> Path:
        return self.data_path / self.uploads_dir_name

    @property
    def videos_path(self) -> Path:
        return self.data_path / self.videos_dir_name

    @property
    def temp_artifacts_path(self) -> Path:
        return self.data_path / self.temp_artifacts_dir_name

    @property
    def temp_clips_path(self) -> Path:
        return self.data_path / self.temp_clips_dir_name

    @property
    def avatars_path(self) -> Path:
        return self.data_path / self.avatars_dir_name

    def rate_limits(self) -> dict[str, dict[str, int]]:
        """Per identity kind ceilings for the hourly/daily/weekly windows.

        Explicit RATE_LIMIT_* overrides win over the environment defaults.
        """
        if self.environment == "production":
            ip = {"hourly": 3, "daily": 10, "weekly": 50}
            session = {"hourly": 3, "daily": 10, "weekly": 70}
        else:
            ip = {"hourly": 50, "daily": 200, "weekly": 1000}
            session = {"hourly": 50, "daily": 200, "weekly": 1400}

        for window in ("hourly", "daily", "weekly"):
            ip_override = getattr(self, f"rate_limit_ip_{window}")
            if ip_override is not None:
                ip[window] = ip_override
            session_override = getattr(self, f"rate_limit_session_{window}")
            if session_override is not None:
                session[window] = session_override
        return {"ip": ip, "session": session}


@lru_cache
def get_settings() -> Settings:
    return Settings()
