"""Slide timeline planning."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from reelgen.render.geometry import ContentBox

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".gif", ".bmp"}
VIDEO_EXTENSIONS = {".mp4", ".mov", ".webm", ".avi", ".mkv"}


class TimingMode(str, Enum):
    """How the total duration is divided between slides."""

    EVEN = "even"  # requested total split evenly
    AUDIO = "audio"  # audio length split evenly
    AUTO = "auto"  # fixed per-slide duration tiered by slide count


@dataclass
class Slide:
    """One photo or clip segment of the composed timeline.

    Boundaries are whole frames so that every clip renders to exactly
    ``frame_count`` frames and overlays switch on the same frame as the cut.
    """

    index: int
    source_path: str
    start_frame: int
    frame_count: int
    fps: int
    is_video: bool = False
    content_box: ContentBox | None = None
    clip_path: str | None = field(default=None, repr=False)

    @property
    def end_frame(self) -> int:
        return self.start_frame + self.frame_count

    @property
    def start_s(self) -> float:
        return self.start_frame / self.fps

    @property
    def end_s(self) -> float:
        return self.end_frame / self.fps

    @property
    def duration_s(self) -> float:
        return self.frame_count / self.fps


def is_video_file(path: str) -> bool:
    return Path(path).suffix.lower() in VIDEO_EXTENSIONS


def is_image_file(path: str) -> bool:
    return Path(path).suffix.lower() in IMAGE_EXTENSIONS


def tiered_slide_duration(slide_count: int) -> float:
    """Per-slide seconds when no total duration was requested."""
    if slide_count <= 3:
        return 10.0
    if slide_count <= 6:
        return 8.0
    return 5.0


def plan_total_duration(
    slide_count: int,
    mode: TimingMode,
    *,
    requested_s: float | None,
    audio_duration_s: float | None,
    max_total_s: float,
) -> float:
    """Total timeline length for the chosen mode, capped at ``max_total_s``."""
    if slide_count <= 0:
        raise ValueError("At least one slide is required")

    if mode == TimingMode.EVEN and requested_s:
        total = requested_s
    elif mode == TimingMode.AUDIO and audio_duration_s:
        total = audio_duration_s
    else:
        total = tiered_slide_duration(slide_count) * slide_count
    return min(total, max_total_s)


def build_timeline(source_paths: list[str], total_duration_s: float, fps: int) -> list[Slide]:
    """Lay slides back to back in input order, splitting the total evenly.

    The total is rounded to whole frames and each boundary to the nearest
    frame, so slide lengths differ by at most one frame.
    """
    if not source_paths:
        raise ValueError("At least one slide is required")
    if fps <= 0:
        raise ValueError("fps must be positive")

    count = len(source_paths)
    total_frames = max(count, round(total_duration_s * fps))
    # Integer rounding of i * total_frames / count
    bounds = [(i * total_frames + count // 2) // count for i in range(count + 1)]
    return [
        Slide(
            index=i,
            source_path=path,
            start_frame=bounds[i],
            frame_count=bounds[i + 1] - bounds[i],
            fps=fps,
            is_video=is_video_file(path),
        )
        for i, path in enumerate(source_paths)
    ]

