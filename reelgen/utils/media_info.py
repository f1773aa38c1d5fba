"""Media file information utilities using FFprobe."""

import json
import subprocess

from reelgen.config import get_settings
from reelgen.exceptions import MediaProbeError


def _get_settings():
    """Get settings lazily to avoid import issues in tests."""
    return get_settings()


def _run_ffprobe(file_path: str, *args) -> dict:
    """Run ffprobe and return parsed JSON."""
    settings = _get_settings()
    cmd = [
        settings.ffprobe_path,
        "-v", "quiet",
        "-print_format", "json",
        *args,
        file_path,
    ]

    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=30)
    except (OSError, subprocess.TimeoutExpired) as e:
        raise MediaProbeError(f"ffprobe could not run on {file_path}: {e}")
    if result.returncode != 0:
        raise MediaProbeError(f"ffprobe failed on {file_path}", diagnostic=result.stderr[-200:])

    try:
        return json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise MediaProbeError(f"Failed to parse ffprobe output: {e}")


def get_media_duration(file_path: str) -> float:
    """
    Get media file duration in seconds.

    Raises:
        MediaProbeError: If ffprobe fails or duration not found
    """
    data = _run_ffprobe(file_path, "-show_format")
    format_info = data.get("format", {})

    if "duration" not in format_info:
        raise MediaProbeError(f"Duration not found in: {file_path}")

    return float(format_info["duration"])


def get_video_dimensions(file_path: str) -> tuple[int, int]:
    """
    Get width and height of the first video stream.

    Still images are reported by ffprobe as a single-frame video stream, so
    this works for photos too.

    Raises:
        MediaProbeError: If ffprobe fails or video stream not found
    """
    data = _run_ffprobe(file_path, "-show_streams", "-select_streams", "v")

    streams = data.get("streams", [])
    if not streams:
        raise MediaProbeError(f"No video stream found in: {file_path}")

    stream = streams[0]
    width = stream.get("width")
    height = stream.get("height")

    if width is None or height is None:
        raise MediaProbeError(f"Video dimensions not found in: {file_path}")

    return int(width), int(height)


def get_video_codec(file_path: str) -> str | None:
    """Return the codec name of the first video stream, or None."""
    data = _run_ffprobe(file_path, "-show_streams", "-select_streams", "v:0")
    streams = data.get("streams", [])
    if not streams:
        return None
    return streams[0].get("codec_name")


def get_format_tags(file_path: str) -> dict[str, str]:
    """Return container-level metadata tags (ID3 and friends)."""
    data = _run_ffprobe(file_path, "-show_format")
    tags = data.get("format", {}).get("tags") or {}
    return {str(k): str(v) for k, v in tags.items()}
