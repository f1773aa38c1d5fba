"""Best-effort tempo matching between the music track and avatar overlays.

This is a perceptual heuristic, not beat tracking: the BPM comes from
whatever the audio file's metadata claims, and the resulting playback speed
is clamped so an absurd tag can never make an avatar freeze or blur.
"""

import logging

from reelgen.exceptions import MediaProbeError
from reelgen.utils.media_info import get_format_tags

logger = logging.getLogger(__name__)

DEFAULT_BPM = 120.0
BPM_TAG_NAMES = ("BPM", "bpm", "TBPM", "tbpm")


def parse_bpm(tags: dict[str, str]) -> float | None:
    """Extract a positive BPM value from metadata tags, if any."""
    for name in BPM_TAG_NAMES:
        raw = tags.get(name)
        if raw is None:
            continue
        try:
            bpm = float(str(raw).strip())
        except ValueError:
            continue
        if bpm > 0:
            return bpm
    return None


def detect_audio_bpm(audio_path: str, default: float = DEFAULT_BPM) -> float:
    """Read the BPM tag from an audio file, falling back to ``default``."""
    try:
        tags = get_format_tags(audio_path)
    except MediaProbeError as e:
        logger.warning(f"[TEMPO] Could not read tags from {audio_path}: {e}")
        return default

    bpm = parse_bpm(tags)
    if bpm is None:
        logger.info(f"[TEMPO] No BPM tag in {audio_path}, using default {default}")
        return default
    return bpm


def tempo_multiplier(
    music_bpm: float,
    baseline_bpm: float = DEFAULT_BPM,
    minimum: float = 0.5,
    maximum: float = 2.0,
) -> float:
    """Playback speed for an overlay animated at ``baseline_bpm``.

    Always within ``[minimum, maximum]``; non-positive inputs give 1.0.
    """
    if music_bpm <= 0 or baseline_bpm <= 0:
        return 1.0
    return max(minimum, min(maximum, music_bpm / baseline_bpm))
