"""Tests for the BPM tempo heuristic."""

from unittest.mock import patch

import pytest

from reelgen.exceptions import MediaProbeError
from reelgen.render.tempo import DEFAULT_BPM, detect_audio_bpm, parse_bpm, tempo_multiplier


class TestParseBpm:
    """Reading BPM from metadata tags."""

    @pytest.mark.parametrize("name", ["BPM", "bpm", "TBPM", "tbpm"])
    def test_known_tag_names(self, name):
        """Every common spelling of the BPM tag is accepted."""
        assert parse_bpm({name: "128"}) == 128.0

    def test_ignores_garbage_and_non_positive(self):
        """Unparsable or non-positive values are skipped."""
        assert parse_bpm({"BPM": "fast", "bpm": "0", "TBPM": "96.5"}) == 96.5
        assert parse_bpm({"BPM": "-10"}) is None

    def test_no_tags(self):
        """No BPM tag at all gives None."""
        assert parse_bpm({"title": "song"}) is None


class TestDetectAudioBpm:
    """BPM lookup with fallback."""

    def test_uses_tag_value(self):
        """A tagged file reports its BPM."""
        with patch("reelgen.render.tempo.get_format_tags", return_value={"TBPM": "140"}):
            assert detect_audio_bpm("/music.mp3") == 140.0

    def test_falls_back_when_untagged(self):
        """Untagged audio uses the default BPM."""
        with patch("reelgen.render.tempo.get_format_tags", return_value={}):
            assert detect_audio_bpm("/music.mp3") == DEFAULT_BPM

    def test_falls_back_when_probe_fails(self):
        """Probe errors never fail the composition."""
        with patch(
            "reelgen.render.tempo.get_format_tags",
            side_effect=MediaProbeError("ffprobe failed"),
        ):
            assert detect_audio_bpm("/music.mp3", default=100.0) == 100.0


class TestTempoMultiplier:
    """Clamped overlay playback speed."""

    def test_ratio_to_baseline(self):
        """Speed is music BPM over the overlay's baseline BPM."""
        assert tempo_multiplier(150, 120) == pytest.approx(1.25)

    def test_clamped_to_bounds(self):
        """Extreme tags are clamped to [0.5, 2.0]."""
        assert tempo_multiplier(30, 120) == 0.5
        assert tempo_multiplier(600, 120) == 2.0

    def test_custom_bounds(self):
        """Bounds are configurable."""
        assert tempo_multiplier(600, 120, minimum=0.8, maximum=1.5) == 1.5

    def test_non_positive_inputs(self):
        """Degenerate inputs mean normal speed."""
        assert tempo_multiplier(0, 120) == 1.0
        assert tempo_multiplier(120, 0) == 1.0
