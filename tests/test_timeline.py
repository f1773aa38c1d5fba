"""Tests for slide timing."""

import pytest

from reelgen.render.timeline import (
    TimingMode,
    build_timeline,
    is_image_file,
    is_video_file,
    plan_total_duration,
    tiered_slide_duration,
)


class TestTieredDuration:
    """Default per-slide duration by slide count."""

    @pytest.mark.parametrize(
        "count,expected",
        [(1, 10.0), (3, 10.0), (4, 8.0), (6, 8.0), (7, 5.0), (20, 5.0)],
    )
    def test_tiers(self, count, expected):
        """Fewer slides stay on screen longer."""
        assert tiered_slide_duration(count) == expected


class TestPlanTotalDuration:
    """Total timeline length per timing mode."""

    def test_even_uses_requested_total(self):
        """Even mode honours the requested duration."""
        assert plan_total_duration(
            3, TimingMode.EVEN, requested_s=30, audio_duration_s=200, max_total_s=180
        ) == 30

    def test_audio_mode_follows_music(self):
        """Audio mode uses the music length."""
        assert plan_total_duration(
            4, TimingMode.AUDIO, requested_s=None, audio_duration_s=42.5, max_total_s=180
        ) == 42.5

    def test_audio_mode_capped(self):
        """Long music never exceeds the platform cap."""
        assert plan_total_duration(
            4, TimingMode.AUDIO, requested_s=None, audio_duration_s=600, max_total_s=180
        ) == 180

    def test_auto_mode_tiers(self):
        """Auto mode multiplies the tiered duration by the slide count."""
        assert plan_total_duration(
            5, TimingMode.AUTO, requested_s=None, audio_duration_s=None, max_total_s=180
        ) == 40

    def test_auto_mode_capped(self):
        """Many slides in auto mode are squeezed into the cap."""
        assert plan_total_duration(
            20, TimingMode.AUTO, requested_s=None, audio_duration_s=None, max_total_s=60
        ) == 60

    def test_no_slides(self):
        """Zero slides is a programming error."""
        with pytest.raises(ValueError):
            plan_total_duration(0, TimingMode.EVEN, requested_s=10, audio_duration_s=None, max_total_s=60)


class TestBuildTimeline:
    """Slides laid back to back."""

    def test_even_split_in_input_order(self):
        """Three slides over 30s get 10s each, in order."""
        slides = build_timeline(["/a.jpg", "/b.png", "/c.mp4"], 30.0, fps=30)

        assert [s.source_path for s in slides] == ["/a.jpg", "/b.png", "/c.mp4"]
        assert [s.start_s for s in slides] == [0.0, 10.0, 20.0]
        assert all(s.duration_s == 10.0 for s in slides)
        assert all(s.frame_count == 300 for s in slides)
        assert slides[-1].end_s == 30.0
        assert [s.is_video for s in slides] == [False, False, True]

    def test_uneven_split_is_frame_exact(self):
        """7 slides over 30s at 30fps: boundaries are whole, gapless frames."""
        slides = build_timeline([f"/s{i}.jpg" for i in range(7)], 30.0, fps=30)

        assert [s.start_frame for s in slides] == [0, 129, 257, 386, 514, 643, 771]
        assert sum(s.frame_count for s in slides) == 900
        assert all(s.frame_count in (128, 129) for s in slides)
        for prev, cur in zip(slides, slides[1:]):
            assert cur.start_frame == prev.end_frame
            assert cur.start_s == prev.end_s
        # Each cut is within half a frame of the ideal even split
        for i, slide in enumerate(slides):
            assert abs(slide.start_frame - i * 900 / 7) <= 0.5
        assert slides[-1].end_s == 30.0

    def test_every_slide_gets_a_frame(self):
        """Tiny totals still give each slide at least one frame."""
        slides = build_timeline([f"/s{i}.jpg" for i in range(5)], 0.05, fps=30)

        assert [s.frame_count for s in slides] == [1, 1, 1, 1, 1]

    def test_media_kinds(self):
        """Extensions decide image vs video."""
        assert is_image_file("/x/photo.JPEG")
        assert is_video_file("/x/clip.MOV")
        assert not is_image_file("/x/notes.txt")
        assert not is_video_file("/x/notes.txt")
