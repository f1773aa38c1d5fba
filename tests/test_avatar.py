"""Tests for avatar overlay decoding and filter construction."""

import re
from unittest.mock import patch

from reelgen.exceptions import MediaProbeError
from reelgen.render.avatar import (
    AvatarPlacement,
    build_enable_expr,
    build_overlay_filters,
    detect_overlay_decoder,
    overlay_input_args,
    plan_overlay,
    select_decoder,
)
from reelgen.render.geometry import full_canvas

ENABLE_PATTERN = re.compile(r"^gte\(t,([\d.]+)\)\*lt\(t,([\d.]+)\)$")


def _visible(expr: str, t: float) -> bool:
    """Evaluate an enable predicate the way the overlay filter does."""
    start, end = (float(v) for v in ENABLE_PATTERN.match(expr).groups())
    return start <= t < end


def _plan(start=0, end=300, speed=1.0, decoder="libvpx-vp9", source="/avatars/cat.webm", fps=30):
    placement = AvatarPlacement(character="cat", source_path=source, slide_index=0)
    return plan_overlay(
        placement,
        full_canvas(1080, 1920),
        start,
        end,
        fps,
        base_size=160,
        speed=speed,
        decoder=decoder,
    )


class TestSelectDecoder:
    """Codec -> alpha-preserving decoder."""

    def test_vp8_and_vp9(self):
        """Both WebM codecs map to their libvpx decoder."""
        assert select_decoder("vp8") == "libvpx"
        assert select_decoder("vp9") == "libvpx-vp9"
        assert select_decoder("VP9") == "libvpx-vp9"

    def test_other_codecs_use_default(self):
        """Anything else leaves decoder choice to FFmpeg."""
        assert select_decoder("h264") is None
        assert select_decoder(None) is None

    def test_detect_probes_codec(self):
        """Detection reads the first video stream's codec."""
        with patch("reelgen.render.avatar.get_video_codec", return_value="vp8"):
            assert detect_overlay_decoder("/avatars/cat.webm") == "libvpx"

    def test_detect_survives_probe_failure(self):
        """A failed probe falls back to the default decoder."""
        with patch(
            "reelgen.render.avatar.get_video_codec",
            side_effect=MediaProbeError("bad file"),
        ):
            assert detect_overlay_decoder("/avatars/cat.webm") is None


class TestOverlayFilters:
    """filter_complex fragments for overlays."""

    def test_enable_expression(self):
        """Visibility is gated to the slide's frame range."""
        assert build_enable_expr(300, 600, 30) == "gte(t,9.9833)*lt(t,19.9833)"

    def test_overlay_stops_before_next_slide(self):
        """An overlay never shows on the first frame of the following slide."""
        first = build_enable_expr(0, 300, 30)
        second = build_enable_expr(300, 600, 30)

        assert _visible(first, 0.0)
        assert _visible(first, 299 / 30)
        assert not _visible(first, 300 / 30)
        assert not _visible(second, 299 / 30)
        assert _visible(second, 300 / 30)
        assert _visible(second, 599 / 30)
        assert not _visible(second, 600 / 30)

    def test_fractional_frame_boundaries(self):
        """Cuts that fall on non-round timestamps are still matched exactly."""
        expr = build_enable_expr(129, 257, 30)

        assert not _visible(expr, 128 / 30)
        assert _visible(expr, 129 / 30)
        assert _visible(expr, 256 / 30)
        assert not _visible(expr, 257 / 30)

    def test_input_args_loop_and_force_decoder(self):
        """Overlay inputs loop forever and force the alpha decoder."""
        assert overlay_input_args(_plan()) == [
            "-stream_loop", "-1", "-c:v", "libvpx-vp9", "-i", "/avatars/cat.webm",
        ]

    def test_input_args_without_decoder(self):
        """No -c:v when the codec is not a WebM variant."""
        assert "-c:v" not in overlay_input_args(_plan(decoder=None))

    def test_single_overlay_chain(self):
        """One overlay reads input 2 and writes the final label."""
        graph = build_overlay_filters([_plan(speed=1.25)], first_input_index=2)

        assert "[2:v]setpts=PTS/1.2500,format=yuva420p,scale=160:160[av0]" in graph
        assert "[0:v][av0]overlay=460:880:enable='gte(t,0.0000)*lt(t,9.9833)'[vout]" in graph

    def test_overlays_chain_in_order(self):
        """Each overlay composites onto the previous result."""
        graph = build_overlay_filters(
            [_plan(0, 300), _plan(300, 600)],
            first_input_index=2,
        )

        assert "[0:v][av0]overlay=" in graph
        assert "[v0]" in graph
        assert "[3:v]setpts" in graph
        assert "[v0][av1]overlay=" in graph
        assert graph.endswith("[vout]")

    def test_no_overlays(self):
        """Empty plan list gives an empty graph."""
        assert build_overlay_filters([], first_input_index=2) == ""
