"""Avatar overlay placement and filter construction.

Avatars are short transparent WebM loops. Their alpha channel only survives
decoding when the matching libvpx decoder is forced on the input, so the
codec is probed first and the decoder chosen from it.
"""

import logging
from dataclasses import dataclass

from reelgen.exceptions import MediaProbeError
from reelgen.render.geometry import ContentBox, OverlayOrigin, resolve_overlay_origin
from reelgen.utils.media_info import get_video_codec

logger = logging.getLogger(__name__)

# Native codec name (ffprobe) -> decoder that keeps the alpha plane
ALPHA_DECODERS: dict[str, str] = {
    "vp8": "libvpx",
    "vp9": "libvpx-vp9",
}


@dataclass
class AvatarPlacement:
    """One avatar overlay on one slide."""

    character: str
    source_path: str
    slide_index: int
    x_percent: float = 50.0
    y_percent: float = 50.0
    scale: float = 1.0


@dataclass
class OverlayPlan:
    """A placement resolved against the composed timeline."""

    placement: AvatarPlacement
    origin: OverlayOrigin
    start_frame: int
    end_frame: int
    fps: int
    speed: float = 1.0
    decoder: str | None = None


def select_decoder(codec_name: str | None) -> str | None:
    """Map a probed codec name to the decoder to force, or None for default."""
    if not codec_name:
        return None
    return ALPHA_DECODERS.get(codec_name.lower())


def detect_overlay_decoder(source_path: str) -> str | None:
    """Probe an overlay source and pick its alpha-capable decoder."""
    try:
        codec = get_video_codec(source_path)
    except MediaProbeError as e:
        logger.warning(f"[AVATAR] Codec probe failed for {source_path}: {e}")
        return None

    decoder = select_decoder(codec)
    if decoder is None:
        logger.warning(
            f"[AVATAR] Unsupported overlay codec {codec!r} in {source_path}, "
            "transparency may be lost"
        )
    return decoder


def build_enable_expr(start_frame: int, end_frame: int, fps: int) -> str:
    """Time predicate that shows an overlay on frames [start_frame, end_frame).

    Bounds sit half a frame before each cut, so the first frame of the
    next slide is never included whatever the timestamp rounding.
    """
    start = max(0.0, (start_frame - 0.5) / fps)
    end = (end_frame - 0.5) / fps
    return f"gte(t,{start:.4f})*lt(t,{end:.4f})"



def plan_overlay(
    placement: AvatarPlacement,
    content_box: ContentBox,
    start_frame: int,
    end_frame: int,
    fps: int,
    *,
    base_size: int,
    speed: float = 1.0,
    decoder: str | None = None,
) -> OverlayPlan:
    origin = resolve_overlay_origin(
        placement.x_percent,
        placement.y_percent,
        placement.scale,
        content_box,
        base_size=base_size,
    )
    return OverlayPlan(
        placement=placement,
        origin=origin,
        start_frame=start_frame,
        end_frame=end_frame,
        fps=fps,
        speed=speed,
        decoder=decoder,
    )


def overlay_input_args(plan: OverlayPlan) -> list[str]:
    """Input options for one overlay source, looped indefinitely."""
    args = ["-stream_loop", "-1"]
    if plan.decoder:
        args += ["-c:v", plan.decoder]
    args += ["-i", plan.placement.source_path]
    return args


def build_overlay_filters(
    plans: list[OverlayPlan],
    first_input_index: int,
    base_label: str = "0:v",
    output_label: str = "vout",
) -> str:
    """Chain every overlay onto the base video.

    Overlay ``i`` is read from input ``first_input_index + i``.
    """
    if not plans:
        return ""

    parts: list[str] = []
    current = base_label
    for i, plan in enumerate(plans):
        idx = first_input_index + i
        size = plan.origin.size
        ovl = f"av{i}"
        out = output_label if i == len(plans) - 1 else f"v{i}"
        parts.append(
            f"[{idx}:v]setpts=PTS/{plan.speed:.4f},format=yuva420p,"
            f"scale={size}:{size}[{ovl}]"
        )
        parts.append(
            f"[{current}][{ovl}]overlay={plan.origin.x}:{plan.origin.y}"
            f":enable='{build_enable_expr(plan.start_frame, plan.end_frame, plan.fps)}'[{out}]"
        )
        current = out
    return ";".join(parts)
