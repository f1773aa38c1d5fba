"""Canvas geometry for slides and avatar overlays.

Every slide is fitted into the portrait canvas without cropping (scale down
or up to the largest size that fits, then pad with black). Avatar positions
are stored as percentages of the visible photo area, so they are mapped
through the same letterbox transform before being turned into pixels.
"""

import math
from dataclasses import dataclass


def round_half_up(value: float) -> int:
    """Round .5 away from zero, as positions are specified by the editor UI."""
    if value < 0:
        return -math.floor(-value + 0.5)
    return math.floor(value + 0.5)


@dataclass(frozen=True)
class ContentBox:
    """Visible content area of a slide inside the canvas."""

    left: int
    top: int
    width: int
    height: int

    @property
    def is_letterboxed(self) -> bool:
        return self.left > 0 or self.top > 0


@dataclass(frozen=True)
class OverlayOrigin:
    """Top-left pixel position and square size of a scaled overlay."""

    x: int
    y: int
    size: int


def full_canvas(canvas_width: int, canvas_height: int) -> ContentBox:
    return ContentBox(left=0, top=0, width=canvas_width, height=canvas_height)


def calculate_letterbox(
    source_width: int | None,
    source_height: int | None,
    canvas_width: int,
    canvas_height: int,
) -> ContentBox:
    """Fit a source frame into the canvas preserving aspect ratio.

    Missing or degenerate source dimensions fall back to the whole canvas.
    """
    if not source_width or not source_height or source_width <= 0 or source_height <= 0:
        return full_canvas(canvas_width, canvas_height)

    source_aspect = source_width / source_height
    canvas_aspect = canvas_width / canvas_height

    if source_aspect > canvas_aspect:
        # Wider than the canvas: bars above and below
        width = canvas_width
        height = round_half_up(canvas_width / source_aspect)
    else:
        # Taller (or equal): bars left and right
        height = canvas_height
        width = round_half_up(canvas_height * source_aspect)

    return ContentBox(
        left=(canvas_width - width) // 2,
        top=(canvas_height - height) // 2,
        width=width,
        height=height,
    )


def overlay_size(base_size: int, scale: float) -> int:
    return max(1, round_half_up(base_size * scale))


def resolve_overlay_origin(
    x_percent: float,
    y_percent: float,
    scale: float,
    content_box: ContentBox,
    base_size: int = 160,
) -> OverlayOrigin:
    """Convert a percentage position into the overlay's top-left pixel.

    The percentage locates the overlay's center inside ``content_box``; the
    origin is that center minus half the scaled overlay size.
    """
    size = overlay_size(base_size, scale)
    center_x = content_box.left + round_half_up(x_percent / 100 * content_box.width)
    center_y = content_box.top + round_half_up(y_percent / 100 * content_box.height)
    half = round_half_up(size / 2)
    return OverlayOrigin(x=center_x - half, y=center_y - half, size=size)
