"""Pointer <-> media-space coordinate conversion.

Media is assumed to be drawn with ``object-fit: contain``: scaled to fit the
element box with its aspect ratio preserved, centered, letterboxed on the
remaining axis. Normalized coordinates are percentages of that drawn content.
"""

from zoomreel.models import BoundingBox, Point


def content_rect(box: BoundingBox, intrinsic: tuple[int, int] | None = None) -> BoundingBox:
    """Return the part of ``box`` the media actually covers."""
    if intrinsic is None or box.width <= 0 or box.height <= 0:
        return box
    media_w, media_h = intrinsic
    if media_w <= 0 or media_h <= 0:
        return box

    ratio = min(box.width / media_w, box.height / media_h)
    width = media_w * ratio
    height = media_h * ratio
    return BoundingBox(
        left=box.left + (box.width - width) / 2,
        top=box.top + (box.height - height) / 2,
        width=width,
        height=height,
    )


def to_normalized(
    pointer_x: float,
    pointer_y: float,
    box: BoundingBox,
    intrinsic: tuple[int, int] | None = None,
) -> Point:
    """Convert a pointer position to percent of the media, clamped to [0, 100].

    A zero-sized element yields (0, 0).
    """
    rect = content_rect(box, intrinsic)
    if rect.width <= 0 or rect.height <= 0:
        return Point(0.0, 0.0)

    x = (pointer_x - rect.left) / rect.width * 100.0
    y = (pointer_y - rect.top) / rect.height * 100.0
    return Point(max(0.0, min(100.0, x)), max(0.0, min(100.0, y)))


def to_element_space(
    x_pct: float,
    y_pct: float,
    box: BoundingBox,
    intrinsic: tuple[int, int] | None = None,
) -> tuple[float, float]:
    """Inverse of :func:`to_normalized` for in-range percentages."""
    rect = content_rect(box, intrinsic)
    if rect.width <= 0 or rect.height <= 0:
        return (0.0, 0.0)
    return (
        rect.left + x_pct / 100.0 * rect.width,
        rect.top + y_pct / 100.0 * rect.height,
    )


def fit_rect(src_w: int, src_h: int, dst_w: int, dst_h: int) -> tuple[int, int, int, int]:
    """Fit a ``src`` frame inside a ``dst`` canvas, aspect preserved.

    Returns ``(x, y, width, height)`` in whole pixels. Width and height are
    rounded down to even values (4:2:0 chroma needs them) and the rect is
    centered.
    """
    if src_w * dst_h >= src_h * dst_w:
        width, height = dst_w, round(src_h * dst_w / src_w)
    else:
        width, height = round(src_w * dst_h / src_h), dst_h
    width = max(2, width // 2 * 2)
    height = max(2, height // 2 * 2)
    return ((dst_w - width) // 2, (dst_h - height) // 2, width, height)
