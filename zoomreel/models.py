"""Shared data types used across ZoomReel.

Spatial fields are percentages (0-100) of the media frame unless noted
otherwise; times are seconds from the start of the source media.
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Point:
    """An (x, y) position in percent."""

    x: float
    y: float


@dataclass(frozen=True)
class BoundingBox:
    """A displayed element's box in pointer (client) pixels."""

    left: float
    top: float
    width: float
    height: float


@dataclass(frozen=True)
class CropRegion:
    """A crop rectangle in percent of the intrinsic frame."""

    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_drag(cls, start: Point, end: Point) -> "CropRegion":
        """Build a region from two drag points, clamped to the frame."""
        x = max(0.0, min(100.0, min(start.x, end.x)))
        y = max(0.0, min(100.0, min(start.y, end.y)))
        width = min(abs(end.x - start.x), 100.0 - x)
        height = min(abs(end.y - start.y), 100.0 - y)
        return cls(x=x, y=y, width=width, height=height)


@dataclass(frozen=True)
class ZoomRegion:
    """A time-bound magnification centered on ``center``."""

    start_time: float
    end_time: float
    scale: float
    center: Point = field(default_factory=lambda: Point(50.0, 50.0))


@dataclass(frozen=True)
class TextStyle:
    font_size: float = 24
    color: str = "#ffffff"
    background_color: str = "rgba(0, 0, 0, 0.5)"
    font_weight: str = "normal"
    font_family: str = "Arial"


@dataclass(frozen=True)
class TextOverlay:
    """Text drawn with its top-left corner at ``position``."""

    text: str
    position: Point
    start_time: float
    end_time: float
    style: TextStyle = field(default_factory=TextStyle)


@dataclass(frozen=True)
class ZoomEvent:
    """A click captured while recording.

    ``timestamp`` is milliseconds since recording start; ``x``/``y`` are
    already normalized to percent of the captured surface.
    """

    timestamp: float
    x: float
    y: float


@dataclass(frozen=True)
class Transform:
    """A CSS-style ``scale()`` + ``translate()`` around the element center."""

    scale: float = 1.0
    translate_x_pct: float = 0.0
    translate_y_pct: float = 0.0

    @property
    def is_identity(self) -> bool:
        return self.scale == 1.0 and self.translate_x_pct == 0.0 and self.translate_y_pct == 0.0

    def to_css(self) -> str:
        if self.is_identity:
            return "none"
        return (
            f"scale({self.scale}) "
            f"translate({self.translate_x_pct}%, {self.translate_y_pct}%)"
        )


IDENTITY = Transform()


@dataclass(frozen=True)
class PreviewFrame:
    transform: Transform
    active_overlays: tuple[TextOverlay, ...] = ()


@dataclass
class ProbeResult:
    """Metadata extracted from a media file via ffprobe."""

    duration: float
    width: int
    height: int
    fps: float
    codec_video: str
    audio_sample_rate: int | None = None
    codec_audio: str | None = None

    @property
    def has_audio(self) -> bool:
        return self.codec_audio is not None
