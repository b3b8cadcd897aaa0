"""Export settings and the encoder preset tables they select from."""

import json
from dataclasses import dataclass, field, fields, replace
from pathlib import Path

from zoomreel.errors import ValidationError

FORMATS = ("video", "animated-image")
LEVELS = ("high", "medium", "low")

CONTAINERS = {"video": "mp4", "animated-image": "gif"}


@dataclass(frozen=True)
class ExportSettings:
    """What the user picked in the export dialog."""

    format: str = "video"
    resolution: str = "high"
    quality: str = "high"

    def validate(self) -> None:
        if self.format not in FORMATS:
            raise ValidationError("format", f"one of {FORMATS}", self.format)
        if self.resolution not in LEVELS:
            raise ValidationError("resolution", f"one of {LEVELS}", self.resolution)
        if self.quality not in LEVELS:
            raise ValidationError("quality", f"one of {LEVELS}", self.quality)

    @property
    def container(self) -> str:
        return CONTAINERS[self.format]


def _video_resolutions() -> dict[str, list[int]]:
    return {"high": [1920, 1080], "medium": [1280, 720], "low": [854, 480]}


def _image_resolutions() -> dict[str, list[int]]:
    return {"high": [1280, 720], "medium": [854, 480], "low": [640, 360]}


@dataclass
class VideoEncoderConfig:
    """H.264 output parameters."""

    codec: str = "libx264"
    preset: str = "medium"
    fps: int = 30
    resolutions: dict[str, list[int]] = field(default_factory=_video_resolutions)
    crf: dict[str, int] = field(default_factory=lambda: {"high": 18, "medium": 23, "low": 28})
    maxrate: dict[str, str] = field(default_factory=lambda: {"high": "20M", "medium": "8M", "low": "4M"})
    bufsize: dict[str, str] = field(default_factory=lambda: {"high": "40M", "medium": "16M", "low": "8M"})
    audio_codec: str = "aac"
    audio_bitrate: str = "192k"


@dataclass
class AnimatedImageEncoderConfig:
    """GIF output parameters (palette-based)."""

    resolutions: dict[str, list[int]] = field(default_factory=_image_resolutions)
    fps: dict[str, int] = field(default_factory=lambda: {"high": 15, "medium": 10, "low": 8})
    max_colors: dict[str, int] = field(default_factory=lambda: {"high": 256, "medium": 128, "low": 64})
    loop: int = 0


@dataclass
class EncoderConfig:
    """Every numeric constant the final encode stage uses."""

    video: VideoEncoderConfig = field(default_factory=VideoEncoderConfig)
    animated_image: AnimatedImageEncoderConfig = field(default_factory=AnimatedImageEncoderConfig)

    def output_size(self, settings: ExportSettings) -> tuple[int, int]:
        table = self.video.resolutions if settings.format == "video" else self.animated_image.resolutions
        width, height = table[settings.resolution]
        return int(width), int(height)


def _merge(cls, overrides: dict):
    known = {f.name for f in fields(cls)}
    unknown = set(overrides) - known
    if unknown:
        raise ValueError(f"Unknown encoder settings: {', '.join(sorted(unknown))}")
    base = cls()
    values = {}
    for name, value in overrides.items():
        default = getattr(base, name)
        # Preset tables merge per level so a single level can be overridden.
        values[name] = {**default, **value} if isinstance(default, dict) else value
    return replace(base, **values)


def load_encoder_config(path: str | Path | None = None) -> EncoderConfig:
    """Load encoder presets from a JSON file; sections left out keep defaults."""
    if path is None:
        return EncoderConfig()

    path = Path(path)
    data = json.loads(path.read_text(encoding="utf-8"))

    video = _merge(VideoEncoderConfig, data["video"]) if "video" in data else VideoEncoderConfig()
    animated_image = (
        _merge(AnimatedImageEncoderConfig, data["animated_image"])
        if "animated_image" in data
        else AnimatedImageEncoderConfig()
    )
    return EncoderConfig(video=video, animated_image=animated_image)
