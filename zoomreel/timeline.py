"""The timeline model: the single owner of all edit state for one media item."""

import json
import logging
import math
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path

from zoomreel.errors import ValidationError
from zoomreel.models import CropRegion, Point, TextOverlay, TextStyle, ZoomRegion

logger = logging.getLogger(__name__)

DEFAULT_ZOOM_SCALE = 1.5
DEFAULT_ZOOM_LENGTH = 2.0
DEFAULT_TEXT_LENGTH = 5.0


def _check_finite(name: str, value: float) -> None:
    if not isinstance(value, (int, float)) or isinstance(value, bool) or not math.isfinite(value):
        raise ValidationError(name, "a finite number", value)


def _check_percent(name: str, value: float) -> None:
    _check_finite(name, value)
    if not 0.0 <= value <= 100.0:
        raise ValidationError(name, "0 <= value <= 100", value)


def _as_point(name: str, value) -> Point:
    if isinstance(value, Point):
        return value
    if isinstance(value, dict) and set(value) == {"x", "y"}:
        return Point(x=value["x"], y=value["y"])
    raise ValidationError(name, "a point with x and y", value)


def _replace_known(record, prefix: str, changes: dict):
    """``dataclasses.replace`` that reports unknown fields as ValidationError."""
    known = {f.name for f in fields(record)}
    for key in changes:
        if key not in known:
            raise ValidationError(f"{prefix}.{key}", f"one of {sorted(known)}", changes[key])
    return replace(record, **changes)


def _check_span(prefix: str, start: float, end: float, duration: float) -> None:
    _check_finite(f"{prefix}.start_time", start)
    _check_finite(f"{prefix}.end_time", end)
    if start < 0:
        raise ValidationError(f"{prefix}.start_time", ">= 0", start)
    if end > duration:
        raise ValidationError(f"{prefix}.end_time", f"<= duration ({duration})", end)
    if start >= end:
        raise ValidationError(f"{prefix}.start_time", f"< end_time ({end})", start)


@dataclass
class TimelineModel:
    """Trim, crop, zoom regions and text overlays for one media item.

    ``duration``, ``width``, ``height`` and ``has_audio`` describe the bound
    media and never change after construction. Every mutator validates before
    touching state, so a rejected edit leaves the model as it was.
    """

    duration: float
    width: int
    height: int
    has_audio: bool = False
    trim_range: tuple[float, float] | None = None
    crop_region: CropRegion | None = None
    zoom_regions: list[ZoomRegion] = field(default_factory=list)
    text_overlays: list[TextOverlay] = field(default_factory=list)

    def __post_init__(self) -> None:
        _check_finite("duration", self.duration)
        if self.duration <= 0:
            raise ValidationError("duration", "> 0", self.duration)
        for name in ("width", "height"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                raise ValidationError(name, "a positive integer", value)
        if self.trim_range is None:
            self.trim_range = (0.0, float(self.duration))
        else:
            self.trim_range = tuple(self.trim_range)
        self.zoom_regions = list(self.zoom_regions)
        self.text_overlays = list(self.text_overlays)
        self.validate()

    # --- validation ---

    def validate(self) -> None:
        """Raise ValidationError if any field breaks an invariant."""
        self._check_trim(*self.trim_range)
        if self.crop_region is not None:
            self._check_crop(self.crop_region)
        for i, region in enumerate(self.zoom_regions):
            self._check_zoom(region, f"zoom_regions[{i}]")
        for i, overlay in enumerate(self.text_overlays):
            self._check_text(overlay, f"text_overlays[{i}]")

    def _check_trim(self, start: float, end: float) -> None:
        _check_finite("trim_range.start", start)
        _check_finite("trim_range.end", end)
        if start < 0:
            raise ValidationError("trim_range.start", ">= 0", start)
        if end > self.duration:
            raise ValidationError("trim_range.end", f"<= duration ({self.duration})", end)
        if start >= end:
            raise ValidationError("trim_range.start", f"< trim_range.end ({end})", start)

    def _check_crop(self, crop: CropRegion) -> None:
        for name in ("x", "y", "width", "height"):
            _check_percent(f"crop_region.{name}", getattr(crop, name))
        if crop.x + crop.width > 100.0:
            raise ValidationError("crop_region.width", "x + width <= 100", crop.width)
        if crop.y + crop.height > 100.0:
            raise ValidationError("crop_region.height", "y + height <= 100", crop.height)

    def _check_zoom(self, region: ZoomRegion, prefix: str) -> None:
        _check_span(prefix, region.start_time, region.end_time, self.duration)
        _check_finite(f"{prefix}.scale", region.scale)
        if region.scale < 1.0:
            raise ValidationError(f"{prefix}.scale", ">= 1.0", region.scale)
        _check_percent(f"{prefix}.center.x", region.center.x)
        _check_percent(f"{prefix}.center.y", region.center.y)

    def _check_text(self, overlay: TextOverlay, prefix: str) -> None:
        if not isinstance(overlay.text, str) or not overlay.text.strip():
            raise ValidationError(f"{prefix}.text", "non-blank text", overlay.text)
        _check_span(prefix, overlay.start_time, overlay.end_time, self.duration)
        _check_percent(f"{prefix}.position.x", overlay.position.x)
        _check_percent(f"{prefix}.position.y", overlay.position.y)
        _check_finite(f"{prefix}.style.font_size", overlay.style.font_size)
        if overlay.style.font_size <= 0:
            raise ValidationError(f"{prefix}.style.font_size", "> 0", overlay.style.font_size)

    def _check_index(self, index: int, items: list, name: str) -> None:
        if not isinstance(index, int) or not 0 <= index < len(items):
            raise ValidationError("index", f"0 <= index < {len(items)} for {name}", index)

    # --- mutators ---

    def set_trim_range(self, start: float, end: float) -> None:
        self._check_trim(start, end)
        self.trim_range = (float(start), float(end))

    def set_crop_region(self, region: CropRegion | None) -> None:
        if region is not None:
            self._check_crop(region)
        self.crop_region = region

    def add_zoom_region(self, region: ZoomRegion) -> int:
        """Append a zoom region and return its index."""
        self._check_zoom(region, f"zoom_regions[{len(self.zoom_regions)}]")
        self.zoom_regions.append(region)
        return len(self.zoom_regions) - 1

    def add_zoom_regions(self, regions: list[ZoomRegion]) -> None:
        """Bulk-insert regions in start-time order; all or nothing."""
        ordered = sorted(regions, key=lambda r: r.start_time)
        base = len(self.zoom_regions)
        for i, region in enumerate(ordered):
            self._check_zoom(region, f"zoom_regions[{base + i}]")
        self.zoom_regions.extend(ordered)

    def update_zoom_region(self, index: int, **changes) -> ZoomRegion:
        self._check_index(index, self.zoom_regions, "zoom_regions")
        prefix = f"zoom_regions[{index}]"
        if "center" in changes:
            changes["center"] = _as_point(f"{prefix}.center", changes["center"])
        updated = _replace_known(self.zoom_regions[index], prefix, changes)
        self._check_zoom(updated, prefix)
        self.zoom_regions[index] = updated
        return updated

    def remove_zoom_region(self, index: int) -> ZoomRegion:
        self._check_index(index, self.zoom_regions, "zoom_regions")
        return self.zoom_regions.pop(index)

    def add_text_overlay(self, overlay: TextOverlay) -> int:
        """Append a text overlay and return its index."""
        self._check_text(overlay, f"text_overlays[{len(self.text_overlays)}]")
        self.text_overlays.append(overlay)
        return len(self.text_overlays) - 1

    def update_text_overlay(self, index: int, **changes) -> TextOverlay:
        self._check_index(index, self.text_overlays, "text_overlays")
        prefix = f"text_overlays[{index}]"
        current = self.text_overlays[index]
        if "position" in changes:
            changes["position"] = _as_point(f"{prefix}.position", changes["position"])
        style = changes.get("style")
        if isinstance(style, dict):
            changes["style"] = _replace_known(current.style, f"{prefix}.style", style)
        elif "style" in changes and not isinstance(style, TextStyle):
            raise ValidationError(f"{prefix}.style", "a style object", style)
        updated = _replace_known(current, prefix, changes)
        self._check_text(updated, prefix)
        self.text_overlays[index] = updated
        return updated

    def remove_text_overlay(self, index: int) -> TextOverlay:
        self._check_index(index, self.text_overlays, "text_overlays")
        return self.text_overlays.pop(index)

    # --- editor defaults ---

    def default_zoom_region(self, current_time: float) -> ZoomRegion:
        """The region the editor's "Add Zoom Region" button creates at ``current_time``."""
        return ZoomRegion(
            start_time=current_time,
            end_time=min(current_time + DEFAULT_ZOOM_LENGTH, self.duration),
            scale=DEFAULT_ZOOM_SCALE,
        )

    def default_text_overlay(self, text: str, current_time: float) -> TextOverlay:
        return TextOverlay(
            text=text,
            position=Point(50.0, 50.0),
            start_time=current_time,
            end_time=min(current_time + DEFAULT_TEXT_LENGTH, self.duration),
        )

    @property
    def trimmed_duration(self) -> float:
        start, end = self.trim_range
        return end - start

    # --- serialization ---

    def to_dict(self) -> dict:
        data = asdict(self)
        data["trim_range"] = list(self.trim_range)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "TimelineModel":
        """Rebuild a model from ``to_dict`` output, re-validating every field."""
        missing = [k for k in ("duration", "width", "height") if k not in data]
        if missing:
            raise ValueError(f"Timeline must contain {', '.join(missing)}")

        crop = data.get("crop_region")
        return cls(
            duration=data["duration"],
            width=data["width"],
            height=data["height"],
            has_audio=data.get("has_audio", False),
            trim_range=tuple(data["trim_range"]) if data.get("trim_range") else None,
            crop_region=CropRegion(**crop) if crop else None,
            zoom_regions=[
                ZoomRegion(
                    start_time=z["start_time"],
                    end_time=z["end_time"],
                    scale=z["scale"],
                    center=Point(**z["center"]) if "center" in z else Point(50.0, 50.0),
                )
                for z in data.get("zoom_regions", [])
            ],
            text_overlays=[
                TextOverlay(
                    text=t["text"],
                    position=Point(**t["position"]),
                    start_time=t["start_time"],
                    end_time=t["end_time"],
                    style=TextStyle(**t.get("style", {})),
                )
                for t in data.get("text_overlays", [])
            ],
        )


def load_timeline(path: str | Path) -> TimelineModel:
    """Load and validate a timeline from a JSON file."""
    path = Path(path)
    data = json.loads(path.read_text(encoding="utf-8"))
    model = TimelineModel.from_dict(data)
    logger.debug(
        "Loaded timeline %s: %d zoom regions, %d text overlays",
        path, len(model.zoom_regions), len(model.text_overlays),
    )
    return model


def save_timeline(model: TimelineModel, path: str | Path) -> Path:
    path = Path(path)
    path.write_text(json.dumps(model.to_dict(), indent=2), encoding="utf-8")
    return path
