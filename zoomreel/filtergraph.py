"""Compile a timeline into an ffmpeg filter_complex program.

Stages are chained: each consumes the previous stage's output pad. Gating
expressions are in output time, i.e. seconds since the trim start.

Zoom regions that overlap in time are resolved before stage generation: a
zoom stage is enabled only while its region is the first match in array
order, so at most one zoom stage is open at any instant. That is the same
selection the live preview makes.
"""

import logging
import re
from dataclasses import dataclass

from zoomreel.config import EncoderConfig, ExportSettings
from zoomreel.coords import fit_rect
from zoomreel.errors import InvalidTimelineError
from zoomreel.models import TextOverlay, ZoomRegion
from zoomreel.timeline import TimelineModel

logger = logging.getLogger(__name__)

TEXT_BOX_PADDING = 8

_RGB_RE = re.compile(r"rgba?\(\s*([\d.]+)\s*,\s*([\d.]+)\s*,\s*([\d.]+)\s*(?:,\s*([\d.]+)\s*)?\)", re.I)
_SHORT_HEX_RE = re.compile(r"#([0-9a-f])([0-9a-f])([0-9a-f])", re.I)


def _num(value: float) -> str:
    text = f"{value:.6f}".rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text


def _escape_option(value: str) -> str:
    for ch in ("\\", "'", ":"):
        value = value.replace(ch, "\\" + ch)
    return value


def _escape_graph(value: str) -> str:
    for ch in ("\\", "'", "[", "]", ",", ";"):
        value = value.replace(ch, "\\" + ch)
    return value


def _escape(value: str) -> str:
    """Escape a value for a filter option inside a filtergraph string."""
    return _escape_graph(_escape_option(value))


def ffmpeg_color(css: str) -> str:
    """Translate CSS color notations ffmpeg doesn't parse; pass the rest through."""
    css = css.strip()
    m = _RGB_RE.fullmatch(css)
    if m:
        r, g, b = (max(0, min(255, round(float(c)))) for c in m.groups()[:3])
        color = f"0x{r:02X}{g:02X}{b:02X}"
        if m.group(4) is not None:
            color += f"@{_num(max(0.0, min(1.0, float(m.group(4)))))}"
        return color
    m = _SHORT_HEX_RE.fullmatch(css)
    if m:
        return "#" + "".join(c * 2 for c in m.groups())
    if css.lower() == "transparent":
        return "black@0"
    return css


@dataclass(frozen=True)
class Gate:
    """``between(t, start, end)`` minus every excluded window."""

    start: float
    end: float
    exclude: tuple[tuple[float, float], ...] = ()

    def is_open(self, t: float) -> bool:
        if not self.start <= t <= self.end:
            return False
        return not any(s <= t <= e for s, e in self.exclude)

    def to_expr(self) -> str:
        expr = f"between(t,{_num(self.start)},{_num(self.end)})"
        for s, e in self.exclude:
            expr += f"*not(between(t,{_num(s)},{_num(e)}))"
        return expr


@dataclass(frozen=True)
class Stage:
    """One labeled processing step: ``[input_pad]operation[output_pad]``."""

    kind: str
    input_pad: str
    output_pad: str
    operation: str
    gate: Gate | None = None
    source_index: int | None = None

    def render(self) -> str:
        return f"[{self.input_pad}]{self.operation}[{self.output_pad}]"


@dataclass(frozen=True)
class FilterGraphProgram:
    stages: tuple[Stage, ...]
    output_args: tuple[str, ...]
    container: str
    duration: float
    video_output: str = "vout"
    audio_output: str | None = None

    def to_filter_complex(self) -> str:
        return ";".join(stage.render() for stage in self.stages)

    def map_args(self) -> list[str]:
        args = ["-map", f"[{self.video_output}]"]
        if self.audio_output:
            args += ["-map", f"[{self.audio_output}]"]
        return args

    def stages_of(self, kind: str) -> list[Stage]:
        return [s for s in self.stages if s.kind == kind]

    def zoom_index_at(self, t: float) -> int | None:
        """Source index of the zoom region whose stage is enabled at output time ``t``."""
        for stage in self.stages_of("zoom"):
            if stage.gate.is_open(t):
                return stage.source_index
        return None


class _Pads:
    """Sequential ``v0, v1, ...`` labels for the main video chain."""

    def __init__(self) -> None:
        self.current = "0:v"
        self._n = 0

    def next(self) -> tuple[str, str]:
        src, dst = self.current, f"v{self._n}"
        self._n += 1
        self.current = dst
        return src, dst


def _shift(start: float, end: float, trim: tuple[float, float]) -> tuple[float, float] | None:
    """Clip a source-time span to the trim range and move it to output time."""
    trim_start, trim_end = trim
    s = max(start, trim_start)
    e = min(end, trim_end)
    if s > e:
        return None
    return (s - trim_start, e - trim_start)


def _zoom_window(region: ZoomRegion, index: int, width: int, height: int) -> tuple[int, int]:
    zw = round(width / region.scale)
    zh = round(height / region.scale)
    if zw < 1 or zh < 1:
        raise InvalidTimelineError(
            f"zoom_regions[{index}]: scale {region.scale} shrinks the {width}x{height} "
            f"frame to a {zw}x{zh} window"
        )
    return zw, zh


def _zoom_operation(region: ZoomRegion, index: int, width: int, height: int, gate: Gate) -> str:
    zw, zh = _zoom_window(region, index, width, height)
    x = round(region.center.x / 100.0 * width - zw / 2)
    y = round(region.center.y / 100.0 * height - zh / 2)

    # The window may hang off the frame (the preview transform doesn't clamp);
    # pad with black so the crop sees the same picture.
    pad_x = max(0, -x, x + zw - width)
    pad_y = max(0, -y, y + zh - height)

    base, src, zoomed = f"z{index}a", f"z{index}b", f"z{index}c"
    chain = ""
    if pad_x or pad_y:
        chain += f"pad={width + 2 * pad_x}:{height + 2 * pad_y}:{pad_x}:{pad_y}:color=black,"
    chain += f"crop={zw}:{zh}:{x + pad_x}:{y + pad_y},scale={width}:{height},setsar=1"
    return (
        f"split[{base}][{src}];"
        f"[{src}]{chain}[{zoomed}];"
        f"[{base}][{zoomed}]overlay=0:0:enable='{gate.to_expr()}'"
    )


def _font_pattern(overlay: TextOverlay) -> str:
    family = overlay.style.font_family or "Sans"
    weight = str(overlay.style.font_weight).lower()
    if weight in ("bold", "bolder") or (weight.isdigit() and int(weight) >= 600):
        return f"{family}:style=Bold"
    return family


def _text_operation(overlay: TextOverlay, width: int, height: int, gate: Gate) -> str:
    style = overlay.style
    # ``position`` is the top-left of the padded box; the text sits inside the padding.
    x = round(overlay.position.x / 100.0 * width) + TEXT_BOX_PADDING
    y = round(overlay.position.y / 100.0 * height) + TEXT_BOX_PADDING
    options = [
        f"text={_escape(overlay.text)}",
        "expansion=none",
        f"x={x}",
        f"y={y}",
        f"fontsize={_num(style.font_size)}",
        f"fontcolor={_escape(ffmpeg_color(style.color))}",
        f"font={_escape(_font_pattern(overlay))}",
    ]
    if style.background_color:
        options += [
            "box=1",
            f"boxcolor={_escape(ffmpeg_color(style.background_color))}",
            f"boxborderw={TEXT_BOX_PADDING}",
        ]
    options.append(f"enable='{gate.to_expr()}'")
    return "drawtext=" + ":".join(options)


def _encode_stage(settings: ExportSettings, encoder: EncoderConfig, src: str) -> tuple[Stage, list[str]]:
    level_q = settings.quality
    if settings.format == "video":
        video = encoder.video
        operation = f"fps={video.fps},format=yuv420p"
        args = [
            "-c:v", video.codec,
            "-preset", video.preset,
            "-crf", str(video.crf[level_q]),
            "-maxrate", video.maxrate[level_q],
            "-bufsize", video.bufsize[level_q],
            "-pix_fmt", "yuv420p",
            "-movflags", "+faststart",
        ]
    else:
        image = encoder.animated_image
        operation = (
            f"fps={image.fps[level_q]},split[g0][g1];"
            f"[g0]palettegen=max_colors={image.max_colors[level_q]}[pal];"
            f"[g1][pal]paletteuse"
        )
        args = ["-loop", str(image.loop), "-f", "gif"]
    return Stage(kind="encode", input_pad=src, output_pad="vout", operation=operation), args


def compile_timeline(
    model: TimelineModel,
    settings: ExportSettings,
    encoder: EncoderConfig | None = None,
) -> FilterGraphProgram:
    """Build the ordered stage list for ``model`` under ``settings``.

    Raises InvalidTimelineError if a crop or zoom window would be empty.
    """
    encoder = encoder or EncoderConfig()
    settings.validate()
    model.validate()

    out_w, out_h = encoder.output_size(settings)
    trim = model.trim_range
    trim_start, trim_end = trim
    pads = _Pads()
    stages: list[Stage] = []

    # Check every region up front, including ones the trim hides.
    for i, region in enumerate(model.zoom_regions):
        _zoom_window(region, i, out_w, out_h)

    # --- trim ---
    if trim != (0.0, model.duration):
        src, dst = pads.next()
        stages.append(Stage(
            kind="trim", input_pad=src, output_pad=dst,
            operation=f"trim=start={_num(trim_start)}:end={_num(trim_end)},setpts=PTS-STARTPTS",
        ))

    # --- static crop ---
    frame_w, frame_h = model.width, model.height
    crop = model.crop_region
    if crop is not None:
        cx = round(crop.x / 100.0 * model.width)
        cy = round(crop.y / 100.0 * model.height)
        cw = min(round(crop.width / 100.0 * model.width), model.width - cx)
        ch = min(round(crop.height / 100.0 * model.height), model.height - cy)
        if cw < 1 or ch < 1:
            raise InvalidTimelineError(
                f"crop_region covers {cw}x{ch} pixels of the {model.width}x{model.height} source"
            )
        src, dst = pads.next()
        stages.append(Stage(kind="crop", input_pad=src, output_pad=dst, operation=f"crop={cw}:{ch}:{cx}:{cy}"))
        frame_w, frame_h = cw, ch

    # --- fit to output canvas ---
    fx, fy, fw, fh = fit_rect(frame_w, frame_h, out_w, out_h)
    operation = f"scale={fw}:{fh},setsar=1"
    if (fw, fh) != (out_w, out_h):
        operation += f",pad={out_w}:{out_h}:{fx}:{fy}:color=black"
    src, dst = pads.next()
    stages.append(Stage(kind="fit", input_pad=src, output_pad=dst, operation=operation))

    # --- zoom regions, first match wins ---
    emitted: list[tuple[float, float]] = []
    for i, region in enumerate(model.zoom_regions):
        span = _shift(region.start_time, region.end_time, trim)
        if span is None:
            continue
        s, e = span
        exclude = tuple((ps, pe) for ps, pe in emitted if ps <= e and s <= pe)
        gate = Gate(start=s, end=e, exclude=exclude)
        src, dst = pads.next()
        stages.append(Stage(
            kind="zoom", input_pad=src, output_pad=dst,
            operation=_zoom_operation(region, i, out_w, out_h, gate),
            gate=gate, source_index=i,
        ))
        emitted.append(span)

    # --- text overlays, later ones on top ---
    for i, overlay in enumerate(model.text_overlays):
        span = _shift(overlay.start_time, overlay.end_time, trim)
        if span is None:
            continue
        gate = Gate(start=span[0], end=span[1])
        src, dst = pads.next()
        stages.append(Stage(
            kind="text", input_pad=src, output_pad=dst,
            operation=_text_operation(overlay, out_w, out_h, gate),
            gate=gate, source_index=i,
        ))

    # --- encode ---
    encode, output_args = _encode_stage(settings, encoder, pads.current)
    stages.append(encode)

    audio_output = None
    if model.has_audio and settings.format == "video":
        operation = "anull"
        if trim != (0.0, model.duration):
            operation = f"atrim=start={_num(trim_start)}:end={_num(trim_end)},asetpts=PTS-STARTPTS"
        stages.append(Stage(kind="audio", input_pad="0:a", output_pad="aout", operation=operation))
        output_args += ["-c:a", encoder.video.audio_codec, "-b:a", encoder.video.audio_bitrate]
        audio_output = "aout"

    program = FilterGraphProgram(
        stages=tuple(stages),
        output_args=tuple(output_args),
        container=settings.container,
        duration=trim_end - trim_start,
        audio_output=audio_output,
    )
    logger.debug("Compiled %d stages: %s", len(stages), program.to_filter_complex())
    return program
