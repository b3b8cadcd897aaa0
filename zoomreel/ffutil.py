"""FFmpeg/ffprobe subprocess helpers and the ffmpeg transcoding engine."""

import asyncio
import json
import logging
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Callable

from zoomreel.errors import TranscodeError
from zoomreel.filtergraph import FilterGraphProgram
from zoomreel.models import ProbeResult

logger = logging.getLogger(__name__)


class FFmpegNotFoundError(RuntimeError):
    pass


def check_ffmpeg() -> None:
    """Raise FFmpegNotFoundError if ffmpeg/ffprobe are not on PATH."""
    for cmd in ("ffmpeg", "ffprobe"):
        if shutil.which(cmd) is None:
            raise FFmpegNotFoundError(f"{cmd} not found on PATH")


def probe(input_path: Path) -> ProbeResult:
    """Extract media metadata via ffprobe. Audio is optional."""
    cmd = [
        "ffprobe",
        "-v", "quiet",
        "-print_format", "json",
        "-show_format",
        "-show_streams",
        str(input_path),
    ]
    result = subprocess.run(cmd, capture_output=True, text=True, check=True)
    data = json.loads(result.stdout)

    video_stream = next(
        (s for s in data["streams"] if s["codec_type"] == "video"), None
    )
    audio_stream = next(
        (s for s in data["streams"] if s["codec_type"] == "audio"), None
    )

    if video_stream is None:
        raise ValueError(f"No video stream found in {input_path}")

    # Parse fps from r_frame_rate (e.g. "30/1")
    num, den = video_stream["r_frame_rate"].split("/")
    fps = int(num) / int(den) if int(den) else 0.0

    # Browser-recorded WebM often has no container duration; fall back to the stream.
    duration = data["format"].get("duration") or video_stream.get("duration")
    if duration is None:
        raise ValueError(f"Could not determine duration of {input_path}")

    return ProbeResult(
        duration=float(duration),
        width=int(video_stream["width"]),
        height=int(video_stream["height"]),
        fps=fps,
        codec_video=video_stream["codec_name"],
        audio_sample_rate=int(audio_stream["sample_rate"]) if audio_stream else None,
        codec_audio=audio_stream["codec_name"] if audio_stream else None,
    )


def parse_progress_line(line: str, duration: float) -> float | None:
    """Turn one ``-progress`` key=value line into a percentage, if it carries time.

    ``out_time_ms`` is microseconds despite its name, same as ``out_time_us``.
    """
    key, sep, value = line.strip().partition("=")
    if not sep:
        return None
    if key == "progress" and value == "end":
        return 100.0
    if key not in ("out_time_us", "out_time_ms") or duration <= 0:
        return None
    try:
        micros = int(value)
    except ValueError:
        return None  # "N/A" before the first frame
    return max(0.0, min(100.0, micros / 1_000_000 / duration * 100.0))


def build_command(
    input_path: Path, program: FilterGraphProgram, output_path: Path
) -> list[str]:
    return [
        "ffmpeg", "-y",
        "-hide_banner", "-nostats",
        "-i", str(input_path),
        "-filter_complex", program.to_filter_complex(),
        *program.map_args(),
        *program.output_args,
        "-progress", "pipe:1",
        str(output_path),
    ]


class FFmpegEngine:
    """Runs a compiled program through a local ffmpeg binary.

    Input and output bytes are staged in a private temp directory that is
    removed when the call ends, however it ends.
    """

    def __init__(self, input_name: str = "input.webm") -> None:
        self.input_name = input_name

    async def transcode(
        self,
        input_bytes: bytes,
        program: FilterGraphProgram,
        container: str,
        on_progress: Callable[[float], None] | None = None,
    ) -> bytes:
        with tempfile.TemporaryDirectory(prefix="zoomreel_") as tmpdir:
            input_path = Path(tmpdir) / self.input_name
            output_path = Path(tmpdir) / f"output.{container}"
            input_path.write_bytes(input_bytes)

            cmd = build_command(input_path, program, output_path)
            logger.debug("Running %s", " ".join(cmd))
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stderr_task = asyncio.ensure_future(proc.stderr.read())
            try:
                async for raw in proc.stdout:
                    pct = parse_progress_line(raw.decode(errors="replace"), program.duration)
                    if pct is not None and on_progress:
                        on_progress(pct)
                returncode = await proc.wait()
                stderr = (await stderr_task).decode(errors="replace")
            except asyncio.CancelledError:
                if proc.returncode is None:
                    proc.kill()
                    await proc.wait()
                stderr_task.cancel()
                raise

            if returncode != 0:
                raise TranscodeError(stderr, returncode=returncode)
            if not output_path.exists() or output_path.stat().st_size == 0:
                raise TranscodeError(stderr or "ffmpeg produced an empty output file", returncode=returncode)
            return output_path.read_bytes()
