"""Unit tests for ffutil: probing, progress parsing and the ffmpeg engine."""

import asyncio
import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from zoomreel.config import ExportSettings
from zoomreel.errors import TranscodeError
from zoomreel.ffutil import (
    FFmpegEngine,
    FFmpegNotFoundError,
    build_command,
    check_ffmpeg,
    parse_progress_line,
    probe,
)
from zoomreel.filtergraph import compile_timeline
from zoomreel.timeline import TimelineModel


# ---------------------------------------------------------------------------
# probe (mocked subprocess)
# ---------------------------------------------------------------------------

VIDEO_STREAM = {
    "codec_type": "video",
    "codec_name": "vp9",
    "width": 2560,
    "height": 1440,
    "r_frame_rate": "30/1",
}

AUDIO_STREAM = {
    "codec_type": "audio",
    "codec_name": "opus",
    "sample_rate": "48000",
}


def _probe_output(data):
    return MagicMock(returncode=0, stdout=json.dumps(data))


class TestProbe:
    @patch("zoomreel.ffutil.subprocess.run")
    def test_basic(self, mock_run):
        mock_run.return_value = _probe_output({
            "format": {"duration": "12.5"},
            "streams": [VIDEO_STREAM, AUDIO_STREAM],
        })
        result = probe(Path("recording.webm"))
        assert result.duration == 12.5
        assert (result.width, result.height) == (2560, 1440)
        assert result.fps == 30.0
        assert result.has_audio
        assert result.audio_sample_rate == 48000

    @patch("zoomreel.ffutil.subprocess.run")
    def test_no_audio_stream(self, mock_run):
        mock_run.return_value = _probe_output({
            "format": {"duration": "12.5"},
            "streams": [VIDEO_STREAM],
        })
        result = probe(Path("recording.webm"))
        assert not result.has_audio
        assert result.audio_sample_rate is None

    @patch("zoomreel.ffutil.subprocess.run")
    def test_duration_from_stream(self, mock_run):
        mock_run.return_value = _probe_output({
            "format": {},
            "streams": [{**VIDEO_STREAM, "duration": "7.25"}],
        })
        assert probe(Path("recording.webm")).duration == 7.25

    @patch("zoomreel.ffutil.subprocess.run")
    def test_no_duration(self, mock_run):
        mock_run.return_value = _probe_output({"format": {}, "streams": [VIDEO_STREAM]})
        with pytest.raises(ValueError, match="Could not determine duration"):
            probe(Path("recording.webm"))

    @patch("zoomreel.ffutil.subprocess.run")
    def test_no_video_stream(self, mock_run):
        mock_run.return_value = _probe_output({
            "format": {"duration": "60.0"},
            "streams": [AUDIO_STREAM],
        })
        with pytest.raises(ValueError, match="No video stream"):
            probe(Path("recording.webm"))


class TestCheckFFmpeg:
    @patch("zoomreel.ffutil.shutil.which", return_value=None)
    def test_missing(self, mock_which):
        with pytest.raises(FFmpegNotFoundError, match="ffmpeg not found"):
            check_ffmpeg()

    @patch("zoomreel.ffutil.shutil.which", return_value="/usr/bin/ffmpeg")
    def test_present(self, mock_which):
        check_ffmpeg()


# ---------------------------------------------------------------------------
# progress parsing and command shape (pure)
# ---------------------------------------------------------------------------

class TestParseProgressLine:
    def test_out_time_us(self):
        assert parse_progress_line("out_time_us=2500000\n", 10.0) == 25.0

    def test_out_time_ms_is_microseconds(self):
        assert parse_progress_line("out_time_ms=5000000", 10.0) == 50.0

    def test_clamped(self):
        assert parse_progress_line("out_time_us=20000000", 10.0) == 100.0

    def test_end(self):
        assert parse_progress_line("progress=end", 10.0) == 100.0

    @pytest.mark.parametrize("line", [
        "out_time_us=N/A",
        "progress=continue",
        "frame=12",
        "garbage",
        "",
    ])
    def test_ignored(self, line):
        assert parse_progress_line(line, 10.0) is None


def _program(has_audio=False):
    model = TimelineModel(duration=4.0, width=1280, height=720, has_audio=has_audio)
    return compile_timeline(model, ExportSettings())


class TestBuildCommand:
    def test_shape(self):
        program = _program(has_audio=True)
        cmd = build_command(Path("in.webm"), program, Path("out.mp4"))
        assert cmd[:2] == ["ffmpeg", "-y"]
        assert cmd[cmd.index("-i") + 1] == "in.webm"
        assert cmd[cmd.index("-filter_complex") + 1] == program.to_filter_complex()
        assert cmd.count("-map") == 2
        assert cmd[cmd.index("-progress") + 1] == "pipe:1"
        assert cmd[-1] == "out.mp4"


# ---------------------------------------------------------------------------
# FFmpegEngine (mocked asyncio subprocess)
# ---------------------------------------------------------------------------

class _Lines:
    """Async iterator over canned stdout lines."""

    def __init__(self, lines):
        self._lines = [line.encode() for line in lines]

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self._lines:
            raise StopAsyncIteration
        return self._lines.pop(0)


def _fake_process(lines, returncode=0, stderr=b"", write_output=True):
    proc = MagicMock()
    proc.stdout = _Lines(lines)
    proc.stderr = MagicMock()
    proc.stderr.read = AsyncMock(return_value=stderr)
    proc.returncode = None

    async def wait():
        proc.returncode = returncode
        return returncode

    proc.wait = wait
    return proc


class TestFFmpegEngine:
    def test_transcode_reports_progress(self):
        program = _program()
        seen = []

        async def fake_exec(*cmd, **kwargs):
            Path(cmd[-1]).write_bytes(b"MP4DATA")
            return _fake_process(["out_time_us=1000000\n", "out_time_us=N/A\n", "progress=end\n"])

        with patch("zoomreel.ffutil.asyncio.create_subprocess_exec", side_effect=fake_exec):
            output = asyncio.run(FFmpegEngine().transcode(b"WEBM", program, "mp4", seen.append))

        assert output == b"MP4DATA"
        assert seen == [25.0, 100.0]

    def test_nonzero_exit_raises_with_diagnostics(self):
        program = _program()

        async def fake_exec(*cmd, **kwargs):
            return _fake_process([], returncode=1, stderr=b"Invalid filter graph")

        with patch("zoomreel.ffutil.asyncio.create_subprocess_exec", side_effect=fake_exec):
            with pytest.raises(TranscodeError) as exc:
                asyncio.run(FFmpegEngine().transcode(b"WEBM", program, "mp4"))

        assert exc.value.diagnostics == "Invalid filter graph"
        assert exc.value.returncode == 1

    def test_empty_output_raises(self):
        program = _program()

        async def fake_exec(*cmd, **kwargs):
            return _fake_process([])

        with patch("zoomreel.ffutil.asyncio.create_subprocess_exec", side_effect=fake_exec):
            with pytest.raises(TranscodeError, match="empty output"):
                asyncio.run(FFmpegEngine().transcode(b"WEBM", program, "mp4"))

    def test_staging_dir_removed(self):
        program = _program()
        staged = []

        async def fake_exec(*cmd, **kwargs):
            staged.append(Path(cmd[cmd.index("-i") + 1]))
            Path(cmd[-1]).write_bytes(b"X")
            return _fake_process([])

        with patch("zoomreel.ffutil.asyncio.create_subprocess_exec", side_effect=fake_exec):
            asyncio.run(FFmpegEngine().transcode(b"WEBM", program, "mp4"))

        assert not staged[0].parent.exists()
