"""Tests for the command-line entry point."""

import json
from unittest.mock import patch

import pytest

from zoomreel.cli import main
from zoomreel.models import ProbeResult
from zoomreel.timeline import load_timeline


@patch("zoomreel.cli.ffutil.check_ffmpeg")
@patch("zoomreel.cli.ffutil.probe")
def test_init_writes_empty_timeline(mock_probe, mock_check, tmp_path, capsys):
    mock_probe.return_value = ProbeResult(
        duration=8.0, width=1280, height=720, fps=30.0, codec_video="vp9",
    )
    video = tmp_path / "demo.webm"
    video.write_bytes(b"x")

    main(["init", str(video)])

    model = load_timeline(tmp_path / "demo.timeline.json")
    assert (model.duration, model.width, model.height) == (8.0, 1280, 720)
    assert not model.has_audio
    assert "8.0s, 1280x720" in capsys.readouterr().out


def test_preview(sample_timeline_path, capsys):
    main(["preview", str(sample_timeline_path), "--at", "6.5"])
    frame = json.loads(capsys.readouterr().out)
    assert frame["transform"]["scale"] == 2.0
    assert [o["text"] for o in frame["active_overlays"]] == ["Click Save"]


def test_compile(sample_timeline_path, capsys):
    main(["compile", str(sample_timeline_path), "--format", "animated-image"])
    out = capsys.readouterr().out
    assert "[0:v]trim=start=2:end=18" in out
    assert "palettegen" in out
    assert "-f gif" in out


def test_invalid_timeline_exits(tmp_path, capsys):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"duration": 5.0, "width": 640, "height": 480, "trim_range": [3, 1]}))
    with pytest.raises(SystemExit) as exc:
        main(["compile", str(path)])
    assert exc.value.code == 1
    assert "Error: trim_range.start" in capsys.readouterr().err
