#!/usr/bin/env python3
"""Generate a synthetic screen recording for ZoomReel export testing.

Produces a 12-second 1280x720 WebM that looks like a screen capture: a
light "desktop" with a moving cursor-sized box and a running timestamp,
plus a quiet 440 Hz tone so the audio path is exercised:
  0-4s   box drifts across the top-left quadrant
  4-8s   box drifts across the center
  8-12s  box drifts across the bottom-right quadrant
"""

import subprocess
import sys
from pathlib import Path


def generate_test_video(output: Path) -> None:
    output.parent.mkdir(parents=True, exist_ok=True)

    video_filter = (
        "color=c=0xEEEEEE:s=1280x720:d=12:r=30,"
        "drawbox=x='40+t*80':y='60+t*45':w=24:h=24:color=0x3366FF:t=fill,"
        "drawtext=text='%{pts\\:hms}':x=20:y=680:fontsize=28:fontcolor=black[vout]"
    )
    audio_filter = "sine=f=440:d=12,volume=0.2[aout]"

    cmd = [
        "ffmpeg", "-y",
        "-filter_complex", video_filter + ";" + audio_filter,
        "-map", "[vout]",
        "-map", "[aout]",
        "-c:v", "libvpx-vp9",
        "-b:v", "1M",
        "-c:a", "libopus",
        "-shortest",
        str(output),
    ]
    subprocess.run(cmd, check=True)
    print(f"Generated: {output}")


if __name__ == "__main__":
    out = Path(sys.argv[1]) if len(sys.argv) > 1 else Path("tests/fixtures/synthetic.webm")
    generate_test_video(out)
