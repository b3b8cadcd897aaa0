"""Thin CLI entry point: loads a timeline and calls the renderers."""

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path

from zoomreel import ffutil
from zoomreel.config import FORMATS, LEVELS, ExportSettings, load_encoder_config
from zoomreel.engine import ExportOrchestrator, export_file
from zoomreel.errors import ZoomReelError
from zoomreel.filtergraph import compile_timeline
from zoomreel.log import setup_logging
from zoomreel.preview import evaluate
from zoomreel.timeline import TimelineModel, load_timeline, save_timeline


def _add_settings_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--format", choices=FORMATS, default="video", help="Output format")
    parser.add_argument("--resolution", choices=LEVELS, default="high", help="Resolution preset")
    parser.add_argument("--quality", choices=LEVELS, default="high", help="Quality preset")
    parser.add_argument("--config", type=Path, help="JSON file overriding encoder presets")


def _settings(args: argparse.Namespace) -> ExportSettings:
    return ExportSettings(format=args.format, resolution=args.resolution, quality=args.quality)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="zoomreel",
        description="ZoomReel: zoom, crop, trim and caption screen recordings.",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command")

    init = sub.add_parser("init", help="Create an empty timeline for a recording")
    init.add_argument("video", type=Path, help="Recorded video file")
    init.add_argument("--output", "-o", type=Path, help="Timeline JSON path")

    prev = sub.add_parser("preview", help="Show the preview frame at a time")
    prev.add_argument("timeline", type=Path, help="Timeline JSON file")
    prev.add_argument("--at", type=float, required=True, help="Playback time in seconds")

    comp = sub.add_parser("compile", help="Print the ffmpeg filter graph for a timeline")
    comp.add_argument("timeline", type=Path, help="Timeline JSON file")
    _add_settings_args(comp)

    exp = sub.add_parser("export", help="Render a recording with its timeline")
    exp.add_argument("video", type=Path, help="Recorded video file")
    exp.add_argument("--timeline", "-t", type=Path, required=True, help="Timeline JSON file")
    exp.add_argument("--output", "-o", type=Path, help="Output file path")
    _add_settings_args(exp)

    serve = sub.add_parser("serve", help="Launch the editor API")
    serve.add_argument("--port", type=int, default=8321, help="Port to listen on")
    serve.add_argument("--host", type=str, default="127.0.0.1", help="Host to bind to")

    args = parser.parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.WARNING)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    try:
        _run(args)
    except (ZoomReelError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


def _run(args: argparse.Namespace) -> None:
    if args.command == "serve":
        from zoomreel.web import create_app
        app = create_app()
        print(f"ZoomReel editor: http://{args.host}:{args.port}")
        app.run(host=args.host, port=args.port, debug=False)
        return

    if args.command == "init":
        ffutil.check_ffmpeg()
        info = ffutil.probe(args.video)
        model = TimelineModel(
            duration=info.duration,
            width=info.width,
            height=info.height,
            has_audio=info.has_audio,
        )
        path = save_timeline(model, args.output or args.video.with_suffix(".timeline.json"))
        print(f"Timeline: {path} ({info.duration:.1f}s, {info.width}x{info.height})")
        return

    if args.command == "preview":
        frame = evaluate(load_timeline(args.timeline), args.at)
        print(json.dumps(asdict(frame), indent=2))
        return

    settings = _settings(args)
    encoder = load_encoder_config(args.config)
    model = load_timeline(args.timeline)

    if args.command == "compile":
        program = compile_timeline(model, settings, encoder)
        print(program.to_filter_complex().replace(";", ";\n"))
        print()
        print(" ".join([*program.map_args(), *program.output_args]))
        return

    ffutil.check_ffmpeg()
    output = args.output or args.video.with_name(f"{args.video.stem}_edited.{settings.container}")

    def on_progress(stage: str, pct: float) -> None:
        print(f"  [{pct:5.1f}%] {stage}")

    result = asyncio.run(export_file(
        model, args.video, output, settings,
        on_progress=on_progress,
        orchestrator=ExportOrchestrator(encoder=encoder),
    ))

    print()
    print(f"Done! Output: {result.output_path}")
    print(f"  Duration: {model.duration:.1f}s -> {result.duration:.1f}s")
    print(f"  Size: {result.size_bytes / 1_000_000:.1f} MB")
