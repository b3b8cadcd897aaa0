"""Export orchestrator: compiles a timeline and drives the transcoding engine."""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Protocol

from zoomreel.config import EncoderConfig, ExportSettings
from zoomreel.errors import ConcurrentExportError, TranscodeError
from zoomreel.ffutil import FFmpegEngine
from zoomreel.filtergraph import FilterGraphProgram, compile_timeline
from zoomreel.timeline import TimelineModel

logger = logging.getLogger(__name__)


class TranscodingEngine(Protocol):
    async def transcode(
        self,
        input_bytes: bytes,
        program: FilterGraphProgram,
        container: str,
        on_progress: Callable[[float], None] | None = None,
    ) -> bytes:
        ...


class _ProgressRelay:
    """Forwards engine progress as a clamped, non-decreasing percentage."""

    def __init__(self, callback: Callable[[float], None] | None) -> None:
        self.callback = callback
        self.last: float | None = None
        self.closed = False

    def __call__(self, pct: float) -> None:
        if self.closed or self.callback is None:
            return
        pct = max(0.0, min(100.0, float(pct)))
        if self.last is not None and pct <= self.last:
            return
        self.last = pct
        self.callback(pct)

    def close(self) -> None:
        self.closed = True


class ExportOrchestrator:
    """Runs at most one export per timeline model at a time.

    Owned by an editor session; holds no state beyond the exports in flight.
    """

    def __init__(
        self,
        engine: TranscodingEngine | None = None,
        encoder: EncoderConfig | None = None,
    ) -> None:
        self.engine = engine or FFmpegEngine()
        self.encoder = encoder or EncoderConfig()
        self._in_flight: dict[int, tuple[asyncio.Task | None, _ProgressRelay]] = {}

    def is_exporting(self, model: TimelineModel) -> bool:
        return id(model) in self._in_flight

    async def export(
        self,
        model: TimelineModel,
        source: bytes,
        settings: ExportSettings,
        on_progress: Callable[[float], None] | None = None,
        program: FilterGraphProgram | None = None,
    ) -> bytes:
        """Compile ``model`` and transcode ``source`` with it.

        A ``program`` already compiled from ``model`` and ``settings`` is used as is.

        Raises ConcurrentExportError if this model is already exporting,
        ValidationError / InvalidTimelineError before the engine is touched,
        and TranscodeError (not retried) if the engine fails.
        """
        key = id(model)
        if key in self._in_flight:
            raise ConcurrentExportError("An export is already running for this timeline")

        relay = _ProgressRelay(on_progress)
        self._in_flight[key] = (asyncio.current_task(), relay)
        try:
            if program is None:
                program = compile_timeline(model, settings, self.encoder)
            logger.info(
                "Exporting %.2fs as %s (%s resolution, %s quality), %d stages",
                program.duration, settings.format, settings.resolution,
                settings.quality, len(program.stages),
            )
            relay(0.0)
            try:
                output = await self.engine.transcode(source, program, settings.container, relay)
            except TranscodeError as e:
                logger.error("Transcode failed (rc=%s)", e.returncode)
                raise
            relay(100.0)
            logger.info("Export finished: %d bytes", len(output))
            return output
        finally:
            relay.close()
            del self._in_flight[key]

    def cancel(self, model: TimelineModel) -> bool:
        """Stop relaying progress and cancel the running export, if any.

        Best effort: the engine may finish its current call, but nothing
        further is reported and staged buffers are released.
        """
        entry = self._in_flight.get(id(model))
        if entry is None:
            return False
        task, relay = entry
        relay.close()
        if task is not None:
            task.cancel()
        logger.info("Export cancelled")
        return True


@dataclass
class ExportResult:
    output_path: Path
    size_bytes: int
    duration: float
    program: FilterGraphProgram


async def export_file(
    model: TimelineModel,
    input_path: Path,
    output_path: Path,
    settings: ExportSettings,
    on_progress: Callable[[str, float], None] | None = None,
    orchestrator: ExportOrchestrator | None = None,
) -> ExportResult:
    """Export ``input_path`` with the edits in ``model`` to ``output_path``.

    Args:
        on_progress: Optional callback(stage_name, percent_complete).
        orchestrator: The session's orchestrator; a private one if omitted.
    """

    def _progress(stage: str, pct: float) -> None:
        if on_progress:
            on_progress(stage, pct)

    orchestrator = orchestrator or ExportOrchestrator()

    program = compile_timeline(model, settings, orchestrator.encoder)

    _progress("Reading source", 0.0)
    source = Path(input_path).read_bytes()

    output = await orchestrator.export(
        model, source, settings,
        on_progress=lambda pct: _progress("Encoding", pct),
        program=program,
    )

    output_path = Path(output_path)
    output_path.write_bytes(output)
    _progress("Done", 100.0)

    return ExportResult(
        output_path=output_path,
        size_bytes=len(output),
        duration=model.trimmed_duration,
        program=program,
    )
