"""Editor API routes: one session per uploaded recording."""

import asyncio
import json
import logging
import queue
import threading
import uuid
from dataclasses import asdict, dataclass, field
from pathlib import Path

from flask import (
    Blueprint,
    Response,
    current_app,
    jsonify,
    render_template,
    request,
    send_file,
)

from zoomreel import ffutil
from zoomreel.config import EncoderConfig, ExportSettings
from zoomreel.engine import ExportOrchestrator, export_file
from zoomreel.errors import (
    ConcurrentExportError,
    InvalidTimelineError,
    TranscodeError,
    ValidationError,
)
from zoomreel.filtergraph import compile_timeline
from zoomreel.models import CropRegion, Point, TextOverlay, TextStyle, ZoomRegion
from zoomreel.preview import evaluate
from zoomreel.timeline import TimelineModel

logger = logging.getLogger(__name__)

bp = Blueprint("web", __name__, template_folder="templates", static_folder="static")


class SessionNotFound(LookupError):
    pass


class SessionBusy(RuntimeError):
    pass


@dataclass
class EditorSession:
    """Everything one editing session owns."""

    id: str
    dir: Path
    input_path: Path
    filename: str
    model: TimelineModel
    orchestrator: ExportOrchestrator
    status: str = "ready"
    error: str | None = None
    result: dict | None = None
    progress_queue: queue.Queue | None = None
    loop: asyncio.AbstractEventLoop | None = field(default=None, repr=False)
    task: asyncio.Task | None = field(default=None, repr=False)
    cancel_requested: bool = False
    # Guards status, loop and cancel_requested across request and worker threads.
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


class SessionStore:
    """Sessions for one app instance, keyed by id."""

    def __init__(self, encoder: EncoderConfig) -> None:
        self.encoder = encoder
        self._sessions: dict[str, EditorSession] = {}

    def add(self, session: EditorSession) -> None:
        self._sessions[session.id] = session

    def get(self, session_id: str) -> EditorSession:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise SessionNotFound(session_id) from None


def _store() -> SessionStore:
    return current_app.extensions["zoomreel"]


def _editable(session_id: str) -> EditorSession:
    session = _store().get(session_id)
    if session.status == "exporting":
        raise SessionBusy("Timeline is locked while an export is running")
    return session


@bp.errorhandler(SessionNotFound)
def _not_found(error):
    return jsonify({"error": "Session not found"}), 404


@bp.errorhandler(SessionBusy)
@bp.errorhandler(ConcurrentExportError)
def _busy(error):
    return jsonify({"error": str(error)}), 409


@bp.errorhandler(ValidationError)
def _invalid(error: ValidationError):
    return jsonify({"error": str(error), "field": error.field, "bound": error.bound}), 400


@bp.errorhandler(InvalidTimelineError)
def _degenerate(error):
    return jsonify({"error": str(error)}), 422


# --- payload parsing ---

def _payload() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("body", "a JSON object")
    return data


def _number(data: dict, key: str) -> float:
    if key not in data:
        raise ValidationError(key, "present")
    try:
        return float(data[key])
    except (TypeError, ValueError):
        raise ValidationError(key, "a number", data[key]) from None


def _point(data: dict | None, key: str) -> Point:
    if not isinstance(data, dict):
        raise ValidationError(key, "an object with x and y", data)
    return Point(x=_number(data, "x"), y=_number(data, "y"))


def _zoom_from_json(data: dict) -> ZoomRegion:
    return ZoomRegion(
        start_time=_number(data, "start_time"),
        end_time=_number(data, "end_time"),
        scale=_number(data, "scale"),
        center=_point(data["center"], "center") if "center" in data else Point(50.0, 50.0),
    )


def _text_from_json(data: dict) -> TextOverlay:
    style = data.get("style") or {}
    try:
        text_style = TextStyle(**style)
    except TypeError:
        raise ValidationError("style", "known style fields", sorted(style)) from None
    return TextOverlay(
        text=str(data.get("text", "")),
        position=_point(data.get("position"), "position"),
        start_time=_number(data, "start_time"),
        end_time=_number(data, "end_time"),
        style=text_style,
    )


def _changes(data: dict, allowed: set[str]) -> dict:
    unknown = set(data) - allowed
    if unknown:
        raise ValidationError("body", f"only {sorted(allowed)}", sorted(unknown))
    return data


def _settings_from(data) -> ExportSettings:
    settings = ExportSettings(
        format=data.get("format", "video"),
        resolution=data.get("resolution", "high"),
        quality=data.get("quality", "high"),
    )
    settings.validate()
    return settings


# --- pages & upload ---

@bp.route("/")
def index():
    return render_template("index.html")


@bp.route("/api/upload", methods=["POST"])
def upload():
    if "file" not in request.files:
        return jsonify({"error": "No file provided"}), 400

    f = request.files["file"]
    if not f.filename:
        return jsonify({"error": "Empty filename"}), 400

    session_id = uuid.uuid4().hex[:12]
    session_dir = Path(current_app.config["WORK_DIR"]) / session_id
    session_dir.mkdir(parents=True, exist_ok=True)

    ext = Path(f.filename).suffix or ".webm"
    input_path = session_dir / f"input{ext}"
    f.save(input_path)

    try:
        info = ffutil.probe(input_path)
    except (ValueError, OSError) as e:
        return jsonify({"error": f"Could not read video: {e}"}), 400

    store = _store()
    session = EditorSession(
        id=session_id,
        dir=session_dir,
        input_path=input_path,
        filename=f.filename,
        model=TimelineModel(
            duration=info.duration,
            width=info.width,
            height=info.height,
            has_audio=info.has_audio,
        ),
        orchestrator=ExportOrchestrator(encoder=store.encoder),
    )
    store.add(session)
    logger.info("Session %s opened for %s", session_id, f.filename)

    return jsonify({
        "session_id": session_id,
        "filename": f.filename,
        "timeline": session.model.to_dict(),
    })


# --- timeline edits ---

@bp.route("/api/sessions/<session_id>/timeline")
def get_timeline(session_id: str):
    return jsonify(_store().get(session_id).model.to_dict())


@bp.route("/api/sessions/<session_id>/timeline", methods=["PUT"])
def replace_timeline(session_id: str):
    """Load a saved timeline; the media facts always come from the upload."""
    session = _editable(session_id)
    data = _payload()
    current = session.model
    data.update(
        duration=current.duration,
        width=current.width,
        height=current.height,
        has_audio=current.has_audio,
    )
    try:
        session.model = TimelineModel.from_dict(data)
    except (KeyError, TypeError) as e:
        raise ValidationError("body", "a timeline object", str(e)) from None
    return jsonify(session.model.to_dict())


@bp.route("/api/sessions/<session_id>/trim", methods=["PUT"])
def set_trim(session_id: str):
    session = _editable(session_id)
    data = _payload()
    session.model.set_trim_range(_number(data, "start"), _number(data, "end"))
    return jsonify(session.model.to_dict())


@bp.route("/api/sessions/<session_id>/crop", methods=["PUT"])
def set_crop(session_id: str):
    session = _editable(session_id)
    data = request.get_json(silent=True)
    if data is None:
        region = None
    elif isinstance(data, dict) and "from" in data and "to" in data:
        region = CropRegion.from_drag(_point(data["from"], "from"), _point(data["to"], "to"))
    elif isinstance(data, dict):
        region = CropRegion(
            x=_number(data, "x"),
            y=_number(data, "y"),
            width=_number(data, "width"),
            height=_number(data, "height"),
        )
    else:
        raise ValidationError("body", "a crop object or null")
    session.model.set_crop_region(region)
    return jsonify(session.model.to_dict())


@bp.route("/api/sessions/<session_id>/zoom", methods=["POST"])
def add_zoom(session_id: str):
    session = _editable(session_id)
    data = _payload()
    if "at" in data:
        region = session.model.default_zoom_region(_number(data, "at"))
    else:
        region = _zoom_from_json(data)
    index = session.model.add_zoom_region(region)
    return jsonify({"index": index, "region": asdict(region)}), 201


@bp.route("/api/sessions/<session_id>/zoom/<int:index>", methods=["PATCH"])
def update_zoom(session_id: str, index: int):
    session = _editable(session_id)
    changes = _changes(_payload(), {"start_time", "end_time", "scale", "center"})
    region = session.model.update_zoom_region(index, **changes)
    return jsonify({"index": index, "region": asdict(region)})


@bp.route("/api/sessions/<session_id>/zoom/<int:index>", methods=["DELETE"])
def remove_zoom(session_id: str, index: int):
    session = _editable(session_id)
    session.model.remove_zoom_region(index)
    return jsonify(session.model.to_dict())


@bp.route("/api/sessions/<session_id>/text", methods=["POST"])
def add_text(session_id: str):
    session = _editable(session_id)
    data = _payload()
    if "at" in data:
        overlay = session.model.default_text_overlay(str(data.get("text", "")), _number(data, "at"))
    else:
        overlay = _text_from_json(data)
    index = session.model.add_text_overlay(overlay)
    return jsonify({"index": index, "overlay": asdict(overlay)}), 201


@bp.route("/api/sessions/<session_id>/text/<int:index>", methods=["PATCH"])
def update_text(session_id: str, index: int):
    session = _editable(session_id)
    changes = _changes(_payload(), {"text", "position", "start_time", "end_time", "style"})
    overlay = session.model.update_text_overlay(index, **changes)
    return jsonify({"index": index, "overlay": asdict(overlay)})


@bp.route("/api/sessions/<session_id>/text/<int:index>", methods=["DELETE"])
def remove_text(session_id: str, index: int):
    session = _editable(session_id)
    session.model.remove_text_overlay(index)
    return jsonify(session.model.to_dict())


# --- renderers ---

@bp.route("/api/sessions/<session_id>/preview")
def preview(session_id: str):
    session = _store().get(session_id)
    t = request.args.get("t", type=float)
    if t is None:
        raise ValidationError("t", "a number")
    frame = evaluate(session.model, t)
    return jsonify({
        "time": t,
        "transform": asdict(frame.transform),
        "css": frame.transform.to_css(),
        "active_overlays": [asdict(o) for o in frame.active_overlays],
    })


@bp.route("/api/sessions/<session_id>/program")
def program(session_id: str):
    session = _store().get(session_id)
    settings = _settings_from(request.args)
    compiled = compile_timeline(session.model, settings, _store().encoder)
    return jsonify({
        "filter_complex": compiled.to_filter_complex(),
        "output_args": [*compiled.map_args(), *compiled.output_args],
        "container": compiled.container,
        "stages": [
            {"kind": s.kind, "input": s.input_pad, "output": s.output_pad, "operation": s.operation}
            for s in compiled.stages
        ],
    })


# --- export ---

@bp.route("/api/sessions/<session_id>/export", methods=["POST"])
def start_export(session_id: str):
    session = _store().get(session_id)
    settings = _settings_from(request.get_json(silent=True) or {})
    # Fail fast on degenerate timelines before spinning up a worker.
    compile_timeline(session.model, settings, session.orchestrator.encoder)

    output_path = session.dir / f"output.{settings.container}"
    progress_queue: queue.Queue = queue.Queue()

    with session.lock:
        if session.status == "exporting":
            return jsonify({"error": "Export is already running"}), 409
        session.progress_queue = progress_queue
        session.status = "exporting"
        session.error = None
        session.result = None
        session.cancel_requested = False

    def on_progress(stage: str, pct: float) -> None:
        progress_queue.put({"stage": stage, "progress": round(pct, 1)})

    async def _export():
        with session.lock:
            if session.cancel_requested:
                raise asyncio.CancelledError
            session.loop = asyncio.get_running_loop()
            session.task = asyncio.current_task()
        try:
            return await export_file(
                session.model, session.input_path, output_path, settings,
                on_progress=on_progress,
                orchestrator=session.orchestrator,
            )
        finally:
            # Cleared while the loop still runs, so cancel never targets a closed loop.
            with session.lock:
                session.loop = None
                session.task = None

    def run():
        try:
            result = asyncio.run(_export())
            session.result = {
                "output_path": str(result.output_path),
                "size_bytes": result.size_bytes,
                "duration": result.duration,
                "container": settings.container,
            }
            status = "done"
        except asyncio.CancelledError:
            status = "cancelled"
        except TranscodeError as e:
            status = "error"
            session.error = f"ffmpeg failed: {e.diagnostics[-500:]}" if e.diagnostics else str(e)
        except Exception as e:
            logger.exception("Export for session %s failed", session.id)
            status = "error"
            session.error = str(e)
        with session.lock:
            session.status = status
        progress_queue.put(None)  # sentinel

    threading.Thread(target=run, daemon=True).start()
    return jsonify({"status": "started"})


def _cancel_in_loop(session: EditorSession) -> None:
    # Before the orchestrator registers the export there is nothing for it to cancel.
    if not session.orchestrator.cancel(session.model) and session.task is not None:
        session.task.cancel()


@bp.route("/api/sessions/<session_id>/cancel", methods=["POST"])
def cancel_export(session_id: str):
    session = _store().get(session_id)
    with session.lock:
        if session.status != "exporting":
            return jsonify({"error": "No export in progress"}), 409
        if session.loop is None:
            # The worker hasn't started its loop yet; it checks this flag first.
            session.cancel_requested = True
        else:
            session.loop.call_soon_threadsafe(_cancel_in_loop, session)
    return jsonify({"status": "cancelling"})


@bp.route("/api/sessions/<session_id>/progress")
def progress_stream(session_id: str):
    session = _store().get(session_id)
    q = session.progress_queue

    if q is None:
        return jsonify({"error": "No export in progress"}), 409

    def generate():
        while True:
            try:
                msg = q.get(timeout=120)
            except queue.Empty:
                yield "data: {\"error\": \"timeout\"}\n\n"
                break
            if msg is None:
                if session.status == "error":
                    data = json.dumps({"error": session.error})
                elif session.status == "cancelled":
                    data = json.dumps({"stage": "cancelled"})
                else:
                    data = json.dumps({
                        "stage": "complete",
                        "progress": 100.0,
                        "result": session.result,
                    })
                yield f"data: {data}\n\n"
                break
            yield f"data: {json.dumps(msg)}\n\n"

    return Response(generate(), mimetype="text/event-stream")


@bp.route("/api/sessions/<session_id>/result")
def download_result(session_id: str):
    session = _store().get(session_id)
    if session.status != "done":
        return jsonify({"error": "Export not complete"}), 409

    output_path = Path(session.result["output_path"])
    return send_file(output_path, as_attachment=False)


@bp.route("/api/sessions/<session_id>/status")
def session_status(session_id: str):
    session = _store().get(session_id)
    resp = {"status": session.status, "filename": session.filename}
    if session.status == "done":
        resp["result"] = session.result
    if session.status == "error":
        resp["error"] = session.error
    return jsonify(resp)
