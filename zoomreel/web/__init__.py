"""Flask application factory for the ZoomReel editor API."""

import tempfile
from pathlib import Path

from flask import Flask, jsonify

from zoomreel.config import EncoderConfig


def create_app(work_dir: Path | None = None, encoder: EncoderConfig | None = None) -> Flask:
    app = Flask(__name__)
    app.config["WORK_DIR"] = work_dir or Path(tempfile.mkdtemp(prefix="zoomreel_"))
    app.config["MAX_CONTENT_LENGTH"] = 10 * 1024 * 1024 * 1024  # 10 GB

    from zoomreel.web.routes import SessionStore, bp
    app.extensions["zoomreel"] = SessionStore(encoder or EncoderConfig())
    app.register_blueprint(bp)

    @app.errorhandler(413)
    def request_entity_too_large(error):
        return jsonify({"error": "File too large"}), 413

    return app
