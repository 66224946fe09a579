# app.py - photo/QR upload backend (Flask + uploads/ on disk + JSON sidecars)
import os, logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from flask import Flask, jsonify
from flask_cors import CORS
from werkzeug.exceptions import RequestEntityTooLarge

from extensions import db
from services_uploads import (
    ONE_MB, FILE_TOO_LARGE, UploadState, options_for, ensure_upload_dir,
)

BASE_DIR = Path(__file__).resolve().parent

PORT             = int(os.getenv("PORT", "3000"))
UPLOADS_DIR      = os.getenv("UPLOADS_DIR", str(BASE_DIR / "uploads"))
PUBLIC_DIR       = os.getenv("PUBLIC_DIR", str(BASE_DIR / "public"))
LOG_DIR          = os.getenv("LOG_DIR", str(BASE_DIR / "logs"))
UPLOAD_PROFILE   = os.getenv("UPLOAD_PROFILE", "strict")
UPLOAD_MAX_BYTES = int(os.getenv("UPLOAD_MAX_FILE_MB", "10")) * ONE_MB


def create_app(test_config=None):
    app = Flask(__name__, static_folder=None)
    Path(app.instance_path).mkdir(parents=True, exist_ok=True)

    app.config.update(
        UPLOADS_DIR=UPLOADS_DIR,
        PUBLIC_DIR=PUBLIC_DIR,
        LOG_DIR=LOG_DIR,
        UPLOAD_PROFILE=UPLOAD_PROFILE,
        UPLOAD_MAX_FILE_BYTES=UPLOAD_MAX_BYTES,
        SQLALCHEMY_DATABASE_URI=os.getenv(
            "DATABASE_URL", f"sqlite:///{(Path(app.instance_path) / 'uploads.db').as_posix()}"
        ),
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
    )
    if test_config:
        app.config.update(test_config)

    _init_logging(app)

    options = options_for(app.config["UPLOAD_PROFILE"], app.config["UPLOAD_MAX_FILE_BYTES"])
    if "MAX_CONTENT_LENGTH" not in (test_config or {}):
        # two files at the per-file limit plus the text fields
        limit = options.max_file_size_bytes
        app.config["MAX_CONTENT_LENGTH"] = (2 * limit + 5 * ONE_MB) if limit else None

    upload_dir = ensure_upload_dir(app.config["UPLOADS_DIR"])
    app.extensions["uploads"] = UploadState(upload_dir=upload_dir, options=options)

    db.init_app(app)
    with app.app_context():
        import models_uploads  # noqa: F401
        db.create_all()

    CORS(app, resources={r"/*": {"origins": "*"}}, send_wildcard=True)

    from routes_upload import bp_upload
    from routes_public import bp_public
    app.register_blueprint(bp_upload)
    app.register_blueprint(bp_public)

    @app.errorhandler(RequestEntityTooLarge)
    def _too_large(e):
        app.logger.info("Upload rejected (413): request body over %s bytes", app.config["MAX_CONTENT_LENGTH"])
        return jsonify(ok=False, error=FILE_TOO_LARGE), 413

    # ---------- Health ----------
    @app.get("/healthz")
    def health():
        return jsonify(ok=True)

    app.logger.info("Uploads profile=%s dir=%s public=%s", app.config["UPLOAD_PROFILE"], upload_dir, app.config["PUBLIC_DIR"])
    return app


def _init_logging(app):
    app.logger.setLevel(logging.INFO)
    for h in list(app.logger.handlers):
        app.logger.removeHandler(h)
        h.close()
    fmt = logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    sh = logging.StreamHandler(); sh.setFormatter(fmt); app.logger.addHandler(sh)
    logs_dir = Path(app.config["LOG_DIR"])
    try:
        logs_dir.mkdir(parents=True, exist_ok=True)
        fh = RotatingFileHandler(logs_dir / "backend.log", maxBytes=5_000_000, backupCount=3, encoding="utf-8")
        fh.setFormatter(fmt); app.logger.addHandler(fh)
    except OSError as e:
        app.logger.warning("File logging disabled (%s): %s", logs_dir, e)


if __name__ == "__main__":
    app = create_app()
    app.logger.info("Server listening on port %s", PORT)
    app.run(host="0.0.0.0", port=PORT, threaded=True)
