# routes_upload.py - POST /upload (photo + optional QR + fields)
from flask import Blueprint, request, jsonify, current_app

from services_uploads import UploadRejected, ingest, store_submission

bp_upload = Blueprint("upload", __name__)


def _state():
    return current_app.extensions["uploads"]


@bp_upload.post("/upload")
def upload():
    """
    form-data:
      photo       file (required, one part)
      qr          file (optional, one part)
      account, payerPhone, latitude, longitude   text (optional)
    """
    state = _state()
    opts = state.options

    try:
        sub = ingest(request, opts)
    except UploadRejected as e:
        current_app.logger.info("Upload rejected (%s): %s", e.status, e.error)
        return jsonify(ok=False, error=e.error), e.status

    try:
        stored = store_submission(sub, state.upload_dir, opts)
    except Exception as e:
        current_app.logger.exception("Upload error: %s", e)
        return jsonify(ok=False, error=str(e)), 500

    if opts.persist_metadata:
        current_app.logger.info("Upload %s stored: photo=%s qr=%s", stored.id, stored.photo, stored.qr)
        return jsonify(ok=True, id=stored.id, photo=stored.photo, qr=stored.qr)

    current_app.logger.info("Upload stored: photo=%s qr=%s location=(%s, %s)",
                            stored.photo, stored.qr, sub.raw_latitude, sub.raw_longitude)
    return jsonify(ok=True,
                   message="Upload successful",
                   receivedLocation={"latitude": sub.raw_latitude, "longitude": sub.raw_longitude})

