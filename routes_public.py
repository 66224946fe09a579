# routes_public.py - front-end page; uploads/ is never browsable
import os
from flask import Blueprint, current_app, jsonify, send_from_directory
from werkzeug.security import safe_join

bp_public = Blueprint("public", __name__)

UPLOADS_PREFIX = "uploads"


@bp_public.get("/", defaults={"path": ""})
@bp_public.get("/<path:path>")
def spa(path):
    if path == UPLOADS_PREFIX or path.startswith(UPLOADS_PREFIX + "/"):
        return "Forbidden", 403

    public_dir = current_app.config["PUBLIC_DIR"]
    if path:
        asset = safe_join(public_dir, path)
        if asset and os.path.isfile(asset):
            return send_from_directory(public_dir, path)

    if not os.path.isfile(os.path.join(public_dir, "index.html")):
        return jsonify(ok=False, error="not_found"), 404
    return send_from_directory(public_dir, "index.html")
