# models_uploads.py
from datetime import datetime, timezone
from extensions import db


def _utcnow():
    return datetime.now(timezone.utc)


class Upload(db.Model):
    __tablename__ = "uploads"
    id            = db.Column(db.Integer, primary_key=True)
    created_at    = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)

    submission_id = db.Column(db.String(24), index=True, nullable=False)  # {id}.json sidecar
    field         = db.Column(db.String(16), nullable=False)               # photo|qr
    filename      = db.Column(db.String(300), nullable=False)              # name inside uploads/
    original_name = db.Column(db.String(255))
    mime          = db.Column(db.String(80))
    size_bytes    = db.Column(db.Integer)
    width         = db.Column(db.Integer)
    height        = db.Column(db.Integer)
    sha256        = db.Column(db.String(64))

