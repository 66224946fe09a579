# services_uploads.py - photo/QR submissions: naming, ingestion, disk staging, metadata sidecar
import os, re, json, math, time, secrets, hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Dict, List

from PIL import Image, UnidentifiedImageError
from werkzeug.utils import secure_filename

from extensions import db
from models_uploads import Upload

ONE_MB = 1024 * 1024
FILE_FIELDS = ("photo", "qr")

PHOTO_REQUIRED = "photo is required"
ONLY_IMAGES = "Only image files are allowed"
FILE_TOO_LARGE = "File too large"
UNEXPECTED_FIELD = "Unexpected field"


class UploadRejected(Exception):
    """Submission refused before anything touches the disk."""

    def __init__(self, error: str, status: int = 400):
        super().__init__(error)
        self.error = error
        self.status = status


@dataclass(frozen=True)
class UploadOptions:
    enforce_image_only: bool = True
    max_file_size_bytes: Optional[int] = 10 * ONE_MB
    persist_metadata: bool = True
    keep_original_name: bool = False


PROFILES: Dict[str, UploadOptions] = {
    "strict": UploadOptions(),
    "permissive": UploadOptions(
        enforce_image_only=False,
        max_file_size_bytes=None,
        persist_metadata=False,
        keep_original_name=True,
    ),
}


def options_for(profile: str, max_file_size_bytes: Optional[int] = None) -> UploadOptions:
    """
    Options for a named profile ('strict' | 'permissive').
    max_file_size_bytes only applies to profiles that enforce a limit; 0 disables it.
    """
    key = (profile or "strict").strip().lower()
    if key not in PROFILES:
        raise ValueError(f"unknown upload profile: {profile!r}")
    opts = PROFILES[key]
    if opts.max_file_size_bytes is not None and max_file_size_bytes is not None:
        opts = UploadOptions(
            enforce_image_only=opts.enforce_image_only,
            max_file_size_bytes=max_file_size_bytes or None,
            persist_metadata=opts.persist_metadata,
            keep_original_name=opts.keep_original_name,
        )
    return opts


@dataclass
class UploadState:
    """What the /upload blueprint needs; lives in app.extensions['uploads']."""
    upload_dir: str
    options: UploadOptions


def ensure_upload_dir(path: str) -> str:
    os.makedirs(path, exist_ok=True)
    return path


# ---------- Naming ----------
_EXT_STRIP_RE = re.compile(r"[^A-Za-z0-9]")


def _split_name(original_name: str):
    """(stem, '.ext') of the raw basename; only the extension's ASCII alphanumerics survive."""
    base = re.split(r"[\\/]", original_name or "")[-1]
    stem, ext = os.path.splitext(base)
    ext = _EXT_STRIP_RE.sub("", ext).lower()
    if not ext or len(ext) > 9:
        return stem, ""
    return stem, "." + ext


def unique_name(original_name: str, mimetype: Optional[str] = None, keep_original: bool = False) -> str:
    """
    {ms}-{12 hex}{ext}            48 random bits, extension from the name or the MIME subtype
    {ms}-{0..1e9}-{original}      ~30 random bits, sanitised original name kept
    """
    ts = int(time.time() * 1000)
    stem, ext = _split_name(original_name)
    if keep_original:
        return f"{ts}-{secrets.randbelow(10**9 + 1)}-{secure_filename(stem) or 'upload'}{ext}"

    if not ext and mimetype and "/" in mimetype:
        sub = mimetype.split("/", 1)[1].split(";")[0].split("+")[0]
        sub = _EXT_STRIP_RE.sub("", sub).lower()
        ext = f".{sub}" if sub and len(sub) <= 9 else ""
    return f"{ts}-{secrets.token_hex(6)}{ext}"


# ---------- Ingestion ----------
@dataclass
class IncomingFile:
    field: str
    storage: object  # werkzeug FileStorage
    size: int

    @property
    def original_name(self) -> str:
        return self.storage.filename or ""

    @property
    def mimetype(self) -> str:
        return self.storage.mimetype or ""


@dataclass
class Submission:
    photo: Optional[IncomingFile]
    qr: Optional[IncomingFile] = None
    account: str = ""
    payer_phone: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    raw_latitude: Optional[str] = None
    raw_longitude: Optional[str] = None
    ip: Optional[str] = None
    user_agent: Optional[str] = None

    def files(self) -> List[IncomingFile]:
        return [f for f in (self.photo, self.qr) if f is not None]


def _part_size(storage) -> int:
    stream = storage.stream
    pos = stream.tell()
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(pos)
    return size


_DECIMAL_RE = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_RADIX = {"0x": 16, "0o": 8, "0b": 2}


def parse_coord(raw: Optional[str]) -> Optional[float]:
    """
    Number()-style parsing of a form value: empty or missing is null, blank is 0,
    0x/0o/0b literals are integers, anything else unparsable or non-finite is null.
    """
    if not raw:
        return None
    text = raw.strip()
    if not text:
        return 0.0
    radix = _RADIX.get(text[:2].lower())
    if radix:
        try:
            return float(int(text[2:], radix)) if text[2:].isalnum() else None
        except ValueError:
            return None
    if not _DECIMAL_RE.fullmatch(text):
        return None
    value = float(text)
    return value if math.isfinite(value) else None


def client_ip(req) -> Optional[str]:
    """Socket address; X-Forwarded-For only when the server saw none."""
    if req.remote_addr:
        return req.remote_addr
    fwd = (req.headers.get("X-Forwarded-For") or "").split(",")[0].strip()
    return fwd or None


def ingest(req, options: UploadOptions) -> Submission:
    """
    Reads the multipart body of `req` (Flask request). At most one 'photo' and
    one 'qr' part; any other file field is refused. Type and size rules run for
    every part before the photo presence check; nothing is written here.
    """
    parts: Dict[str, IncomingFile] = {}
    for name, fs in req.files.items(multi=True):
        if not fs or not fs.filename:
            continue
        if name not in FILE_FIELDS or name in parts:
            raise UploadRejected(UNEXPECTED_FIELD, 400)
        part = IncomingFile(field=name, storage=fs, size=_part_size(fs))
        if options.enforce_image_only and not part.mimetype.startswith("image/"):
            raise UploadRejected(ONLY_IMAGES, 400)
        if options.max_file_size_bytes is not None and part.size > options.max_file_size_bytes:
            raise UploadRejected(FILE_TOO_LARGE, 413)
        parts[name] = part

    if "photo" not in parts:
        raise UploadRejected(PHOTO_REQUIRED, 400)

    form = req.form
    raw_lat = form.get("latitude")
    raw_lon = form.get("longitude")
    return Submission(
        photo=parts["photo"],
        qr=parts.get("qr"),
        account=(form.get("account") or "").strip(),
        payer_phone=(form.get("payerPhone") or "").strip(),
        latitude=parse_coord(raw_lat),
        longitude=parse_coord(raw_lon),
        raw_latitude=raw_lat,
        raw_longitude=raw_lon,
        ip=client_ip(req),
        user_agent=req.headers.get("User-Agent") or None,
    )


# ---------- Disk + metadata ----------
@dataclass
class StoredSubmission:
    id: str
    photo: str
    qr: Optional[str] = None
    metadata: Optional[dict] = None
    paths: List[str] = field(default_factory=list)


def _utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _sha256_file(path: str) -> str:
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(64 * 1024), b""):
            h.update(chunk)
    return h.hexdigest()


def probe_image(path: str):
    """(width, height) or (None, None) when Pillow cannot identify the file."""
    try:
        with Image.open(path) as im:
            return im.size
    except (UnidentifiedImageError, OSError):
        return None, None


def build_metadata(submission_id: str, sub: Submission, names: Dict[str, str]) -> dict:
    return {
        "id": submission_id,
        "timestamp": _utc_iso(),
        "ip": sub.ip,
        "photoFilename": names["photo"],
        "qrFilename": names.get("qr"),
        "account": sub.account,
        "payerPhone": sub.payer_phone,
        "latitude": sub.latitude,
        "longitude": sub.longitude,
        "userAgent": sub.user_agent,
    }


def _stage_file(part: IncomingFile, staged_path: str):
    part.storage.stream.seek(0)
    part.storage.save(staged_path)


def _write_sidecar(path: str, meta: dict):
    with open(path, "w", encoding="utf-8") as f:
        json.dump(meta, f, indent=2, ensure_ascii=False)


def _registry_rows(submission_id: str, sub: Submission, names: Dict[str, str], upload_dir: str):
    for part in sub.files():
        name = names[part.field]
        path = os.path.join(upload_dir, name)
        w, h = probe_image(path)
        yield Upload(
            submission_id=submission_id, field=part.field, filename=name,
            original_name=part.original_name[:255], mime=part.mimetype or None,
            size_bytes=os.path.getsize(path), width=w, height=h, sha256=_sha256_file(path),
        )


def _discard(paths: List[str]):
    for p in paths:
        try:
            os.remove(p)
        except FileNotFoundError:
            pass


def store_submission(sub: Submission, upload_dir: str, options: UploadOptions) -> StoredSubmission:
    """
    Files are staged as '<name>.part', the sidecar as '<id>.json.part'; both are
    promoted with os.replace and the registry rows committed last. Any failure
    unlinks everything this submission created and re-raises.
    """
    submission_id = secrets.token_hex(12)
    names: Dict[str, str] = {}
    staged: Dict[str, str] = {}
    promoted: List[str] = []
    meta = None
    try:
        for part in sub.files():
            name = unique_name(part.original_name, part.mimetype, options.keep_original_name)
            final = os.path.join(upload_dir, name)
            staged[final] = final + ".part"
            _stage_file(part, staged[final])
            names[part.field] = name

        meta_final = os.path.join(upload_dir, f"{submission_id}.json")
        if options.persist_metadata:
            meta = build_metadata(submission_id, sub, names)
            staged[meta_final] = meta_final + ".part"
            _write_sidecar(staged[meta_final], meta)

        # sidecar goes last so a visible {id}.json never points at missing files
        for final in sorted(staged, key=lambda p: p == meta_final):
            os.replace(staged[final], final)
            promoted.append(final)

        if options.persist_metadata:
            db.session.add_all(list(_registry_rows(submission_id, sub, names, upload_dir)))
            db.session.commit()
    except Exception:
        if options.persist_metadata:
            db.session.rollback()
        _discard(list(staged.values()) + promoted)
        raise

    return StoredSubmission(
        id=submission_id, photo=names["photo"], qr=names.get("qr"),
        metadata=meta, paths=promoted,
    )
