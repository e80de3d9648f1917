# Buyer + Supplier API Routes
# Registered by app.create_app(); services live in app.extensions["crontal"]

import logging
import os
import uuid

from flask import Blueprint, current_app, jsonify, request, send_from_directory
from werkzeug.exceptions import RequestEntityTooLarge
from werkzeug.utils import secure_filename

from crontal.agents import text_extractor
from crontal.api.security import rate_limit
from crontal.core import paths, rfq_schema, store
from crontal.core.errors import CrontalError, NotFound, ValidationFailure

log = logging.getLogger("crontal.api")

bp = Blueprint("crontal", __name__)


def _services():
    return current_app.extensions["crontal"]


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _optional_str(data: dict, key: str):
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationFailure(f"'{key}' must be a string")
    return value.strip() or None


def _require_rfq(data: dict) -> dict:
    rfq = data.get("rfq")
    if not isinstance(rfq, dict):
        raise ValidationFailure("Missing rfq in request body")
    return rfq_schema.canonicalize_rfq(rfq)


# ═══════════════════════════════════════════════════════════════════════
# Error handling
# ═══════════════════════════════════════════════════════════════════════

@bp.app_errorhandler(CrontalError)
def _crontal_error(e):
    if e.status_code >= 500:
        log.error("%s %s failed: %s (%s)", request.method, request.path, e.message, e.detail)
    return jsonify(e.to_dict()), e.status_code


@bp.app_errorhandler(RequestEntityTooLarge)
def _too_large(e):
    limit_mb = paths.MAX_UPLOAD_BYTES // (1024 * 1024)
    return jsonify({"ok": False, "error": "Upload too large",
                    "detail": f"max {paths.MAX_UPLOAD_FILES} files of {limit_mb} MB"}), 413


# ═══════════════════════════════════════════════════════════════════════
# Buyer
# ═══════════════════════════════════════════════════════════════════════

@bp.route("/api/buyer/parse-request", methods=["POST"])
@rate_limit("heavy")
def parse_request():
    data = _json_body()
    text = data.get("text")
    if not isinstance(text, str) or not text.strip():
        raise ValidationFailure("Missing text")
    project_name = _optional_str(data, "project_name")

    rfq = _services()["normalizer"].normalize_text(text, project_name)
    return jsonify(rfq)


@bp.route("/api/buyer/clarify", methods=["POST"])
@rate_limit("heavy")
def clarify():
    data = _json_body()
    rfq = _require_rfq(data)
    history = data.get("history")
    user_message = _optional_str(data, "user_message")

    message = _services()["clarifier"].clarify(rfq, history, user_message)
    return jsonify({"assistant_message": message})


def _save_uploads(files, upload_dir: str) -> list:
    saved = []
    for f in files:
        name = f.filename or "upload"
        safe = secure_filename(name) or "upload"
        path = os.path.join(upload_dir, f"{uuid.uuid4().hex[:12]}_{safe}")
        f.save(path)
        saved.append(text_extractor.UploadedFile(path, name))
    return saved


@bp.route("/api/buyer/upload-specs", methods=["POST"])
@rate_limit("heavy")
def upload_specs():
    files = [f for f in request.files.getlist("files") if f and f.filename]
    if not files:
        raise ValidationFailure("No files uploaded.")
    if len(files) > paths.MAX_UPLOAD_FILES:
        raise ValidationFailure(
            "Too many files", detail=f"max {paths.MAX_UPLOAD_FILES} files per upload")
    project_name = (request.form.get("project_name") or "").strip() or None

    upload_dir = current_app.config["UPLOAD_DIR"]
    os.makedirs(upload_dir, exist_ok=True)
    saved = []
    try:
        saved = _save_uploads(files, upload_dir)
        oversize = [u.filename for u in saved
                    if os.path.getsize(u.path) > paths.MAX_UPLOAD_BYTES]
        if oversize:
            raise ValidationFailure(
                "File too large",
                detail=f"{', '.join(oversize)} exceeds {paths.MAX_UPLOAD_BYTES // (1024 * 1024)} MB")
        log.info("Upload: %d files saved", len(saved))
        texts = text_extractor.extract_batch(saved)
    finally:
        for u in saved:
            if os.path.exists(u.path):
                try:
                    os.remove(u.path)
                except OSError as e:
                    log.debug("Temp cleanup failed for %s: %s", u.path, e)

    if not texts:
        log.warning("upload-specs: no text extracted from any file.")
        texts = [text_extractor.fallback_batch_text([u.filename for u in saved])]

    rfq = _services()["normalizer"].normalize_files(texts, project_name)
    return jsonify(rfq)


@bp.route("/api/buyer/negotiate", methods=["POST"])
@rate_limit("heavy")
def negotiate():
    data = _json_body()
    if not isinstance(data.get("rfq"), dict) or not isinstance(data.get("quote"), dict):
        raise ValidationFailure("Missing rfq or quote in request body")
    rfq = rfq_schema.canonicalize_rfq(data["rfq"])
    goal = _optional_str(data, "goal")

    advice = _services()["negotiator"].advise(rfq, data["quote"], goal)
    return jsonify({"advice": advice})


# ═══════════════════════════════════════════════════════════════════════
# RFQs + supplier quotes
# ═══════════════════════════════════════════════════════════════════════

@bp.route("/api/rfqs/<rid>")
def get_rfq(rid):
    return jsonify(_services()["rfqs"].require(rid))


@bp.route("/api/rfqs/<rid>/quotes", methods=["POST"])
def submit_quote(rid):
    body = request.get_json(silent=True)
    # Accept either the bare quote object or a {"quote": {...}} envelope
    if isinstance(body, dict) and set(body) == {"quote"}:
        body = body["quote"]
    svc = _services()
    store.submit_quote(svc["rfqs"], svc["quotes"], rid, body)
    return jsonify({"ok": True})


@bp.route("/api/rfqs/<rid>/quotes")
def list_quotes(rid):
    svc = _services()
    return jsonify({"quotes": store.list_quotes(svc["rfqs"], svc["quotes"], rid)})


# ═══════════════════════════════════════════════════════════════════════
# Health
# ═══════════════════════════════════════════════════════════════════════

@bp.route("/api/health")
def health():
    svc = _services()
    agents = [svc[name].llm.status() for name in ("normalizer", "clarifier", "negotiator")
              if hasattr(svc[name].llm, "status")]
    ready = all(a.get("api_key_set") for a in agents)
    return jsonify({
        "status": "ok" if ready else "degraded",
        "rfqs": svc["rfqs"].count(),
        "quotes": svc["quotes"].count(),
        "agents": agents,
    })


# ═══════════════════════════════════════════════════════════════════════
# Static frontend (single-page shell for every unmatched GET)
# ═══════════════════════════════════════════════════════════════════════

@bp.route("/", defaults={"path": ""})
@bp.route("/<path:path>")
def frontend(path):
    if path.startswith("api/"):
        raise NotFound("Not found", detail=f"/{path}")
    public_dir = current_app.config["PUBLIC_DIR"]
    if path and os.path.isfile(os.path.join(public_dir, path)):
        return send_from_directory(public_dir, path)
    return send_from_directory(public_dir, paths.SPA_SHELL)
