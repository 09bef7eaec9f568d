"""
LAVA Roofing Portal — API blueprint

All staff routes hang off ``bp`` and are protected by @auth_required.
Route groups live in portal/api/modules/routes_*.py and are pulled in by
load_module() at the bottom of this file, after the shared helpers exist.
"""

import os
import time
import logging
import functools
import importlib

from flask import Blueprint, request, jsonify, session, send_file, Response

from portal.core import storage
from portal.core.db import get_db_stats
from portal.core.secrets import get_key, validate_all
from portal.core.security import rate_limit
from portal.crm import auth

log = logging.getLogger("lava.api")

bp = Blueprint("lava", __name__)

ROUTE_MODULES = (
    "routes_clients",
    "routes_packets",
    "routes_media",
    "routes_jobs",
    "routes_notify",
    "routes_reports",
    "routes_ai",
    "routes_portal",
)


# ── Request-level structured logging ────────────────────────────────────────
@bp.before_app_request
def _log_request_start():
    request._start_time = time.time()


@bp.after_app_request
def _log_request_end(response):
    if hasattr(request, "_start_time"):
        duration_ms = round((time.time() - request._start_time) * 1000, 1)
        # Skip health-check spam
        if request.path != "/api/health":
            log.info("%s %s → %d (%.0fms)",
                     request.method, request.path, response.status_code, duration_ms,
                     extra={"route": request.path, "method": request.method,
                            "status": response.status_code, "duration_ms": duration_ms})
    return response


# ═══════════════════════════════════════════════════════════════════════
# Password Protection
# ═══════════════════════════════════════════════════════════════════════

def is_authenticated() -> bool:
    if session.get("authenticated"):
        return True
    creds = request.authorization
    # Any username; only the shared app password is checked
    return bool(creds and creds.password and auth.check_password(creds.password))


def auth_required(f):
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if not is_authenticated():
            return Response(
                '{"ok": false, "error": "Login required"}',
                401, {"WWW-Authenticate": f'Basic realm="LAVA Roofing Portal ({get_key("dash_user")})"',
                      "Content-Type": "application/json"})
        return f(*args, **kwargs)
    return decorated


# ═══════════════════════════════════════════════════════════════════════
# Shared helpers for route modules
# ═══════════════════════════════════════════════════════════════════════

def ok(**payload):
    return jsonify({"ok": True, **payload})


def fail(error, status: int = 400):
    return jsonify({"ok": False, "error": str(error)}), status


def not_found(what: str = "Not found"):
    return fail(what, 404)


def body() -> dict:
    """JSON request body, or {} for empty/invalid bodies."""
    return request.get_json(silent=True) or {}


def uploaded_file(field: str = "file"):
    """(bytes, filename, mime_type) from a multipart upload, or None."""
    f = request.files.get(field)
    if not f or not f.filename:
        return None
    return f.read(), f.filename, f.mimetype or "application/octet-stream"


def api_errors(f):
    """Translate domain exceptions into JSON responses."""
    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except LookupError as e:
            return not_found(e.args[0] if e.args else "Not found")
        except ValueError as e:
            return fail(e)
    return wrapper


# ═══════════════════════════════════════════════════════════════════════
# Health + files
# ═══════════════════════════════════════════════════════════════════════

@bp.route("/api/health")
def api_health():
    status = {"status": "ok", "db": "ok", "storage": "ok"}
    try:
        status["stats"] = get_db_stats()
    except Exception as e:
        log.error("Health check DB failure: %s", e)
        status.update(status="degraded", db=f"error: {e}")
    if not os.path.isdir(storage.STORAGE_DIR):
        status.update(status="degraded", storage="missing")
    # Which integrations are live; never the key values
    status["integrations"] = validate_all()["features"]
    return jsonify(status)


@bp.route("/files/<path:path>")
@auth_required
def serve_file(path):
    try:
        full = storage.full_path(path)
    except ValueError:
        return not_found()
    if not os.path.isfile(full):
        return not_found("File not found")
    return send_file(full)


# ═══════════════════════════════════════════════════════════════════════
# Auth
# ═══════════════════════════════════════════════════════════════════════

@bp.route("/api/auth/login", methods=["POST"])
@rate_limit("auth")
def api_login():
    password = body().get("password") or ""
    if not auth.check_password(password):
        log.warning("Failed login from %s", request.remote_addr)
        return fail("Incorrect password", 401)
    session["authenticated"] = True
    session.permanent = True
    return ok()


@bp.route("/api/auth/logout", methods=["POST"])
def api_logout():
    session.pop("authenticated", None)
    return ok()


@bp.route("/api/auth/status")
def api_auth_status():
    return jsonify({"authenticated": is_authenticated(), "user": get_key("dash_user")})


@bp.route("/api/auth/password", methods=["POST"])
@auth_required
@rate_limit("auth")
@api_errors
def api_change_password():
    data = body()
    auth.change_password(data.get("current") or "", data.get("new") or "")
    return ok()


# ═══════════════════════════════════════════════════════════════════════
# Route modules
# ═══════════════════════════════════════════════════════════════════════

def load_module(name: str):
    """Import a routes_* module so its @bp.route handlers register."""
    module = importlib.import_module(f"portal.api.modules.{name}")
    log.debug("Loaded route module %s", name)
    return module


for _name in ROUTE_MODULES:
    load_module(_name)
