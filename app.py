#!/usr/bin/env python3
"""
LAVA Roofing Portal — Application Entry Point
Creates Flask app and registers the API Blueprint.
"""

import os
import logging
from datetime import timedelta

from flask import Flask

log = logging.getLogger("lava")


def create_app(testing: bool = False):
    """Application factory."""
    from logging_config import setup_logging
    from portal.core.secrets import get_key, startup_check

    if not testing:
        setup_logging()

    app = Flask(__name__)
    app.secret_key = get_key("secret_key")
    app.config["TESTING"] = testing
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(days=30)
    app.config["MAX_CONTENT_LENGTH"] = 60 * 1024 * 1024

    # ── Paths + database ──────────────────────────────────────────────────────
    from portal.core.paths import validate_paths
    path_report = validate_paths()
    for err in path_report["errors"]:
        log.error("PATHS: %s", err)

    from portal.core.db import startup as db_startup
    result = db_startup()
    log.info("DB: %s | clients=%d packets=%d jobs=%d",
             result["db_path"],
             result["stats"].get("clients", 0),
             result["stats"].get("packets", 0),
             result["stats"].get("jobs", 0))

    if not testing:
        startup_check()

    # Register the API blueprint (all routes)
    from portal.api.dashboard import bp
    app.register_blueprint(bp)

    # ── Security middleware (rate limiting, headers) ──────────────────────────
    from portal.core.security import init_security
    init_security(app)

    return app


# For gunicorn: gunicorn app:app
app = create_app()

if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    app.run(host="0.0.0.0", port=port, debug=False)
