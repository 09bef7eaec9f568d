"""
Logging for the LAVA Roofing Portal.

setup_logging() runs once from app.py. Console output is colored text in
development and JSON lines on Railway; the rotating file under
paths.LOG_DIR always gets JSON. Pass request context through extra=
(route, client_id, job_id...) and it shows up as top-level JSON keys.
"""
import json
import logging
import logging.handlers
import os
from datetime import datetime, timezone

from portal.core import paths

EXTRA_FIELDS = ("route", "method", "status", "duration_ms",
                "client_id", "job_id", "packet_id")

LOG_FILE = "lava.log"
MAX_BYTES = 5_000_000
BACKUPS = 5
QUIET = ("urllib3", "werkzeug", "PIL", "reportlab", "pdfminer", "twilio")

_LEVEL_COLOR = {
    logging.DEBUG: "36",
    logging.INFO: "32",
    logging.WARNING: "33",
    logging.ERROR: "31",
    logging.CRITICAL: "35",
}


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record):
        stamp = datetime.fromtimestamp(record.created, timezone.utc)
        payload = {
            "ts": stamp.strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "module": record.module,
            "func": record.funcName,
            "line": record.lineno,
        }
        payload.update({k: getattr(record, k) for k in EXTRA_FIELDS if hasattr(record, k)})
        if record.exc_info and record.exc_info[0]:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class HumanFormatter(logging.Formatter):
    """Short colored lines: time, level letter, logger, message."""

    def format(self, record):
        when = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        code = _LEVEL_COLOR.get(record.levelno)
        text = f"{when} [{record.levelname[:1]}] {record.name}: {record.getMessage()}"
        if code:
            text = f"\033[{code}m{text}\033[0m"
        if record.exc_info and record.exc_info[0]:
            text = f"{text}\n{self.formatException(record.exc_info)}"
        return text


def _tagged(handler, formatter):
    handler.setFormatter(formatter)
    handler._lava = True
    return handler


def setup_logging(level=None, json_logs=None):
    """
    Attach the portal's console and file handlers to the root logger.

    level defaults to $LOG_LEVEL (INFO). json_logs defaults to True when
    RAILWAY_ENVIRONMENT is present. Calling again swaps out handlers added by
    an earlier call and leaves foreign handlers (pytest's caplog) in place.
    """
    level = (level or os.environ.get("LOG_LEVEL") or "INFO").upper()
    if json_logs is None:
        json_logs = "RAILWAY_ENVIRONMENT" in os.environ

    root = logging.getLogger()
    root.setLevel(getattr(logging, level, logging.INFO))
    for old in list(root.handlers):
        if getattr(old, "_lava", False):
            root.removeHandler(old)
            old.close()

    root.addHandler(_tagged(logging.StreamHandler(),
                            JSONFormatter() if json_logs else HumanFormatter()))

    log_path = os.path.join(paths.LOG_DIR, LOG_FILE)
    try:
        os.makedirs(paths.LOG_DIR, exist_ok=True)
        rotating = logging.handlers.RotatingFileHandler(
            log_path, maxBytes=MAX_BYTES, backupCount=BACKUPS)
    except OSError as e:
        logging.getLogger("lava").warning("No file log at %s: %s", log_path, e)
    else:
        root.addHandler(_tagged(rotating, JSONFormatter()))

    for noisy in QUIET:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logging.getLogger("lava").info("Logging ready at %s (%s)", level,
                                   "json" if json_logs else "text")
