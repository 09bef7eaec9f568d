"""
Where the portal keeps its files.

    DATA_DIR/
        lava.db      SQLite database
        storage/     file bucket (photos, PDFs, signatures, memos)
        output/      generated PDFs before upload
        logs/        rotating JSON log

DATA_DIR resolves from LAVA_DATA_DIR, then a Railway volume mount, then
data/ beside the project. Everything else imports these constants.
"""

import os
import logging

log = logging.getLogger("lava.paths")

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
_DEFAULT_DATA = os.path.join(PROJECT_ROOT, "data")


def _resolve_data_dir() -> str:
    override = os.environ.get("LAVA_DATA_DIR", "")
    if override and os.path.isdir(override):
        return override
    mount = os.environ.get("RAILWAY_VOLUME_MOUNT_PATH", "").rstrip("/")
    if mount and os.path.isdir(mount):
        return mount if os.path.basename(mount) == "data" else os.path.join(mount, "data")
    return _DEFAULT_DATA


DATA_DIR = _resolve_data_dir()
_USING_VOLUME = DATA_DIR != _DEFAULT_DATA

DB_PATH = os.path.join(DATA_DIR, "lava.db")
STORAGE_DIR = os.path.join(DATA_DIR, "storage")
OUTPUT_DIR = os.path.join(DATA_DIR, "output")
LOG_DIR = os.path.join(DATA_DIR, "logs")

for _dir in (DATA_DIR, STORAGE_DIR, OUTPUT_DIR):
    os.makedirs(_dir, exist_ok=True)

log.log(logging.INFO if _USING_VOLUME else logging.DEBUG, "DATA_DIR=%s (%s)",
        DATA_DIR, "volume" if _USING_VOLUME else "local")


def validate_paths() -> dict:
    """Startup check of the data directories.

    Returns {"ok", "errors", "warnings", "resolved"}; ``ok`` is False when a
    directory is missing or DATA_DIR cannot be written.
    """
    resolved = {"DATA_DIR": DATA_DIR, "STORAGE_DIR": STORAGE_DIR, "OUTPUT_DIR": OUTPUT_DIR}
    errors = [f"{name} not found: {path}" for name, path in resolved.items()
              if not os.path.isdir(path)]
    warnings = []

    test_file = os.path.join(DATA_DIR, ".write_test")
    try:
        with open(test_file, "w") as f:
            f.write("ok")
        os.remove(test_file)
    except OSError as e:
        errors.append(f"DATA_DIR not writable: {e}")

    if os.environ.get("RAILWAY_ENVIRONMENT") and not _USING_VOLUME:
        warnings.append("No persistent volume on Railway: the database and uploaded "
                        "photos are wiped on every deploy")

    resolved["USING_VOLUME"] = str(_USING_VOLUME)
    return {"ok": not errors, "errors": errors, "warnings": warnings, "resolved": resolved}
