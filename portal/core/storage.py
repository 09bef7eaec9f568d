"""
portal/core/storage.py — Object bucket on the local filesystem

Uploads (packet photos, inspection photos, media, voice memos, receipts)
are addressed by a relative storage path like ``packets/<id>/cover.webp``
and kept under STORAGE_DIR. Staff fetch them through ``/files/<path>``.
"""

import os
import logging

from portal.core.paths import STORAGE_DIR

log = logging.getLogger("lava.storage")


def _resolve(path: str) -> str:
    """Absolute filesystem path for a storage path. Rejects escapes from the bucket."""
    if not path or path.startswith("/") or "\\" in path:
        raise ValueError(f"Invalid storage path: {path!r}")
    root = os.path.realpath(STORAGE_DIR)
    full = os.path.realpath(os.path.join(root, path))
    if not full.startswith(root + os.sep):
        raise ValueError(f"Invalid storage path: {path!r}")
    return full


def upload(path: str, data: bytes, content_type: str = None, upsert: bool = True) -> str:
    """Write an object. Returns the storage path."""
    full = _resolve(path)
    if not upsert and os.path.exists(full):
        raise FileExistsError(f"Object already exists: {path}")
    os.makedirs(os.path.dirname(full), exist_ok=True)
    with open(full, "wb") as f:
        f.write(data)
    log.debug("Stored %s (%d bytes, %s)", path, len(data), content_type or "?")
    return path


def download(path: str) -> bytes:
    full = _resolve(path)
    if not os.path.isfile(full):
        raise FileNotFoundError(path)
    with open(full, "rb") as f:
        return f.read()


def exists(path: str) -> bool:
    try:
        return os.path.isfile(_resolve(path))
    except ValueError:
        return False


def remove(paths) -> int:
    """Delete objects. Missing objects are skipped. Returns count removed."""
    if isinstance(paths, str):
        paths = [paths]
    removed = 0
    for p in paths:
        if not p:
            continue
        full = _resolve(p)
        if os.path.isfile(full):
            os.remove(full)
            removed += 1
    if removed:
        log.info("Removed %d object(s)", removed)
    return removed


def list_objects(prefix: str) -> list:
    """Relative storage paths of every object under a prefix."""
    base = _resolve(prefix.rstrip("/"))
    if not os.path.isdir(base):
        return []
    root = os.path.realpath(STORAGE_DIR)
    found = []
    for dirpath, _dirs, files in os.walk(base):
        for fname in files:
            rel = os.path.relpath(os.path.join(dirpath, fname), root)
            found.append(rel.replace(os.sep, "/"))
    return sorted(found)


def remove_prefix(prefix: str) -> int:
    """Delete every object under a prefix (e.g. ``packets/<id>/``)."""
    return remove(list_objects(prefix))


def public_url(path: str) -> str:
    if not path:
        return ""
    base = os.environ.get("PUBLIC_BASE_URL", "").rstrip("/")
    return f"{base}/files/{path}"


def full_path(path: str) -> str:
    """Filesystem path, for send_file and PDF rendering."""
    return _resolve(path)
