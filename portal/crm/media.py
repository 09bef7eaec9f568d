"""
Media — every uploaded file that isn't a packet slot or inspection photo.

Images are re-encoded to WebP on the way in. Everything else is stored as-is.
Each row remembers the job-site ``address`` so photos can be browsed by
property even when no client or record is linked.

Storage paths:
    {linked_type}/{linked_id}/{slot or timestamp}-{rand6}.{ext}
    {linked_type}/{timestamp}-{rand6}.{ext}          (no linked record)
"""

import os
import time
import uuid
import logging

from portal.core import storage
from portal.core.db import get_db, new_id, now_iso, row_to_dict, rows_to_dicts, _jd
from portal.crm import clients
from portal.forms.images import compress_to_webp

log = logging.getLogger("lava.media")

MAX_FILE_SIZE = 50 * 1024 * 1024
FILE_TYPES = ("image", "video", "document", "audio")
LINKED_TYPES = ("packet", "inspection", "repair", "general")

_UPDATABLE = ("caption", "tags", "address", "slot", "position", "zoom",
              "linked_type", "linked_id", "client_id")


def get_file_type(mime_type: str) -> str:
    mime = (mime_type or "").lower()
    if mime.startswith("image/"):
        return "image"
    if mime.startswith("video/"):
        return "video"
    if mime.startswith("audio/"):
        return "audio"
    return "document"


def generate_path(linked_type: str, linked_id: str = None, slot: str = None, ext: str = "bin") -> str:
    timestamp = int(time.time() * 1000)
    rand = uuid.uuid4().hex[:6]
    if linked_id:
        return f"{linked_type}/{linked_id}/{slot or timestamp}-{rand}.{ext}"
    return f"{linked_type}/{timestamp}-{rand}.{ext}"


def _ext(filename: str, default: str = "bin") -> str:
    ext = os.path.splitext(filename or "")[1].lstrip(".").lower()
    return ext or default


def upload(data: bytes, filename: str, mime_type: str, address: str,
           linked_type: str = "general", linked_id: str = None, slot: str = None,
           caption: str = "", tags: list = None, client_id: str = None) -> dict:
    """Store a file and record it. Returns the media row."""
    if not address or not address.strip():
        raise ValueError("Address is required for media uploads")
    if len(data) > MAX_FILE_SIZE:
        raise ValueError(f"File too large. Max size is {MAX_FILE_SIZE // (1024 * 1024)}MB")
    if linked_type not in LINKED_TYPES:
        raise ValueError(f"Unknown linked_type: {linked_type}")

    file_type = get_file_type(mime_type)
    filename = filename or "upload"
    if file_type == "image":
        try:
            data = compress_to_webp(data)
            mime_type = "image/webp"
            filename = os.path.splitext(filename)[0] + ".webp"
        except ValueError as e:
            # HEIC without a decoder lands here; keep the original bytes
            log.warning("Image %s not re-encoded, storing original: %s", filename, e)

    path = storage.upload(generate_path(linked_type, linked_id, slot, _ext(filename)),
                          data, content_type=mime_type)
    media_id = new_id()
    ts = now_iso()
    with get_db() as conn:
        conn.execute("""
            INSERT INTO media (id, client_id, storage_path, public_url, filename, file_type,
                               mime_type, size_bytes, linked_type, linked_id, slot, caption,
                               tags, address, created_at, updated_at)
            VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?)
        """, (media_id, client_id, path, storage.public_url(path), filename, file_type,
              mime_type, len(data), linked_type, linked_id, slot, caption or "",
              _jd(tags or []), address.strip(), ts, ts))
    log.info("Media uploaded: %s (%s, %d bytes)", path, file_type, len(data),
             extra={"client_id": client_id})
    clients.touch(client_id)
    return get_media(media_id)


def upload_multiple(files: list, **opts) -> dict:
    """Upload several files with shared options.

    ``files`` is a list of ``{"data", "filename", "mime_type"}`` dicts.
    A failure on one file is recorded in ``errors`` and the rest still upload.
    """
    base_slot = opts.pop("slot", None)
    uploaded, errors = [], []
    for i, f in enumerate(files, start=1):
        slot = f"{base_slot}-{i}" if base_slot else f"file{i}"
        try:
            uploaded.append(upload(f["data"], f.get("filename"), f.get("mime_type"),
                                   slot=slot, **opts))
        except (ValueError, OSError) as e:
            log.warning("Upload %d/%d failed: %s", i, len(files), e)
            errors.append({"index": i, "filename": f.get("filename"), "error": str(e)})
    return {"uploaded": uploaded, "errors": errors}


# ── Queries ───────────────────────────────────────────────────────────────────

def get_media(media_id: str) -> dict | None:
    with get_db() as conn:
        row = conn.execute("SELECT * FROM media WHERE id=?", (media_id,)).fetchone()
    return row_to_dict(row)


def get_for_record(linked_type: str, linked_id: str) -> list:
    with get_db() as conn:
        rows = conn.execute("""
            SELECT * FROM media WHERE linked_type=? AND linked_id=? ORDER BY created_at
        """, (linked_type, linked_id)).fetchall()
    return rows_to_dicts(rows)


def get_by_slot(linked_type: str, linked_id: str, slot: str) -> dict | None:
    with get_db() as conn:
        row = conn.execute("""
            SELECT * FROM media WHERE linked_type=? AND linked_id=? AND slot=?
            ORDER BY created_at DESC LIMIT 1
        """, (linked_type, linked_id, slot)).fetchone()
    return row_to_dict(row)


def search_by_tags(tags: list, limit: int = 50) -> list:
    """Media sharing at least one tag (case-insensitive)."""
    wanted = {t.lower() for t in tags or [] if t}
    if not wanted:
        return []
    with get_db() as conn:
        rows = conn.execute(
            "SELECT * FROM media WHERE tags != '[]' ORDER BY created_at DESC").fetchall()
    hits = [m for m in rows_to_dicts(rows)
            if wanted.intersection(str(t).lower() for t in m["tags"])]
    return hits[:limit]


def search(query: str, limit: int = 50) -> list:
    like = f"%{(query or '').strip()}%"
    with get_db() as conn:
        rows = conn.execute("""
            SELECT * FROM media
            WHERE filename LIKE ? COLLATE NOCASE OR caption LIKE ? COLLATE NOCASE
               OR address LIKE ? COLLATE NOCASE
            ORDER BY created_at DESC LIMIT ?
        """, (like, like, like, limit)).fetchall()
    return rows_to_dicts(rows)


def get_by_address(address: str) -> list:
    with get_db() as conn:
        rows = conn.execute("""
            SELECT * FROM media WHERE address LIKE ? COLLATE NOCASE ORDER BY created_at DESC
        """, (f"%{(address or '').strip()}%",)).fetchall()
    return rows_to_dicts(rows)


def unique_addresses() -> list:
    with get_db() as conn:
        rows = conn.execute("""
            SELECT DISTINCT address FROM media
            WHERE address IS NOT NULL AND address != '' ORDER BY address
        """).fetchall()
    return [r["address"] for r in rows]


# ── Mutations ─────────────────────────────────────────────────────────────────

def delete(media_id: str) -> bool:
    """Remove the bucket object, then the row."""
    record = get_media(media_id)
    if not record:
        return False
    try:
        storage.remove(record["storage_path"])
    except (ValueError, OSError) as e:
        log.warning("Storage delete failed for %s: %s", record["storage_path"], e)
    with get_db() as conn:
        conn.execute("DELETE FROM media WHERE id=?", (media_id,))
    clients.update_counts(record.get("client_id"))
    return True


def update(media_id: str, updates: dict) -> dict:
    """Patch metadata. Keys outside the allowed set are ignored."""
    fields = {k: updates[k] for k in _UPDATABLE if k in updates}
    if "linked_type" in fields and fields["linked_type"] not in LINKED_TYPES:
        raise ValueError(f"Unknown linked_type: {fields['linked_type']}")
    if not get_media(media_id):
        raise LookupError(f"Media {media_id} not found")
    for key in ("tags", "position"):
        if key in fields:
            fields[key] = _jd(fields[key] or ([] if key == "tags" else {}))
    if fields:
        fields["updated_at"] = now_iso()
        cols = ", ".join(f"{k}=?" for k in fields)
        with get_db() as conn:
            conn.execute(f"UPDATE media SET {cols} WHERE id=?", (*fields.values(), media_id))
    return get_media(media_id)
