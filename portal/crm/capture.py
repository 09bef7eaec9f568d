"""
Quick Capture — tag a batch of field photos, videos and voice notes to a client.

Voice items without a transcript are sent through whisper first; a failed
transcription never blocks the save.
"""

import time
import logging

from portal.agents import transcribe as transcriber
from portal.core import storage
from portal.core.db import get_db, now_iso, _jd
from portal.crm import clients

log = logging.getLogger("lava.capture")

ITEM_TYPES = ("photo", "video", "voice")
_FILE_TYPE = {"photo": "image", "video": "video", "voice": "audio"}
_DEFAULT_MIME = {"photo": "image/jpeg", "video": "video/mp4", "voice": "audio/webm"}

_IMAGE_EXTS = (".jpg", ".jpeg", ".png", ".gif", ".webp", ".heic", ".heif")
_VIDEO_EXTS = (".mp4", ".mov", ".avi", ".webm", ".m4v")

SKIP_WORDS = {
    "the", "and", "for", "this", "that", "with", "have", "been", "roof", "roofing",
    "house", "home", "need", "needs", "want", "wants", "going", "looking", "about",
    "just", "their", "they", "them", "from",
}


def extension_for(item_type: str, mime_type: str = "") -> str:
    if item_type == "video":
        return "mp4"
    if item_type == "voice":
        return "webm"
    mime = (mime_type or "").lower()
    for ext in ("png", "gif", "webp", "heic"):
        if ext in mime:
            return ext
    return "jpg"


def detect_file_type(filename: str, mime_type: str) -> str:
    """'photo' or 'video'. Unknown files are treated as photos."""
    mime = (mime_type or "").lower()
    name = (filename or "").lower()
    if mime.startswith("image/") or name.endswith(_IMAGE_EXTS):
        return "photo"
    if mime.startswith("video/") or name.endswith(_VIDEO_EXTS):
        return "video"
    log.debug("Unknown file type, defaulting to photo: %s %s", mime_type, filename)
    return "photo"


def detect_client_names(transcript: str) -> list:
    """Clients whose name or address matches a word in a spoken note (max 3)."""
    matched = []
    for word in (transcript or "").split():
        if len(word) <= 2 or word.lower() in SKIP_WORDS:
            continue
        for c in clients.list_clients(word):
            if not any(m["name"] == c["name"] for m in matched):
                matched.append(c)
    return matched[:3]


def save_batch(client_id: str, items: list, note: str = "") -> dict:
    """Store every captured item against a client.

    ``items`` are dicts ``{type, data, mime_type, transcript?}``.
    """
    client = clients.get_client(client_id)
    if not client:
        raise ValueError("Select a client before saving")
    note = (note or "").strip()
    tags = [t for t in (client.get("name"), client.get("address")) if t]

    items = list(items or [])
    for n, item in enumerate(items, start=1):
        if (item.get("type") or "photo") not in ITEM_TYPES:
            raise ValueError(f"Item {n}: unknown capture type {item.get('type')!r}")
        if not item.get("data"):
            raise ValueError(f"Item {n} has no data")

    saved = []
    stamp = int(time.time() * 1000)
    for n, item in enumerate(items, start=1):
        item_type = item.get("type") or "photo"
        data = item["data"]
        mime_type = item.get("mime_type") or _DEFAULT_MIME[item_type]

        transcript = item.get("transcript") or ""
        if item_type == "voice" and not transcript and transcriber.is_available():
            result = transcriber.transcribe(data, filename=f"capture_{n}.webm")
            if result.get("ok"):
                transcript = result["text"]
            else:
                log.warning("Capture transcription failed: %s", result.get("error"))

        capture_id = f"capture_{stamp}_{n}"
        ext = extension_for(item_type, mime_type)
        path = storage.upload(f"media/{client_id}/{capture_id}.{ext}", data, content_type=mime_type)
        ts = now_iso()
        entry = {
            "id": capture_id,
            "client_id": client_id,
            "storage_path": path,
            "public_url": storage.public_url(path),
            "filename": f"{capture_id}.{ext}",
            "file_type": _FILE_TYPE[item_type],
            "mime_type": mime_type,
            "size_bytes": len(data),
            "linked_type": "general",
            "caption": transcript or note,
            "tags": tags,
            "address": client.get("address") or "",
        }
        with get_db() as conn:
            conn.execute("""
                INSERT INTO media (id, client_id, storage_path, public_url, filename, file_type,
                                   mime_type, size_bytes, linked_type, caption, tags, address,
                                   created_at, updated_at)
                VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?,?)
            """, (capture_id, client_id, path, entry["public_url"], entry["filename"],
                  entry["file_type"], mime_type, len(data), "general", entry["caption"],
                  _jd(tags), entry["address"], ts, ts))
        entry.update(type=item_type, transcript=transcript, created_at=ts)
        saved.append(entry)

    log.info("Quick capture: %d item(s) for %s", len(saved), client["name"],
             extra={"client_id": client_id})
    clients.touch(client_id)
    return {"saved": saved, "count": len(saved)}
