"""
Inspections — roof inspection reports with categorized photos.
"""

import os
import logging

from portal.core import paths, storage
from portal.core.db import get_db, new_id, now_iso, row_to_dict, rows_to_dicts, _jd
from portal.crm import clients
from portal.forms import packet_pdf
from portal.forms.images import compress_to_webp

log = logging.getLogger("lava.inspections")

BUCKET = "inspections"
JSON_SECTIONS = ("concerns", "roof", "findings", "recommendation", "wrapup")
STATUSES = ("draft", "complete")
_TEXT_FIELDS = ("customer_name", "customer_address", "customer_phone", "customer_email",
                "inspection_date", "inspector_name")


def list_inspections() -> list:
    with get_db() as conn:
        rows = conn.execute("""
            SELECT id, client_id, customer_name, customer_address, inspection_date,
                   inspector_name, status, created_at, updated_at
            FROM inspections ORDER BY updated_at DESC
        """).fetchall()
    return rows_to_dicts(rows)


def get_inspection(inspection_id: str) -> dict | None:
    """Inspection with ``photos`` grouped by category."""
    with get_db() as conn:
        row = conn.execute("SELECT * FROM inspections WHERE id=?", (inspection_id,)).fetchone()
        if not row:
            return None
        photo_rows = conn.execute("""
            SELECT * FROM inspection_photos WHERE inspection_id=? ORDER BY created_at
        """, (inspection_id,)).fetchall()
    inspection = row_to_dict(row)
    grouped = {}
    for p in rows_to_dicts(photo_rows):
        p["url"] = storage.public_url(p["storage_path"])
        grouped.setdefault(p["category"], []).append(p)
    inspection["photos"] = grouped
    return inspection


def save_inspection(data: dict) -> str:
    """Create or update an inspection. Returns its id."""
    inspection_id = data.get("id")
    existing = get_inspection(inspection_id) if inspection_id else None

    values = {k: (data.get(k) or "") for k in _TEXT_FIELDS if k in data or not existing}
    for section in JSON_SECTIONS:
        if section in data or not existing:
            values[section] = _jd(data.get(section) or {})
    status = data.get("status") or ((existing or {}).get("status") or "draft")
    if status not in STATUSES:
        raise ValueError(f"Unknown inspection status: {status}")
    values["status"] = status

    name = (data.get("customer_name") or (existing or {}).get("customer_name") or "").strip()
    address = (data.get("customer_address") or (existing or {}).get("customer_address") or "").strip()
    client_id = data.get("client_id") or (existing or {}).get("client_id")
    if not client_id and name:
        client_id = clients.find_or_create(name, address)["id"]
    values["client_id"] = client_id

    ts = now_iso()
    values["updated_at"] = ts
    with get_db() as conn:
        if existing:
            cols = ", ".join(f"{k}=?" for k in values)
            conn.execute(f"UPDATE inspections SET {cols} WHERE id=?",
                         (*values.values(), inspection_id))
        else:
            inspection_id = inspection_id or new_id()
            values.update(id=inspection_id, created_at=ts)
            cols = ", ".join(values)
            marks = ", ".join("?" for _ in values)
            conn.execute(f"INSERT INTO inspections ({cols}) VALUES ({marks})",
                         tuple(values.values()))
    log.info("Inspection saved: %s (%s)", inspection_id, status)
    clients.touch(client_id)
    return inspection_id


def complete_inspection(inspection_id: str) -> dict:
    if not get_inspection(inspection_id):
        raise LookupError(f"Inspection {inspection_id} not found")
    with get_db() as conn:
        conn.execute("UPDATE inspections SET status='complete', updated_at=? WHERE id=?",
                     (now_iso(), inspection_id))
    return get_inspection(inspection_id)


def delete_inspection(inspection_id: str) -> bool:
    inspection = get_inspection(inspection_id)
    if not inspection:
        return False
    storage.remove_prefix(f"{BUCKET}/{inspection_id}/")
    with get_db() as conn:
        conn.execute("DELETE FROM inspections WHERE id=?", (inspection_id,))
    clients.update_counts(inspection.get("client_id"))
    log.info("Inspection deleted: %s", inspection_id)
    return True


# ── Photos ────────────────────────────────────────────────────────────────────

def upload_photo(inspection_id: str, category: str, data: bytes, caption: str = "") -> dict:
    if not get_inspection(inspection_id):
        raise LookupError(f"Inspection {inspection_id} not found")
    if not category:
        raise ValueError("category is required")
    photo_id = new_id()
    path = storage.upload(f"{BUCKET}/{inspection_id}/{category}/{photo_id}.webp",
                          compress_to_webp(data), content_type="image/webp")
    ts = now_iso()
    with get_db() as conn:
        conn.execute("""
            INSERT INTO inspection_photos (id, inspection_id, category, storage_path, caption, created_at)
            VALUES (?,?,?,?,?,?)
        """, (photo_id, inspection_id, category, path, caption or "", ts))
        conn.execute("UPDATE inspections SET updated_at=? WHERE id=?", (ts, inspection_id))
    return {"id": photo_id, "category": category, "storage_path": path,
            "url": storage.public_url(path), "caption": caption or ""}


def update_caption(photo_id: str, caption: str) -> bool:
    with get_db() as conn:
        cur = conn.execute("UPDATE inspection_photos SET caption=? WHERE id=?",
                           (caption or "", photo_id))
    return cur.rowcount > 0


def delete_photo(photo_id: str) -> bool:
    with get_db() as conn:
        row = conn.execute("SELECT storage_path FROM inspection_photos WHERE id=?",
                           (photo_id,)).fetchone()
        if not row:
            return False
        conn.execute("DELETE FROM inspection_photos WHERE id=?", (photo_id,))
    storage.remove(row["storage_path"])
    return True


def render_pdf(inspection_id: str) -> dict:
    inspection = get_inspection(inspection_id)
    if not inspection:
        raise LookupError(f"Inspection {inspection_id} not found")
    output = os.path.join(paths.OUTPUT_DIR, "inspections", f"inspection_{inspection_id}.pdf")
    return packet_pdf.generate_inspection_pdf(inspection, output)
