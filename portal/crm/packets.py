"""
Packets — customer proposal documents.

A packet is a bag of editable text ``fields`` plus a ``config`` blob
(product type, enabled pages, estimate image, EagleView measurements) and
one photo per named slot. Photos live in the bucket at
``packets/<packet_id>/<slot_id>.webp``.
"""

import os
import logging

from portal.core import paths, storage
from portal.core.db import get_db, new_id, now_iso, row_to_dict, rows_to_dicts, _jd
from portal.crm import clients
from portal.forms import packet_pdf
from portal.forms.images import compress_to_webp

log = logging.getLogger("lava.packets")

BUCKET = "packets"
DEFAULT_PRODUCT = "standing-seam"
PRODUCT_TYPES = ("standing-seam", "shingles", "brava")
DEFAULT_POSITION = {"x": 50, "y": 50}


def photo_path(packet_id: str, slot_id: str) -> str:
    return f"{BUCKET}/{packet_id}/{slot_id}.webp"


def list_packets() -> list:
    """Packet summaries, most recently edited first."""
    with get_db() as conn:
        rows = conn.execute("""
            SELECT id, client_id, customer_name, customer_address, product_type,
                   created_at, updated_at
            FROM packets ORDER BY updated_at DESC
        """).fetchall()
    return rows_to_dicts(rows)


def get_packet(packet_id: str) -> dict | None:
    """Full packet with photos keyed by slot id."""
    with get_db() as conn:
        row = conn.execute("SELECT * FROM packets WHERE id=?", (packet_id,)).fetchone()
        if not row:
            return None
        photo_rows = conn.execute(
            "SELECT * FROM packet_photos WHERE packet_id=?", (packet_id,)).fetchall()
    packet = row_to_dict(row)
    packet["photos"] = {
        p["slot_id"]: {
            "storage_path": p["storage_path"],
            "url": storage.public_url(p["storage_path"]),
            "position": p["position"] or dict(DEFAULT_POSITION),
            "zoom": p["zoom"] if p["zoom"] is not None else 1,
        }
        for p in rows_to_dicts(photo_rows)
    }
    return packet


def _customer_from(data: dict) -> tuple:
    fields = data.get("fields") or {}
    config = data.get("config") or {}
    name = data.get("customer_name") or fields.get("customerName") or ""
    address = data.get("customer_address") or fields.get("customerAddress") or ""
    product = data.get("product_type") or config.get("productType")
    return name.strip(), address.strip(), product


def save_packet(data: dict) -> str:
    """Create or update a packet. Returns its id."""
    packet_id = data.get("id")
    existing = get_packet(packet_id) if packet_id else None
    name, address, product = _customer_from(data)

    client_id = data.get("client_id") or (existing or {}).get("client_id")
    if not client_id and name:
        client_id = clients.find_or_create(name, address)["id"]

    ts = now_iso()
    if existing:
        fields = data["fields"] if "fields" in data else existing["fields"]
        config = data["config"] if "config" in data else existing["config"]
        with get_db() as conn:
            conn.execute("""
                UPDATE packets SET client_id=?, customer_name=?, customer_address=?,
                    product_type=?, fields=?, config=?, updated_at=?
                WHERE id=?
            """, (client_id, name or existing["customer_name"],
                  address or existing["customer_address"],
                  product or existing["product_type"] or DEFAULT_PRODUCT,
                  _jd(fields), _jd(config), ts, packet_id))
        log.info("Packet updated: %s", packet_id, extra={"packet_id": packet_id})
    else:
        packet_id = packet_id or new_id()
        with get_db() as conn:
            conn.execute("""
                INSERT INTO packets (id, client_id, customer_name, customer_address,
                                     product_type, fields, config, created_at, updated_at)
                VALUES (?,?,?,?,?,?,?,?,?)
            """, (packet_id, client_id, name, address, product or DEFAULT_PRODUCT,
                  _jd(data.get("fields") or {}), _jd(data.get("config") or {}), ts, ts))
        log.info("Packet created: %s for %s", packet_id, name or "(unnamed)",
                 extra={"packet_id": packet_id})

    clients.touch(client_id)
    return packet_id


def update_config(packet_id: str, **entries) -> dict:
    """Merge keys into a packet's config blob."""
    packet = get_packet(packet_id)
    if not packet:
        raise LookupError(f"Packet {packet_id} not found")
    config = packet["config"] or {}
    for key, value in entries.items():
        if value is None:
            config.pop(key, None)
        else:
            config[key] = value
    with get_db() as conn:
        conn.execute("UPDATE packets SET config=?, updated_at=? WHERE id=?",
                     (_jd(config), now_iso(), packet_id))
    return config


def delete_packet(packet_id: str) -> bool:
    """Remove bucket objects first, then the row (photos cascade)."""
    packet = get_packet(packet_id)
    if not packet:
        return False
    removed = storage.remove_prefix(f"{BUCKET}/{packet_id}/")
    with get_db() as conn:
        conn.execute("DELETE FROM packets WHERE id=?", (packet_id,))
    clients.update_counts(packet.get("client_id"))
    log.info("Packet deleted: %s (%d objects)", packet_id, removed)
    return True


# ── Photos ────────────────────────────────────────────────────────────────────

def upload_photo(packet_id: str, slot_id: str, data: bytes,
                 position: dict = None, zoom: float = 1) -> dict:
    """Compress and store a slot photo, replacing whatever was there."""
    if not get_packet(packet_id):
        raise LookupError(f"Packet {packet_id} not found")
    if not slot_id:
        raise ValueError("slot_id is required")
    path = storage.upload(photo_path(packet_id, slot_id), compress_to_webp(data),
                          content_type="image/webp")
    ts = now_iso()
    with get_db() as conn:
        conn.execute("""
            INSERT INTO packet_photos (id, packet_id, slot_id, storage_path, position, zoom,
                                       created_at, updated_at)
            VALUES (?,?,?,?,?,?,?,?)
            ON CONFLICT(packet_id, slot_id) DO UPDATE SET
                storage_path=excluded.storage_path, position=excluded.position,
                zoom=excluded.zoom, updated_at=excluded.updated_at
        """, (new_id(), packet_id, slot_id, path, _jd(position or DEFAULT_POSITION),
              zoom if zoom is not None else 1, ts, ts))
        conn.execute("UPDATE packets SET updated_at=? WHERE id=?", (ts, packet_id))
    return {"slot_id": slot_id, "storage_path": path, "url": storage.public_url(path)}


def update_photo_position(packet_id: str, slot_id: str, position: dict = None,
                          zoom: float = None) -> bool:
    sets, params = [], []
    if position is not None:
        sets.append("position=?")
        params.append(_jd(position))
    if zoom is not None:
        sets.append("zoom=?")
        params.append(zoom)
    if not sets:
        return False
    sets.append("updated_at=?")
    params.extend([now_iso(), packet_id, slot_id])
    with get_db() as conn:
        cur = conn.execute(
            f"UPDATE packet_photos SET {', '.join(sets)} WHERE packet_id=? AND slot_id=?", params)
    return cur.rowcount > 0


def delete_photo(packet_id: str, slot_id: str) -> bool:
    with get_db() as conn:
        row = conn.execute(
            "SELECT storage_path FROM packet_photos WHERE packet_id=? AND slot_id=?",
            (packet_id, slot_id)).fetchone()
        if not row:
            return False
        conn.execute("DELETE FROM packet_photos WHERE packet_id=? AND slot_id=?",
                     (packet_id, slot_id))
    storage.remove(row["storage_path"])
    return True


def set_eagleview(packet_id: str, report: dict) -> dict:
    """Store extracted EagleView measurements on the packet."""
    return update_config(packet_id, eagleview=report)


def render_pdf(packet_id: str) -> dict:
    """Printable proposal in OUTPUT_DIR, including the latest signature if any."""
    packet = get_packet(packet_id)
    if not packet:
        raise LookupError(f"Packet {packet_id} not found")
    with get_db() as conn:
        sig = conn.execute("""
            SELECT * FROM signatures WHERE packet_id=? ORDER BY signed_at DESC LIMIT 1
        """, (packet_id,)).fetchone()
    packet["signature"] = row_to_dict(sig)
    output = os.path.join(paths.OUTPUT_DIR, "packets", f"packet_{packet_id}.pdf")
    return packet_pdf.generate_packet_pdf(packet, output)


def set_estimate(packet_id: str, data: bytes, mime_type: str, amount=None) -> dict:
    from portal.forms.estimate import attach_to_packet
    return attach_to_packet(packet_id, data, mime_type, amount=amount)
