"""
Clients — the CRM hub. Packets, inspections, media, jobs and voice memos
all link back to a client row.
"""

import logging

from portal.core.db import get_db, new_id, now_iso, row_to_dict, rows_to_dicts, _jd

log = logging.getLogger("lava.clients")

_EDITABLE = ("name", "address", "phone", "email", "notes", "tags")


def list_clients(search: str = "") -> list:
    """All clients, most recently active first. Optional name/address filter."""
    sql = "SELECT * FROM clients"
    params = []
    if search and search.strip():
        sql += " WHERE name LIKE ? COLLATE NOCASE OR address LIKE ? COLLATE NOCASE"
        like = f"%{search.strip()}%"
        params = [like, like]
    sql += " ORDER BY COALESCE(last_activity_at, updated_at) DESC, name"
    with get_db() as conn:
        return rows_to_dicts(conn.execute(sql, params).fetchall())


def get_client(client_id: str) -> dict | None:
    if not client_id:
        return None
    with get_db() as conn:
        row = conn.execute("SELECT * FROM clients WHERE id=?", (client_id,)).fetchone()
    return row_to_dict(row)


def create_client(data: dict) -> dict:
    name = (data.get("name") or "").strip()
    if not name:
        raise ValueError("Client name is required")
    ts = now_iso()
    client_id = data.get("id") or new_id()
    with get_db() as conn:
        conn.execute("""
            INSERT INTO clients (id, name, address, phone, email, notes, tags,
                                 last_activity_at, created_at, updated_at)
            VALUES (?,?,?,?,?,?,?,?,?,?)
        """, (client_id, name, (data.get("address") or "").strip(),
              data.get("phone") or "", data.get("email") or "",
              data.get("notes") or "", _jd(data.get("tags") or []), ts, ts, ts))
    log.info("Client created: %s (%s)", name, client_id, extra={"client_id": client_id})
    return get_client(client_id)


def update_client(client_id: str, data: dict) -> dict:
    updates = {k: data[k] for k in _EDITABLE if k in data}
    if "name" in updates and not (updates["name"] or "").strip():
        raise ValueError("Client name is required")
    if not get_client(client_id):
        raise LookupError(f"Client {client_id} not found")
    if updates:
        if "tags" in updates:
            updates["tags"] = _jd(updates["tags"] or [])
        updates["updated_at"] = now_iso()
        cols = ", ".join(f"{k}=?" for k in updates)
        with get_db() as conn:
            conn.execute(f"UPDATE clients SET {cols} WHERE id=?",
                         (*updates.values(), client_id))
    return get_client(client_id)


def delete_client(client_id: str) -> bool:
    """Delete a client. Linked records stay and lose their client link."""
    with get_db() as conn:
        for table in ("packets", "inspections", "media", "jobs", "voice_memos"):
            conn.execute(f"UPDATE {table} SET client_id=NULL WHERE client_id=?", (client_id,))
        cur = conn.execute("DELETE FROM clients WHERE id=?", (client_id,))
    if cur.rowcount:
        log.info("Client deleted: %s", client_id)
    return cur.rowcount > 0


def _find(name: str, address: str) -> dict | None:
    with get_db() as conn:
        row = conn.execute("""
            SELECT * FROM clients
            WHERE LOWER(name)=LOWER(?) AND LOWER(COALESCE(address,''))=LOWER(?)
            LIMIT 1
        """, (name, address)).fetchone()
    return row_to_dict(row)


def find_or_create(name: str, address: str = "") -> dict:
    """Match on name + address (case-insensitive), else create."""
    name = (name or "").strip()
    address = (address or "").strip()
    if not name:
        raise ValueError("Client name is required")
    existing = _find(name, address)
    if existing:
        return existing
    return create_client({"name": name, "address": address})


def get_history(client_id: str) -> dict:
    """Everything linked to a client, newest first."""
    with get_db() as conn:
        packets = conn.execute("""
            SELECT id, customer_name, customer_address, product_type, created_at, updated_at
            FROM packets WHERE client_id=? ORDER BY updated_at DESC
        """, (client_id,)).fetchall()
        inspections = conn.execute("""
            SELECT id, customer_name, customer_address, inspection_date, status, created_at, updated_at
            FROM inspections WHERE client_id=? ORDER BY updated_at DESC
        """, (client_id,)).fetchall()
        media = conn.execute(
            "SELECT * FROM media WHERE client_id=? ORDER BY created_at DESC", (client_id,)).fetchall()
        jobs = conn.execute(
            "SELECT * FROM jobs WHERE client_id=? ORDER BY created_at DESC", (client_id,)).fetchall()
        memos = conn.execute(
            "SELECT * FROM voice_memos WHERE client_id=? ORDER BY created_at DESC", (client_id,)).fetchall()
    return {
        "packets": rows_to_dicts(packets),
        "inspections": rows_to_dicts(inspections),
        "media": rows_to_dicts(media),
        "jobs": rows_to_dicts(jobs),
        "voice_memos": rows_to_dicts(memos),
    }


def update_activity(client_id: str) -> None:
    if not client_id:
        return
    with get_db() as conn:
        conn.execute("UPDATE clients SET last_activity_at=? WHERE id=?", (now_iso(), client_id))


def update_counts(client_id: str) -> dict | None:
    """Recompute the denormalized packet/inspection/media counters."""
    if not client_id:
        return None
    with get_db() as conn:
        conn.execute("""
            UPDATE clients SET
                total_packets     = (SELECT COUNT(*) FROM packets WHERE client_id=:id),
                total_inspections = (SELECT COUNT(*) FROM inspections WHERE client_id=:id),
                total_media       = (SELECT COUNT(*) FROM media WHERE client_id=:id)
            WHERE id=:id
        """, {"id": client_id})
    return get_client(client_id)


def touch(client_id: str) -> None:
    """Counts + activity in one call, used after any linked record changes."""
    if client_id:
        update_counts(client_id)
        update_activity(client_id)


def migrate_existing_records() -> dict:
    """Create clients for packets/inspections saved before clients existed."""
    with get_db() as conn:
        pairs = conn.execute("""
            SELECT customer_name, COALESCE(customer_address, '') AS customer_address
            FROM packets WHERE client_id IS NULL AND COALESCE(customer_name,'') != ''
            UNION
            SELECT customer_name, COALESCE(customer_address, '')
            FROM inspections WHERE client_id IS NULL AND COALESCE(customer_name,'') != ''
        """).fetchall()

    result = {"clients_created": 0, "packets_linked": 0, "inspections_linked": 0}
    seen = set()
    for row in pairs:
        name, address = row["customer_name"].strip(), row["customer_address"].strip()
        key = (name.lower(), address.lower())
        if key in seen:
            continue
        seen.add(key)

        client = _find(name, address)
        if not client:
            client = create_client({"name": name, "address": address})
            result["clients_created"] += 1

        with get_db() as conn:
            for table, counter in (("packets", "packets_linked"), ("inspections", "inspections_linked")):
                cur = conn.execute(f"""
                    UPDATE {table} SET client_id=?
                    WHERE client_id IS NULL
                      AND LOWER(TRIM(customer_name))=LOWER(?)
                      AND LOWER(TRIM(COALESCE(customer_address,'')))=LOWER(?)
                """, (client["id"], name, address))
                result[counter] += cur.rowcount
        update_counts(client["id"])

    log.info("Client migration: %s", result)
    return result
