"""Crew roster and availability."""

import logging

from portal.core.db import get_db, new_id, now_iso, row_to_dict, rows_to_dicts
from portal.crm.jobs import span_dates

log = logging.getLogger("lava.crew")

ROLES = {"admin": "Administrator", "crew": "Crew Member", "sales": "Sales Rep"}
DEFAULT_COLOR = "#3b82f6"
COLOR_OPTIONS = ("#ef4444", "#f97316", "#f59e0b", "#22c55e", "#14b8a6",
                 "#3b82f6", "#8b5cf6", "#ec4899")

_EDITABLE = ("name", "phone", "email", "role", "color", "hourly_rate", "active")


def list_crew(include_inactive: bool = False) -> list:
    sql = "SELECT * FROM team_members"
    if not include_inactive:
        sql += " WHERE active=1"
    sql += " ORDER BY name"
    with get_db() as conn:
        return rows_to_dicts(conn.execute(sql).fetchall())


def get_member(member_id: str) -> dict | None:
    with get_db() as conn:
        row = conn.execute("SELECT * FROM team_members WHERE id=?", (member_id,)).fetchone()
    return row_to_dict(row)


def _check_role(role):
    if role is not None and role not in ROLES:
        raise ValueError(f"Unknown role: {role}")


def create_member(data: dict) -> dict:
    name = (data.get("name") or "").strip()
    if not name:
        raise ValueError("Name is required")
    role = data.get("role") or "crew"
    _check_role(role)
    member_id = new_id()
    ts = now_iso()
    with get_db() as conn:
        conn.execute("""
            INSERT INTO team_members (id, name, phone, email, role, color, hourly_rate, active,
                                      created_at, updated_at)
            VALUES (?,?,?,?,?,?,?,1,?,?)
        """, (member_id, name, data.get("phone") or "", data.get("email") or "", role,
              data.get("color") or DEFAULT_COLOR, float(data.get("hourly_rate") or 0), ts, ts))
    log.info("Crew member added: %s", name)
    return get_member(member_id)


def update_member(member_id: str, data: dict) -> dict:
    updates = {k: data[k] for k in _EDITABLE if k in data}
    if "name" in updates and not (updates["name"] or "").strip():
        raise ValueError("Name is required")
    _check_role(updates.get("role"))
    if "active" in updates:
        updates["active"] = 1 if updates["active"] else 0
    if not get_member(member_id):
        raise LookupError(f"Crew member {member_id} not found")
    if updates:
        updates["updated_at"] = now_iso()
        cols = ", ".join(f"{k}=?" for k in updates)
        with get_db() as conn:
            conn.execute(f"UPDATE team_members SET {cols} WHERE id=?",
                         (*updates.values(), member_id))
    return get_member(member_id)


def delete_member(member_id: str) -> bool:
    """Soft delete. Past jobs keep pointing at the member."""
    with get_db() as conn:
        cur = conn.execute("UPDATE team_members SET active=0, updated_at=? WHERE id=?",
                           (now_iso(), member_id))
    return cur.rowcount > 0


def get_for_job(job_id: str) -> list:
    with get_db() as conn:
        rows = conn.execute("""
            SELECT t.* FROM team_members t
            JOIN jobs j ON j.id=?
            WHERE t.id IN (SELECT value FROM json_each(j.assigned_crew))
            ORDER BY t.name
        """, (job_id,)).fetchall()
    return rows_to_dicts(rows)


def get_availability(start: str, end: str) -> list:
    """Each active member with their jobs in range and the dates they're booked."""
    with get_db() as conn:
        rows = conn.execute("""
            SELECT id, title, scheduled_date, estimated_days, assigned_crew FROM jobs
            WHERE scheduled_date >= ? AND scheduled_date <= ? AND status != 'cancelled'
            ORDER BY scheduled_date
        """, (start, end)).fetchall()
    in_range = rows_to_dicts(rows)
    availability = []
    for member in list_crew():
        assigned = [j for j in in_range if member["id"] in (j["assigned_crew"] or [])]
        availability.append(dict(
            member,
            jobs=assigned,
            busyDates=[d for j in assigned for d in span_dates(j)],
        ))
    return availability
