"""
Jobs — scheduled roofing work.

Workflow: pending → scheduled → in_progress → completed (or cancelled).
A job usually starts life from a signed packet via create_from_packet().
"""

import logging
from datetime import date, timedelta

from dateutil import parser as dateparser

from portal.core.db import get_db, new_id, now_iso, today, row_to_dict, rows_to_dicts, _jd
from portal.crm import clients

log = logging.getLogger("lava.jobs")

STATUSES = ("pending", "scheduled", "in_progress", "completed", "cancelled")

STATUS_INFO = {
    "pending":     {"label": "Pending",     "color": "#6b7280"},
    "scheduled":   {"label": "Scheduled",   "color": "#3b82f6"},
    "in_progress": {"label": "In Progress", "color": "#f59e0b"},
    "completed":   {"label": "Completed",   "color": "#22c55e"},
    "cancelled":   {"label": "Cancelled",   "color": "#ef4444"},
}

_EDITABLE = ("packet_id", "client_id", "title", "type", "status", "scheduled_date",
             "scheduled_time", "duration_hours", "estimated_days", "actual_start_date",
             "actual_end_date", "assigned_crew", "estimated_amount", "notes", "address")
_DATE_FIELDS = ("scheduled_date", "actual_start_date", "actual_end_date")
# Calendar and availability never expand a job past this many days
MAX_SPAN_DAYS = 60

_LIST_SQL = """
    SELECT j.*, c.name AS client_name, c.phone AS client_phone, c.email AS client_email
    FROM jobs j LEFT JOIN clients c ON j.client_id = c.id
"""


def as_date(value) -> str | None:
    """Normalize a loose date ('3/14/2026', '2026-03-14T08:00') to YYYY-MM-DD."""
    if value in (None, ""):
        return None
    if isinstance(value, date):
        return value.isoformat()
    try:
        return dateparser.parse(str(value)).date().isoformat()
    except (ValueError, OverflowError) as e:
        raise ValueError(f"Invalid date: {value!r}") from e


def list_jobs(status: str = None, client_id: str = None, start_date: str = None,
              end_date: str = None, crew_member: str = None) -> list:
    """Jobs with client contact info, earliest scheduled first (unscheduled last)."""
    where, params = [], []
    if status:
        where.append("j.status=?")
        params.append(status)
    if client_id:
        where.append("j.client_id=?")
        params.append(client_id)
    if start_date:
        where.append("j.scheduled_date >= ?")
        params.append(as_date(start_date))
    if end_date:
        where.append("j.scheduled_date <= ?")
        params.append(as_date(end_date))
    if crew_member:
        where.append("EXISTS (SELECT 1 FROM json_each(j.assigned_crew) WHERE value=?)")
        params.append(crew_member)
    sql = _LIST_SQL
    if where:
        sql += " WHERE " + " AND ".join(where)
    sql += " ORDER BY j.scheduled_date IS NULL, j.scheduled_date, j.created_at"
    with get_db() as conn:
        return rows_to_dicts(conn.execute(sql, params).fetchall())


def get_job(job_id: str) -> dict | None:
    """Job joined with client info and expense roll-up (total_expenses, profit, profit_margin)."""
    with get_db() as conn:
        row = conn.execute("SELECT * FROM job_summary WHERE id=?", (job_id,)).fetchone()
    return row_to_dict(row)


def _clean(data: dict) -> dict:
    values = {k: data[k] for k in _EDITABLE if k in data}
    if "status" in values and values["status"] not in STATUSES:
        raise ValueError(f"Unknown job status: {values['status']}")
    for key in _DATE_FIELDS:
        if key in values:
            values[key] = as_date(values[key])
    if "estimated_days" in values:
        values["estimated_days"] = _days_value(values["estimated_days"])
    if "assigned_crew" in values:
        values["assigned_crew"] = _jd(list(values["assigned_crew"] or []))
    return values


def _days_value(value):
    if value in (None, ""):
        return None
    try:
        days = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"estimated_days must be a whole number, got {value!r}") from None
    if not 1 <= days <= MAX_SPAN_DAYS:
        raise ValueError(f"estimated_days must be between 1 and {MAX_SPAN_DAYS}")
    return days


def span_dates(job: dict) -> list:
    """Every ISO date a job occupies: scheduled_date plus estimated_days - 1, capped."""
    start = date.fromisoformat(job["scheduled_date"])
    try:
        days = int(job.get("estimated_days") or 1)
    except (TypeError, ValueError):
        days = 1
    days = min(max(days, 1), MAX_SPAN_DAYS)
    return [(start + timedelta(days=i)).isoformat() for i in range(days)]


def create_job(data: dict) -> dict:
    if not (data.get("title") or "").strip():
        raise ValueError("Job title is required")
    values = _clean(data)
    values.setdefault("status", "pending")
    values.setdefault("assigned_crew", "[]")
    ts = now_iso()
    job_id = data.get("id") or new_id()
    values.update(id=job_id, created_at=ts, updated_at=ts)
    cols = ", ".join(values)
    marks = ", ".join("?" for _ in values)
    with get_db() as conn:
        conn.execute(f"INSERT INTO jobs ({cols}) VALUES ({marks})", tuple(values.values()))
    log.info("Job created: %s (%s)", values["title"], job_id, extra={"job_id": job_id})
    clients.update_activity(values.get("client_id"))
    return get_job(job_id)


def create_from_packet(packet_id: str) -> dict:
    with get_db() as conn:
        row = conn.execute("SELECT * FROM packets WHERE id=?", (packet_id,)).fetchone()
    packet = row_to_dict(row)
    if not packet:
        raise LookupError(f"Packet {packet_id} not found")

    amount = ((packet.get("config") or {}).get("estimate") or {}).get("amount")
    try:
        estimated = float(amount) if amount not in (None, "") else None
    except (TypeError, ValueError):
        estimated = None

    return create_job({
        "packet_id": packet_id,
        "client_id": packet.get("client_id"),
        "title": f"{packet.get('product_type') or 'Roofing'} - {packet.get('customer_name') or ''}",
        "address": packet.get("customer_address"),
        "estimated_amount": estimated,
        "status": "pending",
        "notes": "Created from packet",
    })


def update_job(job_id: str, updates: dict) -> dict:
    values = _clean(updates)
    if "title" in values and not (values["title"] or "").strip():
        raise ValueError("Job title is required")
    if not get_job(job_id):
        raise LookupError(f"Job {job_id} not found")
    if values:
        values["updated_at"] = now_iso()
        cols = ", ".join(f"{k}=?" for k in values)
        with get_db() as conn:
            conn.execute(f"UPDATE jobs SET {cols} WHERE id=?", (*values.values(), job_id))
    return get_job(job_id)


def update_status(job_id: str, status: str) -> dict:
    if status not in STATUSES:
        raise ValueError(f"Unknown job status: {status}")
    job = get_job(job_id)
    if not job:
        raise LookupError(f"Job {job_id} not found")
    updates = {"status": status}
    if status == "in_progress" and not job.get("actual_start_date"):
        updates["actual_start_date"] = today()
    if status == "completed":
        updates["actual_end_date"] = today()
    log.info("Job %s: %s → %s", job_id, job["status"], status, extra={"job_id": job_id})
    return update_job(job_id, updates)


def schedule(job_id: str, scheduled_date: str, scheduled_time: str = None, crew: list = None) -> dict:
    updates = {"scheduled_date": scheduled_date, "scheduled_time": scheduled_time,
               "status": "scheduled"}
    if crew is not None:
        updates["assigned_crew"] = crew
    return update_job(job_id, updates)


def assign_crew(job_id: str, crew_ids: list) -> dict:
    return update_job(job_id, {"assigned_crew": crew_ids or []})


def delete_job(job_id: str) -> bool:
    with get_db() as conn:
        conn.execute("DELETE FROM expenses WHERE job_id=?", (job_id,))
        conn.execute("UPDATE voice_memos SET job_id=NULL WHERE job_id=?", (job_id,))
        cur = conn.execute("DELETE FROM jobs WHERE id=?", (job_id,))
    if cur.rowcount:
        log.info("Job deleted: %s", job_id, extra={"job_id": job_id})
    return cur.rowcount > 0


def get_for_calendar(start: str, end: str) -> list:
    """Non-cancelled jobs scheduled in [start, end]."""
    with get_db() as conn:
        rows = conn.execute(_LIST_SQL + """
            WHERE j.scheduled_date >= ? AND j.scheduled_date <= ? AND j.status != 'cancelled'
            ORDER BY j.scheduled_date, j.scheduled_time
        """, (as_date(start), as_date(end))).fetchall()
    return rows_to_dicts(rows)


def get_upcoming(days: int = 7) -> list:
    start = date.today()
    return list_jobs(start_date=start.isoformat(),
                     end_date=(start + timedelta(days=days)).isoformat())


def get_stats() -> dict:
    month_start = date.today().replace(day=1).isoformat()
    with get_db() as conn:
        counts = {r[0]: r[1] for r in conn.execute(
            "SELECT status, COUNT(*) FROM jobs GROUP BY status").fetchall()}
        this_month = conn.execute("""
            SELECT COUNT(*) FROM jobs WHERE status='completed' AND actual_end_date >= ?
        """, (month_start,)).fetchone()[0]
    return {
        "pending": counts.get("pending", 0),
        "scheduled": counts.get("scheduled", 0),
        "inProgress": counts.get("in_progress", 0),
        "completed": counts.get("completed", 0),
        "completedThisMonth": this_month,
    }
