"""
Calendar views over the jobs table.

Month view is a fixed 6×7 grid starting on the Sunday on or before the 1st.
Multi-day jobs appear on every day they span (scheduled_date +
estimated_days - 1). Dragging a job to another day calls move_job().
"""

import logging
from datetime import date, timedelta

from portal.crm import jobs

log = logging.getLogger("lava.calendar")

EVENT_TYPES = ("job", "reminder", "meeting")
GRID_DAYS = 42
MAX_SPAN_DAYS = jobs.MAX_SPAN_DAYS


def _sunday_on_or_before(d: date) -> date:
    # weekday(): Monday=0 .. Sunday=6
    return d - timedelta(days=(d.weekday() + 1) % 7)


def _jobs_by_day(start: date, end: date, crew: str = None) -> dict:
    found = jobs.get_for_calendar((start - timedelta(days=MAX_SPAN_DAYS)).isoformat(),
                                  end.isoformat())
    if crew:
        found = [j for j in found if crew in (j.get("assigned_crew") or [])]
    by_day = {}
    for job in found:
        for day in jobs.span_dates(job):
            by_day.setdefault(day, []).append(job)
    return by_day


def _days(start: date, count: int, month: int = None, crew: str = None) -> list:
    end = start + timedelta(days=count - 1)
    by_day = _jobs_by_day(start, end, crew)
    today = date.today()
    out = []
    for i in range(count):
        d = start + timedelta(days=i)
        iso = d.isoformat()
        out.append({
            "date": iso,
            "inMonth": month is None or d.month == month,
            "isToday": d == today,
            "jobs": by_day.get(iso, []),
        })
    return out


def get_month(year: int, month: int, crew: str = None) -> dict:
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month: {month}")
    start = _sunday_on_or_before(date(year, month, 1))
    days = _days(start, GRID_DAYS, month=month, crew=crew)
    return {"year": year, "month": month, "start": days[0]["date"],
            "end": days[-1]["date"], "days": days}


def get_week(start_date: str = None, crew: str = None) -> dict:
    """Seven days from the Sunday of the week containing start_date (today by default)."""
    anchor = date.fromisoformat(jobs.as_date(start_date)) if start_date else date.today()
    start = _sunday_on_or_before(anchor)
    days = _days(start, 7, crew=crew)
    return {"start": days[0]["date"], "end": days[-1]["date"], "days": days}


def move_job(job_id: str, new_date: str) -> dict:
    """Drag-and-drop reschedule. A pending job becomes scheduled."""
    job = jobs.get_job(job_id)
    if not job:
        raise LookupError(f"Job {job_id} not found")
    updates = {"scheduled_date": new_date}
    if job["status"] == "pending":
        updates["status"] = "scheduled"
    log.info("Job %s moved %s → %s", job_id, job.get("scheduled_date"), new_date,
             extra={"job_id": job_id})
    return jobs.update_job(job_id, updates)


def add_event(data: dict) -> dict:
    """Quick-add from the calendar: a job, reminder or meeting on a given day."""
    title = (data.get("title") or "").strip()
    if not title:
        raise ValueError("Please enter what needs to be done")
    if not data.get("date"):
        raise ValueError("date is required")
    event_type = data.get("type") or "job"
    if event_type not in EVENT_TYPES:
        raise ValueError(f"Unknown event type: {event_type}")
    duration = data.get("duration_hours")
    if duration in ("", "multi"):
        duration = None
    return jobs.create_job({
        "title": title,
        "type": event_type,
        "scheduled_date": data["date"],
        "scheduled_time": data.get("time") or None,
        "duration_hours": float(duration) if duration is not None else None,
        "client_id": data.get("client_id") or None,
        "address": data.get("address") or None,
        "assigned_crew": data.get("crew") or [],
        "notes": data.get("notes") or "",
        "status": "scheduled",
    })
