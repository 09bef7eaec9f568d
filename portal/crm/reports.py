"""
Reports — read-only analytics over jobs, packets and crew.

Every list-shaped report can be exported with to_csv().
"""

import io
import csv
import json
import logging
from datetime import date

from dateutil.relativedelta import relativedelta

from portal.core.db import get_db
from portal.crm import costing, crew, jobs

log = logging.getLogger("lava.reports")

# Oʻahu areas matched against job addresses
AREAS = ("Honolulu", "Kailua", "Kaneohe", "Pearl City", "Aiea",
         "Mililani", "Kapolei", "Ewa Beach", "Hawaii Kai", "Waikiki")

PRODUCT_COLORS = {
    "Standing Seam": "#3b82f6",
    "Shingles": "#22c55e",
    "Brava": "#f59e0b",
    "Other": "#6b7280",
}


def revenue_by_month(months: int = 12) -> list:
    first = date.today().replace(day=1)
    data = []
    for i in range(months - 1, -1, -1):
        start = first - relativedelta(months=i)
        end = start + relativedelta(months=1, days=-1)
        done = jobs.list_jobs(status="completed", start_date=start.isoformat(),
                              end_date=end.isoformat())
        data.append({
            "month": start.strftime("%b"),
            "year": start.year,
            "label": start.strftime("%b %y"),
            "revenue": sum(float(j["estimated_amount"] or 0) for j in done),
            "jobs": len(done),
        })
    return data


def jobs_by_status() -> list:
    stats = jobs.get_stats()
    keys = {"pending": "pending", "scheduled": "scheduled",
            "in_progress": "inProgress", "completed": "completed"}
    return [
        {"status": status, "label": jobs.STATUS_INFO[status]["label"],
         "count": stats[key], "color": jobs.STATUS_INFO[status]["color"]}
        for status, key in keys.items()
    ]


def product_from_title(title: str) -> str:
    lower = (title or "").lower()
    if "standing seam" in lower or "standing-seam" in lower or "metal" in lower:
        return "Standing Seam"
    if "shingle" in lower:
        return "Shingles"
    if "brava" in lower or "tile" in lower:
        return "Brava"
    return "Other"


def revenue_by_product() -> list:
    by_product = {}
    for job in jobs.list_jobs(status="completed"):
        entry = by_product.setdefault(product_from_title(job["title"]), {"revenue": 0.0, "count": 0})
        entry["revenue"] += float(job["estimated_amount"] or 0)
        entry["count"] += 1
    rows = [{"product": p, "revenue": d["revenue"], "count": d["count"],
             "color": PRODUCT_COLORS.get(p, PRODUCT_COLORS["Other"])}
            for p, d in by_product.items()]
    return sorted(rows, key=lambda r: r["revenue"], reverse=True)


def close_rate() -> dict:
    """Share of packets that have at least one signature."""
    with get_db() as conn:
        total = conn.execute("SELECT COUNT(*) FROM packets").fetchone()[0]
        signed = conn.execute("""
            SELECT COUNT(*) FROM packets p
            WHERE EXISTS (SELECT 1 FROM signatures s WHERE s.packet_id = p.id)
        """).fetchone()[0]
    rate = (signed / total * 100) if total else 0
    return {
        "totalPackets": total,
        "signedPackets": signed,
        "unsignedPackets": total - signed,
        "closeRate": round(rate, 1),
    }


def crew_utilization(start: str, end: str) -> list:
    done = [j for j in jobs.list_jobs(start_date=start, end_date=end) if j["status"] == "completed"]
    rows = []
    for member in crew.list_crew():
        mine = [j for j in done if member["id"] in (j["assigned_crew"] or [])]
        days = sum(int(j["estimated_days"] or 1) for j in mine)
        rows.append(dict(member, jobsCompleted=len(mine), daysWorked=days, utilization=days))
    return sorted(rows, key=lambda r: r["daysWorked"], reverse=True)


def area_from_address(address: str) -> str:
    lower = (address or "").lower()
    for area in AREAS:
        if area.lower() in lower:
            return area
    return "Other"


def jobs_by_area() -> list:
    by_area = {}
    for job in jobs.list_jobs():
        entry = by_area.setdefault(area_from_address(job["address"]), {"count": 0, "revenue": 0.0})
        entry["count"] += 1
        entry["revenue"] += float(job["estimated_amount"] or 0)
    rows = [{"area": a, "count": d["count"], "revenue": d["revenue"]} for a, d in by_area.items()]
    return sorted(rows, key=lambda r: r["count"], reverse=True)


def dashboard_stats() -> dict:
    return {
        "jobs": jobs.get_stats(),
        "costing": costing.get_stats(),
        "closeRate": close_rate(),
    }


def to_csv(rows: list) -> str:
    """CSV text with a header row taken from the first row's keys."""
    if not rows:
        return ""
    headers = list(rows[0].keys())
    out = io.StringIO()
    writer = csv.DictWriter(out, fieldnames=headers, extrasaction="ignore", lineterminator="\n")
    writer.writeheader()
    for row in rows:
        writer.writerow({h: _cell(row.get(h)) for h in headers})
    return out.getvalue()


def _cell(value):
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return value


# name → callable for the CSV export route
EXPORTS = {
    "revenue_by_month": revenue_by_month,
    "jobs_by_status": jobs_by_status,
    "revenue_by_product": revenue_by_product,
    "jobs_by_area": jobs_by_area,
    "crew_utilization": crew_utilization,
}
