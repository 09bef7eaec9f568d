"""Home-screen counters and the recent-activity feed."""

from datetime import datetime, timedelta, timezone

from portal.core.db import get_db, rows_to_dicts


def get_stats() -> dict:
    week_ago = (datetime.now(timezone.utc) - timedelta(days=7)).isoformat(timespec="microseconds")
    with get_db() as conn:
        total_packets = conn.execute("SELECT COUNT(*) FROM packets").fetchone()[0]
        total_inspections = conn.execute("SELECT COUNT(*) FROM inspections").fetchone()[0]
        week_packets = conn.execute(
            "SELECT COUNT(*) FROM packets WHERE created_at >= ?", (week_ago,)).fetchone()[0]
        week_inspections = conn.execute(
            "SELECT COUNT(*) FROM inspections WHERE created_at >= ?", (week_ago,)).fetchone()[0]
    return {
        "totalPackets": total_packets,
        "totalInspections": total_inspections,
        "thisWeek": week_packets + week_inspections,
    }


def get_recent_activity(limit: int = 10) -> list:
    """Packets and inspections merged, newest edit first."""
    with get_db() as conn:
        packets = conn.execute("""
            SELECT id, customer_name, customer_address, updated_at
            FROM packets ORDER BY updated_at DESC LIMIT ?
        """, (limit,)).fetchall()
        inspections = conn.execute("""
            SELECT id, customer_name, customer_address, updated_at
            FROM inspections ORDER BY updated_at DESC LIMIT ?
        """, (limit,)).fetchall()
    items = [dict(p, type="packet") for p in rows_to_dicts(packets)]
    items += [dict(i, type="inspection") for i in rows_to_dicts(inspections)]
    items.sort(key=lambda r: r.get("updated_at") or "", reverse=True)
    return items[:limit]
