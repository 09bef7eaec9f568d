"""
search_agent.py — Natural-language search across the portal.

"pending jobs in kailua" → types=[jobs], filters={status: pending},
keywords=[pending, jobs, kailua]. Words that only select a type or filter
are dropped from the text match, so the rows searched for are the ones
whose name/address/etc. contain "kailua".

Rule-based; no model call.
"""

import logging
from datetime import date

from dateutil.relativedelta import relativedelta

from portal.core.db import get_db, rows_to_dicts
from portal.crm.jobs import STATUS_INFO

log = logging.getLogger("lava.search")

PER_TYPE_LIMIT = 10
MAX_KEYWORDS = 5

TYPE_KEYWORDS = {
    "clients": ("client", "customer"),
    "packets": ("packet", "proposal", "estimate"),
    "inspections": ("inspection", "report"),
    "jobs": ("job", "project", "work"),
    "media": ("photo", "image", "picture", "media"),
    "voice": ("memo", "voice", "recording", "note"),
}
DEFAULT_TYPES = ["clients", "packets", "inspections", "jobs", "media"]

DATE_RANGES = (("today", "today"), ("this week", "week"), ("this month", "month"),
               ("this year", "year"))
STATUS_WORDS = (("pending", "pending"), ("scheduled", "scheduled"),
                ("in progress", "in_progress"), ("active", "in_progress"),
                ("completed", "completed"), ("done", "completed"), ("finished", "completed"))
PRODUCT_WORDS = (("standing seam", "standing-seam"), ("metal", "standing-seam"),
                 ("shingle", "shingles"), ("brava", "brava"), ("tile", "brava"))

STOP_WORDS = {"find", "show", "get", "search", "for", "the", "a", "an", "of", "with",
              "from", "all", "my", "me"}

LABELS = {
    "clients": "Clients",
    "packets": "Packets",
    "inspections": "Inspections",
    "jobs": "Jobs",
    "media": "Photos & Media",
    "voice": "Voice Memos",
}

SUGGESTIONS = [
    "Find photos of standing seam roofs",
    "Show all pending jobs",
    "Clients in Kailua",
    "Inspections this month",
    "Packets for shingle roofs",
    "Jobs completed this week",
]


def parse_intent(query: str) -> dict:
    lower = (query or "").lower()
    intent = {"types": [], "filters": {}, "keywords": []}

    for type_name, words in TYPE_KEYWORDS.items():
        if any(w in lower for w in words):
            intent["types"].append(type_name)
    if not intent["types"]:
        intent["types"] = list(DEFAULT_TYPES)

    for phrase, value in DATE_RANGES:
        if phrase in lower:
            intent["filters"]["dateRange"] = value
            break
    # Later matches win, as with "scheduled ... completed"
    for phrase, value in STATUS_WORDS:
        if phrase in lower:
            intent["filters"]["status"] = value
    for phrase, value in PRODUCT_WORDS:
        if phrase in lower:
            intent["filters"]["product"] = value

    intent["keywords"] = [w for w in lower.split()
                          if len(w) > 2 and w not in STOP_WORDS][:MAX_KEYWORDS]
    return intent


def date_from_range(range_name: str) -> str | None:
    today = date.today()
    start = {
        "today": today,
        "week": today - relativedelta(days=7),
        "month": today - relativedelta(months=1),
        "year": today - relativedelta(years=1),
    }.get(range_name)
    return start.isoformat() if start else None


_FILTER_WORDS = {w for phrase, _ in DATE_RANGES + STATUS_WORDS + PRODUCT_WORDS
                 for w in phrase.split()} | {"roof", "roofs"}


def _is_control_word(word: str) -> bool:
    """True for words that only pick a type or a filter."""
    for words in TYPE_KEYWORDS.values():
        if any(word.startswith(w) for w in words):
            return True
    return word in _FILTER_WORDS or word.rstrip("s") in _FILTER_WORDS


def _search_terms(intent: dict) -> list:
    return [w for w in intent["keywords"] if not _is_control_word(w)]


def _text_clause(columns: tuple, terms: list) -> tuple:
    """Every term must appear in at least one of the columns."""
    clauses, params = [], []
    for term in terms:
        clauses.append("(" + " OR ".join(f"{c} LIKE ? COLLATE NOCASE" for c in columns) + ")")
        params.extend([f"%{term}%"] * len(columns))
    return clauses, params


def _run(table: str, select: str, columns: tuple, terms: list, filters: dict,
         order: str, status: bool = False, product: bool = False) -> list:
    where, params = _text_clause(columns, terms)
    if status and filters.get("status"):
        where.append("status=?")
        params.append(filters["status"])
    if product and filters.get("product"):
        where.append("product_type=?")
        params.append(filters["product"])
    since = date_from_range(filters.get("dateRange"))
    if since:
        where.append("created_at >= ?")
        params.append(since)
    sql = f"SELECT {select} FROM {table}"
    if where:
        sql += " WHERE " + " AND ".join(where)
    sql += f" ORDER BY {order} LIMIT {PER_TYPE_LIMIT}"
    with get_db() as conn:
        return rows_to_dicts(conn.execute(sql, params).fetchall())


def _search_type(type_name: str, terms: list, filters: dict) -> list:
    if type_name == "clients":
        rows = _run("clients", "id, name, address, phone, email, tags",
                    ("name", "address"), terms, filters, "name")
        return [dict(c, title=c["name"], subtitle=c["address"] or "") for c in rows]
    if type_name == "packets":
        rows = _run("packets", "id, customer_name, customer_address, product_type, created_at",
                    ("customer_name", "customer_address"), terms, filters,
                    "created_at DESC", product=True)
        return [dict(p, title=p["customer_name"] or "Unnamed",
                     subtitle=f"{p['product_type'] or 'Unknown'} - {p['customer_address'] or 'No address'}")
                for p in rows]
    if type_name == "inspections":
        rows = _run("inspections", "id, customer_name, customer_address, status, inspection_date",
                    ("customer_name", "customer_address"), terms, filters,
                    "inspection_date DESC", status=True)
        return [dict(i, title=i["customer_name"] or "Unnamed",
                     subtitle=f"{i['status'] or 'Unknown'} - {i['customer_address'] or 'No address'}")
                for i in rows]
    if type_name == "jobs":
        rows = _run("jobs", "id, title, address, status, scheduled_date",
                    ("title", "address"), terms, filters, "scheduled_date DESC", status=True)
        return [dict(j, title=j["title"] or "Unnamed Job",
                     subtitle=f"{STATUS_INFO.get(j['status'], STATUS_INFO['pending'])['label']}"
                              f" - {j['address'] or 'No address'}")
                for j in rows]
    if type_name == "media":
        rows = _run("media", "id, filename, public_url, caption, tags, address",
                    ("filename", "caption", "address"), terms, filters, "created_at DESC")
        return [dict(m, title=m["filename"] or "Image",
                     subtitle=m["caption"] or m["address"] or "No description",
                     thumbnail=m["public_url"]) for m in rows]
    if type_name == "voice":
        rows = _run("voice_memos", "id, transcript, duration_seconds, created_at, client_id, job_id",
                    ("transcript",), terms, filters, "created_at DESC")
        return [dict(v, title=f"Voice Memo - {v['created_at'][:10]}",
                     subtitle=(v["transcript"] or "No transcript")[:100]) for v in rows]
    return []


def search(query: str) -> dict:
    if not query or len(query.strip()) < 2:
        return {"query": query, "results": [], "totalCount": 0}
    intent = parse_intent(query)
    terms = _search_terms(intent)
    results = []
    for type_name in intent["types"]:
        items = _search_type(type_name, terms, intent["filters"])
        if items:
            results.append({"type": type_name, "label": LABELS[type_name], "items": items})
    total = sum(len(g["items"]) for g in results)
    log.debug("Search %r → %d result(s) across %d type(s)", query, total, len(results))
    return {"query": query, "intent": intent, "results": results, "totalCount": total}


def suggestions() -> list:
    return list(SUGGESTIONS)
