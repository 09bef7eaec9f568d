"""
Job costing — profitability per job, roll-ups across jobs, and a price
suggestion for new work based on past completed jobs.

Margin bands (percent of estimated amount):
    >= 30  Excellent
    >= 20  Good
    >= 10  Fair
    >=  0  Low
    <   0  Loss
"""

import logging
from datetime import date

from dateutil.relativedelta import relativedelta

from portal.crm import expenses, jobs

log = logging.getLogger("lava.costing")

PROFIT_BANDS = (
    (30, {"label": "Excellent", "level": "excellent", "color": "#22c55e"}),
    (20, {"label": "Good", "level": "good", "color": "#84cc16"}),
    (10, {"label": "Fair", "level": "fair", "color": "#f59e0b"}),
    (0, {"label": "Low", "level": "low", "color": "#f97316"}),
)
LOSS = {"label": "Loss", "level": "loss", "color": "#ef4444"}

DEFAULT_SQFT = 2000
DEFAULT_RATES = {
    "standing seam": {"materialPerSqft": 8.50, "laborPerSqft": 4.50, "otherFixed": 1500, "marginTarget": 25},
    "shingles":      {"materialPerSqft": 3.50, "laborPerSqft": 2.50, "otherFixed": 1000, "marginTarget": 30},
    "brava":         {"materialPerSqft": 12.00, "laborPerSqft": 5.00, "otherFixed": 1500, "marginTarget": 25},
    "default":       {"materialPerSqft": 6.00, "laborPerSqft": 3.50, "otherFixed": 1200, "marginTarget": 25},
}


def profitability_status(margin: float) -> dict:
    for floor, status in PROFIT_BANDS:
        if margin >= floor:
            return dict(status)
    return dict(LOSS)


def get_job_analysis(job_id: str) -> dict | None:
    job = jobs.get_job(job_id)
    if not job:
        return None
    items = expenses.list_for_job(job_id)

    by_category = {cat: {"label": label, "total": 0.0, "items": []}
                   for cat, label in expenses.CATEGORIES.items()}
    for exp in items:
        bucket = by_category.get(exp["category"])
        if bucket is not None:
            bucket["total"] += float(exp["amount"] or 0)
            bucket["items"].append(exp)

    estimated = float(job.get("estimated_amount") or 0)
    total_expenses = sum(float(e["amount"] or 0) for e in items)
    profit = estimated - total_expenses
    margin = (profit / estimated * 100) if estimated > 0 else 0

    labor = by_category["labor"]["items"]
    return {
        "job": job,
        "estimatedAmount": estimated,
        "totalExpenses": total_expenses,
        "profit": profit,
        "profitMargin": round(margin, 1),
        "byCategory": by_category,
        "expenses": items,
        "labor": {
            "hours": sum(float(e["quantity"] or 0) for e in labor if e["unit"] == "hour"),
            "days": sum(float(e["quantity"] or 0) for e in labor if e["unit"] == "day"),
            "cost": by_category["labor"]["total"],
        },
        "materials": {
            "cost": by_category["material"]["total"],
            "items": len(by_category["material"]["items"]),
        },
        "isProfitable": profit >= 0,
        "status": profitability_status(margin),
    }


def get_job_comparison(job_ids: list) -> list:
    rows = []
    for job_id in job_ids:
        a = get_job_analysis(job_id)
        if not a:
            continue
        rows.append({
            "id": a["job"]["id"],
            "title": a["job"]["title"],
            "client": a["job"].get("client_name"),
            "address": a["job"].get("address"),
            "status": a["job"]["status"],
            "estimatedAmount": a["estimatedAmount"],
            "totalExpenses": a["totalExpenses"],
            "profit": a["profit"],
            "profitMargin": a["profitMargin"],
            "profitabilityStatus": a["status"],
        })
    return rows


def get_stats(start_date: str = None, end_date: str = None) -> dict:
    """Completed jobs overall, or every job scheduled in [start_date, end_date]."""
    if start_date and end_date:
        job_rows = jobs.list_jobs(start_date=start_date, end_date=end_date)
    else:
        job_rows = jobs.list_jobs(status="completed")
    analyses = [a for a in (get_job_analysis(j["id"]) for j in job_rows) if a]

    if not analyses:
        return {
            "totalJobs": 0, "totalRevenue": 0, "totalExpenses": 0, "totalProfit": 0,
            "avgProfitMargin": 0, "avgJobValue": 0, "byCategory": {},
            "profitableJobs": 0, "unprofitableJobs": 0,
            "excellentMarginJobs": 0, "lowMarginJobs": 0,
        }

    revenue = sum(a["estimatedAmount"] for a in analyses)
    spent = sum(a["totalExpenses"] for a in analyses)
    profit = sum(a["profit"] for a in analyses)
    return {
        "totalJobs": len(analyses),
        "totalRevenue": revenue,
        "totalExpenses": spent,
        "totalProfit": profit,
        "avgProfitMargin": (profit / revenue * 100) if revenue > 0 else 0,
        "avgJobValue": revenue / len(analyses),
        "byCategory": {cat: sum(a["byCategory"][cat]["total"] for a in analyses)
                       for cat in expenses.CATEGORIES},
        "profitableJobs": sum(1 for a in analyses if a["profit"] >= 0),
        "unprofitableJobs": sum(1 for a in analyses if a["profit"] < 0),
        "excellentMarginJobs": sum(1 for a in analyses if a["profitMargin"] >= 30),
        "lowMarginJobs": sum(1 for a in analyses if 0 <= a["profitMargin"] < 10),
    }


def get_monthly_trends(months: int = 6) -> list:
    """One entry per calendar month, oldest first, ending with the current month."""
    first = date.today().replace(day=1)
    trends = []
    for i in range(months - 1, -1, -1):
        start = first - relativedelta(months=i)
        end = start + relativedelta(months=1, days=-1)
        stats = get_stats(start.isoformat(), end.isoformat())
        trends.append({
            "month": start.strftime("%b %Y"),
            "start": start.isoformat(),
            "revenue": stats["totalRevenue"],
            "expenses": stats["totalExpenses"],
            "profit": stats["totalProfit"],
            "margin": stats["avgProfitMargin"],
            "jobs": stats["totalJobs"],
        })
    return trends


def _product_key(product_type: str) -> str:
    return (product_type or "").lower().replace("-", " ").strip()


def default_estimate(product_type: str, square_footage: float = None) -> dict:
    sqft = float(square_footage or DEFAULT_SQFT)
    rates = DEFAULT_RATES.get(_product_key(product_type), DEFAULT_RATES["default"])
    materials = rates["materialPerSqft"] * sqft
    labor = rates["laborPerSqft"] * sqft
    other = rates["otherFixed"]
    total = materials + labor + other
    price = total / (1 - rates["marginTarget"] / 100)
    return {
        "basedOn": 0,
        "estimatedMaterials": materials,
        "estimatedLabor": labor,
        "estimatedOther": other,
        "estimatedTotal": total,
        "avgMargin": rates["marginTarget"],
        "suggestedPrice": price,
        "suggestedProfit": price - total,
    }


def estimate_job_cost(product_type: str, square_footage: float = None) -> dict:
    """Average completed jobs of the same product, else fall back to default rates."""
    key = _product_key(product_type)
    similar = []
    if key:
        for j in jobs.list_jobs(status="completed"):
            title = _product_key(j.get("title"))
            if key in title:
                analysis = get_job_analysis(j["id"])
                if analysis:
                    similar.append(analysis)
    if not similar:
        return default_estimate(product_type, square_footage)

    n = len(similar)
    materials = sum(a["byCategory"]["material"]["total"] for a in similar) / n
    labor = sum(a["byCategory"]["labor"]["total"] for a in similar) / n
    other = sum(a["byCategory"][c]["total"] for a in similar
                for c in ("equipment", "permit", "subcontractor")) / n
    total = materials + labor + other
    margin = sum(a["profitMargin"] for a in similar) / n
    # A margin of 100% or more would divide by zero or flip the sign
    price = total / (1 - margin / 100) if margin < 100 else total
    log.debug("Estimate for %s from %d similar job(s): $%.0f", product_type, n, price)
    return {
        "basedOn": n,
        "estimatedMaterials": materials,
        "estimatedLabor": labor,
        "estimatedOther": other,
        "estimatedTotal": total,
        "avgMargin": margin,
        "suggestedPrice": price,
        "suggestedProfit": price - total,
    }
