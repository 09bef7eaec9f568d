"""
Job expenses and material presets.

``amount`` is always the line total. When both unit_cost and quantity are
known, amount = unit_cost × quantity and is recomputed whenever either changes.
"""

import os
import logging

from portal.core import storage
from portal.core.db import get_db, new_id, now_iso, today, row_to_dict, rows_to_dicts
from portal.crm.jobs import as_date

log = logging.getLogger("lava.expenses")

CATEGORIES = {
    "material": "Materials",
    "labor": "Labor",
    "equipment": "Equipment",
    "permit": "Permits",
    "subcontractor": "Subcontractor",
    "other": "Other",
}
UNITS = ("each", "sqft", "lnft", "hour", "day", "bundle", "box", "tube", "week")

_EDITABLE = ("category", "description", "amount", "quantity", "unit", "unit_cost",
             "vendor", "date")


def list_for_job(job_id: str) -> list:
    with get_db() as conn:
        rows = conn.execute("""
            SELECT * FROM expenses WHERE job_id=? ORDER BY date DESC, created_at DESC
        """, (job_id,)).fetchall()
    return rows_to_dicts(rows)


def get_expense(expense_id: str) -> dict | None:
    with get_db() as conn:
        row = conn.execute("SELECT * FROM expenses WHERE id=?", (expense_id,)).fetchone()
    return row_to_dict(row)


def _validate(values: dict):
    if "category" in values and values["category"] not in CATEGORIES:
        raise ValueError(f"Unknown expense category: {values['category']}")
    if values.get("unit") and values["unit"] not in UNITS:
        raise ValueError(f"Unknown unit: {values['unit']}")
    if "date" in values:
        values["date"] = as_date(values["date"])


def _line_total(unit_cost, quantity, fallback):
    if unit_cost not in (None, "") and quantity not in (None, ""):
        return round(float(unit_cost) * float(quantity), 2)
    return float(fallback or 0)


def create_expense(data: dict) -> dict:
    if not data.get("job_id"):
        raise ValueError("job_id is required")
    if not data.get("category"):
        raise ValueError("category is required")
    values = {k: data[k] for k in _EDITABLE if k in data}
    _validate(values)
    values["amount"] = _line_total(values.get("unit_cost"), values.get("quantity"),
                                   values.get("amount"))
    values.setdefault("quantity", 1)
    values.setdefault("unit", "each")
    values.setdefault("date", today())

    with get_db() as conn:
        if not conn.execute("SELECT 1 FROM jobs WHERE id=?", (data["job_id"],)).fetchone():
            raise LookupError(f"Job {data['job_id']} not found")
        expense_id = new_id()
        values.update(id=expense_id, job_id=data["job_id"], created_at=now_iso())
        cols = ", ".join(values)
        marks = ", ".join("?" for _ in values)
        conn.execute(f"INSERT INTO expenses ({cols}) VALUES ({marks})", tuple(values.values()))
    log.info("Expense %s: $%.2f %s", expense_id, values["amount"], values["category"],
             extra={"job_id": data["job_id"]})
    return get_expense(expense_id)


def update_expense(expense_id: str, updates: dict) -> dict:
    current = get_expense(expense_id)
    if not current:
        raise LookupError(f"Expense {expense_id} not found")
    values = {k: updates[k] for k in _EDITABLE if k in updates}
    _validate(values)
    if "unit_cost" in values or "quantity" in values:
        unit_cost = values.get("unit_cost", current["unit_cost"])
        quantity = values.get("quantity", current["quantity"])
        values["amount"] = _line_total(unit_cost, quantity,
                                       values.get("amount", current["amount"]))
    if values:
        cols = ", ".join(f"{k}=?" for k in values)
        with get_db() as conn:
            conn.execute(f"UPDATE expenses SET {cols} WHERE id=?", (*values.values(), expense_id))
    return get_expense(expense_id)


def delete_expense(expense_id: str) -> bool:
    expense = get_expense(expense_id)
    if not expense:
        return False
    if expense.get("receipt_path"):
        storage.remove(expense["receipt_path"])
    with get_db() as conn:
        conn.execute("DELETE FROM expenses WHERE id=?", (expense_id,))
    return True


def get_totals_for_job(job_id: str) -> dict:
    totals = {"total": 0.0, "byCategory": {cat: 0.0 for cat in CATEGORIES}}
    for exp in list_for_job(job_id):
        amount = float(exp["amount"] or 0)
        totals["total"] += amount
        if exp["category"] in totals["byCategory"]:
            totals["byCategory"][exp["category"]] += amount
    return totals


# ── Presets ───────────────────────────────────────────────────────────────────

def get_presets(category: str = None) -> list:
    sql = "SELECT * FROM material_presets WHERE active=1"
    params = []
    if category:
        sql += " AND category=?"
        params.append(category)
    sql += " ORDER BY name"
    with get_db() as conn:
        return rows_to_dicts(conn.execute(sql, params).fetchall())


def create_from_preset(job_id: str, preset_id: str, quantity: float = 1) -> dict:
    with get_db() as conn:
        row = conn.execute("SELECT * FROM material_presets WHERE id=?", (preset_id,)).fetchone()
    preset = row_to_dict(row)
    if not preset:
        raise LookupError(f"Preset {preset_id} not found")
    return create_expense({
        "job_id": job_id,
        "category": preset["category"],
        "description": preset["name"],
        "unit": preset["unit"],
        "unit_cost": preset["default_cost"],
        "quantity": quantity,
        "date": today(),
    })


# ── Receipts ──────────────────────────────────────────────────────────────────

def upload_receipt(expense_id: str, data: bytes, filename: str) -> dict:
    expense = get_expense(expense_id)
    if not expense:
        raise LookupError(f"Expense {expense_id} not found")
    name = os.path.basename(filename or "") or "receipt"
    path = storage.upload(f"receipts/{expense_id}/{name}", data)
    url = storage.public_url(path)
    with get_db() as conn:
        conn.execute("UPDATE expenses SET receipt_path=?, receipt_url=? WHERE id=?",
                     (path, url, expense_id))
    if expense.get("receipt_path") and expense["receipt_path"] != path:
        storage.remove(expense["receipt_path"])
    return get_expense(expense_id)
