"""Tests for job expenses, costing roll-ups and the reports module."""

from datetime import date

import pytest

from portal.core import storage
from portal.crm import costing, expenses, jobs, packets, reports, signatures

SIGNATURE_PNG = "data:image/png;base64,iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNk+M9QDwADhgGAWjR9awAAAABJRU5ErkJggg=="


def _completed_job(title, amount, spent=0, category="material", **extra):
    job = jobs.create_job(dict({"title": title, "estimated_amount": amount,
                                "scheduled_date": date.today().isoformat()}, **extra))
    if spent:
        expenses.create_expense({"job_id": job["id"], "category": category, "amount": spent})
    jobs.update_status(job["id"], "completed")
    return jobs.get_job(job["id"])


def _preset(name):
    return next(p for p in expenses.get_presets() if p["name"] == name)


# ═══════════════════════════════════════════════════════════════════════════════
# EXPENSES
# ═══════════════════════════════════════════════════════════════════════════════

class TestExpenses:
    def test_amount_is_line_total(self, sample_job):
        exp = expenses.create_expense({"job_id": sample_job["id"], "category": "material",
                                       "unit": "sqft", "unit_cost": 8.5, "quantity": 3})
        assert exp["amount"] == 25.5
        assert exp["date"] == date.today().isoformat()

    def test_flat_amount(self, sample_job):
        exp = expenses.create_expense({"job_id": sample_job["id"], "category": "permit",
                                       "amount": "350"})
        assert exp["amount"] == 350
        assert exp["quantity"] == 1
        assert exp["unit"] == "each"

    def test_validation(self, sample_job):
        with pytest.raises(ValueError):
            expenses.create_expense({"category": "material", "amount": 1})
        with pytest.raises(ValueError):
            expenses.create_expense({"job_id": sample_job["id"], "amount": 1})
        with pytest.raises(ValueError):
            expenses.create_expense({"job_id": sample_job["id"], "category": "snacks"})
        with pytest.raises(ValueError):
            expenses.create_expense({"job_id": sample_job["id"], "category": "labor",
                                     "unit": "parsec"})

    def test_unknown_job(self):
        with pytest.raises(LookupError):
            expenses.create_expense({"job_id": "nope", "category": "material", "amount": 1})

    def test_update_recomputes_total(self, sample_job):
        exp = expenses.create_expense({"job_id": sample_job["id"], "category": "labor",
                                       "unit": "hour", "unit_cost": 35, "quantity": 8})
        assert exp["amount"] == 280
        updated = expenses.update_expense(exp["id"], {"quantity": 10})
        assert updated["amount"] == 350
        assert expenses.update_expense(exp["id"], {"vendor": "Crew"})["amount"] == 350

    def test_update_missing(self):
        with pytest.raises(LookupError):
            expenses.update_expense("nope", {"amount": 1})

    def test_job_summary_reflects_expenses(self, sample_job):
        expenses.create_expense({"job_id": sample_job["id"], "category": "material", "amount": 6000})
        job = jobs.get_job(sample_job["id"])
        assert job["total_expenses"] == 6000
        assert job["profit"] == 18000
        assert job["profit_margin"] == 75.0

    def test_totals(self, sample_job):
        expenses.create_expense({"job_id": sample_job["id"], "category": "material", "amount": 100})
        expenses.create_expense({"job_id": sample_job["id"], "category": "material", "amount": 50})
        expenses.create_expense({"job_id": sample_job["id"], "category": "labor", "amount": 25})
        totals = expenses.get_totals_for_job(sample_job["id"])
        assert totals["total"] == 175
        assert totals["byCategory"]["material"] == 150
        assert totals["byCategory"]["permit"] == 0

    def test_seeded_presets(self):
        assert len(expenses.get_presets()) == 15
        assert {p["category"] for p in expenses.get_presets("equipment")} == {"equipment"}

    def test_create_from_preset(self, sample_job):
        preset = _preset("Dumpster Rental")
        exp = expenses.create_from_preset(sample_job["id"], preset["id"], quantity=2)
        assert exp["description"] == "Dumpster Rental"
        assert exp["category"] == "equipment"
        assert exp["unit"] == "day"
        assert exp["amount"] == 900

    def test_create_from_missing_preset(self, sample_job):
        with pytest.raises(LookupError):
            expenses.create_from_preset(sample_job["id"], "nope")

    def test_receipt_replaces_previous(self, sample_job, jpeg_bytes):
        exp = expenses.create_expense({"job_id": sample_job["id"], "category": "material", "amount": 5})
        first = expenses.upload_receipt(exp["id"], jpeg_bytes, "a.jpg")
        assert first["receipt_path"] == f"receipts/{exp['id']}/a.jpg"
        assert first["receipt_url"]
        second = expenses.upload_receipt(exp["id"], jpeg_bytes, "../b.jpg")
        assert second["receipt_path"] == f"receipts/{exp['id']}/b.jpg"
        assert not storage.exists(first["receipt_path"])

    def test_delete_removes_receipt(self, sample_job, jpeg_bytes):
        exp = expenses.create_expense({"job_id": sample_job["id"], "category": "material", "amount": 5})
        path = expenses.upload_receipt(exp["id"], jpeg_bytes, "r.jpg")["receipt_path"]
        assert expenses.delete_expense(exp["id"])
        assert not storage.exists(path)
        assert not expenses.delete_expense(exp["id"])


# ═══════════════════════════════════════════════════════════════════════════════
# COSTING
# ═══════════════════════════════════════════════════════════════════════════════

class TestCosting:
    @pytest.mark.parametrize("margin,label", [
        (45, "Excellent"), (30, "Excellent"), (25, "Good"), (12.5, "Fair"),
        (0, "Low"), (-0.1, "Loss"),
    ])
    def test_profitability_bands(self, margin, label):
        assert costing.profitability_status(margin)["label"] == label

    def test_job_analysis(self, sample_job):
        jid = sample_job["id"]
        expenses.create_expense({"job_id": jid, "category": "material", "amount": 10000})
        expenses.create_expense({"job_id": jid, "category": "labor", "unit": "hour",
                                 "unit_cost": 40, "quantity": 50})
        expenses.create_expense({"job_id": jid, "category": "labor", "unit": "day",
                                 "unit_cost": 300, "quantity": 2})
        a = costing.get_job_analysis(jid)
        assert a["estimatedAmount"] == 24000
        assert a["totalExpenses"] == 12600
        assert a["profit"] == 11400
        assert a["profitMargin"] == 47.5
        assert a["labor"] == {"hours": 50, "days": 2, "cost": 2600}
        assert a["materials"] == {"cost": 10000, "items": 1}
        assert a["isProfitable"] is True
        assert a["status"]["label"] == "Excellent"

    def test_analysis_without_estimate(self):
        job = jobs.create_job({"title": "Warranty call"})
        expenses.create_expense({"job_id": job["id"], "category": "labor", "amount": 200})
        a = costing.get_job_analysis(job["id"])
        assert a["profitMargin"] == 0
        assert a["isProfitable"] is False

    def test_analysis_missing(self):
        assert costing.get_job_analysis("nope") is None

    def test_comparison_skips_missing(self, sample_job):
        rows = costing.get_job_comparison([sample_job["id"], "nope"])
        assert [r["id"] for r in rows] == [sample_job["id"]]
        assert rows[0]["client"] == "Keoni Kahale"

    def test_stats_empty(self):
        stats = costing.get_stats()
        assert stats["totalJobs"] == 0
        assert stats["avgJobValue"] == 0

    def test_stats_completed_jobs(self, sample_job):
        _completed_job("Shingle roof", 10000, spent=9500)
        _completed_job("Brava tile", 20000, spent=12000)
        _completed_job("Leaky", 5000, spent=6000)
        stats = costing.get_stats()
        assert stats["totalJobs"] == 3
        assert stats["totalRevenue"] == 35000
        assert stats["totalProfit"] == 7500
        assert stats["profitableJobs"] == 2
        assert stats["unprofitableJobs"] == 1
        assert stats["excellentMarginJobs"] == 1
        assert stats["lowMarginJobs"] == 1
        assert stats["byCategory"]["material"] == 27500

    def test_monthly_trends(self):
        _completed_job("This month", 8000, spent=2000)
        trends = costing.get_monthly_trends(3)
        assert len(trends) == 3
        assert trends[-1]["start"] == date.today().replace(day=1).isoformat()
        assert trends[-1]["revenue"] == 8000
        assert trends[0]["jobs"] == 0

    def test_default_estimate(self):
        est = costing.default_estimate("standing-seam", 2000)
        assert est["basedOn"] == 0
        assert est["estimatedMaterials"] == 17000
        assert est["estimatedLabor"] == 9000
        assert est["estimatedOther"] == 1500
        assert est["estimatedTotal"] == 27500
        assert est["suggestedPrice"] == pytest.approx(27500 / 0.75)

    def test_default_estimate_unknown_product(self):
        est = costing.default_estimate("copper", None)
        assert est["estimatedMaterials"] == 6.0 * costing.DEFAULT_SQFT

    def test_estimate_from_similar_jobs(self):
        _completed_job("Standing Seam - Ana", 20000, spent=12000)
        _completed_job("Standing Seam - Ben", 30000, spent=18000)
        _completed_job("Shingles - Cy", 9000, spent=1000)
        est = costing.estimate_job_cost("standing-seam")
        assert est["basedOn"] == 2
        assert est["estimatedMaterials"] == 15000
        assert est["avgMargin"] == 40
        assert est["suggestedPrice"] == pytest.approx(15000 / 0.6)

    def test_estimate_falls_back_to_defaults(self):
        assert costing.estimate_job_cost("brava", 1000)["basedOn"] == 0


# ═══════════════════════════════════════════════════════════════════════════════
# REPORTS
# ═══════════════════════════════════════════════════════════════════════════════

class TestReports:
    def test_revenue_by_month(self):
        _completed_job("Re-roof", 12000)
        jobs.create_job({"title": "Not done", "estimated_amount": 5000,
                         "scheduled_date": date.today().isoformat()})
        data = reports.revenue_by_month(6)
        assert len(data) == 6
        assert data[-1]["year"] == date.today().year
        assert data[-1]["revenue"] == 12000
        assert data[-1]["jobs"] == 1
        assert sum(m["revenue"] for m in data[:-1]) == 0

    def test_jobs_by_status(self, sample_job):
        rows = {r["status"]: r for r in reports.jobs_by_status()}
        assert list(rows) == ["pending", "scheduled", "in_progress", "completed"]
        assert rows["pending"]["count"] == 1
        assert rows["in_progress"]["label"] == "In Progress"

    @pytest.mark.parametrize("title,product", [
        ("Standing Seam - Ana", "Standing Seam"),
        ("standing-seam - Ben", "Standing Seam"),
        ("Metal roof", "Standing Seam"),
        ("Shingle repair", "Shingles"),
        ("Brava tile", "Brava"),
        ("Gutters", "Other"),
        (None, "Other"),
    ])
    def test_product_from_title(self, title, product):
        assert reports.product_from_title(title) == product

    def test_revenue_by_product_sorted(self):
        _completed_job("Shingles - A", 8000)
        _completed_job("Standing Seam - B", 30000)
        _completed_job("Shingles - C", 9000)
        rows = reports.revenue_by_product()
        assert [r["product"] for r in rows] == ["Standing Seam", "Shingles"]
        assert rows[1]["count"] == 2
        assert rows[0]["color"] == reports.PRODUCT_COLORS["Standing Seam"]

    def test_close_rate(self, sample_packet):
        packets.save_packet({"customer_name": "Unsigned"})
        signatures.save_signature(sample_packet["id"], "Keoni Kahale", SIGNATURE_PNG)
        rate = reports.close_rate()
        assert rate == {"totalPackets": 2, "signedPackets": 1, "unsignedPackets": 1,
                        "closeRate": 50.0}

    def test_close_rate_empty(self):
        assert reports.close_rate()["closeRate"] == 0

    def test_crew_utilization(self, sample_member):
        _completed_job("Big job", 1000, estimated_days=3, assigned_crew=[sample_member["id"]])
        jobs.create_job({"title": "Upcoming", "scheduled_date": date.today().isoformat(),
                         "assigned_crew": [sample_member["id"]]})
        today = date.today().isoformat()
        rows = reports.crew_utilization(today, today)
        assert rows[0]["id"] == sample_member["id"]
        assert rows[0]["jobsCompleted"] == 1
        assert rows[0]["daysWorked"] == 3
        assert all(r["daysWorked"] == 0 for r in rows[1:])

    @pytest.mark.parametrize("address,area", [
        ("123 Kailua Rd, Kailua, HI 96734", "Kailua"),
        ("9 EWA BEACH RD", "Ewa Beach"),
        ("1 Main St, Hilo", "Other"),
        (None, "Other"),
    ])
    def test_area_from_address(self, address, area):
        assert reports.area_from_address(address) == area

    def test_jobs_by_area(self, sample_job):
        jobs.create_job({"title": "x", "address": "5 Kapolei Pkwy", "estimated_amount": 100})
        jobs.create_job({"title": "y", "address": "Kailua Beach"})
        rows = reports.jobs_by_area()
        assert rows[0] == {"area": "Kailua", "count": 2, "revenue": 24000}
        assert {"area": "Kapolei", "count": 1, "revenue": 100} in rows

    def test_dashboard_stats(self, sample_job):
        stats = reports.dashboard_stats()
        assert stats["jobs"]["pending"] == 1
        assert stats["costing"]["totalJobs"] == 0
        assert stats["closeRate"]["totalPackets"] == 0

    def test_to_csv(self):
        text = reports.to_csv([
            {"name": "A, Jr.", "tags": ["x"], "note": None},
            {"name": "B", "tags": [], "note": "ok"},
        ])
        assert text.splitlines() == ['name,tags,note', '"A, Jr.","[""x""]",', 'B,[],ok']

    def test_to_csv_empty(self):
        assert reports.to_csv([]) == ""

    def test_every_export_is_callable(self):
        assert set(reports.EXPORTS) == {"revenue_by_month", "jobs_by_status", "revenue_by_product",
                                        "jobs_by_area", "crew_utilization"}
