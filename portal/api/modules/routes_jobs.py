# routes_jobs.py
# Jobs, calendar, crew, expenses, and job costing.
# Loaded by dashboard.py via load_module()

from datetime import date

from flask import request

from portal.api.dashboard import (bp, auth_required, api_errors, ok, fail, not_found,
                                  body, uploaded_file)
from portal.core.security import rate_limit
from portal.crm import costing, crew, expenses, jobs, schedule


# ═══════════════════════════════════════════════════════════════════════════════
# Jobs
# ═══════════════════════════════════════════════════════════════════════════════

@bp.route("/api/jobs")
@auth_required
@api_errors
def api_jobs_list():
    args = request.args
    return ok(jobs=jobs.list_jobs(
        status=args.get("status"), client_id=args.get("client_id"),
        start_date=args.get("start"), end_date=args.get("end"),
        crew_member=args.get("crew")))


@bp.route("/api/jobs", methods=["POST"])
@auth_required
@api_errors
def api_jobs_create():
    return ok(job=jobs.create_job(body())), 201


@bp.route("/api/jobs/upcoming")
@auth_required
@api_errors
def api_jobs_upcoming():
    return ok(jobs=jobs.get_upcoming(request.args.get("days", 7, type=int)))


@bp.route("/api/jobs/stats")
@auth_required
def api_jobs_stats():
    return ok(stats=jobs.get_stats())


@bp.route("/api/jobs/<job_id>")
@auth_required
def api_job_get(job_id):
    job = jobs.get_job(job_id)
    if not job:
        return not_found("Job not found")
    job["crew"] = crew.get_for_job(job_id)
    return ok(job=job)


@bp.route("/api/jobs/<job_id>", methods=["PUT"])
@auth_required
@api_errors
def api_job_update(job_id):
    return ok(job=jobs.update_job(job_id, body()))


@bp.route("/api/jobs/<job_id>", methods=["DELETE"])
@auth_required
def api_job_delete(job_id):
    if not jobs.delete_job(job_id):
        return not_found("Job not found")
    return ok()


@bp.route("/api/jobs/<job_id>/status", methods=["POST"])
@auth_required
@api_errors
def api_job_status(job_id):
    return ok(job=jobs.update_status(job_id, body().get("status") or ""))


@bp.route("/api/jobs/<job_id>/schedule", methods=["POST"])
@auth_required
@api_errors
def api_job_schedule(job_id):
    data = body()
    if not data.get("date"):
        return fail("date is required")
    return ok(job=jobs.schedule(job_id, data["date"], data.get("time"), data.get("crew")))


@bp.route("/api/jobs/<job_id>/crew", methods=["POST"])
@auth_required
@api_errors
def api_job_assign_crew(job_id):
    return ok(job=jobs.assign_crew(job_id, body().get("crew") or []))


# ═══════════════════════════════════════════════════════════════════════════════
# Calendar
# ═══════════════════════════════════════════════════════════════════════════════

@bp.route("/api/calendar")
@auth_required
@api_errors
def api_calendar_month():
    today = date.today()
    return ok(calendar=schedule.get_month(
        request.args.get("year", today.year, type=int),
        request.args.get("month", today.month, type=int),
        crew=request.args.get("crew")))


@bp.route("/api/calendar/week")
@auth_required
@api_errors
def api_calendar_week():
    return ok(calendar=schedule.get_week(request.args.get("start"), crew=request.args.get("crew")))


@bp.route("/api/calendar/move", methods=["POST"])
@auth_required
@api_errors
def api_calendar_move():
    data = body()
    if not data.get("job_id") or not data.get("date"):
        return fail("job_id and date are required")
    return ok(job=schedule.move_job(data["job_id"], data["date"]))


@bp.route("/api/calendar/events", methods=["POST"])
@auth_required
@api_errors
def api_calendar_add_event():
    return ok(job=schedule.add_event(body())), 201


# ═══════════════════════════════════════════════════════════════════════════════
# Crew
# ═══════════════════════════════════════════════════════════════════════════════

@bp.route("/api/crew")
@auth_required
def api_crew_list():
    include_inactive = request.args.get("all", "").lower() in ("1", "true", "yes")
    return ok(crew=crew.list_crew(include_inactive), roles=crew.ROLES,
              colors=list(crew.COLOR_OPTIONS))


@bp.route("/api/crew", methods=["POST"])
@auth_required
@api_errors
def api_crew_create():
    return ok(member=crew.create_member(body())), 201


@bp.route("/api/crew/availability")
@auth_required
@api_errors
def api_crew_availability():
    start = request.args.get("start")
    end = request.args.get("end")
    if not start or not end:
        return fail("start and end are required")
    return ok(availability=crew.get_availability(start, end))


@bp.route("/api/crew/<member_id>")
@auth_required
def api_crew_get(member_id):
    member = crew.get_member(member_id)
    if not member:
        return not_found("Crew member not found")
    return ok(member=member)


@bp.route("/api/crew/<member_id>", methods=["PUT"])
@auth_required
@api_errors
def api_crew_update(member_id):
    return ok(member=crew.update_member(member_id, body()))


@bp.route("/api/crew/<member_id>", methods=["DELETE"])
@auth_required
def api_crew_delete(member_id):
    if not crew.delete_member(member_id):
        return not_found("Crew member not found")
    return ok()


# ═══════════════════════════════════════════════════════════════════════════════
# Expenses
# ═══════════════════════════════════════════════════════════════════════════════

@bp.route("/api/jobs/<job_id>/expenses")
@auth_required
def api_job_expenses(job_id):
    return ok(expenses=expenses.list_for_job(job_id), totals=expenses.get_totals_for_job(job_id))


@bp.route("/api/jobs/<job_id>/expenses", methods=["POST"])
@auth_required
@api_errors
def api_job_expense_create(job_id):
    return ok(expense=expenses.create_expense(dict(body(), job_id=job_id))), 201


@bp.route("/api/jobs/<job_id>/expenses/preset", methods=["POST"])
@auth_required
@api_errors
def api_job_expense_from_preset(job_id):
    data = body()
    if not data.get("preset_id"):
        return fail("preset_id is required")
    expense = expenses.create_from_preset(job_id, data["preset_id"],
                                          float(data.get("quantity") or 1))
    return ok(expense=expense), 201


@bp.route("/api/expenses/presets")
@auth_required
def api_expense_presets():
    return ok(presets=expenses.get_presets(request.args.get("category")),
              categories=expenses.CATEGORIES, units=list(expenses.UNITS))


@bp.route("/api/expenses/<expense_id>", methods=["PUT"])
@auth_required
@api_errors
def api_expense_update(expense_id):
    return ok(expense=expenses.update_expense(expense_id, body()))


@bp.route("/api/expenses/<expense_id>", methods=["DELETE"])
@auth_required
def api_expense_delete(expense_id):
    if not expenses.delete_expense(expense_id):
        return not_found("Expense not found")
    return ok()


@bp.route("/api/expenses/<expense_id>/receipt", methods=["POST"])
@auth_required
@rate_limit("upload")
@api_errors
def api_expense_receipt(expense_id):
    upload = uploaded_file("file")
    if not upload:
        return fail("No receipt uploaded")
    data, filename, _mime = upload
    return ok(expense=expenses.upload_receipt(expense_id, data, filename))


# ═══════════════════════════════════════════════════════════════════════════════
# Job costing
# ═══════════════════════════════════════════════════════════════════════════════

@bp.route("/api/costing/jobs/<job_id>")
@auth_required
def api_costing_job(job_id):
    analysis = costing.get_job_analysis(job_id)
    if not analysis:
        return not_found("Job not found")
    return ok(analysis=analysis)


@bp.route("/api/costing/compare")
@auth_required
def api_costing_compare():
    ids = [i for i in (request.args.get("ids") or "").split(",") if i]
    return ok(jobs=costing.get_job_comparison(ids))


@bp.route("/api/costing/stats")
@auth_required
@api_errors
def api_costing_stats():
    return ok(stats=costing.get_stats(request.args.get("start"), request.args.get("end")))


@bp.route("/api/costing/trends")
@auth_required
@api_errors
def api_costing_trends():
    return ok(trends=costing.get_monthly_trends(request.args.get("months", 6, type=int)))


@bp.route("/api/costing/estimate")
@auth_required
def api_costing_estimate():
    return ok(estimate=costing.estimate_job_cost(
        request.args.get("product", ""), request.args.get("sqft", type=float)))
