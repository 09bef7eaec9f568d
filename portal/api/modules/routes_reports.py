# routes_reports.py
# Read-only analytics and CSV export.
# Loaded by dashboard.py via load_module()

from flask import request, Response

from portal.api.dashboard import bp, auth_required, api_errors, ok, fail, not_found
from portal.crm import reports


@bp.route("/api/reports/revenue")
@auth_required
def api_report_revenue():
    return ok(data=reports.revenue_by_month(request.args.get("months", 12, type=int)))


@bp.route("/api/reports/jobs-by-status")
@auth_required
def api_report_jobs_by_status():
    return ok(data=reports.jobs_by_status())


@bp.route("/api/reports/products")
@auth_required
def api_report_products():
    return ok(data=reports.revenue_by_product())


@bp.route("/api/reports/close-rate")
@auth_required
def api_report_close_rate():
    return ok(data=reports.close_rate())


@bp.route("/api/reports/crew")
@auth_required
@api_errors
def api_report_crew():
    start, end = request.args.get("start"), request.args.get("end")
    if not start or not end:
        return fail("start and end are required")
    return ok(data=reports.crew_utilization(start, end))


@bp.route("/api/reports/areas")
@auth_required
def api_report_areas():
    return ok(data=reports.jobs_by_area())


@bp.route("/api/reports/summary")
@auth_required
def api_report_summary():
    return ok(data=reports.dashboard_stats())


@bp.route("/api/reports/export/<name>.csv")
@auth_required
def api_report_export(name):
    report = reports.EXPORTS.get(name)
    if not report:
        return not_found(f"Unknown report: {name}")
    if name == "crew_utilization":
        start, end = request.args.get("start"), request.args.get("end")
        if not start or not end:
            return fail("start and end are required")
        rows = report(start, end)
    else:
        rows = report()
    return Response(reports.to_csv(rows), mimetype="text/csv",
                    headers={"Content-Disposition": f"attachment; filename={name}.csv"})
