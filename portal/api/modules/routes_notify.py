# routes_notify.py
# Email/SMS notifications and customer portal links.
# Loaded by dashboard.py via load_module()

from flask import request

from portal.agents import notify_agent
from portal.api.dashboard import bp, auth_required, api_errors, ok, fail, body


def _base_url() -> str:
    return request.host_url.rstrip("/")


def _result(result: dict):
    """Delivery results pass through; failed sends become a 502."""
    if result.get("ok"):
        return ok(**{k: v for k, v in result.items() if k != "ok"})
    if result.get("skipped"):
        return fail(result.get("error") or "Skipped", 409)
    return fail(result.get("error") or "Delivery failed", 502)


@bp.route("/api/notifications/templates")
@auth_required
def api_notify_templates():
    return ok(templates=notify_agent.list_templates())


@bp.route("/api/notifications/history")
@auth_required
def api_notify_history():
    args = request.args
    return ok(notifications=notify_agent.get_history(
        client_id=args.get("client_id"), job_id=args.get("job_id"), type=args.get("type"),
        limit=args.get("limit", 50, type=int)))


@bp.route("/api/notifications/email", methods=["POST"])
@auth_required
@api_errors
def api_notify_email():
    data = body()
    return _result(notify_agent.send_email(
        to=data.get("to"), template=data.get("template"), variables=data.get("variables"),
        subject=data.get("subject"), body=data.get("body"),
        client_id=data.get("client_id"), job_id=data.get("job_id"),
        packet_id=data.get("packet_id")))


@bp.route("/api/notifications/sms", methods=["POST"])
@auth_required
@api_errors
def api_notify_sms():
    data = body()
    return _result(notify_agent.send_sms(
        to=data.get("to"), template=data.get("template"), variables=data.get("variables"),
        message=data.get("message"), client_id=data.get("client_id"),
        job_id=data.get("job_id")))


@bp.route("/api/clients/<client_id>/portal-link", methods=["POST"])
@auth_required
@api_errors
def api_portal_link(client_id):
    purpose = body().get("purpose") or "portal"
    return ok(url=notify_agent.generate_portal_link(client_id, purpose, _base_url()))


@bp.route("/api/packets/<packet_id>/send", methods=["POST"])
@auth_required
@api_errors
def api_packet_send(packet_id):
    email = body().get("email")
    if not email:
        return fail("email is required")
    return _result(notify_agent.send_packet_email(packet_id, email, _base_url()))


@bp.route("/api/packets/<packet_id>/request-signature", methods=["POST"])
@auth_required
@api_errors
def api_packet_request_signature(packet_id):
    email = body().get("email")
    if not email:
        return fail("email is required")
    return _result(notify_agent.send_signature_request(packet_id, email, _base_url()))


@bp.route("/api/jobs/<job_id>/notify/scheduled", methods=["POST"])
@auth_required
@api_errors
def api_job_notify_scheduled(job_id):
    return _result(notify_agent.notify_job_scheduled(job_id))


@bp.route("/api/jobs/<job_id>/notify/complete", methods=["POST"])
@auth_required
@api_errors
def api_job_notify_complete(job_id):
    return _result(notify_agent.notify_job_complete(job_id))
