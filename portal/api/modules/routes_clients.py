# routes_clients.py
# Clients, home dashboard, and signature verification.
# Loaded by dashboard.py via load_module()

from flask import request

from portal.api.dashboard import bp, auth_required, api_errors, ok, not_found, body
from portal.crm import clients, dashboard, signatures


# ═══════════════════════════════════════════════════════════════════════════════
# Clients
# ═══════════════════════════════════════════════════════════════════════════════

@bp.route("/api/clients")
@auth_required
def api_clients_list():
    return ok(clients=clients.list_clients(request.args.get("search", "")))


@bp.route("/api/clients", methods=["POST"])
@auth_required
@api_errors
def api_clients_create():
    return ok(client=clients.create_client(body())), 201


@bp.route("/api/clients/<client_id>")
@auth_required
def api_client_get(client_id):
    client = clients.get_client(client_id)
    if not client:
        return not_found("Client not found")
    return ok(client=client)


@bp.route("/api/clients/<client_id>", methods=["PUT"])
@auth_required
@api_errors
def api_client_update(client_id):
    return ok(client=clients.update_client(client_id, body()))


@bp.route("/api/clients/<client_id>", methods=["DELETE"])
@auth_required
def api_client_delete(client_id):
    if not clients.delete_client(client_id):
        return not_found("Client not found")
    return ok()


@bp.route("/api/clients/<client_id>/history")
@auth_required
def api_client_history(client_id):
    if not clients.get_client(client_id):
        return not_found("Client not found")
    return ok(history=clients.get_history(client_id))


@bp.route("/api/clients/migrate", methods=["POST"])
@auth_required
def api_clients_migrate():
    """Link legacy packets/inspections to client rows."""
    return ok(**clients.migrate_existing_records())


# ═══════════════════════════════════════════════════════════════════════════════
# Dashboard
# ═══════════════════════════════════════════════════════════════════════════════

@bp.route("/api/dashboard/stats")
@auth_required
def api_dashboard_stats():
    return ok(stats=dashboard.get_stats())


@bp.route("/api/dashboard/activity")
@auth_required
def api_dashboard_activity():
    limit = request.args.get("limit", 10, type=int)
    return ok(activity=dashboard.get_recent_activity(limit))


# ═══════════════════════════════════════════════════════════════════════════════
# Signatures
# ═══════════════════════════════════════════════════════════════════════════════

@bp.route("/api/signatures/<signature_id>/verify")
@auth_required
def api_signature_verify(signature_id):
    return ok(**signatures.verify(signature_id))
