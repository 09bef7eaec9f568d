# routes_portal.py
# Customer-facing portal: view a packet and sign it with a portal token.
# No staff auth here; every request carries a token from generate_portal_link().
# Loaded by dashboard.py via load_module()

import logging

from flask import request, send_file

from portal.agents import notify_agent
from portal.api.dashboard import bp, api_errors, ok, fail, not_found, body
from portal.core import storage
from portal.core.security import rate_limit
from portal.crm import clients, packets, signatures

log = logging.getLogger("lava.portal")


def _client_packet(client_id: str, packet_id: str = None) -> dict | None:
    """The named packet if it belongs to the client, else the client's latest."""
    if packet_id:
        packet = packets.get_packet(packet_id)
        if packet and packet["client_id"] == client_id:
            return packet
        return None
    history = clients.get_history(client_id)["packets"]
    return packets.get_packet(history[0]["id"]) if history else None


def _file_url(path: str, token: str) -> str:
    return f"/portal/files/{path}?token={token}"


def _for_customer(packet: dict, token: str) -> dict:
    """Point photo and estimate URLs at the token-checked file route."""
    packet = dict(packet)
    packet["photos"] = {slot: dict(photo, url=_file_url(photo["storage_path"], token))
                        for slot, photo in (packet.get("photos") or {}).items()}
    config = dict(packet.get("config") or {})
    estimate = config.get("estimate")
    if estimate and estimate.get("storage_path"):
        config["estimate"] = dict(estimate, url=_file_url(estimate["storage_path"], token))
    packet["config"] = config
    return packet


@bp.route("/portal/api/packet")
@rate_limit("default")
def portal_packet():
    token = notify_agent.validate_token(request.args.get("token"))
    if not token:
        return fail("This link is invalid or has expired", 401)
    packet = _client_packet(token["client_id"], request.args.get("packet"))
    if not packet:
        return not_found("Packet not found")
    return ok(packet=_for_customer(packet, token["token"]),
              client=clients.get_client(token["client_id"]),
              signature=signatures.get_for_packet(packet["id"]),
              can_sign=token["purpose"] == "signature")


@bp.route("/portal/api/sign", methods=["POST"])
@rate_limit("auth")
@api_errors
def portal_sign():
    data = body()
    token = notify_agent.validate_token(data.get("token"), purpose="signature")
    if not token:
        return fail("This signature link is invalid or has expired", 401)
    packet = _client_packet(token["client_id"], data.get("packet_id"))
    if not packet:
        return not_found("Packet not found")
    sig = signatures.save_signature(
        packet["id"], data.get("signer_name"), data.get("signature_data"),
        signer_email=data.get("signer_email"), client_id=token["client_id"],
        ip_address=request.headers.get("X-Forwarded-For", request.remote_addr),
        user_agent=request.headers.get("User-Agent"))
    log.info("Portal signature received", extra={"packet_id": packet["id"],
                                                "client_id": token["client_id"]})
    return ok(signature=sig), 201


@bp.route("/portal/files/<path:path>")
@rate_limit("default")
def portal_file(path):
    """Packet photos and estimates for the token's client; nothing else in the bucket."""
    token = notify_agent.validate_token(request.args.get("token"))
    if not token:
        return fail("This link is invalid or has expired", 401)
    parts = path.split("/")
    if len(parts) < 3 or parts[0] != "packets" or ".." in parts:
        return not_found("File not found")
    packet = packets.get_packet(parts[1])
    if not packet or packet["client_id"] != token["client_id"]:
        return not_found("File not found")
    try:
        full = storage.full_path(path)
    except ValueError:
        return not_found("File not found")
    if not storage.exists(path):
        return not_found("File not found")
    return send_file(full)
