"""Customer signatures on packets (drawn on the portal, stored as a PNG data URL)."""

import logging

from portal.core.db import get_db, new_id, now_iso, row_to_dict
from portal.crm import clients

log = logging.getLogger("lava.signatures")


def save_signature(packet_id: str, signer_name: str, signature_data: str,
                   signer_email: str = None, client_id: str = None,
                   ip_address: str = None, user_agent: str = None) -> dict:
    signer_name = (signer_name or "").strip()
    if not signer_name:
        raise ValueError("Signer name is required")
    if not signature_data:
        raise ValueError("Please provide a signature")

    with get_db() as conn:
        packet = conn.execute("SELECT client_id FROM packets WHERE id=?", (packet_id,)).fetchone()
    if not packet:
        raise LookupError(f"Packet {packet_id} not found")
    client_id = client_id or packet["client_id"]

    sig_id = new_id()
    ts = now_iso()
    with get_db() as conn:
        conn.execute("""
            INSERT INTO signatures (id, packet_id, client_id, signer_name, signer_email,
                                    signature_data, ip_address, user_agent, signed_at, created_at)
            VALUES (?,?,?,?,?,?,?,?,?,?)
        """, (sig_id, packet_id, client_id, signer_name, signer_email, signature_data,
              ip_address, user_agent, ts, ts))
    log.info("Packet %s signed by %s", packet_id, signer_name,
             extra={"packet_id": packet_id, "client_id": client_id})
    clients.update_activity(client_id)
    return get_signature(sig_id)


def get_signature(signature_id: str) -> dict | None:
    with get_db() as conn:
        row = conn.execute("SELECT * FROM signatures WHERE id=?", (signature_id,)).fetchone()
    return row_to_dict(row)


def get_for_packet(packet_id: str) -> dict | None:
    """Most recent signature on a packet."""
    with get_db() as conn:
        row = conn.execute("""
            SELECT * FROM signatures WHERE packet_id=? ORDER BY signed_at DESC LIMIT 1
        """, (packet_id,)).fetchone()
    return row_to_dict(row)


def is_packet_signed(packet_id: str) -> bool:
    return get_for_packet(packet_id) is not None


def verify(signature_id: str) -> dict:
    sig = get_signature(signature_id)
    if not sig:
        return {"valid": False}
    return {
        "valid": True,
        "signature": sig,
        "signedAt": sig["signed_at"],
        "signerName": sig["signer_name"],
        "signerEmail": sig["signer_email"],
    }
