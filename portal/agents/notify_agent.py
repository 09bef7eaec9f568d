"""
notify_agent.py — Customer email + SMS notifications for LAVA Roofing

CHANNELS:
  1. Email — Gmail SMTP from GMAIL_ADDRESS (app password in GMAIL_PASSWORD)
  2. SMS   — Twilio from TWILIO_PHONE_NUMBER

Every send is logged to the notifications table first as 'pending', then
marked 'sent' or 'failed'. With no credentials configured the send is
skipped and logged as sent with demo=True, so the rest of the flow can be
exercised locally.

PORTAL LINKS:
  generate_portal_link() mints a random token (client_tokens table, 30 days)
  and returns {base}/portal/?token=... . validate_token() is what the
  customer-facing /portal routes use in place of the staff password.
"""

import re
import uuid
import logging
from datetime import datetime, timedelta, timezone

from portal.core.db import get_db, new_id, now_iso, row_to_dict, rows_to_dicts
from portal.core.secrets import get_key

log = logging.getLogger("lava.notify")

TOKEN_TTL_DAYS = 30
SMS_LIMIT = 160
TOKEN_PURPOSES = ("portal", "signature")

_SIGNOFF = "Best regards,\nLAVA Roofing Team"

TEMPLATES = {
    "packet_sent": {
        "subject": "Your LAVA Roofing Proposal",
        "body": ("Hello {customerName},\n\nYour roofing proposal is ready for review.\n\n"
                 "You can view it here: {packetUrl}\n\n"
                 "If you have any questions, please call us at (808) 555-LAVA.\n\n" + _SIGNOFF),
    },
    "inspection_complete": {
        "subject": "Your Roof Inspection Report",
        "body": ("Hello {customerName},\n\nYour roof inspection has been completed. "
                 "You can view the full report here: {inspectionUrl}\n\n"
                 "If you would like to discuss the findings or schedule repairs, "
                 "please contact us.\n\n" + _SIGNOFF),
    },
    "job_scheduled": {
        "subject": "Your Roofing Job is Scheduled",
        "body": ("Hello {customerName},\n\nGreat news! Your roofing project has been "
                 "scheduled for {scheduledDate}.\n\n"
                 "Our crew will arrive between 7:00-8:00 AM. Please ensure the work area "
                 "is accessible.\n\n"
                 "If you need to reschedule, please contact us at least 48 hours in advance.\n\n"
                 + _SIGNOFF),
    },
    "job_starting": {
        "subject": "Your Roofing Job Starts Tomorrow",
        "body": ("Hello {customerName},\n\nThis is a reminder that our crew will arrive "
                 "tomorrow morning to begin your roofing project.\n\n"
                 "Please ensure:\n- Vehicles are moved away from the work area\n"
                 "- Pets are secured\n- Any fragile items near the work area are protected\n\n"
                 "If you have any questions, please call us.\n\n" + _SIGNOFF),
    },
    "job_complete": {
        "subject": "Your New Roof is Complete!",
        "body": ("Hello {customerName},\n\nCongratulations! Your roofing project has been "
                 "completed.\n\nWarranty Information:\n- Manufacturer warranty: 30 years\n"
                 "- Workmanship warranty: 10 years\n\n"
                 "Please inspect your new roof and let us know if you have any questions.\n\n"
                 "Thank you for choosing LAVA Roofing!\n\n" + _SIGNOFF),
    },
    "signature_request": {
        "subject": "Please Sign Your LAVA Roofing Proposal",
        "body": ("Hello {customerName},\n\nYour roofing proposal is ready for your signature.\n\n"
                 "Please click here to review and sign: {signatureUrl}\n\n"
                 "This link expires in 30 days.\n\n"
                 "If you have any questions before signing, please call us.\n\n" + _SIGNOFF),
    },
}


def render(text: str, variables: dict = None) -> str:
    """Replace {name} placeholders. Unknown placeholders are left as-is."""
    if not text:
        return ""
    variables = variables or {}
    return re.sub(r"\{(\w+)\}",
                  lambda m: str(variables[m.group(1)]) if m.group(1) in variables else m.group(0),
                  text)


def list_templates() -> list:
    return [{
        "id": key,
        "name": key.replace("_", " ").title(),
        "subject": t["subject"],
        "preview": t["body"][:100] + "...",
    } for key, t in TEMPLATES.items()]


# ══════════════════════════════════════════════════════════════════════════════
# Delivery
# ══════════════════════════════════════════════════════════════════════════════

def _email_configured() -> bool:
    return bool(get_key("gmail_address") and get_key("gmail_password"))


def _sms_configured() -> bool:
    return bool(get_key("twilio_sid") and get_key("twilio_token") and get_key("twilio_phone"))


def _deliver_email(to: str, subject: str, body: str) -> dict:
    """Send one plain-text email via Gmail SMTP."""
    sender = get_key("gmail_address")
    try:
        import smtplib
        from email.mime.multipart import MIMEMultipart
        from email.mime.text import MIMEText

        msg = MIMEMultipart("alternative")
        msg["From"] = f"LAVA Roofing <{sender}>"
        msg["To"] = to
        msg["Subject"] = subject
        msg.attach(MIMEText(body, "plain"))

        with smtplib.SMTP("smtp.gmail.com", 587, timeout=30) as server:
            server.starttls()
            server.login(sender, get_key("gmail_password"))
            server.send_message(msg)
        log.info("Email sent: %s → %s", subject[:50], to)
        return {"ok": True}
    except Exception as e:
        log.warning("Email to %s failed: %s", to, e)
        return {"ok": False, "error": str(e)}


def _deliver_sms(to: str, body: str) -> dict:
    """Send one SMS via Twilio."""
    try:
        from twilio.rest import Client
        client = Client(get_key("twilio_sid"), get_key("twilio_token"))
        msg = client.messages.create(body=body, from_=get_key("twilio_phone"), to=to)
        log.info("SMS sent → %s (SID: %s)", to, msg.sid)
        return {"ok": True, "sid": msg.sid}
    except Exception as e:
        log.warning("SMS to %s failed: %s", to, e)
        return {"ok": False, "error": str(e)}


def _log_notification(kind, template, recipient, subject, body,
                      client_id=None, job_id=None, packet_id=None) -> str:
    notification_id = new_id()
    with get_db() as conn:
        conn.execute("""
            INSERT INTO notifications (id, client_id, job_id, packet_id, type, template,
                                       recipient, subject, body, status, created_at)
            VALUES (?,?,?,?,?,?,?,?,?, 'pending', ?)
        """, (notification_id, client_id, job_id, packet_id, kind, template,
              recipient, subject, body, now_iso()))
    return notification_id


def update_status(notification_id: str, status: str, error: str = None) -> None:
    with get_db() as conn:
        conn.execute("""
            UPDATE notifications SET status=?, sent_at=?, error_message=? WHERE id=?
        """, (status, now_iso() if status == "sent" else None, error, notification_id))


def send_email(to: str, template: str = None, variables: dict = None, subject: str = None,
               body: str = None, client_id: str = None, job_id: str = None,
               packet_id: str = None) -> dict:
    """Send a templated or custom email. Raises ValueError without a recipient."""
    if not to:
        raise ValueError("Email recipient is required")
    tpl = TEMPLATES.get(template) or {"subject": subject or "", "body": body or ""}
    subject = render(tpl["subject"], variables)
    body = render(tpl["body"], variables)
    if not subject and not body:
        raise ValueError("Message template or content required")

    notification_id = _log_notification("email", template, to, subject, body,
                                        client_id, job_id, packet_id)
    if not _email_configured():
        log.info("Email (demo mode, not sent): %s → %s", subject[:50], to)
        update_status(notification_id, "sent")
        return {"ok": True, "id": notification_id, "demo": True}

    result = _deliver_email(to, subject, body)
    if result.get("ok"):
        update_status(notification_id, "sent")
        return {"ok": True, "id": notification_id}
    update_status(notification_id, "failed", result.get("error"))
    return {"ok": False, "id": notification_id, "error": result.get("error")}


def send_sms(to: str, template: str = None, variables: dict = None, message: str = None,
             client_id: str = None, job_id: str = None) -> dict:
    if not to:
        raise ValueError("Phone number is required")
    text = (TEMPLATES.get(template) or {}).get("body") or message
    if not text:
        raise ValueError("Message template or content required")
    text = render(text, variables)
    if len(text) > SMS_LIMIT:
        text = text[:SMS_LIMIT - 3] + "..."

    notification_id = _log_notification("sms", template, to, None, text, client_id, job_id)
    if not _sms_configured():
        log.info("SMS (demo mode, not sent) → %s", to)
        update_status(notification_id, "sent")
        return {"ok": True, "id": notification_id, "demo": True}

    result = _deliver_sms(to, text)
    if result.get("ok"):
        update_status(notification_id, "sent")
        return {"ok": True, "id": notification_id, "sid": result.get("sid")}
    update_status(notification_id, "failed", result.get("error"))
    return {"ok": False, "id": notification_id, "error": result.get("error")}


def get_history(client_id: str = None, job_id: str = None, type: str = None,
                limit: int = 50) -> list:
    sql = "SELECT * FROM notifications WHERE 1=1"
    params = []
    for col, val in (("client_id", client_id), ("job_id", job_id), ("type", type)):
        if val:
            sql += f" AND {col}=?"
            params.append(val)
    sql += " ORDER BY created_at DESC LIMIT ?"
    params.append(limit)
    with get_db() as conn:
        return rows_to_dicts(conn.execute(sql, params).fetchall())


# ══════════════════════════════════════════════════════════════════════════════
# Portal tokens
# ══════════════════════════════════════════════════════════════════════════════

def _base_url(base_url: str = None) -> str:
    return (base_url or get_key("public_base_url") or "").rstrip("/")


def generate_portal_link(client_id: str, purpose: str = "portal", base_url: str = None) -> str:
    if purpose not in TOKEN_PURPOSES:
        raise ValueError(f"Unknown token purpose: {purpose}")
    token = str(uuid.uuid4())
    expires = datetime.now(timezone.utc) + timedelta(days=TOKEN_TTL_DAYS)
    with get_db() as conn:
        conn.execute("""
            INSERT INTO client_tokens (id, client_id, token, purpose, expires_at, created_at)
            VALUES (?,?,?,?,?,?)
        """, (new_id(), client_id, token, purpose,
              expires.isoformat(timespec="microseconds"), now_iso()))
    log.info("Portal link issued (%s)", purpose, extra={"client_id": client_id})
    return f"{_base_url(base_url)}/portal/?token={token}"


def validate_token(token: str, purpose: str = None) -> dict | None:
    """The token row if it exists, is unexpired and matches purpose. Marks it used."""
    if not token:
        return None
    with get_db() as conn:
        row = conn.execute("SELECT * FROM client_tokens WHERE token=?", (token,)).fetchone()
        if not row or row["expires_at"] <= now_iso():
            return None
        if purpose and row["purpose"] != purpose:
            return None
        conn.execute("UPDATE client_tokens SET last_used_at=? WHERE id=?", (now_iso(), row["id"]))
    return row_to_dict(row)


# ══════════════════════════════════════════════════════════════════════════════
# Workflow helpers
# ══════════════════════════════════════════════════════════════════════════════

def _packet(packet_id: str) -> dict:
    with get_db() as conn:
        row = conn.execute(
            "SELECT id, client_id, customer_name FROM packets WHERE id=?", (packet_id,)).fetchone()
    if not row:
        raise LookupError(f"Packet {packet_id} not found")
    return dict(row)


def send_packet_email(packet_id: str, email: str, base_url: str = None) -> dict:
    packet = _packet(packet_id)
    url = generate_portal_link(packet["client_id"], "portal", base_url)
    return send_email(
        to=email, template="packet_sent",
        variables={"customerName": packet["customer_name"] or "Valued Customer", "packetUrl": url},
        client_id=packet["client_id"], packet_id=packet_id,
    )


def send_signature_request(packet_id: str, email: str, base_url: str = None) -> dict:
    packet = _packet(packet_id)
    url = generate_portal_link(packet["client_id"], "signature", base_url) + f"&packet={packet_id}"
    return send_email(
        to=email, template="signature_request",
        variables={"customerName": packet["customer_name"] or "Valued Customer", "signatureUrl": url},
        client_id=packet["client_id"], packet_id=packet_id,
    )


def _job_with_client(job_id: str) -> dict:
    with get_db() as conn:
        row = conn.execute("""
            SELECT j.id, j.client_id, j.scheduled_date, c.name AS client_name, c.email AS client_email
            FROM jobs j LEFT JOIN clients c ON c.id = j.client_id WHERE j.id=?
        """, (job_id,)).fetchone()
    if not row:
        raise LookupError(f"Job {job_id} not found")
    return dict(row)


def notify_job_scheduled(job_id: str) -> dict:
    job = _job_with_client(job_id)
    if not job["client_email"]:
        return {"ok": False, "skipped": True, "error": "Client has no email on file"}
    return send_email(
        to=job["client_email"], template="job_scheduled",
        variables={"customerName": job["client_name"] or "Valued Customer",
                   "scheduledDate": job["scheduled_date"] or "a date to be confirmed"},
        client_id=job["client_id"], job_id=job_id,
    )


def notify_job_complete(job_id: str) -> dict:
    job = _job_with_client(job_id)
    if not job["client_email"]:
        return {"ok": False, "skipped": True, "error": "Client has no email on file"}
    return send_email(
        to=job["client_email"], template="job_complete",
        variables={"customerName": job["client_name"] or "Valued Customer"},
        client_id=job["client_id"], job_id=job_id,
    )
