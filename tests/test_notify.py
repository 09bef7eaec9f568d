"""Tests for customer notifications and portal tokens."""

from datetime import datetime, timedelta, timezone

import pytest

from portal.agents import notify_agent
from portal.core.db import get_db
from portal.crm import clients, jobs

BASE = "https://portal.lavaroofing.test"


@pytest.fixture
def gmail(monkeypatch):
    """Email credentials set, SMTP replaced by a recorder."""
    monkeypatch.setenv("GMAIL_ADDRESS", "office@lavaroofing.test")
    monkeypatch.setenv("GMAIL_PASSWORD", "app-password")
    sent = []

    def fake_deliver(to, subject, body):
        sent.append({"to": to, "subject": subject, "body": body})
        return {"ok": True}

    monkeypatch.setattr(notify_agent, "_deliver_email", fake_deliver)
    return sent


@pytest.fixture
def twilio(monkeypatch):
    monkeypatch.setenv("TWILIO_ACCOUNT_SID", "AC123")
    monkeypatch.setenv("TWILIO_AUTH_TOKEN", "secret")
    monkeypatch.setenv("TWILIO_PHONE_NUMBER", "+18085550000")
    sent = []

    def fake_deliver(to, body):
        sent.append({"to": to, "body": body})
        return {"ok": True, "sid": "SM1"}

    monkeypatch.setattr(notify_agent, "_deliver_sms", fake_deliver)
    return sent


# ═══════════════════════════════════════════════════════════════════════════════
# TEMPLATES
# ═══════════════════════════════════════════════════════════════════════════════

class TestTemplates:
    def test_render_known_and_unknown(self):
        text = notify_agent.render("Hi {name}, see {url} {missing}", {"name": "Ana", "url": "x"})
        assert text == "Hi Ana, see x {missing}"

    def test_render_empty(self):
        assert notify_agent.render("", {"a": 1}) == ""
        assert notify_agent.render("plain") == "plain"

    def test_list_templates(self):
        templates = {t["id"]: t for t in notify_agent.list_templates()}
        assert set(templates) == set(notify_agent.TEMPLATES)
        assert templates["job_scheduled"]["name"] == "Job Scheduled"
        assert templates["packet_sent"]["preview"].endswith("...")


# ═══════════════════════════════════════════════════════════════════════════════
# EMAIL / SMS
# ═══════════════════════════════════════════════════════════════════════════════

class TestSending:
    def test_email_demo_mode(self):
        result = notify_agent.send_email("a@example.com", template="job_complete",
                                         variables={"customerName": "Ana"})
        assert result["ok"] and result["demo"]
        history = notify_agent.get_history()
        assert history[0]["status"] == "sent"
        assert history[0]["subject"] == "Your New Roof is Complete!"
        assert history[0]["body"].startswith("Hello Ana,")

    def test_email_requires_recipient(self):
        with pytest.raises(ValueError):
            notify_agent.send_email("", subject="x", body="y")

    def test_email_requires_content(self):
        with pytest.raises(ValueError):
            notify_agent.send_email("a@example.com")

    def test_custom_email_delivered(self, gmail):
        result = notify_agent.send_email("a@example.com", subject="Hi {n}", body="Body {n}",
                                         variables={"n": 1})
        assert result == {"ok": True, "id": result["id"]}
        assert gmail == [{"to": "a@example.com", "subject": "Hi 1", "body": "Body 1"}]

    def test_delivery_failure_recorded(self, monkeypatch, gmail):
        monkeypatch.setattr(notify_agent, "_deliver_email",
                            lambda to, subject, body: {"ok": False, "error": "SMTP down"})
        result = notify_agent.send_email("a@example.com", subject="s", body="b")
        assert result["ok"] is False
        row = notify_agent.get_history()[0]
        assert row["status"] == "failed"
        assert row["error_message"] == "SMTP down"
        assert row["sent_at"] is None

    def test_sms_truncated(self, twilio):
        result = notify_agent.send_sms("+18085551234", message="x" * 300)
        assert result["sid"] == "SM1"
        assert len(twilio[0]["body"]) == notify_agent.SMS_LIMIT
        assert twilio[0]["body"].endswith("...")

    def test_sms_demo_mode(self):
        result = notify_agent.send_sms("+18085551234", message="On our way")
        assert result["demo"] is True
        assert notify_agent.get_history(type="sms")[0]["body"] == "On our way"

    def test_sms_validation(self):
        with pytest.raises(ValueError):
            notify_agent.send_sms("", message="x")
        with pytest.raises(ValueError):
            notify_agent.send_sms("+1808")

    def test_history_filters(self, sample_client):
        notify_agent.send_email("a@example.com", subject="s", body="b", client_id=sample_client["id"])
        notify_agent.send_sms("+18085551234", message="m")
        assert len(notify_agent.get_history(client_id=sample_client["id"])) == 1
        assert len(notify_agent.get_history(type="email")) == 1
        assert len(notify_agent.get_history(limit=1)) == 1


# ═══════════════════════════════════════════════════════════════════════════════
# PORTAL TOKENS
# ═══════════════════════════════════════════════════════════════════════════════

class TestPortalTokens:
    def test_generate_and_validate(self, sample_client):
        url = notify_agent.generate_portal_link(sample_client["id"], base_url=BASE + "/")
        assert url.startswith(f"{BASE}/portal/?token=")
        token = url.split("token=")[1]
        row = notify_agent.validate_token(token)
        assert row["client_id"] == sample_client["id"]
        assert row["purpose"] == "portal"

    def test_marks_last_used(self, sample_client):
        token = notify_agent.generate_portal_link(sample_client["id"]).split("token=")[1]
        notify_agent.validate_token(token)
        with get_db() as conn:
            used = conn.execute("SELECT last_used_at FROM client_tokens WHERE token=?",
                                (token,)).fetchone()[0]
        assert used

    def test_purpose_must_match(self, sample_client):
        token = notify_agent.generate_portal_link(sample_client["id"], "portal").split("token=")[1]
        assert notify_agent.validate_token(token, "signature") is None
        assert notify_agent.validate_token(token, "portal") is not None

    def test_unknown_purpose(self, sample_client):
        with pytest.raises(ValueError):
            notify_agent.generate_portal_link(sample_client["id"], "admin")

    def test_expired(self, sample_client):
        token = notify_agent.generate_portal_link(sample_client["id"]).split("token=")[1]
        past = (datetime.now(timezone.utc) - timedelta(minutes=1)).isoformat(timespec="microseconds")
        with get_db() as conn:
            conn.execute("UPDATE client_tokens SET expires_at=? WHERE token=?", (past, token))
        assert notify_agent.validate_token(token) is None

    def test_invalid(self):
        assert notify_agent.validate_token("") is None
        assert notify_agent.validate_token("not-a-token") is None


# ═══════════════════════════════════════════════════════════════════════════════
# WORKFLOW HELPERS
# ═══════════════════════════════════════════════════════════════════════════════

class TestWorkflows:
    def test_packet_email(self, sample_packet, gmail):
        result = notify_agent.send_packet_email(sample_packet["id"], "k@example.com", base_url=BASE)
        assert result["ok"]
        assert "Hello Keoni Kahale" in gmail[0]["body"]
        assert f"{BASE}/portal/?token=" in gmail[0]["body"]
        row = notify_agent.get_history()[0]
        assert row["packet_id"] == sample_packet["id"]
        assert row["template"] == "packet_sent"

    def test_signature_request_link(self, sample_packet, gmail):
        notify_agent.send_signature_request(sample_packet["id"], "k@example.com", base_url=BASE)
        body = gmail[0]["body"]
        assert f"&packet={sample_packet['id']}" in body
        token = body.split("token=")[1].split("&")[0]
        assert notify_agent.validate_token(token, "signature")

    def test_packet_missing(self):
        with pytest.raises(LookupError):
            notify_agent.send_packet_email("nope", "k@example.com")

    def test_job_scheduled(self, sample_job, gmail):
        jobs.schedule(sample_job["id"], "2026-03-10")
        result = notify_agent.notify_job_scheduled(sample_job["id"])
        assert result["ok"]
        assert gmail[0]["to"] == "keoni@example.com"
        assert "scheduled for 2026-03-10" in gmail[0]["body"]
        assert notify_agent.get_history(job_id=sample_job["id"])[0]["template"] == "job_scheduled"

    def test_job_complete(self, sample_job, gmail):
        assert notify_agent.notify_job_complete(sample_job["id"])["ok"]
        assert gmail[0]["subject"] == "Your New Roof is Complete!"

    def test_job_client_without_email(self, sample_job):
        clients.update_client(sample_job["client_id"], {"email": ""})
        result = notify_agent.notify_job_scheduled(sample_job["id"])
        assert result["skipped"] is True
        assert notify_agent.get_history() == []

    def test_job_missing(self):
        with pytest.raises(LookupError):
            notify_agent.notify_job_complete("nope")
