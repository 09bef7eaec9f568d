"""
Shared pytest fixtures for the LAVA Roofing Portal test suite.

Every test gets its own DATA_DIR under tmp_path: a fresh SQLite database,
an empty storage bucket and an empty output folder. Nothing touches the
real data/ directory or the network.
"""
import io
import os
import base64
import pytest

from portal.core import db, paths, storage


# ── Isolated data directory ──

@pytest.fixture(autouse=True)
def temp_data_dir(tmp_path, monkeypatch):
    """Redirect the database, bucket, output and logs to an isolated tmp directory."""
    data = str(tmp_path / "data")
    dirs = {
        "STORAGE_DIR": os.path.join(data, "storage"),
        "OUTPUT_DIR": os.path.join(data, "output"),
        "LOG_DIR": os.path.join(data, "logs"),
    }
    for d in (data, *dirs.values()):
        os.makedirs(d, exist_ok=True)

    monkeypatch.setattr(paths, "DATA_DIR", data)
    for name, path in dirs.items():
        monkeypatch.setattr(paths, name, path)
    monkeypatch.setattr(paths, "DB_PATH", os.path.join(data, "lava.db"))
    monkeypatch.setattr(db, "DB_PATH", os.path.join(data, "lava.db"))
    monkeypatch.setattr(storage, "STORAGE_DIR", dirs["STORAGE_DIR"])

    monkeypatch.setenv("DISABLE_RATE_LIMIT", "true")
    # No integration credentials: OpenAI is unavailable, email/SMS run in demo mode
    for var in ("OPENAI_API_KEY", "TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN",
                "TWILIO_PHONE_NUMBER", "GMAIL_ADDRESS", "GMAIL_PASSWORD", "APP_PASSWORD",
                "DASH_USER", "PUBLIC_BASE_URL"):
        monkeypatch.delenv(var, raising=False)

    db.init_db()
    return data


# ── Clients ──

APP_PASSWORD = db.DEFAULT_APP_PASSWORD


def _basic_auth_header(user="lava", pw=APP_PASSWORD):
    creds = base64.b64encode(f"{user}:{pw}".encode()).decode()
    return {"Authorization": f"Basic {creds}"}


@pytest.fixture
def app(temp_data_dir):
    """The portal app built in testing mode: no log handlers, no startup secrets report."""
    from app import create_app
    return create_app(testing=True)


@pytest.fixture
def client(app):
    """Test client that sends staff Basic Auth on every request."""
    c = app.test_client()
    c.environ_base["HTTP_AUTHORIZATION"] = _basic_auth_header()["Authorization"]
    return c


@pytest.fixture
def anon_client(app):
    """No credentials: for the customer portal and 401 checks."""
    return app.test_client()


# ── Fixture files and records ──

def make_image(width=64, height=48, fmt="JPEG", color=(200, 80, 40)) -> bytes:
    from PIL import Image
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format=fmt)
    return buf.getvalue()


def make_pdf(text="Estimate total $18,500") -> bytes:
    from reportlab.lib.pagesizes import letter
    from reportlab.pdfgen import canvas
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    c.drawString(72, 700, text)
    c.showPage()
    c.save()
    return buf.getvalue()


@pytest.fixture
def jpeg_bytes():
    return make_image()


@pytest.fixture
def png_bytes():
    return make_image(fmt="PNG")


@pytest.fixture
def pdf_bytes():
    return make_pdf()


@pytest.fixture
def sample_client():
    from portal.crm import clients
    return clients.create_client({
        "name": "Keoni Kahale",
        "address": "123 Kailua Rd, Kailua, HI 96734",
        "phone": "808-555-0142",
        "email": "keoni@example.com",
    })


@pytest.fixture
def sample_packet(sample_client):
    """Saved packet for sample_client; returns the full packet dict."""
    from portal.crm import packets
    packet_id = packets.save_packet({
        "customer_name": sample_client["name"],
        "customer_address": sample_client["address"],
        "product_type": "standing-seam",
        "fields": {"customerName": sample_client["name"], "customerPhone": sample_client["phone"]},
        "client_id": sample_client["id"],
    })
    return packets.get_packet(packet_id)


@pytest.fixture
def sample_job(sample_client):
    from portal.crm import jobs
    return jobs.create_job({
        "client_id": sample_client["id"],
        "title": "Standing Seam Re-roof",
        "address": sample_client["address"],
        "estimated_amount": 24000,
    })


@pytest.fixture
def sample_member():
    from portal.crm import crew
    return crew.create_member({"name": "Kai Makoa", "role": "crew", "hourly_rate": 35})
