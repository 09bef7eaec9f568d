"""
portal/core/db.py — Persistent SQLite Database Layer

Every portal record lives in one SQLite file at DATA_DIR/lava.db.
WAL mode lets the two gunicorn workers read while one writes.

TABLES:
  settings           — key/value app settings (app_password)
  clients            — CRM customers, the hub every other record links to
  packets            — proposal packets (fields + config JSON)
  packet_photos      — one photo per packet slot
  inspections        — roof inspection reports
  inspection_photos  — categorized inspection photos
  media              — every uploaded file (photos, video, audio, documents)
  team_members       — crew roster for scheduling
  jobs               — scheduled work, optionally created from a packet
  voice_memos        — recorded notes with transcripts
  expenses           — per-job costs
  material_presets   — common roofing line items for quick expense entry
  notifications      — outbound email/SMS log
  client_tokens      — customer portal / signature links
  signatures         — signed packets
"""

import os
import json
import uuid
import sqlite3
import logging
import threading
from datetime import datetime, timezone
from contextlib import contextmanager

from portal.core.paths import DB_PATH

log = logging.getLogger("lava.db")

_db_lock = threading.Lock()


# ── Connection factory ────────────────────────────────────────────────────────
@contextmanager
def get_db():
    """Thread-safe SQLite connection with WAL mode for 2-worker gunicorn."""
    with _db_lock:
        os.makedirs(os.path.dirname(DB_PATH), exist_ok=True)
        conn = sqlite3.connect(DB_PATH, timeout=30, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.execute("PRAGMA foreign_keys=ON")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()


# ── Schema ────────────────────────────────────────────────────────────────────
SCHEMA = """
CREATE TABLE IF NOT EXISTS settings (
    key         TEXT PRIMARY KEY,
    value       TEXT,
    updated_at  TEXT
);

CREATE TABLE IF NOT EXISTS clients (
    id                 TEXT PRIMARY KEY,
    name               TEXT NOT NULL,
    address            TEXT,
    phone              TEXT,
    email              TEXT,
    notes              TEXT,
    tags               TEXT DEFAULT '[]',   -- JSON array
    total_packets      INTEGER DEFAULT 0,
    total_inspections  INTEGER DEFAULT 0,
    total_media        INTEGER DEFAULT 0,
    last_activity_at   TEXT,
    created_at         TEXT NOT NULL,
    updated_at         TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_clients_name ON clients(name);

CREATE TABLE IF NOT EXISTS packets (
    id                TEXT PRIMARY KEY,
    client_id         TEXT REFERENCES clients(id) ON DELETE SET NULL,
    customer_name     TEXT,
    customer_address  TEXT,
    product_type      TEXT DEFAULT 'standing-seam',
    fields            TEXT DEFAULT '{}',    -- JSON: editable text fields
    config            TEXT DEFAULT '{}',    -- JSON: enabled pages, estimate, eagleview
    created_at        TEXT NOT NULL,
    updated_at        TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_packets_updated ON packets(updated_at);

CREATE TABLE IF NOT EXISTS packet_photos (
    id            TEXT PRIMARY KEY,
    packet_id     TEXT NOT NULL REFERENCES packets(id) ON DELETE CASCADE,
    slot_id       TEXT NOT NULL,
    storage_path  TEXT NOT NULL,
    position      TEXT DEFAULT '{"x": 50, "y": 50}',
    zoom          REAL DEFAULT 1,
    created_at    TEXT NOT NULL,
    updated_at    TEXT NOT NULL,
    UNIQUE(packet_id, slot_id)
);

CREATE TABLE IF NOT EXISTS inspections (
    id                TEXT PRIMARY KEY,
    client_id         TEXT REFERENCES clients(id) ON DELETE SET NULL,
    customer_name     TEXT,
    customer_address  TEXT,
    customer_phone    TEXT,
    customer_email    TEXT,
    inspection_date   TEXT,
    inspector_name    TEXT,
    concerns          TEXT DEFAULT '{}',
    roof              TEXT DEFAULT '{}',
    findings          TEXT DEFAULT '{}',
    recommendation    TEXT DEFAULT '{}',
    wrapup            TEXT DEFAULT '{}',
    status            TEXT DEFAULT 'draft',
    created_at        TEXT NOT NULL,
    updated_at        TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS inspection_photos (
    id             TEXT PRIMARY KEY,
    inspection_id  TEXT NOT NULL REFERENCES inspections(id) ON DELETE CASCADE,
    category       TEXT NOT NULL,
    storage_path   TEXT NOT NULL,
    caption        TEXT,
    created_at     TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS media (
    id            TEXT PRIMARY KEY,
    client_id     TEXT REFERENCES clients(id) ON DELETE SET NULL,
    storage_path  TEXT NOT NULL,
    public_url    TEXT,
    filename      TEXT,
    file_type     TEXT,                  -- image|video|document|audio
    mime_type     TEXT,
    size_bytes    INTEGER,
    linked_type   TEXT DEFAULT 'general',-- packet|inspection|repair|general
    linked_id     TEXT,
    slot          TEXT,
    position      TEXT DEFAULT '{"x": 50, "y": 50}',
    zoom          REAL DEFAULT 1,
    caption       TEXT,
    tags          TEXT DEFAULT '[]',
    address       TEXT,
    created_at    TEXT NOT NULL,
    updated_at    TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_media_linked ON media(linked_type, linked_id);
CREATE INDEX IF NOT EXISTS idx_media_address ON media(address);

CREATE TABLE IF NOT EXISTS team_members (
    id           TEXT PRIMARY KEY,
    name         TEXT NOT NULL,
    phone        TEXT,
    email        TEXT,
    role         TEXT DEFAULT 'crew',     -- admin|crew|sales
    color        TEXT DEFAULT '#3b82f6',
    hourly_rate  REAL DEFAULT 0,
    active       INTEGER DEFAULT 1,
    created_at   TEXT NOT NULL,
    updated_at   TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS jobs (
    id                 TEXT PRIMARY KEY,
    packet_id          TEXT REFERENCES packets(id) ON DELETE SET NULL,
    client_id          TEXT REFERENCES clients(id) ON DELETE SET NULL,
    title              TEXT,
    type               TEXT DEFAULT 'job',
    status             TEXT DEFAULT 'pending',
    scheduled_date     TEXT,
    scheduled_time     TEXT,
    duration_hours     REAL,
    estimated_days     INTEGER DEFAULT 1,
    actual_start_date  TEXT,
    actual_end_date    TEXT,
    assigned_crew      TEXT DEFAULT '[]',  -- JSON array of team_member ids
    estimated_amount   REAL,
    notes              TEXT,
    address            TEXT,
    created_at         TEXT NOT NULL,
    updated_at         TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_jobs_status ON jobs(status);
CREATE INDEX IF NOT EXISTS idx_jobs_scheduled_date ON jobs(scheduled_date);

CREATE TABLE IF NOT EXISTS voice_memos (
    id                TEXT PRIMARY KEY,
    client_id         TEXT REFERENCES clients(id) ON DELETE SET NULL,
    job_id            TEXT REFERENCES jobs(id) ON DELETE SET NULL,
    storage_path      TEXT,
    audio_url         TEXT,
    transcript        TEXT,
    duration_seconds  INTEGER,
    recorded_by       TEXT,
    created_at        TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS expenses (
    id           TEXT PRIMARY KEY,
    job_id       TEXT NOT NULL REFERENCES jobs(id) ON DELETE CASCADE,
    category     TEXT NOT NULL,
    description  TEXT,
    amount       REAL NOT NULL DEFAULT 0,   -- line total
    quantity     REAL DEFAULT 1,
    unit         TEXT DEFAULT 'each',
    unit_cost    REAL,
    receipt_path TEXT,
    receipt_url  TEXT,
    vendor       TEXT,
    date         TEXT,
    created_at   TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_expenses_job_id ON expenses(job_id);

CREATE TABLE IF NOT EXISTS material_presets (
    id            TEXT PRIMARY KEY,
    name          TEXT NOT NULL,
    category      TEXT DEFAULT 'material',
    unit          TEXT DEFAULT 'each',
    default_cost  REAL,
    active        INTEGER DEFAULT 1,
    created_at    TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS notifications (
    id             TEXT PRIMARY KEY,
    client_id      TEXT REFERENCES clients(id) ON DELETE SET NULL,
    job_id         TEXT REFERENCES jobs(id) ON DELETE SET NULL,
    packet_id      TEXT REFERENCES packets(id) ON DELETE SET NULL,
    type           TEXT NOT NULL,           -- email|sms
    template       TEXT,
    recipient      TEXT,
    subject        TEXT,
    body           TEXT,
    status         TEXT DEFAULT 'pending',  -- pending|sent|failed
    error_message  TEXT,
    sent_at        TEXT,
    created_at     TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_notifications_created ON notifications(created_at);

CREATE TABLE IF NOT EXISTS client_tokens (
    id            TEXT PRIMARY KEY,
    client_id     TEXT REFERENCES clients(id) ON DELETE CASCADE,
    token         TEXT UNIQUE NOT NULL,
    purpose       TEXT DEFAULT 'portal',    -- portal|signature
    expires_at    TEXT NOT NULL,
    last_used_at  TEXT,
    created_at    TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS signatures (
    id              TEXT PRIMARY KEY,
    packet_id       TEXT NOT NULL REFERENCES packets(id) ON DELETE CASCADE,
    client_id       TEXT REFERENCES clients(id) ON DELETE SET NULL,
    signer_name     TEXT NOT NULL,
    signer_email    TEXT,
    signature_data  TEXT,                   -- base64 PNG data URL
    ip_address      TEXT,
    user_agent      TEXT,
    signed_at       TEXT NOT NULL,
    created_at      TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_signatures_packet_id ON signatures(packet_id);

CREATE VIEW IF NOT EXISTS job_summary AS
SELECT
    j.*,
    c.name  AS client_name,
    c.phone AS client_phone,
    c.email AS client_email,
    COALESCE(SUM(e.amount), 0) AS total_expenses,
    COALESCE(j.estimated_amount, 0) - COALESCE(SUM(e.amount), 0) AS profit,
    CASE
        WHEN COALESCE(j.estimated_amount, 0) > 0
        THEN ROUND((COALESCE(j.estimated_amount, 0) - COALESCE(SUM(e.amount), 0))
                   / j.estimated_amount * 100, 1)
        ELSE 0
    END AS profit_margin
FROM jobs j
LEFT JOIN clients c ON j.client_id = c.id
LEFT JOIN expenses e ON e.job_id = j.id
GROUP BY j.id;
"""

DEFAULT_APP_PASSWORD = "lavaroofing"

SEED_TEAM = [
    ("Brad Arakaki", "808-555-0101", "admin", "#ef4444"),
    ("Mike Johnson", "808-555-0102", "crew", "#3b82f6"),
    ("David Lee", "808-555-0103", "crew", "#22c55e"),
    ("Chris Wong", "808-555-0104", "crew", "#f59e0b"),
]

SEED_PRESETS = [
    ("Standing Seam Panel (24ga)", "material", "sqft", 8.50),
    ("Underlayment (synthetic)", "material", "sqft", 0.35),
    ("Ice & Water Shield", "material", "sqft", 1.25),
    ("Ridge Cap", "material", "lnft", 12.00),
    ("Flashing (aluminum)", "material", "lnft", 4.50),
    ("Fasteners (box)", "material", "box", 45.00),
    ("Sealant (tube)", "material", "tube", 8.00),
    ("Shingle Bundle (Architectural)", "material", "bundle", 35.00),
    ("Brava Tile", "material", "sqft", 12.00),
    ("Pipe Boot", "material", "each", 25.00),
    ("Skylight Flashing Kit", "material", "each", 150.00),
    ("Dumpster Rental", "equipment", "day", 450.00),
    ("Scaffold Rental", "equipment", "week", 200.00),
    ("Crane Service", "equipment", "day", 1200.00),
    ("Permit Fee", "permit", "each", 350.00),
]

# Columns stored as JSON text, decoded by row_to_dict
JSON_COLUMNS = {
    "tags", "fields", "config", "position", "assigned_crew",
    "concerns", "roof", "findings", "recommendation", "wrapup",
}

TABLES = ("clients", "packets", "packet_photos", "inspections", "inspection_photos",
          "media", "team_members", "jobs", "voice_memos", "expenses",
          "material_presets", "notifications", "client_tokens", "signatures")


def init_db():
    """Create all tables and seed defaults. Safe to call on every boot."""
    with get_db() as conn:
        conn.executescript(SCHEMA)
        ts = now_iso()
        # app_password stays unset until changed; auth falls back to APP_PASSWORD

        if conn.execute("SELECT COUNT(*) FROM team_members").fetchone()[0] == 0:
            conn.executemany("""
                INSERT INTO team_members (id, name, phone, role, color, created_at, updated_at)
                VALUES (?,?,?,?,?,?,?)
            """, [(new_id(), n, p, r, c, ts, ts) for n, p, r, c in SEED_TEAM])

        if conn.execute("SELECT COUNT(*) FROM material_presets").fetchone()[0] == 0:
            conn.executemany("""
                INSERT INTO material_presets (id, name, category, unit, default_cost, created_at)
                VALUES (?,?,?,?,?,?)
            """, [(new_id(), n, cat, u, cost, ts) for n, cat, u, cost in SEED_PRESETS])
    log.info("DB initialized at %s", DB_PATH)


def startup() -> dict:
    """Boot-time init. Returns db path and row counts for the startup log."""
    init_db()
    return {"db_path": DB_PATH, "stats": get_db_stats()}


def get_db_stats() -> dict:
    """Row counts per table, for /api/health and the startup log."""
    stats = {}
    with get_db() as conn:
        for table in TABLES:
            try:
                stats[table] = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
            except sqlite3.OperationalError:
                stats[table] = 0
    return stats


# ── Settings ──────────────────────────────────────────────────────────────────

def get_setting(key: str, default=None):
    with get_db() as conn:
        row = conn.execute("SELECT value FROM settings WHERE key=?", (key,)).fetchone()
    return row["value"] if row and row["value"] is not None else default


def set_setting(key: str, value) -> None:
    with get_db() as conn:
        conn.execute("""
            INSERT INTO settings (key, value, updated_at) VALUES (?,?,?)
            ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at
        """, (key, value, now_iso()))


# ── Helpers ───────────────────────────────────────────────────────────────────

def new_id() -> str:
    return str(uuid.uuid4())


def now_iso() -> str:
    """UTC timestamp with fixed microsecond precision so string order is time order."""
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def today() -> str:
    return datetime.now().date().isoformat()


def row_to_dict(row) -> dict | None:
    """Convert a sqlite3.Row to a dict, decoding JSON columns."""
    if row is None:
        return None
    d = dict(row)
    for key in JSON_COLUMNS.intersection(d):
        d[key] = _jl(d[key], [] if key in ("tags", "assigned_crew") else {})
    return d


def rows_to_dicts(rows) -> list:
    return [row_to_dict(r) for r in rows]


def _jl(val, default=None):
    """Load a JSON column, tolerating NULL and bad data."""
    if val is None or val == "":
        return default
    if isinstance(val, (dict, list)):
        return val
    try:
        loaded = json.loads(val)
    except (json.JSONDecodeError, TypeError):
        return default
    return default if loaded is None else loaded


def _jd(val) -> str:
    """Dump a value into a JSON column."""
    return json.dumps(val, default=str)
