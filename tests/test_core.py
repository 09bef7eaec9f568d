"""Tests for the core layer: paths, database helpers, bucket storage, secrets, security."""

import os
import sqlite3

import pytest

from portal.core import db, paths, secrets, storage
from portal.core.security import RateLimiter


# ═══════════════════════════════════════════════════════════════════════════════
# PATHS
# ═══════════════════════════════════════════════════════════════════════════════

class TestPaths:
    def test_validate_paths_ok(self):
        result = paths.validate_paths()
        assert result["ok"] is True
        assert result["errors"] == []
        assert result["resolved"]["STORAGE_DIR"] == paths.STORAGE_DIR

    def test_missing_dir_reported(self, monkeypatch, tmp_path):
        monkeypatch.setattr(paths, "OUTPUT_DIR", str(tmp_path / "nope"))
        result = paths.validate_paths()
        assert result["ok"] is False
        assert any("OUTPUT_DIR" in e for e in result["errors"])

    def test_railway_without_volume_warns(self, monkeypatch):
        monkeypatch.setenv("RAILWAY_ENVIRONMENT", "production")
        monkeypatch.setattr(paths, "_USING_VOLUME", False)
        assert paths.validate_paths()["warnings"]


# ═══════════════════════════════════════════════════════════════════════════════
# DATABASE
# ═══════════════════════════════════════════════════════════════════════════════

class TestDatabase:
    def test_init_creates_all_tables(self):
        stats = db.get_db_stats()
        assert set(stats) == set(db.TABLES)

    def test_init_seeds_team_and_presets(self):
        stats = db.get_db_stats()
        assert stats["team_members"] == len(db.SEED_TEAM)
        assert stats["material_presets"] == len(db.SEED_PRESETS)

    def test_init_is_idempotent(self):
        db.init_db()
        db.init_db()
        assert db.get_db_stats()["team_members"] == len(db.SEED_TEAM)

    def test_startup_reports_path(self):
        result = db.startup()
        assert result["db_path"] == db.DB_PATH
        assert "clients" in result["stats"]

    def test_rollback_on_error(self):
        with pytest.raises(sqlite3.IntegrityError):
            with db.get_db() as conn:
                conn.execute("INSERT INTO settings (key, value, updated_at) VALUES ('a','1','x')")
                conn.execute("INSERT INTO settings (key, value, updated_at) VALUES ('a','2','x')")
        assert db.get_setting("a") is None

    def test_settings_roundtrip(self):
        db.set_setting("theme", "dark")
        db.set_setting("theme", "light")
        assert db.get_setting("theme") == "light"
        assert db.get_setting("missing", "fallback") == "fallback"

    def test_now_iso_sortable(self):
        a, b = db.now_iso(), db.now_iso()
        assert len(a) == len(b)
        assert a <= b

    def test_json_columns_decoded(self):
        row = {"tags": '["roof","leak"]', "config": None, "name": "x"}
        out = db.row_to_dict(row)
        assert out["tags"] == ["roof", "leak"]
        assert out["config"] == {}
        assert out["name"] == "x"

    def test_bad_json_falls_back(self):
        assert db._jl("{not json", {"d": 1}) == {"d": 1}
        assert db._jl("null", []) == []


# ═══════════════════════════════════════════════════════════════════════════════
# STORAGE
# ═══════════════════════════════════════════════════════════════════════════════

class TestStorage:
    def test_upload_download(self):
        path = storage.upload("packets/p1/cover.webp", b"abc")
        assert path == "packets/p1/cover.webp"
        assert storage.download(path) == b"abc"
        assert storage.exists(path)

    def test_no_upsert_raises(self):
        storage.upload("a/b.txt", b"1")
        with pytest.raises(FileExistsError):
            storage.upload("a/b.txt", b"2", upsert=False)

    def test_rejects_escape(self):
        with pytest.raises(ValueError):
            storage.upload("../evil.txt", b"x")
        with pytest.raises(ValueError):
            storage.upload("/etc/passwd", b"x")
        assert storage.exists("../../x") is False

    def test_remove_skips_missing(self):
        storage.upload("r/1.bin", b"1")
        assert storage.remove(["r/1.bin", "r/2.bin", ""]) == 1
        assert not storage.exists("r/1.bin")

    def test_list_and_remove_prefix(self):
        storage.upload("packets/p9/a.webp", b"1")
        storage.upload("packets/p9/b.webp", b"2")
        storage.upload("packets/p10/a.webp", b"3")
        assert storage.list_objects("packets/p9/") == ["packets/p9/a.webp", "packets/p9/b.webp"]
        assert storage.remove_prefix("packets/p9/") == 2
        assert storage.exists("packets/p10/a.webp")

    def test_list_missing_prefix_empty(self):
        assert storage.list_objects("nothing/here") == []

    def test_public_url(self, monkeypatch):
        monkeypatch.setenv("PUBLIC_BASE_URL", "https://portal.example.com/")
        assert storage.public_url("media/x.jpg") == "https://portal.example.com/files/media/x.jpg"
        assert storage.public_url("") == ""

    def test_full_path_inside_bucket(self):
        full = storage.full_path("media/x.jpg")
        assert full.startswith(os.path.realpath(storage.STORAGE_DIR))


# ═══════════════════════════════════════════════════════════════════════════════
# SECRETS
# ═══════════════════════════════════════════════════════════════════════════════

class TestSecrets:
    def test_mask_short(self):
        assert secrets.mask("abc123") == "abc1****"

    def test_mask_long(self):
        masked = secrets.mask("sk-abcdefghijklmnop")
        assert masked.startswith("sk-abcde****")
        assert "19 chars" in masked

    def test_mask_empty(self):
        assert secrets.mask("") == "(not set)"

    def test_get_key_unknown(self):
        assert secrets.get_key("nope") == ""

    def test_get_key_default(self, monkeypatch):
        monkeypatch.delenv("SECRET_KEY", raising=False)
        assert secrets.get_key("secret_key") == "lava-portal-dev"

    def test_get_key_env(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        assert secrets.get_key("openai") == "sk-test"

    def test_validate_all_hides_sensitive(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test-very-secret")
        report = secrets.validate_all()
        assert report["secrets"]["openai"]["masked"] == "set"
        assert report["total"] == len(report["secrets"])

    def test_feature_needs_every_key(self, monkeypatch):
        monkeypatch.setenv("TWILIO_ACCOUNT_SID", "AC1")
        monkeypatch.setenv("TWILIO_AUTH_TOKEN", "tok")
        assert secrets.validate_all()["features"]["sms"] is False
        monkeypatch.setenv("TWILIO_PHONE_NUMBER", "+18085550000")
        features = secrets.validate_all()["features"]
        assert features["sms"] is True
        assert features["email"] is False

    def test_startup_check(self):
        assert "secrets" in secrets.startup_check()


# ═══════════════════════════════════════════════════════════════════════════════
# RATE LIMITING
# ═══════════════════════════════════════════════════════════════════════════════

class TestRateLimiter:
    def test_burst_then_block(self):
        limiter = RateLimiter()
        results = [limiter.check("ip:auth", max_tokens=3, refill_rate=0.0) for _ in range(4)]
        assert results == [True, True, True, False]

    def test_keys_independent(self):
        limiter = RateLimiter()
        assert limiter.check("a", max_tokens=1, refill_rate=0.0)
        assert limiter.check("b", max_tokens=1, refill_rate=0.0)
        assert not limiter.check("a", max_tokens=1, refill_rate=0.0)

    def test_reset(self):
        limiter = RateLimiter()
        limiter.check("a", max_tokens=1, refill_rate=0.0)
        limiter.reset()
        assert limiter.check("a", max_tokens=1, refill_rate=0.0)

    def test_route_returns_429(self, anon_client, monkeypatch):
        from portal.core import security
        monkeypatch.delenv("DISABLE_RATE_LIMIT")
        monkeypatch.setattr(security, "_limiter", RateLimiter())
        monkeypatch.setitem(security.RATE_LIMITS, "auth", {"max_tokens": 2, "refill_rate": 0.0})
        codes = [anon_client.post("/api/auth/login", json={"password": "x"}).status_code
                 for _ in range(3)]
        assert codes == [401, 401, 429]

    def test_security_headers(self, anon_client):
        r = anon_client.get("/api/health")
        assert r.headers["X-Content-Type-Options"] == "nosniff"
        assert r.headers["X-Frame-Options"] == "SAMEORIGIN"
