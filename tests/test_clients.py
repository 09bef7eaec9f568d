"""Tests for clients, the home dashboard counters and the staff password."""

import pytest

from portal.core.db import get_db, get_setting, new_id, now_iso
from portal.crm import auth, clients, dashboard, inspections, packets


def _legacy_packet(name, address=""):
    """A packet row saved before clients existed (no client_id)."""
    pid = new_id()
    ts = now_iso()
    with get_db() as conn:
        conn.execute("""
            INSERT INTO packets (id, customer_name, customer_address, product_type,
                                 fields, config, created_at, updated_at)
            VALUES (?,?,?,?,'{}','{}',?,?)
        """, (pid, name, address, "shingles", ts, ts))
    return pid


# ═══════════════════════════════════════════════════════════════════════════════
# CLIENT CRUD
# ═══════════════════════════════════════════════════════════════════════════════

class TestClientCrud:
    def test_create_requires_name(self):
        with pytest.raises(ValueError):
            clients.create_client({"name": "   "})

    def test_create_and_get(self, sample_client):
        got = clients.get_client(sample_client["id"])
        assert got["name"] == "Keoni Kahale"
        assert got["tags"] == []
        assert got["last_activity_at"]

    def test_get_missing(self):
        assert clients.get_client("nope") is None
        assert clients.get_client(None) is None

    def test_search_name_and_address(self, sample_client):
        clients.create_client({"name": "Leilani Park", "address": "9 Ewa Beach Rd"})
        assert [c["name"] for c in clients.list_clients("keoni")] == ["Keoni Kahale"]
        assert [c["name"] for c in clients.list_clients("EWA")] == ["Leilani Park"]
        assert len(clients.list_clients("")) == 2

    def test_update(self, sample_client):
        updated = clients.update_client(sample_client["id"], {"phone": "808-555-9999",
                                                               "tags": ["vip"], "bogus": 1})
        assert updated["phone"] == "808-555-9999"
        assert updated["tags"] == ["vip"]

    def test_update_blank_name_rejected(self, sample_client):
        with pytest.raises(ValueError):
            clients.update_client(sample_client["id"], {"name": ""})

    def test_update_missing(self):
        with pytest.raises(LookupError):
            clients.update_client("nope", {"phone": "1"})

    def test_delete_unlinks_records(self, sample_packet):
        client_id = sample_packet["client_id"]
        assert clients.delete_client(client_id) is True
        assert packets.get_packet(sample_packet["id"])["client_id"] is None
        assert clients.delete_client(client_id) is False


# ═══════════════════════════════════════════════════════════════════════════════
# FIND / HISTORY / COUNTS
# ═══════════════════════════════════════════════════════════════════════════════

class TestClientLinks:
    def test_find_or_create_case_insensitive(self, sample_client):
        found = clients.find_or_create("keoni kahale", "123 KAILUA RD, KAILUA, HI 96734")
        assert found["id"] == sample_client["id"]

    def test_find_or_create_new_address(self, sample_client):
        other = clients.find_or_create("Keoni Kahale", "55 Other St")
        assert other["id"] != sample_client["id"]

    def test_saving_packet_creates_client(self):
        pid = packets.save_packet({"customer_name": "Malia Kane", "customer_address": "1 Aiea Hts"})
        client_id = packets.get_packet(pid)["client_id"]
        assert clients.get_client(client_id)["name"] == "Malia Kane"
        assert clients.get_client(client_id)["total_packets"] == 1

    def test_history(self, sample_packet):
        client_id = sample_packet["client_id"]
        inspections.save_inspection({"customer_name": "Keoni Kahale", "client_id": client_id})
        history = clients.get_history(client_id)
        assert [p["id"] for p in history["packets"]] == [sample_packet["id"]]
        assert len(history["inspections"]) == 1
        assert history["media"] == [] and history["jobs"] == [] and history["voice_memos"] == []

    def test_update_counts(self, sample_packet):
        client = clients.update_counts(sample_packet["client_id"])
        assert client["total_packets"] == 1
        assert client["total_inspections"] == 0
        assert clients.update_counts(None) is None


class TestMigration:
    def test_links_legacy_records(self):
        p1 = _legacy_packet("Ana Lee", "7 Kaneohe Bay Dr")
        p2 = _legacy_packet("ana lee ", "7 Kaneohe Bay Dr")
        p3 = _legacy_packet("Ben Ito")
        result = clients.migrate_existing_records()
        assert result["clients_created"] == 2
        assert result["packets_linked"] == 3
        c1 = packets.get_packet(p1)["client_id"]
        assert c1 and c1 == packets.get_packet(p2)["client_id"]
        assert packets.get_packet(p3)["client_id"] != c1

    def test_reuses_existing_client(self, sample_client):
        _legacy_packet(sample_client["name"], sample_client["address"])
        result = clients.migrate_existing_records()
        assert result["clients_created"] == 0
        assert result["packets_linked"] == 1

    def test_nothing_to_migrate(self):
        assert clients.migrate_existing_records() == {
            "clients_created": 0, "packets_linked": 0, "inspections_linked": 0}


# ═══════════════════════════════════════════════════════════════════════════════
# DASHBOARD
# ═══════════════════════════════════════════════════════════════════════════════

class TestDashboard:
    def test_empty_stats(self):
        assert dashboard.get_stats() == {"totalPackets": 0, "totalInspections": 0, "thisWeek": 0}

    def test_stats_count_this_week(self, sample_packet):
        inspections.save_inspection({"customer_name": "Someone"})
        stats = dashboard.get_stats()
        assert stats["totalPackets"] == 1
        assert stats["totalInspections"] == 1
        assert stats["thisWeek"] == 2

    def test_recent_activity_merged_newest_first(self, sample_packet):
        iid = inspections.save_inspection({"customer_name": "Later"})
        activity = dashboard.get_recent_activity()
        assert [a["type"] for a in activity] == ["inspection", "packet"]
        assert activity[0]["id"] == iid

    def test_recent_activity_limit(self):
        for i in range(4):
            packets.save_packet({"customer_name": f"C{i}"})
        assert len(dashboard.get_recent_activity(limit=3)) == 3


# ═══════════════════════════════════════════════════════════════════════════════
# STAFF PASSWORD
# ═══════════════════════════════════════════════════════════════════════════════

class TestAuth:
    def test_default_password(self):
        assert auth.check_password("lavaroofing")
        assert not auth.check_password("wrong")
        assert not auth.check_password("")

    def test_env_password_used_when_unset(self, monkeypatch):
        monkeypatch.setenv("APP_PASSWORD", "from-env")
        assert auth.check_password("from-env")
        assert not auth.check_password("lavaroofing")

    def test_fresh_database_stores_no_password(self):
        assert get_setting("app_password") is None

    def test_changed_password_beats_env(self, monkeypatch):
        monkeypatch.setenv("APP_PASSWORD", "from-env")
        auth.change_password("from-env", "changed1")
        assert auth.check_password("changed1")
        assert not auth.check_password("from-env")

    def test_change_password(self):
        auth.change_password("lavaroofing", "newsecret")
        assert auth.check_password("newsecret")
        assert not auth.check_password("lavaroofing")

    def test_change_rejects_wrong_current(self):
        with pytest.raises(ValueError, match="incorrect"):
            auth.change_password("nope", "newsecret")

    def test_change_rejects_short(self):
        with pytest.raises(ValueError, match="at least"):
            auth.change_password("lavaroofing", "abc")
