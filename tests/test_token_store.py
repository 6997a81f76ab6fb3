"""Tests for the persisted credential record."""

import json
import logging
from dataclasses import replace
from datetime import datetime, timezone

import pytest

from inkdash.google import CalendarSource, Credentials, FileTokenStore, MemoryTokenStore


class TestCredentials:
    """Test the credential record."""

    def test_empty_by_default(self):
        """Should start with no tokens and no calendars."""
        creds = Credentials()
        assert creds.access_token == ""
        assert creds.refresh_token == ""
        assert creds.calendars == ()
        assert creds.has_client_credentials is False

    def test_expires_at_parses_iso(self):
        """Should parse ISO-8601 expiry, including a Z suffix."""
        creds = Credentials(token_expiry="2026-01-15T12:00:00Z")
        assert creds.expires_at == datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)

    def test_expires_at_naive_is_utc(self):
        """Should treat a naive expiry as UTC."""
        creds = Credentials(token_expiry="2026-01-15T12:00:00")
        assert creds.expires_at.tzinfo == timezone.utc

    def test_expires_at_empty_or_invalid(self):
        """Should return None for an empty or unparseable expiry."""
        assert Credentials().expires_at is None
        assert Credentials(token_expiry="next tuesday").expires_at is None

    def test_dict_round_trip_keeps_calendar_names(self):
        """Should persist the display name under 'name'."""
        creds = Credentials(
            client_id="id",
            client_secret="secret",
            calendars=(CalendarSource(id="primary", display_name="Me", color="blue"),),
        )
        data = creds.to_dict()
        assert data["calendars"] == [{"id": "primary", "name": "Me", "color": "blue"}]
        assert Credentials.from_dict(data) == creds


class TestMemoryTokenStore:
    """Test the in-memory store."""

    def test_load_returns_saved_record(self):
        """Should return the last saved record."""
        store = MemoryTokenStore()
        store.save(Credentials(access_token="abc"))
        assert store.load().access_token == "abc"
        assert store.save_count == 1

    def test_save_replaces_whole_record(self):
        """Should replace the record rather than merge."""
        store = MemoryTokenStore(Credentials(access_token="a", refresh_token="r"))
        store.save(Credentials(access_token="b"))
        assert store.load().refresh_token == ""


class TestFileTokenStore:
    """Test the JSON file store."""

    @pytest.fixture(autouse=True)
    def no_env_credentials(self, monkeypatch):
        monkeypatch.delenv("GOOGLE_CLIENT_ID", raising=False)
        monkeypatch.delenv("GOOGLE_CLIENT_SECRET", raising=False)

    def test_missing_file_loads_empty(self, tmp_path):
        """Should return an empty record when nothing is stored."""
        store = FileTokenStore(tmp_path / "google_calendar.json")
        assert store.load() == Credentials()

    def test_save_and_load(self, tmp_path):
        """Should write JSON and read it back."""
        path = tmp_path / "nested" / "google_calendar.json"
        store = FileTokenStore(path)
        creds = Credentials(
            client_id="id",
            client_secret="secret",
            access_token="token",
            refresh_token="refresh",
            token_expiry="2099-01-01T00:00:00+00:00",
            calendars=(CalendarSource(id="work", display_name="Work", color="purple"),),
        )
        store.save(creds)

        with open(path) as f:
            data = json.load(f)
        assert data["access_token"] == "token"
        assert data["calendars"][0]["name"] == "Work"
        assert store.load() == creds

    def test_corrupt_file_loads_empty(self, tmp_path, caplog):
        """Should log and fall back to an empty record on unreadable JSON."""
        path = tmp_path / "google_calendar.json"
        path.write_text("{not json")
        store = FileTokenStore(path)

        with caplog.at_level(logging.ERROR, logger="inkdash.google.token_store"):
            assert store.load() == Credentials()

        assert "Failed to load token" in caplog.text

    def test_wrong_shape_loads_empty(self, tmp_path):
        """Should fall back to an empty record when the JSON is not an object."""
        path = tmp_path / "google_calendar.json"
        path.write_text(json.dumps(["unexpected"]))

        assert FileTokenStore(path).load() == Credentials()

    def test_env_fills_missing_client_credentials(self, tmp_path, monkeypatch):
        """Should take client id/secret from the environment when not stored."""
        monkeypatch.setenv("GOOGLE_CLIENT_ID", "env-id")
        monkeypatch.setenv("GOOGLE_CLIENT_SECRET", "env-secret")
        store = FileTokenStore(tmp_path / "google_calendar.json")
        store.save(Credentials(access_token="token"))

        creds = store.load()
        assert creds.client_id == "env-id"
        assert creds.client_secret == "env-secret"
        assert creds.access_token == "token"

    def test_stored_client_credentials_win(self, tmp_path, monkeypatch):
        """Should not override stored client credentials with the environment."""
        monkeypatch.setenv("GOOGLE_CLIENT_ID", "env-id")
        monkeypatch.setenv("GOOGLE_CLIENT_SECRET", "env-secret")
        store = FileTokenStore(tmp_path / "google_calendar.json")
        store.save(Credentials(client_id="file-id", client_secret="file-secret"))

        assert store.load().client_id == "file-id"

    def test_read_modify_write(self, tmp_path):
        """Should support updating a single field via replace."""
        store = FileTokenStore(tmp_path / "google_calendar.json")
        store.save(Credentials(client_id="id", client_secret="secret"))
        store.save(replace(store.load(), access_token="new"))

        creds = store.load()
        assert creds.client_id == "id"
        assert creds.access_token == "new"
