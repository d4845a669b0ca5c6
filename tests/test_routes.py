"""API tests via FastAPI TestClient."""

import hashlib
import hmac
import json
import logging
import sqlite3
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from factories import make_event, make_txn, utc
from tracker.api import routes
from tracker.core.database import insert_event
from tracker.core.upbank import UpClient

WINDOW = {"start": "2024-03-01T08:00:00+00:00", "end": "2024-03-01T14:00:00+00:00"}


def _unix(t) -> int:
    return int(t.timestamp())


class TestLevels:
    """GET /api/levels"""

    def test_two_dose_scenario(self, client) -> None:
        insert_event(make_event(utc(2024, 3, 1, 9), 160))
        insert_event(make_event(utc(2024, 3, 1, 13), 80))
        r = client.get("/api/levels", params=WINDOW)
        assert r.status_code == 200
        samples = r.json()
        at_13 = [s["level"] for s in samples if s["timestamp"] == _unix(utc(2024, 3, 1, 13))]
        assert at_13 and all(level == pytest.approx(160) for level in at_13)

    def test_samples_sorted_and_cover_window(self, client) -> None:
        insert_event(make_event(utc(2024, 3, 1, 9, 0, 30), 160))
        samples = client.get("/api/levels", params=WINDOW).json()
        stamps = [s["timestamp"] for s in samples]
        assert stamps == sorted(stamps)
        assert stamps[0] <= _unix(utc(2024, 3, 1, 8))
        assert stamps[-1] >= _unix(utc(2024, 3, 1, 14))
        assert _unix(utc(2024, 3, 1, 8, 59, 30)) in stamps

    def test_no_events_all_zero(self, client) -> None:
        samples = client.get("/api/levels", params=WINDOW).json()
        assert samples and all(s["level"] == 0 for s in samples)

    def test_lookback_includes_earlier_doses(self, client) -> None:
        insert_event(make_event(utc(2024, 2, 28, 8), 160))  # 48h before start
        samples = client.get("/api/levels", params=WINDOW).json()
        assert samples[0]["level"] == pytest.approx(160 * 0.5 ** 12)

    def test_doses_beyond_lookback_are_ignored(self, client) -> None:
        insert_event(make_event(utc(2024, 2, 26, 8), 160))  # 96h before start
        samples = client.get("/api/levels", params=WINDOW).json()
        assert all(s["level"] == 0 for s in samples)

    def test_naive_times_use_local_timezone(self, client, monkeypatch) -> None:
        monkeypatch.setattr(routes, "TIMEZONE", "Australia/Melbourne")
        samples = client.get(
            "/api/levels", params={"start": "2024-03-01T08:00:00", "end": "2024-03-01T14:00:00"},
        ).json()
        # 08:00 AEDT == 21:00 UTC the previous day
        assert samples[0]["timestamp"] == _unix(utc(2024, 2, 29, 21))

    def test_end_before_start_is_bad_request(self, client) -> None:
        r = client.get("/api/levels", params={"start": WINDOW["end"], "end": WINDOW["start"]})
        assert r.status_code == 400

    def test_invalid_start_time(self, client) -> None:
        r = client.get("/api/levels", params={"start": "yesterday", "end": WINDOW["end"]})
        assert r.status_code == 400
        assert r.json()["detail"] == "invalid start time"

    def test_sample_cap_is_bad_request(self, client, monkeypatch) -> None:
        monkeypatch.setattr(routes, "MAX_SAMPLES", 10)
        r = client.get("/api/levels", params=WINDOW)
        assert r.status_code == 400


class TestCurrentLevel:
    """GET /api/levels/current"""

    def test_level_is_evaluated_at_now(self, client) -> None:
        now = datetime.now(timezone.utc)
        insert_event(make_event(now - timedelta(hours=4), 160))
        r = client.get("/api/levels/current")
        assert r.status_code == 200
        body = r.json()
        assert body["level"] == pytest.approx(80, rel=1e-3)
        assert abs(body["timestamp"] - now.timestamp()) < 60

    def test_differs_from_last_series_sample(self, client) -> None:
        """The last grid point of a 30-day window lies after now."""
        now = datetime.now(timezone.utc)
        insert_event(make_event(now - timedelta(hours=1), 160))
        current = client.get("/api/levels/current").json()["level"]
        samples = client.get("/api/levels", params={
            "start": (now - timedelta(days=30)).isoformat(), "end": now.isoformat(),
        }).json()
        assert current == pytest.approx(160 * 0.5 ** 0.25, rel=1e-3)
        assert samples[-1]["timestamp"] >= int(now.timestamp())

    def test_no_events_is_zero(self, client) -> None:
        assert client.get("/api/levels/current").json()["level"] == 0


class TestEvents:
    """Event listing, summary, quick-log and delete."""

    def test_list_events(self, client) -> None:
        insert_event(make_event(utc(2024, 3, 1, 9), 160, "Chia Chia", 550))
        r = client.get("/api/events", params=WINDOW)
        assert r.status_code == 200
        (ev,) = r.json()
        assert ev["description"] == "Chia Chia"
        assert ev["amount"] == 160
        assert ev["cost"] == 550
        assert ev["timestamp"] == "2024-03-01T09:00:00+00:00"

    def test_summary_in_range(self, client) -> None:
        insert_event(make_event(utc(2024, 3, 1, 9), 160, cost=550))
        insert_event(make_event(utc(2024, 3, 1, 13), 80, cost=500))
        insert_event(make_event(utc(2024, 3, 2, 9), 240, cost=590))
        r = client.get("/api/events/summary", params=WINDOW)
        assert r.json() == {"intake": 240, "cost": 1050}

    def test_summary_defaults_to_all_time(self, client) -> None:
        insert_event(make_event(utc(2019, 3, 1, 9), 160, cost=550))
        insert_event(make_event(utc(2024, 3, 1, 9), 80, cost=500))
        assert client.get("/api/events/summary").json() == {"intake": 240, "cost": 1050}

    def test_predefined_event(self, client) -> None:
        r = client.post("/api/predefined-event", params={"type": 1})
        assert r.status_code == 200
        assert r.json()["amount"] == 160
        assert client.get("/api/events/summary").json() == {"intake": 160, "cost": 250}

    def test_unknown_predefined_event(self, client) -> None:
        r = client.post("/api/predefined-event", params={"type": 42})
        assert r.status_code == 404

    def test_delete_event(self, client) -> None:
        row_id = insert_event(make_event(utc(2024, 3, 1, 9)))
        assert client.delete(f"/api/events/{row_id}").status_code == 200
        assert client.delete(f"/api/events/{row_id}").status_code == 404


class TestAuth:
    """x-api-key enforcement."""

    def test_missing_key_rejected(self, client, monkeypatch) -> None:
        monkeypatch.setattr(routes, "API_KEY", "secret")
        assert client.get("/api/levels", params=WINDOW).status_code == 401

    def test_valid_key_accepted(self, client, monkeypatch) -> None:
        monkeypatch.setattr(routes, "API_KEY", "secret")
        r = client.get("/api/levels", params=WINDOW, headers={"x-api-key": "secret"})
        assert r.status_code == 200

    def test_status_is_public(self, client, monkeypatch) -> None:
        monkeypatch.setattr(routes, "API_KEY", "secret")
        r = client.get("/api/status")
        assert r.status_code == 200
        assert r.json()["model"]["half_life_hours"] == routes.HALF_LIFE_HOURS


class TestUpWebhook:
    """POST /api/webhook/up"""

    SECRET = "whsec-test"

    def _body(self) -> bytes:
        return json.dumps({
            "data": {
                "type": "webhook-events",
                "id": "evt-1",
                "attributes": {"eventType": "TRANSACTION_CREATED"},
                "relationships": {"transaction": {"data": {"type": "transactions", "id": "txn-1"}}},
            }
        }).encode()

    def _sign(self, body: bytes) -> str:
        return hmac.new(self.SECRET.encode(), body, hashlib.sha256).hexdigest()

    @pytest.fixture
    def up_api(self, monkeypatch):
        """Route the webhook's Up client to a canned transaction."""
        monkeypatch.setattr(routes, "UP_WEBHOOK_SECRET", self.SECRET)
        txn = make_txn("restaurants-and-cafes", "Chia Chia", -590,
                       created_at="2024-03-01T09:00:00+00:00")
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"data": txn}))
        monkeypatch.setattr(routes, "UpClient", lambda: UpClient(access_token="t", transport=transport))

    def test_bad_signature_rejected(self, client, up_api) -> None:
        r = client.post("/api/webhook/up", content=self._body(),
                        headers={"X-Up-Authenticity-Signature": "00" * 32})
        assert r.status_code == 401

    def test_valid_event_is_ingested(self, client, up_api) -> None:
        body = self._body()
        r = client.post("/api/webhook/up", content=body,
                        headers={"X-Up-Authenticity-Signature": self._sign(body)})
        assert r.status_code == 202
        assert r.json() == {"status": "accepted"}
        (ev,) = client.get("/api/events", params=WINDOW).json()
        assert ev["description"] == "Chia Chia"
        assert ev["amount"] == 240

    def test_upstream_failure_is_logged_not_raised(self, client, monkeypatch) -> None:
        monkeypatch.setattr(routes, "UP_WEBHOOK_SECRET", self.SECRET)
        transport = httpx.MockTransport(lambda request: httpx.Response(503))
        monkeypatch.setattr(routes, "UpClient", lambda: UpClient(access_token="t", transport=transport))
        body = self._body()
        r = client.post("/api/webhook/up", content=body,
                        headers={"X-Up-Authenticity-Signature": self._sign(body)})
        assert r.status_code == 202
        assert client.get("/api/events", params=WINDOW).json() == []

    def test_non_object_body_is_logged(self, client, up_api, caplog) -> None:
        body = b"[1, 2, 3]"
        with caplog.at_level(logging.ERROR, logger="caffeine.api"):
            r = client.post("/api/webhook/up", content=body,
                            headers={"X-Up-Authenticity-Signature": self._sign(body)})
        assert r.status_code == 202
        assert "Failed to parse webhook event" in caplog.text

    def test_store_failure_is_logged(self, client, up_api, monkeypatch, caplog) -> None:
        def broken_insert(event):
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(routes, "insert_event", broken_insert)
        body = self._body()
        with caplog.at_level(logging.ERROR, logger="caffeine.api"):
            r = client.post("/api/webhook/up", content=body,
                            headers={"X-Up-Authenticity-Signature": self._sign(body)})
        assert r.status_code == 202
        assert "Failed to store webhook event" in caplog.text
