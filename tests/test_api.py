"""
HTTP surface tests. Services run against a temporary SQLite database with a
fixed clock and a recording mailer.
"""

from concurrent.futures import ThreadPoolExecutor

import pytest
import requests
from sqlalchemy import text

from api import deps
from api.deps import ChainedTokenVerifier, HttpTokenVerifier, StaticTokenVerifier, build_token_verifier
from errors import InvalidTokenError

from helpers import ADMIN_TOKEN, add_reservation

API = "/api/v1"
U = "u@northhighland.com"
V = "v@northhighland.com"


class TestHealth:

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_health(self, client):
        data = client.get("/health").json()
        assert data["status"] == "OK"
        assert data["service"] == "Reservation Boss API"
        assert "timestamp" in data


class TestConfig:

    def test_spots_and_visible_week(self, client):
        data = client.get(f"{API}/config").json()

        assert data["parkingSpots"] == ["A", "B"]
        assert data["visibleWeekDates"][0] == {"date": "2024-01-01", "day": "Monday"}
        assert data["visibleWeekDates"][-1] == {"date": "2024-01-05", "day": "Friday"}


class TestReserve:

    def test_created(self, client, mailer):
        response = client.post(f"{API}/reserve", json={"email": U, "date": "2024-01-02", "spot": "A"})

        assert response.status_code == 201
        data = response.json()
        assert data["message"] == "Reservation successful for A on 2024-01-02"
        assert data["reservationId"]
        assert data["reservationDetails"] == {"email": U, "date": "2024-01-02", "spot": "A"}
        assert mailer.sent[0][0] == "confirmation"

    def test_rule_violation_is_400(self, client):
        client.post(f"{API}/reserve", json={"email": U, "date": "2024-01-02", "spot": "A"})

        response = client.post(f"{API}/reserve", json={"email": V, "date": "2024-01-02", "spot": "A"})

        assert response.status_code == 400
        assert response.json() == {"error": "Parking spot A is already reserved for this date."}

    def test_missing_field(self, client):
        response = client.post(f"{API}/reserve", json={"email": U, "date": "2024-01-02"})
        assert response.status_code == 400
        assert response.json() == {"error": "Email, date, and parking spot are required"}

    def test_malformed_body(self, client):
        response = client.post(f"{API}/reserve", content="not json", headers={"Content-Type": "application/json"})
        assert response.status_code == 400
        assert "error" in response.json()

    def test_week_view_reflects_new_reservation(self, client):
        assert client.get(f"{API}/reservations/week").json() == []

        client.post(f"{API}/reserve", json={"email": U, "date": "2024-01-03", "spot": "B"})
        week = client.get(f"{API}/reservations/week").json()

        assert len(week) == 1
        assert week[0]["email"] == U
        assert week[0]["date"] == "2024-01-03"
        assert "createdAt" in week[0]

    def test_summary(self, client):
        client.post(f"{API}/reserve", json={"email": U, "date": "2024-01-03", "spot": "B"})

        summary = client.get(f"{API}/summary/week").json()

        assert len(summary) == 5
        assert summary["2024-01-03"] == {"A": None, "B": U}

    def test_summary_bad_range(self, client):
        response = client.get(f"{API}/summary/week", params={"start": "2024-01-05", "end": "2024-01-01"})
        assert response.status_code == 400

    def test_summary_range_capped(self, client, cache):
        response = client.get(f"{API}/summary/week", params={"start": "0001-01-01", "end": "9999-12-31"})
        assert response.status_code == 400
        assert response.json() == {"error": "Date ranges are limited to 31 days."}
        assert len(cache) == 0


class TestCancellationApi:

    def test_request_and_verify(self, client, db, mailer):
        add_reservation(db, U, "2024-01-04", "A", reservation_id="r1")

        response = client.post(f"{API}/cancellation/request-code", json={"reservationId": "r1", "email": U})
        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "message": "Cancellation code sent to your email. It will expire in 10 minutes.",
        }
        assert mailer.last_code() not in response.text

        response = client.post(
            f"{API}/cancellation/verify-and-cancel",
            json={"reservationId": "r1", "code": int(mailer.last_code())}
        )
        assert response.status_code == 200
        assert response.json()["message"] == "Reservation cancelled successfully"

        assert client.get(f"{API}/reservations/week").json() == []

    def test_email_mismatch_is_403(self, client, db):
        add_reservation(db, U, "2024-01-04", "A", reservation_id="r1")
        response = client.post(f"{API}/cancellation/request-code", json={"reservationId": "r1", "email": V})
        assert response.status_code == 403
        assert response.json() == {"error": "Email does not match reservation"}

    def test_unknown_reservation_is_404(self, client):
        response = client.post(f"{API}/cancellation/request-code", json={"reservationId": "nope", "email": U})
        assert response.status_code == 404

    def test_verify_without_request_is_404(self, client):
        response = client.post(f"{API}/cancellation/verify-and-cancel", json={"reservationId": "nope", "code": "1"})
        assert response.status_code == 404
        assert response.json() == {"error": "Invalid or expired cancellation request"}

    def test_window_closed_is_403(self, client, db):
        add_reservation(db, U, "2024-01-01", "A", reservation_id="today")
        response = client.post(f"{API}/cancellation/request-code", json={"reservationId": "today", "email": U})
        assert response.status_code == 403

    @pytest.mark.parametrize("code", ["12345\u00e9", "\uff11\uff12\uff13\uff14\uff15\uff16"])
    def test_non_ascii_code_is_rejected_not_500(self, client, db, code):
        add_reservation(db, U, "2024-01-04", "A", reservation_id="r1")
        client.post(f"{API}/cancellation/request-code", json={"reservationId": "r1", "email": U})

        response = client.post(f"{API}/cancellation/verify-and-cancel", json={"reservationId": "r1", "code": code})

        assert response.status_code == 403
        assert response.json() == {"error": "Invalid cancellation code"}


class TestAdminApi:

    def test_no_token_is_401(self, client):
        response = client.get(f"{API}/reservations")
        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized: No token provided"}

    def test_bad_token_is_403(self, client):
        response = client.get(f"{API}/reservations", headers={"Authorization": "Bearer wrong"})
        assert response.status_code == 403
        assert response.json() == {"error": "Unauthorized: Invalid token"}

    def test_list(self, client, db, admin_headers):
        add_reservation(db, U, "2024-01-02", "A")
        add_reservation(db, V, "2024-01-03", "A")

        data = client.get(f"{API}/reservations", headers=admin_headers).json()

        assert [r["date"] for r in data] == ["2024-01-03", "2024-01-02"]

    def test_release(self, client, db, admin_headers):
        add_reservation(db, U, "2024-01-02", "A", reservation_id="r1")

        response = client.delete(f"{API}/reservations/r1", headers=admin_headers)
        assert response.status_code == 200
        assert response.json() == {"message": "Reservation released successfully."}

        response = client.delete(f"{API}/reservations/r1", headers=admin_headers)
        assert response.status_code == 404
        assert response.json() == {"error": "Reservation not found."}

    def test_clear_all(self, client, db, admin_headers):
        response = client.delete(f"{API}/reservations", headers=admin_headers)
        assert response.json() == {"message": "No reservations to delete.", "deletedCount": 0}

        add_reservation(db, U, "2024-01-02", "A")
        response = client.delete(f"{API}/reservations", headers=admin_headers)
        assert response.json() == {"message": "All reservations have been successfully deleted.", "deletedCount": 1}

    def test_cleanup(self, client, db, admin_headers):
        add_reservation(db, U, "2023-12-28", "A")
        add_reservation(db, V, "2023-12-29", "A")
        add_reservation(db, U, "2024-01-02", "A")

        response = client.post(f"{API}/admin/cleanup", headers=admin_headers)

        assert response.status_code == 200
        assert response.json() == {
            "message": "Successfully deleted 2 old reservations (older than 2024-01-01).",
            "deletedCount": 2,
        }

        response = client.post(f"{API}/admin/cleanup", headers=admin_headers)
        assert response.json()["message"] == "No old reservations found to delete."

    def test_cleanup_requires_token(self, client):
        assert client.post(f"{API}/admin/cleanup").status_code == 401


class TestReportsApi:

    def test_weekly(self, client, db, admin_headers):
        add_reservation(db, U, "2024-01-02", "A")
        add_reservation(db, U, "2024-01-03", "A")

        data = client.get(f"{API}/reports/weekly", headers=admin_headers).json()

        assert data["weekStart"] == "2024-01-01"
        assert data["weekEnd"] == "2024-01-05"
        assert data["report"][0]["email"] == U
        assert data["report"][0]["daysCount"] == 2

    def test_monthly_csv(self, client, db, admin_headers):
        add_reservation(db, U, "2024-01-02", "A")

        response = client.get(f"{API}/reports/monthly-csv", params={"year": 2024, "month": 1}, headers=admin_headers)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert response.headers["content-disposition"] == 'attachment; filename="parking-report-January-2024.csv"'
        assert response.text == 'Email,Week 1 Days,Total Days\n"u@northhighland.com","1","1"'

    def test_monthly_csv_requires_year(self, client, admin_headers):
        response = client.get(f"{API}/reports/monthly-csv", params={"month": 1}, headers=admin_headers)
        assert response.status_code == 400
        assert "year" in response.json()["error"]

    def test_monthly_csv_any_year(self, client, db, admin_headers):
        add_reservation(db, U, "2019-03-05", "A")

        response = client.get(f"{API}/reports/monthly-csv", params={"year": 2019, "month": 3}, headers=admin_headers)

        assert response.status_code == 200
        assert response.text.endswith('"u@northhighland.com","1","1"')

    def test_reports_require_token(self, client):
        assert client.get(f"{API}/reports/weekly").status_code == 401


class TestDatabaseDependency:
    """The real get_db, driven the way the FastAPI threadpool drives it."""

    def test_overlapping_requests_get_distinct_sessions(self):
        with ThreadPoolExecutor(max_workers=1) as pool:
            first, second = deps.get_db(), deps.get_db()
            session_a = pool.submit(next, first).result()
            session_b = pool.submit(next, second).result()
            try:
                assert session_a is not session_b

                # Tearing down one request leaves the other usable
                pool.submit(first.close).result()
                assert session_b.execute(text("SELECT 1")).scalar() == 1
            finally:
                pool.submit(first.close).result()
                pool.submit(second.close).result()


class FakeResponse:
    def __init__(self, status_code, payload=None):
        self.status_code = status_code
        self.payload = payload

    def json(self):
        if self.payload is None:
            raise ValueError("no json")
        return self.payload


class TestTokenVerifiers:

    def test_static(self):
        verifier = StaticTokenVerifier([ADMIN_TOKEN])
        assert verifier.verify(ADMIN_TOKEN) == {"uid": "admin-token"}
        with pytest.raises(InvalidTokenError):
            verifier.verify("nope")

    def test_http_accepts_identity(self, monkeypatch):
        calls = []

        def fake_get(url, headers=None, timeout=None):
            calls.append((url, headers))
            return FakeResponse(200, {"uid": "admin-1"})

        monkeypatch.setattr(deps.requests, "get", fake_get)

        identity = HttpTokenVerifier("https://id.example.com/verify").verify("tok")

        assert identity == {"uid": "admin-1"}
        assert calls == [("https://id.example.com/verify", {"Authorization": "Bearer tok"})]

    @pytest.mark.parametrize("outcome", [FakeResponse(401), FakeResponse(200), requests.ConnectionError("down")])
    def test_http_rejects(self, monkeypatch, outcome):
        def fake_get(url, headers=None, timeout=None):
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        monkeypatch.setattr(deps.requests, "get", fake_get)

        with pytest.raises(InvalidTokenError):
            HttpTokenVerifier("https://id.example.com/verify").verify("tok")

    def test_chain_falls_through(self):
        chain = ChainedTokenVerifier([StaticTokenVerifier(["one"]), StaticTokenVerifier(["two"])])
        assert chain.verify("two") == {"uid": "admin-token"}
        with pytest.raises(InvalidTokenError):
            chain.verify("three")

    def test_nothing_configured_rejects_everything(self, settings):
        verifier = build_token_verifier(settings.model_copy(update={"admin_api_tokens": [], "auth_verify_url": ""}))
        with pytest.raises(InvalidTokenError):
            verifier.verify(ADMIN_TOKEN)
