import math
from datetime import datetime, timezone

import pytest
from starlette.testclient import TestClient

from barriowatch.api.app import app
from barriowatch.core.geo import EARTH_RADIUS_M, GeoPoint
from barriowatch.domain.models import Neighborhood, Report, ReportCategory, UserIdentity, UserRole
from barriowatch.stores.memory import InMemoryBackend

SPOT = GeoPoint(lat=18.4861, lon=-69.9312)
ALICE = {"Authorization": "Bearer alice-token"}
BOB = {"Authorization": "Bearer bob-token"}
ADMIN = {"Authorization": "Bearer admin-token"}


def north_of(point: GeoPoint, meters: float) -> GeoPoint:
    return GeoPoint(lat=point.lat + math.degrees(meters / EARTH_RADIUS_M), lon=point.lon)


def make_report(report_id: str, *, verified: bool = False, user_id: str = "alice") -> Report:
    return Report(
        id=report_id,
        user_id=user_id,
        category=ReportCategory.THEFT,
        location=SPOT,
        description="celular robado",
        verified=verified,
        created_at=datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc),
    )


@pytest.fixture
def backend(monkeypatch):
    # Keep API tests offline: swap the cached Supabase backend for the in-memory one.
    import barriowatch.api.routes as routes

    backend = InMemoryBackend(
        reports=[make_report("pending"), make_report("public", verified=True)],
        neighborhoods=[
            Neighborhood(id="n1", name="Naco", reports_total=10, verified_count=5),
            Neighborhood(id="n2", name="Gazcue", reports_total=10, verified_count=9),
        ],
        users_by_token={
            "alice-token": UserIdentity(id="alice"),
            "bob-token": UserIdentity(id="bob"),
            "admin-token": UserIdentity(id="root", role=UserRole.ADMIN),
        },
    )
    monkeypatch.setattr(routes, "_backend", lambda: backend)
    return backend


def test_health():
    with TestClient(app) as c:
        assert c.get("/api/health").json() == {"status": "ok"}


def test_public_feed_shows_only_verified(backend):
    with TestClient(app) as c:
        resp = c.get("/api/reports", params={"category": "Theft"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["total"] == 1
    assert [r["id"] for r in data["reports"]] == ["public"]
    assert data["reports"][0]["location"] == {"lat": SPOT.lat, "lon": SPOT.lon}


def test_auth_is_required(backend):
    with TestClient(app) as c:
        assert c.get("/api/reports/verifiable").status_code == 401
        resp = c.get("/api/reports/verifiable", headers={"Authorization": "Bearer nope"})
    assert resp.status_code == 401
    assert resp.json()["detail"]["code"] == "unauthorized"


def test_verifiable_requires_location_for_regular_users(backend):
    with TestClient(app) as c:
        resp = c.get("/api/reports/verifiable", headers=BOB)
        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "location_unavailable"

        resp = c.get("/api/reports/verifiable", headers=BOB, params={"lat": SPOT.lat, "lon": SPOT.lon})
        assert resp.status_code == 200
        assert [r["id"] for r in resp.json()] == ["pending"]

        resp = c.get("/api/reports/verifiable", headers=ADMIN)
        assert [r["id"] for r in resp.json()] == ["pending"]


def test_verify_error_mapping(backend):
    far = north_of(SPOT, 1_000)
    with TestClient(app) as c:
        resp = c.post("/api/reports/pending/verify", headers=ALICE, json={"lat": SPOT.lat, "lon": SPOT.lon})
        assert resp.status_code == 403
        assert resp.json()["detail"]["code"] == "self_verification_forbidden"

        resp = c.post("/api/reports/pending/verify", headers=BOB, json={"lat": far.lat, "lon": far.lon})
        assert resp.status_code == 422
        detail = resp.json()["detail"]
        assert detail["code"] == "too_far_from_incident"
        assert detail["distance_m"] == pytest.approx(1_000, abs=1.0)
        assert detail["max_distance_m"] == 300

        resp = c.post("/api/reports/missing/verify", headers=BOB, json={"lat": SPOT.lat, "lon": SPOT.lon})
        assert resp.status_code == 404


def test_verify_success_then_report_is_gone(backend):
    with TestClient(app) as c:
        resp = c.post("/api/reports/pending/verify", headers=BOB, json={"lat": SPOT.lat, "lon": SPOT.lon})
        assert resp.status_code == 200
        assert resp.json()["verified"] is True

        resp = c.post("/api/reports/pending/verify", headers=ADMIN)
        assert resp.status_code == 404
    assert backend.reports.get("pending").verified is True


def test_submit_and_stats(backend):
    payload = {
        "category": "Vandalism",
        "location": {"lat": 18.49, "lon": -69.93},
        "description": "grafiti en la escuela",
    }
    with TestClient(app) as c:
        resp = c.post("/api/reports", headers=BOB, json=payload)
        assert resp.status_code == 201
        created = resp.json()
        assert created["user_id"] == "bob"
        assert created["verified"] is False

        resp = c.post("/api/reports", headers=BOB, json={**payload, "description": "x" * 600})
        assert resp.status_code == 422
        assert resp.json()["detail"]["code"] == "invalid_report"

        stats = c.get("/api/users/me/stats", headers=BOB).json()
    assert stats == {"user_id": "bob", "reports_total": 1, "reports_verified": 0}


def test_leaderboard(backend):
    with TestClient(app) as c:
        resp = c.get("/api/neighborhoods/leaderboard")
    assert resp.status_code == 200
    assert [(s["rank"], s["neighborhood"]["name"], s["verification_rate"]) for s in resp.json()] == [
        (1, "Gazcue", 90),
        (2, "Naco", 50),
    ]


def test_report_detail_is_public_and_404s_for_unknown_ids(backend):
    with TestClient(app) as c:
        resp = c.get("/api/reports/pending")
        assert resp.status_code == 200
        assert resp.json()["id"] == "pending"
        assert resp.json()["verified"] is False

        resp = c.get("/api/reports/missing")
    assert resp.status_code == 404
    assert resp.json()["detail"]["code"] == "report_not_found"


def test_leaderboard_limit(backend):
    with TestClient(app) as c:
        resp = c.get("/api/neighborhoods/leaderboard", params={"limit": 1})
        assert [s["neighborhood"]["name"] for s in resp.json()] == ["Gazcue"]
        assert c.get("/api/neighborhoods/leaderboard", params={"limit": 0}).status_code == 422


def test_app_title_comes_from_settings():
    assert app.title == "BarrioWatch API"
