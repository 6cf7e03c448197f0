"""
API routes.

Endpoints:
- GET  `/api/health`: liveness.
- GET  `/api/reports`: public feed of verified reports.
- POST `/api/reports`: submit a report (auth).
- GET  `/api/reports/verifiable`: reports the caller may verify (auth).
- POST `/api/reports/{report_id}/verify`: verify one report (auth).
- GET  `/api/reports/{report_id}`: one report by id.
- GET  `/api/neighborhoods/leaderboard`: neighborhood standings.
- GET  `/api/users/me/stats`: the caller's report counters (auth).

The caller's position travels with each request (`lat`/`lon`), so every verify call uses a
fresh fix. Domain errors map to one HTTP status and a stable `code` each.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from pydantic import BaseModel

from barriowatch.config.settings import get_settings
from barriowatch.core.geo import GeoPoint
from barriowatch.devices.fixed import FixedLocationSource
from barriowatch.domain.errors import (
    AlreadyVerified,
    BarrioWatchError,
    LocationUnavailable,
    ReportNotFound,
    ReportValidationError,
    SelfVerificationForbidden,
    StoreError,
    TooFarFromIncident,
)
from barriowatch.domain.models import (
    FeedPage,
    NeighborhoodStanding,
    Report,
    ReportCategory,
    ReportDraft,
    UserIdentity,
    UserReportStats,
)
from barriowatch.reports.feed import ReportFeed
from barriowatch.reports.leaderboard import Leaderboard
from barriowatch.stores.supabase import SupabaseBackend
from barriowatch.verification.workflow import VerificationWorkflow

router = APIRouter()

_STATUS_BY_ERROR: list[tuple[type[BarrioWatchError], int]] = [
    (ReportNotFound, 404),
    (SelfVerificationForbidden, 403),
    (TooFarFromIncident, 422),
    (AlreadyVerified, 409),
    (LocationUnavailable, 400),
    (ReportValidationError, 422),
    (StoreError, 502),
]


class LocationBody(BaseModel):
    """Caller position; omit both fields when the device has no fix."""

    lat: float | None = None
    lon: float | None = None


@dataclass(frozen=True)
class Caller:
    backend: Any
    user: UserIdentity


@lru_cache
def _backend() -> Any:
    return SupabaseBackend(get_settings())


def _http_error(exc: BarrioWatchError) -> HTTPException:
    status = next((code for kind, code in _STATUS_BY_ERROR if isinstance(exc, kind)), 500)
    detail: dict[str, Any] = {"code": exc.code, "message": str(exc)}
    if isinstance(exc, TooFarFromIncident):
        detail["distance_m"] = round(exc.distance_m, 1)
        detail["max_distance_m"] = exc.max_distance_m
    return HTTPException(status_code=status, detail=detail)


def _location(lat: float | None, lon: float | None) -> FixedLocationSource:
    if lat is None or lon is None:
        return FixedLocationSource(None)
    return FixedLocationSource(GeoPoint(lat=float(lat), lon=float(lon)))


async def _caller(authorization: str | None = Header(default=None)) -> Caller:
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail={"code": "unauthorized", "message": "Bearer token required"})

    backend = _backend().with_token(token.strip())
    try:
        user = await backend.auth().current_user()
    except BarrioWatchError as e:
        raise _http_error(e) from e
    if user is None:
        raise HTTPException(status_code=401, detail={"code": "unauthorized", "message": "Unknown or expired token"})
    return Caller(backend=backend, user=user)


@router.get("/api/health")
def get_health() -> dict:
    return {"status": "ok"}


@router.get("/api/reports", response_model=FeedPage)
async def get_reports(
    category: ReportCategory | None = None,
    limit: int | None = Query(default=None, ge=1, le=100),
) -> FeedPage:
    """Public feed of verified reports, newest first."""
    feed = ReportFeed(_backend().reports, get_settings())
    try:
        return await feed.latest(category=category, limit=limit)
    except BarrioWatchError as e:
        raise _http_error(e) from e


@router.post("/api/reports", response_model=Report, status_code=201)
async def post_report(draft: ReportDraft, caller: Caller = Depends(_caller)) -> Report:
    feed = ReportFeed(caller.backend.reports, get_settings())
    try:
        return await feed.submit(caller.user, draft)
    except BarrioWatchError as e:
        raise _http_error(e) from e


@router.get("/api/reports/verifiable", response_model=list[Report])
async def get_verifiable_reports(
    lat: float | None = None,
    lon: float | None = None,
    caller: Caller = Depends(_caller),
) -> list[Report]:
    workflow = VerificationWorkflow(caller.backend.reports, get_settings())
    try:
        return await workflow.list_verifiable_reports(caller.user, _location(lat, lon))
    except BarrioWatchError as e:
        raise _http_error(e) from e


@router.post("/api/reports/{report_id}/verify", response_model=Report)
async def post_verify_report(
    report_id: str,
    body: LocationBody | None = None,
    caller: Caller = Depends(_caller),
) -> Report:
    body = body or LocationBody()
    workflow = VerificationWorkflow(caller.backend.reports, get_settings())
    try:
        return await workflow.verify_report(caller.user, report_id, _location(body.lat, body.lon))
    except BarrioWatchError as e:
        raise _http_error(e) from e


@router.get("/api/reports/{report_id}", response_model=Report)
async def get_report(report_id: str) -> Report:
    feed = ReportFeed(_backend().reports, get_settings())
    try:
        return await feed.detail(report_id)
    except BarrioWatchError as e:
        raise _http_error(e) from e


@router.get("/api/neighborhoods/leaderboard", response_model=list[NeighborhoodStanding])
async def get_leaderboard(
    limit: int | None = Query(default=None, ge=1, le=100),
) -> list[NeighborhoodStanding]:
    try:
        return await Leaderboard(_backend().neighborhoods, get_settings()).standings(limit)
    except BarrioWatchError as e:
        raise _http_error(e) from e


@router.get("/api/users/me/stats", response_model=UserReportStats)
async def get_my_stats(caller: Caller = Depends(_caller)) -> UserReportStats:
    feed = ReportFeed(caller.backend.reports, get_settings())
    try:
        return await feed.user_stats(caller.user.id)
    except BarrioWatchError as e:
        raise _http_error(e) from e
