"""
Supabase REST adapter.

This module is responsible only for:
- talking to the hosted backend over HTTP (PostgREST tables, storage bucket, auth user endpoint),
- mapping table rows (Spanish column names, as created by the mobile app) into domain models,
- turning transport / payload failures into `StoreError`.

It intentionally contains no business rules; see `barriowatch.verification` and
`barriowatch.sos` for those.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from barriowatch.config.settings import Settings
from barriowatch.core.geo import GeoPoint
from barriowatch.core.http import build_async_client, request_json
from barriowatch.core.time import isoformat_z, parse_datetime
from barriowatch.domain.errors import StoreError
from barriowatch.domain.models import (
    Neighborhood,
    Report,
    ReportCategory,
    ReportDraft,
    SosEvent,
    UserIdentity,
    UserRole,
)

logger = logging.getLogger(__name__)

CATEGORY_LABELS: dict[ReportCategory, str] = {
    ReportCategory.THEFT: "Robo",
    ReportCategory.ASSAULT: "Asalto",
    ReportCategory.HOMICIDE: "Homicidio",
    ReportCategory.VANDALISM: "Vandalismo",
}
_CATEGORY_BY_LABEL = {label: category for category, label in CATEGORY_LABELS.items()}

_RETURN_ROWS = {"Prefer": "return=representation"}


def report_from_row(row: dict[str, Any]) -> Report:
    """Parse one `reports` row into a `Report`."""
    try:
        return Report(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            category=_CATEGORY_BY_LABEL.get(row["tipo"]) or ReportCategory(row["tipo"]),
            location=GeoPoint(lat=float(row["lat"]), lon=float(row["lng"])),
            description=str(row.get("descripcion") or ""),
            photo_url=row.get("foto_url"),
            police_folio=row.get("folio"),
            verified=bool(row.get("verificado", False)),
            created_at=parse_datetime(str(row["created_at"])),
        )
    except (KeyError, TypeError, ValueError, ValidationError) as exc:
        raise StoreError(f"Malformed report row: {row!r}") from exc


def row_from_draft(user_id: str, draft: ReportDraft) -> dict[str, Any]:
    return {
        "user_id": user_id,
        "tipo": CATEGORY_LABELS[draft.category],
        "lat": draft.location.lat,
        "lng": draft.location.lon,
        "descripcion": draft.description,
        "foto_url": draft.photo_url,
        "folio": draft.police_folio,
        "verificado": False,
    }


def neighborhood_from_row(row: dict[str, Any]) -> Neighborhood:
    try:
        return Neighborhood(
            id=str(row["id"]),
            name=str(row["nombre"]),
            reports_total=int(row.get("reportes_total") or 0),
            verified_count=int(row.get("verificados") or 0),
            current_prize=row.get("premio_actual"),
        )
    except (KeyError, TypeError, ValueError, ValidationError) as exc:
        raise StoreError(f"Malformed neighborhood row: {row!r}") from exc


def _as_rows(payload: Any, what: str) -> list[dict[str, Any]]:
    if payload is None:
        return []
    if not isinstance(payload, list) or not all(isinstance(r, dict) for r in payload):
        raise StoreError(f"Unexpected {what} payload: expected a list of rows")
    return payload


class SupabaseRest:
    """Thin wrapper over one shared `httpx.AsyncClient` with Supabase headers applied."""

    def __init__(self, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None):
        backend = settings.backend
        self.base_url = backend.url.rstrip("/")
        self._anon_key = backend.anon_key
        headers = {"apikey": backend.anon_key} if backend.anon_key else None
        self._client = build_async_client(
            self.base_url,
            headers=headers,
            timeout_seconds=settings.app.http_timeout_seconds,
            transport=transport,
        )

    async def call(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
        access_token: str | None = None,
    ) -> Any:
        request_headers: dict[str, str] = {}
        bearer = access_token or self._anon_key
        if bearer:
            request_headers["Authorization"] = f"Bearer {bearer}"
        if headers:
            request_headers.update(headers)
        try:
            return await request_json(
                self._client, method, path, params=params, json=json, content=content, headers=request_headers
            )
        except httpx.HTTPError as exc:
            logger.warning("Backend request failed: %s %s (%s)", method, path, exc)
            raise StoreError(f"{method} {path} failed: {exc}") from exc
        except ValueError as exc:
            raise StoreError(f"{method} {path} returned invalid JSON") from exc

    async def aclose(self) -> None:
        await self._client.aclose()


class SupabaseReportStore:
    def __init__(self, rest: SupabaseRest, *, table: str, access_token: str | None = None):
        self._rest = rest
        self._path = f"/rest/v1/{table}"
        self._access_token = access_token

    async def _select(self, filters: dict[str, str]) -> list[Report]:
        params = {"select": "*", **filters, "order": "created_at.desc"}
        payload = await self._rest.call("GET", self._path, params=params, access_token=self._access_token)
        return [report_from_row(r) for r in _as_rows(payload, "reports")]

    async def list_unverified(self) -> list[Report]:
        return await self._select({"verificado": "eq.false"})

    async def get_report(self, report_id: str) -> Report | None:
        rows = await self._select({"id": f"eq.{report_id}", "limit": "1"})
        return rows[0] if rows else None

    async def list_verified(self, category: ReportCategory | None = None) -> list[Report]:
        filters = {"verificado": "eq.true"}
        if category is not None:
            filters["tipo"] = f"eq.{CATEGORY_LABELS[category]}"
        return await self._select(filters)

    async def list_by_user(self, user_id: str) -> list[Report]:
        return await self._select({"user_id": f"eq.{user_id}"})

    async def create(self, user_id: str, draft: ReportDraft) -> Report:
        payload = await self._rest.call(
            "POST",
            self._path,
            json=[row_from_draft(user_id, draft)],
            headers=_RETURN_ROWS,
            access_token=self._access_token,
        )
        rows = _as_rows(payload, "created report")
        if not rows:
            raise StoreError("Report insert returned no rows; check row-level security policies")
        return report_from_row(rows[0])

    async def mark_verified(self, report_id: str) -> int:
        # The `verificado=eq.false` filter makes this a single conditional UPDATE server-side.
        payload = await self._rest.call(
            "PATCH",
            self._path,
            params={"id": f"eq.{report_id}", "verificado": "eq.false"},
            json={"verificado": True},
            headers=_RETURN_ROWS,
            access_token=self._access_token,
        )
        return len(_as_rows(payload, "verified report"))


class SupabaseNeighborhoodStore:
    def __init__(self, rest: SupabaseRest, *, table: str):
        self._rest = rest
        self._path = f"/rest/v1/{table}"

    async def list_neighborhoods(self) -> list[Neighborhood]:
        payload = await self._rest.call("GET", self._path, params={"select": "*", "order": "verificados.desc"})
        return [neighborhood_from_row(r) for r in _as_rows(payload, "neighborhoods")]


class SupabaseAuthProvider:
    """Resolves the user behind an access token, enriched with the profile role."""

    def __init__(self, rest: SupabaseRest, *, access_token: str | None, profiles_table: str):
        self._rest = rest
        self._access_token = access_token
        self._profiles_path = f"/rest/v1/{profiles_table}"

    async def current_user(self) -> UserIdentity | None:
        if not self._access_token:
            return None
        try:
            user = await self._rest.call("GET", "/auth/v1/user", access_token=self._access_token)
        except StoreError as exc:
            cause = exc.__cause__
            if isinstance(cause, httpx.HTTPStatusError) and cause.response.status_code in {401, 403}:
                logger.info("Access token rejected by auth endpoint")
                return None
            raise
        if not isinstance(user, dict) or not user.get("id"):
            return None

        user_id = str(user["id"])
        profiles = _as_rows(
            await self._rest.call(
                "GET",
                self._profiles_path,
                params={"select": "role,barrio", "id": f"eq.{user_id}"},
                access_token=self._access_token,
            ),
            "profiles",
        )
        profile = profiles[0] if profiles else {}
        role = UserRole.ADMIN if profile.get("role") == UserRole.ADMIN.value else UserRole.USER
        return UserIdentity(id=user_id, role=role, neighborhood=profile.get("barrio"))


class SupabaseBlobStore:
    def __init__(self, rest: SupabaseRest, *, bucket: str, access_token: str | None = None):
        self._rest = rest
        self._bucket = bucket
        self._access_token = access_token

    async def upload_blob(self, key: str, data: bytes, content_type: str) -> str:
        object_path = f"{self._bucket}/{quote(key, safe='/')}"
        await self._rest.call(
            "POST",
            f"/storage/v1/object/{object_path}",
            content=data,
            headers={"Content-Type": content_type, "x-upsert": "true"},
            access_token=self._access_token,
        )
        return f"{self._rest.base_url}/storage/v1/object/public/{object_path}"


class SupabaseEventStore:
    def __init__(self, rest: SupabaseRest, *, table: str, access_token: str | None = None):
        self._rest = rest
        self._path = f"/rest/v1/{table}"
        self._access_token = access_token

    async def insert_event(self, event: SosEvent) -> None:
        row = {
            "user_id": event.user_id,
            "lat": event.location.lat,
            "lng": event.location.lon,
            "audio_url": event.audio_url,
            "created_at": isoformat_z(event.created_at),
        }
        await self._rest.call(
            "POST",
            self._path,
            json=[row],
            headers={"Prefer": "return=minimal"},
            access_token=self._access_token,
        )


class SupabaseBackend:
    """All Supabase-backed stores sharing one HTTP client.

    `access_token` is the end user's session token; table and storage calls run under it
    so row-level security applies. Without a token the anon key is used.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        access_token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        rest: SupabaseRest | None = None,
    ):
        cfg = settings.backend
        token = access_token or cfg.access_token
        self._settings = settings
        self._rest = rest or SupabaseRest(settings, transport=transport)
        self.reports = SupabaseReportStore(self._rest, table=cfg.reports_table, access_token=token)
        self.neighborhoods = SupabaseNeighborhoodStore(self._rest, table=cfg.neighborhoods_table)
        self.blobs = SupabaseBlobStore(self._rest, bucket=settings.sos.audio_bucket, access_token=token)
        self.events = SupabaseEventStore(self._rest, table=cfg.events_table, access_token=token)
        self._access_token = token

    def auth(self, access_token: str | None = None) -> SupabaseAuthProvider:
        return SupabaseAuthProvider(
            self._rest,
            access_token=access_token or self._access_token,
            profiles_table=self._settings.backend.profiles_table,
        )

    def with_token(self, access_token: str | None) -> "SupabaseBackend":
        """Same HTTP client, stores acting under another user's session token."""
        return SupabaseBackend(self._settings, access_token=access_token, rest=self._rest)

    async def aclose(self) -> None:
        await self._rest.aclose()
