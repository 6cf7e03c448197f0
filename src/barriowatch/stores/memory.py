"""
In-memory backend.

Process-local implementations of every store protocol. Used by the test-suite and as the
reference for what the REST adapter must do (notably the single atomic conditional
write in `mark_verified`).
"""

from __future__ import annotations

import asyncio
import copy
import uuid
from dataclasses import dataclass, field

from barriowatch.core.time import utc_now
from barriowatch.domain.models import (
    Neighborhood,
    Report,
    ReportCategory,
    ReportDraft,
    SosEvent,
    UserIdentity,
)


def _newest_first(reports: list[Report]) -> list[Report]:
    return sorted(reports, key=lambda r: r.created_at, reverse=True)


class InMemoryReportStore:
    """A report table kept in a dict keyed by report id."""

    def __init__(self, reports: list[Report] | None = None):
        self._rows: dict[str, Report] = {r.id: r for r in (reports or [])}
        self._lock = asyncio.Lock()
        self.verify_writes = 0

    def get(self, report_id: str) -> Report | None:
        return self._rows.get(report_id)

    async def get_report(self, report_id: str) -> Report | None:
        return self.get(report_id)

    async def list_unverified(self) -> list[Report]:
        return _newest_first([r for r in self._rows.values() if not r.verified])

    async def list_verified(self, category: ReportCategory | None = None) -> list[Report]:
        rows = [r for r in self._rows.values() if r.verified]
        if category is not None:
            rows = [r for r in rows if r.category == category]
        return _newest_first(rows)

    async def list_by_user(self, user_id: str) -> list[Report]:
        return _newest_first([r for r in self._rows.values() if r.user_id == user_id])

    async def create(self, user_id: str, draft: ReportDraft) -> Report:
        report = Report(
            id=str(uuid.uuid4()),
            user_id=user_id,
            verified=False,
            created_at=utc_now(),
            **draft.model_dump(),
        )
        self._rows[report.id] = report
        return report

    async def mark_verified(self, report_id: str) -> int:
        async with self._lock:
            row = self._rows.get(report_id)
            if row is None or row.verified:
                return 0
            # Yield inside the critical section so racing verifiers really interleave.
            await asyncio.sleep(0)
            self._rows[report_id] = row.model_copy(update={"verified": True})
            self.verify_writes += 1
            return 1


class InMemoryNeighborhoodStore:
    def __init__(self, neighborhoods: list[Neighborhood] | None = None):
        self._rows = list(neighborhoods or [])

    async def list_neighborhoods(self) -> list[Neighborhood]:
        return list(self._rows)


@dataclass
class StaticAuthProvider:
    """Always resolves to the same user (or to nobody)."""

    user: UserIdentity | None = None

    async def current_user(self) -> UserIdentity | None:
        return self.user


@dataclass
class InMemoryBlobStore:
    bucket: str = "sos-audio"
    blobs: dict[str, tuple[bytes, str]] = field(default_factory=dict)

    async def upload_blob(self, key: str, data: bytes, content_type: str) -> str:
        self.blobs[key] = (bytes(data), content_type)
        return f"memory://{self.bucket}/{key}"


@dataclass
class InMemoryEventStore:
    events: list[SosEvent] = field(default_factory=list)

    async def insert_event(self, event: SosEvent) -> None:
        self.events.append(event)


class InMemoryBackend:
    """Bundles the in-memory stores behind the same surface as `SupabaseBackend`."""

    def __init__(
        self,
        *,
        reports: list[Report] | None = None,
        neighborhoods: list[Neighborhood] | None = None,
        users_by_token: dict[str, UserIdentity] | None = None,
        bucket: str = "sos-audio",
    ):
        self.reports = InMemoryReportStore(reports)
        self.neighborhoods = InMemoryNeighborhoodStore(neighborhoods)
        self.blobs = InMemoryBlobStore(bucket=bucket)
        self.events = InMemoryEventStore()
        self._users_by_token = dict(users_by_token or {})
        self._access_token: str | None = None

    def with_token(self, access_token: str | None) -> "InMemoryBackend":
        view = copy.copy(self)
        view._access_token = access_token
        return view

    def auth(self, access_token: str | None = None) -> StaticAuthProvider:
        token = access_token or self._access_token
        return StaticAuthProvider(self._users_by_token.get(token) if token else None)

    async def aclose(self) -> None:
        return None
