"""
Collaborator interfaces.

The workflows never talk to a concrete backend. They depend on these structural
protocols, which both the in-memory fakes (`barriowatch.stores.memory`) and the Supabase
REST adapter (`barriowatch.stores.supabase`) satisfy.

All store methods may raise `StoreError`.
"""

from __future__ import annotations

from typing import Any, Callable, Protocol

from barriowatch.core.geo import GeoPoint
from barriowatch.domain.errors import LocationUnavailable
from barriowatch.domain.models import (
    Neighborhood,
    Report,
    ReportCategory,
    ReportDraft,
    SosEvent,
    UserIdentity,
)

LocationCallback = Callable[[GeoPoint], None]
AudioCallback = Callable[[bytes], None]


class ReportStore(Protocol):
    async def list_unverified(self) -> list[Report]:
        """All reports with `verified == False`, newest first."""
        ...

    async def get_report(self, report_id: str) -> Report | None:
        """One report by id, verified or not; `None` when it does not exist."""
        ...

    async def list_verified(self, category: ReportCategory | None = None) -> list[Report]:
        ...

    async def list_by_user(self, user_id: str) -> list[Report]:
        ...

    async def create(self, user_id: str, draft: ReportDraft) -> Report:
        ...

    async def mark_verified(self, report_id: str) -> int:
        """Atomically set `verified = True` where it is still False; return affected rows."""
        ...


class NeighborhoodStore(Protocol):
    async def list_neighborhoods(self) -> list[Neighborhood]:
        ...


class AuthProvider(Protocol):
    async def current_user(self) -> UserIdentity | None:
        ...


class LocationSource(Protocol):
    async def get_once(self) -> GeoPoint:
        """Single fix; raises `LocationUnavailable`."""
        ...

    def watch(self, callback: LocationCallback) -> Any:
        """Deliver every new fix to `callback` until `cancel(handle)`."""
        ...

    def cancel(self, handle: Any) -> None:
        ...


class AudioCapture(Protocol):
    async def open(self, timeslice_seconds: float) -> Any:
        """Start capturing; raises `AudioCaptureFailed`."""
        ...

    def on_data(self, handle: Any, callback: AudioCallback) -> None:
        ...

    async def close(self, handle: Any) -> None:
        """Stop capturing and release the device."""
        ...


class BlobStore(Protocol):
    async def upload_blob(self, key: str, data: bytes, content_type: str) -> str:
        """Store `data` under `key`; return a URL for it."""
        ...


class EventStore(Protocol):
    async def insert_event(self, event: SosEvent) -> None:
        ...


async def locate_once(location: LocationSource | None) -> GeoPoint:
    """Fetch one fix, normalizing every failure (including no source) into `LocationUnavailable`."""
    if location is None:
        raise LocationUnavailable()
    try:
        return await location.get_once()
    except LocationUnavailable:
        raise
    except Exception as exc:
        raise LocationUnavailable(f"Location lookup failed: {exc}") from exc
