"""
Domain models (Pydantic).

These types represent the stable "contract" between layers:
- store adapters (`Report`, `SosEvent`, `Neighborhood` rows),
- workflow inputs (`UserIdentity`, `ReportDraft`),
- API/CLI output (`FeedPage`, `NeighborhoodStanding`, `UserReportStats`).

Coordinates reuse the core `GeoPoint` dataclass so workflow code can hand them straight
to `haversine_m` without conversion.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from barriowatch.core.geo import GeoPoint


class ReportCategory(str, Enum):
    """Fixed incident categories."""

    THEFT = "Theft"
    ASSAULT = "Assault"
    HOMICIDE = "Homicide"
    VANDALISM = "Vandalism"


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class UserIdentity(BaseModel):
    """Minimal view of the acting user; owned by the auth/profile collaborator."""

    model_config = ConfigDict(frozen=True)

    id: str
    role: UserRole = UserRole.USER
    neighborhood: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class ReportDraft(BaseModel):
    """What a user submits; the store assigns id, timestamp and the verified flag."""

    category: ReportCategory
    location: GeoPoint
    description: str
    photo_url: str | None = None
    police_folio: str | None = None

    @field_validator("description")
    @classmethod
    def _strip_description(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("description must not be empty")
        return value

    @field_validator("police_folio", "photo_url")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None


class Report(BaseModel):
    """One submitted incident."""

    id: str
    user_id: str
    category: ReportCategory
    location: GeoPoint
    description: str
    photo_url: str | None = None
    police_folio: str | None = None
    verified: bool = False
    created_at: datetime


class SosEvent(BaseModel):
    """A single emergency telemetry snapshot; append-only."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    location: GeoPoint
    audio_url: str | None = None
    created_at: datetime


class Neighborhood(BaseModel):
    """Precomputed per-neighborhood counters used by the leaderboard."""

    id: str
    name: str
    reports_total: int = Field(0, ge=0)
    verified_count: int = Field(0, ge=0)
    current_prize: str | None = None


class NeighborhoodStanding(BaseModel):
    rank: int = Field(..., ge=1)
    neighborhood: Neighborhood
    verification_rate: int = Field(..., ge=0, le=100)


class FeedPage(BaseModel):
    """First N verified reports plus the size of the whole filtered set."""

    reports: list[Report]
    total: int = Field(..., ge=0)


class UserReportStats(BaseModel):
    user_id: str
    reports_total: int = Field(..., ge=0)
    reports_verified: int = Field(..., ge=0)
