"""
Neighborhood leaderboard.

Counters are precomputed by the backend; this module only ranks them. The neighborhood
with the highest share of verified reports leads.
"""

from __future__ import annotations

from barriowatch.config.settings import Settings, get_settings
from barriowatch.domain.errors import ReportValidationError
from barriowatch.domain.models import Neighborhood, NeighborhoodStanding
from barriowatch.stores.base import NeighborhoodStore


def verification_rate(neighborhood: Neighborhood) -> int:
    """Verified share in whole percent (0 when there are no reports)."""
    if neighborhood.reports_total <= 0:
        return 0
    rate = round(neighborhood.verified_count / neighborhood.reports_total * 100)
    return max(0, min(100, rate))


def rank_neighborhoods(neighborhoods: list[Neighborhood]) -> list[NeighborhoodStanding]:
    ordered = sorted(
        neighborhoods,
        key=lambda n: (-verification_rate(n), -n.verified_count, n.name),
    )
    return [
        NeighborhoodStanding(rank=i, neighborhood=n, verification_rate=verification_rate(n))
        for i, n in enumerate(ordered, start=1)
    ]


class Leaderboard:
    def __init__(self, store: NeighborhoodStore, settings: Settings | None = None):
        self._store = store
        self._settings = settings or get_settings()

    async def standings(self, limit: int | None = None) -> list[NeighborhoodStanding]:
        """Top `limit` neighborhoods (default `reports.leaderboard_limit`)."""
        limit = int(limit) if limit is not None else self._settings.reports.leaderboard_limit
        if limit < 1:
            raise ReportValidationError("limit must be at least 1")
        return rank_neighborhoods(await self._store.list_neighborhoods())[:limit]
