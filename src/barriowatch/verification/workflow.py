"""
Proximity-gated report verification.

A report moves `Unverified -> Verified` exactly once. Who may trigger that transition:
- never the report's author (all roles),
- a regular user only when standing within `verification.verify_radius_m` of the incident,
- an admin from anywhere.

Non-admins only see unverified reports within `verification.listing_radius_m` of where
they are. The workflow keeps no state between calls; everything lives in the report store.
"""

from __future__ import annotations

import logging
from typing import Sequence

from barriowatch.config.settings import Settings, get_settings
from barriowatch.core.geo import haversine_m
from barriowatch.domain.errors import (
    AlreadyVerified,
    LocationUnavailable,
    ReportNotFound,
    SelfVerificationForbidden,
    TooFarFromIncident,
)
from barriowatch.domain.models import Report, UserIdentity
from barriowatch.stores.base import LocationSource, ReportStore, locate_once

logger = logging.getLogger(__name__)


class VerificationWorkflow:
    """List reports a user may verify and apply the verify transition."""

    def __init__(self, reports: ReportStore, settings: Settings | None = None):
        self._reports = reports
        self._settings = settings or get_settings()

    @property
    def listing_radius_m(self) -> float:
        return float(self._settings.verification.listing_radius_m)

    @property
    def verify_radius_m(self) -> float:
        return float(self._settings.verification.verify_radius_m)

    async def list_verifiable_reports(
        self, requester: UserIdentity, location: LocationSource | None
    ) -> list[Report]:
        """Unverified reports the requester can act on, newest first.

        Admins get the full set; their location is looked up for display only and may be
        missing. Everyone else needs a location and only sees reports within the listing
        radius.

        Raises:
            LocationUnavailable: non-admin requester without a usable location.
            StoreError: the report store failed.
        """
        if requester.is_admin:
            try:
                await locate_once(location)
            except LocationUnavailable:
                logger.info("Admin %s listing without location", requester.id)
            reports = await self._reports.list_unverified()
        else:
            here = await locate_once(location)
            radius = self.listing_radius_m
            reports = [
                r for r in await self._reports.list_unverified() if haversine_m(here, r.location) <= radius
            ]

        return sorted(reports, key=lambda r: r.created_at, reverse=True)

    async def verify_report(
        self,
        requester: UserIdentity,
        report_id: str,
        location: LocationSource | None,
        *,
        candidates: Sequence[Report] | None = None,
    ) -> Report:
        """Mark `report_id` verified on behalf of `requester` and return the updated report.

        `candidates` is the set of reports the caller currently shows; when omitted, the
        pending set is read from the store. The first failing check wins:
        not found, self-verification, proximity (non-admins only), lost race.

        Raises:
            ReportNotFound, SelfVerificationForbidden, LocationUnavailable,
            TooFarFromIncident, AlreadyVerified, StoreError
        """
        if candidates is None:
            candidates = await self._reports.list_unverified()
        report = next((r for r in candidates if r.id == report_id), None)
        if report is None:
            logger.info("Verify %s by %s refused: not found", report_id, requester.id)
            raise ReportNotFound(report_id)

        if report.user_id == requester.id:
            logger.warning("Verify %s by %s refused: own report", report_id, requester.id)
            raise SelfVerificationForbidden(report_id)

        if not requester.is_admin:
            here = await locate_once(location)
            distance_m = haversine_m(here, report.location)
            if distance_m > self.verify_radius_m:
                logger.info(
                    "Verify %s by %s refused: %.0fm away (max %.0fm)",
                    report_id,
                    requester.id,
                    distance_m,
                    self.verify_radius_m,
                )
                raise TooFarFromIncident(distance_m, self.verify_radius_m)

        affected = await self._reports.mark_verified(report_id)
        if affected == 0:
            logger.info("Verify %s by %s lost the race: already verified", report_id, requester.id)
            raise AlreadyVerified(report_id)

        logger.info("Report %s verified by %s", report_id, requester.id)
        return report.model_copy(update={"verified": True})
