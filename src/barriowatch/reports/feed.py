"""
Report feed, submission and per-user counters.

Only verified reports are public: the feed never shows pending ones. New submissions
always start unverified and enter the verification workflow.
"""

from __future__ import annotations

import logging

from barriowatch.config.settings import Settings, get_settings
from barriowatch.domain.errors import ReportNotFound, ReportValidationError
from barriowatch.domain.models import (
    FeedPage,
    Report,
    ReportCategory,
    ReportDraft,
    UserIdentity,
    UserReportStats,
)
from barriowatch.stores.base import ReportStore

logger = logging.getLogger(__name__)


class ReportFeed:
    def __init__(self, reports: ReportStore, settings: Settings | None = None):
        self._reports = reports
        self._settings = settings or get_settings()

    async def latest(self, category: ReportCategory | None = None, limit: int | None = None) -> FeedPage:
        """Newest verified reports, optionally of one category."""
        limit = int(limit) if limit is not None else self._settings.reports.feed_limit
        if limit < 1:
            raise ReportValidationError("limit must be at least 1")
        reports = await self._reports.list_verified(category)
        reports = sorted(reports, key=lambda r: r.created_at, reverse=True)
        return FeedPage(reports=reports[:limit], total=len(reports))

    async def detail(self, report_id: str) -> Report:
        """One report by id, pending or verified.

        Raises:
            ReportNotFound: no report with that id.
        """
        report = await self._reports.get_report(report_id)
        if report is None:
            raise ReportNotFound(report_id, f"Report {report_id!r} does not exist.")
        return report

    async def submit(self, author: UserIdentity, draft: ReportDraft) -> Report:
        """Store a new, unverified report owned by `author`.

        Raises:
            ReportValidationError: description longer than `reports.description_max_length`.
            StoreError: the store rejected the insert.
        """
        max_len = self._settings.reports.description_max_length
        if len(draft.description) > max_len:
            raise ReportValidationError(f"description must be at most {max_len} characters")

        report = await self._reports.create(author.id, draft)
        logger.info("Report %s (%s) submitted by %s", report.id, report.category.value, author.id)
        return report

    async def user_stats(self, user_id: str) -> UserReportStats:
        reports = await self._reports.list_by_user(user_id)
        return UserReportStats(
            user_id=user_id,
            reports_total=len(reports),
            reports_verified=sum(1 for r in reports if r.verified),
        )
