"""Match discovery, persistence, notification and rescans"""

import asyncio
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Union
from claimdesk.constants import (
    ActivityAction,
    ItemStatus,
    MatchJobType,
    MatchStatus,
    NotificationEvent,
    GENERATE_MATCHES_CONCURRENCY,
    RESCAN_CONCURRENCY,
    SYSTEM_ACTOR
)
from claimdesk.models.activity import ActivityEntry
from claimdesk.models.item import Item, LostReport
from claimdesk.models.match import Match, MatchView, RescanSummary
from claimdesk.models.settings import MatchSettings, SettingsUpdate
from claimdesk.orchestrator.settings_store import SettingsStore
from claimdesk.tools.notification_tools import NotificationDispatcher
from claimdesk.tools.record_store import RecordStore
from claimdesk.tools.scoring_tools import score
from claimdesk.utils import metrics
from claimdesk.utils.errors import NotFoundError, ValidationError
from claimdesk.utils.logging import get_logger
from claimdesk.utils.timeutils import ensure_utc

logger = get_logger(__name__)

# A notification to send once the enclosing transaction has committed
PendingNotification = Tuple[str, Dict[str, Any]]


def _mentions(terms: List[str], *texts: Optional[str]) -> bool:
    haystack = " ".join(text for text in texts if text).lower()
    return any(term in haystack for term in terms)


class MatchManager:
    """
    Links found items to lost reports.

    Every call works from one settings snapshot. Pairs scoring below the
    reject threshold are never persisted; each (item, report) pair is stored
    at most once.
    """

    def __init__(
        self,
        store: RecordStore,
        settings_store: SettingsStore,
        notifier: NotificationDispatcher,
        generate_concurrency: int = GENERATE_MATCHES_CONCURRENCY,
        rescan_concurrency: int = RESCAN_CONCURRENCY
    ):
        self.store = store
        self.settings_store = settings_store
        self.notifier = notifier
        self.generate_concurrency = generate_concurrency
        self.rescan_concurrency = rescan_concurrency

    # Configuration

    async def get_config(self) -> MatchSettings:
        return await self.settings_store.get()

    async def update_config(self, changes: Union[SettingsUpdate, Dict[str, Any]]) -> MatchSettings:
        return await self.settings_store.update(changes)

    # Notification policy

    @staticmethod
    def _apply_policy(match: Match, report: LostReport, settings: MatchSettings) -> Optional[PendingNotification]:
        """
        Auto-confirm or flag a match for notification

        Mutates the match in place; returns the notification to send after
        commit, if any. The potential-match notification is sent once.
        """
        data = {
            "match_id": match.id,
            "item_id": match.item_id,
            "lost_report_id": match.lost_report_id,
            "confidence_score": match.confidence_score
        }

        if match.confidence_score >= settings.auto_match_threshold and match.status == MatchStatus.PENDING:
            match.status = MatchStatus.AUTO_CONFIRMED
            already_notified = match.notified
            match.notified = True
            logger.info("Auto-confirmed match", match_id=match.id, score=match.confidence_score)
            if already_notified:
                return None
            return report.reported_by, {**data, "auto_confirmed": True}

        if match.confidence_score >= settings.reject_threshold and not match.notified:
            match.notified = True
            return report.reported_by, data

        return None

    def _send(self, notifications: List[PendingNotification]) -> None:
        for user_id, data in notifications:
            self.notifier.dispatch(NotificationEvent.MATCH_FOUND, user_id, data)

    # Discovery

    async def generate_matches(
        self,
        item_id: Optional[str] = None,
        lost_report_id: Optional[str] = None
    ) -> List[Match]:
        """
        Score a new item against open reports, or a new report against available items

        Args:
            item_id: Newly registered found item
            lost_report_id: Newly submitted lost report

        Returns:
            Matches for the source record (new and pre-existing), highest confidence first

        Raises:
            ValidationError: If both or neither source IDs are given
            NotFoundError: If the source record does not exist
        """
        if bool(item_id) == bool(lost_report_id):
            raise ValidationError("Provide exactly one of item_id or lost_report_id")

        settings = await self.settings_store.get()

        if lost_report_id:
            report = await self.store.get_report(lost_report_id)
            if report is None:
                raise NotFoundError(f"Lost report not found: {lost_report_id}")
            items = await self.store.list_items(category=report.category, status=ItemStatus.AVAILABLE)
            pairs = [(item, report) for item in items]
            trigger = "report"
        else:
            item = await self.store.get_item(item_id)
            if item is None:
                raise NotFoundError(f"Item not found: {item_id}")
            reports = await self.store.list_reports(category=item.category)
            pairs = [(item, report) for report in reports]
            trigger = "item"

        semaphore = asyncio.Semaphore(self.generate_concurrency)

        async def evaluate(item: Item, report: LostReport) -> Optional[Match]:
            async with semaphore:
                return await self._evaluate_pair(item, report, settings, trigger)

        results = await asyncio.gather(*(evaluate(item, report) for item, report in pairs))
        matches = [match for match in results if match is not None]
        matches.sort(key=lambda m: m.confidence_score, reverse=True)

        logger.info(
            "Generated matches",
            source=trigger,
            source_id=lost_report_id or item_id,
            candidates=len(pairs),
            matches=len(matches),
            settings_version=settings.version
        )
        return matches

    async def _evaluate_pair(
        self,
        item: Item,
        report: LostReport,
        settings: MatchSettings,
        trigger: str
    ) -> Optional[Match]:
        metrics.match_comparisons.labels(trigger=trigger).inc()
        breakdown = score(item, report, settings.weights)
        if breakdown.total_score < settings.reject_threshold:
            metrics.match_candidates_dropped.inc()
            return None

        notifications: List[PendingNotification] = []
        async with self.store.transaction():
            existing = await self.store.find_match(item.id, report.id)
            if existing is not None:
                return existing

            match = Match.from_score(item.id, report.id, breakdown)
            pending = self._apply_policy(match, report, settings)
            if pending:
                notifications.append(pending)
            await self.store.save_match(match)
            await self.store.append_activity(ActivityEntry(
                action=ActivityAction.MATCH_GENERATED,
                user_id=SYSTEM_ACTOR,
                subject_id=report.reported_by,
                entity_type="Match",
                entity_id=match.id,
                metadata={"confidence_score": match.confidence_score, "status": match.status.value}
            ))

        metrics.matches_created.labels(status=match.status.value).inc()
        metrics.match_confidence.observe(match.confidence_score)
        self._send(notifications)
        return match

    # Rescan

    async def rescan_all(self) -> RescanSummary:
        """
        Re-score every PENDING match against the current settings

        Matches falling below the reject threshold are deleted; those reaching
        the auto threshold are auto-confirmed; the rest get refreshed scores.
        Matches whose item or report is gone are skipped.
        """
        settings = await self.settings_store.get()
        pending = await self.store.list_matches(status=MatchStatus.PENDING)
        summary = RescanSummary(scanned=len(pending))
        semaphore = asyncio.Semaphore(self.rescan_concurrency)

        async def rescan(match: Match) -> str:
            async with semaphore:
                return await self._rescan_match(match.id, settings)

        with metrics.rescan_duration.time():
            outcomes = await asyncio.gather(*(rescan(match) for match in pending))

        for outcome in outcomes:
            setattr(summary, outcome, getattr(summary, outcome) + 1)
            metrics.rescan_outcomes.labels(outcome=outcome).inc()

        logger.info("Rescan complete", settings_version=settings.version, **summary.model_dump())
        return summary

    async def _rescan_match(self, match_id: str, settings: MatchSettings) -> str:
        notifications: List[PendingNotification] = []
        async with self.store.transaction():
            match = await self.store.get_match(match_id)
            if match is None or match.status != MatchStatus.PENDING:
                return "skipped"

            item = await self.store.get_item(match.item_id)
            report = await self.store.get_report(match.lost_report_id)
            if item is None or report is None:
                logger.warning("Skipping match with missing references", match_id=match_id)
                return "skipped"

            metrics.match_comparisons.labels(trigger="rescan").inc()
            breakdown = score(item, report, settings.weights)
            if breakdown.total_score < settings.reject_threshold:
                await self.store.delete_match(match.id)
                logger.info("Deleted match below reject threshold", match_id=match.id, score=breakdown.total_score)
                return "deleted"

            match.apply_score(breakdown)
            pending = self._apply_policy(match, report, settings)
            if pending:
                notifications.append(pending)
            await self.store.save_match(match)

        self._send(notifications)
        return "promoted" if match.status == MatchStatus.AUTO_CONFIRMED else "updated"

    # Review

    async def update_match_status(
        self,
        match_id: str,
        status: Union[MatchStatus, str],
        actor_id: str = SYSTEM_ACTOR
    ) -> Match:
        """
        Record a staff decision on a match

        Raises:
            ValidationError: If status is not CONFIRMED or REJECTED
            NotFoundError: If the match does not exist
        """
        try:
            status = MatchStatus(status)
        except ValueError:
            raise ValidationError(f"Invalid match status: {status}")
        if status not in (MatchStatus.CONFIRMED, MatchStatus.REJECTED):
            raise ValidationError("Match status can only be set to CONFIRMED or REJECTED")

        notifications: List[PendingNotification] = []
        async with self.store.transaction():
            match = await self.store.get_match(match_id)
            if match is None:
                raise NotFoundError(f"Match not found: {match_id}")

            previous = match.status
            match.status = status
            match.touch()

            if status == MatchStatus.CONFIRMED and not match.notified:
                report = await self.store.get_report(match.lost_report_id)
                if report is not None:
                    settings = await self.settings_store.get()
                    pending = self._apply_policy(match, report, settings)
                    if pending:
                        notifications.append(pending)

            await self.store.save_match(match)
            await self.store.append_activity(ActivityEntry(
                action=ActivityAction.MATCH_STATUS_UPDATED,
                user_id=actor_id,
                entity_type="Match",
                entity_id=match.id,
                metadata={"from": previous.value, "to": status.value}
            ))

        self._send(notifications)
        logger.info("Match status updated", match_id=match_id, status=status.value, actor_id=actor_id)
        return match

    # Read models

    async def _views(self, matches: List[Match]) -> List[MatchView]:
        views = []
        for match in matches:
            views.append(MatchView(
                match=match,
                item=await self.store.get_item(match.item_id),
                report=await self.store.get_report(match.lost_report_id)
            ))
        return views

    async def get_matches_for_item(self, item_id: str) -> List[MatchView]:
        matches = await self.store.list_matches(item_id=item_id)
        matches.sort(key=lambda m: m.confidence_score, reverse=True)
        return await self._views(matches)

    async def get_matches_for_report(self, lost_report_id: str) -> List[MatchView]:
        matches = await self.store.list_matches(lost_report_id=lost_report_id)
        matches.sort(key=lambda m: m.confidence_score, reverse=True)
        return await self._views(matches)

    async def list_matches(
        self,
        status: Optional[MatchStatus] = None,
        min_confidence: Optional[int] = None,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20
    ) -> Tuple[List[MatchView], int]:
        """
        Filtered, paginated match listing for staff review

        search keeps matches whose item or report mentions any of its terms
        longer than two characters (description, keywords or location).

        Returns:
            (views for the requested page, total matching count)
        """
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive")

        from_date = ensure_utc(from_date)
        to_date = ensure_utc(to_date)
        matches = [
            match for match in await self.store.list_matches(status=status)
            if (min_confidence is None or match.confidence_score >= min_confidence)
            and (from_date is None or match.created_at >= from_date)
            and (to_date is None or match.created_at <= to_date)
        ]

        terms = [term for term in (search or "").lower().split() if len(term) > 2]
        if terms:
            item_ids = {
                item.id for item in await self.store.list_items()
                if _mentions(terms, item.description, item.location_found, *item.keywords)
            }
            report_ids = {
                report.id for report in await self.store.list_reports()
                if _mentions(terms, report.description, report.location_lost, *report.keywords)
            }
            matches = [m for m in matches if m.item_id in item_ids or m.lost_report_id in report_ids]

        matches.sort(key=lambda m: (m.confidence_score, m.created_at), reverse=True)
        start = (page - 1) * limit
        return await self._views(matches[start:start + limit]), len(matches)

    # Background jobs

    async def process_match_job(self, job_type: Union[MatchJobType, str], record_id: str) -> List[Match]:
        """Run a queued match job for a newly created item or report"""
        try:
            job_type = MatchJobType(job_type)
        except ValueError:
            raise ValidationError(f"Unknown match job type: {job_type}")

        logger.info("Processing match job", job_type=job_type.value, record_id=record_id)
        if job_type == MatchJobType.ITEM_CREATED:
            return await self.generate_matches(item_id=record_id)
        return await self.generate_matches(lost_report_id=record_id)
