"""In-memory record store for items, lost reports, matches, claims and activity"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple
from claimdesk.constants import ActivityAction, ItemCategory, ItemStatus, MatchStatus
from claimdesk.models.activity import ActivityEntry
from claimdesk.models.claim import Claim
from claimdesk.models.item import Item, LostReport
from claimdesk.models.match import Match
from claimdesk.utils.logging import get_logger

logger = get_logger(__name__)


class RecordStore:
    """
    Repository over the engine's records.

    Every read applies the soft-delete filter unless include_deleted is set,
    and returns a private copy: a caller only changes stored state through the
    save_* methods. Units of work run inside transaction(), which serializes
    writers and restores the previous state if the block raises.
    """

    def __init__(self):
        self._items: Dict[str, Item] = {}
        self._reports: Dict[str, LostReport] = {}
        self._matches: Dict[str, Match] = {}
        self._claims: Dict[str, Claim] = {}
        self._activities: List[ActivityEntry] = []
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def transaction(self):
        async with self._lock:
            snapshot = self._snapshot()
            try:
                yield self
            except BaseException:
                self._restore(snapshot)
                logger.debug("Transaction rolled back")
                raise

    def _snapshot(self) -> Tuple:
        # Stored records are never mutated in place, so shallow copies suffice
        return (
            dict(self._items),
            dict(self._reports),
            dict(self._matches),
            dict(self._claims),
            list(self._activities)
        )

    def _restore(self, snapshot: Tuple) -> None:
        self._items, self._reports, self._matches, self._claims, self._activities = snapshot

    @staticmethod
    def _live(record, include_deleted: bool):
        if record is None or (record.deleted_at is not None and not include_deleted):
            return None
        return record.model_copy(deep=True)

    # Items

    async def save_item(self, item: Item) -> Item:
        self._items[item.id] = item.model_copy(deep=True)
        return item

    async def get_item(self, item_id: str, include_deleted: bool = False) -> Optional[Item]:
        return self._live(self._items.get(item_id), include_deleted)

    async def list_items(
        self,
        category: Optional[ItemCategory] = None,
        status: Optional[ItemStatus] = None
    ) -> List[Item]:
        return [
            item.model_copy(deep=True)
            for item in self._items.values()
            if item.deleted_at is None
            and (category is None or item.category == category)
            and (status is None or item.status == status)
        ]

    # Lost reports

    async def save_report(self, report: LostReport) -> LostReport:
        self._reports[report.id] = report.model_copy(deep=True)
        return report

    async def get_report(self, report_id: str, include_deleted: bool = False) -> Optional[LostReport]:
        return self._live(self._reports.get(report_id), include_deleted)

    async def list_reports(self, category: Optional[ItemCategory] = None) -> List[LostReport]:
        return [
            report.model_copy(deep=True)
            for report in self._reports.values()
            if report.deleted_at is None and (category is None or report.category == category)
        ]

    # Matches

    async def save_match(self, match: Match) -> Match:
        self._matches[match.id] = match.model_copy(deep=True)
        return match

    async def get_match(self, match_id: str) -> Optional[Match]:
        return self._live(self._matches.get(match_id), False)

    async def find_match(self, item_id: str, lost_report_id: str) -> Optional[Match]:
        """Look up the unique match for an (item, report) pair"""
        for match in self._matches.values():
            if match.deleted_at is None and match.item_id == item_id and match.lost_report_id == lost_report_id:
                return match.model_copy(deep=True)
        return None

    async def list_matches(
        self,
        status: Optional[MatchStatus] = None,
        item_id: Optional[str] = None,
        lost_report_id: Optional[str] = None
    ) -> List[Match]:
        return [
            match.model_copy(deep=True)
            for match in self._matches.values()
            if match.deleted_at is None
            and (status is None or match.status == status)
            and (item_id is None or match.item_id == item_id)
            and (lost_report_id is None or match.lost_report_id == lost_report_id)
        ]

    async def delete_match(self, match_id: str) -> bool:
        return self._matches.pop(match_id, None) is not None

    # Claims

    async def save_claim(self, claim: Claim) -> Claim:
        self._claims[claim.id] = claim.model_copy(deep=True)
        return claim

    async def get_claim(self, claim_id: str, include_deleted: bool = False) -> Optional[Claim]:
        return self._live(self._claims.get(claim_id), include_deleted)

    async def list_claims(
        self,
        item_id: Optional[str] = None,
        claimant_ref: Optional[str] = None,
        since: Optional[datetime] = None
    ) -> List[Claim]:
        return [
            claim.model_copy(deep=True)
            for claim in self._claims.values()
            if claim.deleted_at is None
            and (item_id is None or claim.item_id == item_id)
            and (claimant_ref is None or claim.claimant_ref == claimant_ref)
            and (since is None or claim.created_at >= since)
        ]

    async def count_claims(self, claimant_ref: str, since: Optional[datetime] = None) -> int:
        return len(await self.list_claims(claimant_ref=claimant_ref, since=since))

    # Activity log

    async def append_activity(self, entry: ActivityEntry) -> ActivityEntry:
        self._activities.append(entry.model_copy(deep=True))
        return entry

    async def list_activities(
        self,
        user_id: str,
        since: Optional[datetime] = None,
        actions: Optional[Iterable[ActivityAction]] = None
    ) -> List[ActivityEntry]:
        """Entries performed by, or affecting, the given user, oldest first"""
        wanted = set(actions) if actions is not None else None
        return [
            entry.model_copy(deep=True)
            for entry in self._activities
            if (entry.user_id == user_id or entry.subject_id == user_id)
            and (since is None or entry.created_at >= since)
            and (wanted is None or entry.action in wanted)
        ]
