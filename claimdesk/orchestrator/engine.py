"""Engine composition root: wires stores, scorers and managers from configuration"""

import time
import uuid
from typing import Any, Dict, List, Optional
import redis.asyncio as redis
from redis.exceptions import RedisError
from claimdesk.constants import ActivityAction, MatchJobType, SYSTEM_ACTOR
from claimdesk.models.activity import ActivityEntry
from claimdesk.models.item import Item, LostReport
from claimdesk.models.match import Match
from claimdesk.orchestrator.claim_manager import ClaimManager
from claimdesk.orchestrator.match_manager import MatchManager
from claimdesk.orchestrator.settings_store import create_settings_store
from claimdesk.tools.challenge_tools import ChallengeVerifier
from claimdesk.tools.fraud_tools import FraudRiskScorer
from claimdesk.tools.notification_tools import create_dispatcher
from claimdesk.tools.record_store import RecordStore
from claimdesk.utils.config_loader import load_config, get_section
from claimdesk.utils.errors import ClaimDeskError
from claimdesk.utils.logging import get_logger

logger = get_logger(__name__)


class ClaimDeskEngine:
    """Builds every component from one configuration and runs engine jobs"""

    def __init__(self, config: Optional[Dict[str, Any]] = None, store: Optional[RecordStore] = None):
        self.config = config if config is not None else load_config()
        self.store = store or RecordStore()

        self.redis_client = None
        backends = (
            get_section(self.config, 'settings_store').get('backend', 'memory'),
            get_section(self.config, 'notifications').get('backend', 'memory')
        )
        if "redis" in backends:
            self.redis_client = redis.from_url(
                self.config.get('redis_url', 'redis://localhost:6379/0'),
                decode_responses=True
            )

        self.settings_store = create_settings_store(self.config, self.redis_client)
        self.notifier = create_dispatcher(self.config, self.redis_client)

        fraud = get_section(self.config, 'fraud')
        self.fraud_scorer = FraudRiskScorer(
            self.store,
            high_risk_threshold=fraud.get('high_risk_threshold', 70),
            monthly_limit=fraud.get('monthly_limit', 5),
            rapid_claims_24h=fraud.get('rapid_claims_24h', 5)
        )
        self.verifier = ChallengeVerifier(
            pass_threshold=get_section(self.config, 'challenge').get('pass_threshold', 75)
        )

        concurrency = get_section(self.config, 'concurrency')
        self.matches = MatchManager(
            self.store,
            self.settings_store,
            self.notifier,
            generate_concurrency=concurrency.get('generate_matches', 10),
            rescan_concurrency=concurrency.get('rescan', 5)
        )
        self.claims = ClaimManager(
            self.store,
            self.fraud_scorer,
            self.verifier,
            self.notifier,
            activity_lookback_days=fraud.get('activity_lookback_days', 30)
        )

    async def register_item(self, item: Item, staff_id: str) -> List[Match]:
        """
        Store a newly found item and match it against open lost reports

        Returns:
            Matches generated for the item
        """
        item.registered_by = staff_id
        async with self.store.transaction():
            await self.store.save_item(item)
            await self.store.append_activity(ActivityEntry(
                action=ActivityAction.ITEM_REGISTERED,
                user_id=staff_id,
                entity_type="Item",
                entity_id=item.id,
                metadata={"category": item.category.value}
            ))
        logger.info("Item registered", item_id=item.id, category=item.category.value)
        return await self.process_match_job(MatchJobType.ITEM_CREATED, item.id)

    async def submit_lost_report(self, report: LostReport) -> List[Match]:
        """
        Store a lost report and match it against available items

        Returns:
            Matches generated for the report
        """
        async with self.store.transaction():
            await self.store.save_report(report)
            await self.store.append_activity(ActivityEntry(
                action=ActivityAction.LOST_REPORT_SUBMITTED,
                user_id=report.reported_by,
                entity_type="LostReport",
                entity_id=report.id,
                metadata={"category": report.category.value}
            ))
        logger.info("Lost report submitted", lost_report_id=report.id, category=report.category.value)
        return await self.process_match_job(MatchJobType.REPORT_CREATED, report.id)

    async def process_match_job(self, job_type: MatchJobType, record_id: str) -> List[Match]:
        """Run a match job; failures are logged and yield no matches"""
        job_id = str(uuid.uuid4())
        try:
            matches = await self.matches.process_match_job(job_type, record_id)
        except ClaimDeskError as e:
            logger.error("Match job failed", job_id=job_id, job_type=str(job_type), record_id=record_id, error=str(e))
            return []
        logger.info("Match job completed", job_id=job_id, record_id=record_id, matches=len(matches))
        return matches

    async def run_rescan_cycle(self) -> Dict[str, Any]:
        """
        Rescan every pending match and wait for the resulting notifications

        Returns:
            Summary dictionary with rescan counters
        """
        run_id = str(uuid.uuid4())
        start = time.time()
        logger.info("Starting rescan run", run_id=run_id, actor=SYSTEM_ACTOR)

        summary = await self.matches.rescan_all()
        await self.notifier.drain()

        return {
            'run_id': run_id,
            'status': 'completed',
            **summary.model_dump(),
            'duration_seconds': time.time() - start
        }

    async def _redis_reachable(self) -> bool:
        if self.redis_client is None:
            return True
        try:
            return bool(await self.redis_client.ping())
        except RedisError as e:
            logger.warning("Redis health check failed", error=str(e))
            return False

    async def check_health(self) -> Dict[str, bool]:
        return {
            'settings_store': await self.settings_store.check_health(),
            'redis': await self._redis_reachable()
        }

    async def close(self) -> None:
        """Flush pending notifications and release the Redis connection"""
        await self.notifier.drain()
        if self.redis_client is not None:
            await self.redis_client.aclose()
