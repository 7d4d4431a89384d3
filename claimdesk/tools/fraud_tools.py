"""Fraud risk scoring over claim activity"""

import re
from datetime import timedelta
from typing import Any, Dict, List, Optional
import pandas as pd
from claimdesk.constants import (
    ActivityAction,
    ClaimStatus,
    DEFAULT_HIGH_RISK_THRESHOLD,
    DEFAULT_MONTHLY_CLAIM_LIMIT,
    DEFAULT_RAPID_CLAIMS_24H
)
from claimdesk.models.activity import ActivityEntry
from claimdesk.models.assessment import FraudAssessment, PatternResult
from claimdesk.models.claim import Claim
from claimdesk.tools.record_store import RecordStore
from claimdesk.utils import metrics
from claimdesk.utils.logging import get_logger
from claimdesk.utils.timeutils import utcnow

logger = get_logger(__name__)

RAPID_CLAIMS_POINTS = 35
MONTHLY_VOLUME_POINTS = 25
MONTHLY_VOLUME_WARNING_POINTS = 10
HIGH_REJECTION_POINTS = 20
ELEVATED_REJECTION_POINTS = 10
DATE_ANOMALY_POINTS = 40
REPEATED_CLAIM_POINTS = 30
SINGLE_REPEAT_POINTS = 15
EXACT_DESCRIPTION_POINTS = 60

_WHITESPACE = re.compile(r'\s+')


def activities_frame(activities: List[ActivityEntry]) -> pd.DataFrame:
    """Activity entries as a DataFrame with UTC timestamps"""
    df = pd.DataFrame(
        [{'action': a.action.value, 'created_at': a.created_at} for a in activities],
        columns=['action', 'created_at']
    )
    df['created_at'] = pd.to_datetime(df['created_at'], utc=True)
    return df


def _collapse(text: Optional[str]) -> str:
    return _WHITESPACE.sub(' ', text or '').strip().lower()


class FraudRiskScorer:
    """
    Scores how likely a claim is to be illegitimate (0-100)

    Read-only: the caller persists the score and flags on the claim.
    """

    def __init__(
        self,
        store: RecordStore,
        high_risk_threshold: float = DEFAULT_HIGH_RISK_THRESHOLD,
        monthly_limit: int = DEFAULT_MONTHLY_CLAIM_LIMIT,
        rapid_claims_24h: int = DEFAULT_RAPID_CLAIMS_24H
    ):
        self.store = store
        self.high_risk_threshold = high_risk_threshold
        self.monthly_limit = monthly_limit
        self.rapid_claims_24h = rapid_claims_24h

    async def calculate_fraud_risk_score(
        self,
        user_id: str,
        activities: List[ActivityEntry],
        claim_context: Optional[Dict[str, Any]] = None
    ) -> FraudAssessment:
        """
        Calculate the fraud risk score for a user filing a claim

        Args:
            user_id: Claimant reference
            activities: The claimant's recent activity entries
            claim_context: {'item_id': ..., 'claim_description': ...} for the claim being scored

        Returns:
            FraudAssessment with score, triggered flags and per-signal details
        """
        claim_context = claim_context or {}
        item_id = claim_context.get('item_id')
        description = claim_context.get('claim_description')

        now = utcnow()
        df = activities_frame(activities)
        patterns: Dict[str, PatternResult] = {}

        patterns['RAPID_CLAIMS_24H'] = PatternResult(
            points=await self._rapid_claims(user_id, df, now),
            description=f"Filed more than {self.rapid_claims_24h} claims within 24h"
        )
        patterns['HIGH_MONTHLY_VOLUME'] = PatternResult(
            points=await self._monthly_volume(user_id, now),
            description=f"Filed more than {self.monthly_limit} claims in 30 days"
        )
        patterns['REJECTED_CLAIMS_HISTORY'] = PatternResult(
            points=self._rejection_history(df),
            description="High rejection rate in claim history"
        )

        if item_id:
            item = await self.store.get_item(item_id)
            patterns['DATE_ANOMALY'] = PatternResult(
                points=DATE_ANOMALY_POINTS if item is not None and item.date_found > now else 0,
                description="Item found date lies in the future"
            )
            patterns['REPEATED_CLAIM_SAME_ITEM'] = PatternResult(
                points=await self._repeated_rejections(user_id, item_id),
                description="Claims on the same item after previous rejection"
            )
            if description:
                exact = item is not None and _collapse(item.description) != '' \
                    and _collapse(item.description) == _collapse(description)
                patterns['EXACT_DESCRIPTION_MATCH'] = PatternResult(
                    points=EXACT_DESCRIPTION_POINTS if exact else 0,
                    description="Description exactly matches the public listing"
                )

        flags = []
        total = 0
        for name, pattern in patterns.items():
            if pattern.points > 0:
                pattern.triggered = True
                flags.append(name)
                total += pattern.points

        score = min(round(total), 100)
        metrics.fraud_risk_score.observe(score)

        if score >= self.high_risk_threshold:
            logger.warning(
                "High-risk claim detected",
                user_id=user_id,
                item_id=item_id,
                score=score,
                flags=flags
            )

        return FraudAssessment(score=score, flags=flags, patterns=patterns)

    async def _rapid_claims(self, user_id: str, df: pd.DataFrame, now) -> int:
        cutoff = now - timedelta(hours=24)
        from_log = int(((df['action'] == ActivityAction.CLAIM_FILED.value) & (df['created_at'] > cutoff)).sum())
        if from_log > self.rapid_claims_24h:
            return RAPID_CLAIMS_POINTS

        # Activity log may be incomplete; fall back to the claim records
        from_store = await self.store.count_claims(user_id, since=cutoff)
        return RAPID_CLAIMS_POINTS if from_store > self.rapid_claims_24h else 0

    async def _monthly_volume(self, user_id: str, now) -> int:
        count = await self.store.count_claims(user_id, since=now - timedelta(days=30))
        if count > self.monthly_limit:
            return MONTHLY_VOLUME_POINTS
        if count > self.monthly_limit * 0.7:
            return MONTHLY_VOLUME_WARNING_POINTS
        return 0

    @staticmethod
    def _rejection_history(df: pd.DataFrame) -> int:
        counts = df['action'].value_counts()
        filed = int(counts.get(ActivityAction.CLAIM_FILED.value, 0))
        rejected = int(counts.get(ActivityAction.CLAIM_REJECTED.value, 0))
        if filed == 0:
            return 0
        rate = rejected / filed
        if rate > 0.6:
            return HIGH_REJECTION_POINTS
        if rate > 0.4:
            return ELEVATED_REJECTION_POINTS
        return 0

    async def _repeated_rejections(self, user_id: str, item_id: str) -> int:
        claims = await self.store.list_claims(item_id=item_id, claimant_ref=user_id)
        rejected = sum(1 for claim in claims if claim.status == ClaimStatus.REJECTED)
        if rejected >= 2:
            return REPEATED_CLAIM_POINTS
        if rejected == 1:
            return SINGLE_REPEAT_POINTS
        return 0

    async def get_high_risk_claims(self, threshold: Optional[float] = None) -> List[Claim]:
        """
        Claims at or above the risk threshold for staff review

        Args:
            threshold: Minimum fraud risk score (defaults to the high-risk threshold)

        Returns:
            Claims ordered by risk score, then newest first
        """
        threshold = self.high_risk_threshold if threshold is None else threshold
        claims = [claim for claim in await self.store.list_claims() if claim.fraud_risk_score >= threshold]
        claims.sort(key=lambda c: (c.fraud_risk_score, c.created_at), reverse=True)

        metrics.high_risk_claims.set(len(claims))
        logger.info("Listed high-risk claims", threshold=threshold, count=len(claims))
        return claims
