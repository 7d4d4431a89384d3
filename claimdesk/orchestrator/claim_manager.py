"""Claim lifecycle: filing, proof, verification, rejection, deletion and challenges"""

import secrets
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Tuple, Union
from pydantic import TypeAdapter, ValidationError as PydanticValidationError
from claimdesk.constants import (
    ActivityAction,
    ClaimStatus,
    ItemStatus,
    NotificationEvent,
    UserRole,
    PROOF_UPLOAD_STATES,
    STAFF_ROLES,
    TERMINAL_CLAIM_STATES,
    VERIFIED_OR_LATER_STATES
)
from claimdesk.models.activity import ActivityEntry
from claimdesk.models.assessment import ChallengeResult
from claimdesk.models.claim import Challenge, Claim, ClaimCreate, ProofDocument
from claimdesk.models.item import Item
from claimdesk.tools.challenge_tools import ChallengeVerifier
from claimdesk.tools.fraud_tools import FraudRiskScorer
from claimdesk.tools.notification_tools import NotificationDispatcher
from claimdesk.tools.record_store import RecordStore
from claimdesk.utils import metrics
from claimdesk.utils.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from claimdesk.utils.logging import get_logger
from claimdesk.utils.timeutils import utcnow

logger = get_logger(__name__)

REJECTABLE_STATES = frozenset({ClaimStatus.FILED, ClaimStatus.IDENTITY_PROOF_REQUESTED, ClaimStatus.VERIFIED})

_proof_documents = TypeAdapter(List[ProofDocument])

# (event, user_id, data, recipient_role) queued until the transaction commits
PendingNotification = Tuple[NotificationEvent, Optional[str], Dict[str, Any], Optional[UserRole]]


class ClaimManager:
    """
    Runs the claim state machine.

    Each operation reading or writing both a claim and its item is one
    transaction on the record store: concurrent attempts serialize there, and
    a failure anywhere leaves both records untouched. Notifications go out
    only after the transaction commits.
    """

    def __init__(
        self,
        store: RecordStore,
        fraud_scorer: FraudRiskScorer,
        verifier: ChallengeVerifier,
        notifier: NotificationDispatcher,
        activity_lookback_days: int = 30
    ):
        self.store = store
        self.fraud_scorer = fraud_scorer
        self.verifier = verifier
        self.notifier = notifier
        self.activity_lookback_days = activity_lookback_days

    def _send(self, notifications: List[PendingNotification]) -> None:
        for event, user_id, data, role in notifications:
            self.notifier.dispatch(event, user_id, data, recipient_role=role)

    async def _log(
        self,
        action: ActivityAction,
        user_id: str,
        claim: Claim,
        subject_id: Optional[str] = None,
        **metadata
    ) -> None:
        await self.store.append_activity(ActivityEntry(
            action=action,
            user_id=user_id,
            subject_id=subject_id,
            entity_type="Claim",
            entity_id=claim.id,
            metadata={"item_id": claim.item_id, **metadata}
        ))

    async def _require_claim(self, claim_id: str) -> Claim:
        claim = await self.store.get_claim(claim_id)
        if claim is None:
            raise NotFoundError(f"Claim not found: {claim_id}")
        return claim

    async def _require_item(self, item_id: str) -> Item:
        item = await self.store.get_item(item_id)
        if item is None:
            raise NotFoundError(f"Item not found: {item_id}")
        return item

    async def _release_item(self, claim: Claim) -> bool:
        """Return the item to AVAILABLE if this claim is the one holding it"""
        item = await self.store.get_item(claim.item_id)
        if item is None or item.status != ItemStatus.CLAIMED or item.claimed_by != claim.claimant_ref:
            return False
        item.status = ItemStatus.AVAILABLE
        item.claimed_by = None
        await self.store.save_item(item)
        return True

    @staticmethod
    def _transition(claim: Claim, status: ClaimStatus) -> None:
        claim.status = status
        claim.touch()
        metrics.claim_transitions.labels(status=status.value).inc()

    # Filing

    async def create_claim(self, data: Union[ClaimCreate, Dict[str, Any]]) -> Claim:
        """
        File a claim on a found item

        Args:
            data: ClaimCreate or equivalent dict (registered claimant_id or anonymous_email)

        Returns:
            The stored claim, FILED or IDENTITY_PROOF_REQUESTED when no proof was attached

        Raises:
            NotFoundError: If the item does not exist
            ConflictError: If the item is not available or already has a verified claim
            ValidationError: If the input is invalid or the claimant already has an open claim on the item
        """
        if not isinstance(data, ClaimCreate):
            try:
                data = ClaimCreate.model_validate(data)
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid claim: {e}")

        notifications: List[PendingNotification] = []
        async with self.store.transaction():
            item = await self._require_item(data.item_id)
            if item.status != ItemStatus.AVAILABLE:
                raise ConflictError(f"Item is not available for claiming (status={item.status.value})")

            existing = await self.store.list_claims(item_id=item.id)
            if any(claim.status in VERIFIED_OR_LATER_STATES for claim in existing):
                raise ConflictError("Item already has a verified claim")

            claim = Claim(
                item_id=item.id,
                claimant_id=data.claimant_id,
                anonymous_email=data.anonymous_email,
                anonymous_token=secrets.token_urlsafe(24) if data.anonymous_email else None,
                lost_report_id=data.lost_report_id,
                description=data.description,
                proof_documents=data.proof_documents
            )
            claimant = claim.claimant_ref

            if any(c.claimant_ref == claimant and c.status not in TERMINAL_CLAIM_STATES for c in existing):
                raise ValidationError("You already have an open claim on this item")

            metrics.claim_transitions.labels(status=ClaimStatus.FILED.value).inc()
            await self.store.save_claim(claim)

            if not claim.proof_documents:
                self._transition(claim, ClaimStatus.IDENTITY_PROOF_REQUESTED)
                notifications.append((
                    NotificationEvent.PROOF_REQUESTED,
                    claimant,
                    {"claim_id": claim.id, "item_id": item.id},
                    None
                ))

            challenge = self.verifier.auto_issue(item)
            if challenge is not None:
                claim.challenge_history.append(challenge)
                await self._log(ActivityAction.CHALLENGE_ISSUED, challenge.conducted_by, claim,
                                subject_id=claimant, challenge_id=challenge.id, kind=challenge.kind.value)

            await self.store.save_claim(claim)
            await self._log(ActivityAction.CLAIM_FILED, claimant, claim)

            await self._score_fraud(claim, item)

            notifications.append((
                NotificationEvent.NEW_CLAIM_FOR_REVIEW,
                None,
                {"claim_id": claim.id, "item_id": item.id, "fraud_risk_score": claim.fraud_risk_score},
                UserRole.STAFF
            ))

        self._send(notifications)
        logger.info(
            "Claim filed",
            claim_id=claim.id,
            item_id=claim.item_id,
            claimant=claimant,
            status=claim.status.value,
            fraud_risk_score=claim.fraud_risk_score
        )
        return claim

    async def _score_fraud(self, claim: Claim, item: Item) -> None:
        # Best effort: a scoring failure must not block the claim
        try:
            since = utcnow() - timedelta(days=self.activity_lookback_days)
            activities = await self.store.list_activities(claim.claimant_ref, since=since)
            assessment = await self.fraud_scorer.calculate_fraud_risk_score(
                claim.claimant_ref,
                activities,
                {"item_id": item.id, "claim_description": claim.description}
            )
            claim.fraud_risk_score = assessment.score
            claim.fraud_flags = assessment.flags
            await self.store.save_claim(claim)
        except Exception as e:
            metrics.fraud_scoring_failures.inc()
            logger.error("Fraud scoring failed", claim_id=claim.id, error=str(e))

    # Proof and review

    async def upload_proof(
        self,
        claim_id: str,
        user_id: str,
        documents: List[Union[ProofDocument, Dict[str, Any]]]
    ) -> Claim:
        """
        Attach proof documents to an open claim

        A claim waiting for identity proof goes back to FILED for review.

        Raises:
            ValidationError: If no documents are given or the claim no longer accepts proof
            AuthorizationError: If the caller is not the claimant
        """
        if not documents:
            raise ValidationError("At least one proof document is required")
        try:
            documents = _proof_documents.validate_python(documents)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid proof documents: {e}")

        async with self.store.transaction():
            claim = await self._require_claim(claim_id)
            if not claim.is_claimant(user_id):
                raise AuthorizationError("Only the claimant can upload proof")
            if claim.status not in PROOF_UPLOAD_STATES:
                raise ValidationError(f"Cannot upload proof for a claim in status {claim.status.value}")

            claim.proof_documents.extend(documents)
            claim.touch()
            if claim.status == ClaimStatus.IDENTITY_PROOF_REQUESTED:
                self._transition(claim, ClaimStatus.FILED)

            await self.store.save_claim(claim)
            await self._log(ActivityAction.PROOF_UPLOADED, claim.claimant_ref, claim, documents=len(documents))

        logger.info("Proof uploaded", claim_id=claim_id, documents=len(documents))
        return claim

    async def verify_claim(self, claim_id: str, verifier_id: str, notes: Optional[str] = None) -> Claim:
        """
        Approve a claim and reserve the item for the claimant

        Raises:
            ValidationError: If the claim is not awaiting review or has no proof
            ConflictError: If the item is no longer available
        """
        async with self.store.transaction():
            claim = await self._require_claim(claim_id)
            if claim.status not in PROOF_UPLOAD_STATES:
                raise ValidationError(f"Cannot verify a claim in status {claim.status.value}")
            if not claim.proof_documents:
                raise ValidationError("Cannot verify a claim without proof documents")

            item = await self._require_item(claim.item_id)
            if item.status != ItemStatus.AVAILABLE:
                raise ConflictError(f"Item is no longer available (status={item.status.value})")

            self._transition(claim, ClaimStatus.VERIFIED)
            claim.verified_by = verifier_id
            claim.verified_at = utcnow()
            claim.verification_notes = notes

            item.status = ItemStatus.CLAIMED
            item.claimed_by = claim.claimant_ref

            await self.store.save_item(item)
            await self.store.save_claim(claim)
            await self._log(ActivityAction.CLAIM_VERIFIED, verifier_id, claim, subject_id=claim.claimant_ref)

        self._send([
            (NotificationEvent.CLAIM_STATUS_UPDATE, claim.claimant_ref,
             {"claim_id": claim.id, "status": claim.status.value}, None),
            (NotificationEvent.PAYMENT_REQUIRED, claim.claimant_ref,
             {"claim_id": claim.id, "item_id": claim.item_id}, None)
        ])
        logger.info("Claim verified", claim_id=claim_id, verifier_id=verifier_id)
        return claim

    async def reject_claim(self, claim_id: str, verifier_id: str, reason: str) -> Claim:
        """
        Reject a claim; the item is released if this claim was holding it

        Raises:
            ValidationError: If no reason is given or the claim can no longer be rejected
        """
        if not reason or not reason.strip():
            raise ValidationError("A rejection reason is required")

        async with self.store.transaction():
            claim = await self._require_claim(claim_id)
            if claim.status not in REJECTABLE_STATES:
                raise ValidationError(f"Cannot reject a claim in status {claim.status.value}")

            self._transition(claim, ClaimStatus.REJECTED)
            claim.rejected_by = verifier_id
            claim.rejected_at = utcnow()
            claim.rejection_reason = reason.strip()

            released = await self._release_item(claim)
            await self.store.save_claim(claim)
            await self._log(ActivityAction.CLAIM_REJECTED, verifier_id, claim,
                            subject_id=claim.claimant_ref, reason=claim.rejection_reason)

        self._send([(
            NotificationEvent.CLAIM_STATUS_UPDATE,
            claim.claimant_ref,
            {"claim_id": claim.id, "status": claim.status.value, "reason": claim.rejection_reason},
            None
        )])
        logger.info("Claim rejected", claim_id=claim_id, verifier_id=verifier_id, item_released=released)
        return claim

    async def delete_claim(self, claim_id: str, user_id: str, role: Union[UserRole, str]) -> Claim:
        """
        Soft-delete a claim

        Claimants may only delete their own claims; staff and admins may delete any.

        Raises:
            AuthorizationError: If a claimant tries to delete someone else's claim
        """
        try:
            role = UserRole(role)
        except ValueError:
            raise ValidationError(f"Unknown role: {role}")

        async with self.store.transaction():
            claim = await self._require_claim(claim_id)
            if role not in STAFF_ROLES and not claim.is_claimant(user_id):
                raise AuthorizationError("Claimants can only delete their own claims")

            claim.deleted_at = utcnow()
            claim.touch()
            released = await self._release_item(claim)
            await self.store.save_claim(claim)
            await self._log(ActivityAction.CLAIM_DELETED, user_id, claim,
                            subject_id=claim.claimant_ref, role=role.value)

        metrics.claims_deleted.labels(role=role.value).inc()
        logger.info("Claim deleted", claim_id=claim_id, user_id=user_id, role=role.value, item_released=released)
        return claim

    # Challenges

    async def add_challenge_question(self, claim_id: str, question: str, staff_id: str) -> Challenge:
        """Ask the claimant a custom question graded against the item's secret identifiers"""
        async with self.store.transaction():
            claim = await self._require_claim(claim_id)
            item = await self._require_item(claim.item_id)
            challenge = self.verifier.custom(item, question, staff_id)

            claim.challenge_history.append(challenge)
            claim.touch()
            await self.store.save_claim(claim)
            await self._log(ActivityAction.CHALLENGE_ISSUED, staff_id, claim,
                            subject_id=claim.claimant_ref, challenge_id=challenge.id, kind=challenge.kind.value)

        return challenge

    async def submit_challenge_response(
        self,
        claim_id: str,
        challenge_id: str,
        answer: str,
        user_id: str
    ) -> ChallengeResult:
        """
        Record the claimant's answer to a challenge; each challenge is answered once

        Raises:
            AuthorizationError: If the caller is not the claimant
            NotFoundError: If the claim or challenge does not exist
            ValidationError: If the challenge was already answered or the answer is blank
        """
        async with self.store.transaction():
            claim = await self._require_claim(claim_id)
            if not claim.is_claimant(user_id):
                raise AuthorizationError("Only the claimant can answer challenges")

            challenge = claim.find_challenge(challenge_id)
            if challenge is None:
                raise NotFoundError(f"Challenge not found: {challenge_id}")

            item = await self.store.get_item(claim.item_id, include_deleted=True)
            if item is None:
                raise NotFoundError(f"Item not found: {claim.item_id}")

            result = self.verifier.grade(challenge, item, answer)
            challenge.answer = answer.strip()
            challenge.match_score = result.match_score
            challenge.passed = result.passed
            challenge.answered_at = utcnow()
            claim.touch()

            await self.store.save_claim(claim)
            await self._log(ActivityAction.CHALLENGE_ANSWERED, claim.claimant_ref, claim,
                            challenge_id=challenge.id, passed=result.passed, match_score=result.match_score)

        return result

    # Reads

    async def get_claim(self, claim_id: str) -> Claim:
        return await self._require_claim(claim_id)

    async def list_claims(
        self,
        claimant_ref: Optional[str] = None,
        status: Optional[ClaimStatus] = None,
        item_id: Optional[str] = None,
        keyword: Optional[str] = None,
        on_date: Optional[date] = None,
        page: int = 1,
        limit: int = 20
    ) -> Tuple[List[Claim], int]:
        """
        Filtered, paginated claims, newest first

        The keyword is matched case-insensitively against the claim's
        description, verification notes and rejection reason, and against the
        claimed item's description and location. on_date keeps claims filed on
        that UTC calendar day.

        Returns:
            (claims for the requested page, total matching count)
        """
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive")

        needle = keyword.strip().lower() if keyword else None
        matching_items = set()
        if needle:
            matching_items = {
                item.id for item in await self.store.list_items()
                if needle in item.description.lower() or needle in (item.location_found or "").lower()
            }

        def keyword_hit(claim: Claim) -> bool:
            texts = (claim.description, claim.verification_notes, claim.rejection_reason)
            return claim.item_id in matching_items or any(needle in (text or "").lower() for text in texts)

        claims = [
            claim for claim in await self.store.list_claims(item_id=item_id, claimant_ref=claimant_ref)
            if (status is None or claim.status == status)
            and (on_date is None or claim.created_at.date() == on_date)
            and (not needle or keyword_hit(claim))
        ]
        claims.sort(key=lambda c: c.created_at, reverse=True)
        start = (page - 1) * limit
        return claims[start:start + limit], len(claims)
