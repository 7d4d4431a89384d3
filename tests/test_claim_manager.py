"""Tests for the claim lifecycle"""

import asyncio
from datetime import timedelta
import pytest
from claimdesk.constants import (
    ActivityAction,
    ChallengeKind,
    ClaimStatus,
    ItemColor,
    ItemStatus,
    NotificationEvent,
    UserRole
)
from claimdesk.utils.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError
)
from claimdesk.utils.timeutils import utcnow

SECRET = "initials JD scratched on back"


async def _setup(make_engine, make_item, **item_fields):
    engine = make_engine()
    item = make_item(secret_identifiers=[SECRET], **item_fields)
    await engine.store.save_item(item)
    return engine, item


def _claim_data(item, claimant="user_1", **overrides):
    data = {"item_id": item.id, "claimant_id": claimant, "description": "My phone, it has a blue case"}
    data.update(overrides)
    return data


def _events(engine):
    return [n["event"] for n in engine.notifier.sent]


def test_create_claim_without_proof_requests_identity(make_engine, make_item):
    """No proof documents moves the claim to IDENTITY_PROOF_REQUESTED and notifies"""
    async def scenario():
        engine, item = await _setup(make_engine, make_item)
        claim = await engine.claims.create_claim(_claim_data(item))
        await engine.notifier.drain()
        return engine, claim

    engine, claim = asyncio.run(scenario())
    assert claim.status == ClaimStatus.IDENTITY_PROOF_REQUESTED
    assert claim.challenge_history[0].kind == ChallengeKind.SECRET_MARK
    assert NotificationEvent.PROOF_REQUESTED.value in _events(engine)

    review = [n for n in engine.notifier.sent if n["event"] == NotificationEvent.NEW_CLAIM_FOR_REVIEW.value]
    assert review[0]["recipient_role"] == UserRole.STAFF.value

    activities = asyncio.run(engine.store.list_activities("user_1"))
    assert ActivityAction.CLAIM_FILED in [a.action for a in activities]


def test_create_claim_with_proof_stays_filed(make_engine, make_item, proof_document):
    """Claims filed with proof start in FILED"""
    async def scenario():
        engine, item = await _setup(make_engine, make_item)
        return await engine.claims.create_claim(_claim_data(item, proof_documents=[proof_document]))

    claim = asyncio.run(scenario())
    assert claim.status == ClaimStatus.FILED
    assert len(claim.proof_documents) == 1


def test_anonymous_claim_gets_token(make_engine, make_item):
    """Anonymous claimants are identified by email and receive an access token"""
    async def scenario():
        engine = make_engine()
        item = make_item(color=ItemColor.BLACK)
        await engine.store.save_item(item)
        data = {"item_id": item.id, "anonymous_email": "Guest@Example.com", "description": "black phone"}
        return await engine.claims.create_claim(data)

    claim = asyncio.run(scenario())
    assert claim.claimant_ref == "anonymous:guest@example.com"
    assert claim.anonymous_token
    assert claim.is_claimant(claim.anonymous_token)
    assert claim.challenge_history[0].kind == ChallengeKind.COLOR


def test_anonymous_claim_requires_token(make_engine, make_item):
    """Knowing the claimant's email is not enough to act on an anonymous claim"""
    async def scenario():
        engine = make_engine()
        item = make_item(secret_identifiers=[SECRET])
        await engine.store.save_item(item)
        claim = await engine.claims.create_claim(
            {"item_id": item.id, "anonymous_email": "owner@example.com", "description": "my phone"}
        )
        challenge_id = claim.challenge_history[0].id

        with pytest.raises(AuthorizationError):
            await engine.claims.delete_claim(claim.id, claim.claimant_ref, UserRole.CLAIMANT)
        with pytest.raises(AuthorizationError):
            await engine.claims.submit_challenge_response(claim.id, challenge_id, SECRET, claim.claimant_ref)
        still_there = await engine.claims.get_claim(claim.id)

        await engine.claims.delete_claim(claim.id, claim.anonymous_token, UserRole.CLAIMANT)
        return claim, still_there, await engine.store.get_claim(claim.id, include_deleted=True)

    claim, still_there, deleted = asyncio.run(scenario())
    assert not claim.is_claimant("anonymous:owner@example.com")
    assert still_there.deleted_at is None
    assert not still_there.challenge_history[0].is_answered
    assert deleted.deleted_at is not None


def test_create_claim_validation(make_engine, make_item):
    """Missing items and ambiguous claimant identity are rejected"""
    async def scenario():
        engine, item = await _setup(make_engine, make_item)
        with pytest.raises(NotFoundError):
            await engine.claims.create_claim(_claim_data(item, item_id="missing"))
        with pytest.raises(ValidationError):
            await engine.claims.create_claim(_claim_data(item, anonymous_email="a@b.com"))
        with pytest.raises(ValidationError):
            await engine.claims.create_claim({"item_id": item.id, "description": "mine"})

    asyncio.run(scenario())


def test_second_open_claim_by_same_claimant_rejected(make_engine, make_item):
    """A claimant may only hold one open claim per item"""
    async def scenario():
        engine, item = await _setup(make_engine, make_item)
        await engine.claims.create_claim(_claim_data(item))
        with pytest.raises(ValidationError) as excinfo:
            await engine.claims.create_claim(_claim_data(item))
        # Other claimants are still welcome
        other = await engine.claims.create_claim(_claim_data(item, claimant="user_2"))
        return excinfo.value, other

    error, other = asyncio.run(scenario())
    assert not isinstance(error, ConflictError)
    assert other.status == ClaimStatus.IDENTITY_PROOF_REQUESTED


def test_verify_requires_proof(make_engine, make_item, proof_document):
    """Verification fails without proof and reserves the item with it"""
    async def scenario():
        engine, item = await _setup(make_engine, make_item)
        claim = await engine.claims.create_claim(_claim_data(item))
        with pytest.raises(ValidationError):
            await engine.claims.verify_claim(claim.id, "staff_1")

        uploaded = await engine.claims.upload_proof(claim.id, "user_1", [proof_document])
        verified = await engine.claims.verify_claim(claim.id, "staff_1", notes="ID checked")
        await engine.notifier.drain()
        return engine, uploaded, verified, await engine.store.get_item(item.id)

    engine, uploaded, verified, item = asyncio.run(scenario())
    assert uploaded.status == ClaimStatus.FILED
    assert verified.status == ClaimStatus.VERIFIED
    assert verified.verified_by == "staff_1"
    assert verified.verification_notes == "ID checked"
    assert item.status == ItemStatus.CLAIMED
    assert item.claimed_by == "user_1"
    assert NotificationEvent.PAYMENT_REQUIRED.value in _events(engine)
    assert NotificationEvent.CLAIM_STATUS_UPDATE.value in _events(engine)


def test_claims_blocked_once_item_is_claimed(make_engine, make_item, proof_document):
    """After verification the item is no longer available to other claimants"""
    async def scenario():
        engine, item = await _setup(make_engine, make_item)
        claim = await engine.claims.create_claim(_claim_data(item, proof_documents=[proof_document]))
        rival = await engine.claims.create_claim(_claim_data(item, claimant="user_2", proof_documents=[proof_document]))
        await engine.claims.verify_claim(claim.id, "staff_1")

        with pytest.raises(ConflictError):
            await engine.claims.create_claim(_claim_data(item, claimant="user_3"))
        with pytest.raises(ConflictError):
            await engine.claims.verify_claim(rival.id, "staff_1")

    asyncio.run(scenario())


def test_concurrent_verifications_serialize(make_engine, make_item, proof_document):
    """Two verifications racing for one item: exactly one wins"""
    async def scenario():
        engine, item = await _setup(make_engine, make_item)
        first = await engine.claims.create_claim(_claim_data(item, proof_documents=[proof_document]))
        second = await engine.claims.create_claim(_claim_data(item, claimant="user_2", proof_documents=[proof_document]))
        return await asyncio.gather(
            engine.claims.verify_claim(first.id, "staff_1"),
            engine.claims.verify_claim(second.id, "staff_2"),
            return_exceptions=True
        )

    results = asyncio.run(scenario())
    assert sum(isinstance(r, ConflictError) for r in results) == 1
    assert sum(getattr(r, "status", None) == ClaimStatus.VERIFIED for r in results) == 1


def test_failed_transaction_rolls_back(make_engine, make_item, proof_document, monkeypatch):
    """An error mid-verification leaves claim and item untouched"""
    async def scenario():
        engine, item = await _setup(make_engine, make_item)
        claim = await engine.claims.create_claim(_claim_data(item, proof_documents=[proof_document]))

        async def broken_append(entry):
            raise RuntimeError("activity log unavailable")

        monkeypatch.setattr(engine.store, "append_activity", broken_append)
        with pytest.raises(RuntimeError):
            await engine.claims.verify_claim(claim.id, "staff_1")
        return await engine.store.get_claim(claim.id), await engine.store.get_item(item.id)

    claim, item = asyncio.run(scenario())
    assert claim.status == ClaimStatus.FILED
    assert item.status == ItemStatus.AVAILABLE
    assert item.claimed_by is None


def test_upload_proof_rules(make_engine, make_item, proof_document):
    """Only the claimant uploads, with at least one document, while the claim is open"""
    async def scenario():
        engine, item = await _setup(make_engine, make_item)
        claim = await engine.claims.create_claim(_claim_data(item))
        with pytest.raises(AuthorizationError):
            await engine.claims.upload_proof(claim.id, "user_2", [proof_document])
        with pytest.raises(ValidationError):
            await engine.claims.upload_proof(claim.id, "user_1", [])
        await engine.claims.reject_claim(claim.id, "staff_1", "Receipt is for a different model")
        with pytest.raises(ValidationError):
            await engine.claims.upload_proof(claim.id, "user_1", [proof_document])

    asyncio.run(scenario())


def test_reject_releases_item_held_by_claim(make_engine, make_item, proof_document):
    """Rejecting a verified claim puts the item back on the shelf"""
    async def scenario():
        engine, item = await _setup(make_engine, make_item)
        claim = await engine.claims.create_claim(_claim_data(item, proof_documents=[proof_document]))
        await engine.claims.verify_claim(claim.id, "staff_1")

        with pytest.raises(ValidationError):
            await engine.claims.reject_claim(claim.id, "staff_1", "  ")
        rejected = await engine.claims.reject_claim(claim.id, "staff_1", "Serial number mismatch")
        with pytest.raises(ValidationError):
            await engine.claims.reject_claim(claim.id, "staff_1", "again")
        return engine, rejected, await engine.store.get_item(item.id)

    engine, rejected, item = asyncio.run(scenario())
    assert rejected.status == ClaimStatus.REJECTED
    assert rejected.rejection_reason == "Serial number mismatch"
    assert item.status == ItemStatus.AVAILABLE
    assert item.claimed_by is None

    rejections = asyncio.run(engine.store.list_activities("user_1", actions=[ActivityAction.CLAIM_REJECTED]))
    assert rejections[0].user_id == "staff_1"
    assert rejections[0].subject_id == "user_1"


def test_reject_leaves_item_held_by_other_claim(make_engine, make_item, proof_document):
    """Rejecting a claim that does not hold the item keeps the item CLAIMED"""
    async def scenario():
        engine, item = await _setup(make_engine, make_item)
        winner = await engine.claims.create_claim(_claim_data(item, proof_documents=[proof_document]))
        loser = await engine.claims.create_claim(_claim_data(item, claimant="user_2"))
        await engine.claims.verify_claim(winner.id, "staff_1")
        await engine.claims.reject_claim(loser.id, "staff_1", "Owner already verified")
        return await engine.store.get_item(item.id)

    item = asyncio.run(scenario())
    assert item.status == ItemStatus.CLAIMED
    assert item.claimed_by == "user_1"


def test_delete_claim_permissions(make_engine, make_item, proof_document):
    """Claimants delete only their own claims; staff may delete any"""
    async def scenario():
        engine, item = await _setup(make_engine, make_item)
        claim = await engine.claims.create_claim(_claim_data(item, proof_documents=[proof_document]))
        await engine.claims.verify_claim(claim.id, "staff_1")

        with pytest.raises(AuthorizationError):
            await engine.claims.delete_claim(claim.id, "user_2", UserRole.CLAIMANT)
        deleted = await engine.claims.delete_claim(claim.id, "admin_1", "ADMIN")
        with pytest.raises(NotFoundError):
            await engine.claims.get_claim(claim.id)
        return deleted, await engine.store.get_item(item.id)

    deleted, item = asyncio.run(scenario())
    assert deleted.deleted_at is not None
    assert deleted.status == ClaimStatus.VERIFIED
    assert item.status == ItemStatus.AVAILABLE


def test_staff_can_delete_any_claim(make_engine, make_item):
    """Staff delete other people's claims; unknown roles are rejected"""
    async def scenario():
        engine, item = await _setup(make_engine, make_item)
        claim = await engine.claims.create_claim(_claim_data(item))
        with pytest.raises(ValidationError):
            await engine.claims.delete_claim(claim.id, "staff_1", "JANITOR")
        return await engine.claims.delete_claim(claim.id, "staff_1", UserRole.STAFF)

    deleted = asyncio.run(scenario())
    assert deleted.deleted_at is not None
    assert deleted.claimant_id == "user_1"


def test_claimant_can_delete_own_claim(make_engine, make_item):
    """The claimant may withdraw their own claim"""
    async def scenario():
        engine, item = await _setup(make_engine, make_item)
        claim = await engine.claims.create_claim(_claim_data(item))
        await engine.claims.delete_claim(claim.id, "user_1", UserRole.CLAIMANT)
        return await engine.claims.list_claims(claimant_ref="user_1")

    claims, total = asyncio.run(scenario())
    assert total == 0


def test_challenge_answered_once(make_engine, make_item):
    """Exact secret answers pass; a second attempt fails"""
    async def scenario():
        engine, item = await _setup(make_engine, make_item)
        claim = await engine.claims.create_claim(_claim_data(item))
        challenge_id = claim.challenge_history[0].id

        result = await engine.claims.submit_challenge_response(claim.id, challenge_id, SECRET, "user_1")
        with pytest.raises(ValidationError):
            await engine.claims.submit_challenge_response(claim.id, challenge_id, SECRET, "user_1")
        return result, await engine.claims.get_claim(claim.id)

    result, claim = asyncio.run(scenario())
    assert result.match_score == 100.0
    assert result.passed
    recorded = claim.challenge_history[0]
    assert recorded.passed
    assert recorded.answered_at is not None


def test_challenge_wrong_answer_fails(make_engine, make_item):
    """Unrelated answers score near zero and fail"""
    async def scenario():
        engine, item = await _setup(make_engine, make_item)
        claim = await engine.claims.create_claim(_claim_data(item))
        challenge_id = claim.challenge_history[0].id
        return await engine.claims.submit_challenge_response(claim.id, challenge_id, "a red sticker", "user_1")

    result = asyncio.run(scenario())
    assert result.match_score < 50
    assert not result.passed


def test_challenge_response_guards(make_engine, make_item):
    """Only the claimant answers, and only existing challenges"""
    async def scenario():
        engine, item = await _setup(make_engine, make_item)
        claim = await engine.claims.create_claim(_claim_data(item))
        challenge_id = claim.challenge_history[0].id
        with pytest.raises(AuthorizationError):
            await engine.claims.submit_challenge_response(claim.id, challenge_id, SECRET, "user_2")
        with pytest.raises(NotFoundError):
            await engine.claims.submit_challenge_response(claim.id, "missing", SECRET, "user_1")
        with pytest.raises(ValidationError):
            await engine.claims.submit_challenge_response(claim.id, challenge_id, " ", "user_1")

    asyncio.run(scenario())


def test_add_custom_challenge(make_engine, make_item):
    """Staff questions are graded against the secret identifiers"""
    async def scenario():
        engine, item = await _setup(make_engine, make_item)
        claim = await engine.claims.create_claim(_claim_data(item))
        with pytest.raises(ValidationError):
            await engine.claims.add_challenge_question(claim.id, "", "staff_1")

        challenge = await engine.claims.add_challenge_question(claim.id, "What is scratched on it?", "staff_1")
        result = await engine.claims.submit_challenge_response(claim.id, challenge.id, SECRET.upper(), "user_1")
        return challenge, result

    challenge, result = asyncio.run(scenario())
    assert challenge.kind == ChallengeKind.CUSTOM
    assert result.passed


def test_custom_challenge_needs_secret_identifiers(make_engine, make_item):
    """Items without secrets cannot take custom questions"""
    async def scenario():
        engine = make_engine()
        item = make_item()
        await engine.store.save_item(item)
        claim = await engine.claims.create_claim(_claim_data(item))
        assert claim.challenge_history == []
        with pytest.raises(ValidationError):
            await engine.claims.add_challenge_question(claim.id, "What is engraved?", "staff_1")

    asyncio.run(scenario())


def test_fraud_failure_does_not_block_claim(make_engine, make_item, monkeypatch):
    """Fraud scoring errors are logged and the claim still commits"""
    async def scenario():
        engine, item = await _setup(make_engine, make_item)

        async def broken_score(*args, **kwargs):
            raise RuntimeError("scorer down")

        monkeypatch.setattr(engine.fraud_scorer, "calculate_fraud_risk_score", broken_score)
        claim = await engine.claims.create_claim(_claim_data(item))
        return await engine.claims.get_claim(claim.id)

    claim = asyncio.run(scenario())
    assert claim.fraud_risk_score == 0
    assert claim.fraud_flags == []


def test_exact_description_is_flagged(make_engine, make_item):
    """Copying the listing description is stored as a fraud flag"""
    async def scenario():
        engine, item = await _setup(make_engine, make_item)
        return await engine.claims.create_claim(_claim_data(item, description=item.description.upper()))

    claim = asyncio.run(scenario())
    assert "EXACT_DESCRIPTION_MATCH" in claim.fraud_flags
    assert claim.fraud_risk_score == 60


def test_list_claims_filters_and_paginates(make_engine, make_item):
    """Claim listings filter by claimant, status, filing day and keyword"""
    async def scenario():
        engine, first = await _setup(make_engine, make_item)
        second = make_item(description="Brown leather wallet", location_found="Main library")
        await engine.store.save_item(second)
        await engine.claims.create_claim(_claim_data(first))
        await engine.claims.create_claim(_claim_data(second, claimant="user_2", description="Leather wallet with my ID"))
        today = utcnow().date()
        return (
            await engine.claims.list_claims(claimant_ref="user_1"),
            await engine.claims.list_claims(keyword="WALLET"),
            await engine.claims.list_claims(keyword="library"),
            await engine.claims.list_claims(status=ClaimStatus.VERIFIED),
            await engine.claims.list_claims(on_date=today),
            await engine.claims.list_claims(on_date=today - timedelta(days=1)),
            await engine.claims.list_claims(page=2, limit=1)
        )

    mine, wallets, by_location, verified, filed_today, filed_yesterday, second_page = asyncio.run(scenario())
    assert mine[1] == 1 and mine[0][0].claimant_id == "user_1"
    assert wallets[1] == 1 and wallets[0][0].claimant_id == "user_2"
    # Item location is searched too
    assert by_location[1] == 1 and by_location[0][0].claimant_id == "user_2"
    assert verified == ([], 0)
    assert filed_today[1] == 2
    assert filed_yesterday == ([], 0)
    assert second_page[1] == 2 and len(second_page[0]) == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
