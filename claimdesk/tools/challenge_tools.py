"""Challenge-response questions and fuzzy answer grading"""

from typing import List, Optional
from claimdesk.constants import ChallengeKind, DEFAULT_CHALLENGE_PASS_THRESHOLD, SYSTEM_ACTOR
from claimdesk.models.assessment import ChallengeResult
from claimdesk.models.claim import Challenge
from claimdesk.models.item import Item
from claimdesk.utils import metrics
from claimdesk.utils.errors import ValidationError
from claimdesk.utils.logging import get_logger

logger = get_logger(__name__)

SECRET_MARK_QUESTION = "Describe any hidden mark or detail on the item that is not visible in the listing."
COLOR_QUESTION = "What is the color of the item?"


def levenshtein(a: str, b: str) -> int:
    """Edit distance (insertions, deletions, substitutions) between two strings"""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (ca != cb)
            ))
        previous = current
    return previous[-1]


def similarity(answer: str, expected: str) -> float:
    """
    Normalized similarity in [0, 100]

    Both sides are lowercased and trimmed; 100 means identical.
    """
    a = answer.strip().lower()
    b = expected.strip().lower()
    longest = max(len(a), len(b))
    if longest == 0:
        return 100.0
    return (longest - levenshtein(a, b)) / longest * 100


class ChallengeVerifier:
    """Issues challenge questions for an item and grades claimant answers"""

    def __init__(self, pass_threshold: float = DEFAULT_CHALLENGE_PASS_THRESHOLD):
        self.pass_threshold = pass_threshold

    def auto_issue(self, item: Item, issued_by: str = SYSTEM_ACTOR) -> Optional[Challenge]:
        """
        Pick the challenge asked when a claim is filed

        Secret identifiers take precedence over the recorded color; items with
        neither get no automatic challenge.
        """
        if item.secret_identifiers:
            return Challenge(kind=ChallengeKind.SECRET_MARK, question=SECRET_MARK_QUESTION, conducted_by=issued_by)
        if item.color:
            return Challenge(kind=ChallengeKind.COLOR, question=COLOR_QUESTION, conducted_by=issued_by)
        return None

    def custom(self, item: Item, question: str, staff_id: str) -> Challenge:
        if not question or not question.strip():
            raise ValidationError("Challenge question is required")
        if not item.secret_identifiers:
            raise ValidationError("Item has no secret identifiers to grade a custom question against")
        return Challenge(kind=ChallengeKind.CUSTOM, question=question.strip(), conducted_by=staff_id)

    @staticmethod
    def expected_answers(challenge: Challenge, item: Item) -> List[str]:
        if challenge.kind == ChallengeKind.COLOR:
            return [item.color.value] if item.color else []
        return [secret for secret in item.secret_identifiers if secret and secret.strip()]

    def grade(self, challenge: Challenge, item: Item, answer: str) -> ChallengeResult:
        """
        Grade an answer against the item's expected answers

        Args:
            challenge: Unanswered challenge
            item: Item the challenge is about
            answer: Claimant's answer

        Returns:
            ChallengeResult with the best similarity across expected answers

        Raises:
            ValidationError: If the challenge was already answered or the answer is blank
        """
        if challenge.is_answered:
            raise ValidationError("Challenge has already been answered")
        if not answer or not answer.strip():
            raise ValidationError("Answer is required")

        candidates = self.expected_answers(challenge, item)
        best = max((similarity(answer, candidate) for candidate in candidates), default=0.0)
        best = round(best, 2)
        passed = best >= self.pass_threshold

        metrics.challenge_results.labels(result="passed" if passed else "failed").inc()
        logger.info(
            "Challenge graded",
            challenge_id=challenge.id,
            kind=challenge.kind.value,
            match_score=best,
            passed=passed
        )
        return ChallengeResult(challenge_id=challenge.id, match_score=best, passed=passed)
