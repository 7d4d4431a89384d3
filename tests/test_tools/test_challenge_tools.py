"""Unit tests for challenge issuing and answer grading"""

import pytest
from claimdesk.constants import ChallengeKind, ItemColor
from claimdesk.tools.challenge_tools import ChallengeVerifier, levenshtein, similarity
from claimdesk.utils.errors import ValidationError


def test_levenshtein_distance():
    """Edit distance counts insertions, deletions and substitutions"""
    assert levenshtein("kitten", "sitting") == 3
    assert levenshtein("", "abc") == 3
    assert levenshtein("same", "same") == 0


def test_similarity_normalizes_case_and_whitespace():
    """Answers are compared lowercased and trimmed"""
    assert similarity("  ABC ", "abc") == 100.0
    assert similarity("abcd", "abce") == 75.0


def test_auto_issue_prefers_secret_marks(make_item):
    """Secret identifiers win over color; items with neither get no challenge"""
    verifier = ChallengeVerifier()

    secret = verifier.auto_issue(make_item(secret_identifiers=["initials JD on back"], color=ItemColor.BLACK))
    assert secret.kind == ChallengeKind.SECRET_MARK

    color = verifier.auto_issue(make_item(color=ItemColor.BLACK))
    assert color.kind == ChallengeKind.COLOR

    assert verifier.auto_issue(make_item()) is None


def test_grade_exact_secret_passes(make_item):
    """An answer identical to a secret scores 100 and passes"""
    verifier = ChallengeVerifier()
    item = make_item(secret_identifiers=["sticker under battery", "initials JD on back"])
    challenge = verifier.auto_issue(item)

    result = verifier.grade(challenge, item, "Initials JD on back")
    assert result.match_score == 100.0
    assert result.passed


def test_grade_close_answer_passes(make_item):
    """A one-letter typo still passes"""
    verifier = ChallengeVerifier()
    item = make_item(secret_identifiers=["initials JD on back"])
    result = verifier.grade(verifier.auto_issue(item), item, "initials jd on bak")
    assert result.match_score > 90
    assert result.passed


def test_grade_unrelated_answer_fails(make_item):
    """An unrelated answer scores near zero and fails"""
    verifier = ChallengeVerifier()
    item = make_item(secret_identifiers=["initials JD on back"])
    result = verifier.grade(verifier.auto_issue(item), item, "xyz")
    assert result.match_score < 20
    assert not result.passed


def test_grade_color_challenge(make_item):
    """Color challenges are graded against the recorded color"""
    verifier = ChallengeVerifier()
    item = make_item(color=ItemColor.BLACK)
    result = verifier.grade(verifier.auto_issue(item), item, "black")
    assert result.passed


def test_grade_rejects_second_answer_and_blank(make_item):
    """Answered challenges and blank answers are rejected"""
    verifier = ChallengeVerifier()
    item = make_item(secret_identifiers=["initials JD on back"])
    challenge = verifier.auto_issue(item)

    with pytest.raises(ValidationError):
        verifier.grade(challenge, item, "   ")

    challenge.answer = "initials JD on back"
    with pytest.raises(ValidationError):
        verifier.grade(challenge, item, "initials JD on back")


def test_custom_question_requires_secrets(make_item):
    """Custom questions need a question and something to grade against"""
    verifier = ChallengeVerifier()

    with pytest.raises(ValidationError):
        verifier.custom(make_item(secret_identifiers=["mark"]), "  ", "staff_1")
    with pytest.raises(ValidationError):
        verifier.custom(make_item(), "What is engraved on it?", "staff_1")

    challenge = verifier.custom(make_item(secret_identifiers=["mark"]), "What is engraved on it?", "staff_1")
    assert challenge.kind == ChallengeKind.CUSTOM
    assert challenge.conducted_by == "staff_1"


def test_pass_threshold_is_configurable(make_item):
    """A stricter threshold fails answers a default verifier would pass"""
    item = make_item(secret_identifiers=["abcd"])
    strict = ChallengeVerifier(pass_threshold=90)
    assert not strict.grade(strict.auto_issue(item), item, "abce").passed

    default = ChallengeVerifier()
    assert default.grade(default.auto_issue(item), item, "abce").passed


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
