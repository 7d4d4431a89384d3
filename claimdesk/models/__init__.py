"""Data models for the claims engine"""

from .item import Item, LostReport
from .match import Match, MatchView, ScoreBreakdown, RescanSummary
from .settings import MatchSettings, MatchWeights, SettingsUpdate, WeightsUpdate
from .claim import Claim, ClaimCreate, ProofDocument, Challenge
from .activity import ActivityEntry
from .assessment import FraudAssessment, PatternResult, ChallengeResult

__all__ = [
    "Item",
    "LostReport",
    "Match",
    "MatchView",
    "ScoreBreakdown",
    "RescanSummary",
    "MatchSettings",
    "MatchWeights",
    "SettingsUpdate",
    "WeightsUpdate",
    "Claim",
    "ClaimCreate",
    "ProofDocument",
    "Challenge",
    "ActivityEntry",
    "FraudAssessment",
    "PatternResult",
    "ChallengeResult"
]
