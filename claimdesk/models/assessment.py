"""Fraud and challenge assessment result models"""

from pydantic import BaseModel, Field
from typing import Dict, List


class PatternResult(BaseModel):
    """Outcome of one fraud signal"""

    triggered: bool = False
    points: int = 0
    description: str = ""


class FraudAssessment(BaseModel):
    """Fraud risk score with the flags and signal details behind it"""

    score: int = Field(..., ge=0, le=100, description="Risk score (0-100)")
    flags: List[str] = Field(default_factory=list, description="Names of triggered signals")
    patterns: Dict[str, PatternResult] = Field(default_factory=dict)

    def is_high_risk(self, threshold: float) -> bool:
        return self.score >= threshold


class ChallengeResult(BaseModel):
    """Graded challenge answer"""

    challenge_id: str
    match_score: float = Field(..., ge=0, le=100)
    passed: bool
