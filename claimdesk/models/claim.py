"""Claim data models"""

from pydantic import BaseModel, Field, field_validator, model_validator
from datetime import datetime
from typing import Optional, List
from uuid import uuid4
from claimdesk.constants import ClaimStatus, ProofType, ChallengeKind
from claimdesk.utils.timeutils import ensure_utc, utcnow


class ProofDocument(BaseModel):
    """Reference to an uploaded proof document"""

    type: ProofType = Field(..., description="Document type")
    filename: str = Field(..., min_length=1, description="Original file name")
    path: str = Field(..., min_length=1, description="Storage path")
    uploaded_at: datetime = Field(default_factory=utcnow)

    @field_validator('uploaded_at', mode='before')
    @classmethod
    def _utc(cls, value):
        return ensure_utc(value)


class Challenge(BaseModel):
    """One challenge question and, once answered, its graded result"""

    id: str = Field(default_factory=lambda: str(uuid4()))
    kind: ChallengeKind
    question: str
    answer: Optional[str] = None
    match_score: Optional[float] = Field(None, ge=0, le=100)
    passed: Optional[bool] = None
    conducted_at: datetime = Field(default_factory=utcnow)
    conducted_by: str = Field(..., description="Staff member or system actor who issued the challenge")
    answered_at: Optional[datetime] = None

    @field_validator('conducted_at', 'answered_at', mode='before')
    @classmethod
    def _utc(cls, value):
        return ensure_utc(value)

    @property
    def is_answered(self) -> bool:
        return self.answer is not None


class Claim(BaseModel):
    """Ownership claim on a found item"""

    id: str = Field(default_factory=lambda: str(uuid4()), description="Claim ID")
    item_id: str = Field(..., description="Claimed item")
    claimant_id: Optional[str] = Field(None, description="Registered claimant")
    anonymous_email: Optional[str] = Field(None, description="Anonymous claimant email")
    anonymous_token: Optional[str] = Field(None, repr=False, description="Access token for anonymous claimants")
    lost_report_id: Optional[str] = Field(None, description="Related lost report")
    description: str = Field(..., description="Claimant's description of the item")
    status: ClaimStatus = Field(default=ClaimStatus.FILED)
    proof_documents: List[ProofDocument] = Field(default_factory=list)
    fraud_risk_score: int = Field(default=0, ge=0, le=100)
    fraud_flags: List[str] = Field(default_factory=list)
    challenge_history: List[Challenge] = Field(default_factory=list)

    verified_by: Optional[str] = None
    verified_at: Optional[datetime] = None
    verification_notes: Optional[str] = None
    rejected_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    deleted_at: Optional[datetime] = None

    @field_validator('verified_at', 'rejected_at', 'created_at', 'updated_at', 'deleted_at', mode='before')
    @classmethod
    def _utc(cls, value):
        return ensure_utc(value)

    @property
    def claimant_ref(self) -> str:
        """Stable identity for registered and anonymous claimants alike"""
        if self.claimant_id:
            return self.claimant_id
        return f"anonymous:{self.anonymous_email}"

    def is_claimant(self, user_id: Optional[str]) -> bool:
        """True when user_id is the registered claimant or the anonymous token"""
        if not user_id:
            return False
        if self.claimant_id:
            return user_id == self.claimant_id
        # Anonymous claimants prove ownership with the emailed token only
        return self.anonymous_token is not None and user_id == self.anonymous_token

    def find_challenge(self, challenge_id: str) -> Optional[Challenge]:
        for challenge in self.challenge_history:
            if challenge.id == challenge_id:
                return challenge
        return None

    def touch(self) -> None:
        self.updated_at = utcnow()


class ClaimCreate(BaseModel):
    """Input for filing a claim"""

    item_id: str = Field(..., min_length=1)
    claimant_id: Optional[str] = None
    anonymous_email: Optional[str] = None
    lost_report_id: Optional[str] = None
    description: str = Field(..., min_length=1)
    proof_documents: List[ProofDocument] = Field(default_factory=list)

    @field_validator('anonymous_email')
    @classmethod
    def _lowercase_email(cls, value: Optional[str]) -> Optional[str]:
        return value.strip().lower() if value else value

    @model_validator(mode='after')
    def _one_identity(self):
        if bool(self.claimant_id) == bool(self.anonymous_email):
            raise ValueError("exactly one of claimant_id or anonymous_email is required")
        return self
