"""Match data models"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime
from typing import Optional
from uuid import uuid4
from claimdesk.constants import MatchStatus
from claimdesk.models.item import Item, LostReport
from claimdesk.utils.timeutils import ensure_utc, utcnow


class ScoreBreakdown(BaseModel):
    """Weighted per-dimension scores for one item/report pair"""

    model_config = ConfigDict(frozen=True)

    category_score: float = Field(..., ge=0, description="Weighted category score")
    keyword_score: float = Field(..., ge=0, description="Weighted keyword overlap score")
    date_score: float = Field(..., ge=0, description="Weighted date proximity score")
    location_score: float = Field(..., ge=0, description="Weighted location similarity score")
    feature_score: float = Field(..., ge=0, description="Weighted feature blend score")
    color_score: float = Field(..., ge=0, description="Weighted color score")
    total_score: int = Field(..., ge=0, le=100, description="Rounded aggregate score")


class Match(BaseModel):
    """Link between a found item and a lost report"""

    id: str = Field(default_factory=lambda: str(uuid4()), description="Match ID")
    item_id: str = Field(..., description="Found item ID")
    lost_report_id: str = Field(..., description="Lost report ID")
    confidence_score: int = Field(..., ge=0, le=100, description="Aggregate confidence (0-100)")
    category_score: float = Field(..., ge=0, le=100)
    keyword_score: float = Field(..., ge=0, le=100)
    date_score: float = Field(..., ge=0, le=100)
    location_score: float = Field(..., ge=0, le=100)
    feature_score: float = Field(..., ge=0, le=100)
    color_score: float = Field(default=0, ge=0, le=100)
    status: MatchStatus = Field(default=MatchStatus.PENDING, description="Review status")
    notified: bool = Field(default=False, description="Whether the report owner was notified")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    deleted_at: Optional[datetime] = Field(None, description="Soft-delete timestamp")

    @field_validator('created_at', 'updated_at', 'deleted_at', mode='before')
    @classmethod
    def _utc(cls, value):
        return ensure_utc(value)

    @classmethod
    def from_score(cls, item_id: str, lost_report_id: str, score: ScoreBreakdown) -> "Match":
        match = cls(item_id=item_id, lost_report_id=lost_report_id, confidence_score=score.total_score,
                    category_score=0, keyword_score=0, date_score=0, location_score=0, feature_score=0)
        match.apply_score(score)
        return match

    def apply_score(self, score: ScoreBreakdown) -> None:
        """Overwrite stored sub-scores with a fresh breakdown"""
        self.confidence_score = score.total_score
        self.category_score = min(score.category_score, 100)
        self.keyword_score = min(score.keyword_score, 100)
        self.date_score = min(score.date_score, 100)
        self.location_score = min(score.location_score, 100)
        self.feature_score = min(score.feature_score, 100)
        self.color_score = min(score.color_score, 100)
        self.touch()

    def touch(self) -> None:
        self.updated_at = utcnow()


class MatchView(BaseModel):
    """Match joined with its item and lost report"""

    match: Match
    item: Optional[Item] = None
    report: Optional[LostReport] = None

    @property
    def is_complete(self) -> bool:
        return self.item is not None and self.report is not None


class RescanSummary(BaseModel):
    """Outcome counters for one rescan pass"""

    scanned: int = 0
    deleted: int = 0
    promoted: int = 0
    updated: int = 0
    skipped: int = 0
