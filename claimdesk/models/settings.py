"""Matching settings snapshot models"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime
from typing import Optional
from claimdesk.constants import (
    DEFAULT_AUTO_MATCH_THRESHOLD,
    DEFAULT_REJECT_THRESHOLD,
    DEFAULT_MATCH_WEIGHTS
)
from claimdesk.utils.timeutils import ensure_utc, utcnow


class MatchWeights(BaseModel):
    """Per-dimension weights for the aggregate confidence score"""

    model_config = ConfigDict(frozen=True)

    category: float = DEFAULT_MATCH_WEIGHTS["category"]
    keyword: float = DEFAULT_MATCH_WEIGHTS["keyword"]
    date: float = DEFAULT_MATCH_WEIGHTS["date"]
    location: float = DEFAULT_MATCH_WEIGHTS["location"]
    feature: float = DEFAULT_MATCH_WEIGHTS["feature"]
    color: float = DEFAULT_MATCH_WEIGHTS["color"]

    def total(self) -> float:
        return self.category + self.keyword + self.date + self.location + self.feature + self.color


class MatchSettings(BaseModel):
    """
    Immutable settings snapshot.

    Updates never mutate a snapshot; the settings store builds a new one with
    an incremented version.
    """

    model_config = ConfigDict(frozen=True)

    auto_match_threshold: float = Field(default=DEFAULT_AUTO_MATCH_THRESHOLD, description="Auto-confirm cutoff")
    reject_threshold: float = Field(default=DEFAULT_REJECT_THRESHOLD, description="Silent discard cutoff")
    weights: MatchWeights = Field(default_factory=MatchWeights)
    version: int = Field(default=1, description="Snapshot version")
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator('updated_at', mode='before')
    @classmethod
    def _utc(cls, value):
        return ensure_utc(value)


class WeightsUpdate(BaseModel):
    """Partial weight update; unset fields keep their current value"""

    category: Optional[float] = None
    keyword: Optional[float] = None
    date: Optional[float] = None
    location: Optional[float] = None
    feature: Optional[float] = None
    color: Optional[float] = None


class SettingsUpdate(BaseModel):
    """Partial settings update accepted by update_config"""

    auto_match_threshold: Optional[float] = None
    reject_threshold: Optional[float] = None
    weights: Optional[WeightsUpdate] = None
