"""Activity log entry data model"""

from pydantic import BaseModel, Field, field_validator, model_validator
from datetime import datetime
from typing import Optional, Dict, Any
from uuid import uuid4
from claimdesk.constants import ActivityAction
from claimdesk.utils.timeutils import ensure_utc, utcnow


class ActivityEntry(BaseModel):
    """Append-only activity trail entry"""

    id: str = Field(default_factory=lambda: str(uuid4()), description="Entry ID")
    action: ActivityAction = Field(..., description="Action performed")
    user_id: str = Field(..., description="Actor who performed the action")
    subject_id: Optional[str] = Field(None, description="User whose record is affected; defaults to the actor")
    entity_type: str = Field(..., description="Kind of record acted on")
    entity_id: str = Field(..., description="ID of the record acted on")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Action details")
    created_at: datetime = Field(default_factory=utcnow, description="Action timestamp")

    @field_validator('created_at', mode='before')
    @classmethod
    def _utc(cls, value):
        return ensure_utc(value)

    @model_validator(mode='after')
    def _default_subject(self):
        if self.subject_id is None:
            self.subject_id = self.user_id
        return self

    class Config:
        json_schema_extra = {
            "example": {
                "action": "CLAIM_REJECTED",
                "user_id": "staff_7",
                "subject_id": "user_42",
                "entity_type": "Claim",
                "entity_id": "c1d2e3",
                "metadata": {"reason": "Proof does not match"},
                "created_at": "2024-01-02T10:00:05Z"
            }
        }
