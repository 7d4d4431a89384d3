"""Found item and lost report data models"""

from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Optional, List, Dict, Any
from uuid import uuid4
from claimdesk.constants import ItemCategory, ItemColor, ItemSize, ItemStatus
from claimdesk.utils.timeutils import ensure_utc


class Item(BaseModel):
    """Found item entity"""

    id: str = Field(default_factory=lambda: str(uuid4()), description="Item ID")
    category: ItemCategory = Field(..., description="Item category")
    description: str = Field(..., description="Public description")
    keywords: List[str] = Field(default_factory=list, description="Searchable keywords")
    location_found: str = Field(..., description="Free-text location where the item was found")
    date_found: datetime = Field(..., description="When the item was found")
    identifying_features: List[str] = Field(default_factory=list, description="Visible identifying features")
    brand: Optional[str] = Field(None, description="Brand or manufacturer")
    size: Optional[ItemSize] = Field(None, description="Structured size")
    bag_contents: List[str] = Field(default_factory=list, description="Contents when the item is a bag")
    color: Optional[ItemColor] = Field(None, description="Structured color")
    secret_identifiers: List[str] = Field(
        default_factory=list,
        exclude=True,
        repr=False,
        description="Hidden marks used for challenge-response; never serialized"
    )
    status: ItemStatus = Field(default=ItemStatus.AVAILABLE, description="Item lifecycle status")
    claimed_by: Optional[str] = Field(None, description="Claimant reference holding the item")
    registered_by: Optional[str] = Field(None, description="Staff member who registered the item")
    deleted_at: Optional[datetime] = Field(None, description="Soft-delete timestamp")

    @field_validator('date_found', 'deleted_at', mode='before')
    @classmethod
    def _utc(cls, value):
        return ensure_utc(value)

    def public_view(self) -> Dict[str, Any]:
        """Serialized form safe to show claimants"""
        return self.model_dump(mode='json', exclude={'claimed_by', 'deleted_at'})

    class Config:
        json_schema_extra = {
            "example": {
                "category": "ELECTRONICS",
                "description": "Black iPhone with cracked corner",
                "keywords": ["iphone", "black", "128gb"],
                "location_found": "Terminal 1",
                "date_found": "2024-01-01T09:30:00Z",
                "identifying_features": ["scratch on screen"],
                "brand": "Apple",
                "color": "BLACK",
                "status": "AVAILABLE"
            }
        }


class LostReport(BaseModel):
    """Lost item report filed by an owner"""

    id: str = Field(default_factory=lambda: str(uuid4()), description="Report ID")
    category: ItemCategory = Field(..., description="Item category")
    description: str = Field(..., description="Owner's description")
    keywords: List[str] = Field(default_factory=list, description="Searchable keywords")
    location_lost: str = Field(..., description="Free-text location where the item was lost")
    date_lost: datetime = Field(..., description="When the item was lost")
    identifying_features: List[str] = Field(default_factory=list, description="Identifying features")
    brand: Optional[str] = Field(None, description="Brand or manufacturer")
    size: Optional[ItemSize] = Field(None, description="Structured size")
    bag_contents: List[str] = Field(default_factory=list, description="Contents when the item is a bag")
    color: Optional[ItemColor] = Field(None, description="Structured color")
    reported_by: str = Field(..., description="Owner user ID")
    contact_email: str = Field(..., description="Owner contact email")
    contact_phone: Optional[str] = Field(None, description="Owner contact phone")
    deleted_at: Optional[datetime] = Field(None, description="Soft-delete timestamp")

    @field_validator('date_lost', 'deleted_at', mode='before')
    @classmethod
    def _utc(cls, value):
        return ensure_utc(value)

    @field_validator('contact_email')
    @classmethod
    def _lowercase_email(cls, value: str) -> str:
        return value.strip().lower()

    class Config:
        json_schema_extra = {
            "example": {
                "category": "ELECTRONICS",
                "description": "Lost my black iPhone near the gate",
                "keywords": ["iphone", "black"],
                "location_lost": "T1",
                "date_lost": "2024-01-01T08:00:00Z",
                "reported_by": "user_42",
                "contact_email": "owner@example.com"
            }
        }
