"""
Pydantic schemas for Lead API.
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.models.activity import ActivityType
from app.models.lead import LeadSource, LeadStatus, LeadIntent


def _lower(v):
    if isinstance(v, str):
        return v.strip().lower()
    return v


# ──────────────────────────────────────────────
# Request Schemas
# ──────────────────────────────────────────────

class LeadCreate(BaseModel):
    """Schema for creating a new lead."""
    name: str = Field(..., min_length=1, max_length=255)
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=64)
    source: LeadSource
    intent: Optional[LeadIntent] = None
    budget_min: Optional[Decimal] = Field(None, ge=0)
    budget_max: Optional[Decimal] = Field(None, ge=0)
    currency: str = Field("USD", min_length=3, max_length=3)
    preferences: dict[str, Any] = Field(default_factory=dict)
    tags: list[str] = Field(default_factory=list)
    notes: Optional[str] = None

    @field_validator("source", "intent", mode="before")
    @classmethod
    def normalize_enum(cls, v):
        return _lower(v)

    @field_validator("tags")
    @classmethod
    def unique_tags(cls, v: list[str]) -> list[str]:
        seen = []
        for tag in v:
            tag = tag.strip()
            if tag and tag not in seen:
                seen.append(tag)
        return seen

    @model_validator(mode="after")
    def check_budget_range(self):
        if self.budget_min is not None and self.budget_max is not None and self.budget_min > self.budget_max:
            raise ValueError("budget_min cannot be greater than budget_max")
        return self


class LeadStatusUpdate(BaseModel):
    """Schema for updating lead status."""
    status: LeadStatus
    notes: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v):
        return _lower(v)


class ActivityCreate(BaseModel):
    """Schema for logging an interaction with a lead."""
    type: ActivityType
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_by: Optional[str] = Field(None, max_length=255)

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v):
        return _lower(v)


# ──────────────────────────────────────────────
# Response Schemas
# ──────────────────────────────────────────────

class LeadResponse(BaseModel):
    """Schema for lead response."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    source: LeadSource
    status: LeadStatus
    intent: Optional[LeadIntent] = None
    score: int
    budget_min: Optional[Decimal] = None
    budget_max: Optional[Decimal] = None
    currency: str
    preferences: dict[str, Any] = Field(default_factory=dict)
    tags: list[str] = Field(default_factory=list)
    notes: Optional[str] = None
    last_interaction_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class LeadEventResponse(LeadResponse):
    """Lead plus the sequences the event enrolled it in."""
    enrolled_sequences: list[str] = Field(default_factory=list)


class ActivityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    lead_id: int
    type: ActivityType
    title: str
    description: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias="details")
    created_by: Optional[str] = None
    created_at: datetime


class ScoreComponent(BaseModel):
    score: int
    max: int
    label: str


class ScoreBreakdownResponse(BaseModel):
    lead_id: int
    total: int
    components: dict[str, ScoreComponent]
