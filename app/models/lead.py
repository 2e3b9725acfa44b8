"""
Lead model - a real-estate prospect moving through the sales funnel.
"""
import enum
from datetime import datetime, UTC
from decimal import Decimal
from typing import Any

from sqlalchemy import String, Integer, Numeric, DateTime, Text, Boolean, JSON, Enum as SAEnum, Index
from sqlalchemy.orm import Mapped, mapped_column

from app.core.base import Base, enum_values


class LeadSource(str, enum.Enum):
    """Channel the lead arrived through."""
    WHATSAPP = "whatsapp"
    INSTAGRAM = "instagram"
    TIKTOK = "tiktok"
    FACEBOOK = "facebook"
    WEBSITE = "website"
    REFERRAL = "referral"
    PORTAL = "portal"
    COLD_OUTREACH = "cold_outreach"


class LeadStatus(str, enum.Enum):
    """Funnel position: new -> contacted -> qualified -> negotiation -> won, or lost."""
    NEW = "new"
    CONTACTED = "contacted"
    QUALIFIED = "qualified"
    NEGOTIATION = "negotiation"
    WON = "won"
    LOST = "lost"


class LeadIntent(str, enum.Enum):
    """What the lead wants to do with a property."""
    INVESTOR = "investor"
    END_BUYER = "end_buyer"
    RENTER = "renter"
    DEVELOPER = "developer"


LEAD_STATUS_ORDER = [
    LeadStatus.NEW,
    LeadStatus.CONTACTED,
    LeadStatus.QUALIFIED,
    LeadStatus.NEGOTIATION,
    LeadStatus.WON,
]

# Closed deals are excluded from inactivity and scheduled sweeps
TERMINAL_LEAD_STATUSES = {LeadStatus.WON, LeadStatus.LOST}


class Lead(Base):
    """Lead record.

    - score: 0-100, maintained by LeadScoringService
    - preferences: {"locations": [...], "bedrooms_min": 2, "property_types": [...]}
    - tags: list of unique free-form strings
    """
    __tablename__ = "leads"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)

    source: Mapped[LeadSource] = mapped_column(
        SAEnum(LeadSource, values_callable=enum_values, native_enum=False, length=32),
        nullable=False,
    )
    status: Mapped[LeadStatus] = mapped_column(
        SAEnum(LeadStatus, values_callable=enum_values, native_enum=False, length=32),
        nullable=False,
        default=LeadStatus.NEW,
    )
    intent: Mapped[LeadIntent | None] = mapped_column(
        SAEnum(LeadIntent, values_callable=enum_values, native_enum=False, length=32),
        nullable=True,
    )

    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    budget_min: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    budget_max: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    preferences: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    last_interaction_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    # Soft delete fields
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    deleted_by: Mapped[str | None] = mapped_column(String(128), nullable=True)

    __table_args__ = (
        Index("ix_leads_status_score", "status", "score"),
        Index("ix_leads_last_interaction", "last_interaction_at"),
    )

    def __repr__(self):
        return f"<Lead id={self.id} status={self.status} score={self.score}>"
