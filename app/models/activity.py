"""
Lead Activity model - append-only audit trail that also feeds lead scoring.
"""
import enum
from datetime import datetime, UTC
from typing import Any, Optional

from sqlalchemy import Integer, String, DateTime, ForeignKey, Text, JSON, Enum as SAEnum, Index
from sqlalchemy.orm import Mapped, mapped_column

from app.core.base import Base, enum_values


class ActivityType(str, enum.Enum):
    NOTE = "note"
    EMAIL = "email"
    CALL = "call"
    MEETING = "meeting"
    MESSAGE = "message"
    STATUS_CHANGE = "status_change"
    PROPERTY_VIEWED = "property_viewed"
    SCORE_UPDATE = "score_update"


class LeadActivity(Base):
    """Activity log entry. Rows are never updated or deleted by the application."""

    __tablename__ = "lead_activities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    lead_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("leads.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    type: Mapped[ActivityType] = mapped_column(
        SAEnum(ActivityType, values_callable=enum_values, native_enum=False, length=32),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # "metadata" is reserved on declarative classes, so the attribute is named details
    details: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, nullable=False, default=dict)

    # Who performed the activity (user reference, "sequence", "webhook")
    created_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        Index("ix_lead_activities_lead_created", "lead_id", "created_at"),
        Index("ix_lead_activities_type_created", "type", "created_at"),
    )

    def __repr__(self):
        return f"<LeadActivity id={self.id} lead_id={self.lead_id} type={self.type}>"
