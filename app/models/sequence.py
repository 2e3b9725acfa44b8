"""
Sequence models - reusable automation templates made of ordered steps.
"""
import enum
from datetime import datetime, UTC
from typing import Any, Optional

from sqlalchemy import Integer, String, Text, Boolean, DateTime, ForeignKey, JSON, Enum as SAEnum, Index
from sqlalchemy.orm import Mapped, mapped_column

from app.core.base import Base, enum_values


class TriggerType(str, enum.Enum):
    """Event that makes a lead eligible for a sequence."""
    NEW_LEAD = "new_lead"
    STATUS_CHANGE = "status_change"
    INACTIVITY = "inactivity"
    SCHEDULED = "scheduled"
    MANUAL = "manual"


class StepAction(str, enum.Enum):
    """Closed set of step actions. Every member needs a handler in app.automation.actions."""
    SEND_MESSAGE = "send_message"
    UPDATE_STATUS = "update_status"
    WAIT = "wait"
    NOTIFY_AGENT = "notify_agent"
    ADD_TAG = "add_tag"
    WEBHOOK = "webhook"


class Sequence(Base):
    """Automation template.

    trigger_conditions keys (all optional, AND across keys, OR within a list):
      sources, intents, statuses: list[str]
      min_score: int
    """
    __tablename__ = "sequences"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    trigger_type: Mapped[TriggerType] = mapped_column(
        SAEnum(TriggerType, values_callable=enum_values, native_enum=False, length=32),
        nullable=False,
    )
    trigger_conditions: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    priority: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

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

    __table_args__ = (
        Index("ix_sequences_trigger_active", "trigger_type", "is_active"),
    )

    def __repr__(self):
        return f"<Sequence id={self.id} trigger={self.trigger_type} active={self.is_active}>"


class SequenceStep(Base):
    """One ordered action within a sequence.

    delay_hours is the wait after this step fires before the enrollment is due
    for the next step. action_type is stored as a plain string so rows written
    by older code with unknown actions still load.
    """
    __tablename__ = "sequence_steps"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sequence_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("sequences.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    action_type: Mapped[str] = mapped_column(String(32), nullable=False)
    action_config: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    delay_hours: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        Index("ix_sequence_steps_sequence_order", "sequence_id", "order"),
    )

    def __repr__(self):
        return f"<SequenceStep id={self.id} sequence_id={self.sequence_id} order={self.order} action={self.action_type}>"
