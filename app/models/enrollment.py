"""
Enrollment models - the live binding of a lead to a sequence, plus the
per-attempt execution log written by the scheduler.
"""
import enum
from datetime import datetime, UTC
from typing import Any, Optional

from sqlalchemy import Integer, String, Text, DateTime, ForeignKey, JSON, Enum as SAEnum, Index, text
from sqlalchemy.orm import Mapped, mapped_column

from app.core.base import Base, enum_values


class EnrollmentStatus(str, enum.Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# An enrollment in one of these states blocks a second one for the same (lead, sequence)
OPEN_ENROLLMENT_STATUSES = (EnrollmentStatus.ACTIVE, EnrollmentStatus.PAUSED)
TERMINAL_ENROLLMENT_STATUSES = {EnrollmentStatus.COMPLETED, EnrollmentStatus.CANCELLED}

_OPEN_PREDICATE = text("status IN ('active', 'paused')")


class ExecutionStatus(str, enum.Enum):
    PENDING = "pending"
    EXECUTED = "executed"
    FAILED = "failed"
    SKIPPED = "skipped"


class LeadSequenceEnrollment(Base):
    """Lead progressing through a sequence.

    current_step_id is None before the first step is assigned.
    next_action_at is None once nothing is left to process automatically.
    """
    __tablename__ = "lead_sequence_enrollments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    lead_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("leads.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sequence_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("sequences.id", ondelete="CASCADE"), nullable=False, index=True
    )
    current_step_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("sequence_steps.id", ondelete="SET NULL"), nullable=True
    )

    status: Mapped[EnrollmentStatus] = mapped_column(
        SAEnum(EnrollmentStatus, values_callable=enum_values, native_enum=False, length=16),
        nullable=False,
        default=EnrollmentStatus.ACTIVE,
    )
    enrolled_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    next_action_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    details: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    __table_args__ = (
        # At most one active/paused enrollment per (lead, sequence); finished rows don't count
        Index(
            "uq_enrollments_open_lead_sequence",
            "lead_id",
            "sequence_id",
            unique=True,
            postgresql_where=_OPEN_PREDICATE,
            sqlite_where=_OPEN_PREDICATE,
        ),
        Index("ix_enrollments_status_next_action", "status", "next_action_at"),
    )

    def __repr__(self):
        return (
            f"<LeadSequenceEnrollment id={self.id} lead_id={self.lead_id} "
            f"sequence_id={self.sequence_id} status={self.status}>"
        )


class SequenceExecutionLog(Base):
    """One step attempt made by the scheduler."""
    __tablename__ = "sequence_execution_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    enrollment_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("lead_sequence_enrollments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    step_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("sequence_steps.id", ondelete="SET NULL"), nullable=True
    )
    status: Mapped[ExecutionStatus] = mapped_column(
        SAEnum(ExecutionStatus, values_callable=enum_values, native_enum=False, length=16),
        nullable=False,
        default=ExecutionStatus.PENDING,
    )
    result: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    action_type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    scheduled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    executed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )

    def __repr__(self):
        return f"<SequenceExecutionLog id={self.id} enrollment_id={self.enrollment_id} status={self.status}>"
