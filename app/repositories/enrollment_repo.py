"""
Enrollment Repository - enrollments and their execution log.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.enrollment import (
    LeadSequenceEnrollment,
    SequenceExecutionLog,
    EnrollmentStatus,
    OPEN_ENROLLMENT_STATUSES,
)
from app.models.lead import Lead
from app.models.sequence import Sequence


class EnrollmentRepository:
    """Repository for LeadSequenceEnrollment records."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, enrollment: LeadSequenceEnrollment) -> LeadSequenceEnrollment:
        self.db.add(enrollment)
        await self.db.flush()
        return enrollment

    async def get_by_id(self, enrollment_id: int) -> Optional[LeadSequenceEnrollment]:
        return await self.db.get(LeadSequenceEnrollment, enrollment_id)

    async def save(self, enrollment: LeadSequenceEnrollment) -> LeadSequenceEnrollment:
        await self.db.flush()
        return enrollment

    async def find_open(self, lead_id: int, sequence_id: int) -> Optional[LeadSequenceEnrollment]:
        """The active or paused enrollment for a (lead, sequence) pair, if any."""
        stmt = (
            select(LeadSequenceEnrollment)
            .where(LeadSequenceEnrollment.lead_id == lead_id)
            .where(LeadSequenceEnrollment.sequence_id == sequence_id)
            .where(LeadSequenceEnrollment.status.in_(OPEN_ENROLLMENT_STATUSES))
            .limit(1)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_for_sequence(
        self,
        sequence_id: int,
        status: Optional[EnrollmentStatus] = None,
        limit: int = 100,
    ) -> list[LeadSequenceEnrollment]:
        stmt = select(LeadSequenceEnrollment).where(LeadSequenceEnrollment.sequence_id == sequence_id)
        if status:
            stmt = stmt.where(LeadSequenceEnrollment.status == status)
        stmt = stmt.order_by(LeadSequenceEnrollment.enrolled_at.desc(), LeadSequenceEnrollment.id.desc()).limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_for_lead(self, lead_id: int) -> list[LeadSequenceEnrollment]:
        stmt = (
            select(LeadSequenceEnrollment)
            .where(LeadSequenceEnrollment.lead_id == lead_id)
            .order_by(LeadSequenceEnrollment.enrolled_at.desc(), LeadSequenceEnrollment.id.desc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_due(self, now: datetime, limit: int = 100) -> list[LeadSequenceEnrollment]:
        """
        Active enrollments whose next action time has passed, oldest first.
        Rows of tombstoned leads or sequences are never returned.
        """
        stmt = (
            select(LeadSequenceEnrollment)
            .join(Lead, Lead.id == LeadSequenceEnrollment.lead_id)
            .join(Sequence, Sequence.id == LeadSequenceEnrollment.sequence_id)
            .where(LeadSequenceEnrollment.status == EnrollmentStatus.ACTIVE)
            .where(LeadSequenceEnrollment.next_action_at.is_not(None))
            .where(LeadSequenceEnrollment.next_action_at <= now)
            .where(Lead.is_deleted == False)  # noqa: E712
            .where(Sequence.is_deleted == False)  # noqa: E712
            .order_by(LeadSequenceEnrollment.next_action_at.asc(), LeadSequenceEnrollment.id.asc())
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().unique().all())

    async def claim_due(self, enrollment_id: int, now: datetime) -> Optional[LeadSequenceEnrollment]:
        """
        Lock one enrollment for processing if it is still due.

        On PostgreSQL the row is locked FOR UPDATE SKIP LOCKED until the caller
        commits, so a concurrent worker gets None instead of running the step twice.
        """
        stmt = (
            select(LeadSequenceEnrollment)
            .where(LeadSequenceEnrollment.id == enrollment_id)
            .where(LeadSequenceEnrollment.status == EnrollmentStatus.ACTIVE)
            .where(LeadSequenceEnrollment.next_action_at <= now)
            .with_for_update(skip_locked=True)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    # ──────────────────────────────────────────────
    # Execution log
    # ──────────────────────────────────────────────

    async def add_log(self, log: SequenceExecutionLog) -> SequenceExecutionLog:
        self.db.add(log)
        await self.db.flush()
        return log

    async def get_logs(self, enrollment_id: int) -> list[SequenceExecutionLog]:
        stmt = (
            select(SequenceExecutionLog)
            .where(SequenceExecutionLog.enrollment_id == enrollment_id)
            .order_by(SequenceExecutionLog.id.asc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
