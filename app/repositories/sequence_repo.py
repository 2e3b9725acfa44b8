"""
Sequence Repository - sequences and their ordered steps.
"""
from datetime import datetime, UTC
from typing import Optional

from sqlalchemy import select, or_, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.sequence import Sequence, SequenceStep, TriggerType


class SequenceRepository:
    """Repository for Sequence and SequenceStep records."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, sequence: Sequence) -> Sequence:
        self.db.add(sequence)
        await self.db.flush()
        await self.db.refresh(sequence)
        return sequence

    async def get_by_id(self, sequence_id: int, include_deleted: bool = False) -> Optional[Sequence]:
        stmt = select(Sequence).where(Sequence.id == sequence_id)
        if not include_deleted:
            stmt = stmt.where(Sequence.is_deleted == False)  # noqa: E712
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_all(self, include_inactive: bool = True) -> list[Sequence]:
        stmt = select(Sequence).where(Sequence.is_deleted == False)  # noqa: E712
        if not include_inactive:
            stmt = stmt.where(Sequence.is_active == True)  # noqa: E712
        stmt = stmt.order_by(Sequence.priority.desc(), Sequence.id.asc())
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_active_sequences(self, trigger_type: TriggerType) -> list[Sequence]:
        """Active, non-deleted sequences for a trigger, highest priority first."""
        stmt = (
            select(Sequence)
            .where(Sequence.is_deleted == False)  # noqa: E712
            .where(Sequence.is_active == True)  # noqa: E712
            .where(Sequence.trigger_type == trigger_type)
            .order_by(Sequence.priority.desc(), Sequence.id.asc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def save(self, sequence: Sequence) -> Sequence:
        await self.db.flush()
        return sequence

    async def delete(self, sequence: Sequence) -> None:
        """Soft delete - the sequence stops matching and its enrollments stop being processed."""
        sequence.is_deleted = True
        sequence.is_active = False
        sequence.deleted_at = datetime.now(UTC)
        await self.db.flush()

    # ──────────────────────────────────────────────
    # Steps
    # ──────────────────────────────────────────────

    async def add_step(self, step: SequenceStep) -> SequenceStep:
        self.db.add(step)
        await self.db.flush()
        await self.db.refresh(step)
        return step

    async def get_step(self, step_id: int) -> Optional[SequenceStep]:
        return await self.db.get(SequenceStep, step_id)

    async def get_steps(self, sequence_id: int, active_only: bool = False) -> list[SequenceStep]:
        """Steps of a sequence in execution order."""
        stmt = select(SequenceStep).where(SequenceStep.sequence_id == sequence_id)
        if active_only:
            stmt = stmt.where(SequenceStep.is_active == True)  # noqa: E712
        stmt = stmt.order_by(SequenceStep.order.asc(), SequenceStep.id.asc())
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_first_active_step(self, sequence_id: int) -> Optional[SequenceStep]:
        stmt = (
            select(SequenceStep)
            .where(SequenceStep.sequence_id == sequence_id)
            .where(SequenceStep.is_active == True)  # noqa: E712
            .order_by(SequenceStep.order.asc(), SequenceStep.id.asc())
            .limit(1)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_next_active_step(self, step: SequenceStep) -> Optional[SequenceStep]:
        """First active step after this one by (order, id); steps sharing an order run in id order."""
        stmt = (
            select(SequenceStep)
            .where(SequenceStep.sequence_id == step.sequence_id)
            .where(
                or_(
                    SequenceStep.order > step.order,
                    and_(SequenceStep.order == step.order, SequenceStep.id > step.id),
                )
            )
            .where(SequenceStep.is_active == True)  # noqa: E712
            .order_by(SequenceStep.order.asc(), SequenceStep.id.asc())
            .limit(1)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()
