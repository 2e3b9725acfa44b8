"""
Lead Repository - Data Access Layer for Lead model.
"""
from datetime import datetime, UTC
from typing import Optional

from sqlalchemy import select, update, func, or_, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from app.models.lead import Lead, LeadStatus, TERMINAL_LEAD_STATUSES


class LeadRepository:
    """Repository for Lead CRUD operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, lead: Lead) -> Lead:
        """Create a new lead."""
        self.db.add(lead)
        await self.db.flush()
        await self.db.refresh(lead)
        return lead

    async def get_by_id(self, lead_id: int, include_deleted: bool = False) -> Optional[Lead]:
        """Get lead by ID. Tombstoned leads are hidden unless include_deleted."""
        stmt = select(Lead).where(Lead.id == lead_id)
        if not include_deleted:
            stmt = stmt.where(Lead.is_deleted == False)  # noqa: E712

        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_all(
        self,
        status: Optional[LeadStatus] = None,
        min_score: Optional[int] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> tuple[list[Lead], int]:
        """Get leads with optional filtering and pagination."""
        stmt = select(Lead).where(Lead.is_deleted == False)  # noqa: E712
        if status:
            stmt = stmt.where(Lead.status == status)
        if min_score is not None:
            stmt = stmt.where(Lead.score >= min_score)

        count_stmt = select(func.count()).select_from(stmt.subquery())
        total = (await self.db.execute(count_stmt)).scalar() or 0

        stmt = stmt.order_by(Lead.score.desc(), Lead.id.desc()).offset(offset).limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all()), total

    async def save(self, lead: Lead) -> Lead:
        """Save lead changes."""
        await self.db.flush()
        return lead

    async def set_score(self, lead: Lead, score: int) -> bool:
        """
        Write the score only if it differs from the stored value.
        Returns True when a row was changed.
        """
        stmt = (
            update(Lead)
            .where(Lead.id == lead.id, Lead.score != score)
            .values(score=score)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        changed = result.rowcount > 0
        if changed:
            # Row already written; mirror it on the instance without a second UPDATE
            set_committed_value(lead, "score", score)
        return changed

    async def delete(self, lead: Lead, deleted_by: str = "System") -> None:
        """Soft delete a lead - marks as deleted without removing from DB."""
        lead.is_deleted = True
        lead.deleted_at = datetime.now(UTC)
        lead.deleted_by = deleted_by
        await self.db.flush()

    async def restore(self, lead: Lead) -> None:
        """Restore a soft-deleted lead."""
        lead.is_deleted = False
        lead.deleted_at = None
        lead.deleted_by = None
        await self.db.flush()

    async def get_inactive_leads(self, cutoff: datetime, after_id: int = 0, limit: int = 500) -> list[Lead]:
        """
        Open leads whose last interaction (or creation, if they never interacted)
        is older than cutoff. Keyset-paged on id: pass the last id seen as after_id.
        """
        stmt = (
            select(Lead)
            .where(Lead.is_deleted == False)  # noqa: E712
            .where(Lead.status.not_in(list(TERMINAL_LEAD_STATUSES)))
            .where(Lead.id > after_id)
            .where(
                or_(
                    Lead.last_interaction_at <= cutoff,
                    and_(Lead.last_interaction_at.is_(None), Lead.created_at <= cutoff),
                )
            )
            .order_by(Lead.id.asc())
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_open_leads(self, after_id: int = 0, limit: int = 500) -> list[Lead]:
        """Non-deleted leads that are not won or lost, keyset-paged on id."""
        stmt = (
            select(Lead)
            .where(Lead.is_deleted == False)  # noqa: E712
            .where(Lead.status.not_in(list(TERMINAL_LEAD_STATUSES)))
            .where(Lead.id > after_id)
            .order_by(Lead.id.asc())
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
