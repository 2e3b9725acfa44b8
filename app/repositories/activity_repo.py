from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.activity import LeadActivity


class ActivityRepository:
    """Append-only access to lead activities."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def add(self, activity: LeadActivity) -> LeadActivity:
        self.db.add(activity)
        await self.db.flush()
        return activity

    async def count_for_lead(self, lead_id: int) -> int:
        stmt = select(func.count(LeadActivity.id)).where(LeadActivity.lead_id == lead_id)
        result = await self.db.execute(stmt)
        return result.scalar() or 0

    async def get_by_lead_id(self, lead_id: int, limit: int = 100) -> list[LeadActivity]:
        """Fetch activities for a lead, newest first."""
        stmt = (
            select(LeadActivity)
            .where(LeadActivity.lead_id == lead_id)
            .order_by(LeadActivity.created_at.desc(), LeadActivity.id.desc())
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
