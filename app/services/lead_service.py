"""
LeadService - lead lifecycle events that feed the automation engine.

- create_lead:   store, score, fire new_lead sequences
- change_status: record the change, rescore, fire status_change sequences
- log_activity:  touch last_interaction_at, rescore
"""
import logging
from datetime import datetime, UTC
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.automation.engine import SequenceEngine
from app.models.activity import LeadActivity, ActivityType
from app.models.lead import Lead, LeadStatus
from app.models.sequence import TriggerType
from app.repositories.activity_repo import ActivityRepository
from app.repositories.lead_repo import LeadRepository
from app.schemas.lead import LeadCreate, LeadStatusUpdate, ActivityCreate
from app.services.scoring_service import LeadScoringService

logger = logging.getLogger(__name__)


class LeadNotFoundError(Exception):
    """Raised when lead is not found."""
    pass


class LeadService:
    def __init__(self, session: AsyncSession, engine: Optional[SequenceEngine] = None):
        self.session = session
        self.repo = LeadRepository(session)
        self.activity_repo = ActivityRepository(session)
        self.scoring = LeadScoringService(self.repo, self.activity_repo)
        self.engine = engine or SequenceEngine(session)

    async def get_lead(self, lead_id: int) -> Lead:
        lead = await self.repo.get_by_id(lead_id)
        if lead is None:
            raise LeadNotFoundError(f"Lead {lead_id} not found")
        return lead

    async def create_lead(self, data: LeadCreate) -> tuple[Lead, list[str]]:
        """Create a lead and enroll it in matching new_lead sequences."""
        lead = Lead(
            name=data.name.strip(),
            email=data.email,
            phone=data.phone,
            source=data.source,
            intent=data.intent,
            budget_min=data.budget_min,
            budget_max=data.budget_max,
            currency=data.currency.upper(),
            preferences=data.preferences,
            tags=data.tags,
            notes=data.notes,
            status=LeadStatus.NEW,
            score=0,
        )
        lead = await self.repo.create(lead)

        await self.activity_repo.add(
            LeadActivity(
                lead_id=lead.id,
                type=ActivityType.NOTE,
                title="Lead created",
                description=f"Lead received from {data.source.value}",
                details={"source": data.source.value},
                created_by="system",
            )
        )
        await self.scoring.update_score(lead)

        enrolled = await self.engine.auto_enroll_for_trigger(lead, TriggerType.NEW_LEAD)
        logger.info(f"Lead {lead.id} created (score={lead.score}, sequences={enrolled})")
        return lead, enrolled

    async def change_status(self, lead_id: int, data: LeadStatusUpdate) -> tuple[Lead, list[str]]:
        lead = await self.get_lead(lead_id)
        old_status = lead.status
        if old_status == data.status:
            return lead, []

        lead.status = data.status
        lead.last_interaction_at = datetime.now(UTC)
        await self.repo.save(lead)

        await self.activity_repo.add(
            LeadActivity(
                lead_id=lead.id,
                type=ActivityType.STATUS_CHANGE,
                title="Status updated",
                description=data.notes or f"Status changed from {old_status.value} to {data.status.value}",
                details={"old_status": old_status.value, "new_status": data.status.value},
                created_by="api",
            )
        )
        await self.scoring.update_score(lead)

        enrolled = await self.engine.auto_enroll_for_trigger(lead, TriggerType.STATUS_CHANGE)
        logger.info(f"Lead {lead.id} status {old_status.value} -> {data.status.value}")
        return lead, enrolled

    async def log_activity(self, lead_id: int, data: ActivityCreate) -> LeadActivity:
        lead = await self.get_lead(lead_id)

        activity = await self.activity_repo.add(
            LeadActivity(
                lead_id=lead.id,
                type=data.type,
                title=data.title,
                description=data.description,
                details=data.metadata,
                created_by=data.created_by,
            )
        )

        lead.last_interaction_at = datetime.now(UTC)
        await self.repo.save(lead)
        await self.scoring.update_score(lead)
        return activity

    async def recalculate_score(self, lead_id: int) -> Lead:
        lead = await self.get_lead(lead_id)
        return await self.scoring.update_score(lead)

    async def get_score_breakdown(self, lead_id: int) -> dict:
        lead = await self.get_lead(lead_id)
        return await self.scoring.get_breakdown(lead)

    async def delete_lead(self, lead_id: int, deleted_by: str = "api") -> None:
        """Soft delete. Open enrollments stop being processed."""
        lead = await self.get_lead(lead_id)
        await self.repo.delete(lead, deleted_by=deleted_by)
        logger.info(f"Lead {lead_id} deleted by {deleted_by}")
