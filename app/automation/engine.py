"""
SequenceEngine - single entry point for the automation layer.

Wires the trigger matcher, enrollment manager, step executor and scheduler to
one database session. Callers (API routes, Celery tasks, LeadService) only talk
to this class.
"""
import logging
from datetime import datetime, timedelta, UTC
from typing import Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from app.ai.message_service import MessageService
from app.automation.actions import build_handlers
from app.automation.enrollment import EnrollmentManager
from app.automation.executor import StepExecutor
from app.automation.scheduler import SequenceScheduler
from app.core.config import settings
from app.models.enrollment import LeadSequenceEnrollment
from app.models.lead import Lead
from app.models.sequence import Sequence, TriggerType
from app.repositories.lead_repo import LeadRepository
from app.services.notification_service import NotificationService

logger = logging.getLogger(__name__)


class SequenceEngine:
    def __init__(
        self,
        session: AsyncSession,
        message_service: Optional[MessageService] = None,
        notifier: Optional[NotificationService] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.session = session
        self.lead_repo = LeadRepository(session)
        self.manager = EnrollmentManager(session)
        self.executor = StepExecutor(
            session,
            build_handlers(
                message_service=message_service,
                notifier=notifier if notifier is not None else NotificationService(),
                http_client=http_client,
            ),
        )
        self.scheduler = SequenceScheduler(session, self.executor, self.manager)

    # Enrollment

    async def enroll_lead(self, lead: Lead, sequence: Sequence) -> Optional[LeadSequenceEnrollment]:
        return await self.manager.enroll(lead, sequence)

    async def auto_enroll_for_trigger(self, lead: Lead, trigger_type: TriggerType) -> list[str]:
        return await self.manager.auto_enroll_for_trigger(lead, trigger_type)

    async def advance(self, enrollment: LeadSequenceEnrollment) -> dict:
        return await self.manager.advance(enrollment)

    async def pause(self, enrollment: LeadSequenceEnrollment) -> LeadSequenceEnrollment:
        return await self.manager.pause(enrollment)

    async def resume(self, enrollment: LeadSequenceEnrollment) -> LeadSequenceEnrollment:
        return await self.manager.resume(enrollment)

    async def cancel(self, enrollment: LeadSequenceEnrollment) -> LeadSequenceEnrollment:
        return await self.manager.cancel(enrollment)

    # Execution

    async def execute_step(self, enrollment: LeadSequenceEnrollment) -> bool:
        return await self.executor.execute(enrollment)

    async def process_ready_enrollments(
        self,
        batch_limit: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> dict:
        return await self.scheduler.process_ready_enrollments(batch_limit=batch_limit, now=now)

    # Trigger sweeps

    async def enroll_inactive_leads(
        self,
        days: Optional[int] = None,
        now: Optional[datetime] = None,
        page_size: Optional[int] = None,
    ) -> dict:
        """Enroll open leads with no interaction for `days` into inactivity sequences."""
        days = days if days is not None else settings.INACTIVITY_DAYS
        now = now or datetime.now(UTC)
        cutoff = now - timedelta(days=days)

        stats = await self._sweep(
            TriggerType.INACTIVITY,
            lambda after_id, limit: self.lead_repo.get_inactive_leads(cutoff, after_id=after_id, limit=limit),
            page_size,
        )
        logger.info(f"Inactivity sweep: checked={stats['checked']} enrolled={stats['enrolled']} (>{days} days)")
        return stats

    async def enroll_scheduled(self, page_size: Optional[int] = None) -> dict:
        """Offer every open lead to the scheduled-trigger sequences."""
        stats = await self._sweep(TriggerType.SCHEDULED, self.lead_repo.get_open_leads, page_size)
        logger.info(f"Scheduled sweep: checked={stats['checked']} enrolled={stats['enrolled']}")
        return stats

    async def _sweep(self, trigger: TriggerType, fetch_page, page_size: Optional[int]) -> dict:
        """Walk fetch_page(after_id, limit) by id until a short page, auto-enrolling each lead."""
        page_size = page_size if page_size is not None else settings.SEQUENCE_SWEEP_PAGE_SIZE
        checked = enrolled = 0
        after_id = 0
        while True:
            leads = await fetch_page(after_id, page_size)
            for lead in leads:
                enrolled += len(await self.manager.auto_enroll_for_trigger(lead, trigger))
            checked += len(leads)
            if not leads or len(leads) < page_size:
                break
            after_id = leads[-1].id
        return {"checked": checked, "enrolled": enrolled}
