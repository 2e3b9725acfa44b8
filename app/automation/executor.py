"""
Step Executor - runs the current step of an enrollment.
"""
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.automation.actions import ActionContext, StepHandler
from app.core.base import coerce_enum
from app.models.enrollment import LeadSequenceEnrollment
from app.models.sequence import StepAction
from app.repositories.lead_repo import LeadRepository
from app.repositories.sequence_repo import SequenceRepository

logger = logging.getLogger(__name__)


class StepExecutor:
    def __init__(self, session: AsyncSession, handlers: dict[StepAction, StepHandler]):
        missing = [action.value for action in StepAction if action not in handlers]
        if missing:
            raise ValueError(f"No handler registered for step actions: {', '.join(missing)}")

        self.session = session
        self.handlers = handlers
        self.lead_repo = LeadRepository(session)
        self.sequence_repo = SequenceRepository(session)

    async def execute(self, enrollment: LeadSequenceEnrollment) -> bool:
        """
        Run the enrollment's current step.
        Returns False when there is nothing to run (no step, deleted lead, unknown
        action) or the action reported failure. Handler exceptions propagate.
        """
        extra = {"enrollment_id": enrollment.id, "lead_id": enrollment.lead_id}

        step = None
        if enrollment.current_step_id is not None:
            step = await self.sequence_repo.get_step(enrollment.current_step_id)
        if step is None:
            logger.warning(f"Enrollment {enrollment.id} has no current step", extra=extra)
            return False
        if not step.is_active:
            logger.info(f"Step {step.id} was deactivated, not executing", extra=extra)
            return False

        lead = await self.lead_repo.get_by_id(enrollment.lead_id)
        if lead is None:
            logger.warning(f"Lead {enrollment.lead_id} not found for enrollment {enrollment.id}", extra=extra)
            return False

        action: Optional[StepAction] = coerce_enum(StepAction, step.action_type)
        if action is None:
            logger.warning(f"Unknown action type {step.action_type!r} on step {step.id}", extra=extra)
            return False

        ctx = ActionContext(
            session=self.session,
            lead=lead,
            step=step,
            enrollment=enrollment,
            config=dict(step.action_config or {}),
        )
        success = await self.handlers[action].run(ctx)
        logger.info(
            f"Step {step.id} ({action.value}) for lead {lead.id}: {'ok' if success else 'no-op'}",
            extra={**extra, "step_id": step.id},
        )
        return success
