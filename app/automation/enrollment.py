"""
Enrollment Manager - creates enrollments, advances them step by step, and applies
manual lifecycle transitions.

State machine:
    active --advance(next step)--> active
    active --advance(no step)----> completed
    active --pause---------------> paused
    paused --resume--------------> active
    active/paused --cancel-------> cancelled
completed and cancelled are terminal.
"""
import logging
from datetime import datetime, timedelta, UTC
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.automation.triggers import matches
from app.models.activity import LeadActivity, ActivityType
from app.models.enrollment import LeadSequenceEnrollment, EnrollmentStatus
from app.models.lead import Lead
from app.models.sequence import Sequence, TriggerType
from app.repositories.activity_repo import ActivityRepository
from app.repositories.enrollment_repo import EnrollmentRepository
from app.repositories.sequence_repo import SequenceRepository

logger = logging.getLogger(__name__)


class EnrollmentNotFoundError(Exception):
    """Raised when an enrollment does not exist."""
    pass


class EnrollmentStateError(Exception):
    """Raised when a manual transition is not allowed from the current status."""
    pass


class EnrollmentManager:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.sequence_repo = SequenceRepository(session)
        self.enrollment_repo = EnrollmentRepository(session)
        self.activity_repo = ActivityRepository(session)

    def _reject(self, lead: Lead, sequence: Sequence, reason: str) -> None:
        logger.info(
            f"Enrollment rejected: lead {lead.id} sequence {sequence.id} ({reason})",
            extra={"lead_id": lead.id, "sequence_id": sequence.id, "reason": reason},
        )
        return None

    async def enroll(
        self,
        lead: Lead,
        sequence: Sequence,
        now: Optional[datetime] = None,
    ) -> Optional[LeadSequenceEnrollment]:
        """Enroll a lead at the sequence's first active step, or return None when not eligible."""
        if lead.is_deleted:
            return self._reject(lead, sequence, "lead deleted")
        if sequence.is_deleted or not sequence.is_active:
            return self._reject(lead, sequence, "sequence inactive")

        if await self.enrollment_repo.find_open(lead.id, sequence.id):
            return self._reject(lead, sequence, "already enrolled")

        if not matches(sequence, lead):
            return self._reject(lead, sequence, "trigger conditions not met")

        first_step = await self.sequence_repo.get_first_active_step(sequence.id)
        if first_step is None:
            return self._reject(lead, sequence, "no active steps")

        now = now or datetime.now(UTC)
        enrollment = LeadSequenceEnrollment(
            lead_id=lead.id,
            sequence_id=sequence.id,
            current_step_id=first_step.id,
            status=EnrollmentStatus.ACTIVE,
            enrolled_at=now,
            next_action_at=now + timedelta(hours=first_step.delay_hours or 0),
            details={},
        )

        # A concurrent enroll for the same pair loses on the partial unique index
        try:
            async with self.session.begin_nested():
                await self.enrollment_repo.create(enrollment)
        except IntegrityError:
            return self._reject(lead, sequence, "already enrolled")

        await self.activity_repo.add(
            LeadActivity(
                lead_id=lead.id,
                type=ActivityType.NOTE,
                title="Enrolled in sequence",
                description=f"Lead enrolled in '{sequence.name}' sequence",
                details={"sequence_id": sequence.id, "sequence_name": sequence.name},
                created_by="automation",
            )
        )

        logger.info(
            f"Lead {lead.id} enrolled in sequence {sequence.id}",
            extra={"lead_id": lead.id, "sequence_id": sequence.id, "enrollment_id": enrollment.id},
        )
        return enrollment

    async def auto_enroll_for_trigger(self, lead: Lead, trigger_type: TriggerType) -> list[str]:
        """Try every active sequence of the trigger type, highest priority first."""
        enrolled = []
        for sequence in await self.sequence_repo.list_active_sequences(trigger_type):
            if await self.enroll(lead, sequence):
                enrolled.append(sequence.name)
        return enrolled

    async def advance(self, enrollment: LeadSequenceEnrollment, now: Optional[datetime] = None) -> dict:
        """Move to the next active step, or complete the enrollment when none is left."""
        now = now or datetime.now(UTC)

        next_step = None
        current_step = None
        if enrollment.current_step_id is not None:
            current_step = await self.sequence_repo.get_step(enrollment.current_step_id)
        if current_step is not None:
            next_step = await self.sequence_repo.get_next_active_step(current_step)
        else:
            next_step = await self.sequence_repo.get_first_active_step(enrollment.sequence_id)

        if next_step is None:
            enrollment.status = EnrollmentStatus.COMPLETED
            enrollment.completed_at = now
            enrollment.next_action_at = None
            await self.enrollment_repo.save(enrollment)
            logger.info(
                f"Enrollment {enrollment.id} completed",
                extra={"enrollment_id": enrollment.id, "lead_id": enrollment.lead_id},
            )
            return {"advanced": False}

        enrollment.current_step_id = next_step.id
        enrollment.next_action_at = now + timedelta(hours=next_step.delay_hours or 0)
        await self.enrollment_repo.save(enrollment)
        return {"advanced": True}

    # ──────────────────────────────────────────────
    # Manual lifecycle
    # ──────────────────────────────────────────────

    async def get(self, enrollment_id: int) -> LeadSequenceEnrollment:
        enrollment = await self.enrollment_repo.get_by_id(enrollment_id)
        if enrollment is None:
            raise EnrollmentNotFoundError(f"Enrollment {enrollment_id} not found")
        return enrollment

    async def pause(self, enrollment: LeadSequenceEnrollment) -> LeadSequenceEnrollment:
        if enrollment.status != EnrollmentStatus.ACTIVE:
            raise EnrollmentStateError(f"Cannot pause a {enrollment.status.value} enrollment")
        enrollment.status = EnrollmentStatus.PAUSED
        await self.enrollment_repo.save(enrollment)
        logger.info(f"Enrollment {enrollment.id} paused", extra={"enrollment_id": enrollment.id})
        return enrollment

    async def resume(self, enrollment: LeadSequenceEnrollment, now: Optional[datetime] = None) -> LeadSequenceEnrollment:
        if enrollment.status != EnrollmentStatus.PAUSED:
            raise EnrollmentStateError(f"Cannot resume a {enrollment.status.value} enrollment")
        enrollment.status = EnrollmentStatus.ACTIVE
        if enrollment.next_action_at is None:
            enrollment.next_action_at = now or datetime.now(UTC)
        await self.enrollment_repo.save(enrollment)
        logger.info(f"Enrollment {enrollment.id} resumed", extra={"enrollment_id": enrollment.id})
        return enrollment

    async def cancel(self, enrollment: LeadSequenceEnrollment) -> LeadSequenceEnrollment:
        if enrollment.status not in (EnrollmentStatus.ACTIVE, EnrollmentStatus.PAUSED):
            raise EnrollmentStateError(f"Cannot cancel a {enrollment.status.value} enrollment")
        enrollment.status = EnrollmentStatus.CANCELLED
        enrollment.next_action_at = None
        await self.enrollment_repo.save(enrollment)
        logger.info(f"Enrollment {enrollment.id} cancelled", extra={"enrollment_id": enrollment.id})
        return enrollment
