"""
Unit Tests - Enrollment lifecycle
Eligibility, the one-open-enrollment rule, advancing, and manual transitions.
"""
from datetime import datetime, timedelta, UTC
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select, func

from app.automation.enrollment import EnrollmentManager, EnrollmentStateError, EnrollmentNotFoundError
from app.models.activity import LeadActivity
from app.models.enrollment import LeadSequenceEnrollment, EnrollmentStatus
from app.models.lead import LeadSource
from app.models.sequence import TriggerType

NOW = datetime(2026, 10, 16, 9, 0, tzinfo=UTC)


async def _enrollment_count(db_session, lead_id):
    stmt = select(func.count(LeadSequenceEnrollment.id)).where(LeadSequenceEnrollment.lead_id == lead_id)
    return (await db_session.execute(stmt)).scalar()


class TestEnroll:
    @pytest.mark.asyncio
    async def test_enrolls_at_first_active_step(self, db_session, make_lead, make_sequence):
        lead = await make_lead()
        sequence, steps = await make_sequence(
            steps=[
                {"action_type": "wait", "order": 1, "is_active": False},
                {"action_type": "add_tag", "order": 2, "delay_hours": 24, "action_config": {"tag": "x"}},
            ]
        )

        enrollment = await EnrollmentManager(db_session).enroll(lead, sequence, now=NOW)

        assert enrollment is not None
        assert enrollment.status == EnrollmentStatus.ACTIVE
        assert enrollment.current_step_id == steps[1].id
        assert enrollment.next_action_at == NOW + timedelta(hours=24)

    @pytest.mark.asyncio
    async def test_enrollment_is_recorded_as_activity(self, db_session, make_lead, make_sequence):
        lead = await make_lead()
        sequence, _ = await make_sequence(name="Investor nurture")

        await EnrollmentManager(db_session).enroll(lead, sequence)

        result = await db_session.execute(select(LeadActivity).where(LeadActivity.lead_id == lead.id))
        [activity] = result.scalars().all()
        assert activity.title == "Enrolled in sequence"
        assert activity.details == {"sequence_id": sequence.id, "sequence_name": "Investor nurture"}

    @pytest.mark.asyncio
    async def test_second_enroll_is_rejected(self, db_session, make_lead, make_sequence):
        lead = await make_lead()
        sequence, _ = await make_sequence()
        manager = EnrollmentManager(db_session)

        assert await manager.enroll(lead, sequence) is not None
        assert await manager.enroll(lead, sequence) is None
        assert await _enrollment_count(db_session, lead.id) == 1

    @pytest.mark.asyncio
    async def test_unique_index_catches_race(self, db_session, make_lead, make_sequence):
        """Two callers both see no open enrollment; the second insert loses on the index."""
        lead = await make_lead()
        sequence, _ = await make_sequence()
        manager = EnrollmentManager(db_session)
        assert await manager.enroll(lead, sequence) is not None

        manager.enrollment_repo.find_open = AsyncMock(return_value=None)

        assert await manager.enroll(lead, sequence) is None
        assert await _enrollment_count(db_session, lead.id) == 1

    @pytest.mark.asyncio
    async def test_can_reenroll_after_completion(self, db_session, make_lead, make_sequence):
        lead = await make_lead()
        sequence, _ = await make_sequence()
        manager = EnrollmentManager(db_session)

        first = await manager.enroll(lead, sequence)
        await manager.advance(first)
        assert first.status == EnrollmentStatus.COMPLETED

        second = await manager.enroll(lead, sequence)
        assert second is not None
        assert second.id != first.id

    @pytest.mark.asyncio
    async def test_condition_mismatch_rejected(self, db_session, make_lead, make_sequence):
        lead = await make_lead(source=LeadSource.TIKTOK, score=20)
        sequence, _ = await make_sequence(trigger_conditions={"sources": ["referral"], "min_score": 10})

        assert await EnrollmentManager(db_session).enroll(lead, sequence) is None
        assert await _enrollment_count(db_session, lead.id) == 0

    @pytest.mark.asyncio
    async def test_sequence_without_active_steps_rejected(self, db_session, make_lead, make_sequence):
        lead = await make_lead()
        sequence, _ = await make_sequence(steps=[{"action_type": "wait", "is_active": False}])

        assert await EnrollmentManager(db_session).enroll(lead, sequence) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("overrides", [{"is_active": False}, {"is_deleted": True}])
    async def test_unavailable_sequence_rejected(self, db_session, make_lead, make_sequence, overrides):
        lead = await make_lead()
        sequence, _ = await make_sequence(**overrides)

        assert await EnrollmentManager(db_session).enroll(lead, sequence) is None

    @pytest.mark.asyncio
    async def test_deleted_lead_rejected(self, db_session, make_lead, make_sequence):
        lead = await make_lead(is_deleted=True)
        sequence, _ = await make_sequence()

        assert await EnrollmentManager(db_session).enroll(lead, sequence) is None


class TestAutoEnroll:
    @pytest.mark.asyncio
    async def test_enrolls_into_matching_sequences_by_priority(self, db_session, make_lead, make_sequence):
        lead = await make_lead(source=LeadSource.REFERRAL)
        await make_sequence(name="Low", trigger_type=TriggerType.NEW_LEAD, priority=1)
        await make_sequence(name="High", trigger_type=TriggerType.NEW_LEAD, priority=5)
        await make_sequence(name="Other trigger", trigger_type=TriggerType.INACTIVITY)
        await make_sequence(
            name="Portal only",
            trigger_type=TriggerType.NEW_LEAD,
            trigger_conditions={"sources": ["portal"]},
        )

        enrolled = await EnrollmentManager(db_session).auto_enroll_for_trigger(lead, TriggerType.NEW_LEAD)

        assert enrolled == ["High", "Low"]

    @pytest.mark.asyncio
    async def test_repeated_trigger_does_not_duplicate(self, db_session, make_lead, make_sequence):
        lead = await make_lead()
        await make_sequence(trigger_type=TriggerType.NEW_LEAD)
        manager = EnrollmentManager(db_session)

        assert len(await manager.auto_enroll_for_trigger(lead, TriggerType.NEW_LEAD)) == 1
        assert await manager.auto_enroll_for_trigger(lead, TriggerType.NEW_LEAD) == []


class TestAdvance:
    @pytest.mark.asyncio
    async def test_skips_inactive_steps(self, db_session, make_lead, make_sequence):
        lead = await make_lead()
        sequence, steps = await make_sequence(
            steps=[
                {"action_type": "wait", "order": 1},
                {"action_type": "wait", "order": 2, "is_active": False},
                {"action_type": "wait", "order": 3, "delay_hours": 48},
            ]
        )
        manager = EnrollmentManager(db_session)
        enrollment = await manager.enroll(lead, sequence, now=NOW)

        outcome = await manager.advance(enrollment, now=NOW)

        assert outcome == {"advanced": True}
        assert enrollment.current_step_id == steps[2].id
        assert enrollment.next_action_at == NOW + timedelta(hours=48)

    @pytest.mark.asyncio
    async def test_steps_sharing_an_order_all_run_in_id_order(self, db_session, make_lead, make_sequence):
        lead = await make_lead()
        sequence, steps = await make_sequence(
            steps=[
                {"action_type": "wait", "order": 1},
                {"action_type": "webhook", "order": 1, "action_config": {"url": "https://hooks.example.com/x"}},
                {"action_type": "wait", "order": 2},
            ]
        )
        manager = EnrollmentManager(db_session)
        enrollment = await manager.enroll(lead, sequence, now=NOW)

        visited = [enrollment.current_step_id]
        while (await manager.advance(enrollment, now=NOW))["advanced"]:
            visited.append(enrollment.current_step_id)

        assert visited == [step.id for step in steps]
        assert enrollment.status == EnrollmentStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_last_step_completes(self, db_session, make_lead, make_sequence):
        lead = await make_lead()
        sequence, _ = await make_sequence()
        manager = EnrollmentManager(db_session)
        enrollment = await manager.enroll(lead, sequence, now=NOW)

        outcome = await manager.advance(enrollment, now=NOW)

        assert outcome == {"advanced": False}
        assert enrollment.status == EnrollmentStatus.COMPLETED
        assert enrollment.completed_at == NOW
        assert enrollment.next_action_at is None

    @pytest.mark.asyncio
    async def test_missing_current_step_restarts_at_first_active(self, db_session, make_lead, make_sequence):
        lead = await make_lead()
        sequence, steps = await make_sequence(steps=[{"action_type": "wait"}, {"action_type": "wait"}])
        manager = EnrollmentManager(db_session)
        enrollment = await manager.enroll(lead, sequence, now=NOW)
        enrollment.current_step_id = None

        await manager.advance(enrollment, now=NOW)

        assert enrollment.current_step_id == steps[0].id


class TestManualTransitions:
    @pytest.fixture
    async def enrollment(self, db_session, make_lead, make_sequence):
        lead = await make_lead()
        sequence, _ = await make_sequence(steps=[{"action_type": "wait"}, {"action_type": "wait"}])
        return await EnrollmentManager(db_session).enroll(lead, sequence, now=NOW)

    @pytest.mark.asyncio
    async def test_pause_and_resume(self, db_session, enrollment):
        manager = EnrollmentManager(db_session)
        due_at = enrollment.next_action_at

        await manager.pause(enrollment)
        assert enrollment.status == EnrollmentStatus.PAUSED

        await manager.resume(enrollment)
        assert enrollment.status == EnrollmentStatus.ACTIVE
        assert enrollment.next_action_at == due_at

    @pytest.mark.asyncio
    async def test_resume_without_next_action_is_due_now(self, db_session, enrollment):
        manager = EnrollmentManager(db_session)
        await manager.pause(enrollment)
        enrollment.next_action_at = None

        resumed_at = NOW + timedelta(days=3)
        await manager.resume(enrollment, now=resumed_at)

        assert enrollment.next_action_at == resumed_at

    @pytest.mark.asyncio
    @pytest.mark.parametrize("paused_first", [False, True])
    async def test_cancel_from_open_states(self, db_session, enrollment, paused_first):
        manager = EnrollmentManager(db_session)
        if paused_first:
            await manager.pause(enrollment)

        await manager.cancel(enrollment)

        assert enrollment.status == EnrollmentStatus.CANCELLED
        assert enrollment.next_action_at is None

    @pytest.mark.asyncio
    async def test_invalid_transitions_raise(self, db_session, enrollment):
        manager = EnrollmentManager(db_session)

        with pytest.raises(EnrollmentStateError):
            await manager.resume(enrollment)

        await manager.cancel(enrollment)
        with pytest.raises(EnrollmentStateError):
            await manager.cancel(enrollment)
        with pytest.raises(EnrollmentStateError):
            await manager.pause(enrollment)
        with pytest.raises(EnrollmentStateError):
            await manager.resume(enrollment)

    @pytest.mark.asyncio
    async def test_completed_is_terminal(self, db_session, make_lead, make_sequence):
        lead = await make_lead()
        sequence, _ = await make_sequence()
        manager = EnrollmentManager(db_session)
        enrollment = await manager.enroll(lead, sequence)
        await manager.advance(enrollment)

        with pytest.raises(EnrollmentStateError):
            await manager.pause(enrollment)
        with pytest.raises(EnrollmentStateError):
            await manager.cancel(enrollment)

    @pytest.mark.asyncio
    async def test_get_unknown_enrollment(self, db_session):
        with pytest.raises(EnrollmentNotFoundError):
            await EnrollmentManager(db_session).get(999)
