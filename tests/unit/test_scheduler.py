"""
Unit Tests - Scheduler tick
Batching, failure isolation, completion, and the execution log.
"""
from datetime import datetime, timedelta, UTC
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from app.automation.actions import StepHandler, build_handlers
from app.automation.engine import SequenceEngine
from app.automation.enrollment import EnrollmentManager
from app.automation.executor import StepExecutor
from app.automation.scheduler import SequenceScheduler
from app.models.enrollment import EnrollmentStatus, ExecutionStatus
from app.models.sequence import StepAction
from app.repositories.enrollment_repo import EnrollmentRepository

NOW = datetime(2026, 10, 16, 9, 0, tzinfo=UTC)


class ExplodingWaitHandler(StepHandler):
    action = StepAction.WAIT

    async def run(self, ctx):
        raise RuntimeError("boom")


def _unreachable(request):
    raise httpx.ConnectError("connection refused", request=request)


class TestProcessReadyEnrollments:
    @pytest.mark.asyncio
    async def test_batch_limit_processes_oldest_first(self, db_session, make_lead, make_sequence):
        sequence, _ = await make_sequence()
        manager = EnrollmentManager(db_session)
        enrollments = []
        for minutes_ago in (50, 40, 30, 20, 10):
            lead = await make_lead(name=f"Lead {minutes_ago}")
            enrollments.append(await manager.enroll(lead, sequence, now=NOW - timedelta(minutes=minutes_ago)))

        stats = await SequenceEngine(db_session).process_ready_enrollments(batch_limit=2, now=NOW)

        assert stats == {"processed": 2, "success": 2, "failed": 0, "completed": 2}
        for enrollment in enrollments:
            await db_session.refresh(enrollment)
        assert [e.status for e in enrollments] == [
            EnrollmentStatus.COMPLETED,
            EnrollmentStatus.COMPLETED,
            EnrollmentStatus.ACTIVE,
            EnrollmentStatus.ACTIVE,
            EnrollmentStatus.ACTIVE,
        ]
        assert all(e.next_action_at is not None for e in enrollments[2:])

    @pytest.mark.asyncio
    async def test_nothing_due(self, db_session, make_lead, make_sequence):
        lead = await make_lead()
        sequence, _ = await make_sequence(steps=[{"action_type": "wait", "delay_hours": 24}])
        await EnrollmentManager(db_session).enroll(lead, sequence, now=NOW)

        stats = await SequenceEngine(db_session).process_ready_enrollments(now=NOW + timedelta(hours=23))

        assert stats == {"processed": 0, "success": 0, "failed": 0, "completed": 0}

    @pytest.mark.asyncio
    async def test_unreachable_webhook_still_advances(self, db_session, make_lead, make_sequence):
        lead = await make_lead()
        sequence, steps = await make_sequence(
            steps=[
                {"action_type": "webhook", "action_config": {"url": "https://down.example.com/hook"}},
                {"action_type": "wait", "delay_hours": 2},
            ]
        )
        enrollment = await EnrollmentManager(db_session).enroll(lead, sequence, now=NOW)

        async with httpx.AsyncClient(transport=httpx.MockTransport(_unreachable)) as http_client:
            engine = SequenceEngine(db_session, http_client=http_client)
            stats = await engine.process_ready_enrollments(now=NOW)

        assert stats == {"processed": 1, "success": 0, "failed": 0, "completed": 0}
        assert enrollment.status == EnrollmentStatus.ACTIVE
        assert enrollment.current_step_id == steps[1].id

        [log] = await EnrollmentRepository(db_session).get_logs(enrollment.id)
        assert log.status == ExecutionStatus.SKIPPED
        assert log.step_id == steps[0].id
        assert log.action_type == "webhook"

    @pytest.mark.asyncio
    async def test_runs_to_completion(self, db_session, make_lead, make_sequence):
        lead = await make_lead()
        sequence, _ = await make_sequence(
            steps=[
                {"action_type": "add_tag", "action_config": {"tag": "nurtured"}, "delay_hours": 1},
                {"action_type": "wait"},
            ]
        )
        enrollment = await EnrollmentManager(db_session).enroll(lead, sequence, now=NOW)
        engine = SequenceEngine(db_session)

        # Step 1 is due after one hour; once it runs, step 2 is due immediately
        first = await engine.process_ready_enrollments(now=NOW + timedelta(hours=1))
        second = await engine.process_ready_enrollments(now=NOW + timedelta(hours=1, minutes=1))
        third = await engine.process_ready_enrollments(now=NOW + timedelta(days=1))

        assert first == {"processed": 1, "success": 1, "failed": 0, "completed": 0}
        assert second == {"processed": 1, "success": 1, "failed": 0, "completed": 1}
        assert third["processed"] == 0
        assert enrollment.status == EnrollmentStatus.COMPLETED
        assert enrollment.next_action_at is None
        assert enrollment.completed_at is not None
        assert lead.tags == ["nurtured"]

        logs = await EnrollmentRepository(db_session).get_logs(enrollment.id)
        assert [log.status for log in logs] == [ExecutionStatus.EXECUTED, ExecutionStatus.EXECUTED]

    @pytest.mark.asyncio
    async def test_handler_exception_counts_as_failed_and_advances(self, db_session, make_lead, make_sequence):
        lead = await make_lead()
        sequence, steps = await make_sequence(steps=[{"action_type": "wait"}, {"action_type": "wait"}])
        enrollment = await EnrollmentManager(db_session).enroll(lead, sequence, now=NOW)

        handlers = build_handlers(message_service=MagicMock())
        handlers[StepAction.WAIT] = ExplodingWaitHandler()
        scheduler = SequenceScheduler(
            db_session,
            StepExecutor(db_session, handlers),
            EnrollmentManager(db_session),
        )

        stats = await scheduler.process_ready_enrollments(now=NOW)

        assert stats == {"processed": 1, "success": 0, "failed": 1, "completed": 0}
        assert enrollment.current_step_id == steps[1].id

        [log] = await EnrollmentRepository(db_session).get_logs(enrollment.id)
        assert log.status == ExecutionStatus.FAILED
        assert log.result == "RuntimeError: boom"

    @pytest.mark.asyncio
    async def test_failing_step_and_failing_advance_count_once(self, db_session, make_lead, make_sequence):
        lead = await make_lead()
        sequence, steps = await make_sequence(steps=[{"action_type": "wait"}, {"action_type": "wait"}])
        enrollment = await EnrollmentManager(db_session).enroll(lead, sequence, now=NOW)
        await db_session.commit()
        # The rollback below expires loaded instances
        first_step_id, enrollment_id = steps[0].id, enrollment.id

        handlers = build_handlers(message_service=MagicMock())
        handlers[StepAction.WAIT] = ExplodingWaitHandler()
        manager = EnrollmentManager(db_session)
        manager.advance = AsyncMock(side_effect=RuntimeError("advance broke"))
        scheduler = SequenceScheduler(db_session, StepExecutor(db_session, handlers), manager)

        stats = await scheduler.process_ready_enrollments(now=NOW)

        assert stats == {"processed": 1, "success": 0, "failed": 1, "completed": 0}
        await db_session.refresh(enrollment)
        assert enrollment.current_step_id == first_step_id
        assert await EnrollmentRepository(db_session).get_logs(enrollment_id) == []

    @pytest.mark.asyncio
    async def test_zero_batch_limit_processes_nothing(self, db_session, make_lead, make_sequence):
        lead = await make_lead()
        sequence, _ = await make_sequence()
        await EnrollmentManager(db_session).enroll(lead, sequence, now=NOW - timedelta(minutes=5))

        stats = await SequenceEngine(db_session).process_ready_enrollments(batch_limit=0, now=NOW)

        assert stats == {"processed": 0, "success": 0, "failed": 0, "completed": 0}

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_the_batch(self, db_session, make_lead, make_sequence):
        bad_sequence, _ = await make_sequence(name="Bad", steps=[{"action_type": "wait"}])
        good_sequence, _ = await make_sequence(
            name="Good", steps=[{"action_type": "add_tag", "action_config": {"tag": "ok"}}]
        )
        manager = EnrollmentManager(db_session)
        first_lead = await make_lead(name="First")
        second_lead = await make_lead(name="Second")
        await manager.enroll(first_lead, bad_sequence, now=NOW - timedelta(minutes=5))
        await manager.enroll(second_lead, good_sequence, now=NOW)

        handlers = build_handlers(message_service=MagicMock())
        handlers[StepAction.WAIT] = ExplodingWaitHandler()
        scheduler = SequenceScheduler(db_session, StepExecutor(db_session, handlers), manager)

        stats = await scheduler.process_ready_enrollments(now=NOW)

        assert stats == {"processed": 2, "success": 1, "failed": 1, "completed": 2}
        assert second_lead.tags == ["ok"]

    @pytest.mark.asyncio
    async def test_deleted_lead_is_not_processed(self, db_session, make_lead, make_sequence):
        lead = await make_lead()
        sequence, _ = await make_sequence()
        enrollment = await EnrollmentManager(db_session).enroll(lead, sequence, now=NOW)
        lead.is_deleted = True
        await db_session.flush()

        stats = await SequenceEngine(db_session).process_ready_enrollments(now=NOW)

        assert stats["processed"] == 0
        assert enrollment.status == EnrollmentStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_deleted_sequence_is_not_processed(self, db_session, make_lead, make_sequence):
        lead = await make_lead()
        sequence, _ = await make_sequence()
        await EnrollmentManager(db_session).enroll(lead, sequence, now=NOW)
        sequence.is_deleted = True
        await db_session.flush()

        stats = await SequenceEngine(db_session).process_ready_enrollments(now=NOW)

        assert stats["processed"] == 0

    @pytest.mark.asyncio
    async def test_paused_enrollment_is_not_processed(self, db_session, make_lead, make_sequence):
        lead = await make_lead()
        sequence, _ = await make_sequence()
        manager = EnrollmentManager(db_session)
        enrollment = await manager.enroll(lead, sequence, now=NOW)
        await manager.pause(enrollment)

        stats = await SequenceEngine(db_session).process_ready_enrollments(now=NOW + timedelta(days=1))

        assert stats["processed"] == 0
        assert enrollment.status == EnrollmentStatus.PAUSED
