"""
Scheduler - processes due enrollments in bounded batches.

Each enrollment is its own unit of work: claim the row, run the current step in
a savepoint, write an execution log row, advance, commit. A failing step is
logged and counted but the enrollment still advances, so one broken step can't
hold a lead forever.
"""
import logging
from datetime import datetime, UTC
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.automation.enrollment import EnrollmentManager
from app.automation.executor import StepExecutor
from app.core.config import settings
from app.models.enrollment import SequenceExecutionLog, ExecutionStatus
from app.repositories.enrollment_repo import EnrollmentRepository
from app.repositories.sequence_repo import SequenceRepository

logger = logging.getLogger(__name__)


class SequenceScheduler:
    def __init__(self, session: AsyncSession, executor: StepExecutor, manager: EnrollmentManager):
        self.session = session
        self.executor = executor
        self.manager = manager
        self.enrollment_repo = EnrollmentRepository(session)
        self.sequence_repo = SequenceRepository(session)

    async def process_ready_enrollments(
        self,
        batch_limit: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> dict:
        """Process up to batch_limit due enrollments, oldest due first."""
        batch_limit = batch_limit if batch_limit is not None else settings.SEQUENCE_BATCH_LIMIT
        now = now or datetime.now(UTC)
        stats = {"processed": 0, "success": 0, "failed": 0, "completed": 0}

        due = await self.enrollment_repo.get_due(now, limit=batch_limit)
        # Ids only: a rollback below expires every loaded instance
        due_ids = [enrollment.id for enrollment in due]
        # Release the read transaction before per-enrollment units of work
        await self.session.commit()

        for enrollment_id in due_ids:
            outcome = {}
            try:
                await self._process_one(enrollment_id, now, stats, outcome)
                await self.session.commit()
            except Exception:
                await self.session.rollback()
                stats["failed"] += 1
                logger.exception(
                    f"Enrollment {enrollment_id} could not be processed",
                    extra={"enrollment_id": enrollment_id},
                )
            else:
                # Counted after commit: each enrollment lands in exactly one outcome
                for key, count in outcome.items():
                    stats[key] += count

        if stats["processed"]:
            logger.info(
                f"Sequence tick: processed={stats['processed']} success={stats['success']} "
                f"failed={stats['failed']} completed={stats['completed']}"
            )
        return stats

    async def _process_one(self, enrollment_id: int, now: datetime, stats: dict, outcome: dict) -> None:
        enrollment = await self.enrollment_repo.claim_due(enrollment_id, now)
        if enrollment is None:
            # Claimed by another worker, or changed since selection
            return

        stats["processed"] += 1
        step_id = enrollment.current_step_id
        step = await self.sequence_repo.get_step(step_id) if step_id is not None else None
        log = SequenceExecutionLog(
            enrollment_id=enrollment.id,
            step_id=step_id,
            action_type=step.action_type if step is not None else None,
            scheduled_at=enrollment.next_action_at or now,
        )

        try:
            async with self.session.begin_nested():
                success = await self.executor.execute(enrollment)
        except Exception as e:
            result = "failed"
            log.status = ExecutionStatus.FAILED
            log.result = f"{type(e).__name__}: {e}"
            logger.exception(
                f"Step execution failed for enrollment {enrollment.id}",
                extra={"enrollment_id": enrollment.id, "lead_id": enrollment.lead_id, "step_id": step_id},
            )
        else:
            if success:
                result = "success"
                log.status = ExecutionStatus.EXECUTED
                log.result = "ok"
            else:
                result = None
                log.status = ExecutionStatus.SKIPPED
                log.result = "no-op"

        log.executed_at = datetime.now(UTC)
        await self.enrollment_repo.add_log(log)

        advanced = await self.manager.advance(enrollment, now=now)
        if result:
            outcome[result] = 1
        if not advanced["advanced"]:
            outcome["completed"] = 1
