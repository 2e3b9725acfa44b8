"""
Celery tasks for the sequence automation engine.

process_sequences holds a Redis lock for the whole tick so overlapping beat
runs (or a manual run during a scheduled one) skip instead of executing the
same due steps twice.
"""
import asyncio
import logging
from typing import Optional

import redis
from redis.exceptions import LockError

from app.automation.engine import SequenceEngine
from app.celery.config import celery_app
from app.core.config import settings
from app.core.database import AsyncSessionLocal, engine

logger = logging.getLogger(__name__)

TICK_LOCK_NAME = "sequence-scheduler-tick"


def _get_redis() -> redis.Redis:
    return redis.Redis.from_url(settings.REDIS_URL)


async def _run_with_engine(fn):
    """Run fn(SequenceEngine) in a fresh session and commit."""
    try:
        async with AsyncSessionLocal() as session:
            result = await fn(SequenceEngine(session))
            await session.commit()
            return result
    finally:
        # Each asyncio.run() gets a new loop; pooled connections can't cross loops
        await engine.dispose()


async def _run_tick(batch_limit: Optional[int] = None) -> dict:
    return await _run_with_engine(lambda seq_engine: seq_engine.process_ready_enrollments(batch_limit=batch_limit))


async def _run_inactivity_sweep(days: Optional[int] = None) -> dict:
    return await _run_with_engine(lambda seq_engine: seq_engine.enroll_inactive_leads(days=days))


async def _run_scheduled_sweep() -> dict:
    return await _run_with_engine(lambda seq_engine: seq_engine.enroll_scheduled())


@celery_app.task
def process_sequences(batch_limit: Optional[int] = None) -> dict:
    """Execute due sequence steps. Skips when another tick holds the lock."""
    lock = _get_redis().lock(
        TICK_LOCK_NAME,
        timeout=settings.SEQUENCE_LOCK_TIMEOUT_SECONDS,
        blocking=False,
    )
    if not lock.acquire():
        logger.info("Sequence tick skipped: previous tick still running")
        return {"skipped": True}

    try:
        stats = asyncio.run(_run_tick(batch_limit))
    finally:
        try:
            lock.release()
        except LockError:
            # Lock expired while the tick ran; another worker may own it now
            logger.warning("Sequence tick lock expired before release")

    return stats


@celery_app.task
def enroll_inactive_leads(days: Optional[int] = None) -> dict:
    """Enroll leads without interaction for INACTIVITY_DAYS into inactivity sequences."""
    return asyncio.run(_run_inactivity_sweep(days))


@celery_app.task
def enroll_scheduled() -> dict:
    """Offer every open lead to scheduled-trigger sequences."""
    return asyncio.run(_run_scheduled_sweep())
