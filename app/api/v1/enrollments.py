"""
Enrollment API endpoints - manual lifecycle transitions and execution history.
"""
from typing import Annotated

from fastapi import APIRouter, Depends

from app.api.errors import raise_not_found, raise_conflict
from app.automation.engine import SequenceEngine
from app.automation.enrollment import EnrollmentNotFoundError, EnrollmentStateError
from app.core.deps import get_sequence_engine, get_enrollment_repo
from app.models.enrollment import LeadSequenceEnrollment
from app.repositories.enrollment_repo import EnrollmentRepository
from app.schemas.sequence import EnrollmentResponse, ExecutionLogResponse


router = APIRouter()

EngineDep = Annotated[SequenceEngine, Depends(get_sequence_engine)]


async def _get_enrollment_or_404(engine: SequenceEngine, enrollment_id: int) -> LeadSequenceEnrollment:
    try:
        return await engine.manager.get(enrollment_id)
    except EnrollmentNotFoundError:
        raise_not_found("enrollment", enrollment_id)


def _invalid_transition(enrollment: LeadSequenceEnrollment, error: EnrollmentStateError):
    raise_conflict(
        code="invalid_enrollment_transition",
        message="Enrollment cannot make this transition",
        detail=str(error),
        context={"enrollment_id": enrollment.id, "status": enrollment.status.value},
    )


@router.get("/{enrollment_id}", response_model=EnrollmentResponse)
async def get_enrollment(enrollment_id: int, engine: EngineDep):
    return await _get_enrollment_or_404(engine, enrollment_id)


@router.get("/{enrollment_id}/logs", response_model=list[ExecutionLogResponse])
async def get_execution_logs(
    enrollment_id: int,
    engine: EngineDep,
    enrollment_repo: Annotated[EnrollmentRepository, Depends(get_enrollment_repo)],
):
    enrollment = await _get_enrollment_or_404(engine, enrollment_id)
    return await enrollment_repo.get_logs(enrollment.id)


@router.post("/{enrollment_id}/pause", response_model=EnrollmentResponse)
async def pause_enrollment(enrollment_id: int, engine: EngineDep):
    enrollment = await _get_enrollment_or_404(engine, enrollment_id)
    try:
        return await engine.pause(enrollment)
    except EnrollmentStateError as e:
        _invalid_transition(enrollment, e)


@router.post("/{enrollment_id}/resume", response_model=EnrollmentResponse)
async def resume_enrollment(enrollment_id: int, engine: EngineDep):
    enrollment = await _get_enrollment_or_404(engine, enrollment_id)
    try:
        return await engine.resume(enrollment)
    except EnrollmentStateError as e:
        _invalid_transition(enrollment, e)


@router.post("/{enrollment_id}/cancel", response_model=EnrollmentResponse)
async def cancel_enrollment(enrollment_id: int, engine: EngineDep):
    enrollment = await _get_enrollment_or_404(engine, enrollment_id)
    try:
        return await engine.cancel(enrollment)
    except EnrollmentStateError as e:
        _invalid_transition(enrollment, e)
