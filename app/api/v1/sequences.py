"""
Sequence API endpoints - authoring, manual enrollment and scheduler controls.
"""
from typing import Annotated, Optional

from fastapi import APIRouter, Body, Depends, Query
from starlette import status

from app.api.errors import raise_not_found, raise_conflict
from app.automation.engine import SequenceEngine
from app.core.deps import DbSession, get_sequence_engine, get_sequence_repo, get_enrollment_repo
from app.models.enrollment import EnrollmentStatus
from app.models.sequence import Sequence, SequenceStep
from app.repositories.enrollment_repo import EnrollmentRepository
from app.repositories.lead_repo import LeadRepository
from app.repositories.sequence_repo import SequenceRepository
from app.schemas.sequence import (
    SequenceCreate,
    SequenceUpdate,
    StepCreate,
    ProcessRequest,
    SequenceResponse,
    StepResponse,
    EnrollmentResponse,
    ProcessResultResponse,
    SweepResultResponse,
)


router = APIRouter()

SequenceRepoDep = Annotated[SequenceRepository, Depends(get_sequence_repo)]
EngineDep = Annotated[SequenceEngine, Depends(get_sequence_engine)]


async def _get_sequence_or_404(repo: SequenceRepository, sequence_id: int) -> Sequence:
    sequence = await repo.get_by_id(sequence_id)
    if sequence is None:
        raise_not_found("sequence", sequence_id)
    return sequence


async def _to_response(repo: SequenceRepository, sequence: Sequence) -> SequenceResponse:
    steps = await repo.get_steps(sequence.id)
    return SequenceResponse.model_validate(sequence).model_copy(
        update={"steps": [StepResponse.model_validate(step) for step in steps]}
    )


async def _next_order(repo: SequenceRepository, sequence_id: int) -> int:
    steps = await repo.get_steps(sequence_id)
    return (steps[-1].order + 1) if steps else 1


# ──────────────────────────────────────────────
# Scheduler controls (declared before /{sequence_id} routes)
# ──────────────────────────────────────────────

@router.post("/process", response_model=ProcessResultResponse)
async def process_sequences(
    engine: EngineDep,
    data: Optional[ProcessRequest] = Body(None),
):
    """Run one scheduler tick now."""
    batch_limit = data.batch_limit if data else None
    return await engine.process_ready_enrollments(batch_limit=batch_limit)


@router.post("/sweeps/inactivity", response_model=SweepResultResponse)
async def sweep_inactive_leads(
    engine: EngineDep,
    days: Optional[int] = Query(None, ge=1, le=365),
):
    return await engine.enroll_inactive_leads(days=days)


@router.post("/sweeps/scheduled", response_model=SweepResultResponse)
async def sweep_scheduled(engine: EngineDep):
    return await engine.enroll_scheduled()


# ──────────────────────────────────────────────
# CRUD
# ──────────────────────────────────────────────

@router.get("", response_model=list[SequenceResponse])
async def list_sequences(
    repo: SequenceRepoDep,
    include_inactive: bool = Query(True),
):
    sequences = await repo.get_all(include_inactive=include_inactive)
    return [await _to_response(repo, sequence) for sequence in sequences]


@router.post("", response_model=SequenceResponse, status_code=status.HTTP_201_CREATED)
async def create_sequence(data: SequenceCreate, repo: SequenceRepoDep):
    sequence = await repo.create(
        Sequence(
            name=data.name,
            description=data.description,
            trigger_type=data.trigger_type,
            trigger_conditions=data.trigger_conditions.to_storage() if data.trigger_conditions else None,
            is_active=data.is_active,
            priority=data.priority,
        )
    )
    for index, step in enumerate(data.steps, start=1):
        await repo.add_step(
            SequenceStep(
                sequence_id=sequence.id,
                order=step.order if step.order is not None else index,
                action_type=step.action_type.value,
                action_config=step.action_config,
                delay_hours=step.delay_hours,
                is_active=step.is_active,
            )
        )
    return await _to_response(repo, sequence)


@router.get("/{sequence_id}", response_model=SequenceResponse)
async def get_sequence(sequence_id: int, repo: SequenceRepoDep):
    sequence = await _get_sequence_or_404(repo, sequence_id)
    return await _to_response(repo, sequence)


@router.patch("/{sequence_id}", response_model=SequenceResponse)
async def update_sequence(sequence_id: int, data: SequenceUpdate, repo: SequenceRepoDep):
    sequence = await _get_sequence_or_404(repo, sequence_id)

    changes = data.model_dump(exclude_unset=True)
    if "trigger_conditions" in changes:
        changes["trigger_conditions"] = (
            data.trigger_conditions.to_storage() if data.trigger_conditions else None
        )
    for field, value in changes.items():
        setattr(sequence, field, value)

    await repo.save(sequence)
    return await _to_response(repo, sequence)


@router.delete("/{sequence_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_sequence(sequence_id: int, repo: SequenceRepoDep):
    """Soft delete. Existing enrollments stop being processed."""
    sequence = await _get_sequence_or_404(repo, sequence_id)
    await repo.delete(sequence)


@router.post("/{sequence_id}/steps", response_model=StepResponse, status_code=status.HTTP_201_CREATED)
async def add_step(sequence_id: int, data: StepCreate, repo: SequenceRepoDep):
    sequence = await _get_sequence_or_404(repo, sequence_id)
    order = data.order if data.order is not None else await _next_order(repo, sequence.id)
    return await repo.add_step(
        SequenceStep(
            sequence_id=sequence.id,
            order=order,
            action_type=data.action_type.value,
            action_config=data.action_config,
            delay_hours=data.delay_hours,
            is_active=data.is_active,
        )
    )


# ──────────────────────────────────────────────
# Enrollment
# ──────────────────────────────────────────────

@router.post(
    "/{sequence_id}/enroll/{lead_id}",
    response_model=EnrollmentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def enroll_lead(sequence_id: int, lead_id: int, db: DbSession, repo: SequenceRepoDep, engine: EngineDep):
    sequence = await _get_sequence_or_404(repo, sequence_id)
    lead = await LeadRepository(db).get_by_id(lead_id)
    if lead is None:
        raise_not_found("lead", lead_id)

    enrollment = await engine.enroll_lead(lead, sequence)
    if enrollment is None:
        raise_conflict(
            code="enrollment_rejected",
            message="Lead could not be enrolled",
            detail="Already enrolled, conditions not met, or the sequence has no active steps",
            context={"lead_id": lead_id, "sequence_id": sequence_id},
        )
    return enrollment


@router.get("/{sequence_id}/enrollments", response_model=list[EnrollmentResponse])
async def list_enrollments(
    sequence_id: int,
    repo: SequenceRepoDep,
    enrollment_repo: Annotated[EnrollmentRepository, Depends(get_enrollment_repo)],
    status_filter: Optional[EnrollmentStatus] = Query(None, alias="status"),
    limit: int = Query(100, ge=1, le=1000),
):
    sequence = await _get_sequence_or_404(repo, sequence_id)
    return await enrollment_repo.get_for_sequence(sequence.id, status=status_filter, limit=limit)
