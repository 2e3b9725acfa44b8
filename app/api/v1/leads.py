"""
Lead API endpoints - lead events that drive scoring and sequence triggers.
"""
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from starlette import status

from app.api.errors import raise_not_found
from app.core.deps import get_lead_service, get_enrollment_repo
from app.repositories.enrollment_repo import EnrollmentRepository
from app.schemas.lead import (
    LeadCreate,
    LeadStatusUpdate,
    ActivityCreate,
    LeadResponse,
    LeadEventResponse,
    ActivityResponse,
    ScoreBreakdownResponse,
)
from app.schemas.sequence import EnrollmentResponse
from app.services.lead_service import LeadService, LeadNotFoundError


router = APIRouter()

LeadServiceDep = Annotated[LeadService, Depends(get_lead_service)]


def _event_response(lead, enrolled: list[str]) -> LeadEventResponse:
    return LeadEventResponse.model_validate(lead).model_copy(update={"enrolled_sequences": enrolled})


@router.post("", response_model=LeadEventResponse, status_code=status.HTTP_201_CREATED)
async def create_lead(data: LeadCreate, service: LeadServiceDep):
    """Create a lead, score it and enroll it in matching new_lead sequences."""
    lead, enrolled = await service.create_lead(data)
    return _event_response(lead, enrolled)


@router.get("/{lead_id}", response_model=LeadResponse)
async def get_lead(lead_id: int, service: LeadServiceDep):
    try:
        return await service.get_lead(lead_id)
    except LeadNotFoundError:
        raise_not_found("lead", lead_id)


@router.patch("/{lead_id}/status", response_model=LeadEventResponse)
async def update_lead_status(lead_id: int, data: LeadStatusUpdate, service: LeadServiceDep):
    """Change status, rescore, and fire status_change sequences."""
    try:
        lead, enrolled = await service.change_status(lead_id, data)
    except LeadNotFoundError:
        raise_not_found("lead", lead_id)
    return _event_response(lead, enrolled)


@router.delete("/{lead_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_lead(lead_id: int, service: LeadServiceDep):
    """Soft delete. The lead's enrollments are no longer processed."""
    try:
        await service.delete_lead(lead_id)
    except LeadNotFoundError:
        raise_not_found("lead", lead_id)


# ──────────────────────────────────────────────
# Activities
# ──────────────────────────────────────────────

@router.post("/{lead_id}/activities", response_model=ActivityResponse, status_code=status.HTTP_201_CREATED)
async def log_activity(lead_id: int, data: ActivityCreate, service: LeadServiceDep):
    try:
        return await service.log_activity(lead_id, data)
    except LeadNotFoundError:
        raise_not_found("lead", lead_id)


@router.get("/{lead_id}/activities", response_model=list[ActivityResponse])
async def list_activities(
    lead_id: int,
    service: LeadServiceDep,
    limit: int = Query(50, ge=1, le=500),
):
    try:
        lead = await service.get_lead(lead_id)
    except LeadNotFoundError:
        raise_not_found("lead", lead_id)
    return await service.activity_repo.get_by_lead_id(lead.id, limit=limit)


# ──────────────────────────────────────────────
# Scoring
# ──────────────────────────────────────────────

@router.get("/{lead_id}/score-breakdown", response_model=ScoreBreakdownResponse)
async def get_score_breakdown(lead_id: int, service: LeadServiceDep):
    try:
        breakdown = await service.get_score_breakdown(lead_id)
    except LeadNotFoundError:
        raise_not_found("lead", lead_id)
    return ScoreBreakdownResponse(lead_id=lead_id, **breakdown)


@router.post("/{lead_id}/recalculate-score", response_model=LeadResponse)
async def recalculate_score(lead_id: int, service: LeadServiceDep):
    try:
        return await service.recalculate_score(lead_id)
    except LeadNotFoundError:
        raise_not_found("lead", lead_id)


@router.get("/{lead_id}/enrollments", response_model=list[EnrollmentResponse])
async def list_lead_enrollments(
    lead_id: int,
    service: LeadServiceDep,
    enrollment_repo: Annotated[EnrollmentRepository, Depends(get_enrollment_repo)],
):
    try:
        lead = await service.get_lead(lead_id)
    except LeadNotFoundError:
        raise_not_found("lead", lead_id)
    return await enrollment_repo.get_for_lead(lead.id)
