"""
FastAPI dependencies for dependency injection.
"""
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.automation.engine import SequenceEngine
from app.core.database import get_db
from app.repositories.enrollment_repo import EnrollmentRepository
from app.repositories.sequence_repo import SequenceRepository
from app.services.lead_service import LeadService


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db)]


async def get_sequence_repo(db: DbSession) -> SequenceRepository:
    """Get SequenceRepository instance."""
    return SequenceRepository(db)


async def get_enrollment_repo(db: DbSession) -> EnrollmentRepository:
    """Get EnrollmentRepository instance."""
    return EnrollmentRepository(db)


async def get_sequence_engine(db: DbSession) -> SequenceEngine:
    """Get SequenceEngine bound to the request session."""
    return SequenceEngine(db)


async def get_lead_service(
    db: DbSession,
    engine: Annotated[SequenceEngine, Depends(get_sequence_engine)],
) -> LeadService:
    """Get LeadService instance."""
    return LeadService(db, engine=engine)
