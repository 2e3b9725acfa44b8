import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1 import leads, sequences, enrollments
from app.api.health import router as health_router
from app.core.config import settings
from app.core.database import engine, Base
from app.core.logging import setup_logging
from app.core.middleware import RequestLoggingMiddleware, ErrorHandlingMiddleware

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()

    # Startup - create tables (alembic owns migrations in deployed environments)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except Exception as e:
        logger.warning(f"Could not create tables: {e}")

    yield

    # Shutdown
    await engine.dispose()


app = FastAPI(
    title=settings.APP_NAME,
    description="Lead scoring and sequence automation for real-estate CRM",
    version=settings.APP_VERSION,
    lifespan=lifespan,
)
app.state.debug = settings.DEBUG

# Add middleware (order matters - last added = first executed)
app.add_middleware(ErrorHandlingMiddleware)
app.add_middleware(RequestLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router)
app.include_router(leads.router, prefix="/api/v1/leads", tags=["leads"])
app.include_router(sequences.router, prefix="/api/v1/sequences", tags=["sequences"])
app.include_router(enrollments.router, prefix="/api/v1/enrollments", tags=["enrollments"])

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
