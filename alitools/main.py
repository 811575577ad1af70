"""
Main FastAPI application
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from alitools.config import get_settings
from alitools.database import engine, Base, AsyncSessionLocal
from alitools import models  # noqa: F401 - register all tables
from alitools.api import imports, geko_sync
from alitools.middleware.error_handler import database_exception_handler
from alitools.services.geko_sync import sync_scheduler
from alitools.utils.logger import configure_logging

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Database tables created (source: {settings.database_url_source})")

    if settings.GEKO_SYNC_ON_STARTUP and settings.GEKO_API_URL:
        await sync_scheduler.start(
            settings.GEKO_API_URL, settings.GEKO_SYNC_INTERVAL_MINUTES, session_factory=AsyncSessionLocal
        )
    else:
        logger.info("GEKO API sync schedule not started on startup")

    yield

    await sync_scheduler.stop()
    await engine.dispose()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="B2B catalog with GEKO XML product import",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(SQLAlchemyError, database_exception_handler)

app.include_router(imports.router, prefix="/api/v1/imports", tags=["Imports"])
app.include_router(geko_sync.router, prefix="/api/v1/geko", tags=["GEKO API sync"])


@app.get("/")
async def root():
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
    }


@app.get("/health")
async def health():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
