from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional
import uvicorn
import logging

from .config import Settings, get_settings
from .core.clock import SystemClock
from .database import create_engine_from_settings, create_session_factory, create_tables
from .api.v1.router import api_router
from .services.engine import ScrumEngine
from .services.scheduler import SprintScheduler
from .store.base import DocumentStore
from .store.json_store import JsonFileDocumentStore
from .store.repository import StateRepository
from .store.sql_store import SqlDocumentStore
from .utils.logging import setup_logging


async def build_store(settings: Settings) -> DocumentStore:
    """Create the configured document store, creating tables for the SQL backend"""
    if settings.store_backend == "json":
        return JsonFileDocumentStore(settings.teams_document_path, settings.users_document_path)

    db_engine = create_engine_from_settings(settings)
    await create_tables(db_engine)
    return SqlDocumentStore(create_session_factory(db_engine), db_engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    settings: Settings = app.state.settings

    # Startup
    setup_logging(settings.log_level, settings.log_file)
    logger = logging.getLogger(__name__)
    logger.info("Starting %s (%s store)", settings.app_name, settings.store_backend)

    store = None
    if app.state.engine is None:
        store = await build_store(settings)
        repository = StateRepository.from_settings(store, settings)
        app.state.engine = ScrumEngine(repository, SystemClock(settings.timezone), settings.valid_teams)

    engine: ScrumEngine = app.state.engine
    scheduler = SprintScheduler(
        engine.lifecycle,
        engine.clock,
        rollover_time=settings.rollover_hour_minute,
        timezone=settings.timezone,
    )
    if settings.enable_scheduled_tasks:
        scheduler.start()
    app.state.scheduler = scheduler

    yield

    # Shutdown
    logger.info("Shutting down %s", settings.app_name)
    try:
        scheduler.shutdown()
        await engine.voice.close_all(engine.clock.now())
    finally:
        if store is not None:
            await store.close()


def create_app(settings: Optional[Settings] = None, engine: Optional[ScrumEngine] = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Sprint, backlog and task tracking for student teams",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.engine = engine

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["*"],
    )

    # Include API routes
    app.include_router(api_router, prefix="/api/v1")

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "version": settings.app_version,
            "timestamp": datetime.now(timezone.utc).isoformat()
        }

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "sprintdesk.main:app",
        host="0.0.0.0",
        port=8000,
        reload=app.state.settings.debug
    )
