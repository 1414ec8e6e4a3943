"""FastAPI application factory."""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from tasksync.config import get_settings
from tasksync.db.engine import create_tables, get_engine
from tasksync.api.routes import projects, tasks, users, sync as sync_routes
from tasksync.scheduler.jobs import build_scheduler
from tasksync.sync.dispatcher import SyncDispatcher
from tasksync.sync.engine import SyncService

logger = logging.getLogger(__name__)


def create_app(
    engine=None,
    service: Optional[SyncService] = None,
    start_scheduler: Optional[bool] = None,
) -> FastAPI:
    """Build and return the FastAPI app.

    Args:
        engine: SQLAlchemy engine. Defaults to the module-level singleton.
        service: SyncService to expose. Built from settings if omitted.
        start_scheduler: Run the periodic sync job in this process.
            Defaults to settings.scheduler_enabled.
    """
    settings = get_settings()
    engine = engine or get_engine()
    service = service or SyncService(
        engine, max_concurrency=settings.sync_max_concurrency
    )
    dispatcher = SyncDispatcher(service, workers=settings.sync_workers)
    if start_scheduler is None:
        start_scheduler = settings.scheduler_enabled

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Create tables on startup (idempotent)
        create_tables(engine)
        dispatcher.start()
        scheduler = None
        if start_scheduler:
            scheduler = build_scheduler(service)
            scheduler.start()
            logger.info(
                "Scheduler started (full sync every %d min)",
                settings.sync_interval_minutes,
            )
        yield
        if scheduler is not None:
            scheduler.shutdown(wait=False)
        await dispatcher.stop()

    app = FastAPI(
        title="tasksync API",
        description="Projects and tasks mirrored to Todoist",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.engine = engine
    app.state.sync_service = service
    app.state.dispatcher = dispatcher

    app.include_router(users.router, prefix="/users", tags=["users"])
    app.include_router(projects.router, prefix="/projects", tags=["projects"])
    app.include_router(tasks.router, prefix="/tasks", tags=["tasks"])
    app.include_router(sync_routes.router, prefix="/sync", tags=["sync"])

    return app


# Module-level app instance for uvicorn
app = create_app()
