"""SQLModel engine singleton and session dependency."""
from typing import Generator

from fastapi import Request
from sqlmodel import Session, SQLModel, create_engine

from tasksync.config import get_settings

_engine = None


def get_engine():
    """Return the module-level engine, creating it on first call."""
    global _engine
    if _engine is None:
        settings = get_settings()
        connect_args = {}
        if settings.database_url.startswith("sqlite"):
            # Sessions are used from API worker threads and the sync workers
            connect_args["check_same_thread"] = False
        _engine = create_engine(settings.database_url, connect_args=connect_args)
        create_tables(_engine)
    return _engine


def create_tables(engine) -> None:
    """Create any missing tables. Idempotent."""
    # Import all models so metadata is populated before create_all
    from tasksync.models.user import User  # noqa
    from tasksync.models.project import Project  # noqa
    from tasksync.models.task import Task  # noqa
    from tasksync.models.sync import SyncLog  # noqa
    SQLModel.metadata.create_all(engine)


def get_session(request: Request) -> Generator[Session, None, None]:
    """FastAPI dependency that yields a session on the app's engine."""
    with Session(request.app.state.engine) as session:
        yield session
