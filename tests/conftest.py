"""Shared test fixtures."""
from datetime import datetime
from typing import Generator, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

# Import all models so SQLModel.metadata knows about them
from tasksync.models.project import Project  # noqa: F401
from tasksync.models.sync import SyncLog  # noqa: F401
from tasksync.models.task import Task  # noqa: F401
from tasksync.models.user import User
from tasksync.todoist.schemas import RemoteProject, RemoteTask


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine. Tables recreated fresh for each test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="test_session")
def test_session_fixture(engine) -> Generator[Session, None, None]:
    """Provides a DB session connected to in-memory SQLite."""
    with Session(engine) as session:
        yield session


@pytest.fixture(name="user")
def user_fixture(test_session: Session) -> User:
    """A user connected to Todoist."""
    user = User(email="ada@example.com", name="Ada", remote_token="tok-ada")
    test_session.add(user)
    test_session.commit()
    test_session.refresh(user)
    return user


@pytest.fixture(name="offline_user")
def offline_user_fixture(test_session: Session) -> User:
    """A user who never connected a Todoist account."""
    user = User(email="bob@example.com", name="Bob")
    test_session.add(user)
    test_session.commit()
    test_session.refresh(user)
    return user


# ─── Remote payload builders ──────────────────────────────────────────────────

def remote_project(id: str, name: str = "Remote project") -> RemoteProject:
    return RemoteProject(id=id, name=name)


def remote_task(
    id: str,
    content: str = "Remote task",
    description: str = "",
    project_id: Optional[str] = None,
    is_completed: bool = False,
    created_at: str = "2025-01-10T09:00:00Z",
    updated_at: Optional[str] = None,
) -> RemoteTask:
    return RemoteTask(
        id=id,
        content=content,
        description=description,
        project_id=project_id,
        is_completed=is_completed,
        created_at=created_at,
        updated_at=updated_at,
    )


def make_mock_client(
    projects: Optional[List[RemoteProject]] = None,
    tasks: Optional[List[RemoteTask]] = None,
) -> AsyncMock:
    """AsyncMock standing in for TodoistClient. Remote lists default to empty."""
    client = AsyncMock()
    client.list_projects = AsyncMock(return_value=projects or [])
    client.list_tasks = AsyncMock(return_value=tasks or [])
    client.create_project = AsyncMock(
        side_effect=lambda name, description=None: remote_project(f"rp-{name}", name)
    )
    client.create_task = AsyncMock(
        side_effect=lambda title, description, project_id=None: remote_task(
            f"rt-{title}", title, description, project_id
        )
    )
    client.update_task = AsyncMock(
        side_effect=lambda task_id, title, description: remote_task(
            task_id, title, description
        )
    )
    client.complete_task = AsyncMock(return_value=None)
    client.reopen_task = AsyncMock(return_value=None)
    client.delete_project = AsyncMock(return_value=None)
    client.delete_task = AsyncMock(return_value=None)
    client.aclose = AsyncMock(return_value=None)
    return client


@pytest.fixture(name="remote")
def remote_fixture() -> AsyncMock:
    return make_mock_client()


@pytest.fixture(name="client_factory")
def client_factory_fixture(remote) -> MagicMock:
    """Stands in for TodoistClient(token); always hands back the `remote` mock."""
    return MagicMock(return_value=remote)


def dt(value: str) -> datetime:
    """Shorthand for naive UTC datetimes in fixtures: dt('2025-01-15 07:30')."""
    return datetime.fromisoformat(value)
