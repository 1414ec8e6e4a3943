"""Project CRUD routes. Every mutation schedules a background sync."""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session, select

from tasksync.api.deps import get_current_user, get_dispatcher, get_sync_service
from tasksync.db.engine import get_session
from tasksync.models.project import Project
from tasksync.models.task import Task
from tasksync.models.user import User
from tasksync.sync.dispatcher import SyncDispatcher
from tasksync.sync.engine import SyncService
from tasksync.sync.exceptions import RemoteOperationError

logger = logging.getLogger(__name__)

router = APIRouter()


class ProjectCreate(BaseModel):
    name: str
    description: Optional[str] = None


class ProjectUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


def _get_owned(session: Session, project_id: int, user: User) -> Project:
    project = session.exec(
        select(Project).where(Project.id == project_id, Project.user_id == user.id)
    ).first()
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


@router.post("/", response_model=Project, status_code=201)
async def create_project(
    request: ProjectCreate,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
    dispatcher: SyncDispatcher = Depends(get_dispatcher),
):
    if not request.name.strip():
        raise HTTPException(status_code=400, detail="Project name required")
    project = Project(user_id=user.id, name=request.name, description=request.description)
    session.add(project)
    session.commit()
    session.refresh(project)
    dispatcher.schedule(user.id)
    return project


@router.get("/", response_model=List[Project])
def list_projects(
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """List the caller's projects, newest first."""
    return session.exec(
        select(Project)
        .where(Project.user_id == user.id)
        .order_by(Project.created_at.desc())
    ).all()


@router.get("/{project_id}", response_model=Project)
def get_project(
    project_id: int,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return _get_owned(session, project_id, user)


@router.put("/{project_id}", response_model=Project)
async def update_project(
    project_id: int,
    request: ProjectUpdate,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
    dispatcher: SyncDispatcher = Depends(get_dispatcher),
):
    project = _get_owned(session, project_id, user)
    changes = request.model_dump(exclude_unset=True)
    if "name" in changes and not (changes["name"] or "").strip():
        raise HTTPException(status_code=400, detail="Project name required")
    for field, value in changes.items():
        setattr(project, field, value)
    project.mark_modified()
    session.add(project)
    session.commit()
    session.refresh(project)
    dispatcher.schedule(user.id)
    return project


@router.delete("/{project_id}")
async def delete_project(
    project_id: int,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
    service: SyncService = Depends(get_sync_service),
):
    """Delete locally; the remote copy is removed best-effort."""
    project = _get_owned(session, project_id, user)

    if project.external_id and user.is_connected:
        client = service.client_factory(user.remote_token)
        try:
            await client.delete_project(project.external_id)
        except RemoteOperationError as exc:
            logger.warning("Failed to delete project %s from Todoist: %s", project.id, exc)
        finally:
            await client.aclose()

    # Tasks survive their project, unfiled
    for task in session.exec(select(Task).where(Task.project_id == project.id)).all():
        task.project_id = None
        session.add(task)
    session.delete(project)
    session.commit()
    return {"message": "Project deleted successfully"}
