"""Task CRUD routes. Every mutation schedules a background sync."""
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


class TaskCreate(BaseModel):
    title: str
    description: Optional[str] = None
    project_id: Optional[int] = None


class TaskUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    completed: Optional[bool] = None
    project_id: Optional[int] = None


def _get_owned(session: Session, task_id: int, user: User) -> Task:
    task = session.exec(
        select(Task).where(Task.id == task_id, Task.user_id == user.id)
    ).first()
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


def _check_project(session: Session, project_id: Optional[int], user: User) -> None:
    """A task may only be filed under one of the same user's projects."""
    if project_id is None:
        return
    project = session.exec(
        select(Project).where(Project.id == project_id, Project.user_id == user.id)
    ).first()
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")


@router.post("/", response_model=Task, status_code=201)
async def create_task(
    request: TaskCreate,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
    dispatcher: SyncDispatcher = Depends(get_dispatcher),
):
    if not request.title.strip():
        raise HTTPException(status_code=400, detail="Task title required")
    _check_project(session, request.project_id, user)
    task = Task(
        user_id=user.id,
        title=request.title,
        description=request.description,
        project_id=request.project_id,
    )
    session.add(task)
    session.commit()
    session.refresh(task)
    dispatcher.schedule(user.id)
    return task


@router.get("/", response_model=List[Task])
def list_tasks(
    project_id: Optional[int] = None,
    completed: Optional[bool] = None,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """List the caller's tasks, newest first, optionally filtered."""
    query = select(Task).where(Task.user_id == user.id)
    if project_id is not None:
        query = query.where(Task.project_id == project_id)
    if completed is not None:
        query = query.where(Task.completed == completed)
    return session.exec(query.order_by(Task.created_at.desc())).all()


@router.get("/{task_id}", response_model=Task)
def get_task(
    task_id: int,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return _get_owned(session, task_id, user)


@router.put("/{task_id}", response_model=Task)
async def update_task(
    task_id: int,
    request: TaskUpdate,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
    dispatcher: SyncDispatcher = Depends(get_dispatcher),
):
    task = _get_owned(session, task_id, user)
    changes = request.model_dump(exclude_unset=True)
    if "title" in changes and not (changes["title"] or "").strip():
        raise HTTPException(status_code=400, detail="Task title required")
    if "completed" in changes and changes["completed"] is None:
        raise HTTPException(status_code=400, detail="completed must be true or false")
    _check_project(session, changes.get("project_id"), user)
    for field, value in changes.items():
        setattr(task, field, value)
    task.mark_modified()
    session.add(task)
    session.commit()
    session.refresh(task)
    dispatcher.schedule(user.id)
    return task


@router.delete("/{task_id}")
async def delete_task(
    task_id: int,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
    service: SyncService = Depends(get_sync_service),
):
    """Delete locally; the remote copy is removed best-effort."""
    task = _get_owned(session, task_id, user)

    if task.external_id and user.is_connected:
        client = service.client_factory(user.remote_token)
        try:
            await client.delete_task(task.external_id)
        except RemoteOperationError as exc:
            logger.warning("Failed to delete task %s from Todoist: %s", task.id, exc)
        finally:
            await client.aclose()

    session.delete(task)
    session.commit()
    return {"message": "Task deleted successfully"}
