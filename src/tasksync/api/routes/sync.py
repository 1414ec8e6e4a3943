"""Sync trigger, retry and status routes."""
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict
from sqlmodel import Session, select

from tasksync.api.deps import get_current_user, get_sync_service
from tasksync.db.engine import get_session
from tasksync.models.project import Project
from tasksync.models.sync import SyncLog, SyncStatus
from tasksync.models.task import Task
from tasksync.models.user import User
from tasksync.sync.engine import SyncService
from tasksync.sync.exceptions import NotConnectedError

router = APIRouter()

RECENT_LOG_LIMIT = 20


class StatusCounts(BaseModel):
    total: int
    synced: int
    pending: int
    failed: int


class ProjectSyncState(BaseModel):
    id: int
    name: str
    sync_status: SyncStatus
    last_synced_at: Optional[datetime]


class TaskSyncState(BaseModel):
    id: int
    title: str
    sync_status: SyncStatus
    last_synced_at: Optional[datetime]


class SyncLogEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    entity_type: str
    entity_id: int
    action: str
    status: str
    error: Optional[str]
    created_at: datetime


class SyncStatusResponse(BaseModel):
    summary: Dict[str, StatusCounts]
    projects: List[ProjectSyncState]
    tasks: List[TaskSyncState]
    recent_logs: List[SyncLogEntry]


def _count(rows) -> StatusCounts:
    statuses = [row.sync_status for row in rows]
    return StatusCounts(
        total=len(statuses),
        synced=statuses.count(SyncStatus.SYNCED),
        pending=statuses.count(SyncStatus.PENDING),
        failed=statuses.count(SyncStatus.FAILED),
    )


@router.post("/trigger")
async def trigger_sync(
    user: User = Depends(get_current_user),
    service: SyncService = Depends(get_sync_service),
):
    """Run a full reconciliation for the caller and wait for it."""
    try:
        result = await service.sync_user_data(user.id)
    except NotConnectedError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return {"message": "Sync completed successfully", "result": result.to_dict()}


@router.post("/retry")
async def retry_failed(
    user: User = Depends(get_current_user),
    service: SyncService = Depends(get_sync_service),
):
    """Reset the caller's FAILED entities to PENDING and reconcile again."""
    try:
        result = await service.retry_failed_syncs(user.id)
    except NotConnectedError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return {"message": "Retry completed successfully", "result": result.to_dict()}


@router.get("/status", response_model=SyncStatusResponse)
def sync_status(
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """Per-status counts, per-entity state and the most recent sync log rows."""
    projects = session.exec(
        select(Project).where(Project.user_id == user.id).order_by(Project.created_at)
    ).all()
    tasks = session.exec(
        select(Task).where(Task.user_id == user.id).order_by(Task.created_at)
    ).all()
    logs = session.exec(
        select(SyncLog)
        .where(SyncLog.user_id == user.id)
        .order_by(SyncLog.created_at.desc(), SyncLog.id.desc())
        .limit(RECENT_LOG_LIMIT)
    ).all()

    return SyncStatusResponse(
        summary={"projects": _count(projects), "tasks": _count(tasks)},
        projects=[
            ProjectSyncState(
                id=p.id, name=p.name, sync_status=p.sync_status, last_synced_at=p.last_synced_at
            )
            for p in projects
        ],
        tasks=[
            TaskSyncState(
                id=t.id, title=t.title, sync_status=t.sync_status, last_synced_at=t.last_synced_at
            )
            for t in tasks
        ],
        recent_logs=[SyncLogEntry.model_validate(log) for log in logs],
    )
