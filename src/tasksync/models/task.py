"""Task model, mirrored to a remote Todoist task."""
from datetime import datetime
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from tasksync.models.common import utcnow
from tasksync.models.sync import SyncStatus


class Task(SQLModel, table=True):
    """A user's task, optionally filed under one of the same user's projects."""

    __table_args__ = (
        UniqueConstraint("user_id", "external_id", name="uq_task_user_external"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    project_id: Optional[int] = Field(default=None, foreign_key="project.id", index=True)
    title: str
    description: Optional[str] = None
    completed: bool = False
    external_id: Optional[str] = Field(default=None, index=True)
    sync_status: SyncStatus = Field(default=SyncStatus.PENDING, index=True)
    last_synced_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def mark_modified(self) -> None:
        """Record a local edit: pushed on the next sync if newer than last_synced_at."""
        self.updated_at = utcnow()
        self.sync_status = SyncStatus.PENDING
