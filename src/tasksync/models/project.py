"""Project model, mirrored to a remote Todoist project."""
from datetime import datetime
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from tasksync.models.common import utcnow
from tasksync.models.sync import SyncStatus


class Project(SQLModel, table=True):
    """A user's project.

    external_id is the remote project id: None until the first successful
    push, or set immediately for projects pulled from the remote side.
    """

    __table_args__ = (
        UniqueConstraint("user_id", "external_id", name="uq_project_user_external"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    name: str
    description: Optional[str] = None
    external_id: Optional[str] = Field(default=None, index=True)
    sync_status: SyncStatus = Field(default=SyncStatus.PENDING, index=True)
    last_synced_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    # Only advanced by local edits (mark_modified), never by sync bookkeeping
    updated_at: datetime = Field(default_factory=utcnow)

    def mark_modified(self) -> None:
        """Record a local edit: the project needs pushing again."""
        self.updated_at = utcnow()
        self.sync_status = SyncStatus.PENDING
