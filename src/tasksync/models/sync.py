"""Sync state enum and the append-only sync audit log."""
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel

from tasksync.models.common import utcnow


class SyncStatus(str, Enum):
    PENDING = "PENDING"  # local state not yet confirmed remotely
    SYNCED = "SYNCED"
    FAILED = "FAILED"  # needs a retry_failed_syncs() to be picked up again


class SyncLog(SQLModel, table=True):
    """One row per attempted push (create/update), success or failure.

    Rows are written by the sync engine and never updated or deleted.
    """

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    entity_type: str  # "project", "task"
    entity_id: int
    action: str  # "create", "update", "sync"
    status: str  # "success", "failed"
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, index=True)
