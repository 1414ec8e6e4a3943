"""Pydantic models for the Todoist REST v2 payloads the engine consumes."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from tasksync.models.common import to_naive_utc


class RemoteProject(BaseModel):
    id: str
    name: str
    parent_id: Optional[str] = None
    is_inbox_project: bool = False
    url: Optional[str] = None


class RemoteTask(BaseModel):
    id: str
    content: str
    description: str = ""
    project_id: Optional[str] = None
    is_completed: bool = False
    created_at: datetime
    updated_at: Optional[datetime] = None

    @property
    def modified_at(self) -> datetime:
        """Last remote modification as naive UTC (creation time if never updated)."""
        return to_naive_utc(self.updated_at or self.created_at)
