"""User model."""
from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from tasksync.models.common import utcnow


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(unique=True, index=True)
    name: Optional[str] = None
    # Todoist API token; a user is "connected" iff this is set
    remote_token: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def is_connected(self) -> bool:
        return bool(self.remote_token)
