"""Shared route dependencies."""
from fastapi import Depends, Header, HTTPException, Request
from sqlmodel import Session

from tasksync.db.engine import get_session
from tasksync.models.user import User
from tasksync.sync.dispatcher import SyncDispatcher
from tasksync.sync.engine import SyncService


def get_current_user(
    x_user_id: int = Header(...),
    session: Session = Depends(get_session),
) -> User:
    """Resolve the calling user from the X-User-Id header."""
    user = session.get(User, x_user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def get_sync_service(request: Request) -> SyncService:
    return request.app.state.sync_service


def get_dispatcher(request: Request) -> SyncDispatcher:
    return request.app.state.dispatcher
