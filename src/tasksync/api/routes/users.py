"""User creation and Todoist connect/disconnect routes."""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session, select

from tasksync.api.deps import get_current_user, get_dispatcher
from tasksync.db.engine import get_session
from tasksync.models.user import User
from tasksync.sync.dispatcher import SyncDispatcher

router = APIRouter()


class UserCreate(BaseModel):
    email: str
    name: Optional[str] = None


class RemoteConnectRequest(BaseModel):
    token: str


class UserRead(BaseModel):
    id: int
    email: str
    name: Optional[str]
    connected: bool
    created_at: datetime


def _to_read(user: User) -> UserRead:
    # Never echo the remote token back
    return UserRead(
        id=user.id,
        email=user.email,
        name=user.name,
        connected=user.is_connected,
        created_at=user.created_at,
    )


@router.post("/", response_model=UserRead, status_code=201)
def create_user(request: UserCreate, session: Session = Depends(get_session)):
    existing = session.exec(select(User).where(User.email == request.email)).first()
    if existing:
        raise HTTPException(status_code=409, detail="Email already registered")
    user = User(email=request.email, name=request.name)
    session.add(user)
    session.commit()
    session.refresh(user)
    return _to_read(user)


@router.get("/me", response_model=UserRead)
def read_me(user: User = Depends(get_current_user)):
    return _to_read(user)


@router.put("/me/remote", response_model=UserRead)
async def connect_remote(
    request: RemoteConnectRequest,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
    dispatcher: SyncDispatcher = Depends(get_dispatcher),
):
    """Store the user's Todoist token and kick off a first sync in the background."""
    if not request.token.strip():
        raise HTTPException(status_code=400, detail="Todoist token required")
    user.remote_token = request.token.strip()
    session.add(user)
    session.commit()
    session.refresh(user)
    dispatcher.schedule(user.id)
    return _to_read(user)


@router.delete("/me/remote", response_model=UserRead)
def disconnect_remote(
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    user.remote_token = None
    session.add(user)
    session.commit()
    session.refresh(user)
    return _to_read(user)
