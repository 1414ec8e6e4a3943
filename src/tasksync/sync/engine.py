"""
SyncService: reconciles a user's local projects/tasks with Todoist.

One reconciliation (sync_user_data) runs, in order:
  1. Project push: create remotely every local project without an external id
  2. Project pull: create locally every remote project not seen before
  3. Task push: create new tasks remotely, push locally edited ones
  4. Task pull: create unseen remote tasks, overwrite local ones when the
     remote copy changed after the local sync point

Each entity is committed on its own; a failing entity is marked FAILED, gets a
SyncLog row, and the batch moves on. Pull failures are logged and swallowed.
Nothing is rolled back: partial success is the normal outcome of a bad run.

Conflict policy is last-writer-wins keyed on remote recency only: the remote
copy overwrites local fields when its modification time is strictly newer
than the local last_synced_at. Edits made on both sides since the last sync
are not detected; the remote side silently wins.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import AsyncIterator, Callable, Dict, List, Optional, Type, Union

from sqlalchemy import or_, update
from sqlmodel import Session, SQLModel, select

from tasksync.models.common import EPOCH, utcnow
from tasksync.models.project import Project
from tasksync.models.sync import SyncLog, SyncStatus
from tasksync.models.task import Task
from tasksync.models.user import User
from tasksync.sync.exceptions import NotConnectedError, RemoteOperationError, SyncLogError
from tasksync.todoist.client import TodoistClient

logger = logging.getLogger(__name__)


def remote_wins(
    remote_modified_at: datetime, local_last_synced_at: Optional[datetime]
) -> bool:
    """True when the remote copy should overwrite the local one."""
    return remote_modified_at > (local_last_synced_at or EPOCH)


@dataclass
class SyncResult:
    """Counters for one user's reconciliation."""

    user_id: int
    projects_created: int = 0
    projects_pulled: int = 0
    tasks_created: int = 0
    tasks_updated: int = 0
    tasks_pulled: int = 0
    tasks_overwritten: int = 0
    failed: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class UserLocks:
    """One asyncio.Lock per user id.

    Concurrent reconciliations for the same user wait for each other instead
    of racing on the same rows. Different users never block each other.
    Entries live only while someone holds or waits on the lock.
    """

    def __init__(self):
        self._locks: Dict[int, asyncio.Lock] = {}
        self._holders: Dict[int, int] = {}

    @asynccontextmanager
    async def hold(self, user_id: int) -> AsyncIterator[None]:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        self._holders[user_id] = self._holders.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[user_id] -= 1
            if not self._holders[user_id]:
                del self._holders[user_id]
                del self._locks[user_id]

    def __len__(self) -> int:
        return len(self._locks)

    def is_locked(self, user_id: int) -> bool:
        lock = self._locks.get(user_id)
        return lock is not None and lock.locked()


class SyncService:
    """Orchestrates local DB <-> Todoist reconciliation for one or all users."""

    def __init__(
        self,
        engine,
        client_factory: Optional[Callable[[str], TodoistClient]] = None,
        max_concurrency: int = 1,
        locks: Optional[UserLocks] = None,
    ):
        """
        Args:
            engine: SQLAlchemy engine (SQLModel create_engine result).
            client_factory: Builds a remote client from a user's token.
                Defaults to TodoistClient; tests pass a factory returning an
                AsyncMock.
            max_concurrency: Users reconciled at once by sync_all_users().
                1 keeps the loop strictly sequential.
            locks: Per-user lock registry, shared if several services run
                in one process.
        """
        self.engine = engine
        self.client_factory = client_factory or TodoistClient
        self.max_concurrency = max(1, max_concurrency)
        self.locks = locks if locks is not None else UserLocks()

    # ─── Public operations ────────────────────────────────────────────────────

    async def sync_user_data(self, user_id: int) -> SyncResult:
        """
        Run one full reconciliation (projects, then tasks) for a user.

        Raises:
            NotConnectedError: the user does not exist or has no remote token.
                Nothing is mutated in that case.
        """
        token = self._remote_token(user_id)

        async with self.locks.hold(user_id):
            result = SyncResult(user_id=user_id)
            client = self.client_factory(token)
            try:
                # Tasks reference projects by remote id: projects go first
                await self._sync_projects(user_id, client, result)
                await self._sync_tasks(user_id, client, result)
            finally:
                await client.aclose()

        logger.info("Sync finished for user %s: %s", user_id, result.to_dict())
        return result

    async def sync_all_users(self) -> Dict[int, Union[SyncResult, str]]:
        """
        Reconcile every connected user.

        A failing user is logged and skipped; the loop always reaches the
        remaining users.

        Returns:
            user id -> SyncResult, or the error message for users that failed.
        """
        with Session(self.engine) as s:
            user_ids = s.exec(
                select(User.id)
                .where(User.remote_token.is_not(None), User.remote_token != "")
                .order_by(User.id)
            ).all()

        outcomes: Dict[int, Union[SyncResult, str]] = {}
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _sync_one(user_id: int) -> None:
            async with semaphore:
                try:
                    outcomes[user_id] = await self.sync_user_data(user_id)
                except Exception as exc:
                    logger.error("Sync failed for user %s: %s", user_id, exc)
                    outcomes[user_id] = str(exc)

        if self.max_concurrency == 1:
            for user_id in user_ids:
                await _sync_one(user_id)
        else:
            await asyncio.gather(*(_sync_one(user_id) for user_id in user_ids))

        return outcomes

    async def retry_failed_syncs(self, user_id: int) -> SyncResult:
        """
        Reset the user's FAILED projects and tasks to PENDING, then reconcile.

        Only rows whose status is exactly FAILED are touched.

        Raises:
            NotConnectedError: checked before anything is reset.
        """
        self._remote_token(user_id)

        with Session(self.engine) as s:
            reset = 0
            for model in (Project, Task):
                reset += s.exec(
                    update(model)
                    .where(
                        model.user_id == user_id,
                        model.sync_status == SyncStatus.FAILED,
                    )
                    .values(sync_status=SyncStatus.PENDING)
                ).rowcount
            s.commit()

        logger.info("Reset %d failed entities to PENDING for user %s", reset, user_id)
        return await self.sync_user_data(user_id)

    def log_sync(
        self,
        user_id: int,
        entity_type: str,
        entity_id: int,
        action: str,
        status: str,
        error: Optional[str] = None,
    ) -> None:
        """Append one SyncLog row. Never raises."""
        try:
            self._write_sync_log(
                SyncLog(
                    user_id=user_id,
                    entity_type=entity_type,
                    entity_id=entity_id,
                    action=action,
                    status=status,
                    error=error,
                )
            )
        except SyncLogError as exc:
            logger.warning(
                "Could not record sync log (%s %s %s/%s): %s",
                entity_type, entity_id, action, status, exc,
            )

    # ─── Projects ─────────────────────────────────────────────────────────────

    async def _sync_projects(self, user_id: int, client, result: SyncResult) -> None:
        discarded = set()
        for project in self._push_candidates(Project, user_id):
            if project.external_id:
                continue
            try:
                remote = await client.create_project(project.name, project.description)
                if not self._mark_synced(Project, project, external_id=remote.id):
                    await self._discard_remote(client.delete_project, "project", remote.id)
                    discarded.add(remote.id)
                    continue
            except Exception as exc:
                self._mark_failed(Project, project.id)
                self.log_sync(user_id, "project", project.id, "create", "failed", str(exc))
                result.failed += 1
                continue
            self.log_sync(user_id, "project", project.id, "create", "success")
            result.projects_created += 1

        try:
            remote_projects = await client.list_projects()
            for remote in remote_projects:
                if remote.id in discarded:
                    continue
                if self._pull_project(user_id, remote):
                    result.projects_pulled += 1
        except Exception as exc:
            logger.error("Failed to pull projects for user %s: %s", user_id, exc)

    def _pull_project(self, user_id: int, remote) -> bool:
        """Create a local copy of an unseen remote project. Existing ones are left alone."""
        with Session(self.engine) as s:
            existing = s.exec(
                select(Project).where(
                    Project.user_id == user_id, Project.external_id == remote.id
                )
            ).first()
            if existing:
                return False
            now = utcnow()
            s.add(
                Project(
                    user_id=user_id,
                    name=remote.name,
                    external_id=remote.id,
                    sync_status=SyncStatus.SYNCED,
                    last_synced_at=now,
                    created_at=now,
                    updated_at=now,
                )
            )
            s.commit()
        return True

    # ─── Tasks ────────────────────────────────────────────────────────────────

    async def _sync_tasks(self, user_id: int, client, result: SyncResult) -> None:
        remote_project_ids = self._remote_project_ids(user_id)
        discarded = set()

        for task in self._push_candidates(Task, user_id):
            try:
                if not task.external_id:
                    remote = await client.create_task(
                        task.title,
                        task.description or "",
                        remote_project_ids.get(task.project_id),
                    )
                    if not self._mark_synced(Task, task, external_id=remote.id):
                        await self._discard_remote(client.delete_task, "task", remote.id)
                        discarded.add(remote.id)
                        continue
                    action = "create"
                elif task.updated_at > (task.last_synced_at or EPOCH):
                    await client.update_task(
                        task.external_id, task.title, task.description or ""
                    )
                    # Local un-completion never reopens the remote task
                    if task.completed:
                        await client.complete_task(task.external_id)
                    if not self._mark_synced(Task, task):
                        continue
                    action = "update"
                else:
                    continue
            except Exception as exc:
                self._mark_failed(Task, task.id)
                self.log_sync(user_id, "task", task.id, "sync", "failed", str(exc))
                result.failed += 1
                continue

            self.log_sync(user_id, "task", task.id, action, "success")
            if action == "create":
                result.tasks_created += 1
            else:
                result.tasks_updated += 1

        try:
            remote_tasks = await client.list_tasks()
            local_project_ids = {
                ext: pid for pid, ext in self._remote_project_ids(user_id).items()
            }
            for remote in remote_tasks:
                if remote.id in discarded:
                    continue
                outcome = self._pull_task(
                    user_id, remote, local_project_ids.get(remote.project_id)
                )
                if outcome == "created":
                    result.tasks_pulled += 1
                elif outcome == "overwritten":
                    result.tasks_overwritten += 1
        except Exception as exc:
            logger.error("Failed to pull tasks for user %s: %s", user_id, exc)

    def _pull_task(self, user_id: int, remote, project_id: Optional[int]) -> Optional[str]:
        """Create or overwrite the local copy of a remote task.

        Returns "created", "overwritten", or None when the local copy was kept.
        """
        with Session(self.engine) as s:
            existing = s.exec(
                select(Task).where(Task.user_id == user_id, Task.external_id == remote.id)
            ).first()
            now = utcnow()

            if existing is None:
                s.add(
                    Task(
                        user_id=user_id,
                        project_id=project_id,
                        title=remote.content,
                        description=remote.description,
                        completed=remote.is_completed,
                        external_id=remote.id,
                        sync_status=SyncStatus.SYNCED,
                        last_synced_at=now,
                        created_at=now,
                        updated_at=now,
                    )
                )
                s.commit()
                return "created"

            if not remote_wins(remote.modified_at, existing.last_synced_at):
                return None

            existing.title = remote.content
            existing.description = remote.description
            existing.completed = remote.is_completed
            existing.project_id = project_id
            existing.sync_status = SyncStatus.SYNCED
            existing.last_synced_at = now
            s.add(existing)
            s.commit()
            return "overwritten"

    # ─── Persistence helpers ──────────────────────────────────────────────────

    def _remote_token(self, user_id: int) -> str:
        with Session(self.engine) as s:
            user = s.get(User, user_id)
        if user is None or not user.is_connected:
            raise NotConnectedError(user_id)
        return user.remote_token

    def _push_candidates(self, model: Type[SQLModel], user_id: int) -> List:
        """The user's rows that are PENDING or have never been pushed, oldest first."""
        with Session(self.engine) as s:
            return s.exec(
                select(model)
                .where(
                    model.user_id == user_id,
                    or_(
                        model.sync_status == SyncStatus.PENDING,
                        model.external_id.is_(None),
                    ),
                )
                .order_by(model.created_at)
            ).all()

    def _remote_project_ids(self, user_id: int) -> Dict[int, str]:
        """local project id -> remote project id, for pushed projects only."""
        with Session(self.engine) as s:
            rows = s.exec(
                select(Project.id, Project.external_id).where(
                    Project.user_id == user_id, Project.external_id.is_not(None)
                )
            ).all()
        return {pid: ext for pid, ext in rows}

    def _mark_synced(
        self, model, snapshot, external_id: Optional[str] = None
    ) -> bool:
        """Record a successful push. Returns False if the row is gone.

        If the row was edited locally while the remote call was in flight, the
        sync point is not advanced and the row stays PENDING, so the edit is
        pushed as an update on the next run.
        """
        with Session(self.engine) as s:
            row = s.get(model, snapshot.id)
            if row is None:
                return False
            if external_id is not None:
                row.external_id = external_id
            if row.updated_at == snapshot.updated_at:
                row.sync_status = SyncStatus.SYNCED
                row.last_synced_at = utcnow()
            s.add(row)
            s.commit()
        return True

    async def _discard_remote(self, delete, entity_type: str, remote_id: str) -> None:
        """Remove a remote copy whose local row was deleted while it was being created."""
        logger.info("Local %s deleted mid-push, removing remote %s", entity_type, remote_id)
        try:
            await delete(remote_id)
        except RemoteOperationError as exc:
            logger.warning("Failed to remove orphaned remote %s %s: %s", entity_type, remote_id, exc)

    def _mark_failed(self, model, entity_id: int) -> None:
        with Session(self.engine) as s:
            row = s.get(model, entity_id)
            if row is None:
                return
            row.sync_status = SyncStatus.FAILED
            s.add(row)
            s.commit()

    def _write_sync_log(self, log: SyncLog) -> None:
        try:
            with Session(self.engine) as s:
                s.add(log)
                s.commit()
        except Exception as exc:
            raise SyncLogError(str(exc)) from exc
