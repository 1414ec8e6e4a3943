"""
Background sync dispatch for API mutations.

Request handlers hand a user id to SyncDispatcher.schedule() and return
immediately; a small pool of asyncio worker tasks drains the queue and runs
SyncService.sync_user_data(). No caller waits on the outcome, so every
failure is logged here.

Coalescing: a user already waiting in the queue is not enqueued twice. Once a
worker has picked the user up, a new request enqueues a fresh run, which the
per-user lock in SyncService serializes behind the one in flight.
"""
import asyncio
import logging
from typing import List, Optional, Set

from tasksync.sync.exceptions import NotConnectedError

logger = logging.getLogger(__name__)


class SyncDispatcher:
    """Queue + worker pool running reconciliations off the request path."""

    def __init__(self, service, workers: int = 2):
        """
        Args:
            service: SyncService (or AsyncMock in tests).
            workers: Number of concurrent worker tasks.
        """
        self.service = service
        self.workers = max(1, workers)
        self._queue: Optional[asyncio.Queue] = None
        self._queued: Set[int] = set()
        self._tasks: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def start(self) -> None:
        """Spawn the worker tasks on the running event loop. Idempotent."""
        if self._tasks:
            return
        self._queue = asyncio.Queue()
        self._tasks = [
            asyncio.create_task(self._worker(n), name=f"sync-worker-{n}")
            for n in range(self.workers)
        ]
        logger.info("Sync dispatcher started with %d workers", self.workers)

    async def stop(self) -> None:
        """Cancel the workers. Queued but unstarted runs are dropped."""
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        self._queued.clear()
        logger.info("Sync dispatcher stopped")

    def schedule(self, user_id: int) -> bool:
        """
        Queue a reconciliation for user_id without waiting for it.

        Returns:
            True if queued, False if the user was already waiting in the queue.

        Raises:
            RuntimeError: if start() has not been called.
        """
        if self._queue is None:
            raise RuntimeError("SyncDispatcher.start() must be called first")
        if user_id in self._queued:
            logger.debug("Sync for user %s already queued", user_id)
            return False
        self._queued.add(user_id)
        self._queue.put_nowait(user_id)
        return True

    async def join(self) -> None:
        """Wait until every queued run has finished."""
        if self._queue is not None:
            await self._queue.join()

    async def _worker(self, n: int) -> None:
        while True:
            user_id = await self._queue.get()
            self._queued.discard(user_id)
            try:
                await self.service.sync_user_data(user_id)
            except NotConnectedError:
                logger.info("Skipping background sync: user %s not connected", user_id)
            except Exception:
                logger.exception("Background sync failed for user %s", user_id)
            finally:
                self._queue.task_done()
