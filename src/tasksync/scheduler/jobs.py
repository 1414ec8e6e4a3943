"""
APScheduler jobs for background sync.

The periodic job reconciles every connected user, catching whatever the
post-mutation background syncs missed (remote-side edits, failed runs, users
who connected while the service was down).

The scheduler runs inside the API process (started from the app lifespan) or
standalone via `python -m tasksync scheduler`.
"""
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from tasksync.config import get_settings

logger = logging.getLogger(__name__)


def build_scheduler(service) -> AsyncIOScheduler:
    """
    Create and configure the APScheduler.

    Args:
        service: SyncService whose sync_all_users() the job runs.

    Returns:
        Configured AsyncIOScheduler (not yet started).
    """
    settings = get_settings()
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        _periodic_sync,
        trigger="interval",
        minutes=settings.sync_interval_minutes,
        id="periodic_sync",
        replace_existing=True,
        # A run slower than the interval must not overlap with the next one
        max_instances=1,
        coalesce=True,
        kwargs={"service": service},
    )

    return scheduler


async def _periodic_sync(service) -> None:
    """Reconcile all connected users. Never raises, so the scheduler stays alive."""
    logger.info("Running background sync...")
    try:
        outcomes = await service.sync_all_users()
    except Exception as exc:
        logger.error("Background sync failed: %s", exc)
        return

    failed = [uid for uid, outcome in outcomes.items() if isinstance(outcome, str)]
    logger.info(
        "Background sync finished: %d users, %d failed", len(outcomes), len(failed)
    )
