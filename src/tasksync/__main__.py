"""
Main entrypoint.

Usage:
    python -m tasksync                       # serve the API (+ scheduler)
    python -m tasksync serve --port 8000
    python -m tasksync sync --user-id 1      # one reconciliation, in the foreground
    python -m tasksync retry --user-id 1     # reset FAILED entities and reconcile
    python -m tasksync sync-all              # what the periodic job runs
    python -m tasksync scheduler             # periodic job only, no API
"""
import argparse
import asyncio
import logging
import sys

from tasksync.config import get_settings

logger = logging.getLogger(__name__)


def _configure_logging() -> None:
    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )


def _build_service():
    from tasksync.db.engine import get_engine
    from tasksync.sync.engine import SyncService

    settings = get_settings()
    return SyncService(get_engine(), max_concurrency=settings.sync_max_concurrency)


def _serve(host: str, port: int) -> None:
    import uvicorn

    uvicorn.run("tasksync.api.main:app", host=host, port=port)


async def _sync_user(user_id: int, retry: bool) -> int:
    from tasksync.sync.exceptions import NotConnectedError

    service = _build_service()
    try:
        if retry:
            result = await service.retry_failed_syncs(user_id)
        else:
            result = await service.sync_user_data(user_id)
    except NotConnectedError as exc:
        logger.error("%s", exc)
        return 1
    logger.info("Done: %s", result.to_dict())
    return 0 if result.failed == 0 else 2


async def _sync_all() -> int:
    service = _build_service()
    outcomes = await service.sync_all_users()
    failed = [uid for uid, outcome in outcomes.items() if isinstance(outcome, str)]
    logger.info("Synced %d users, %d failed", len(outcomes), len(failed))
    return 0 if not failed else 2


async def _run_scheduler() -> None:
    from tasksync.scheduler.jobs import build_scheduler

    settings = get_settings()
    scheduler = build_scheduler(_build_service())
    scheduler.start()
    logger.info(
        "Scheduler started (full sync every %d min). Press Ctrl+C to stop.",
        settings.sync_interval_minutes,
    )
    try:
        await asyncio.Event().wait()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Shutting down...")
    finally:
        scheduler.shutdown()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tasksync", description=__doc__.split("\n\n")[0])
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)

    for name, help_text in (
        ("sync", "Reconcile one user now"),
        ("retry", "Reset one user's FAILED entities and reconcile"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("--user-id", type=int, required=True)

    sub.add_parser("sync-all", help="Reconcile every connected user once")
    sub.add_parser("scheduler", help="Run the periodic sync job without the API")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    _configure_logging()

    if args.command in (None, "serve"):
        _serve(getattr(args, "host", "0.0.0.0"), getattr(args, "port", 8000))
        return 0
    if args.command in ("sync", "retry"):
        return asyncio.run(_sync_user(args.user_id, retry=args.command == "retry"))
    if args.command == "sync-all":
        return asyncio.run(_sync_all())
    asyncio.run(_run_scheduler())
    return 0


if __name__ == "__main__":
    sys.exit(main())
