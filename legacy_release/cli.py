"""Command-line entry points: serve, run-once, poll, migrate."""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional

from .audit import AuditSink
from .config import Settings
from .content import MessageRenderer
from .database import DatabaseManager
from .email_dispatch import EmailDispatcher, ResendEmailDispatcher
from .engine import ReleaseEngine
from .errors import ConfigurationError, ReleaseEngineError
from .orchestrator import ReleaseOrchestrator
from .rate_limiter import SlidingWindowRateLimiter
from .scheduler import PeriodicReleaseRunner
from .security import AuthorizationGuard
from .store import CheckInStore, SqlAlchemyCheckInStore

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(levelname)s - %(message)s',
    )


def build_engine(
    settings: Settings,
    store: Optional[CheckInStore] = None,
    dispatcher: Optional[EmailDispatcher] = None,
    db_manager: Optional[DatabaseManager] = None,
) -> ReleaseEngine:
    """Wire the engine and its collaborators from settings.

    Args:
        settings: Settings with secrets already resolved
        store: Store override; defaults to the SQLAlchemy store
        dispatcher: Dispatcher override; defaults to the Resend dispatcher
        db_manager: Database manager backing the default store

    Raises:
        ConfigurationError: A required setting is missing
    """
    if store is None:
        if db_manager is None:
            if not settings.database_url:
                raise ConfigurationError("DATABASE_URL is required")
            db_manager = DatabaseManager(settings.database_url)
        store = SqlAlchemyCheckInStore(db_manager)

    if dispatcher is None:
        if not settings.resend_api_key:
            raise ConfigurationError("RESEND_API_KEY or RESEND_API_KEY_ARN is required")
        dispatcher = ResendEmailDispatcher(
            api_key=settings.resend_api_key,
            from_address=settings.resend_from,
            reply_to=settings.resend_reply_to,
            base_url=settings.resend_base_url,
        )

    audit_sink = AuditSink(store)
    orchestrator = ReleaseOrchestrator(
        store=store,
        dispatcher=dispatcher,
        audit_sink=audit_sink,
        renderer=MessageRenderer(settings.sender_name),
        max_concurrency=settings.max_concurrency,
    )
    rate_limiter = SlidingWindowRateLimiter(
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    guard = AuthorizationGuard(settings.service_role_key, audit_sink)
    return ReleaseEngine(orchestrator, rate_limiter, guard)


def _serve(settings: Settings, args) -> int:
    import uvicorn

    from .api import create_app

    db_manager = DatabaseManager(settings.database_url) if settings.database_url else None
    engine = build_engine(settings, db_manager=db_manager)
    app = create_app(engine, settings, db_manager=db_manager)
    uvicorn.run(app, host=args.host, port=args.port, log_level=settings.log_level.lower())
    return 0


async def _run_once(settings: Settings, emergency: bool) -> int:
    db_manager = DatabaseManager(settings.database_url) if settings.database_url else None
    engine = build_engine(settings, db_manager=db_manager)
    runner = PeriodicReleaseRunner(engine, interval_seconds=settings.poll_interval_seconds)
    try:
        response = await runner.run_once(emergency=emergency, credential=settings.service_role_key)
    except ReleaseEngineError as e:
        logger.error(f"Release pass failed: {e}")
        return 1
    finally:
        await engine.aclose()
        if db_manager is not None:
            await db_manager.close()

    print(response.model_dump_json(by_alias=True))
    return 0


async def _poll(settings: Settings, interval: int) -> int:
    db_manager = DatabaseManager(settings.database_url) if settings.database_url else None
    engine = build_engine(settings, db_manager=db_manager)
    runner = PeriodicReleaseRunner(engine, interval_seconds=interval)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, runner.stop)
        except NotImplementedError:
            # Signal handlers are unavailable on some platforms
            pass

    try:
        await runner.run_forever()
    finally:
        await engine.aclose()
        if db_manager is not None:
            await db_manager.close()
    return 0


def _migrate(settings: Settings, revision: str) -> int:
    from .migrations import migrate

    if not settings.database_url:
        logger.error("DATABASE_URL not provided")
        return 1
    try:
        missing = migrate(settings.database_url, revision)
    except Exception as e:
        logger.error(f"Migration process failed: {e}")
        return 1
    if missing:
        logger.error(f"Schema incomplete after migration: {', '.join(missing)}")
        return 1
    logger.info("Migration process completed successfully!")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="legacy-release",
        description="Release protected messages when check-ins are missed",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP processing endpoint")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)

    run_once = subparsers.add_parser("run-once", help="Run a single release pass")
    run_once.add_argument(
        "--emergency",
        action="store_true",
        help="Force release regardless of deadlines (uses the service credential)",
    )

    poll = subparsers.add_parser("poll", help="Run release passes on a fixed interval")
    poll.add_argument("--interval", type=int, default=None, help="Seconds between passes")

    migrate = subparsers.add_parser("migrate", help="Apply database migrations")
    migrate.add_argument("--revision", default="head", help="Target revision (default: head)")

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = Settings.from_env()
    except ValueError as e:
        configure_logging()
        logger.error(f"Invalid configuration: {e}")
        return 2
    configure_logging(settings.log_level)

    try:
        if args.command == "migrate":
            return _migrate(settings, args.revision)

        settings = settings.resolve_secrets()
        if args.command == "serve":
            return _serve(settings, args)
        if args.command == "run-once":
            return asyncio.run(_run_once(settings, args.emergency))
        if args.command == "poll":
            return asyncio.run(_poll(settings, args.interval or settings.poll_interval_seconds))
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 2
    return 1


if __name__ == "__main__":
    sys.exit(main())
