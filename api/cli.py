#!/usr/bin/env python3
"""CLI for CEU Certificates API management tasks.

Usage:
    python -m cli <command>

Commands:
    migrate               Run database migrations
    process-redemption    Run the certificate pipeline for one redemption
    retry-failed-emails   Re-run the pipeline for redemptions whose email failed
    grant-creator         Grant (or revoke) the creator role for a user
"""

import argparse
import asyncio
import sys
from pathlib import Path

import httpx

from core.config import get_settings
from core.logger import configure_logging, get_logger

configure_logging()
logger = get_logger(__name__)


def _get_alembic_config():
    from alembic.config import Config

    api_dir = Path(__file__).resolve().parent
    cfg = Config(str(api_dir / "alembic.ini"))
    # Absolute so the command works from any working directory
    cfg.set_main_option("script_location", str(api_dir / "alembic"))
    return cfg


def cmd_migrate() -> int:
    """Run database migrations."""
    from alembic import command

    logger.info("migrations.starting")
    command.upgrade(_get_alembic_config(), "head")
    logger.info("migrations.complete")
    return 0


async def _with_pipeline_deps(run) -> int:
    """Build the engine, store and notifier the pipeline needs, then run."""
    from core.database import create_engine, create_session_maker, dispose_engine
    from services.artifact_store import AzureBlobArtifactStore
    from services.notification_service import PostmarkNotifier

    settings = get_settings()
    if not settings.azure_storage_connection_string:
        logger.error("artifact_store.not_configured")
        return 1

    engine = create_engine()
    store = AzureBlobArtifactStore.from_settings()
    async with httpx.AsyncClient(timeout=settings.http_timeout) as client:
        try:
            return await run(
                create_session_maker(engine),
                store,
                PostmarkNotifier.from_settings(client),
            )
        finally:
            await store.close()
            await dispose_engine(engine)


def cmd_process_redemption(class_id: str, redemption_id: str) -> int:
    """Run the certificate pipeline once for a stored redemption."""
    from services.redemptions_service import run_redemption_pipeline

    async def run(session_maker, store, notifier) -> int:
        result = await run_redemption_pipeline(
            session_maker, store, notifier, class_id, redemption_id
        )
        if result is None:
            return 1
        print(result.value)
        return 0

    return asyncio.run(_with_pipeline_deps(run))


def cmd_retry_failed_emails(class_id: str | None, limit: int) -> int:
    """Re-run the pipeline for non-terminal redemptions with an email error."""
    from services.redemptions_service import PipelineResult, retry_failed_emails

    async def run(session_maker, store, notifier) -> int:
        counts = await retry_failed_emails(
            session_maker, store, notifier, class_id=class_id, limit=limit
        )
        for name, count in sorted(counts.items()):
            print(f"{name}: {count}")
        failed = counts.get(PipelineResult.EMAIL_FAILED.value, 0) + counts.get(
            "error", 0
        )
        return 1 if failed else 0

    return asyncio.run(_with_pipeline_deps(run))


def cmd_grant_creator(user_id: str, revoke: bool) -> int:
    """Set or clear the creator flag on an existing user."""
    from core.database import create_engine, create_session_maker, dispose_engine
    from repositories.user_repository import UserRepository

    async def run() -> int:
        engine = create_engine()
        try:
            async with create_session_maker(engine)() as session:
                user = await UserRepository(session).set_creator(
                    user_id, not revoke
                )
                if user is None:
                    logger.error("user.not_found", user_id=user_id)
                    return 1
                await session.commit()
        finally:
            await dispose_engine(engine)

        logger.info("user.creator_updated", user_id=user_id, is_creator=not revoke)
        return 0

    return asyncio.run(run())


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="CEU Certificates API CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("migrate", help="Run database migrations")

    process = subparsers.add_parser(
        "process-redemption",
        help="Run the certificate pipeline for one redemption",
    )
    process.add_argument("class_id")
    process.add_argument("redemption_id")

    retry = subparsers.add_parser(
        "retry-failed-emails",
        help="Re-run the pipeline for redemptions whose email failed",
    )
    retry.add_argument("--class-id", default=None, help="Only this class")
    retry.add_argument(
        "--limit", type=int, default=100, help="Maximum records (default: 100)"
    )

    grant = subparsers.add_parser(
        "grant-creator", help="Grant (or revoke) the creator role for a user"
    )
    grant.add_argument("user_id")
    grant.add_argument("--revoke", action="store_true", help="Clear the flag")

    args = parser.parse_args(argv)

    if args.command == "migrate":
        return cmd_migrate()
    elif args.command == "process-redemption":
        return cmd_process_redemption(args.class_id, args.redemption_id)
    elif args.command == "retry-failed-emails":
        return cmd_retry_failed_emails(args.class_id, args.limit)
    elif args.command == "grant-creator":
        return cmd_grant_creator(args.user_id, args.revoke)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
