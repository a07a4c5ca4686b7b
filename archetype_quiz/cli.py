import argparse
import asyncio
import logging
import os
import sys
from typing import Optional, Sequence

from archetype_quiz.auth.crypto import hash_password
from archetype_quiz.db.session import create_tables, get_async_engine, get_session_factory
from archetype_quiz.logging_config import setup_logging
from archetype_quiz.schemas.records import AdminAccount
from archetype_quiz.services.storage import SqlAlchemyStorage

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="quiz-seed-admin",
        description="Create or update the admin account used for the quiz dashboard.",
    )
    parser.add_argument("--username", default=os.environ.get("ADMIN_USERNAME"), help="defaults to $ADMIN_USERNAME")
    parser.add_argument("--password", default=os.environ.get("ADMIN_PASSWORD"), help="defaults to $ADMIN_PASSWORD")
    parser.add_argument("--email", default=os.environ.get("ADMIN_EMAIL"), help="defaults to $ADMIN_EMAIL")
    parser.add_argument("--database-url", default=None, help="overrides DATABASE_URL")
    return parser


async def seed_admin(username: str, password: str, email: Optional[str] = None, database_url: Optional[str] = None) -> AdminAccount:
    """Creates missing tables and upserts the admin account with a hashed password."""
    engine = get_async_engine(database_url)
    try:
        await create_tables(engine)
        storage = SqlAlchemyStorage(get_session_factory(engine))
        account = AdminAccount(
            username=username,
            email=email.strip().lower() if email else None,
            password_hash=hash_password(password),
        )
        await storage.upsert_admin(account)
    finally:
        await engine.dispose()
    logger.info(f"Admin account '{username}' seeded")
    return account


def seed_admin_main(argv: Optional[Sequence[str]] = None) -> int:
    setup_logging()
    args = build_parser().parse_args(argv)
    if not args.username or not args.password:
        logger.error("Admin username and password are required (arguments or ADMIN_USERNAME/ADMIN_PASSWORD).")
        return 2

    asyncio.run(seed_admin(args.username, args.password, args.email, args.database_url))
    return 0


if __name__ == "__main__":
    sys.exit(seed_admin_main())
