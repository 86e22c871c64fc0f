# seed.py — Create the bootstrap admin account
"""
Run once per deployment, after migrations:

    ADMIN_PASSWORD=... projecthub-seed
    python seed.py --username admin --email admin@example.com

Safe to repeat: an existing user with the admin username is left untouched.
"""
import os
import sys
import asyncio
import logging
import argparse

from auth import AuthService, MIN_PASSWORD_LENGTH
from database import engine, async_session_maker, init_db, close_db
from storage import DatabaseStorage

logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s %(message)s",
)
logger = logging.getLogger("projecthub.seed")


async def seed_admin(storage: DatabaseStorage, username: str, password: str, email: str = None):
    user, created = await storage.ensure_admin_user(
        username, AuthService.hash_password(password), email=email,
    )
    if created:
        logger.info(f"Admin user '{username}' created (id={user.id})")
    else:
        logger.info(f"User '{username}' already exists (id={user.id}); nothing to do")
    return user, created


async def _run(args) -> None:
    if args.create_schema:
        await init_db(engine)
    try:
        await seed_admin(DatabaseStorage(async_session_maker), args.username, args.password, args.email)
    finally:
        await close_db()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Create the ProjectHub admin account")
    parser.add_argument("--username", default=os.getenv("ADMIN_USERNAME", "admin"))
    parser.add_argument("--password", default=os.getenv("ADMIN_PASSWORD"))
    parser.add_argument("--email", default=os.getenv("ADMIN_EMAIL"))
    parser.add_argument(
        "--create-schema", action="store_true",
        help="create missing tables first (for deployments without Alembic)",
    )
    args = parser.parse_args(argv)

    if not args.password or len(args.password) < MIN_PASSWORD_LENGTH:
        parser.error(f"ADMIN_PASSWORD (or --password) of at least {MIN_PASSWORD_LENGTH} characters is required")

    asyncio.run(_run(args))
    return 0


if __name__ == "__main__":
    sys.exit(main())
