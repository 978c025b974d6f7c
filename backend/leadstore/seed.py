"""
Seed the database: create the schema and the admin user.

Usage:
    python -m leadstore.seed
"""

import asyncio
import logging
from typing import Optional

from passlib.context import CryptContext

from leadstore.client import DataAccessContext
from leadstore.config import Settings, settings as default_settings
from leadstore.models import Role

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def get_password_hash(password: str) -> str:
    """Hash password."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify password against hash."""
    return pwd_context.verify(plain_password, hashed_password)


async def seed_admin(db: DataAccessContext, settings: Settings) -> dict:
    """Create the admin user unless one with the configured email exists."""
    email = settings.SEED_ADMIN_EMAIL.lower()

    existing = await db.user.find_unique(where={"email": email})
    if existing:
        logger.info(f"User {email} already exists.")
        return existing

    user = await db.user.create(data={
        "username": settings.SEED_ADMIN_USERNAME,
        "email": email,
        "password_hash": get_password_hash(settings.SEED_ADMIN_PASSWORD),
        "role": Role.ADMIN,
        "is_active": True,
    })
    logger.info(f"User {email} created.")
    return user


async def seed(settings: Optional[Settings] = None) -> dict:
    settings = settings or default_settings
    async with DataAccessContext(settings) as db:
        await db.create_schema()
        return await seed_admin(db, settings)


def main():
    logging.basicConfig(level=logging.INFO)
    asyncio.run(seed())


if __name__ == "__main__":
    main()
