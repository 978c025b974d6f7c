# tests/conftest.py
"""Fixtures: a fresh DataAccessContext per test on a temporary SQLite file."""

import itertools
import os

import pytest
import pytest_asyncio

from leadstore.client import DataAccessContext
from leadstore.config import Settings

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")


@pytest.fixture
def test_settings(tmp_path):
    """Settings for an isolated database (single pooled connection)."""
    url = TEST_DATABASE_URL or f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"
    return Settings(
        DATABASE_URL=url,
        DB_POOL_SIZE=1,
        DB_MAX_OVERFLOW=0,
        DB_POOL_TIMEOUT=10.0,
        DB_POOL_PRE_PING=False,
        TRANSACTION_MAX_WAIT=2.0,
        TRANSACTION_TIMEOUT=5.0,
        SEED_ADMIN_PASSWORD="seed-secret",
    )


@pytest_asyncio.fixture
async def db(test_settings):
    """Connected context with an empty schema."""
    context = DataAccessContext(test_settings)
    await context.connect()
    await context.drop_schema()
    await context.create_schema()

    yield context

    if context.dialect_name != "sqlite":
        await context.drop_schema()
    await context.disconnect()


# ============================================================================
# RECORD FACTORIES
# ============================================================================

@pytest.fixture
def make_user(db):
    counter = itertools.count(1)

    async def _make(**overrides):
        n = next(counter)
        data = {
            "username": f"user{n}",
            "email": f"user{n}@example.com",
            "password_hash": "not-a-real-hash",
        }
        data.update(overrides)
        return await db.user.create(data=data)

    return _make


@pytest.fixture
def make_contact(db):
    counter = itertools.count(1)

    async def _make(**overrides):
        n = next(counter)
        data = {"first_name": f"Contact {n}", "phone": f"+9198000{n:05d}"}
        data.update(overrides)
        return await db.contact.create(data=data)

    return _make


@pytest.fixture
def make_lead(db, make_contact):

    async def _make(**overrides):
        if "contact_id" not in overrides and "contact" not in overrides:
            contact = await make_contact()
            overrides["contact_id"] = contact["id"]
        data = {"client_budget": 1000.0}
        data.update(overrides)
        return await db.lead.create(data=data)

    return _make
