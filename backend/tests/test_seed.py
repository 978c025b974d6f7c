# tests/test_seed.py
"""
Admin seeding.

Run with: pytest backend/tests/test_seed.py -v
"""

import pytest

from leadstore.models import Role
from leadstore.seed import seed, seed_admin, verify_password


class TestSeedAdmin:

    @pytest.mark.asyncio
    async def test_creates_admin(self, db, test_settings):
        admin = await seed_admin(db, test_settings)

        assert admin["email"] == test_settings.SEED_ADMIN_EMAIL.lower()
        assert admin["role"] == Role.ADMIN
        assert admin["is_active"] is True
        assert verify_password("seed-secret", admin["password_hash"])
        assert not verify_password("wrong", admin["password_hash"])

    @pytest.mark.asyncio
    async def test_idempotent(self, db, test_settings):
        first = await seed_admin(db, test_settings)
        second = await seed_admin(db, test_settings)

        assert first["id"] == second["id"]
        assert await db.user.count() == 1

    @pytest.mark.asyncio
    async def test_seed_creates_schema(self, test_settings):
        if not test_settings.async_database_url.startswith("sqlite"):
            pytest.skip("uses a throwaway SQLite file")

        admin = await seed(test_settings)

        assert admin["username"] == test_settings.SEED_ADMIN_USERNAME
