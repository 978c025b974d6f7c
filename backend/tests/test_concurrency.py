# tests/test_concurrency.py
"""
Concurrent use of one context: upserts racing on the same unique key and
independent writes sharing the pool.

Run with: pytest backend/tests/test_concurrency.py -v
"""

import asyncio

import pytest


class TestConcurrentUpsert:

    @pytest.mark.asyncio
    async def test_same_key_upserts_leave_one_row(self, db):
        payloads = [{"mode": "dark", "n": n} for n in range(10)]

        results = await asyncio.gather(*[
            db.app_setting.upsert(
                where={"key": "theme"},
                create={"key": "theme", "value": payload},
                update={"value": payload},
            )
            for payload in payloads
        ])

        rows = await db.app_setting.find_many()
        assert len(rows) == 1
        assert rows[0]["value"] in payloads
        assert all(result["key"] == "theme" for result in results)

    @pytest.mark.asyncio
    async def test_user_upsert_by_email(self, db):
        async def register(n):
            return await db.user.upsert(
                where={"email": "shared@example.com"},
                create={"username": f"u{n}", "email": "shared@example.com", "password_hash": "h"},
                update={"is_active": True},
            )

        results = await asyncio.gather(*[register(n) for n in range(5)])

        assert len({result["id"] for result in results}) == 1
        assert await db.user.count() == 1


class TestConcurrentWrites:

    @pytest.mark.asyncio
    async def test_independent_creates(self, db):
        await asyncio.gather(*[
            db.contact.create(data={"first_name": f"C{n}", "phone": f"+9166000{n:05d}"})
            for n in range(10)
        ])

        assert await db.contact.count() == 10

    @pytest.mark.asyncio
    async def test_increments_do_not_lose_updates(self, db, make_lead):
        lead = await make_lead(guests=0)

        await asyncio.gather(*[
            db.lead.update(where={"id": lead["id"]}, data={"guests": {"increment": 1}})
            for _ in range(10)
        ])

        assert (await db.lead.find_unique(where={"id": lead["id"]}))["guests"] == 10
