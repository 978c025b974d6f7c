# tests/test_projection.py
"""
select / include / omit and nested relation loading.

Run with: pytest backend/tests/test_projection.py -v
"""

from datetime import datetime

import pytest
import pytest_asyncio

from leadstore.exceptions import ValidationError


@pytest_asyncio.fixture
async def lead_with_payments(db, make_lead):
    lead = await make_lead(title="Sharma wedding")
    for day, amount in ((3, 300), (1, 100), (2, 200), (4, 400)):
        await db.payment.create(data={
            "amount": amount,
            "date": datetime(2026, 1, day),
            "lead_id": lead["id"],
        })
    return lead


# ============================================================================
# TEST: Scalar Projections
# ============================================================================

class TestScalarProjection:

    @pytest.mark.asyncio
    async def test_select_returns_only_selected(self, db, lead_with_payments):
        row = await db.lead.find_unique(where={"id": lead_with_payments["id"]}, select={"id": True, "title": True})

        assert row == {"id": lead_with_payments["id"], "title": "Sharma wedding"}

    @pytest.mark.asyncio
    async def test_select_false_is_skipped(self, db, lead_with_payments):
        row = await db.lead.find_first(select={"id": True, "title": False})

        assert set(row) == {"id"}

    @pytest.mark.asyncio
    async def test_omit_removes_fields(self, db, make_user):
        user = await make_user()

        row = await db.user.find_unique(where={"id": user["id"]}, omit={"password_hash": True})

        assert "password_hash" not in row
        assert row["email"] == user["email"]

    @pytest.mark.asyncio
    async def test_projection_on_write(self, db, make_contact):
        contact = await make_contact()

        row = await db.lead.create(
            data={"client_budget": 50, "contact_id": contact["id"]},
            select={"id": True, "status": True},
        )

        assert set(row) == {"id", "status"}

    @pytest.mark.asyncio
    async def test_unknown_select_field(self, db):
        with pytest.raises(ValidationError):
            await db.lead.find_many(select={"budget": True})


# ============================================================================
# TEST: Relations
# ============================================================================

class TestRelations:

    @pytest.mark.asyncio
    async def test_include_to_many_and_to_one(self, db, lead_with_payments):
        row = await db.lead.find_unique(
            where={"id": lead_with_payments["id"]},
            include={"payments": True, "contact": True, "source": True},
        )

        assert [p["amount"] for p in row["payments"]] == [300, 100, 200, 400]
        assert row["contact"]["id"] == lead_with_payments["contact_id"]
        assert row["source"] is None

    @pytest.mark.asyncio
    async def test_nested_relation_arguments(self, db, lead_with_payments):
        row = await db.lead.find_unique(
            where={"id": lead_with_payments["id"]},
            include={
                "payments": {
                    "where": {"amount": {"gte": 200}},
                    "order_by": {"date": "desc"},
                    "take": 2,
                    "select": {"amount": True},
                },
            },
        )

        assert row["payments"] == [{"amount": 400}, {"amount": 300}]

    @pytest.mark.asyncio
    async def test_nested_take_applies_per_parent(self, db, make_lead):
        leads = [await make_lead() for _ in range(2)]
        for lead in leads:
            for amount in (1, 2, 3):
                await db.payment.create(data={"amount": amount, "date": datetime(2026, 1, 1), "lead_id": lead["id"]})

        rows = await db.lead.find_many(include={"payments": {"take": -1}})

        assert [[p["amount"] for p in row["payments"]] for row in rows] == [[3], [3]]

    @pytest.mark.asyncio
    async def test_select_with_relation(self, db, lead_with_payments):
        row = await db.lead.find_first(select={"title": True, "contact": {"select": {"first_name": True}}})

        assert set(row) == {"title", "contact"}
        assert set(row["contact"]) == {"first_name"}

    @pytest.mark.asyncio
    async def test_deep_nesting(self, db, lead_with_payments):
        contact = await db.contact.find_unique(
            where={"id": lead_with_payments["contact_id"]},
            include={"leads": {"include": {"payments": {"take": 1}}}},
        )

        assert contact["leads"][0]["id"] == lead_with_payments["id"]
        assert len(contact["leads"][0]["payments"]) == 1

    @pytest.mark.asyncio
    async def test_empty_to_many(self, db, make_lead):
        lead = await make_lead()

        row = await db.lead.find_unique(where={"id": lead["id"]}, include={"payments": True})

        assert row["payments"] == []

    @pytest.mark.asyncio
    async def test_unknown_relation(self, db):
        with pytest.raises(ValidationError):
            await db.lead.find_many(include={"invoices": True})

    @pytest.mark.asyncio
    async def test_scalar_in_include_rejected(self, db):
        with pytest.raises(ValidationError):
            await db.lead.find_many(include={"title": True})

    @pytest.mark.asyncio
    async def test_take_on_to_one_rejected(self, db):
        with pytest.raises(ValidationError):
            await db.lead.find_many(include={"contact": {"take": 1}})


# ============================================================================
# TEST: Relation Counts
# ============================================================================

class TestRelationCounts:

    @pytest.mark.asyncio
    async def test_count_all_to_many(self, db, lead_with_payments):
        row = await db.lead.find_unique(where={"id": lead_with_payments["id"]}, include={"_count": True})

        assert row["_count"]["payments"] == 4
        assert row["_count"]["activities"] == 0

    @pytest.mark.asyncio
    async def test_count_with_filter(self, db, lead_with_payments):
        row = await db.lead.find_unique(
            where={"id": lead_with_payments["id"]},
            select={"id": True, "_count": {"select": {"payments": {"where": {"amount": {"lt": 250}}}}}},
        )

        assert row == {"id": lead_with_payments["id"], "_count": {"payments": 2}}

    @pytest.mark.asyncio
    async def test_count_on_to_one_rejected(self, db):
        with pytest.raises(ValidationError):
            await db.lead.find_many(include={"_count": {"select": {"contact": True}}})
