# tests/test_aggregation.py
"""
count / aggregate / group_by.

Run with: pytest backend/tests/test_aggregation.py -v
"""

import pytest
import pytest_asyncio

from leadstore.exceptions import ValidationError


@pytest_asyncio.fixture
async def pipeline(db, make_contact):
    """Four leads: two New, one Booked (no guest count), one Lost."""
    contact = await make_contact()
    rows = [
        ("New", 1000.0, 10),
        ("New", 3000.0, 30),
        ("Booked", 5000.0, None),
        ("Lost", 2000.0, 20),
    ]
    return [
        await db.lead.create(data={
            "contact_id": contact["id"],
            "status": status,
            "client_budget": budget,
            "guests": guests,
        })
        for status, budget, guests in rows
    ]


# ============================================================================
# TEST: Count
# ============================================================================

class TestCount:

    @pytest.mark.asyncio
    async def test_count(self, db, pipeline):
        assert await db.lead.count() == 4
        assert await db.lead.count(where={"status": "New"}) == 2

    @pytest.mark.asyncio
    async def test_count_select_counts_non_null(self, db, pipeline):
        result = await db.lead.count(select={"_all": True, "guests": True})

        assert result == {"_all": 4, "guests": 3}

    @pytest.mark.asyncio
    async def test_count_respects_window(self, db, pipeline):
        assert await db.lead.count(take=2) == 2
        assert await db.lead.count(skip=3) == 1
        assert await db.lead.count(cursor={"id": pipeline[1]["id"]}) == 3

    @pytest.mark.asyncio
    async def test_count_empty_table(self, db):
        assert await db.payment.count() == 0


# ============================================================================
# TEST: Aggregate
# ============================================================================

class TestAggregate:

    @pytest.mark.asyncio
    async def test_all_aggregates(self, db, pipeline):
        result = await db.lead.aggregate(
            _count=True,
            _avg={"client_budget": True},
            _sum={"guests": True},
            _min={"client_budget": True},
            _max={"client_budget": True, "status": True},
        )

        assert result == {
            "_count": 4,
            "_avg": {"client_budget": 2750.0},
            "_sum": {"guests": 60},
            "_min": {"client_budget": 1000.0},
            "_max": {"client_budget": 5000.0, "status": "New"},
        }

    @pytest.mark.asyncio
    async def test_aggregate_over_window(self, db, pipeline):
        result = await db.lead.aggregate(
            order_by={"client_budget": "desc"},
            take=2,
            _sum={"client_budget": True},
        )

        assert result == {"_sum": {"client_budget": 8000.0}}

    @pytest.mark.asyncio
    async def test_aggregate_with_filter(self, db, pipeline):
        result = await db.lead.aggregate(where={"status": "New"}, _avg={"guests": True})

        assert result["_avg"]["guests"] == 20.0

    @pytest.mark.asyncio
    async def test_aggregate_empty_set(self, db, pipeline):
        result = await db.lead.aggregate(where={"status": "Contacted"}, _count=True, _sum={"client_budget": True})

        assert result == {"_count": 0, "_sum": {"client_budget": None}}

    @pytest.mark.asyncio
    async def test_aggregate_missing_cursor(self, db, pipeline):
        result = await db.lead.aggregate(cursor={"id": 9999}, _count=True)

        assert result == {"_count": 0}

    @pytest.mark.asyncio
    async def test_avg_on_string_rejected(self, db):
        with pytest.raises(ValidationError) as exc_info:
            await db.lead.aggregate(_avg={"title": True})

        assert exc_info.value.field == "title"

    @pytest.mark.asyncio
    async def test_min_on_json_rejected(self, db):
        with pytest.raises(ValidationError):
            await db.app_setting.aggregate(_min={"value": True})


# ============================================================================
# TEST: Group By
# ============================================================================

class TestGroupBy:

    @pytest.mark.asyncio
    async def test_group_by_status(self, db, pipeline):
        groups = await db.lead.group_by(
            by=["status"],
            order_by={"status": "asc"},
            _count=True,
            _sum={"client_budget": True},
        )

        assert groups == [
            {"status": "Booked", "_count": 1, "_sum": {"client_budget": 5000.0}},
            {"status": "Lost", "_count": 1, "_sum": {"client_budget": 2000.0}},
            {"status": "New", "_count": 2, "_sum": {"client_budget": 4000.0}},
        ]

    @pytest.mark.asyncio
    async def test_having_on_aggregate(self, db, pipeline):
        groups = await db.lead.group_by(
            by=["status"],
            having={"client_budget": {"_sum": {"gt": 2500}}},
            order_by={"status": "asc"},
        )

        assert [group["status"] for group in groups] == ["Booked", "New"]

    @pytest.mark.asyncio
    async def test_having_on_group_key(self, db, pipeline):
        groups = await db.lead.group_by(by=["status"], having={"status": {"in": ["New", "Lost"]}}, _count=True)

        assert {group["status"]: group["_count"] for group in groups} == {"New": 2, "Lost": 1}

    @pytest.mark.asyncio
    async def test_order_by_aggregate_with_take(self, db, pipeline):
        groups = await db.lead.group_by(
            by=["status"],
            order_by={"_sum": {"client_budget": "desc"}},
            take=2,
        )

        assert [group["status"] for group in groups] == ["Booked", "New"]

    @pytest.mark.asyncio
    async def test_having_field_not_in_by(self, db):
        with pytest.raises(ValidationError) as exc_info:
            await db.lead.group_by(by=["status"], having={"guests": {"gt": 1}})

        assert exc_info.value.field == "guests"

    @pytest.mark.asyncio
    async def test_order_field_not_in_by(self, db):
        with pytest.raises(ValidationError) as exc_info:
            await db.lead.group_by(by=["status"], order_by={"guests": "asc"})

        assert exc_info.value.field == "guests"

    @pytest.mark.asyncio
    async def test_take_requires_order(self, db):
        with pytest.raises(ValidationError) as exc_info:
            await db.lead.group_by(by=["status"], take=1)

        assert exc_info.value.field == "take"

    @pytest.mark.asyncio
    async def test_empty_by_rejected(self, db):
        with pytest.raises(ValidationError):
            await db.lead.group_by(by=[])

    @pytest.mark.asyncio
    async def test_group_by_json_rejected(self, db):
        with pytest.raises(ValidationError):
            await db.app_setting.group_by(by=["value"])
