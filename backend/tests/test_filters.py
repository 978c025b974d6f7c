# tests/test_filters.py
"""
Filter DSL: scalar operators, logical combinators, relation filters, JSON
filters and a randomized comparison against an in-memory evaluator that
follows SQL three-valued logic.

Run with: pytest backend/tests/test_filters.py -v
"""

import random
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from leadstore.exceptions import ValidationError


async def _ids(delegate, where, **kwargs):
    return [row["id"] for row in await delegate.find_many(where=where, **kwargs)]


# ============================================================================
# FIXTURES
# ============================================================================

@pytest_asyncio.fixture
async def leads(db, make_contact):
    """Five leads with a mix of NULL and non-NULL values."""
    contact = await make_contact()
    rows = [
        {"title": "Wedding at Lake", "guests": 200, "status": "New", "venue": "Lake View"},
        {"title": "wedding reception", "guests": None, "status": "Booked", "venue": None},
        {"title": "Corporate Offsite", "guests": 50, "status": "Lost", "venue": "Hilltop"},
        {"title": "Birthday 100%", "guests": 30, "status": "New", "venue": None},
        {"title": None, "guests": 120, "status": "Contacted", "venue": "Lake View"},
    ]
    created = []
    for index, row in enumerate(rows):
        created.append(await db.lead.create(data={
            **row,
            "contact_id": contact["id"],
            "client_budget": 1000.0 * (index + 1),
            "event_date": datetime(2026, 1, index + 1),
        }))
    return created


# ============================================================================
# TEST: Scalar Operators
# ============================================================================

class TestScalarFilters:

    @pytest.mark.asyncio
    async def test_equals_shorthand(self, db, leads):
        assert await _ids(db.lead, {"status": "New"}) == [leads[0]["id"], leads[3]["id"]]

    @pytest.mark.asyncio
    async def test_null_equality(self, db, leads):
        assert await _ids(db.lead, {"guests": None}) == [leads[1]["id"]]
        assert await _ids(db.lead, {"venue": {"not": None}}) == [leads[0]["id"], leads[2]["id"], leads[4]["id"]]

    @pytest.mark.asyncio
    async def test_numeric_ranges(self, db, leads):
        assert await _ids(db.lead, {"guests": {"gte": 50, "lt": 200}}) == [leads[2]["id"], leads[4]["id"]]
        assert await _ids(db.lead, {"client_budget": {"gt": 3500.0}}) == [leads[3]["id"], leads[4]["id"]]

    @pytest.mark.asyncio
    async def test_not_skips_nulls(self, db, leads):
        # SQL semantics: NULL != 200 is unknown, so the NULL row is not returned
        ids = await _ids(db.lead, {"guests": {"not": 200}})
        assert leads[1]["id"] not in ids
        assert ids == [leads[2]["id"], leads[3]["id"], leads[4]["id"]]

    @pytest.mark.asyncio
    async def test_in_and_not_in(self, db, leads):
        assert await _ids(db.lead, {"status": {"in": ["Booked", "Lost"]}}) == [leads[1]["id"], leads[2]["id"]]
        assert await _ids(db.lead, {"guests": {"not_in": [30, 50]}}) == [leads[0]["id"], leads[4]["id"]]

    @pytest.mark.asyncio
    async def test_string_matching(self, db, leads):
        assert await _ids(db.lead, {"title": {"contains": "edding"}}) == [leads[0]["id"], leads[1]["id"]]
        assert await _ids(db.lead, {"title": {"starts_with": "Wedding"}}) == [leads[0]["id"]]
        assert await _ids(db.lead, {"title": {"ends_with": "100%"}}) == [leads[3]["id"]]

    @pytest.mark.asyncio
    async def test_case_insensitive_mode(self, db, leads):
        ids = await _ids(db.lead, {"title": {"starts_with": "WEDDING", "mode": "insensitive"}})
        assert ids == [leads[0]["id"], leads[1]["id"]]

        ids = await _ids(db.lead, {"status": {"equals": "new", "mode": "insensitive"}})
        assert ids == [leads[0]["id"], leads[3]["id"]]

        ids = await _ids(db.lead, {"title": {"not": "WEDDING AT LAKE", "mode": "insensitive"}})
        assert ids == [leads[1]["id"], leads[2]["id"], leads[3]["id"]]

        ids = await _ids(db.lead, {"title": {"not": "wedding at lake"}})
        assert ids == [leads[0]["id"], leads[1]["id"], leads[2]["id"], leads[3]["id"]]

    @pytest.mark.asyncio
    async def test_like_wildcards_are_literal(self, db, leads):
        assert await _ids(db.lead, {"title": {"contains": "%"}}) == [leads[3]["id"]]
        assert await _ids(db.lead, {"title": {"contains": "_"}}) == []

    @pytest.mark.asyncio
    async def test_datetime_filters(self, db, leads):
        ids = await _ids(db.lead, {"event_date": {"gte": datetime(2026, 1, 4)}})
        assert ids == [leads[3]["id"], leads[4]["id"]]

        ids = await _ids(db.lead, {"event_date": {"lt": "2026-01-02T00:00:00"}})
        assert ids == [leads[0]["id"]]

    @pytest.mark.asyncio
    async def test_offset_datetimes_compared_as_utc(self, db, leads):
        plus_five = timezone(timedelta(hours=5))

        ids = await _ids(db.lead, {"event_date": {"lt": datetime(2026, 1, 2, 5, 0, tzinfo=plus_five)}})
        assert ids == [leads[0]["id"]]

        ids = await _ids(db.lead, {"event_date": {"equals": "2026-01-03T05:00:00+05:00"}})
        assert ids == [leads[2]["id"]]

    @pytest.mark.asyncio
    async def test_boolean_and_enum(self, db, make_user):
        admin = await make_user(role="Admin")
        inactive = await make_user(is_active=False)

        assert await _ids(db.user, {"role": "Admin"}) == [admin["id"]]
        assert await _ids(db.user, {"is_active": False}) == [inactive["id"]]
        assert await _ids(db.user, {"role": {"in": ["Owner", "Finance"]}}) == []


# ============================================================================
# TEST: Logical Combinators
# ============================================================================

class TestLogicalFilters:

    @pytest.mark.asyncio
    async def test_or(self, db, leads):
        ids = await _ids(db.lead, {"OR": [{"status": "Lost"}, {"guests": {"gte": 200}}]})
        assert ids == [leads[0]["id"], leads[2]["id"]]

    @pytest.mark.asyncio
    async def test_empty_or_matches_nothing(self, db, leads):
        assert await _ids(db.lead, {"OR": []}) == []

    @pytest.mark.asyncio
    async def test_empty_and_matches_everything(self, db, leads):
        assert len(await _ids(db.lead, {"AND": []})) == 5

    @pytest.mark.asyncio
    async def test_not_list_means_neither(self, db, leads):
        ids = await _ids(db.lead, {"NOT": [{"status": "New"}, {"status": "Lost"}]})
        assert ids == [leads[1]["id"], leads[4]["id"]]

    @pytest.mark.asyncio
    async def test_nested(self, db, leads):
        where = {
            "AND": [
                {"OR": [{"venue": "Lake View"}, {"venue": None}]},
                {"NOT": {"title": None}},
            ]
        }
        assert await _ids(db.lead, where) == [leads[0]["id"], leads[1]["id"], leads[3]["id"]]


# ============================================================================
# TEST: Relation Filters
# ============================================================================

class TestRelationFilters:

    @pytest.mark.asyncio
    async def test_to_many_some_every_none(self, db, make_lead):
        paid = await make_lead()
        partly = await make_lead()
        unpaid = await make_lead()
        for amount in (5000, 7000):
            await db.payment.create(data={"amount": amount, "date": datetime(2026, 2, 1), "lead_id": paid["id"]})
        for amount in (100, 9000):
            await db.payment.create(data={"amount": amount, "date": datetime(2026, 2, 1), "lead_id": partly["id"]})

        big = {"amount": {"gte": 1000}}
        assert await _ids(db.lead, {"payments": {"some": big}}) == [paid["id"], partly["id"]]
        assert await _ids(db.lead, {"payments": {"every": big}}) == [paid["id"], unpaid["id"]]
        assert await _ids(db.lead, {"payments": {"none": big}}) == [unpaid["id"]]

    @pytest.mark.asyncio
    async def test_to_one_filters(self, db, make_lead, make_contact):
        asha = await make_contact(first_name="Asha")
        ravi = await make_contact(first_name="Ravi")
        web = await db.sources.create(data={"name": "Web"})
        first = await make_lead(contact_id=asha["id"], source_id=web["id"])
        second = await make_lead(contact_id=ravi["id"])

        assert await _ids(db.lead, {"contact": {"first_name": "Asha"}}) == [first["id"]]
        assert await _ids(db.lead, {"contact": {"is": {"first_name": "Ravi"}}}) == [second["id"]]
        assert await _ids(db.lead, {"contact": {"is_not": {"first_name": "Ravi"}}}) == [first["id"]]
        assert await _ids(db.lead, {"source": None}) == [second["id"]]
        assert await _ids(db.lead, {"source": {"is_not": None}}) == [first["id"]]

    @pytest.mark.asyncio
    async def test_required_relation_cannot_be_null(self, db):
        with pytest.raises(ValidationError):
            await db.lead.find_many(where={"contact": None})

    @pytest.mark.asyncio
    async def test_to_many_requires_quantifier(self, db):
        with pytest.raises(ValidationError):
            await db.lead.find_many(where={"payments": {"amount": 5}})


# ============================================================================
# TEST: JSON Filters
# ============================================================================

class TestJsonFilters:

    @pytest_asyncio.fixture
    async def settings_rows(self, db):
        await db.app_setting.create(data={"key": "a", "value": {"theme": "dark", "size": 3, "tags": ["x"]}})
        await db.app_setting.create(data={"key": "b", "value": {"theme": "light", "size": 5}})
        await db.app_setting.create(data={"key": "c", "value": "plain"})

    async def _keys(self, db, where):
        return [row["key"] for row in await db.app_setting.find_many(where=where)]

    @pytest.mark.asyncio
    async def test_path_equals(self, db, settings_rows):
        assert await self._keys(db, {"value": {"path": ["theme"], "equals": "dark"}}) == ["a"]
        assert await self._keys(db, {"value": {"path": ["size"], "equals": 5}}) == ["b"]

    @pytest.mark.asyncio
    async def test_path_string_matching(self, db, settings_rows):
        assert await self._keys(db, {"value": {"path": ["theme"], "string_starts_with": "li"}}) == ["b"]
        assert await self._keys(db, {"value": {"path": ["theme"], "string_contains": "ar"}}) == ["a"]

    @pytest.mark.asyncio
    async def test_whole_document_equals(self, db, settings_rows):
        assert await self._keys(db, {"value": {"equals": "plain"}}) == ["c"]

    @pytest.mark.asyncio
    async def test_json_type(self, db, settings_rows):
        assert await self._keys(db, {"value": {"type": "object"}}) == ["a", "b"]
        assert await self._keys(db, {"value": {"path": ["tags"], "type": "array"}}) == ["a"]

    @pytest.mark.asyncio
    async def test_string_matching_needs_path(self, db):
        with pytest.raises(ValidationError):
            await db.app_setting.find_many(where={"value": {"string_contains": "x"}})


# ============================================================================
# TEST: Randomized Oracle
# ============================================================================

def _and3(values):
    if any(v is False for v in values):
        return False
    if any(v is None for v in values):
        return None
    return True


def _or3(values):
    if any(v is True for v in values):
        return True
    if any(v is None for v in values):
        return None
    return False


def _not3(value):
    return None if value is None else not value


def _compare(op, actual, expected):
    if op == "equals":
        if expected is None:
            return actual is None
        return None if actual is None else actual == expected
    if actual is None:
        return None
    if op == "in":
        return actual in expected
    if op == "not_in":
        return actual not in expected
    if op == "lt":
        return actual < expected
    if op == "lte":
        return actual <= expected
    if op == "gt":
        return actual > expected
    if op == "gte":
        return actual >= expected
    raise AssertionError(op)


def _eval_field(spec, actual):
    if not isinstance(spec, dict):
        spec = {"equals": spec}
    results = []
    for op, value in spec.items():
        if op == "not":
            if value is None:
                results.append(actual is not None)
            elif isinstance(value, dict):
                results.append(_not3(_eval_field(value, actual)))
            else:
                results.append(None if actual is None else actual != value)
        else:
            results.append(_compare(op, actual, value))
    return _and3(results)


def _evaluate(where, row):
    results = []
    for key, value in where.items():
        items = [value] if isinstance(value, dict) else value
        if key == "AND":
            results.append(_and3([_evaluate(item, row) for item in items]))
        elif key == "OR":
            results.append(_or3([_evaluate(item, row) for item in items]))
        elif key == "NOT":
            results.append(_and3([_not3(_evaluate(item, row)) for item in items]))
        else:
            results.append(_eval_field(value, row[key]))
    return _and3(results)


GUEST_VALUES = [None, 10, 50, 120, 200]
STATUS_VALUES = ["New", "Booked", "Lost", "Contacted"]


def _random_leaf(rng):
    if rng.random() < 0.5:
        op = rng.choice(["equals", "lt", "lte", "gt", "gte", "in", "not_in", "not", "not_null", "is_null"])
        if op == "is_null":
            return {"guests": None}
        if op == "not_null":
            return {"guests": {"not": None}}
        if op in ("in", "not_in"):
            return {"guests": {op: rng.sample([10, 50, 120, 200], 2)}}
        if op == "not":
            return {"guests": {"not": {rng.choice(["gt", "lt"]): rng.choice([10, 50, 120])}}}
        return {"guests": {op: rng.choice([10, 50, 120, 200])}}
    op = rng.choice(["equals", "in", "not"])
    if op == "in":
        return {"status": {"in": rng.sample(STATUS_VALUES, 2)}}
    return {"status": {op: rng.choice(STATUS_VALUES)}}


def _random_where(rng, depth=0):
    if depth >= 2 or rng.random() < 0.4:
        return _random_leaf(rng)
    key = rng.choice(["AND", "OR", "NOT"])
    return {key: [_random_where(rng, depth + 1) for _ in range(rng.randint(1, 3))]}


class TestFilterOracle:

    @pytest.mark.asyncio
    async def test_random_filters_match_three_valued_logic(self, db, make_contact):
        rng = random.Random(20260118)
        contact = await make_contact()
        rows = []
        for guests in GUEST_VALUES:
            for status in STATUS_VALUES:
                lead = await db.lead.create(data={
                    "contact_id": contact["id"],
                    "client_budget": 1.0,
                    "guests": guests,
                    "status": status,
                })
                rows.append(lead)

        for _ in range(60):
            where = _random_where(rng)
            expected = [row["id"] for row in rows if _evaluate(where, row) is True]
            assert await _ids(db.lead, where) == expected, where
