"""
Sort specifications.

``order_by`` accepts a dict or a list of dicts, applied in order:

    {"created_at": "desc"}
    [{"event_date": {"sort": "asc", "nulls": "last"}}, {"id": "asc"}]
    {"payments": {"_count": "desc"}}          # to-many relation count
    {"contact": {"first_name": "asc"}}        # field of a to-one relation

Nullable columns always get an explicit NULLS FIRST/LAST so every backend
sorts the same way (asc puts nulls last, desc puts them first, unless
overridden). The primary key is appended as a final tiebreaker.
"""
from dataclasses import dataclass, replace
from typing import Any, List, Optional

from sqlalchemy import func, select

from leadstore.exceptions import ValidationError
from leadstore.query.registry import ModelSchema, get_schema

DIRECTIONS = ("asc", "desc")
NULLS = ("first", "last")


@dataclass(frozen=True)
class OrderTerm:
    """One resolved ORDER BY element."""
    key: str
    expr: Any
    descending: bool = False
    nullable: bool = False
    nulls: Optional[str] = None

    def clause(self):
        clause = self.expr.desc() if self.descending else self.expr.asc()
        if self.nulls == "first":
            clause = clause.nulls_first()
        elif self.nulls == "last":
            clause = clause.nulls_last()
        return clause

    def reversed(self) -> "OrderTerm":
        nulls = None
        if self.nulls is not None:
            nulls = "last" if self.nulls == "first" else "first"
        return replace(self, descending=not self.descending, nulls=nulls)


def as_items(schema: ModelSchema, order_by: Any) -> List[tuple]:
    if order_by is None:
        return []
    if isinstance(order_by, dict):
        order_by = [order_by]
    if not isinstance(order_by, (list, tuple)):
        raise ValidationError(
            "'order_by' must be an object or a list of objects",
            model=schema.model_name,
        )
    items = []
    for entry in order_by:
        if not isinstance(entry, dict):
            raise ValidationError(
                f"'order_by' entries must be objects, got {entry!r}",
                model=schema.model_name,
            )
        items.extend(entry.items())
    return items


def parse_direction(schema: ModelSchema, key: str, value: Any, nullable: bool):
    """
    Parse ``"asc"`` / ``{"sort": "desc", "nulls": "first"}``.

    Returns:
        (descending, nulls) with nulls defaulted for nullable expressions
    """
    nulls = None
    if isinstance(value, dict):
        if set(value) - {"sort", "nulls"} or "sort" not in value:
            raise ValidationError(
                f"Sort spec for '{key}' expects 'sort' and optional 'nulls'",
                model=schema.model_name,
                field=key,
            )
        nulls = value.get("nulls")
        value = value["sort"]
        if nulls is not None:
            if nulls not in NULLS:
                raise ValidationError(
                    f"'nulls' must be one of {NULLS}",
                    model=schema.model_name,
                    field=key,
                )
            if not nullable:
                raise ValidationError(
                    f"'nulls' is only allowed on nullable fields, '{key}' is required",
                    model=schema.model_name,
                    field=key,
                )
    if value not in DIRECTIONS:
        raise ValidationError(
            f"Sort direction for '{key}' must be 'asc' or 'desc', got {value!r}",
            model=schema.model_name,
            field=key,
        )
    descending = value == "desc"
    if nullable and nulls is None:
        nulls = "first" if descending else "last"
    return descending, nulls


def _relation_term(schema: ModelSchema, key: str, value: Any) -> OrderTerm:
    relation = schema.relation(key)
    target = get_schema(relation.target)
    local, remote = relation.pairs[0]

    if not isinstance(value, dict) or len(value) != 1:
        raise ValidationError(
            f"Relation ordering on '{key}' expects exactly one key",
            model=schema.model_name,
            field=key,
        )
    (inner_key, inner_value), = value.items()

    if relation.to_many:
        if inner_key != "_count":
            raise ValidationError(
                f"To-many relation '{key}' can only be ordered by '_count'",
                model=schema.model_name,
                field=key,
            )
        expr = (
            select(func.count())
            .select_from(target.model)
            .where(target.column(remote) == schema.column(local))
            .correlate(schema.model)
            .scalar_subquery()
        )
        descending, nulls = parse_direction(schema, key, inner_value, nullable=False)
        return OrderTerm(key=f"{key}._count", expr=expr, descending=descending)

    field = target.field(inner_key)
    expr = (
        select(target.column(field.name))
        .where(target.column(remote) == schema.column(local))
        .correlate(schema.model)
        .scalar_subquery()
    )
    nullable = field.nullable or not relation.required
    descending, nulls = parse_direction(schema, key, inner_value, nullable=nullable)
    return OrderTerm(
        key=f"{key}.{field.name}", expr=expr, descending=descending, nullable=nullable, nulls=nulls
    )


def build_order(schema: ModelSchema, order_by: Any, tiebreak: bool = True) -> List[OrderTerm]:
    """
    Resolve an ``order_by`` spec into order terms.

    Args:
        schema: Model being sorted
        order_by: Sort spec (dict, list of dicts or None)
        tiebreak: Append the primary key if it is not already sorted on

    Returns:
        List of OrderTerm in priority order
    """
    terms = []
    for key, value in as_items(schema, order_by):
        if key in schema.fields:
            field = schema.fields[key]
            descending, nulls = parse_direction(schema, key, value, field.nullable)
            terms.append(OrderTerm(
                key=key,
                expr=schema.column(key),
                descending=descending,
                nullable=field.nullable,
                nulls=nulls,
            ))
        elif key in schema.relations:
            terms.append(_relation_term(schema, key, value))
        else:
            raise ValidationError(
                f"Cannot order {schema.model_name} by unknown field '{key}'",
                model=schema.model_name,
                field=key,
            )

    if tiebreak and not any(term.key == schema.primary_key for term in terms):
        terms.append(OrderTerm(key=schema.primary_key, expr=schema.pk_column))
    return terms
