"""
Cursor, take/skip and distinct handling.

Semantics:
- The cursor row itself is part of the window; ``skip=1`` drops it.
- A negative ``take`` reads backwards from the cursor (or from the end) and
  the rows come back in forward order.
- ``distinct`` keeps the first row per key in the requested order and is
  applied before skip/take.
"""
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Sequence

from sqlalchemy import and_, false, or_, true

from leadstore.exceptions import ValidationError
from leadstore.query import registry
from leadstore.query.ordering import OrderTerm
from leadstore.query.registry import ModelSchema


@dataclass(frozen=True)
class Window:
    take: Optional[int] = None
    skip: int = 0

    @property
    def backwards(self) -> bool:
        return self.take is not None and self.take < 0

    @property
    def limit(self) -> Optional[int]:
        return None if self.take is None else abs(self.take)


def parse_window(schema: ModelSchema, take: Any = None, skip: Any = None) -> Window:
    if take is not None and (isinstance(take, bool) or not isinstance(take, int)):
        raise ValidationError(f"'take' must be an integer, got {take!r}", model=schema.model_name)
    if skip is None:
        skip = 0
    if isinstance(skip, bool) or not isinstance(skip, int) or skip < 0:
        raise ValidationError(f"'skip' must be a non-negative integer, got {skip!r}", model=schema.model_name)
    return Window(take=take, skip=skip)


def parse_distinct(schema: ModelSchema, distinct: Any) -> Optional[List[str]]:
    if distinct is None:
        return None
    if isinstance(distinct, str):
        distinct = [distinct]
    if not isinstance(distinct, (list, tuple)) or not distinct:
        raise ValidationError("'distinct' must be a non-empty list of fields", model=schema.model_name)
    for name in distinct:
        if schema.field(name).kind == registry.JSON_KIND:
            raise ValidationError(
                f"JSON field '{name}' cannot be used in 'distinct'",
                model=schema.model_name,
                field=name,
            )
    return list(distinct)


def _strictly_after(term: OrderTerm, value):
    if value is None:
        # NULL sorts last: nothing comes after it; NULL sorts first: every non-NULL does
        return term.expr.is_not(None) if term.nulls == "first" else false()
    comparison = term.expr < value if term.descending else term.expr > value
    if term.nullable and term.nulls == "last":
        return or_(comparison, term.expr.is_(None))
    return comparison


def _equal(term: OrderTerm, value):
    return term.expr.is_(None) if value is None else term.expr == value


def at_or_after(terms: Sequence[OrderTerm], values: Sequence[Any]):
    """
    Keyset predicate: rows positioned at or after the cursor row under the
    given ordering (lexicographic over the order terms).
    """
    disjuncts = []
    prefix = []
    for term, value in zip(terms, values):
        disjuncts.append(and_(true(), *prefix, _strictly_after(term, value)))
        prefix.append(_equal(term, value))
    disjuncts.append(and_(true(), *prefix))
    return or_(*disjuncts)


def apply_distinct(rows: Iterable[Any], fields: List[str]) -> List[Any]:
    seen = set()
    kept = []
    for row in rows:
        key = tuple(getattr(row, name) for name in fields)
        if key in seen:
            continue
        seen.add(key)
        kept.append(row)
    return kept


def slice_window(rows: List[Any], window: Window) -> List[Any]:
    """
    Apply skip/take in memory. ``rows`` must already be in read order
    (reversed for a backwards window); the result is in forward order.
    """
    rows = rows[window.skip:]
    if window.limit is not None:
        rows = rows[:window.limit]
    if window.backwards:
        rows = list(reversed(rows))
    return rows
