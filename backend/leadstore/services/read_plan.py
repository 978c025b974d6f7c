"""
Validated read plan shared by the finders and the aggregation engine.

A plan is built (and fully validated) before any SQL runs; the cursor row is
resolved at execution time inside the caller's session.
"""
from typing import Any, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leadstore.query.filters import WhereCompiler, validate_unique_where
from leadstore.query.ordering import build_order
from leadstore.query.pagination import (
    apply_distinct, at_or_after, parse_distinct, parse_window, slice_window
)
from leadstore.query.registry import ModelSchema


class ReadPlan:
    """where + order_by + cursor + take/skip + distinct for one model."""

    def __init__(
        self,
        schema: ModelSchema,
        compiler: WhereCompiler,
        where: Optional[dict] = None,
        order_by: Any = None,
        cursor: Optional[dict] = None,
        take: Optional[int] = None,
        skip: Optional[int] = None,
        distinct: Any = None,
    ):
        self.schema = schema
        self.compiler = compiler
        self.condition = compiler.compile(schema, where)
        self.terms = build_order(schema, order_by)
        self.window = parse_window(schema, take, skip)
        self.distinct = parse_distinct(schema, distinct)
        self.cursor = None
        if cursor is not None:
            self.cursor = compiler.compile(schema, validate_unique_where(schema, cursor))

    @property
    def read_terms(self):
        """Order terms in the direction rows are read from the database."""
        if self.window.backwards:
            return [term.reversed() for term in self.terms]
        return list(self.terms)

    async def _cursor_predicate(self, session: AsyncSession, terms):
        stmt = (
            select(*[term.expr for term in terms])
            .select_from(self.schema.model)
            .where(self.cursor)
        )
        row = (await session.execute(stmt)).first()
        if row is None:
            return None
        return at_or_after(terms, list(row))

    async def statement(self, session: AsyncSession, columns=None, paginate: bool = True):
        """
        Build the ordered, windowed SELECT.

        Args:
            session: Session used to resolve the cursor row
            columns: Columns to select instead of the entity
            paginate: Apply skip/take in SQL

        Returns:
            The statement, or None when the cursor row does not exist
        """
        terms = self.read_terms
        if columns is None:
            stmt = select(self.schema.model)
        else:
            stmt = select(*columns).select_from(self.schema.model)
        stmt = stmt.where(self.condition)

        if self.cursor is not None:
            predicate = await self._cursor_predicate(session, terms)
            if predicate is None:
                return None
            stmt = stmt.where(predicate)

        stmt = stmt.order_by(*[term.clause() for term in terms])
        if paginate:
            if self.window.skip:
                stmt = stmt.offset(self.window.skip)
            if self.window.limit is not None:
                stmt = stmt.limit(self.window.limit)
        return stmt

    async def fetch(self, session: AsyncSession) -> List[Any]:
        """Run the plan and return ORM instances in forward order."""
        paginate = not self.distinct
        stmt = await self.statement(session, paginate=paginate)
        if stmt is None:
            return []
        result = await session.execute(stmt.execution_options(populate_existing=True))
        rows = list(result.scalars().all())

        if paginate:
            if self.window.backwards:
                rows.reverse()
            return rows

        # distinct keeps the first row per key in forward order
        if self.window.backwards:
            rows = list(reversed(apply_distinct(list(reversed(rows)), self.distinct)))
        else:
            rows = apply_distinct(rows, self.distinct)
        return slice_window(rows, self.window)
