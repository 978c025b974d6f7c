"""
Relation loading for include/select projections.

Each relation level is fetched with one ``IN`` query per relation (no joins,
no lazy loads), grouped per parent in Python, then recursed into with the
relation's own projection. ``_count`` is one grouped COUNT per relation.
"""
import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from leadstore.query.filters import WhereCompiler
from leadstore.query.ordering import build_order
from leadstore.query.pagination import apply_distinct, parse_distinct, parse_window, slice_window
from leadstore.query.projection import Projection, RelationLoad, serialize
from leadstore.query.registry import ModelSchema, get_schema

logger = logging.getLogger(__name__)


class RelationLoader:
    """Turn ORM instances into projected dicts, loading relations on the way."""

    def __init__(self, session: AsyncSession, dialect_name: str):
        self.session = session
        self.compiler = WhereCompiler(dialect_name)

    async def load(self, schema: ModelSchema, instances: List[Any], projection: Projection) -> List[Dict[str, Any]]:
        """
        Serialize instances under a projection.

        Args:
            schema: Schema of the instances
            instances: ORM instances, all of the same model
            projection: Parsed projection

        Returns:
            One dict per instance, in the same order
        """
        records = [serialize(instance, schema, projection) for instance in instances]
        if not instances:
            return records

        for name, relation_load in projection.relations.items():
            await self._load_relation(schema, instances, records, name, relation_load)

        if projection.counts:
            await self._load_counts(schema, instances, records, projection.counts)

        return records

    async def _fetch(self, stmt) -> List[Any]:
        result = await self.session.execute(stmt.execution_options(populate_existing=True))
        return list(result.scalars().all())

    async def _load_relation(
        self,
        schema: ModelSchema,
        instances: List[Any],
        records: List[Dict[str, Any]],
        name: str,
        relation_load: RelationLoad,
    ):
        relation = relation_load.relation
        target = get_schema(relation.target)
        local, remote = relation.pairs[0]

        keys = {getattr(instance, local) for instance in instances}
        keys.discard(None)

        if not keys:
            for record in records:
                record[name] = [] if relation.to_many else None
            return

        stmt = select(target.model).where(target.column(remote).in_(keys))

        if not relation.to_many:
            children = await self._fetch(stmt)
            child_records = await self.load(target, children, relation_load.projection)
            by_key = {getattr(child, remote): record for child, record in zip(children, child_records)}
            for instance, record in zip(instances, records):
                record[name] = by_key.get(getattr(instance, local))
            return

        args = relation_load.args
        window = parse_window(target, args.take, args.skip)
        distinct = parse_distinct(target, list(args.distinct) if args.distinct else None)
        terms = build_order(target, args.order_by)

        stmt = stmt.where(self.compiler.compile(target, args.where))
        stmt = stmt.order_by(*[term.clause() for term in terms])
        children = await self._fetch(stmt)
        logger.debug(f"Loaded {len(children)} {target.model_name} row(s) for '{name}'")

        grouped = defaultdict(list)
        for child in children:
            grouped[getattr(child, remote)].append(child)

        kept_per_parent = {}
        for key, rows in grouped.items():
            if distinct:
                rows = apply_distinct(rows, distinct)
            if window.backwards:
                rows = list(reversed(rows))
            kept_per_parent[key] = slice_window(rows, window)

        kept = [child for rows in kept_per_parent.values() for child in rows]
        kept_records = await self.load(target, kept, relation_load.projection)
        by_identity = {id(child): record for child, record in zip(kept, kept_records)}

        for instance, record in zip(instances, records):
            rows = kept_per_parent.get(getattr(instance, local), [])
            record[name] = [by_identity[id(child)] for child in rows]

    async def _load_counts(
        self,
        schema: ModelSchema,
        instances: List[Any],
        records: List[Dict[str, Any]],
        counts: Dict[str, Optional[Dict[str, Any]]],
    ):
        for record in records:
            record["_count"] = {}

        for name, where in counts.items():
            relation = schema.relation(name)
            target = get_schema(relation.target)
            local, remote = relation.pairs[0]
            keys = {getattr(instance, local) for instance in instances}
            keys.discard(None)

            totals = {}
            if keys:
                remote_column = target.column(remote)
                stmt = (
                    select(remote_column, func.count())
                    .where(remote_column.in_(keys))
                    .where(self.compiler.compile(target, where))
                    .group_by(remote_column)
                )
                result = await self.session.execute(stmt)
                totals = {key: count for key, count in result.all()}

            for instance, record in zip(instances, records):
                record["_count"][name] = totals.get(getattr(instance, local), 0)
