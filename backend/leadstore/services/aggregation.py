"""
Aggregation engine: count, aggregate and group_by.

count/aggregate run over the windowed row set described by a ReadPlan
(where + order_by + cursor + take/skip) wrapped in a subquery. group_by is
validated completely before any SQL is built:

- ``by`` must be a non-empty list of scalar fields
- every ``having`` field must be in ``by`` unless it is filtered through an
  aggregate (``{"client_budget": {"_avg": {"gt": 1000}}}``)
- ordering on a plain field requires that field in ``by``; ordering on an
  aggregate is always allowed
- ``take``/``skip`` require ``order_by``
"""
import logging
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple, Union

from sqlalchemy import and_, false, func, not_, or_, select, true

from leadstore.exceptions import ValidationError
from leadstore.query import registry
from leadstore.query.filters import LOGICAL_KEYS, WhereCompiler, get_filter
from leadstore.query.ordering import OrderTerm, as_items, parse_direction
from leadstore.query.pagination import Window, parse_window
from leadstore.query.registry import ModelSchema

logger = logging.getLogger(__name__)

AGGREGATE_OPS = ("_count", "_avg", "_sum", "_min", "_max")

AGGREGATE_FUNCS = {
    "_avg": func.avg,
    "_sum": func.sum,
    "_min": func.min,
    "_max": func.max,
}


@dataclass
class AggregateSpec:
    # True: plain row count; list: per-field non-null counts ("_all" counts rows)
    count: Union[bool, List[str], None] = None
    fields: Dict[str, List[str]] = field(default_factory=dict)

    def __bool__(self):
        return bool(self.count) or any(self.fields.values())


@dataclass
class GroupByQuery:
    by: List[str]
    condition: Any
    having: Any
    order: List[OrderTerm]
    window: Window
    spec: AggregateSpec


class AggregationEngine:
    """Validate and run aggregate queries for one model."""

    def __init__(self, schema: ModelSchema, compiler: WhereCompiler):
        self.schema = schema
        self.compiler = compiler

    def _error(self, message: str, field_name: Optional[str] = None) -> ValidationError:
        return ValidationError(message, model=self.schema.model_name, field=field_name)

    # ========================================================================
    # PARSING
    # ========================================================================

    def _check_field_for(self, op: str, name: str) -> registry.FieldInfo:
        info = self.schema.field(name)
        if op in ("_avg", "_sum") and not info.numeric:
            raise self._error(
                f"'{op}' requires a numeric field, '{name}' is {info.kind}",
                name,
            )
        if op in ("_min", "_max") and info.kind == registry.JSON_KIND:
            raise self._error(f"'{op}' is not supported on JSON field '{name}'", name)
        return info

    def _field_list(self, op: str, value: Any) -> List[str]:
        if value is None or value is False:
            return []
        if not isinstance(value, dict):
            raise self._error(f"'{op}' expects an object of field: true")
        names = []
        for name, flag in value.items():
            if not isinstance(flag, bool):
                raise self._error(f"'{op}.{name}' must be a boolean", name)
            if not flag:
                continue
            if op == "_count" and name == "_all":
                names.append(name)
                continue
            self._check_field_for(op, name)
            names.append(name)
        return names

    def parse_count_select(self, select_spec: Any) -> Optional[List[str]]:
        """``count(select=...)``: None for a plain count, else the fields to count."""
        if select_spec is None:
            return None
        if select_spec is True:
            return ["_all"]
        return self._field_list("_count", select_spec)

    def parse_aggregates(self, _count=None, _avg=None, _sum=None, _min=None, _max=None) -> AggregateSpec:
        spec = AggregateSpec()
        if _count is True:
            spec.count = True
        elif _count not in (None, False):
            spec.count = self._field_list("_count", _count)
        for op, value in (("_avg", _avg), ("_sum", _sum), ("_min", _min), ("_max", _max)):
            names = self._field_list(op, value)
            if names:
                spec.fields[op] = names
        return spec

    def _parse_by(self, by: Any) -> List[str]:
        if isinstance(by, str):
            by = [by]
        if not isinstance(by, (list, tuple)) or not by:
            raise self._error("'by' must be a non-empty list of fields", "by")
        for name in by:
            if not isinstance(name, str) or name not in self.schema.fields:
                raise self._error(f"'by' only accepts scalar fields, got {name!r}", str(name))
            if self.schema.fields[name].kind == registry.JSON_KIND:
                raise self._error(f"JSON field '{name}' cannot be grouped by", name)
        return list(by)

    @staticmethod
    def _is_aggregate_filter(value: Any) -> bool:
        return isinstance(value, dict) and bool(value) and all(key in AGGREGATE_OPS for key in value)

    def _aggregate_expr(self, op: str, name: str):
        if op == "_count":
            return func.count() if name == "_all" else func.count(self.schema.column(name))
        self._check_field_for(op, name)
        return AGGREGATE_FUNCS[op](self.schema.column(name))

    def _compile_having(self, having: Any, by: List[str]):
        if having is None:
            return None
        if not isinstance(having, dict):
            raise self._error("'having' must be an object", "having")

        clauses = []
        for key, value in having.items():
            if key in LOGICAL_KEYS:
                items = [value] if isinstance(value, dict) else value
                if not isinstance(items, (list, tuple)):
                    raise self._error(f"'{key}' expects an object or a list of objects", key)
                parts = [self._compile_having(item, by) for item in items]
                parts = [true() if part is None else part for part in parts]
                if key == "AND":
                    clauses.append(and_(true(), *parts))
                elif key == "OR":
                    clauses.append(or_(false(), *parts))
                else:
                    clauses.append(and_(true(), *[not_(part) for part in parts]))
                continue

            info = self.schema.field(key)
            if self._is_aggregate_filter(value):
                for op, condition in value.items():
                    expr = self._aggregate_expr(op, key)
                    if op == "_count":
                        target = replace(info, kind=registry.INT, nullable=False, python_enum=None)
                    elif op == "_avg":
                        target = replace(info, kind=registry.FLOAT, nullable=True)
                    else:
                        target = replace(info, nullable=True)
                    flt = get_filter(target, self.schema.model_name, self.compiler.dialect_name)
                    clauses.append(flt.compile(expr, condition))
                continue

            if key not in by:
                raise self._error(
                    f"Field '{key}' used in 'having' must be in 'by' or filtered through an aggregate",
                    key,
                )
            flt = get_filter(info, self.schema.model_name, self.compiler.dialect_name)
            clauses.append(flt.compile(self.schema.column(key), value))

        if not clauses:
            return None
        return and_(*clauses) if len(clauses) > 1 else clauses[0]

    def _group_order(self, order_by: Any, by: List[str]) -> List[OrderTerm]:
        terms = []
        for key, value in as_items(self.schema, order_by):
            if key in AGGREGATE_OPS:
                if not isinstance(value, dict) or not value:
                    raise self._error(f"Ordering by '{key}' expects {{field: direction}}", key)
                for name, direction in value.items():
                    expr = self._aggregate_expr(key, name)
                    nullable = key != "_count" and self.schema.field(name).nullable
                    descending, nulls = parse_direction(self.schema, name, direction, nullable)
                    terms.append(OrderTerm(
                        key=f"{key}.{name}", expr=expr, descending=descending, nullable=nullable, nulls=nulls
                    ))
                continue

            info = self.schema.field(key)
            if key not in by:
                raise self._error(f"Field '{key}' used in 'order_by' must be in 'by'", key)
            descending, nulls = parse_direction(self.schema, key, value, info.nullable)
            terms.append(OrderTerm(
                key=key, expr=self.schema.column(key), descending=descending, nullable=info.nullable, nulls=nulls
            ))
        return terms

    def parse_group_by(
        self,
        by,
        where=None,
        having=None,
        order_by=None,
        take=None,
        skip=None,
        _count=None,
        _avg=None,
        _sum=None,
        _min=None,
        _max=None,
    ) -> GroupByQuery:
        """
        Validate a group_by call.

        Raises:
            ValidationError: Naming the offending field
        """
        by = self._parse_by(by)
        if order_by is None:
            if take is not None:
                raise self._error("'take' in group_by requires 'order_by'", "take")
            if skip is not None:
                raise self._error("'skip' in group_by requires 'order_by'", "skip")

        spec = self.parse_aggregates(_count=_count, _avg=_avg, _sum=_sum, _min=_min, _max=_max)
        order = self._group_order(order_by, by)

        # Stable order across backends: finish with the group keys
        ordered = {term.key for term in order}
        for name in by:
            if name not in ordered:
                info = self.schema.fields[name]
                nulls = "last" if info.nullable else None
                order.append(OrderTerm(
                    key=name, expr=self.schema.column(name), nullable=info.nullable, nulls=nulls
                ))

        return GroupByQuery(
            by=by,
            condition=self.compiler.compile(self.schema, where),
            having=self._compile_having(having, by),
            order=order,
            window=parse_window(self.schema, take, skip),
            spec=spec,
        )

    # ========================================================================
    # EXECUTION
    # ========================================================================

    def _expressions(self, spec: AggregateSpec, column) -> List[Tuple[str, Optional[str], Any]]:
        exprs = []
        if spec.count is True:
            exprs.append(("_count", None, func.count()))
        elif spec.count:
            for name in spec.count:
                exprs.append(("_count", name, func.count() if name == "_all" else func.count(column(name))))
        for op in ("_avg", "_sum", "_min", "_max"):
            for name in spec.fields.get(op, []):
                exprs.append((op, name, AGGREGATE_FUNCS[op](column(name))))
        return [(op, name, expr.label(f"agg_{index}")) for index, (op, name, expr) in enumerate(exprs)]

    def _normalize(self, op: str, name: Optional[str], value: Any) -> Any:
        if op == "_count":
            return int(value or 0)
        if value is None:
            return None
        if op == "_avg":
            return float(value)
        if isinstance(value, Decimal):
            return float(value)
        if op == "_sum" and self.schema.fields[name].kind == registry.INT:
            return int(value)
        return value

    def _shape(self, exprs, row) -> Dict[str, Any]:
        result = {}
        for (op, name, _), value in zip(exprs, row):
            value = self._normalize(op, name, value)
            if name is None:
                result[op] = value
            else:
                result.setdefault(op, {})[name] = value
        return result

    def _row_source(self, stmt):
        if stmt is None:
            # cursor row missing: aggregate over nothing
            stmt = select(*self._columns()).where(false())
        return stmt.subquery()

    def _columns(self):
        return [self.schema.column(name) for name in self.schema.fields]

    async def count(self, session, plan, fields: Optional[List[str]]):
        stmt = await plan.statement(session, columns=self._columns())
        source = self._row_source(stmt)

        if fields is None:
            return (await session.execute(select(func.count()).select_from(source))).scalar_one()

        exprs = self._expressions(AggregateSpec(count=fields), lambda name: source.c[name])
        row = (await session.execute(select(*[expr for _, _, expr in exprs]).select_from(source))).one()
        return self._shape(exprs, row)["_count"]

    async def aggregate(self, session, plan, spec: AggregateSpec) -> Dict[str, Any]:
        if not spec:
            return {}
        stmt = await plan.statement(session, columns=self._columns())
        source = self._row_source(stmt)

        exprs = self._expressions(spec, lambda name: source.c[name])
        row = (await session.execute(select(*[expr for _, _, expr in exprs]).select_from(source))).one()
        return self._shape(exprs, row)

    async def group_by(self, session, query: GroupByQuery) -> List[Dict[str, Any]]:
        by_columns = [self.schema.column(name) for name in query.by]
        exprs = self._expressions(query.spec, self.schema.column)

        order = query.order
        if query.window.backwards:
            order = [term.reversed() for term in order]

        stmt = (
            select(*by_columns, *[expr for _, _, expr in exprs])
            .where(query.condition)
            .group_by(*by_columns)
            .order_by(*[term.clause() for term in order])
        )
        if query.having is not None:
            stmt = stmt.having(query.having)
        if query.window.skip:
            stmt = stmt.offset(query.window.skip)
        if query.window.limit is not None:
            stmt = stmt.limit(query.window.limit)

        rows = (await session.execute(stmt)).all()
        if query.window.backwards:
            rows = list(reversed(rows))

        results = []
        for row in rows:
            record = {name: row[index] for index, name in enumerate(query.by)}
            record.update(self._shape(exprs, row[len(query.by):]))
            results.append(record)

        logger.debug(f"group_by on {self.schema.model_name} by {query.by} returned {len(results)} group(s)")
        return results
