"""
Per-entity query delegate.

``db.lead``, ``db.contact`` etc. are ``ModelDelegate`` instances. Every
public action is wrapped by ``@delegate_action``, which checks the call shape,
logs, and translates SQLAlchemy errors into the error taxonomy.

Each action borrows a session from its scope: the root scope opens a fresh
transaction per action, a transaction scope runs the action in a savepoint
of the shared transaction.
"""
import inspect
import logging
import time
from dataclasses import dataclass, field
from functools import wraps
from typing import Any, Dict, List, Optional, Tuple

import sqlalchemy as sa
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from leadstore.exceptions import (
    ConstraintViolation,
    EnumDomainViolation,
    LeadStoreError,
    NotFoundError,
    ValidationError,
)
from leadstore.query import registry
from leadstore.query.filters import WhereCompiler, validate_unique_where
from leadstore.query.projection import parse_projection
from leadstore.query.registry import get_schema
from leadstore.schemas import get_write_schemas
from leadstore.services.aggregation import AggregationEngine
from leadstore.services.errors import translate_db_error
from leadstore.services.read_plan import ReadPlan
from leadstore.services.relation_loader import RelationLoader

logger = logging.getLogger(__name__)

# Action name -> "read" | "write"
DELEGATE_ACTIONS: Dict[str, str] = {}

NUMBER_OPS = ("increment", "decrement", "multiply", "divide")

DIALECT_INSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


def delegate_action(kind: str):
    """
    Decorator for delegate actions.

    Usage:
        @delegate_action("write")
        async def create(self, data, ...):
            ...

    Registers the action for transaction descriptors, rejects unknown or
    missing arguments with ValidationError, and translates SQLAlchemy
    exceptions raised by the action.
    """
    def decorator(func):
        signature = inspect.signature(func)
        DELEGATE_ACTIONS[func.__name__] = kind

        @wraps(func)
        async def wrapper(self, *args, **kwargs):
            try:
                signature.bind(self, *args, **kwargs)
            except TypeError as e:
                raise ValidationError(
                    f"Invalid arguments for {self.name}.{func.__name__}: {e}",
                    model=self.model_name,
                ) from e

            started = time.perf_counter()
            try:
                result = await func(self, *args, **kwargs)
            except LeadStoreError as e:
                logger.debug(f"{self.name}.{func.__name__} raised {e.kind}: {e.message}")
                raise
            except SQLAlchemyError as e:
                error = translate_db_error(e, self.model_name)
                logger.error(f"{self.name}.{func.__name__} failed: {error.kind}: {error.message}")
                raise error from e

            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.debug(f"{self.name}.{func.__name__} completed in {elapsed_ms:.1f}ms")
            return result

        return wrapper
    return decorator


@dataclass(frozen=True)
class Operation:
    """Deferred delegate call, executed by the sequential transaction form."""
    model: str
    action: str
    arguments: Dict[str, Any] = field(default_factory=dict)

    def __repr__(self):
        return f"<Operation({self.model}.{self.action})>"


class ModelDelegate:
    """Query executor for one entity."""

    def __init__(self, name: str, scope):
        self.name = name
        self.scope = scope
        self.schema = get_schema(name)
        self.create_schema, self.update_schema = get_write_schemas(name)

    @property
    def model_name(self) -> str:
        return self.schema.model_name

    @property
    def compiler(self) -> WhereCompiler:
        return WhereCompiler(self.scope.dialect_name)

    def __repr__(self):
        return f"<ModelDelegate({self.name})>"

    def operation(self, action: str, **arguments) -> Operation:
        """Describe a call to run later in ``db.transaction([...])``."""
        if action not in DELEGATE_ACTIONS:
            raise ValidationError(
                f"Unknown action '{action}'. Available: {sorted(DELEGATE_ACTIONS)}",
                model=self.model_name,
            )
        return Operation(model=self.name, action=action, arguments=dict(arguments))

    # ========================================================================
    # HELPERS
    # ========================================================================

    def _unique_condition(self, where):
        return self.compiler.compile(self.schema, validate_unique_where(self.schema, where))

    async def _project(self, session, instances, projection) -> List[Dict[str, Any]]:
        loader = RelationLoader(session, self.scope.dialect_name)
        return await loader.load(self.schema, instances, projection)

    async def _find_locked(self, session, condition):
        stmt = (
            sa.select(self.schema.model)
            .where(condition)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return (await session.execute(stmt)).scalars().first()

    async def _matching_pks(self, session, condition, limit) -> List[Any]:
        pk = self.schema.pk_column
        stmt = sa.select(pk).where(condition).order_by(pk.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        return list((await session.execute(stmt)).scalars().all())

    async def _fetch_by_pks(self, session, pks) -> List[Any]:
        pk = self.schema.pk_column
        stmt = (
            sa.select(self.schema.model)
            .where(pk.in_(pks))
            .order_by(pk.asc())
            .execution_options(populate_existing=True)
        )
        return list((await session.execute(stmt)).scalars().all())

    def _check_limit(self, limit):
        if limit is None:
            return None
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 0:
            raise ValidationError(f"'limit' must be a non-negative integer, got {limit!r}", model=self.model_name)
        return limit

    def _payload_error(self, error: PydanticValidationError) -> LeadStoreError:
        errors = error.errors(include_url=False, include_context=False, include_input=False)
        details = {
            "errors": [
                {"field": ".".join(str(part) for part in err["loc"]), "type": err["type"], "message": err["msg"]}
                for err in errors
            ]
        }
        enum_errors = [err for err in errors if err["type"] == "enum"]
        first = enum_errors[0] if enum_errors else errors[0]
        field_name = str(first["loc"][0]) if first["loc"] else None

        if first["type"] == "enum":
            info = self.schema.field(field_name)
            return EnumDomainViolation(
                f"Invalid value for {self.model_name}.{field_name}. Allowed: {list(info.enum_values)}",
                model=self.model_name,
                field=field_name,
                constraint="enum",
                details=details,
            )
        if first["type"] == "missing":
            for relation in self.schema.relations.values():
                if relation.required and field_name in relation.local_columns:
                    return ConstraintViolation(
                        f"Required relation '{relation.name}' of {self.model_name} is missing",
                        model=self.model_name,
                        field=field_name,
                        constraint="required_relation",
                        details=details,
                    )
            return ValidationError(
                f"Missing required field '{field_name}' for {self.model_name}",
                model=self.model_name,
                field=field_name,
                details=details,
            )
        if first["type"] == "extra_forbidden":
            return ValidationError(
                f"Unknown field '{field_name}' for {self.model_name}",
                model=self.model_name,
                field=field_name,
                details=details,
            )
        return ValidationError(
            f"Invalid value for {self.model_name}.{field_name}: {first['msg']}",
            model=self.model_name,
            field=field_name,
            details=details,
        )

    def _validate_payload(self, payload_schema, data: Dict[str, Any]) -> Dict[str, Any]:
        try:
            payload = payload_schema.model_validate(data)
        except PydanticValidationError as e:
            raise self._payload_error(e) from e

        values = payload.model_dump(exclude_unset=True)
        for name, value in values.items():
            info = self.schema.field(name)
            if value is None and not info.nullable and info.kind != registry.JSON_KIND:
                raise ValidationError(
                    f"Field {self.model_name}.{name} cannot be null",
                    model=self.model_name,
                    field=name,
                )
        return values

    async def _resolve_relations(self, session, data: Any, creating: bool) -> Dict[str, Any]:
        """Replace connect/disconnect entries with foreign key values."""
        if not isinstance(data, dict):
            raise ValidationError(
                f"'data' must be an object, got {type(data).__name__}",
                model=self.model_name,
            )

        scalars = {}
        for key, value in data.items():
            relation = self.schema.relations.get(key)
            if relation is None:
                scalars[key] = value
                continue
            if relation.to_many:
                raise ValidationError(
                    f"Nested writes on to-many relation '{key}' are not supported",
                    model=self.model_name,
                    field=key,
                )
            if not isinstance(value, dict) or len(value) != 1:
                raise ValidationError(
                    f"Relation '{key}' expects {{'connect': ...}} or {{'disconnect': True}}",
                    model=self.model_name,
                    field=key,
                )
            local, remote = relation.pairs[0]
            if local in data:
                raise ValidationError(
                    f"'{key}' and '{local}' cannot both be set",
                    model=self.model_name,
                    field=key,
                )

            (op, argument), = value.items()
            if op == "connect":
                target = get_schema(relation.target)
                condition = self.compiler.compile(target, validate_unique_where(target, argument))
                row = (await session.execute(sa.select(target.column(remote)).where(condition))).first()
                if row is None:
                    raise ConstraintViolation(
                        f"No {target.model_name} record found to connect as '{key}'",
                        model=self.model_name,
                        field=key,
                        constraint="foreign_key",
                        details={"reason": "connect"},
                    )
                scalars[local] = row[0]
            elif op == "disconnect":
                if creating or argument is not True:
                    raise ValidationError(
                        f"'disconnect' on '{key}' is only valid as {{'disconnect': True}} in an update",
                        model=self.model_name,
                        field=key,
                    )
                if relation.required:
                    raise ValidationError(
                        f"Required relation '{key}' cannot be disconnected",
                        model=self.model_name,
                        field=key,
                    )
                scalars[local] = None
            else:
                raise ValidationError(
                    f"Unknown relation write '{op}' on '{key}'",
                    model=self.model_name,
                    field=key,
                )
        return scalars

    def _split_number_ops(self, scalars: Dict[str, Any]) -> Tuple[Dict[str, Any], Dict[str, Tuple[str, Any]]]:
        plain = {}
        ops = {}
        for key, value in scalars.items():
            info = self.schema.fields.get(key)
            if info is None or info.kind == registry.JSON_KIND or not isinstance(value, dict):
                plain[key] = value
                continue
            if len(value) != 1:
                raise ValidationError(
                    f"Field update for '{key}' expects exactly one operation",
                    model=self.model_name,
                    field=key,
                )
            (op, operand), = value.items()
            if op == "set":
                plain[key] = operand
                continue
            if op not in NUMBER_OPS:
                raise ValidationError(
                    f"Unknown update operation '{op}' on '{key}'",
                    model=self.model_name,
                    field=key,
                )
            if not info.numeric:
                raise ValidationError(
                    f"'{op}' only applies to numeric fields, '{key}' is {info.kind}",
                    model=self.model_name,
                    field=key,
                )
            if isinstance(operand, bool) or not isinstance(operand, (int, float)):
                raise ValidationError(
                    f"'{op}' on '{key}' expects a number",
                    model=self.model_name,
                    field=key,
                )
            ops[key] = (op, operand)
        return plain, ops

    def _op_expression(self, name: str, op: str, operand):
        column = self.schema.column(name)
        if op == "increment":
            return column + operand
        if op == "decrement":
            return column - operand
        if op == "multiply":
            return column * operand
        return column / operand

    async def _check_references(self, session, values: Dict[str, Any], checked=None):
        """Every foreign key being written must point at an existing row."""
        checked = checked if checked is not None else set()
        for relation in self.schema.relations.values():
            if relation.to_many:
                continue
            local, remote = relation.pairs[0]
            value = values.get(local)
            if value is None or (relation.target, value) in checked:
                continue
            target = get_schema(relation.target)
            stmt = sa.select(target.column(remote)).where(target.column(remote) == value)
            if (await session.execute(stmt)).first() is None:
                raise ConstraintViolation(
                    f"Foreign key constraint failed on {self.model_name}.{local}: "
                    f"no {target.model_name} with {remote}={value!r}",
                    model=self.model_name,
                    field=local,
                    constraint=f"{self.schema.model.__tablename__}_{local}_fkey",
                    details={"reason": "foreign_key", "relation": relation.name},
                )
            checked.add((relation.target, value))

    async def _check_restrict(self, session, pks: List[Any]):
        """Refuse to delete rows still referenced through a RESTRICT relation."""
        for relation in self.schema.relations.values():
            if not relation.to_many or relation.on_delete not in ("RESTRICT", "NO ACTION"):
                continue
            local, remote = relation.pairs[0]
            target = get_schema(relation.target)
            stmt = (
                sa.select(sa.func.count())
                .select_from(target.model)
                .where(target.column(remote).in_(pks))
            )
            referencing = (await session.execute(stmt)).scalar_one()
            if referencing:
                raise ConstraintViolation(
                    f"Cannot delete {self.model_name}: {referencing} {target.model_name} "
                    f"record(s) still reference it through '{relation.name}'",
                    model=self.model_name,
                    field=relation.name,
                    constraint=f"{target.model.__tablename__}_{remote}_fkey",
                    details={"reason": "restrict", "relation": relation.name, "count": referencing},
                )

    async def _has_unique_conflict(self, session, values: Dict[str, Any]) -> bool:
        clauses = [
            self.schema.column(name) == values[name]
            for name in self.schema.unique_fields
            if values.get(name) is not None
        ]
        if not clauses:
            return False
        stmt = sa.select(self.schema.pk_column).where(sa.or_(*clauses)).limit(1)
        return (await session.execute(stmt)).first() is not None

    async def _prepare_create(self, session, data, checked=None) -> Dict[str, Any]:
        scalars = await self._resolve_relations(session, data, creating=True)
        values = self._validate_payload(self.create_schema, scalars)
        await self._check_references(session, values, checked)
        return values

    async def _prepare_update(self, session, data) -> Tuple[Dict[str, Any], Dict[str, Tuple[str, Any]]]:
        scalars = await self._resolve_relations(session, data, creating=False)
        plain, ops = self._split_number_ops(scalars)
        values = self._validate_payload(self.update_schema, plain)
        await self._check_references(session, values)
        return values, ops

    async def _insert(self, session, values: Dict[str, Any], skip_duplicates: bool = False):
        """INSERT ... RETURNING one row; None when skipped as a duplicate."""
        model = self.schema.model
        dialect_insert = DIALECT_INSERTS.get(self.scope.dialect_name)

        if skip_duplicates and dialect_insert is not None:
            stmt = dialect_insert(model).values(**values).on_conflict_do_nothing()
        elif skip_duplicates and await self._has_unique_conflict(session, values):
            return None
        else:
            stmt = sa.insert(model).values(**values)

        stmt = stmt.returning(model).execution_options(populate_existing=True)
        return (await session.execute(stmt)).scalars().first()

    def _apply_update(self, instance, values, ops):
        for name, value in values.items():
            setattr(instance, name, value)
        for name, (op, operand) in ops.items():
            setattr(instance, name, self._op_expression(name, op, operand))

    def _update_assignments(self, values, ops) -> Dict[str, Any]:
        assignments = dict(values)
        for name, (op, operand) in ops.items():
            assignments[name] = self._op_expression(name, op, operand)
        return assignments

    # ========================================================================
    # READS
    # ========================================================================

    @delegate_action("read")
    async def find_unique(self, where, select=None, include=None, omit=None) -> Optional[Dict[str, Any]]:
        projection = parse_projection(self.schema, select, include, omit)
        condition = self._unique_condition(where)

        async with self.scope.session() as session:
            stmt = (
                sa.select(self.schema.model)
                .where(condition)
                .execution_options(populate_existing=True)
            )
            instance = (await session.execute(stmt)).scalars().first()
            if instance is None:
                return None
            return (await self._project(session, [instance], projection))[0]

    @delegate_action("read")
    async def find_unique_or_throw(self, where, select=None, include=None, omit=None) -> Dict[str, Any]:
        record = await self.find_unique(where, select=select, include=include, omit=omit)
        if record is None:
            raise NotFoundError(
                f"No {self.model_name} record found for {where!r}",
                model=self.model_name,
                details={"where": where},
            )
        return record

    @delegate_action("read")
    async def find_first(
        self,
        where=None,
        order_by=None,
        cursor=None,
        take=None,
        skip=None,
        distinct=None,
        select=None,
        include=None,
        omit=None,
    ) -> Optional[Dict[str, Any]]:
        projection = parse_projection(self.schema, select, include, omit)
        plan = ReadPlan(
            self.schema, self.compiler,
            where=where, order_by=order_by, cursor=cursor,
            take=1 if take is None else take, skip=skip, distinct=distinct,
        )

        async with self.scope.session() as session:
            instances = await plan.fetch(session)
            if not instances:
                return None
            return (await self._project(session, instances[:1], projection))[0]

    @delegate_action("read")
    async def find_first_or_throw(
        self,
        where=None,
        order_by=None,
        cursor=None,
        take=None,
        skip=None,
        distinct=None,
        select=None,
        include=None,
        omit=None,
    ) -> Dict[str, Any]:
        record = await self.find_first(
            where=where, order_by=order_by, cursor=cursor, take=take, skip=skip,
            distinct=distinct, select=select, include=include, omit=omit,
        )
        if record is None:
            raise NotFoundError(
                f"No {self.model_name} record found for {where!r}",
                model=self.model_name,
                details={"where": where},
            )
        return record

    @delegate_action("read")
    async def find_many(
        self,
        where=None,
        order_by=None,
        cursor=None,
        take=None,
        skip=None,
        distinct=None,
        select=None,
        include=None,
        omit=None,
    ) -> List[Dict[str, Any]]:
        """
        Read many records.

        Args:
            where: Filter dict
            order_by: Sort spec; primary key ascending when omitted
            cursor: Unique filter of the row to start from (included)
            take: Number of rows, negative to read backwards
            skip: Rows to skip (from the cursor when one is given)
            distinct: Fields whose value combination must be unique
            select / include / omit: Projection

        Returns:
            List of plain dicts
        """
        projection = parse_projection(self.schema, select, include, omit)
        plan = ReadPlan(
            self.schema, self.compiler,
            where=where, order_by=order_by, cursor=cursor,
            take=take, skip=skip, distinct=distinct,
        )

        async with self.scope.session() as session:
            instances = await plan.fetch(session)
            return await self._project(session, instances, projection)

    # ========================================================================
    # CREATES
    # ========================================================================

    @delegate_action("write")
    async def create(self, data, select=None, include=None, omit=None) -> Dict[str, Any]:
        projection = parse_projection(self.schema, select, include, omit)

        async with self.scope.session() as session:
            values = await self._prepare_create(session, data)
            instance = await self._insert(session, values)
            return (await self._project(session, [instance], projection))[0]

    async def _create_rows(self, session, data, skip_duplicates) -> List[Any]:
        if not isinstance(data, (list, tuple)):
            data = [data]
        if not isinstance(skip_duplicates, bool):
            raise ValidationError("'skip_duplicates' must be a boolean", model=self.model_name)

        checked = set()
        prepared = [await self._prepare_create(session, item, checked) for item in data]

        created = []
        for values in prepared:
            instance = await self._insert(session, values, skip_duplicates=skip_duplicates)
            if instance is not None:
                created.append(instance)

        skipped = len(prepared) - len(created)
        if skipped:
            logger.warning(f"{self.name}.create_many skipped {skipped} duplicate row(s)")
        return created

    @delegate_action("write")
    async def create_many(self, data, skip_duplicates: bool = False) -> Dict[str, int]:
        async with self.scope.session() as session:
            created = await self._create_rows(session, data, skip_duplicates)
            return {"count": len(created)}

    @delegate_action("write")
    async def create_many_and_return(
        self, data, skip_duplicates: bool = False, select=None, include=None, omit=None
    ) -> List[Dict[str, Any]]:
        projection = parse_projection(self.schema, select, include, omit)

        async with self.scope.session() as session:
            created = await self._create_rows(session, data, skip_duplicates)
            return await self._project(session, created, projection)

    # ========================================================================
    # UPDATES
    # ========================================================================

    @delegate_action("write")
    async def update(self, where, data, select=None, include=None, omit=None) -> Dict[str, Any]:
        projection = parse_projection(self.schema, select, include, omit)
        condition = self._unique_condition(where)

        async with self.scope.session() as session:
            instance = await self._find_locked(session, condition)
            if instance is None:
                raise NotFoundError(
                    f"No {self.model_name} record found to update for {where!r}",
                    model=self.model_name,
                    details={"where": where},
                )
            values, ops = await self._prepare_update(session, data)
            self._apply_update(instance, values, ops)
            await session.flush()
            await session.refresh(instance)
            return (await self._project(session, [instance], projection))[0]

    async def _update_rows(self, session, where, data, limit) -> List[Any]:
        limit = self._check_limit(limit)
        condition = self.compiler.compile(self.schema, where)
        values, ops = await self._prepare_update(session, data)

        pks = await self._matching_pks(session, condition, limit)
        if pks:
            assignments = self._update_assignments(values, ops)
            if assignments:
                stmt = (
                    sa.update(self.schema.model)
                    .where(self.schema.pk_column.in_(pks))
                    .values(**assignments)
                    .execution_options(synchronize_session=False)
                )
                await session.execute(stmt)
        return pks

    @delegate_action("write")
    async def update_many(self, where=None, data=None, limit: Optional[int] = None) -> Dict[str, int]:
        async with self.scope.session() as session:
            pks = await self._update_rows(session, where, data, limit)
            return {"count": len(pks)}

    @delegate_action("write")
    async def update_many_and_return(
        self, where=None, data=None, limit: Optional[int] = None, select=None, include=None, omit=None
    ) -> List[Dict[str, Any]]:
        projection = parse_projection(self.schema, select, include, omit)

        async with self.scope.session() as session:
            pks = await self._update_rows(session, where, data, limit)
            if not pks:
                return []
            instances = await self._fetch_by_pks(session, pks)
            return await self._project(session, instances, projection)

    @delegate_action("write")
    async def upsert(self, where, create, update, select=None, include=None, omit=None) -> Dict[str, Any]:
        """
        Update the record matching ``where`` or create it.

        The lookup takes a row lock; the insert runs in a savepoint so that a
        concurrent insert of the same key turns into an update of the winner's
        row instead of an error.
        """
        projection = parse_projection(self.schema, select, include, omit)
        condition = self._unique_condition(where)

        async with self.scope.session() as session:
            instance = await self._find_locked(session, condition)
            created = False

            if instance is None:
                values = await self._prepare_create(session, create)
                try:
                    async with session.begin_nested():
                        instance = await self._insert(session, values)
                    created = True
                except IntegrityError:
                    instance = await self._find_locked(session, condition)
                    if instance is None:
                        raise
                    logger.info(f"{self.name}.upsert lost the insert race, updating the existing row")

            if not created:
                values, ops = await self._prepare_update(session, update)
                self._apply_update(instance, values, ops)
                await session.flush()
                await session.refresh(instance)
            return (await self._project(session, [instance], projection))[0]

    # ========================================================================
    # DELETES
    # ========================================================================

    @delegate_action("write")
    async def delete(self, where, select=None, include=None, omit=None) -> Dict[str, Any]:
        projection = parse_projection(self.schema, select, include, omit)
        condition = self._unique_condition(where)

        async with self.scope.session() as session:
            instance = await self._find_locked(session, condition)
            if instance is None:
                raise NotFoundError(
                    f"No {self.model_name} record found to delete for {where!r}",
                    model=self.model_name,
                    details={"where": where},
                )
            pk_value = getattr(instance, self.schema.primary_key)
            await self._check_restrict(session, [pk_value])
            record = (await self._project(session, [instance], projection))[0]

            await session.execute(sa.delete(self.schema.model).where(self.schema.pk_column == pk_value))
            return record

    @delegate_action("write")
    async def delete_many(self, where=None, limit: Optional[int] = None) -> Dict[str, int]:
        limit = self._check_limit(limit)
        condition = self.compiler.compile(self.schema, where)

        async with self.scope.session() as session:
            pks = await self._matching_pks(session, condition, limit)
            if not pks:
                return {"count": 0}
            await self._check_restrict(session, pks)
            await session.execute(sa.delete(self.schema.model).where(self.schema.pk_column.in_(pks)))
            return {"count": len(pks)}

    # ========================================================================
    # AGGREGATES
    # ========================================================================

    @delegate_action("read")
    async def count(self, where=None, cursor=None, take=None, skip=None, order_by=None, select=None):
        engine = AggregationEngine(self.schema, self.compiler)
        fields = engine.parse_count_select(select)
        plan = ReadPlan(
            self.schema, self.compiler,
            where=where, order_by=order_by, cursor=cursor, take=take, skip=skip,
        )

        async with self.scope.session() as session:
            return await engine.count(session, plan, fields)

    @delegate_action("read")
    async def aggregate(
        self,
        where=None,
        order_by=None,
        cursor=None,
        take=None,
        skip=None,
        _count=None,
        _avg=None,
        _sum=None,
        _min=None,
        _max=None,
    ) -> Dict[str, Any]:
        engine = AggregationEngine(self.schema, self.compiler)
        spec = engine.parse_aggregates(_count=_count, _avg=_avg, _sum=_sum, _min=_min, _max=_max)
        plan = ReadPlan(
            self.schema, self.compiler,
            where=where, order_by=order_by, cursor=cursor, take=take, skip=skip,
        )

        async with self.scope.session() as session:
            return await engine.aggregate(session, plan, spec)

    @delegate_action("read")
    async def group_by(
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
    ) -> List[Dict[str, Any]]:
        engine = AggregationEngine(self.schema, self.compiler)
        query = engine.parse_group_by(
            by=by, where=where, having=having, order_by=order_by, take=take, skip=skip,
            _count=_count, _avg=_avg, _sum=_sum, _min=_min, _max=_max,
        )

        async with self.scope.session() as session:
            return await engine.group_by(session, query)
