"""
Projections: which fields and relations a query returns.

``select``, ``include`` and ``omit`` are parsed into one of three variants:

- ``AllFields``: every scalar field, minus ``omit``
- ``FieldSubset``: only the selected scalars and relations (``select``)
- ``WithRelations``: every scalar field plus eagerly loaded relations
  (``include``), minus ``omit``

Relations can be nested to any depth, each with its own projection and, for
to-many relations, its own where/order_by/take/skip/distinct.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Optional, Tuple, Union

from leadstore.exceptions import ValidationError
from leadstore.query.registry import ModelSchema, RelationInfo, get_schema

RELATION_ARG_KEYS = frozenset({"where", "order_by", "take", "skip", "distinct", "select", "include", "omit"})
TO_MANY_ONLY_KEYS = frozenset({"where", "order_by", "take", "skip", "distinct"})


@dataclass(frozen=True)
class RelationArgs:
    where: Optional[Dict[str, Any]] = None
    order_by: Any = None
    take: Optional[int] = None
    skip: Optional[int] = None
    distinct: Optional[Tuple[str, ...]] = None


@dataclass(frozen=True)
class AllFields:
    omit: FrozenSet[str] = frozenset()
    relations: Dict[str, "RelationLoad"] = field(default_factory=dict)
    counts: Optional[Dict[str, Optional[Dict[str, Any]]]] = None

    def scalar_fields(self, schema: ModelSchema):
        return [name for name in schema.fields if name not in self.omit]


@dataclass(frozen=True)
class FieldSubset:
    fields: Tuple[str, ...] = ()
    relations: Dict[str, "RelationLoad"] = field(default_factory=dict)
    counts: Optional[Dict[str, Optional[Dict[str, Any]]]] = None

    def scalar_fields(self, schema: ModelSchema):
        return list(self.fields)


@dataclass(frozen=True)
class WithRelations:
    relations: Dict[str, "RelationLoad"] = field(default_factory=dict)
    omit: FrozenSet[str] = frozenset()
    counts: Optional[Dict[str, Optional[Dict[str, Any]]]] = None

    def scalar_fields(self, schema: ModelSchema):
        return [name for name in schema.fields if name not in self.omit]


Projection = Union[AllFields, FieldSubset, WithRelations]


@dataclass(frozen=True)
class RelationLoad:
    relation: RelationInfo
    args: RelationArgs
    projection: Projection


def _parse_omit(schema: ModelSchema, omit: Any) -> FrozenSet[str]:
    if omit is None:
        return frozenset()
    if not isinstance(omit, dict):
        raise ValidationError("'omit' must be an object of field: bool", model=schema.model_name)
    omitted = set()
    for name, flag in omit.items():
        schema.field(name)
        if not isinstance(flag, bool):
            raise ValidationError(f"'omit.{name}' must be a boolean", model=schema.model_name, field=name)
        if flag:
            omitted.add(name)
    return frozenset(omitted)


def _parse_counts(schema: ModelSchema, value: Any) -> Optional[Dict[str, Optional[Dict[str, Any]]]]:
    to_many = [name for name, rel in schema.relations.items() if rel.to_many]
    if value is False or value is None:
        return None
    if value is True:
        return {name: None for name in to_many}
    if not isinstance(value, dict) or set(value) != {"select"} or not isinstance(value["select"], dict):
        raise ValidationError("'_count' expects true or {'select': {...}}", model=schema.model_name, field="_count")

    counts = {}
    for name, spec in value["select"].items():
        relation = schema.relation(name)
        if not relation.to_many:
            raise ValidationError(
                f"'_count' only applies to to-many relations, '{name}' is to-one",
                model=schema.model_name,
                field=name,
            )
        if spec is False:
            continue
        if spec is True:
            counts[name] = None
        elif isinstance(spec, dict) and set(spec) <= {"where"}:
            counts[name] = spec.get("where")
        else:
            raise ValidationError(f"Invalid '_count' spec for '{name}'", model=schema.model_name, field=name)
    return counts


def _parse_relation(schema: ModelSchema, name: str, spec: Any) -> RelationLoad:
    relation = schema.relation(name)
    target = get_schema(relation.target)

    if spec is True:
        return RelationLoad(relation=relation, args=RelationArgs(), projection=AllFields())
    if not isinstance(spec, dict):
        raise ValidationError(
            f"Relation '{name}' expects true or an object",
            model=schema.model_name,
            field=name,
        )

    unknown = set(spec) - RELATION_ARG_KEYS
    if unknown:
        raise ValidationError(
            f"Unknown argument(s) {sorted(unknown)} for relation '{name}'",
            model=schema.model_name,
            field=name,
        )
    if not relation.to_many and set(spec) & TO_MANY_ONLY_KEYS:
        raise ValidationError(
            f"To-one relation '{name}' does not accept {sorted(set(spec) & TO_MANY_ONLY_KEYS)}",
            model=schema.model_name,
            field=name,
        )

    distinct = spec.get("distinct")
    if isinstance(distinct, str):
        distinct = [distinct]
    args = RelationArgs(
        where=spec.get("where"),
        order_by=spec.get("order_by"),
        take=spec.get("take"),
        skip=spec.get("skip"),
        distinct=tuple(distinct) if distinct else None,
    )
    projection = parse_projection(target, spec.get("select"), spec.get("include"), spec.get("omit"))
    return RelationLoad(relation=relation, args=args, projection=projection)


def parse_projection(
    schema: ModelSchema,
    select: Optional[Dict[str, Any]] = None,
    include: Optional[Dict[str, Any]] = None,
    omit: Optional[Dict[str, Any]] = None,
) -> Projection:
    """
    Validate select/include/omit against the schema and build a projection.

    Raises:
        ValidationError: If select and include (or select and omit) are
            combined, or a name is unknown
    """
    if select is not None and include is not None:
        raise ValidationError(
            "'select' and 'include' cannot be used together",
            model=schema.model_name,
        )
    if select is not None and omit is not None:
        raise ValidationError(
            "'select' and 'omit' cannot be used together",
            model=schema.model_name,
        )

    omitted = _parse_omit(schema, omit)

    if select is not None:
        if not isinstance(select, dict):
            raise ValidationError("'select' must be an object", model=schema.model_name)
        fields = []
        relations = {}
        counts = None
        for name, spec in select.items():
            if name == "_count":
                counts = _parse_counts(schema, spec)
            elif name in schema.fields:
                if not isinstance(spec, bool):
                    raise ValidationError(
                        f"Scalar field '{name}' can only be selected with a boolean",
                        model=schema.model_name,
                        field=name,
                    )
                if spec:
                    fields.append(name)
            elif spec is not False:
                relations[name] = _parse_relation(schema, name, spec)
        return FieldSubset(fields=tuple(fields), relations=relations, counts=counts)

    if include is not None:
        if not isinstance(include, dict):
            raise ValidationError("'include' must be an object", model=schema.model_name)
        relations = {}
        counts = None
        for name, spec in include.items():
            if name == "_count":
                counts = _parse_counts(schema, spec)
                continue
            if name in schema.fields:
                raise ValidationError(
                    f"'{name}' is a scalar field and cannot be included",
                    model=schema.model_name,
                    field=name,
                )
            if spec is not False:
                relations[name] = _parse_relation(schema, name, spec)
        return WithRelations(relations=relations, omit=omitted, counts=counts)

    return AllFields(omit=omitted)


def serialize(instance: Any, schema: ModelSchema, projection: Projection) -> Dict[str, Any]:
    """Scalar part of a record as a plain dict."""
    return {name: getattr(instance, name) for name in projection.scalar_fields(schema)}
