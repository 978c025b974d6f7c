"""
Static schema registry.

Introspects the SQLAlchemy mappers once and exposes immutable descriptions of
every entity: scalar fields with their kind, nullability and uniqueness, and
relations with direction, join columns and delete policy. Everything that
validates a call (filters, projections, ordering, aggregates) goes through
this registry instead of touching the mappers directly.
"""
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, Optional, Tuple, Type
import enum

from sqlalchemy import Boolean, DateTime, Enum as SQLEnum, Float, Integer, JSON, Numeric, String, inspect
from sqlalchemy.orm import MANYTOONE, configure_mappers

from leadstore.exceptions import ValidationError
from leadstore.models import (
    AppSetting, Contact, Lead, LeadActivity, Notification, Payment, Source, User, UserSession
)

# Delegate name -> model class
MODEL_REGISTRY = {
    "user": User,
    "sessions": UserSession,
    "contact": Contact,
    "lead": Lead,
    "payment": Payment,
    "lead_activity": LeadActivity,
    "sources": Source,
    "notification": Notification,
    "app_setting": AppSetting,
}

STRING = "string"
INT = "int"
FLOAT = "float"
BOOLEAN = "boolean"
DATETIME = "datetime"
ENUM = "enum"
JSON_KIND = "json"

NUMERIC_KINDS = frozenset({INT, FLOAT})


@dataclass(frozen=True)
class FieldInfo:
    name: str
    kind: str
    nullable: bool
    unique: bool
    primary_key: bool
    has_default: bool
    python_enum: Optional[Type[enum.Enum]] = None

    @property
    def numeric(self) -> bool:
        return self.kind in NUMERIC_KINDS

    @property
    def enum_values(self) -> Tuple[str, ...]:
        if self.python_enum is None:
            return ()
        return tuple(member.value for member in self.python_enum)


@dataclass(frozen=True)
class RelationInfo:
    name: str
    target: str
    to_many: bool
    required: bool
    # (column on this model, column on the target) pairs
    pairs: Tuple[Tuple[str, str], ...]
    on_delete: Optional[str] = None

    @property
    def local_columns(self) -> Tuple[str, ...]:
        return tuple(local for local, _ in self.pairs)

    @property
    def remote_columns(self) -> Tuple[str, ...]:
        return tuple(remote for _, remote in self.pairs)


@dataclass(frozen=True)
class ModelSchema:
    name: str
    model: Any
    fields: Dict[str, FieldInfo]
    relations: Dict[str, RelationInfo]
    primary_key: str
    unique_fields: Tuple[str, ...]

    @property
    def model_name(self) -> str:
        return self.model.__name__

    def field(self, name: str) -> FieldInfo:
        info = self.fields.get(name)
        if info is None:
            raise ValidationError(
                f"Unknown field '{name}' on {self.model_name}",
                model=self.model_name,
                field=name,
            )
        return info

    def relation(self, name: str) -> RelationInfo:
        info = self.relations.get(name)
        if info is None:
            raise ValidationError(
                f"Unknown relation '{name}' on {self.model_name}",
                model=self.model_name,
                field=name,
            )
        return info

    def column(self, name: str):
        return getattr(self.model, name)

    @property
    def pk_column(self):
        return getattr(self.model, self.primary_key)


def _field_kind(column_type) -> Tuple[str, Optional[Type[enum.Enum]]]:
    # Enum subclasses String, check it first
    if isinstance(column_type, SQLEnum):
        return ENUM, column_type.enum_class
    if isinstance(column_type, Boolean):
        return BOOLEAN, None
    if isinstance(column_type, Integer):
        return INT, None
    if isinstance(column_type, (Float, Numeric)):
        return FLOAT, None
    if isinstance(column_type, DateTime):
        return DATETIME, None
    if isinstance(column_type, JSON):
        return JSON_KIND, None
    if isinstance(column_type, String):
        return STRING, None
    raise TypeError(f"Unsupported column type: {column_type!r}")


def _name_for_model(model) -> str:
    for name, registered in MODEL_REGISTRY.items():
        if registered is model:
            return name
    raise KeyError(model)


def _build_schema(name: str, model) -> ModelSchema:
    mapper = inspect(model)

    fields = {}
    primary_key = None
    for attr in mapper.column_attrs:
        column = attr.columns[0]
        kind, python_enum = _field_kind(column.type)
        fields[attr.key] = FieldInfo(
            name=attr.key,
            kind=kind,
            nullable=bool(column.nullable) and not column.primary_key,
            unique=bool(column.unique) or column.primary_key,
            primary_key=column.primary_key,
            has_default=column.default is not None or column.server_default is not None
            or (column.primary_key and kind == INT),
            python_enum=python_enum,
        )
        if column.primary_key:
            primary_key = attr.key

    relations = {}
    for rel in mapper.relationships:
        pairs = tuple((local.key, remote.key) for local, remote in rel.local_remote_pairs)
        if rel.direction is MANYTOONE:
            required = all(not fields[local].nullable for local, _ in pairs)
            on_delete = None
        else:
            required = False
            remote_column = rel.local_remote_pairs[0][1]
            fk = next(iter(remote_column.foreign_keys))
            on_delete = (fk.ondelete or "NO ACTION").upper()
        relations[rel.key] = RelationInfo(
            name=rel.key,
            target=_name_for_model(rel.mapper.class_),
            to_many=rel.uselist,
            required=required,
            pairs=pairs,
            on_delete=on_delete,
        )

    unique_fields = tuple(f.name for f in fields.values() if f.unique)

    return ModelSchema(
        name=name,
        model=model,
        fields=fields,
        relations=relations,
        primary_key=primary_key,
        unique_fields=unique_fields,
    )


@lru_cache(maxsize=None)
def get_schema(name: str) -> ModelSchema:
    """
    Get the schema description for a delegate name.

    Raises:
        ValidationError: If the name is not a registered entity
    """
    model = MODEL_REGISTRY.get(name)
    if model is None:
        raise ValidationError(
            f"Unknown model: {name}. Available: {list(MODEL_REGISTRY.keys())}"
        )
    configure_mappers()
    return _build_schema(name, model)
