"""
Filter DSL.

Filters are plain, serializable dicts keyed by field or relation name:

    {"status": "Booked"}                                   # equals shorthand
    {"client_budget": {"gte": 5000, "lt": 20000}}
    {"title": {"contains": "wedding", "mode": "insensitive"}}
    {"OR": [{"venue": None}, {"NOT": {"status": "Lost"}}]}
    {"contact": {"phone": {"starts_with": "+91"}}}         # to-one relation
    {"payments": {"some": {"amount": {"gt": 1000}}}}       # to-many relation

Each scalar field kind has its own filter class with its own operator set;
``get_filter`` picks the class from the registry. ``WhereCompiler`` walks the
dict and turns it into a SQLAlchemy expression.
"""
from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Any, Dict, Optional
import enum
import json

from sqlalchemy import Text, and_, cast, false, func, not_, or_, true

from leadstore.exceptions import UnsupportedOperation, ValidationError
from leadstore.models import as_naive_utc
from leadstore.query import registry
from leadstore.query.registry import FieldInfo, ModelSchema, get_schema

LOGICAL_KEYS = ("AND", "OR", "NOT")


class BaseFilter(ABC):
    """Abstract base for per-kind scalar filters."""

    OPERATORS = frozenset()

    def __init__(self, field: FieldInfo, model_name: Optional[str] = None):
        self.field = field
        self.model_name = model_name

    def _error(self, message: str) -> ValidationError:
        return ValidationError(message, model=self.model_name, field=self.field.name)

    def normalize(self, spec: Any) -> Dict[str, Any]:
        """Turn shorthand values into an operator dict and check operator names."""
        if not isinstance(spec, dict):
            spec = {"equals": spec}
        unknown = set(spec) - self.OPERATORS
        if unknown:
            raise self._error(
                f"Unknown operator(s) {sorted(unknown)} for {self.field.kind} field "
                f"'{self.field.name}'. Available: {sorted(self.OPERATORS)}"
            )
        return spec

    def coerce(self, value: Any) -> Any:
        """Validate a single comparison value."""
        return value

    def _coerce_list(self, op: str, values: Any):
        if not isinstance(values, (list, tuple, set, frozenset)):
            raise self._error(f"'{op}' on '{self.field.name}' expects a list")
        return [self.coerce(v) for v in values]

    def compile(self, expr, spec: Any):
        """
        Compile a filter spec against a column (or any SQL expression).

        Args:
            expr: Column or aggregate expression
            spec: Operator dict or shorthand value

        Returns:
            SQLAlchemy boolean expression
        """
        spec = self.normalize(spec)
        clauses = [
            self.compile_operator(expr, op, value, spec)
            for op, value in spec.items()
            if op != "mode"
        ]
        if not clauses:
            return true()
        return and_(*clauses) if len(clauses) > 1 else clauses[0]

    @abstractmethod
    def compile_operator(self, expr, op: str, value: Any, spec: Dict[str, Any]):
        pass

    def _compile_comparison(self, expr, op: str, value: Any):
        if op == "equals":
            if value is None:
                return expr.is_(None)
            return expr == self.coerce(value)
        if op == "in":
            return expr.in_(self._coerce_list(op, value))
        if op == "not_in":
            return expr.not_in(self._coerce_list(op, value))
        if value is None:
            raise self._error(f"'{op}' on '{self.field.name}' does not accept null")
        value = self.coerce(value)
        if op == "lt":
            return expr < value
        if op == "lte":
            return expr <= value
        if op == "gt":
            return expr > value
        if op == "gte":
            return expr >= value
        raise self._error(f"Unsupported operator '{op}'")

    def _compile_not(self, expr, value: Any, spec: Dict[str, Any]):
        if value is None:
            return expr.is_not(None)
        if isinstance(value, dict):
            nested = dict(value)
            if "mode" in spec and "mode" not in nested and "mode" in self.OPERATORS:
                nested["mode"] = spec["mode"]
            return not_(self.compile(expr, nested))
        return expr != self.coerce(value)


class StringFilter(BaseFilter):
    OPERATORS = frozenset({
        "equals", "in", "not_in", "lt", "lte", "gt", "gte",
        "contains", "starts_with", "ends_with", "mode", "not",
    })

    def coerce(self, value):
        if not isinstance(value, str):
            raise self._error(f"Field '{self.field.name}' expects a string, got {type(value).__name__}")
        return value

    def compile_operator(self, expr, op, value, spec):
        mode = spec.get("mode", "default")
        if mode not in ("default", "insensitive"):
            raise self._error(f"Unknown mode '{mode}'")
        insensitive = mode == "insensitive"

        if op == "not":
            if insensitive and value is not None and not isinstance(value, dict):
                value = {"equals": value}
            return self._compile_not(expr, value, spec)
        if op in ("contains", "starts_with", "ends_with"):
            value = self.coerce(value)
            if insensitive:
                method = {"contains": "icontains", "starts_with": "istartswith", "ends_with": "iendswith"}[op]
            else:
                method = {"contains": "contains", "starts_with": "startswith", "ends_with": "endswith"}[op]
            return getattr(expr, method)(value, autoescape=True)

        if insensitive:
            lowered = func.lower(expr)
            if op == "equals" and value is None:
                return expr.is_(None)
            if op in ("in", "not_in"):
                values = [v.lower() for v in self._coerce_list(op, value)]
                return lowered.in_(values) if op == "in" else lowered.not_in(values)
            return self._compile_comparison(lowered, op, self.coerce(value).lower())
        return self._compile_comparison(expr, op, value)


class NumericFilter(BaseFilter):
    OPERATORS = frozenset({"equals", "in", "not_in", "lt", "lte", "gt", "gte", "not"})

    def coerce(self, value):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise self._error(f"Field '{self.field.name}' expects a number, got {type(value).__name__}")
        return value

    def compile_operator(self, expr, op, value, spec):
        if op == "not":
            return self._compile_not(expr, value, spec)
        return self._compile_comparison(expr, op, value)


class DateTimeFilter(NumericFilter):

    def coerce(self, value):
        if isinstance(value, datetime):
            return as_naive_utc(value)
        if isinstance(value, date):
            return datetime(value.year, value.month, value.day)
        if isinstance(value, str):
            try:
                return as_naive_utc(datetime.fromisoformat(value))
            except ValueError:
                pass
        raise self._error(f"Field '{self.field.name}' expects a datetime, got {value!r}")


class BooleanFilter(BaseFilter):
    OPERATORS = frozenset({"equals", "not"})

    def coerce(self, value):
        if not isinstance(value, bool):
            raise self._error(f"Field '{self.field.name}' expects a boolean, got {type(value).__name__}")
        return value

    def compile_operator(self, expr, op, value, spec):
        if op == "not":
            return self._compile_not(expr, value, spec)
        return self._compile_comparison(expr, op, value)


class EnumFilter(BaseFilter):
    OPERATORS = frozenset({"equals", "in", "not_in", "not"})

    def coerce(self, value):
        enum_class = self.field.python_enum
        if isinstance(value, enum_class):
            return value
        try:
            return enum_class(value)
        except ValueError:
            raise self._error(
                f"Invalid value {value!r} for '{self.field.name}'. "
                f"Allowed: {list(self.field.enum_values)}"
            )

    def compile_operator(self, expr, op, value, spec):
        if op == "not":
            return self._compile_not(expr, value, spec)
        return self._compile_comparison(expr, op, value)


class JsonFilter(BaseFilter):
    """
    Narrow JSON filtering: equality, string matching and type checks,
    optionally at a path inside the document.
    """
    OPERATORS = frozenset({
        "path", "equals", "not", "string_contains", "string_starts_with",
        "string_ends_with", "type",
    })

    JSON_TYPES = {
        "sqlite": {
            "string": ("text",),
            "number": ("integer", "real"),
            "boolean": ("true", "false"),
            "object": ("object",),
            "array": ("array",),
            "null": ("null",),
        },
        "postgresql": {
            "string": ("string",),
            "number": ("number",),
            "boolean": ("boolean",),
            "object": ("object",),
            "array": ("array",),
            "null": ("null",),
        },
    }

    def __init__(self, field: FieldInfo, model_name: Optional[str] = None, dialect_name: str = "postgresql"):
        super().__init__(field, model_name)
        self.dialect_name = dialect_name

    def normalize(self, spec):
        if not isinstance(spec, dict):
            raise self._error(f"JSON field '{self.field.name}' expects a filter object")
        return super().normalize(spec)

    def _path(self, spec):
        path = spec.get("path")
        if path is None:
            return None
        if isinstance(path, str):
            path = path.split(".")
        if not isinstance(path, (list, tuple)) or not path:
            raise self._error("'path' must be a non-empty list of keys")
        return tuple(path)

    def _target(self, expr, path):
        if path is None:
            return expr
        return expr[path] if len(path) > 1 else expr[path[0]]

    def _sqlite_path(self, path) -> str:
        parts = ["$"]
        for key in path or ():
            parts.append(f"[{key}]" if isinstance(key, int) else f'."{key}"')
        return "".join(parts)

    def _compile_equals(self, expr, path, value):
        if path is None:
            if value is None:
                return cast(expr, Text) == "null"
            return cast(expr, Text) == json.dumps(value)
        target = self._target(expr, path)
        if value is None:
            return target.as_string().is_(None)
        if isinstance(value, bool):
            return target.as_boolean() == value
        if isinstance(value, int):
            return target.as_integer() == value
        if isinstance(value, float):
            return target.as_float() == value
        if isinstance(value, str):
            return target.as_string() == value
        raise self._error("Structured equality is only supported on the whole document")

    def _compile_type(self, expr, path, type_name):
        types = self.JSON_TYPES.get(self.dialect_name)
        if types is None:
            raise UnsupportedOperation(
                f"JSON type filters are not supported on '{self.dialect_name}'",
                model=self.model_name,
                field=self.field.name,
            )
        if type_name not in types:
            raise self._error(f"Unknown JSON type '{type_name}'. Available: {sorted(types)}")
        if self.dialect_name == "sqlite":
            json_type = func.json_type(expr, self._sqlite_path(path))
        else:
            json_type = func.json_typeof(self._target(expr, path))
        return json_type.in_(types[type_name])

    def compile_operator(self, expr, op, value, spec):
        path = self._path(spec)
        if op == "path":
            return true()
        if op == "equals":
            return self._compile_equals(expr, path, value)
        if op == "not":
            return not_(self._compile_equals(expr, path, value))
        if op == "type":
            return self._compile_type(expr, path, value)
        if path is None:
            raise self._error(f"'{op}' on a JSON field requires a 'path'")
        if not isinstance(value, str):
            raise self._error(f"'{op}' expects a string")
        target = self._target(expr, path).as_string()
        method = {
            "string_contains": "contains",
            "string_starts_with": "startswith",
            "string_ends_with": "endswith",
        }[op]
        return getattr(target, method)(value, autoescape=True)


# Registry of filter classes per field kind
FILTER_REGISTRY = {
    registry.STRING: StringFilter,
    registry.INT: NumericFilter,
    registry.FLOAT: NumericFilter,
    registry.DATETIME: DateTimeFilter,
    registry.BOOLEAN: BooleanFilter,
    registry.ENUM: EnumFilter,
    registry.JSON_KIND: JsonFilter,
}


def get_filter(field: FieldInfo, model_name: Optional[str] = None, dialect_name: str = "postgresql") -> BaseFilter:
    """
    Factory function to create the filter for a field.

    Raises:
        ValueError: If the field kind has no filter registered
    """
    filter_class = FILTER_REGISTRY.get(field.kind)

    if not filter_class:
        raise ValueError(
            f"Unknown field kind: {field.kind}. "
            f"Available: {list(FILTER_REGISTRY.keys())}"
        )

    if filter_class is JsonFilter:
        return filter_class(field, model_name, dialect_name=dialect_name)
    return filter_class(field, model_name)


class WhereCompiler:
    """Compile ``where`` dicts into SQLAlchemy expressions for one dialect."""

    def __init__(self, dialect_name: str = "postgresql"):
        self.dialect_name = dialect_name

    def compile(self, schema: ModelSchema, where: Optional[Dict[str, Any]]):
        if where is None:
            return true()
        if not isinstance(where, dict):
            raise ValidationError(
                f"'where' must be an object, got {type(where).__name__}",
                model=schema.model_name,
            )

        clauses = []
        for key, value in where.items():
            if key in LOGICAL_KEYS:
                clauses.append(self._compile_logical(schema, key, value))
            elif key in schema.fields:
                field = schema.fields[key]
                flt = get_filter(field, schema.model_name, self.dialect_name)
                clauses.append(flt.compile(schema.column(key), value))
            elif key in schema.relations:
                clauses.append(self._compile_relation(schema, key, value))
            else:
                raise ValidationError(
                    f"Unknown field or relation '{key}' in where for {schema.model_name}",
                    model=schema.model_name,
                    field=key,
                )

        if not clauses:
            return true()
        return and_(*clauses) if len(clauses) > 1 else clauses[0]

    def _as_list(self, schema, key, value):
        if isinstance(value, dict):
            return [value]
        if isinstance(value, (list, tuple)):
            return list(value)
        raise ValidationError(
            f"'{key}' expects an object or a list of objects",
            model=schema.model_name,
            field=key,
        )

    def _compile_logical(self, schema, key, value):
        parts = [self.compile(schema, item) for item in self._as_list(schema, key, value)]
        if key == "AND":
            return and_(true(), *parts)
        if key == "OR":
            return or_(false(), *parts)
        # NOT: none of the given filters may match
        return and_(true(), *[not_(part) for part in parts])

    def _compile_relation(self, schema, key, value):
        relation = schema.relation(key)
        target = get_schema(relation.target)
        attr = getattr(schema.model, key)

        if relation.to_many:
            if not isinstance(value, dict) or not value or set(value) - {"some", "every", "none"}:
                raise ValidationError(
                    f"To-many relation filter '{key}' expects 'some', 'every' or 'none'",
                    model=schema.model_name,
                    field=key,
                )
            clauses = []
            for op, nested in value.items():
                condition = self.compile(target, nested)
                if op == "some":
                    clauses.append(attr.any(condition))
                elif op == "none":
                    clauses.append(not_(attr.any(condition)))
                else:
                    clauses.append(not_(attr.any(not_(condition))))
            return and_(*clauses) if len(clauses) > 1 else clauses[0]

        local_columns = [schema.column(col) for col in relation.local_columns]

        def _is_null():
            if relation.required:
                raise ValidationError(
                    f"Required relation '{key}' cannot be filtered by null",
                    model=schema.model_name,
                    field=key,
                )
            return and_(*[col.is_(None) for col in local_columns])

        if value is None:
            return _is_null()
        if not isinstance(value, dict):
            raise ValidationError(
                f"Relation filter '{key}' expects an object",
                model=schema.model_name,
                field=key,
            )
        if set(value) & {"is", "is_not"}:
            if set(value) - {"is", "is_not"}:
                raise ValidationError(
                    f"Relation filter '{key}' mixes 'is'/'is_not' with field filters",
                    model=schema.model_name,
                    field=key,
                )
            clauses = []
            if "is" in value:
                nested = value["is"]
                clauses.append(_is_null() if nested is None else attr.has(self.compile(target, nested)))
            if "is_not" in value:
                nested = value["is_not"]
                clauses.append(not_(_is_null()) if nested is None else not_(attr.has(self.compile(target, nested))))
            return and_(*clauses) if len(clauses) > 1 else clauses[0]
        return attr.has(self.compile(target, value))


def _is_equality(value: Any) -> bool:
    if isinstance(value, enum.Enum):
        return True
    if isinstance(value, dict):
        return set(value) == {"equals"} and value["equals"] is not None
    return value is not None


def validate_unique_where(schema: ModelSchema, where: Any) -> Dict[str, Any]:
    """
    Check a unique-lookup filter: at least one equality on the primary key or
    a unique column. Additional conditions are allowed.

    Raises:
        ValidationError: If no unique field is pinned
    """
    if not isinstance(where, dict) or not where:
        raise ValidationError(
            f"Unique lookup on {schema.model_name} requires a non-empty 'where'",
            model=schema.model_name,
        )
    pinned = [k for k in schema.unique_fields if k in where and _is_equality(where[k])]
    if not pinned:
        raise ValidationError(
            f"Unique lookup on {schema.model_name} must pin one of {list(schema.unique_fields)}",
            model=schema.model_name,
            details={"given": sorted(where)},
        )
    return where
