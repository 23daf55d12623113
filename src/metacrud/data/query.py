"""SQL filter and ordering expressions over the JSON ``data`` column.

Field values live in one JSON document per row (JSONB on PostgreSQL). The
builder turns filter operators into SQLAlchemy expressions for either
dialect, so filtering, ordering and paging all run in the database.

Operator semantics:

* ``eq`` is type-strict; against a list-valued field it matches when the
  list contains the operand. ``ne`` is its negation.
* ``gt``/``gte``/``lt``/``lte`` only match values of the operand's kind
  (numbers against numbers, strings against strings).
* ``like`` is a case-insensitive substring match on string values.
* ``in`` matches when the value, or any element of a list value, is one of
  the candidates.
* ``is_null`` treats a missing key like a JSON null.
"""

from __future__ import annotations

import json
import operator
from collections.abc import Mapping
from typing import Any

from sqlalchemy import Numeric, and_, case, cast, false, func, literal, not_, or_, select, true
from sqlalchemy.dialects.postgresql import JSONB

from metacrud.exceptions import QueryError
from metacrud.schema.models import Record

OPERATORS: dict[str, str] = {
    "eq": "=",
    "ne": "!=",
    "gt": ">",
    "gte": ">=",
    "lt": "<",
    "lte": "<=",
    "like": "ILIKE",
    "in": "IN",
    "is_null": "IS NULL",
}

_COMPARISONS = {
    "gt": operator.gt,
    "gte": operator.ge,
    "lt": operator.lt,
    "lte": operator.le,
}

# Value kinds as reported by json_type() (SQLite) and jsonb_typeof() (PostgreSQL)
_SQLITE_KINDS = {
    "boolean": ("true", "false"),
    "number": ("integer", "real"),
    "string": ("text",),
}
_POSTGRESQL_KINDS = {
    "boolean": ("boolean",),
    "number": ("number",),
    "string": ("string",),
}


def _operand_kind(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, dict)):
        return "document"
    raise QueryError(f"Unsupported filter value {value!r}")


def _candidates(value: Any) -> list[Any]:
    if isinstance(value, (list, tuple, set)):
        return list(value)
    return [value]


def _path(field_name: str) -> str:
    return f'$."{field_name}"'


def _contains_pattern(text: str) -> str:
    escaped = text.replace("/", "//").replace("%", "/%").replace("_", "/_")
    return f"%{escaped}%"


def split_condition(condition: Any) -> tuple[str, Any]:
    """``(op, value)`` of a filter value; plain values mean equality."""
    if isinstance(condition, Mapping) and "op" in condition:
        return condition["op"], condition.get("value")
    return "eq", condition


class JSONFilterBuilder:
    """Builds WHERE and ORDER BY clauses for one dialect."""

    def __init__(self, dialect: str) -> None:
        self._is_postgresql = dialect == "postgresql"

    def where(self, filters: Mapping[str, Any] | None) -> list[Any]:
        """One clause per filtered field; the caller ANDs them together."""
        clauses = []
        for field_name, condition in (filters or {}).items():
            op, value = split_condition(condition)
            if field_name == "id":
                clauses.append(self._id_filter(op, value))
            else:
                clauses.append(self._json_filter(field_name, op, value))
        return clauses

    def order_by(self, field_name: str | None, desc: bool = False) -> list[Any]:
        """Ordering with missing values first, ties broken by insertion order."""
        keys: list[Any] = []
        if field_name == "id":
            keys.append(Record.id.desc() if desc else Record.id.asc())
        elif field_name:
            keys.append(self._sort_key(field_name, desc))
        for column in (Record.created_at, Record.id):
            keys.append(column.desc() if desc else column.asc())
        return keys

    # === System columns ===

    def _id_filter(self, op: str, value: Any) -> Any:
        column = Record.id
        if op == "eq":
            return column.is_(None) if value is None else column == str(value)
        if op == "ne":
            return column != str(value)
        if op == "in":
            return column.in_([str(v) for v in _candidates(value)])
        if op in _COMPARISONS:
            return _COMPARISONS[op](column, str(value))
        if op == "like":
            return column.ilike(_contains_pattern(str(value)), escape="/")
        if op == "is_null":
            return false() if value else true()
        raise QueryError(f"Unknown operator '{op}'. Valid operators: {', '.join(OPERATORS)}")

    # === JSON fields ===

    def _json_filter(self, field_name: str, op: str, value: Any) -> Any:
        if op == "eq":
            return self._equals(field_name, value)
        if op == "ne":
            return not_(self._equals(field_name, value))
        if op in _COMPARISONS:
            return self._compare(field_name, op, value)
        if op == "like":
            return self._like(field_name, value)
        if op == "in":
            candidates = _candidates(value)
            if not candidates:
                return false()
            return or_(*(self._equals(field_name, c) for c in candidates))
        if op == "is_null":
            missing = func.coalesce(self._typeof(field_name), "null") == "null"
            return missing if value else not_(missing)
        raise QueryError(f"Unknown operator '{op}'. Valid operators: {', '.join(OPERATORS)}")

    def _typeof(self, field_name: str) -> Any:
        if self._is_postgresql:
            return func.jsonb_typeof(Record.data[field_name])
        return func.json_type(Record.data, _path(field_name))

    def _kinds(self, kind: str) -> tuple[str, ...]:
        return (_POSTGRESQL_KINDS if self._is_postgresql else _SQLITE_KINDS)[kind]

    def _equals(self, field_name: str, value: Any) -> Any:
        if value is None:
            return self._json_filter(field_name, "is_null", True)
        kind = _operand_kind(value)

        if self._is_postgresql:
            if kind == "document":
                return func.coalesce(Record.data[field_name] == cast(value, JSONB), false())
            # Containment covers both a scalar value and a list holding it
            return or_(
                Record.data.op("@>")(cast({field_name: value}, JSONB)),
                Record.data.op("@>")(cast({field_name: [value]}, JSONB)),
            )

        path = _path(field_name)
        stored_kind = func.coalesce(func.json_type(Record.data, path), "null")
        if kind == "document":
            return and_(
                stored_kind.in_(("array", "object")),
                func.json_extract(Record.data, path) == func.json(json.dumps(value)),
            )
        # json_each yields a scalar itself, or each element of an array
        elements = func.json_each(Record.data, path).table_valued("value", "type")
        operand = int(value) if kind == "boolean" else value
        contains = (
            select(literal(1))
            .select_from(elements)
            .where(elements.c.type.in_(self._kinds(kind)), elements.c.value == operand)
            .exists()
        )
        return and_(stored_kind != "object", contains)

    def _compare(self, field_name: str, op: str, value: Any) -> Any:
        kind = _operand_kind(value)
        if kind not in ("number", "string"):
            raise QueryError(f"Cannot apply '{op}' to {value!r}; use a number or a string")
        compare = _COMPARISONS[op]

        if self._is_postgresql:
            element = Record.data[field_name]
            if kind == "number":
                # Cast only values that are numbers
                is_number = func.jsonb_typeof(element) == "number"
                number = case((is_number, cast(element.astext, Numeric)))
                return func.coalesce(compare(number, value), false())
            return func.coalesce(
                and_(func.jsonb_typeof(element) == "string", compare(element.astext, value)),
                false(),
            )

        path = _path(field_name)
        return and_(
            func.coalesce(func.json_type(Record.data, path), "null").in_(self._kinds(kind)),
            compare(func.json_extract(Record.data, path), value),
        )

    def _like(self, field_name: str, value: Any) -> Any:
        pattern = _contains_pattern(str(value))
        if self._is_postgresql:
            element = Record.data[field_name]
            return func.coalesce(
                and_(
                    func.jsonb_typeof(element) == "string",
                    element.astext.ilike(pattern, escape="/"),
                ),
                false(),
            )
        path = _path(field_name)
        return and_(
            func.coalesce(func.json_type(Record.data, path), "null") == "text",
            func.json_extract(Record.data, path).ilike(pattern, escape="/"),
        )

    def _sort_key(self, field_name: str, desc: bool) -> Any:
        if self._is_postgresql:
            # jsonb ordering: null < string < number < boolean < array < object
            element = Record.data[field_name]
            return element.desc().nulls_last() if desc else element.asc().nulls_first()
        # SQLite orders NULL < numbers < text, NULL first ascending
        extracted = func.json_extract(Record.data, _path(field_name))
        return extracted.desc() if desc else extracted.asc()
