"""Field subsets derived from an entity's field list.

All functions are pure. A visibility flag left unset behaves as True; ``sys``
fields never leave the server and ``secure`` fields are never listed or
searched. Link fields are read-only and only appear where records are shown.
"""

from __future__ import annotations

from collections.abc import Sequence

from metacrud.core.types import FieldSpec


def create_fields(fields: Sequence[FieldSpec]) -> list[FieldSpec]:
    return [f for f in fields if f.create and not f.sys and not f.is_link]


def update_fields(fields: Sequence[FieldSpec]) -> list[FieldSpec]:
    return [f for f in fields if f.update and not f.sys and not f.is_link]


def search_fields(fields: Sequence[FieldSpec]) -> list[FieldSpec]:
    return [f for f in fields if f.search and not f.sys and not f.secure and not f.is_link]


def clone_fields(fields: Sequence[FieldSpec]) -> list[FieldSpec]:
    return [f for f in fields if f.clone and not f.sys and not f.is_link]


def list_fields(fields: Sequence[FieldSpec]) -> list[FieldSpec]:
    return [f for f in fields if f.list and not f.sys and not f.secure]


def client_fields(fields: Sequence[FieldSpec]) -> list[FieldSpec]:
    """Fields a client may know about (everything except ``sys``)."""
    return [f for f in fields if not f.sys]


def property_fields(fields: Sequence[FieldSpec]) -> list[FieldSpec]:
    """Fields whose values may be returned to a client."""
    return [f for f in fields if not f.sys and not f.secure]


def ref_fields(fields: Sequence[FieldSpec]) -> list[FieldSpec]:
    return [f for f in fields if f.is_ref and not f.is_link]


def link_fields(fields: Sequence[FieldSpec]) -> list[FieldSpec]:
    return [f for f in fields if f.is_link]


def required_fields(fields: Sequence[FieldSpec]) -> list[FieldSpec]:
    return [f for f in fields if f.required and not f.is_link]


def names(fields: Sequence[FieldSpec]) -> list[str]:
    return [f.name for f in fields]
