"""Registered entity metadata."""

from __future__ import annotations

from dataclasses import dataclass
from functools import cached_property

from metacrud.core.types import EntityInfo, EntitySpec, FieldInfo, FieldSpec
from metacrud.exceptions import FieldNotFoundError
from metacrud.hooks import Hooks
from metacrud.permissions import Mode, parse_role_modes, server_mode
from metacrud.schema import fields as fieldsets


@dataclass(frozen=True)
class BackReference:
    """A field in another entity that references this one."""

    collection: str
    field: str
    policy: str | None = None  # DeletePolicy value, None when undeclared
    multi: bool = False


class EntityMeta:
    """An entity definition plus everything derived from it.

    Built by ``SchemaRegistry.register``. The back-reference list is filled
    while other entities register; after ``validate_all`` nothing changes.
    """

    def __init__(self, spec: EntitySpec) -> None:
        self.spec = spec
        self.hooks: Hooks = spec.hooks if spec.hooks is not None else Hooks()
        self.server_mode: Mode = server_mode(spec)
        self.ref_by: list[BackReference] = []
        self._field_map = {f.name: f for f in spec.fields}

        self.role_problems: list[str] = []
        self.role_modes: dict[str, Mode] | None = None
        if spec.roles is not None:
            try:
                self.role_modes = parse_role_modes(spec.roles)
            except ValueError as e:
                self.role_problems.append(str(e))
                self.role_modes = {}

    def __repr__(self) -> str:
        return f"EntityMeta({self.collection!r})"

    @property
    def collection(self) -> str:
        return self.spec.collection

    @property
    def fields(self) -> list[FieldSpec]:
        return self.spec.fields

    @property
    def primary_keys(self) -> list[str]:
        return self.spec.primary_keys

    @property
    def ref_label(self) -> str | None:
        return self.spec.ref_label

    @property
    def user_field(self) -> str | None:
        return self.spec.user_field

    def has_field(self, name: str) -> bool:
        return name in self._field_map

    def field(self, name: str) -> FieldSpec:
        """Get a field by name.

        Raises:
            FieldNotFoundError: If the entity has no such field
        """
        try:
            return self._field_map[name]
        except KeyError:
            raise FieldNotFoundError(name, self.collection, list(self._field_map)) from None

    def is_multi_ref(self, field: FieldSpec) -> bool:
        return field.is_ref and field.type == "array"

    # Derived field sets, computed once

    @cached_property
    def create_fields(self) -> list[FieldSpec]:
        return fieldsets.create_fields(self.fields)

    @cached_property
    def update_fields(self) -> list[FieldSpec]:
        return fieldsets.update_fields(self.fields)

    @cached_property
    def search_fields(self) -> list[FieldSpec]:
        return fieldsets.search_fields(self.fields)

    @cached_property
    def clone_fields(self) -> list[FieldSpec]:
        return fieldsets.clone_fields(self.fields)

    @cached_property
    def list_fields(self) -> list[FieldSpec]:
        return fieldsets.list_fields(self.fields)

    @cached_property
    def client_fields(self) -> list[FieldSpec]:
        return fieldsets.client_fields(self.fields)

    @cached_property
    def property_fields(self) -> list[FieldSpec]:
        return fieldsets.property_fields(self.fields)

    @cached_property
    def ref_fields(self) -> list[FieldSpec]:
        return fieldsets.ref_fields(self.fields)

    @cached_property
    def link_fields(self) -> list[FieldSpec]:
        return fieldsets.link_fields(self.fields)

    @cached_property
    def required_fields(self) -> list[FieldSpec]:
        return fieldsets.required_fields(self.fields)

    @cached_property
    def stored_fields(self) -> list[FieldSpec]:
        """Fields persisted in the record (everything except link fields)."""
        return [f for f in self.fields if not f.is_link]

    def to_info(self, mode: Mode | None = None) -> EntityInfo:
        """Describe the entity for clients. Only ``client_fields`` are included."""
        return EntityInfo(
            collection=self.collection,
            description=self.spec.description,
            primary_keys=list(self.primary_keys),
            ref_label=self.ref_label,
            user_field=self.user_field,
            mode=(mode if mode is not None else self.server_mode).to_string(),
            fields=[
                FieldInfo(
                    name=f.name,
                    type=f.type,
                    required=f.required,
                    default=None if f.secure else f.default,
                    ref=f.ref,
                    link=f.link,
                    delete=f.delete,
                    view=f.view,
                    create=f in self.create_fields,
                    update=f in self.update_fields,
                    search=f in self.search_fields,
                    clone=f in self.clone_fields,
                    list=f in self.list_fields,
                )
                for f in self.client_fields
            ],
            ref_by=sorted({f"{ref.collection}.{ref.field}" for ref in self.ref_by}),
        )
