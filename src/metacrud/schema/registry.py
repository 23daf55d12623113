"""Schema registry: holds every entity definition for the process."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from metacrud.core.types import EntityInfo, EntitySpec
from metacrud.exceptions import (
    EntityNotFoundError,
    RegistryFrozenError,
    SchemaDefinitionError,
    SchemaValidationError,
)
from metacrud.fieldtypes.registry import TypeRegistry
from metacrud.schema.meta import BackReference, EntityMeta

logger = logging.getLogger(__name__)


def _format_pydantic_errors(error: PydanticValidationError) -> list[str]:
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"])
        if item["type"] == "extra_forbidden":
            problems.append(f"unknown attribute '{location}'")
        else:
            message = item["msg"].removeprefix("Value error, ")
            problems.append(f"{location}: {message}" if location else message)
    return problems


class SchemaRegistry:
    """Registry of entity metadata.

    Lifecycle: build it from a populated ``TypeRegistry`` (which freezes the
    types), ``register`` every entity, then call ``validate_all`` once. After
    validation the registry is read-only.
    """

    def __init__(self, types: TypeRegistry) -> None:
        """Initialize the registry.

        Args:
            types: Type registry every field type is resolved against. It is
                frozen here so no type can appear after entities use it.
        """
        types.freeze()
        self._types = types
        self._entities: dict[str, EntityMeta] = {}
        self._validated = False

    @property
    def types(self) -> TypeRegistry:
        return self._types

    @property
    def validated(self) -> bool:
        return self._validated

    def register(self, definition: EntitySpec | Mapping[str, Any]) -> EntityMeta:
        """Register an entity definition.

        Args:
            definition: ``EntitySpec`` or a dict in the same shape

        Returns:
            The registered ``EntityMeta``

        Raises:
            RegistryFrozenError: If ``validate_all`` already ran
            SchemaDefinitionError: If the definition is invalid
        """
        collection = (
            definition.collection
            if isinstance(definition, EntitySpec)
            else definition.get("collection")
        )
        if self._validated:
            raise RegistryFrozenError(str(collection))

        if isinstance(definition, EntitySpec):
            spec = definition
        else:
            try:
                spec = EntitySpec.model_validate(dict(definition))
            except PydanticValidationError as e:
                raise SchemaDefinitionError(collection, _format_pydantic_errors(e)) from e

        problems = self._check_definition(spec)
        if problems:
            raise SchemaDefinitionError(spec.collection, problems)

        meta = EntityMeta(spec)
        self._entities[spec.collection] = meta

        # Back-references are attached to targets already present; the rest
        # are attached by validate_all once every entity is known.
        for field in meta.ref_fields:
            target = self._entities.get(field.ref or "")
            if target is not None:
                self._add_back_reference(target, meta, field.name)
        for other in self._entities.values():
            if other is meta:
                continue
            for field in other.ref_fields:
                if field.ref == meta.collection:
                    self._add_back_reference(meta, other, field.name)

        logger.debug("Registered entity %s with %d fields", spec.collection, len(spec.fields))
        return meta

    def _add_back_reference(self, target: EntityMeta, source: EntityMeta, field_name: str) -> None:
        field = source.field(field_name)
        ref = BackReference(
            collection=source.collection,
            field=field_name,
            policy=field.delete,
            multi=source.is_multi_ref(field),
        )
        if ref not in target.ref_by:
            target.ref_by.append(ref)

    def _check_definition(self, spec: EntitySpec) -> list[str]:
        """Checks that only need the definition itself and the type registry."""
        problems: list[str] = []

        if spec.collection in self._entities:
            problems.append(f"collection '{spec.collection}' is already registered")

        seen: set[str] = set()
        for field in spec.fields:
            if field.name in seen:
                problems.append(f"duplicate field '{field.name}'")
            seen.add(field.name)

        for key in spec.primary_keys:
            if key not in seen:
                problems.append(f"primary key '{key}' is not a declared field")

        for field in spec.fields:
            if field.is_link:
                continue
            if field.type not in self._types:
                problems.append(
                    f"field '{field.name}' has unknown type '{field.type}'; "
                    f"available types: {', '.join(self._types.names())}"
                )
                continue
            if field.default is not None:
                converted = self._types.convert(field.type, field.default)
                if not converted.ok:
                    problems.append(
                        f"default of field '{field.name}' is not a valid {field.type}: "
                        f"{converted.err}"
                    )

        return problems

    def validate_all(self) -> None:
        """Cross-check every registered entity and freeze the registry.

        Raises:
            SchemaValidationError: Listing every problem found
        """
        problems: list[str] = []

        for meta in self._entities.values():
            name = meta.collection
            for field in meta.fields:
                if field.ref is not None and field.ref not in self._entities:
                    problems.append(
                        f"{name}.{field.name} references unknown collection '{field.ref}'"
                    )
                if field.is_link:
                    problems.extend(self._check_link(meta, field.name, field.link or ""))

            if meta.ref_label is not None and not meta.has_field(meta.ref_label):
                problems.append(f"{name}: ref_label '{meta.ref_label}' is not a declared field")
            if meta.user_field is not None and not meta.has_field(meta.user_field):
                problems.append(f"{name}: user_field '{meta.user_field}' is not a declared field")
            problems.extend(f"{name}: {problem}" for problem in meta.role_problems)

        if problems:
            raise SchemaValidationError(problems)

        self._validated = True
        logger.info("Validated %d entities: %s", len(self._entities), ", ".join(self.names()))

    def _check_link(self, meta: EntityMeta, field_name: str, via: str) -> list[str]:
        name = meta.collection
        if not meta.has_field(via):
            return [f"{name}.{field_name} links via undeclared field '{via}'"]
        via_field = meta.field(via)
        if via_field.ref is None or via_field.is_link:
            return [f"{name}.{field_name} links via '{via}', which is not a reference field"]
        target = self._entities.get(via_field.ref)
        if target is None:
            # Reported as an unknown reference already
            return []
        if not target.has_field(field_name):
            return [
                f"{name}.{field_name} links to '{via_field.ref}', "
                f"which has no field '{field_name}'"
            ]
        return []

    def lookup(self, collection: str) -> EntityMeta:
        """Get an entity by collection name.

        Raises:
            EntityNotFoundError: If the collection is not registered
        """
        try:
            return self._entities[collection]
        except KeyError:
            raise EntityNotFoundError(collection, self.names()) from None

    def names(self) -> list[str]:
        return list(self._entities)

    def __contains__(self, collection: object) -> bool:
        return collection in self._entities

    def __iter__(self):
        return iter(self._entities.values())

    def __len__(self) -> int:
        return len(self._entities)

    def describe(self) -> dict[str, EntityInfo]:
        """Summaries of every registered entity."""
        return {name: meta.to_info() for name, meta in self._entities.items()}
