"""Custom exceptions for metacrud.

Definition-time problems (bad entity declarations, unknown types, missing
collections) are raised as exceptions. Request-time problems are returned as
``Result`` envelopes by ``Entity`` operations; the exceptions below that carry
a ``code`` are raised inside the pipeline and converted at its boundary.
"""

from __future__ import annotations

from typing import Any

from metacrud.core.codes import Code


class MetaCrudError(Exception):
    """Base exception for all metacrud errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Return error as JSON-serializable dict."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
        }


class ConnectionError(MetaCrudError):
    """Failed to connect to the database."""

    pass


class QueryError(MetaCrudError):
    """Storage query execution failed."""

    pass


# === Type registry ===


class TypeNotFoundError(MetaCrudError):
    """Type name is not registered."""

    def __init__(self, type_name: str, available_types: list[str] | None = None) -> None:
        available = available_types or []
        message = f"Type '{type_name}' is not registered."
        if available:
            message += f" Available types: {', '.join(available)}"
        super().__init__(message, {"type_name": type_name, "available_types": available})
        self.type_name = type_name
        self.available_types = available


class DuplicateTypeError(MetaCrudError):
    """A type with the same name is already registered."""

    def __init__(self, type_name: str) -> None:
        super().__init__(
            f"Type '{type_name}' is already registered. Choose a different name.",
            {"type_name": type_name},
        )
        self.type_name = type_name


class TypeRegistryFrozenError(MetaCrudError):
    """Type registered after the schema registry took ownership of the types."""

    def __init__(self, type_name: str) -> None:
        super().__init__(
            f"Cannot register type '{type_name}': the type registry is frozen. "
            "Register custom types before creating the SchemaRegistry.",
            {"type_name": type_name},
        )
        self.type_name = type_name


# === Schema registry ===


class SchemaDefinitionError(MetaCrudError):
    """An entity definition was rejected at registration."""

    def __init__(self, collection: str | None, problems: list[str]) -> None:
        name = collection or "<unnamed>"
        message = f"Invalid definition for '{name}': " + "; ".join(problems)
        super().__init__(message, {"collection": collection, "problems": problems})
        self.collection = collection
        self.problems = problems


class SchemaValidationError(MetaCrudError):
    """Cross-entity validation failed after all collections were registered."""

    def __init__(self, problems: list[str]) -> None:
        message = f"Schema validation failed with {len(problems)} problem(s): " + "; ".join(
            problems
        )
        super().__init__(message, {"problems": problems})
        self.problems = problems


class RegistryFrozenError(MetaCrudError):
    """Collection registered after validate_all()."""

    def __init__(self, collection: str) -> None:
        super().__init__(
            f"Cannot register '{collection}': the schema registry is already validated.",
            {"collection": collection},
        )
        self.collection = collection


class RegistryNotValidatedError(MetaCrudError):
    """Request handling attempted before validate_all()."""

    def __init__(self) -> None:
        super().__init__("Schema registry is not validated. Call validate_all() first.")


class EntityNotFoundError(MetaCrudError):
    """Entity does not exist."""

    def __init__(self, entity_name: str, available_entities: list[str] | None = None) -> None:
        available = available_entities or []
        if available:
            message = (
                f"Entity '{entity_name}' not found. Available entities: {', '.join(available)}"
            )
        else:
            message = f"Entity '{entity_name}' not found. No entities registered yet."

        super().__init__(message, {"entity_name": entity_name, "available_entities": available})
        self.entity_name = entity_name
        self.available_entities = available


class FieldNotFoundError(MetaCrudError):
    """Field does not exist on entity."""

    def __init__(
        self, field_name: str, entity_name: str, available_fields: list[str] | None = None
    ) -> None:
        available = available_fields or []
        if available:
            message = (
                f"Field '{field_name}' not found on '{entity_name}'. "
                f"Available fields: {', '.join(available)}"
            )
        else:
            message = f"Field '{field_name}' not found on '{entity_name}'. No fields defined."

        super().__init__(
            message,
            {
                "field_name": field_name,
                "entity_name": entity_name,
                "available_fields": available,
            },
        )
        self.field_name = field_name
        self.entity_name = entity_name
        self.available_fields = available


# === Request pipeline ===


class OperationError(MetaCrudError):
    """Failure raised inside an operation pipeline and surfaced as a Result."""

    code: int = Code.ERROR

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message, context)


class ReferenceError(OperationError):
    """A reference value could not be resolved to exactly one record."""

    def __init__(self, code: Code, entity_name: str, field_name: str, value: Any) -> None:
        if code == Code.REF_NOT_UNIQUE:
            message = (
                f"Reference '{field_name}' on '{entity_name}': value '{value}' "
                "matches more than one record. Use the record id instead."
            )
        else:
            message = (
                f"Reference '{field_name}' on '{entity_name}': no record found "
                f"for '{value}'."
            )
        super().__init__(
            message, {"entity_name": entity_name, "field_name": field_name, "value": value}
        )
        self.code = code
        self.field_name = field_name
        self.value = value


class HasReferenceError(OperationError):
    """Delete blocked by records that reference the target without a delete policy."""

    code = Code.HAS_REF

    def __init__(self, entity_name: str, blocking: list[str]) -> None:
        message = (
            f"Cannot delete from '{entity_name}': referenced by {', '.join(blocking)}. "
            "Delete the referencing records first or declare a delete policy."
        )
        super().__init__(message, {"entity_name": entity_name, "blocking": blocking})
        self.entity_name = entity_name
        self.blocking = blocking


class RecordNotFoundError(OperationError):
    """Record with given ID does not exist."""

    code = Code.NOT_FOUND

    def __init__(self, record_id: str, entity_name: str) -> None:
        message = f"Record '{record_id}' not found in '{entity_name}'."
        super().__init__(message, {"record_id": record_id, "entity_name": entity_name})
        self.record_id = record_id
        self.entity_name = entity_name
