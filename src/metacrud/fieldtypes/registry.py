"""Named conversion rules for field values."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from metacrud.exceptions import DuplicateTypeError, TypeNotFoundError, TypeRegistryFrozenError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Converted:
    """Outcome of a conversion: either ``value`` or ``err`` is meaningful."""

    value: Any = None
    err: str | None = None

    @property
    def ok(self) -> bool:
        return self.err is None


def ok(value: Any) -> Converted:
    return Converted(value=value)


def fail(message: str) -> Converted:
    return Converted(err=message)


@dataclass(frozen=True)
class RegisteredType:
    """A named conversion rule mapping raw input to a typed value or an error."""

    name: str
    converter: Callable[[Any], Converted]
    description: str | None = None

    def convert(self, value: Any) -> Converted:
        """Convert a raw value.

        Converters that raise ``ValueError``, ``TypeError`` or
        ``OverflowError`` are reported as a failed conversion rather than
        propagated.
        """
        try:
            return self.converter(value)
        except (TypeError, ValueError, OverflowError) as e:
            return fail(f"invalid {self.name} value {value!r}: {e}")


class TypeRegistry:
    """Lookup table of registered types.

    Populated during application start-up, then frozen when a
    ``SchemaRegistry`` is built from it.
    """

    def __init__(self, types: Iterable[RegisteredType] = ()) -> None:
        self._types: dict[str, RegisteredType] = {}
        self._frozen = False
        for registered in types:
            self.register(registered)

    @classmethod
    def default(cls, password_salt: str = "") -> TypeRegistry:
        """Create a registry holding the built-in types."""
        from metacrud.fieldtypes.builtin import builtin_types

        return cls(builtin_types(password_salt=password_salt))

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, registered: RegisteredType) -> RegisteredType:
        """Register a type.

        Raises:
            TypeRegistryFrozenError: If the registry is frozen
            DuplicateTypeError: If the name is taken
        """
        if self._frozen:
            raise TypeRegistryFrozenError(registered.name)
        if registered.name in self._types:
            raise DuplicateTypeError(registered.name)
        self._types[registered.name] = registered
        logger.debug("Registered type %s", registered.name)
        return registered

    def get(self, name: str) -> RegisteredType:
        """Get a type by name.

        Raises:
            TypeNotFoundError: If no type has that name
        """
        try:
            return self._types[name]
        except KeyError:
            raise TypeNotFoundError(name, self.names()) from None

    def names(self) -> list[str]:
        return sorted(self._types)

    def freeze(self) -> None:
        self._frozen = True

    def __contains__(self, name: object) -> bool:
        return name in self._types

    def convert(self, type_name: str, value: Any) -> Converted:
        return self.get(type_name).convert(value)
