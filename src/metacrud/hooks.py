"""Lifecycle hooks and the context objects passed to them.

Every hook receives exactly one context dataclass whose fields are named,
so a hook never has to guess argument positions. Hooks may return ``None``
(success), a ``Result``, or a plain ``{"code", "err"}`` mapping. A non-success
result from a ``before_*`` hook or from ``list_query`` aborts the operation
and is returned to the caller unchanged. ``after_read`` instead returns an
optional replacement record.

``list_query`` receives a ``ListContext`` that carries no entity or storage
handle. It can only return a filter mapping (or a ``Result`` to abort), and
the engine copies whatever it returns before use.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, fields
from typing import TYPE_CHECKING, Any

from metacrud.core.types import Result

if TYPE_CHECKING:
    from metacrud.core.engine import Entity
    from metacrud.permissions import Caller


@dataclass
class CreateContext:
    entity: Entity
    caller: Caller | None
    data: dict[str, Any]
    record: dict[str, Any] | None = None


@dataclass
class UpdateContext:
    entity: Entity
    caller: Caller | None
    id: str
    data: dict[str, Any]
    record: dict[str, Any] | None = None


@dataclass
class BatchUpdateContext:
    entity: Entity
    caller: Caller | None
    ids: list[str]
    data: dict[str, Any]


@dataclass
class DeleteContext:
    entity: Entity
    caller: Caller | None
    ids: list[str]


@dataclass
class CloneContext:
    entity: Entity
    caller: Caller | None
    source_id: str
    data: dict[str, Any]
    record: dict[str, Any] | None = None


@dataclass(frozen=True)
class ListContext:
    """Context for ``list_query``: caller identity and the search params only."""

    caller: Caller | None
    params: Mapping[str, Any]


@dataclass
class ReadContext:
    caller: Caller | None
    record: dict[str, Any]


HookResult = Result | None
ListQueryResult = Mapping[str, Any] | Result | None


@dataclass(frozen=True)
class Hooks:
    """Callbacks attached to an entity.

    ``create``, ``update``, ``delete`` and ``clone`` replace the default
    storage write when set and must return a ``Result``.
    """

    before_create: Callable[[CreateContext], HookResult] | None = None
    after_create: Callable[[CreateContext], HookResult] | None = None
    create: Callable[[CreateContext], Result] | None = None

    before_update: Callable[[UpdateContext], HookResult] | None = None
    after_update: Callable[[UpdateContext], HookResult] | None = None
    update: Callable[[UpdateContext], Result] | None = None

    before_batch_update: Callable[[BatchUpdateContext], HookResult] | None = None
    after_batch_update: Callable[[BatchUpdateContext], HookResult] | None = None

    before_delete: Callable[[DeleteContext], HookResult] | None = None
    after_delete: Callable[[DeleteContext], HookResult] | None = None
    delete: Callable[[DeleteContext], Result] | None = None

    before_clone: Callable[[CloneContext], HookResult] | None = None
    after_clone: Callable[[CloneContext], HookResult] | None = None
    clone: Callable[[CloneContext], Result] | None = None

    list_query: Callable[[ListContext], ListQueryResult] | None = None
    after_read: Callable[[ReadContext], dict[str, Any] | None] | None = None

    @classmethod
    def names(cls) -> list[str]:
        """Return all hook names."""
        return [f.name for f in fields(cls)]

    @classmethod
    def coerce(cls, value: Any) -> Hooks:
        """Build hooks from ``None``, a ``Hooks`` instance or a name->callable mapping."""
        if value is None:
            return cls()
        if isinstance(value, Hooks):
            return value
        if isinstance(value, Mapping):
            unknown = sorted(set(value) - set(cls.names()))
            if unknown:
                raise ValueError(
                    f"unknown hook(s) {', '.join(unknown)}; valid hooks: {', '.join(cls.names())}"
                )
            for name, hook in value.items():
                if hook is not None and not callable(hook):
                    raise ValueError(f"hook '{name}' is not callable")
            return cls(**value)
        raise ValueError(f"hooks must be a Hooks instance or a mapping, got {type(value).__name__}")

    def declared(self) -> list[str]:
        """Names of the hooks that are set."""
        return [f.name for f in fields(self) if getattr(self, f.name) is not None]


def as_result(value: Any) -> Result | None:
    """Read a before/after hook's return value.

    A plain ``{"code": ..., "err": ...}`` mapping counts as a ``Result``.

    Raises:
        TypeError: For any other value that is not ``None``
    """
    if value is None or isinstance(value, Result):
        return value
    if isinstance(value, Mapping) and "code" in value:
        return Result.model_validate(dict(value))
    raise TypeError(f"hook returned {type(value).__name__}; expected a Result or None")


def is_abort(result: Any) -> bool:
    """True when a hook returned a non-success ``Result``."""
    return isinstance(result, Result) and not result.ok
