"""Main metacrud engine and Entity class."""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable, Iterable, Mapping
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from metacrud.core.codes import Code
from metacrud.core.connection import DatabaseConnection
from metacrud.core.types import EntityInfo, FieldSpec, Result, RoleSpec
from metacrud.data.query import OPERATORS
from metacrud.data.store import RecordStore
from metacrud.exceptions import OperationError, RecordNotFoundError, RegistryNotValidatedError
from metacrud.hooks import (
    BatchUpdateContext,
    CloneContext,
    CreateContext,
    DeleteContext,
    ListContext,
    ReadContext,
    UpdateContext,
    as_result,
    is_abort,
)
from metacrud.permissions import Caller, Mode, effective_mode, require
from metacrud.references import ReferenceResolver, is_empty
from metacrud.schema.meta import EntityMeta
from metacrud.schema.registry import SchemaRegistry

if TYPE_CHECKING:
    from metacrud.settings import Settings

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
STRING_TYPES = frozenset({"string", "lstr", "text"})
CONTAINER_TYPES = frozenset({"array", "obj"})


class _Aborted(Exception):
    """Carries a failure Result out of a pipeline step."""

    def __init__(self, result: Result) -> None:
        super().__init__(result.err)
        self.result = result


def _abort(code: int, err: str | list[str] | None = None) -> _Aborted:
    return _Aborted(Result.fail(code, err))


def _is_operator(value: Any) -> bool:
    return isinstance(value, Mapping) and "op" in value


class Entity:
    """CRUD operations on one registered entity.

    Every public operation returns a ``Result`` envelope; failures inside the
    pipeline (including exceptions raised by hooks or storage) are converted
    at the operation boundary. The ``find*``/``count``/``patch`` helpers are
    raw storage access for hooks and application code: no permission checks,
    no conversion, no hooks.
    """

    def __init__(self, name: str, db: MetaCrud) -> None:
        """Initialize entity.

        Args:
            name: Collection name
            db: Parent MetaCrud instance
        """
        self._name = name
        self._db = db
        self._meta = db.registry.lookup(name)

    def __repr__(self) -> str:
        return f"Entity({self._name!r})"

    @property
    def name(self) -> str:
        return self._name

    @property
    def meta(self) -> EntityMeta:
        return self._meta

    @property
    def db(self) -> MetaCrud:
        return self._db

    @property
    def _store(self) -> RecordStore:
        return self._db.store

    @property
    def _resolver(self) -> ReferenceResolver:
        return self._db.resolver

    # === Raw storage access ===

    def find(self, filters: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        return self._store.find(self._name, filters).records

    def find_one(self, filters: Mapping[str, Any] | None = None) -> dict[str, Any] | None:
        return self._store.find_one(self._name, filters)

    def find_by_id(self, record_id: str) -> dict[str, Any] | None:
        return self._store.find_by_id(self._name, record_id)

    def count(self, filters: Mapping[str, Any] | None = None) -> int:
        return self._store.count(self._name, filters)

    def patch(self, ids: str | Iterable[str], data: Mapping[str, Any]) -> int:
        """Write values directly, bypassing the pipeline."""
        id_list = [ids] if isinstance(ids, str) else list(ids)
        return self._store.update(self._name, id_list, data)

    # === Pipeline plumbing ===

    def _boundary(self, operation: str, func: Callable[..., Result], *args: Any) -> Result:
        try:
            return func(*args)
        except _Aborted as e:
            return e.result
        except OperationError as e:
            return Result.fail(e.code, e.message)
        except Exception as e:
            logger.exception("%s on '%s' failed", operation, self._name)
            return Result.fail(Code.ERROR, str(e))

    def _before(self, hook: Callable[[Any], Any] | None, context: Any) -> None:
        if hook is None:
            return
        result = as_result(hook(context))
        if is_abort(result):
            raise _Aborted(result)

    def _after(self, name: str, hook: Callable[[Any], Any] | None, context: Any) -> None:
        """Run an after-hook. The write already happened; failures are only logged."""
        if hook is None:
            return
        try:
            result = as_result(hook(context))
        except Exception:
            logger.exception("%s hook on '%s' raised", name, self._name)
            return
        if is_abort(result):
            logger.warning(
                "%s hook on '%s' returned code %s: %s", name, self._name, result.code, result.err
            )

    def _custom(self, hook: Callable[[Any], Any], context: Any) -> Result:
        result = as_result(hook(context))
        if result is None:
            raise TypeError(f"custom handler on '{self._name}' must return a Result")
        if not result.ok:
            raise _Aborted(result)
        return result

    def _check(self, caller: Caller | None, operation: Mode) -> None:
        failure = require(self._meta, caller, operation)
        if failure is not None:
            raise _Aborted(failure)

    def _is_owner_scoped(self, caller: Caller | None) -> bool:
        return self._meta.user_field is not None and not (caller is not None and caller.root)

    def _owner_filter(self, caller: Caller | None) -> dict[str, Any]:
        if not self._is_owner_scoped(caller):
            return {}
        return {self._meta.user_field: caller.user_id if caller is not None else None}

    def _list_query(self, caller: Caller | None, params: Mapping[str, Any]) -> dict[str, Any]:
        """Filter from the ``list_query`` hook, always a fresh copy."""
        hook = self._meta.hooks.list_query
        if hook is None:
            return {}
        context = ListContext(caller=caller, params=MappingProxyType(copy.deepcopy(dict(params))))
        result = hook(context)
        if isinstance(result, Result):
            if not result.ok:
                raise _Aborted(result)
            return {}
        if result is None:
            return {}
        if not isinstance(result, Mapping):
            raise TypeError(f"list_query on '{self._name}' must return a mapping")
        return copy.deepcopy(dict(result))

    def _scope(self, caller: Caller | None, params: Mapping[str, Any] | None = None) -> dict:
        scope = self._list_query(caller, params or {})
        scope.update(self._owner_filter(caller))
        return scope

    def _load_owned(self, record_id: str, caller: Caller | None) -> dict[str, Any]:
        filters = self._scope(caller)
        filters["id"] = str(record_id)
        record = self._store.find_one(self._name, filters)
        if record is None:
            raise RecordNotFoundError(record_id, self._name)
        return record

    def _select(self, data: Mapping[str, Any] | None, fields: list[FieldSpec]) -> dict:
        allowed = {f.name for f in fields}
        return {k: v for k, v in (data or {}).items() if k in allowed}

    def _stored_only(self, data: Mapping[str, Any]) -> dict[str, Any]:
        return self._select(data, self._meta.stored_fields)

    def _convert(self, data: Mapping[str, Any]) -> dict[str, Any]:
        """Type-convert every present value. Empty values become None."""
        converted: dict[str, Any] = {}
        errors: list[str] = []
        types = self._db.registry.types
        for name, value in data.items():
            field = self._meta.field(name)
            if is_empty(value):
                converted[name] = [] if value == [] else None
                continue
            result = types.convert(field.type, value)
            if result.ok:
                converted[name] = result.value
            else:
                errors.append(f"{name}: {result.err}")
        if errors:
            raise _abort(Code.INVALID_PARAMS, errors)
        return converted

    def _check_required(self, data: Mapping[str, Any], present_only: bool = False) -> None:
        missing = [
            f.name
            for f in self._meta.required_fields
            if (f.name in data or not present_only) and is_empty(data.get(f.name))
        ]
        if missing:
            raise _abort(Code.NO_PARAMS, missing)

    def _check_unique(self, data: Mapping[str, Any], exclude_id: str | None = None) -> None:
        keys = self._meta.primary_keys
        if not keys:
            return
        key_values = self._resolver.resolve_for_write(self._meta, {k: data.get(k) for k in keys})
        for other in self._store.find(self._name, key_values).records:
            if other["id"] != exclude_id:
                raise _abort(
                    Code.DUPLICATE_KEY,
                    f"duplicate key {', '.join(f'{k}={key_values[k]!r}' for k in keys)}",
                )

    def _present(self, record: Mapping[str, Any], fields: list[FieldSpec]) -> dict[str, Any]:
        shown = {"id": record.get("id")}
        for field in fields:
            if field.name in record:
                shown[field.name] = record[field.name]
        return shown

    def _apply_defaults(self, data: dict[str, Any]) -> None:
        for field in self._meta.stored_fields:
            if field.default is not None and is_empty(data.get(field.name)):
                data[field.name] = copy.deepcopy(field.default)

    def _apply_owner(self, data: dict[str, Any], caller: Caller | None) -> None:
        """Stamp the caller as owner. Root callers may name another owner."""
        user_field = self._meta.user_field
        if user_field is None or caller is None or caller.user_id is None:
            return
        if not caller.root or is_empty(data.get(user_field)):
            data[user_field] = caller.user_id

    def _validate_new(self, data: Mapping[str, Any]) -> dict[str, Any]:
        """Shared tail of create and clone: convert, required, unique, references."""
        converted = self._convert(self._stored_only(data))
        self._check_required(converted)
        self._check_unique(converted)
        return self._resolver.resolve_for_write(self._meta, converted)

    # === Operations ===

    def create(self, data: Mapping[str, Any], caller: Caller | None = None) -> Result:
        """Create a record.

        Order: defaults, ownership, ``before_create``, type conversion,
        required fields, primary-key uniqueness, references, insert (or the
        custom ``create`` handler), ``after_create``.
        """
        return self._boundary("create", self._create, data, caller)

    def _create(self, data: Mapping[str, Any], caller: Caller | None) -> Result:
        self._check(caller, Mode.CREATE)
        hooks = self._meta.hooks

        values = self._select(data, self._meta.create_fields)
        self._apply_defaults(values)
        self._apply_owner(values, caller)

        context = CreateContext(entity=self, caller=caller, data=values)
        self._before(hooks.before_create, context)

        context.data = self._validate_new(context.data)
        if hooks.create is not None:
            record = self._custom(hooks.create, context).data
        else:
            created_by = caller.user_id if caller is not None else None
            record = self._store.insert(self._name, context.data, created_by=created_by)
        context.record = record

        self._after("after_create", hooks.after_create, context)
        logger.debug("Created record in %s", self._name)
        if isinstance(record, Mapping):
            return Result.success(self._present(record, self._meta.property_fields))
        return Result.success(record)

    def read(self, record_id: str, caller: Caller | None = None) -> Result:
        """Read one record, references shown as labels."""
        return self._boundary("read", self._read, record_id, caller)

    def _read(self, record_id: str, caller: Caller | None) -> Result:
        self._check(caller, Mode.READ)
        record = self._load_owned(record_id, caller)
        rows = self._finish_read([record], caller, self._meta.property_fields)
        return Result.success(rows[0])

    def _finish_read(
        self, records: list[dict[str, Any]], caller: Caller | None, fields: list[FieldSpec]
    ) -> list[dict[str, Any]]:
        rows = self._resolver.resolve_for_read(self._meta, records)
        hook = self._meta.hooks.after_read
        shown = []
        for row in rows:
            if hook is not None:
                row = self._after_read(hook, ReadContext(caller=caller, record=row))
            shown.append(self._present(row, fields))
        return shown

    def _after_read(self, hook: Callable[[Any], Any], context: ReadContext) -> dict[str, Any]:
        """Run ``after_read``; a failing hook leaves the row as it was."""
        original = copy.deepcopy(context.record)
        try:
            replaced = hook(context)
        except Exception:
            logger.exception("after_read hook on '%s' raised", self._name)
            return original
        if isinstance(replaced, Result):
            if not replaced.ok:
                logger.warning(
                    "after_read hook on '%s' returned code %s: %s",
                    self._name,
                    replaced.code,
                    replaced.err,
                )
                return original
            replaced = replaced.data
        if isinstance(replaced, Mapping):
            return dict(replaced)
        return context.record

    def list(self, params: Mapping[str, Any] | None = None, caller: Caller | None = None) -> Result:
        """List records.

        Args:
            params: ``filters`` (field -> value or ``{"op", "value"}``),
                ``sort_by``, ``desc``, ``page`` (1-based) and ``limit``
            caller: Caller identity

        Returns:
            ``Result`` whose data is ``{"total": int, "data": [records]}``
        """
        return self._boundary("list", self._list, params or {}, caller)

    def _list(self, params: Mapping[str, Any], caller: Caller | None) -> Result:
        self._check(caller, Mode.READ)
        search = params.get("filters") or {}
        if not isinstance(search, Mapping):
            raise _abort(Code.INVALID_PARAMS, "filters must be an object")
        if search:
            self._check(caller, Mode.SEARCH)

        sort_by = params.get("sort_by")
        if sort_by is not None and sort_by != "id" and sort_by not in self._sortable:
            raise _abort(Code.INVALID_PARAMS, f"cannot sort by field '{sort_by}'")
        limit = self._positive(params, "limit", DEFAULT_PAGE_SIZE)
        page = self._positive(params, "page", 1)

        scope = self._scope(caller, params)
        filters = self._search_filters(search)
        if filters is None:
            return Result.success({"total": 0, "data": []})
        filters.update(scope)

        result = self._store.find(
            self._name,
            filters,
            sort_by=sort_by,
            desc=bool(params.get("desc")),
            offset=(page - 1) * limit,
            limit=limit,
        )
        rows = self._finish_read(result.records, caller, self._meta.list_fields)
        return Result.success({"total": result.total_count, "data": rows})

    @property
    def _sortable(self) -> set[str]:
        return {f.name for f in self._meta.list_fields}

    @staticmethod
    def _positive(params: Mapping[str, Any], name: str, default: int) -> int:
        raw = params.get(name)
        if raw is None or raw == "":
            return default
        try:
            value = int(raw)
        except (TypeError, ValueError):
            raise _abort(Code.INVALID_PARAMS, f"{name} must be an integer") from None
        if isinstance(raw, bool) or value <= 0:
            raise _abort(Code.INVALID_PARAMS, f"{name} must be a positive integer")
        return value

    def _search_filters(self, search: Mapping[str, Any]) -> dict[str, Any] | None:
        """Turn client search values into store filters.

        Fields outside ``search_fields`` are ignored. Plain strings on text
        fields match as substrings; reference fields accept ids or labels.
        Operator filters are checked and their operands converted like plain
        values. Returns None when a reference value matches nothing.
        """
        allowed = {f.name: f for f in self._meta.search_fields}
        filters: dict[str, Any] = {}
        for name, value in search.items():
            if name == "id":
                if _is_operator(value):
                    value = self._operator_filter(None, value)
                filters["id"] = value
                continue
            field = allowed.get(name)
            if field is None or is_empty(value):
                continue
            if _is_operator(value):
                filters[name] = self._operator_filter(field, value)
            elif field.is_ref:
                try:
                    resolved = self._resolver.resolve_for_write(self._meta, {name: value})
                except OperationError:
                    return None
                target = resolved[name]
                filters[name] = {"op": "in", "value": target} if isinstance(target, list) else target
            elif field.type in STRING_TYPES and isinstance(value, str):
                filters[name] = {"op": "like", "value": value}
            else:
                converted = self._search_value(field, value)
                if isinstance(converted, list):
                    converted = {"op": "in", "value": converted}
                filters[name] = converted
        return filters

    def _operator_filter(self, field: FieldSpec | None, condition: Mapping[str, Any]) -> dict:
        op = condition.get("op")
        if op not in OPERATORS:
            raise _abort(
                Code.INVALID_PARAMS,
                f"unknown operator {op!r}; valid operators: {', '.join(OPERATORS)}",
            )
        value = condition.get("value")
        raw = field is None or field.is_ref or field.type in CONTAINER_TYPES
        if raw or op in ("like", "is_null") or value is None:
            return {"op": op, "value": value}
        if op == "in":
            if not isinstance(value, (list, tuple)):
                raise _abort(Code.INVALID_PARAMS, f"{field.name}: 'in' needs a list")
            return {"op": op, "value": [self._search_value(field, v) for v in value]}
        return {"op": op, "value": self._search_value(field, value)}

    def _search_value(self, field: FieldSpec, value: Any) -> Any:
        converted = self._db.registry.types.convert(field.type, value)
        if not converted.ok:
            raise _abort(Code.INVALID_PARAMS, [f"{field.name}: {converted.err}"])
        return converted.value

    def update(
        self, record_id: str, data: Mapping[str, Any], caller: Caller | None = None
    ) -> Result:
        """Update one record.

        Absent fields are left unchanged; an explicit ``None`` or ``""`` clears
        the field (rejected for required fields).
        """
        return self._boundary("update", self._update, str(record_id), data, caller)

    def _update(self, record_id: str, data: Mapping[str, Any], caller: Caller | None) -> Result:
        self._check(caller, Mode.UPDATE)
        hooks = self._meta.hooks
        existing = self._load_owned(record_id, caller)

        values = self._select(data, self._meta.update_fields)
        self._protect_owner(values, caller)
        context = UpdateContext(entity=self, caller=caller, id=record_id, data=values)
        self._before(hooks.before_update, context)

        values = self._convert(self._stored_only(context.data))
        self._protect_owner(values, caller)
        self._check_required(values, present_only=True)
        if any(k in values for k in self._meta.primary_keys):
            self._check_unique({**existing, **values}, exclude_id=record_id)
        context.data = self._resolver.resolve_for_write(self._meta, values)

        if hooks.update is not None:
            self._custom(hooks.update, context)
            context.record = self._store.find_by_id(self._name, record_id)
        else:
            self._store.update(self._name, [record_id], context.data)
            context.record = {**existing, **context.data}

        self._after("after_update", hooks.after_update, context)
        return Result.success(
            self._present(context.record or {"id": record_id}, self._meta.property_fields)
        )

    def _protect_owner(self, values: dict[str, Any], caller: Caller | None) -> None:
        if self._is_owner_scoped(caller):
            values.pop(self._meta.user_field, None)

    def batch_update(
        self, ids: Iterable[str], data: Mapping[str, Any], caller: Caller | None = None
    ) -> Result:
        """Apply the same values to several records. Primary keys cannot be batch-updated."""
        return self._boundary("batch_update", self._batch_update, ids, data, caller)

    def _batch_update(
        self, ids: Iterable[str], data: Mapping[str, Any], caller: Caller | None
    ) -> Result:
        self._check(caller, Mode.BATCH)
        hooks = self._meta.hooks
        id_list = self._owned_ids(ids, caller)

        values = self._select(data, self._meta.update_fields)
        for key in self._meta.primary_keys:
            values.pop(key, None)
        self._protect_owner(values, caller)
        context = BatchUpdateContext(entity=self, caller=caller, ids=id_list, data=values)
        self._before(hooks.before_batch_update, context)

        values = self._convert(self._stored_only(context.data))
        self._protect_owner(values, caller)
        self._check_required(values, present_only=True)
        context.data = self._resolver.resolve_for_write(self._meta, values)

        updated = self._store.update(self._name, id_list, context.data)
        self._after("after_batch_update", hooks.after_batch_update, context)
        return Result.success({"updated": updated})

    def _owned_ids(self, ids: Iterable[str] | str, caller: Caller | None) -> list[str]:
        id_list = [ids] if isinstance(ids, str) else [str(i) for i in ids]
        if not id_list:
            raise _abort(Code.NO_PARAMS, ["ids"])
        filters = self._scope(caller)
        filters["id"] = {"op": "in", "value": id_list}
        found = {r["id"] for r in self._store.find(self._name, filters).records}
        missing = [i for i in id_list if i not in found]
        if missing:
            raise RecordNotFoundError(", ".join(missing), self._name)
        return list(dict.fromkeys(id_list))

    def delete(self, ids: str | Iterable[str], caller: Caller | None = None) -> Result:
        """Delete records, honouring back-reference delete policies."""
        return self._boundary("delete", self._delete, ids, caller)

    def _delete(self, ids: str | Iterable[str], caller: Caller | None) -> Result:
        self._check(caller, Mode.DELETE)
        hooks = self._meta.hooks
        id_list = self._owned_ids(ids, caller)

        context = DeleteContext(entity=self, caller=caller, ids=id_list)
        self._before(hooks.before_delete, context)

        plan = self._resolver.cascade_or_block_delete(self._meta, context.ids)
        if hooks.delete is not None:
            self._custom(hooks.delete, context)
            deleted = len(context.ids)
        else:
            deleted = self._resolver.execute(plan)

        self._after("after_delete", hooks.after_delete, context)
        logger.debug("Deleted %d record(s) from %s", deleted, self._name)
        return Result.success({"deleted": deleted})

    def clone(
        self,
        record_id: str,
        overrides: Mapping[str, Any] | None = None,
        caller: Caller | None = None,
    ) -> Result:
        """Create a copy of a record from its ``clone`` fields plus overrides."""
        return self._boundary("clone", self._clone, str(record_id), overrides or {}, caller)

    def _clone(self, record_id: str, overrides: Mapping[str, Any], caller: Caller | None) -> Result:
        self._check(caller, Mode.CLONE)
        hooks = self._meta.hooks
        source = self._load_owned(record_id, caller)

        values = {
            f.name: source[f.name]
            for f in self._meta.clone_fields
            if f.name in source and not f.secure
        }
        values.update(self._select(overrides, self._meta.create_fields))
        self._apply_owner(values, caller)

        context = CloneContext(entity=self, caller=caller, source_id=record_id, data=values)
        self._before(hooks.before_clone, context)

        context.data = self._validate_new(context.data)
        if hooks.clone is not None:
            record = self._custom(hooks.clone, context).data
        else:
            created_by = caller.user_id if caller is not None else None
            record = self._store.insert(self._name, context.data, created_by=created_by)
        context.record = record

        self._after("after_clone", hooks.after_clone, context)
        if isinstance(record, Mapping):
            return Result.success(self._present(record, self._meta.property_fields))
        return Result.success(record)

    def refs(self, caller: Caller | None = None) -> Result:
        """Id/label pairs for reference pickers, narrowed like ``list``."""
        return self._boundary("refs", self._refs, caller)

    def _refs(self, caller: Caller | None) -> Result:
        self._check(caller, Mode.READ)
        return Result.success(self._resolver.ref_labels(self._meta, self._scope(caller)))

    def mode(self, caller: Caller | None = None, ui_mode: Mode | str | None = None) -> Mode:
        """Effective mode for the caller."""
        role = caller.role if caller is not None else None
        return effective_mode(self._meta, role, ui_mode)

    def describe(self, caller: Caller | None = None) -> EntityInfo:
        """Client-facing metadata with the caller's effective mode."""
        return self._meta.to_info(self.mode(caller))


class MetaCrud:
    """Entry point: a validated schema registry bound to a database.

    Example:
        types = TypeRegistry.default()
        types.register(int_enum_type("order_status", [0, 1, 2]))
        registry = SchemaRegistry(types)
        registry.register({"collection": "category", "creatable": True, ...})
        registry.validate_all()

        db = MetaCrud("sqlite:///:memory:", registry)
        result = db.entity("category").create({"name": "Books"})
    """

    def __init__(
        self,
        url: str,
        registry: SchemaRegistry,
        roles: Iterable[RoleSpec] | None = None,
        echo: bool = False,
    ) -> None:
        """Initialize the engine.

        Args:
            url: Database URL (PostgreSQL or SQLite)
            registry: Validated schema registry
            roles: Known roles; root roles bypass ownership narrowing
            echo: Whether to echo SQL statements

        Raises:
            RegistryNotValidatedError: If ``registry.validate_all()`` was not called
        """
        if not registry.validated:
            raise RegistryNotValidatedError()
        self._registry = registry
        self._roles = {role.name: role for role in roles or []}
        self._connection = DatabaseConnection(url, echo=echo)
        self._store = RecordStore(self._connection)
        self._store.initialize()
        self._resolver = ReferenceResolver(registry, self._store)
        self._entities: dict[str, Entity] = {}

    @classmethod
    def from_settings(
        cls, settings: Settings, registry: SchemaRegistry, url: str | None = None
    ) -> MetaCrud:
        """Build an engine from loaded settings; ``url`` overrides ``settings.database_url``."""
        return cls(
            url or settings.database_url,
            registry,
            roles=settings.roles,
            echo=settings.echo,
        )

    @property
    def registry(self) -> SchemaRegistry:
        return self._registry

    @property
    def store(self) -> RecordStore:
        return self._store

    @property
    def resolver(self) -> ReferenceResolver:
        return self._resolver

    @property
    def roles(self) -> dict[str, RoleSpec]:
        return dict(self._roles)

    def entity(self, name: str) -> Entity:
        """Get the Entity for a collection.

        Raises:
            EntityNotFoundError: If the collection is not registered
        """
        if name not in self._entities:
            self._entities[name] = Entity(name, self)
        return self._entities[name]

    def caller(self, user_id: str | None = None, role: str | None = None) -> Caller:
        """Build a Caller, marking it root when its role is configured as root."""
        spec = self._roles.get(role) if role is not None else None
        return Caller(user_id=user_id, role=role, root=bool(spec and spec.root))

    def list_entities(self) -> list[str]:
        return self._registry.names()

    def describe(self) -> dict[str, EntityInfo]:
        return self._registry.describe()

    def close(self) -> None:
        """Close the database connection."""
        self._connection.close()

    def __enter__(self) -> MetaCrud:
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.close()
