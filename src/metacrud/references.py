"""Reference resolution between entities.

Write path: a client may send either a record id or the target's
``ref_label`` value for a reference field; both are stored as the id.
Read path: stored ids are shown as label values and link fields are filled
from the referenced record. Delete path: back-references decide whether a
delete cascades, leaves referencing records alone, or is blocked.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from metacrud.core.codes import Code
from metacrud.core.types import DeletePolicy, FieldSpec
from metacrud.exceptions import HasReferenceError, ReferenceError

if TYPE_CHECKING:
    from metacrud.data.store import RecordStore
    from metacrud.schema.meta import EntityMeta
    from metacrud.schema.registry import SchemaRegistry

logger = logging.getLogger(__name__)


def is_empty(value: Any) -> bool:
    return value is None or value == "" or value == []


@dataclass
class DeletePlan:
    """Records to delete, referencing records first."""

    steps: list[tuple[str, list[str]]] = field(default_factory=list)

    def add(self, collection: str, ids: list[str]) -> None:
        self.steps.append((collection, ids))

    @property
    def cascaded(self) -> list[tuple[str, list[str]]]:
        """Every step except the final one (the records asked for)."""
        return self.steps[:-1]

    def __len__(self) -> int:
        return sum(len(ids) for _, ids in self.steps)


class ReferenceResolver:
    """Resolves reference fields against the registry and the record store."""

    def __init__(self, registry: SchemaRegistry, store: RecordStore) -> None:
        self._registry = registry
        self._store = store

    # === Write path ===

    def resolve_for_write(self, meta: EntityMeta, record: Mapping[str, Any]) -> dict[str, Any]:
        """Replace reference values with target record ids.

        Each value is tried as an id first, then as the target's ``ref_label``.
        Multi (array) references resolve element by element.

        Raises:
            ReferenceError: ``REF_NOT_FOUND`` or ``REF_NOT_UNIQUE``
        """
        resolved = dict(record)
        for ref_field in meta.ref_fields:
            if ref_field.name not in resolved or is_empty(resolved[ref_field.name]):
                continue
            value = resolved[ref_field.name]
            target = self._registry.lookup(ref_field.ref or "")
            if meta.is_multi_ref(ref_field):
                values = value if isinstance(value, list) else [value]
                resolved[ref_field.name] = [
                    self._resolve_one(meta, ref_field, target, item) for item in values
                ]
            else:
                resolved[ref_field.name] = self._resolve_one(meta, ref_field, target, value)
        return resolved

    def _resolve_one(
        self, meta: EntityMeta, ref_field: FieldSpec, target: EntityMeta, value: Any
    ) -> str:
        candidate = str(value)
        if self._store.find_by_id(target.collection, candidate) is not None:
            return candidate

        if target.ref_label is not None:
            matches = self._store.find(target.collection, {target.ref_label: value}).records
            if len(matches) == 1:
                return matches[0]["id"]
            if len(matches) > 1:
                raise ReferenceError(Code.REF_NOT_UNIQUE, meta.collection, ref_field.name, value)

        raise ReferenceError(Code.REF_NOT_FOUND, meta.collection, ref_field.name, value)

    # === Read path ===

    def resolve_for_read(
        self, meta: EntityMeta, records: Iterable[Mapping[str, Any]]
    ) -> list[dict[str, Any]]:
        """Show reference fields as labels and fill link fields.

        Never fails: a missing target renders as an empty string.
        """
        rows = [dict(r) for r in records]
        if not rows or not meta.ref_fields:
            return rows

        targets: dict[str, dict[str, dict[str, Any]]] = {}
        for ref_field in meta.ref_fields:
            ids: set[str] = set()
            for row in rows:
                ids.update(self._ids_of(row.get(ref_field.name)))
            if ids:
                found = self._store.find_by_ids(ref_field.ref or "", ids)
                targets[ref_field.name] = {r["id"]: r for r in found}
            else:
                targets[ref_field.name] = {}

        for row in rows:
            originals = {f.name: row.get(f.name) for f in meta.ref_fields}

            for link_field in meta.link_fields:
                via = link_field.link or ""
                by_id = targets.get(via, {})
                value = originals.get(via)
                if isinstance(value, list):
                    row[link_field.name] = [
                        by_id.get(i, {}).get(link_field.name, "") for i in self._ids_of(value)
                    ]
                elif is_empty(value):
                    row[link_field.name] = ""
                else:
                    row[link_field.name] = by_id.get(str(value), {}).get(link_field.name, "")

            for ref_field in meta.ref_fields:
                value = originals[ref_field.name]
                if is_empty(value):
                    continue
                target = self._registry.lookup(ref_field.ref or "")
                by_id = targets[ref_field.name]
                if isinstance(value, list):
                    row[ref_field.name] = [
                        self._label(target, by_id.get(i)) for i in self._ids_of(value)
                    ]
                else:
                    row[ref_field.name] = self._label(target, by_id.get(str(value)))
        return rows

    @staticmethod
    def _ids_of(value: Any) -> list[str]:
        if is_empty(value):
            return []
        if isinstance(value, list):
            return [str(v) for v in value if not is_empty(v)]
        return [str(value)]

    @staticmethod
    def _label(target: EntityMeta, record: Mapping[str, Any] | None) -> Any:
        if record is None:
            return ""
        if target.ref_label is None:
            return record["id"]
        label = record.get(target.ref_label)
        return "" if label is None else label

    def ref_labels(
        self, meta: EntityMeta, filters: Mapping[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        """Id/label pairs of ``meta``'s records, for reference pickers."""
        records = self._store.find(meta.collection, filters).records
        return [{"id": r["id"], "title": self._label(meta, r)} for r in records]

    # === Delete path ===

    def cascade_or_block_delete(self, meta: EntityMeta, ids: list[str]) -> DeletePlan:
        """Work out what deleting ``ids`` implies, without deleting anything.

        Back-references with ``keep`` are ignored and those with ``cascade``
        are followed recursively. Any other back-reference that still has
        referencing records blocks the whole delete.

        Returns:
            A plan whose last step is ``(meta.collection, ids)``

        Raises:
            HasReferenceError: Naming the blocking collections
        """
        plan = DeletePlan()
        visited: set[tuple[str, str]] = set()
        self._plan(meta, ids, plan, visited)
        return plan

    def _plan(
        self,
        meta: EntityMeta,
        ids: list[str],
        plan: DeletePlan,
        visited: set[tuple[str, str]],
    ) -> None:
        visited.update((meta.collection, i) for i in ids)
        blocking: set[str] = set()
        for ref in meta.ref_by:
            if ref.policy == DeletePolicy.KEEP:
                continue
            referencing = [
                r["id"]
                for r in self._store.find(ref.collection, {ref.field: {"op": "in", "value": ids}})
                .records
                if (ref.collection, r["id"]) not in visited
            ]
            if not referencing:
                continue
            if ref.policy == DeletePolicy.CASCADE:
                source = self._registry.lookup(ref.collection)
                self._plan(source, referencing, plan, visited)
            else:
                blocking.add(ref.collection)

        if blocking:
            raise HasReferenceError(meta.collection, sorted(blocking))
        plan.add(meta.collection, list(ids))

    def execute(self, plan: DeletePlan) -> int:
        """Delete every step of a plan in one transaction.

        Returns:
            Count of records deleted from the last step's collection
        """
        counts = self._store.delete_steps(plan.steps)
        for (collection, _), count in zip(plan.cascaded, counts):
            logger.info("Cascade deleted %d record(s) from %s", count, collection)
        return counts[-1] if counts else 0
