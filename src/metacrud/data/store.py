"""Record storage on top of SQLAlchemy.

Provides the document-store operations the entity pipeline needs: insert,
filtered find, update and delete by id. Filters, ordering and pagination
are compiled to SQL by ``JSONFilterBuilder`` for the connection's dialect.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import TYPE_CHECKING, Any

from metacrud.core.types import QueryResult
from metacrud.data.query import JSONFilterBuilder
from metacrud.exceptions import QueryError
from metacrud.schema.models import Base, Record, generate_id, utc_now

if TYPE_CHECKING:
    from metacrud.core.connection import DatabaseConnection

logger = logging.getLogger(__name__)


class RecordStore:
    """Collection-scoped CRUD over the ``mc_records`` table."""

    def __init__(self, connection: DatabaseConnection) -> None:
        self._connection = connection
        self._initialized = False
        self._builder: JSONFilterBuilder | None = None

    @property
    def dialect(self) -> str:
        return self._connection.dialect

    @property
    def builder(self) -> JSONFilterBuilder:
        if self._builder is None:
            self._builder = JSONFilterBuilder(self.dialect)
        return self._builder

    def initialize(self) -> None:
        """Create tables if they don't exist."""
        if not self._initialized:
            Base.metadata.create_all(self._connection.engine)
            self._initialized = True

    def insert(
        self,
        collection: str,
        data: Mapping[str, Any],
        created_by: str | None = None,
    ) -> dict[str, Any]:
        """Insert a new record.

        Returns:
            The stored record including its new ``id``
        """
        self.initialize()
        values = {k: v for k, v in data.items() if k != "id"}
        now = utc_now()
        try:
            with self._connection.session_scope() as session:
                record = Record(
                    id=generate_id(),
                    collection=collection,
                    data=values,
                    created_at=now,
                    updated_at=now,
                    created_by=created_by,
                )
                session.add(record)
                return record.to_dict()
        except Exception as e:
            raise QueryError(f"Failed to insert into '{collection}': {e}") from e

    def _query(self, session: Any, collection: str, filters: Mapping[str, Any] | None) -> Any:
        query = session.query(Record).filter(Record.collection == collection)
        for clause in self.builder.where(filters):
            query = query.filter(clause)
        return query

    def find(
        self,
        collection: str,
        filters: Mapping[str, Any] | None = None,
        sort_by: str | None = None,
        desc: bool = False,
        offset: int | None = None,
        limit: int | None = None,
    ) -> QueryResult:
        """Find records matching filters.

        Args:
            collection: Collection name
            filters: Field to value (equality) or ``{"op": ..., "value": ...}``;
                see ``metacrud.data.query`` for the operators
            sort_by: Field to order by (insertion order otherwise)
            desc: Whether to order descending
            offset: Records to skip
            limit: Maximum records to return

        Returns:
            QueryResult with matching records and the pre-pagination total
        """
        self.initialize()
        try:
            with self._connection.get_session() as session:
                query = self._query(session, collection, filters)
                total_count = query.count()

                query = query.order_by(*self.builder.order_by(sort_by, desc))
                if offset:
                    query = query.offset(offset)
                if limit is not None:
                    query = query.limit(limit)
                records = [record.to_dict() for record in query.all()]
        except QueryError:
            raise
        except Exception as e:
            raise QueryError(f"Failed to query '{collection}': {e}") from e

        return QueryResult(
            records=records,
            total_count=total_count,
            limit=limit,
            offset=offset,
        )

    def find_one(
        self, collection: str, filters: Mapping[str, Any] | None = None
    ) -> dict[str, Any] | None:
        result = self.find(collection, filters, limit=1)
        return result.records[0] if result.records else None

    def find_by_id(self, collection: str, record_id: str) -> dict[str, Any] | None:
        return self.find_one(collection, {"id": record_id})

    def find_by_ids(self, collection: str, ids: Iterable[str]) -> list[dict[str, Any]]:
        return self.find(collection, {"id": {"op": "in", "value": list(ids)}}).records

    def count(self, collection: str, filters: Mapping[str, Any] | None = None) -> int:
        self.initialize()
        try:
            with self._connection.get_session() as session:
                return self._query(session, collection, filters).count()
        except QueryError:
            raise
        except Exception as e:
            raise QueryError(f"Failed to count '{collection}': {e}") from e

    def update(self, collection: str, ids: Iterable[str], data: Mapping[str, Any]) -> int:
        """Merge ``data`` into each record.

        Returns:
            Count of updated records
        """
        id_list = list(ids)
        if not id_list:
            return 0
        values = {k: v for k, v in data.items() if k != "id"}
        self.initialize()
        try:
            with self._connection.session_scope() as session:
                records = (
                    session.query(Record)
                    .filter(Record.collection == collection)
                    .filter(Record.id.in_(id_list))
                    .all()
                )
                for record in records:
                    # Reassign so the JSON column is flagged dirty
                    record.data = {**(record.data or {}), **values}
                    record.updated_at = utc_now()
                return len(records)
        except Exception as e:
            raise QueryError(f"Failed to update '{collection}': {e}") from e

    @staticmethod
    def _delete_in(session: Any, collection: str, ids: list[str]) -> int:
        return (
            session.query(Record)
            .filter(Record.collection == collection)
            .filter(Record.id.in_(ids))
            .delete(synchronize_session=False)
        )

    def delete(self, collection: str, ids: Iterable[str]) -> int:
        """Delete records by id.

        Returns:
            Count of deleted records
        """
        id_list = list(ids)
        if not id_list:
            return 0
        self.initialize()
        try:
            with self._connection.session_scope() as session:
                deleted = self._delete_in(session, collection, id_list)
                logger.debug("Deleted %d record(s) from %s", deleted, collection)
                return deleted
        except Exception as e:
            raise QueryError(f"Failed to delete from '{collection}': {e}") from e

    def delete_steps(self, steps: Sequence[tuple[str, list[str]]]) -> list[int]:
        """Delete several collections' records in one transaction.

        Either every step is applied or none is.

        Returns:
            Count of deleted records per step
        """
        self.initialize()
        try:
            with self._connection.session_scope() as session:
                counts = []
                for collection, ids in steps:
                    deleted = self._delete_in(session, collection, list(ids)) if ids else 0
                    logger.debug("Deleted %d record(s) from %s", deleted, collection)
                    counts.append(deleted)
                return counts
        except Exception as e:
            raise QueryError(f"Failed to delete: {e}") from e
