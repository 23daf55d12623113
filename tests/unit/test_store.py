"""Tests for the record store, its SQL filters and the connection."""

from collections.abc import Generator

import pytest

from metacrud.core.connection import DatabaseConnection, is_memory_url, normalize_url
from metacrud.data.store import RecordStore
from metacrud.exceptions import ConnectionError, QueryError
from metacrud.schema.models import Record


@pytest.fixture
def store() -> Generator[RecordStore, None, None]:
    connection = DatabaseConnection("sqlite:///:memory:")
    store = RecordStore(connection)
    store.initialize()
    yield store
    connection.close()


class TestFilters:
    """Filter operators compiled to SQL."""

    @pytest.fixture
    def items(self, store):
        rows = [
            {"name": "Hello World", "rank": 5, "tags": ["x", "y"], "done": True},
            {"name": "100% cotton", "rank": 2, "tags": ["z"], "done": False},
            {"name": "plain", "rank": "high", "tags": [], "done": 1},
            {"name": 42, "rank": None},
        ]
        return [store.insert("item", row) for row in rows]

    @staticmethod
    def names(store, filters):
        return [r["name"] for r in store.find("item", filters).records]

    def test_equality_is_type_strict(self, store, items):
        assert self.names(store, {"name": "plain"}) == ["plain"]
        assert self.names(store, {"name": 42}) == [42]
        assert self.names(store, {"name": "42"}) == []
        assert self.names(store, {"done": True}) == ["Hello World"]
        assert self.names(store, {"done": 1}) == ["plain"]

    def test_list_contains(self, store, items):
        assert self.names(store, {"tags": "y"}) == ["Hello World"]
        assert self.names(store, {"tags": ["z"]}) == ["100% cotton"]
        assert self.names(store, {"tags": ["x"]}) == []

    def test_ne_includes_missing(self, store, items):
        assert self.names(store, {"tags": {"op": "ne", "value": "x"}}) == [
            "100% cotton",
            "plain",
            42,
        ]

    def test_comparisons_match_same_kind(self, store, items):
        assert self.names(store, {"rank": {"op": "gt", "value": 3}}) == ["Hello World"]
        lowest = self.names(store, {"rank": {"op": "lte", "value": 5}})
        assert lowest == ["Hello World", "100% cotton"]
        assert self.names(store, {"rank": {"op": "gte", "value": "a"}}) == ["plain"]

    def test_like_is_case_insensitive_substring(self, store, items):
        assert self.names(store, {"name": {"op": "like", "value": "WORLD"}}) == ["Hello World"]
        assert self.names(store, {"name": {"op": "like", "value": "%"}}) == ["100% cotton"]
        assert self.names(store, {"name": {"op": "like", "value": "4"}}) == []

    def test_in(self, store, items):
        assert self.names(store, {"rank": {"op": "in", "value": [2, "high"]}}) == [
            "100% cotton",
            "plain",
        ]
        assert self.names(store, {"tags": {"op": "in", "value": ["z", "y"]}}) == [
            "Hello World",
            "100% cotton",
        ]
        assert self.names(store, {"rank": {"op": "in", "value": []}}) == []

    def test_is_null(self, store, items):
        assert self.names(store, {"rank": {"op": "is_null", "value": True}}) == [42]
        assert self.names(store, {"tags": {"op": "is_null", "value": True}}) == [42]
        assert self.names(store, {"rank": None}) == [42]
        assert len(self.names(store, {"tags": {"op": "is_null", "value": False}})) == 3

    def test_id_filters(self, store, items):
        first, second = items[0]["id"], items[1]["id"]
        assert self.names(store, {"id": first}) == ["Hello World"]
        assert self.names(store, {"id": {"op": "in", "value": [second, "ghost"]}}) == [
            "100% cotton"
        ]

    def test_combined_filters(self, store, items):
        filters = {"name": "Hello World", "rank": {"op": "gte", "value": 5}}
        assert self.names(store, filters) == ["Hello World"]
        filters["rank"] = {"op": "lt", "value": 5}
        assert self.names(store, filters) == []
        assert store.count("item", {"rank": {"op": "gt", "value": 0}}) == 2

    def test_unknown_operator(self, store, items):
        with pytest.raises(QueryError, match="Unknown operator 'near'"):
            store.find("item", {"rank": {"op": "near", "value": 2}})


class TestRecordStore:
    """Storage round trips on SQLite."""

    def test_insert_assigns_id(self, store):
        record = store.insert("tag", {"name": "a", "id": "ignored"}, created_by="u1")
        assert record["name"] == "a"
        assert record["id"] != "ignored"
        assert store.find_by_id("tag", record["id"]) == record

    def test_collections_are_separate(self, store):
        store.insert("tag", {"name": "a"})
        store.insert("label", {"name": "a"})
        assert store.count("tag") == 1
        assert store.count("label") == 1

    def test_find_sort_and_paginate(self, store):
        for name, rank in [("c", 3), ("a", 1), ("b", 2), ("d", None)]:
            store.insert("tag", {"name": name, "rank": rank})

        result = store.find("tag", sort_by="rank", desc=True, offset=0, limit=2)
        assert [r["name"] for r in result.records] == ["c", "b"]
        assert result.total_count == 4

        page_two = store.find("tag", sort_by="rank", offset=2, limit=2)
        assert [r["name"] for r in page_two.records] == ["b", "c"]

    def test_find_insertion_order(self, store):
        for name in ("x", "y", "z"):
            store.insert("tag", {"name": name})
        assert [r["name"] for r in store.find("tag").records] == ["x", "y", "z"]

    def test_find_by_ids(self, store):
        first = store.insert("tag", {"name": "a"})
        second = store.insert("tag", {"name": "b"})
        store.insert("tag", {"name": "c"})
        found = store.find_by_ids("tag", [first["id"], second["id"]])
        assert {r["name"] for r in found} == {"a", "b"}

    def test_find_one_missing(self, store):
        assert store.find_one("tag", {"name": "nope"}) is None

    def test_update_merges(self, store):
        record = store.insert("tag", {"name": "a", "color": "red"})
        assert store.update("tag", [record["id"]], {"color": "blue"}) == 1
        assert store.find_by_id("tag", record["id"]) == {
            "id": record["id"],
            "name": "a",
            "color": "blue",
        }

    def test_update_nothing(self, store):
        assert store.update("tag", [], {"color": "blue"}) == 0

    def test_delete(self, store):
        keep = store.insert("tag", {"name": "keep"})
        drop = store.insert("tag", {"name": "drop"})
        assert store.delete("tag", [drop["id"]]) == 1
        assert store.find("tag").records == [keep]

    def test_delete_scoped_to_collection(self, store):
        record = store.insert("tag", {"name": "a"})
        assert store.delete("label", [record["id"]]) == 0
        assert store.count("tag") == 1

    def test_sort_mixed_kinds(self, store):
        for name, rank in [("text", "b"), ("three", 3), ("none", None), ("one", 1)]:
            store.insert("tag", {"name": name, "rank": rank})
        ordered = store.find("tag", sort_by="rank").records
        assert [r["name"] for r in ordered] == ["none", "one", "three", "text"]

    def test_delete_steps(self, store):
        tag = store.insert("tag", {"name": "a"})
        label = store.insert("label", {"name": "b"})
        assert store.delete_steps([("label", [label["id"]]), ("tag", [tag["id"]])]) == [1, 1]
        assert store.count("tag") == 0

    def test_delete_steps_all_or_nothing(self, store, monkeypatch):
        tag = store.insert("tag", {"name": "a"})
        label = store.insert("label", {"name": "b"})
        original = RecordStore._delete_in

        def failing(session, collection, ids):
            if collection == "tag":
                raise RuntimeError("locked")
            return original(session, collection, ids)

        monkeypatch.setattr(RecordStore, "_delete_in", staticmethod(failing))
        with pytest.raises(QueryError, match="locked"):
            store.delete_steps([("label", [label["id"]]), ("tag", [tag["id"]])])
        assert store.count("label") == 1
        assert store.count("tag") == 1


class TestConnection:
    """Connection handling."""

    def test_memory_database_shared_across_sessions(self):
        connection = DatabaseConnection("sqlite:///:memory:")
        store = RecordStore(connection)
        store.insert("tag", {"name": "a"})
        assert RecordStore(connection).count("tag") == 1
        connection.close()

    def test_postgresql_url_uses_psycopg(self):
        connection = DatabaseConnection("postgresql://localhost/db")
        assert connection.url == "postgresql+psycopg://localhost/db"

    def test_url_normalisation(self):
        assert normalize_url("postgres://u@h/db") == "postgresql+psycopg://u@h/db"
        assert normalize_url("postgresql+asyncpg://h/db") == "postgresql+asyncpg://h/db"
        assert normalize_url("sqlite:///x.db") == "sqlite:///x.db"

    def test_memory_detection(self):
        assert is_memory_url("sqlite:///:memory:")
        assert is_memory_url("sqlite://")
        assert not is_memory_url("sqlite:///./metacrud.db")
        assert not DatabaseConnection("sqlite:///./x.db").in_memory

    def test_session_scope_rolls_back(self):
        connection = DatabaseConnection("sqlite:///:memory:")
        RecordStore(connection).initialize()
        with pytest.raises(RuntimeError):
            with connection.session_scope() as session:
                session.add(Record(id="r1", collection="tag", data={"name": "a"}))
                session.flush()
                raise RuntimeError("abort")
        assert RecordStore(connection).count("tag") == 0
        connection.close()

    def test_test_connection(self):
        with DatabaseConnection("sqlite:///:memory:") as connection:
            assert connection.test_connection()
            assert connection.dialect == "sqlite"

    def test_bad_url(self):
        with pytest.raises(ConnectionError):
            DatabaseConnection("nosuchdriver://x").engine
