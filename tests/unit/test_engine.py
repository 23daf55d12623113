"""Tests for the entity operation pipeline."""

import logging

import pytest

from metacrud import Caller, Code, Result

WIDGET = {
    "collection": "widget",
    "primary_keys": ["code"],
    "ref_label": "code",
    "creatable": True,
    "readable": True,
    "updatable": True,
    "deleteable": True,
    "cloneable": True,
    "fields": [
        {"name": "code", "required": True},
        {"name": "name", "required": True},
        {"name": "size", "type": "int", "default": 1},
        {"name": "note", "clone": False},
        {"name": "internal", "sys": True},
    ],
}


@pytest.fixture
def widgets(make_db, hooked):
    """Build an engine with one ``widget`` entity carrying the given hooks."""

    def factory(**hooks):
        db = make_db(hooked(WIDGET, **hooks))
        return db.entity("widget")

    return factory


class TestCreate:
    """Create pipeline."""

    def test_create_returns_record(self, widgets):
        result = widgets().create({"code": "w1", "name": "Widget"})
        assert result.ok
        assert result.data["code"] == "w1"
        assert result.data["size"] == 1
        assert "id" in result.data

    def test_missing_required_field(self, widgets):
        """Omitting a required field is NO_PARAMS naming it, and nothing is stored."""
        entity = widgets()
        result = entity.create({"code": "w1"})
        assert result.code == Code.NO_PARAMS
        assert result.err == ["name"]
        assert entity.count() == 0

    def test_before_create_abort_passes_through(self, widgets):
        """A hook's own code and err reach the caller unchanged."""
        entity = widgets(before_create=lambda ctx: Result(code=422, err="x"))
        result = entity.create({"code": "w1", "name": "Widget"})
        assert (result.code, result.err) == (422, "x")
        assert entity.count() == 0

    def test_before_create_can_fill_fields(self, widgets):
        def number(ctx):
            ctx.data["name"] = f"Widget {ctx.entity.count() + 1}"
            ctx.data["internal"] = "secret"

        entity = widgets(before_create=number)
        result = entity.create({"code": "w1"})
        assert result.ok, result.err
        assert result.data["name"] == "Widget 1"
        assert "internal" not in result.data
        assert entity.find_by_id(result.data["id"])["internal"] == "secret"

    def test_invalid_value(self, widgets):
        result = widgets().create({"code": "w1", "name": "n", "size": "big"})
        assert result.code == Code.INVALID_PARAMS
        assert result.err[0].startswith("size:")

    def test_duplicate_key(self, widgets):
        entity = widgets()
        entity.create({"code": "w1", "name": "a"})
        result = entity.create({"code": "w1", "name": "b"})
        assert result.code == Code.DUPLICATE_KEY
        assert entity.count() == 1

    def test_sys_fields_not_accepted_from_client(self, widgets):
        entity = widgets()
        result = entity.create({"code": "w1", "name": "a", "internal": "x"})
        assert "internal" not in entity.find_by_id(result.data["id"])

    def test_after_create_failure_only_logged(self, widgets, caplog):
        def explode(ctx):
            raise RuntimeError("boom")

        entity = widgets(after_create=explode)
        with caplog.at_level(logging.ERROR, logger="metacrud"):
            result = entity.create({"code": "w1", "name": "a"})
        assert result.ok
        assert entity.count() == 1
        assert "after_create hook on 'widget' raised" in caplog.text

    def test_after_create_sees_record(self, widgets):
        seen = []
        entity = widgets(after_create=lambda ctx: seen.append(ctx.record["id"]))
        result = entity.create({"code": "w1", "name": "a"})
        assert seen == [result.data["id"]]

    def test_custom_create(self, widgets):
        entity = widgets(create=lambda ctx: Result.success({"id": "fixed", **ctx.data}))
        result = entity.create({"code": "w1", "name": "a"})
        assert result.data["id"] == "fixed"
        assert entity.count() == 0

    def test_before_create_plain_mapping_aborts(self, widgets):
        entity = widgets(before_create=lambda ctx: {"code": 422, "err": "x"})
        result = entity.create({"code": "w1", "name": "Widget"})
        assert (result.code, result.err) == (422, "x")
        assert entity.count() == 0

    def test_before_create_unexpected_return(self, widgets):
        entity = widgets(before_create=lambda ctx: "fine")
        result = entity.create({"code": "w1", "name": "Widget"})
        assert result.code == Code.ERROR
        assert "expected a Result or None" in result.err
        assert entity.count() == 0

    def test_hook_exception_is_error(self, widgets):
        def explode(ctx):
            raise RuntimeError("boom")

        result = widgets(before_create=explode).create({"code": "w1", "name": "a"})
        assert result.code == Code.ERROR
        assert result.err == "boom"


class TestRead:
    """Read and list."""

    def test_read(self, widgets):
        entity = widgets()
        created = entity.create({"code": "w1", "name": "a"}).data
        assert entity.read(created["id"]).data == created

    def test_read_missing(self, widgets):
        result = widgets().read("nope")
        assert result.code == Code.NOT_FOUND

    def test_after_read_can_replace(self, widgets):
        entity = widgets(after_read=lambda ctx: {**ctx.record, "name": ctx.record["name"].upper()})
        created = entity.create({"code": "w1", "name": "abc"}).data
        assert entity.read(created["id"]).data["name"] == "ABC"

    def test_after_read_failure_keeps_row(self, widgets, caplog):
        """A raising after_read hook is logged and the read still succeeds."""

        def explode(ctx):
            raise RuntimeError("boom")

        entity = widgets(after_read=explode)
        created = entity.create({"code": "w1", "name": "abc"}).data
        with caplog.at_level(logging.ERROR, logger="metacrud"):
            listed = entity.list()
            read = entity.read(created["id"])
        assert listed.ok
        assert [r["name"] for r in listed.data["data"]] == ["abc"]
        assert read.data == created
        assert "after_read hook on 'widget' raised" in caplog.text

    def test_after_read_failure_result_is_logged(self, widgets, caplog):
        def half_done(ctx):
            ctx.record["name"] = "changed"
            return Result.fail(422, "nope")

        entity = widgets(after_read=half_done)
        created = entity.create({"code": "w1", "name": "abc"}).data
        with caplog.at_level(logging.WARNING, logger="metacrud"):
            result = entity.read(created["id"])
        assert result.ok
        assert result.data["name"] == "abc"
        assert "after_read hook on 'widget' returned code 422" in caplog.text

    def test_list_paginates(self, widgets):
        entity = widgets()
        for i in range(5):
            entity.create({"code": f"w{i}", "name": f"n{i}", "size": i})
        result = entity.list({"sort_by": "size", "desc": True, "page": 2, "limit": 2})
        assert result.data["total"] == 5
        assert [r["code"] for r in result.data["data"]] == ["w2", "w1"]

    def test_list_search(self, widgets):
        entity = widgets()
        entity.create({"code": "w1", "name": "Blue Widget", "size": 2})
        entity.create({"code": "w2", "name": "Red Widget", "size": 3})
        by_name = entity.list({"filters": {"name": "blue"}})
        assert [r["code"] for r in by_name.data["data"]] == ["w1"]
        by_size = entity.list({"filters": {"size": "3"}})
        assert [r["code"] for r in by_size.data["data"]] == ["w2"]
        by_op = entity.list({"filters": {"size": {"op": "gte", "value": 2}}})
        assert by_op.data["total"] == 2

    def test_list_ignores_non_search_fields(self, widgets):
        entity = widgets()
        entity.create({"code": "w1", "name": "a"})
        assert entity.list({"filters": {"internal": "x"}}).data["total"] == 1

    def test_list_unknown_sort_field(self, widgets):
        assert widgets().list({"sort_by": "colour"}).code == Code.INVALID_PARAMS

    def test_list_converts_operator_operands(self, widgets):
        entity = widgets()
        entity.create({"code": "w1", "name": "a", "size": 2})
        entity.create({"code": "w2", "name": "b", "size": 7})
        result = entity.list({"filters": {"size": {"op": "lt", "value": "5"}}})
        assert [r["code"] for r in result.data["data"]] == ["w1"]
        listed = entity.list({"filters": {"size": {"op": "in", "value": ["7", 9]}}})
        assert [r["code"] for r in listed.data["data"]] == ["w2"]

    @pytest.mark.parametrize(
        "params",
        [
            {"limit": "abc"},
            {"limit": 0},
            {"page": -1},
            {"page": "two"},
            {"filters": {"size": {"op": "bogus", "value": 1}}},
            {"filters": {"size": {"op": "gt", "value": "big"}}},
            {"filters": {"size": {"op": "in", "value": 3}}},
            {"filters": "size=3"},
        ],
    )
    def test_list_rejects_bad_params(self, widgets, params):
        result = widgets().list(params)
        assert result.code == Code.INVALID_PARAMS

    def test_list_cannot_sort_by_hidden_field(self, widgets):
        entity = widgets()
        entity.create({"code": "w1", "name": "a"})
        assert entity.list({"sort_by": "internal"}).code == Code.INVALID_PARAMS
        assert entity.list({"sort_by": "id"}).ok

    def test_list_reads_only_the_page(self, widgets, monkeypatch):
        """Filtering and paging happen in the database, not on decoded rows."""
        from metacrud.schema.models import Record

        entity = widgets()
        for i in range(30):
            entity.create({"code": f"w{i:02d}", "name": "n", "size": i})

        decoded = []
        original = Record.to_dict

        def counting(self):
            decoded.append(self.id)
            return original(self)

        monkeypatch.setattr(Record, "to_dict", counting)
        result = entity.list({"filters": {"size": {"op": "gte", "value": 10}}, "limit": 3})
        assert result.data["total"] == 20
        assert [r["code"] for r in result.data["data"]] == ["w10", "w11", "w12"]
        assert len(decoded) == 3

    def test_list_hides_non_list_fields(self, shop, seeded):
        rows = shop.entity("customer").list().data["data"]
        assert "password" not in rows[0]
        assert rows[0]["email"] == "alice@example.com"

    def test_list_query_narrows(self, make_db, hooked, definitions):
        def published_only(ctx):
            if ctx.caller is None or ctx.caller.role != "admin":
                return {"published": True}
            return None

        db = make_db(definitions["category"], hooked(definitions["product"], list_query=published_only))
        products = db.entity("product")
        products.create({"name": "Draft", "price": 1})
        products.create({"name": "Live", "price": 1, "published": True})

        public = products.list()
        assert [r["name"] for r in public.data["data"]] == ["Live"]
        everyone = products.list(caller=db.caller("a", "admin"))
        assert everyone.data["total"] == 2

        draft = products.find_one({"name": "Draft"})
        assert products.read(draft["id"]).code == Code.NOT_FOUND

    def test_list_query_result_is_copied(self, widgets):
        shared = {"size": {"op": "gte", "value": 0}}
        entity = widgets(list_query=lambda ctx: shared)
        entity.create({"code": "w1", "name": "a"})
        entity.list({"filters": {"size": 5}})
        assert shared == {"size": {"op": "gte", "value": 0}}

    def test_list_query_params_read_only(self, widgets):
        errors = []

        def tamper(ctx):
            try:
                ctx.params["limit"] = 1000
            except TypeError as e:
                errors.append(e)
            return None

        widgets(list_query=tamper).list({"limit": 5})
        assert len(errors) == 1

    def test_list_query_abort(self, widgets):
        entity = widgets(list_query=lambda ctx: Result.fail(Code.NO_RIGHTS, "closed"))
        result = entity.list()
        assert (result.code, result.err) == (Code.NO_RIGHTS, "closed")


class TestUpdate:
    """Update and batch update."""

    def test_absent_fields_unchanged(self, widgets):
        entity = widgets()
        created = entity.create({"code": "w1", "name": "a", "size": 4, "note": "n"}).data
        result = entity.update(created["id"], {"name": "b"})
        assert result.ok, result.err
        stored = entity.find_by_id(created["id"])
        assert (stored["name"], stored["size"], stored["note"]) == ("b", 4, "n")

    def test_explicit_empty_clears(self, widgets):
        entity = widgets()
        created = entity.create({"code": "w1", "name": "a", "note": "n"}).data
        entity.update(created["id"], {"note": ""})
        assert entity.find_by_id(created["id"])["note"] is None

    def test_clearing_required_field(self, widgets):
        entity = widgets()
        created = entity.create({"code": "w1", "name": "a"}).data
        result = entity.update(created["id"], {"name": None})
        assert result.code == Code.NO_PARAMS
        assert result.err == ["name"]
        assert entity.find_by_id(created["id"])["name"] == "a"

    def test_key_collision(self, widgets):
        entity = widgets()
        entity.create({"code": "w1", "name": "a"})
        second = entity.create({"code": "w2", "name": "b"}).data
        assert entity.update(second["id"], {"code": "w1"}).code == Code.DUPLICATE_KEY
        assert entity.update(second["id"], {"code": "w2", "name": "c"}).ok

    def test_update_missing(self, widgets):
        assert widgets().update("nope", {"name": "x"}).code == Code.NOT_FOUND

    def test_before_update_sees_id(self, widgets):
        seen = []

        def capture(ctx):
            seen.append((ctx.id, dict(ctx.data)))

        entity = widgets(before_update=capture)
        created = entity.create({"code": "w1", "name": "a"}).data
        entity.update(created["id"], {"name": "b"})
        assert seen == [(created["id"], {"name": "b"})]

    def test_batch_update(self, widgets):
        entity = widgets()
        ids = [entity.create({"code": f"w{i}", "name": "a"}).data["id"] for i in range(3)]
        result = entity.batch_update(ids[:2], {"size": 9, "code": "ignored"})
        assert result.data == {"updated": 2}
        assert [entity.find_by_id(i)["size"] for i in ids] == [9, 9, 1]
        assert entity.find_by_id(ids[0])["code"] == "w0"

    def test_batch_update_missing_id(self, widgets):
        entity = widgets()
        created = entity.create({"code": "w1", "name": "a"}).data
        result = entity.batch_update([created["id"], "ghost"], {"size": 2})
        assert result.code == Code.NOT_FOUND
        assert entity.find_by_id(created["id"])["size"] == 1


class TestDelete:
    """Delete."""

    def test_delete(self, widgets):
        entity = widgets()
        created = entity.create({"code": "w1", "name": "a"}).data
        assert entity.delete(created["id"]).data == {"deleted": 1}
        assert entity.count() == 0

    def test_delete_requires_ids(self, widgets):
        assert widgets().delete([]).code == Code.NO_PARAMS

    def test_before_delete_abort(self, widgets):
        entity = widgets(before_delete=lambda ctx: Result.fail(Code.HAS_REF, "in use"))
        created = entity.create({"code": "w1", "name": "a"}).data
        assert entity.delete([created["id"]]).code == Code.HAS_REF
        assert entity.count() == 1

    def test_not_deleteable(self, make_db):
        """An entity that is creatable but not deleteable never deletes."""
        db = make_db({"collection": "note", "creatable": True, "fields": [{"name": "text"}]})
        notes = db.entity("note")
        created = notes.create({"text": "keep me"}).data
        assert "d" not in notes.mode().to_string()
        assert notes.delete([created["id"]]).code == Code.NO_RIGHTS
        assert notes.count() == 1


class TestClone:
    """Clone."""

    def test_clone_copies_clone_fields(self, widgets):
        entity = widgets()
        source = entity.create({"code": "w1", "name": "a", "size": 3, "note": "n"}).data
        result = entity.clone(source["id"], {"code": "w2"})
        assert result.ok, result.err
        assert result.data["name"] == "a"
        assert result.data["size"] == 3
        assert result.data.get("note") is None
        assert result.data["id"] != source["id"]

    def test_clone_needs_new_key(self, widgets):
        entity = widgets()
        source = entity.create({"code": "w1", "name": "a"}).data
        assert entity.clone(source["id"]).code == Code.DUPLICATE_KEY

    def test_before_clone_hook(self, widgets):
        def rename(ctx):
            ctx.data["code"] = f"{ctx.data['code']}-copy"

        entity = widgets(before_clone=rename)
        source = entity.create({"code": "w1", "name": "a"}).data
        assert entity.clone(source["id"]).data["code"] == "w1-copy"

    def test_clone_missing(self, widgets):
        assert widgets().clone("nope").code == Code.NOT_FOUND


class TestOwnership:
    """Records owned through ``user_field``."""

    def test_user_owns_created_order(self, shop, seeded):
        alice = shop.caller(seeded["alice"]["id"], "user")
        result = shop.entity("order").create(
            {"product": "Novel", "customer": seeded["bob"]["id"]}, alice
        )
        assert result.ok, result.err
        assert result.data["customer"] == seeded["alice"]["id"]

    def test_users_only_see_own_orders(self, shop, seeded, admin):
        orders = shop.entity("order")
        alice = shop.caller(seeded["alice"]["id"], "user")
        bob = shop.caller(seeded["bob"]["id"], "user")
        mine = orders.create({"product": "Novel"}, alice).data
        orders.create({"product": "Atlas"}, bob)

        listed = orders.list(caller=alice).data
        assert listed["total"] == 1
        assert listed["data"][0]["email"] == "alice@example.com"
        assert listed["data"][0]["product"] == "Novel"

        assert orders.read(mine["id"], bob).code == Code.NOT_FOUND
        assert orders.list(caller=admin).data["total"] == 2

    def test_user_cannot_delete_without_mode(self, shop, seeded):
        alice = shop.caller(seeded["alice"]["id"], "user")
        order = shop.entity("order").create({"product": "Novel"}, alice).data
        assert shop.entity("order").delete([order["id"]], alice).code == Code.NO_RIGHTS

    def test_anonymous_needs_session(self, shop, seeded):
        assert shop.entity("order").list().code == Code.NO_SESSION

    def test_admin_can_update_others(self, shop, seeded, admin):
        alice = shop.caller(seeded["alice"]["id"], "user")
        order = shop.entity("order").create({"product": "Novel"}, alice).data
        result = shop.entity("order").update(order["id"], {"quantity": 3}, admin)
        assert result.ok, result.err
        assert shop.entity("order").find_by_id(order["id"])["quantity"] == 3

    def test_customer_delete_cascades_orders(self, shop, seeded, admin):
        alice = shop.caller(seeded["alice"]["id"], "user")
        shop.entity("order").create({"product": "Novel"}, alice)
        result = shop.entity("customer").delete([seeded["alice"]["id"]])
        assert result.ok, result.err
        assert shop.entity("order").count() == 0

    def test_failed_cascade_deletes_nothing(self, shop, seeded, monkeypatch):
        """A failure on the last delete step rolls back the cascaded steps."""
        from metacrud.data.store import RecordStore

        alice = shop.caller(seeded["alice"]["id"], "user")
        shop.entity("order").create({"product": "Novel"}, alice)
        original = RecordStore._delete_in

        def failing(session, collection, ids):
            if collection == "customer":
                raise RuntimeError("disk full")
            return original(session, collection, ids)

        monkeypatch.setattr(RecordStore, "_delete_in", staticmethod(failing))
        result = shop.entity("customer").delete([seeded["alice"]["id"]])
        assert result.code == Code.ERROR
        assert shop.entity("order").count() == 1
        assert shop.entity("customer").count() == 2


class TestEngine:
    """MetaCrud facade."""

    def test_caller_root_from_roles(self, shop):
        assert shop.caller("a", "admin").root
        assert not shop.caller("u", "user").root
        assert shop.caller() == Caller()

    def test_entity_cached(self, shop):
        assert shop.entity("product") is shop.entity("product")

    def test_describe_entity_mode(self, shop, admin):
        info = shop.entity("order").describe(shop.caller("u", "user"))
        assert info.mode == "crs"
        assert shop.entity("order").describe(admin).mode == "crudbs"

    def test_password_stored_hashed(self, shop, seeded):
        stored = shop.entity("customer").find_by_id(seeded["alice"]["id"])
        assert stored["password"] != "secret"
        assert len(stored["password"]) == 64
        assert "password" not in seeded["alice"]
