"""Shared test fixtures for metacrud."""

import copy
from collections.abc import Callable, Generator
from typing import Any

import pytest

from metacrud import Caller, MetaCrud, RoleSpec, SchemaRegistry, TypeRegistry, int_enum_type

MEMORY_URL = "sqlite:///:memory:"

CATEGORY: dict[str, Any] = {
    "collection": "category",
    "primary_keys": ["name"],
    "ref_label": "name",
    "creatable": True,
    "readable": True,
    "updatable": True,
    "deleteable": True,
    "cloneable": True,
    "fields": [
        {"name": "name", "required": True},
        {"name": "description", "type": "text", "list": False},
    ],
}

PRODUCT: dict[str, Any] = {
    "collection": "product",
    "primary_keys": ["name"],
    "ref_label": "name",
    "creatable": True,
    "readable": True,
    "updatable": True,
    "deleteable": True,
    "cloneable": True,
    "fields": [
        {"name": "name", "required": True},
        {"name": "category", "ref": "category"},
        {"name": "price", "type": "float", "required": True},
        {"name": "stock", "type": "uint", "default": 0},
        {"name": "published", "type": "boolean", "default": False},
        {"name": "sku", "sys": True, "default": "n/a"},
    ],
}

CUSTOMER: dict[str, Any] = {
    "collection": "customer",
    "primary_keys": ["email"],
    "ref_label": "email",
    "creatable": True,
    "readable": True,
    "updatable": True,
    "deleteable": True,
    "fields": [
        {"name": "email", "type": "email", "required": True},
        {"name": "name"},
        {"name": "password", "type": "password", "secure": True, "list": False},
    ],
}

ORDER: dict[str, Any] = {
    "collection": "order",
    "user_field": "customer",
    "roles": ["admin:*", "user:crs"],
    "creatable": True,
    "readable": True,
    "updatable": True,
    "deleteable": True,
    "fields": [
        {"name": "customer", "ref": "customer", "delete": "cascade", "update": False},
        {"name": "email", "link": "customer"},
        {"name": "product", "ref": "product", "delete": "keep"},
        {"name": "quantity", "type": "uint", "required": True, "default": 1},
        {"name": "status", "type": "order_status", "default": 0},
    ],
}

DEFAULT_ROLES = [RoleSpec(name="admin", root=True), RoleSpec(name="user")]


def shop_definitions() -> list[dict[str, Any]]:
    """Fresh copies of the shop entity definitions."""
    return copy.deepcopy([CATEGORY, PRODUCT, CUSTOMER, ORDER])


def with_hooks(definition: dict[str, Any], **hooks: Any) -> dict[str, Any]:
    """Copy of a definition with hooks attached."""
    result = copy.deepcopy(definition)
    result["hooks"] = hooks
    return result


@pytest.fixture
def types() -> TypeRegistry:
    """Built-in types plus the shop's order status enum."""
    registry = TypeRegistry.default(password_salt="pepper")
    registry.register(int_enum_type("order_status", [0, 1, 2, 3]))
    return registry


@pytest.fixture
def make_db(types: TypeRegistry) -> Generator[Callable[..., MetaCrud], None, None]:
    """Factory building a validated registry and an in-memory engine."""
    created: list[MetaCrud] = []

    def factory(*definitions: dict[str, Any], roles: list[RoleSpec] | None = None) -> MetaCrud:
        registry = SchemaRegistry(types)
        for definition in definitions:
            registry.register(definition)
        registry.validate_all()
        database = MetaCrud(MEMORY_URL, registry, roles=DEFAULT_ROLES if roles is None else roles)
        created.append(database)
        return database

    yield factory
    for database in created:
        database.close()


@pytest.fixture
def shop(make_db: Callable[..., MetaCrud]) -> MetaCrud:
    """Engine with category, product, customer and order registered."""
    return make_db(*shop_definitions())


@pytest.fixture
def admin(shop: MetaCrud) -> Caller:
    return shop.caller("admin-1", "admin")


@pytest.fixture
def seeded(shop: MetaCrud) -> dict[str, Any]:
    """A category, two products and two customers."""
    books = shop.entity("category").create({"name": "Books"}).data
    novel = shop.entity("product").create(
        {"name": "Novel", "category": "Books", "price": "12.5", "published": True}
    ).data
    atlas = shop.entity("product").create(
        {"name": "Atlas", "category": books["id"], "price": 30, "stock": 4}
    ).data
    alice = shop.entity("customer").create(
        {"email": "alice@example.com", "name": "Alice", "password": "secret"}
    ).data
    bob = shop.entity("customer").create(
        {"email": "bob@example.com", "name": "Bob", "password": "hunter2"}
    ).data
    return {"books": books, "novel": novel, "atlas": atlas, "alice": alice, "bob": bob}


@pytest.fixture
def shop_schema() -> list[dict[str, Any]]:
    """Fresh shop entity definitions, for tests that build their own registry."""
    return shop_definitions()


@pytest.fixture
def hooked() -> Callable[..., dict[str, Any]]:
    """The ``with_hooks`` helper."""
    return with_hooks


@pytest.fixture
def definitions() -> dict[str, dict[str, Any]]:
    """Fresh copies of each shop definition by collection name."""
    return {d["collection"]: d for d in shop_definitions()}
