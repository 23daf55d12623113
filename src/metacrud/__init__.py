"""metacrud - Metadata-driven CRUD on a JSON document store.

Entities are declared as data: fields with visibility flags, references to
other entities, role modes and lifecycle hooks. Once every entity is
registered and validated, each one gets the same CRUD pipeline and, if
wanted, a generated FastAPI router.

Example:
    from metacrud import MetaCrud, SchemaRegistry, TypeRegistry

    registry = SchemaRegistry(TypeRegistry.default())
    registry.register({
        "collection": "category",
        "primary_keys": ["name"],
        "ref_label": "name",
        "creatable": True,
        "readable": True,
        "fields": [{"name": "name", "required": True}],
    })
    registry.validate_all()

    db = MetaCrud("sqlite:///:memory:", registry)
    result = db.entity("category").create({"name": "Books"})
    assert result.ok
"""

from metacrud.core.codes import Code, http_status_for
from metacrud.core.engine import Entity, MetaCrud
from metacrud.core.types import (
    DeletePolicy,
    EntityInfo,
    EntitySpec,
    FieldInfo,
    FieldSpec,
    QueryResult,
    Result,
    RoleSpec,
)
from metacrud.exceptions import (
    ConnectionError,
    DuplicateTypeError,
    EntityNotFoundError,
    FieldNotFoundError,
    HasReferenceError,
    MetaCrudError,
    OperationError,
    QueryError,
    RecordNotFoundError,
    ReferenceError,
    RegistryFrozenError,
    RegistryNotValidatedError,
    SchemaDefinitionError,
    SchemaValidationError,
    TypeNotFoundError,
    TypeRegistryFrozenError,
)
from metacrud.fieldtypes import TypeRegistry, int_enum_type, string_enum_type
from metacrud.hooks import (
    BatchUpdateContext,
    CloneContext,
    CreateContext,
    DeleteContext,
    Hooks,
    ListContext,
    ReadContext,
    UpdateContext,
)
from metacrud.permissions import Caller, Mode, effective_mode
from metacrud.schema import EntityMeta, SchemaRegistry
from metacrud.settings import Settings, load_settings

__version__ = "0.1.0"

__all__ = [
    # Main classes
    "MetaCrud",
    "Entity",
    "SchemaRegistry",
    "EntityMeta",
    "TypeRegistry",
    "int_enum_type",
    "string_enum_type",
    # Types
    "Code",
    "http_status_for",
    "DeletePolicy",
    "FieldSpec",
    "EntitySpec",
    "RoleSpec",
    "FieldInfo",
    "EntityInfo",
    "QueryResult",
    "Result",
    # Permissions
    "Caller",
    "Mode",
    "effective_mode",
    # Hooks
    "Hooks",
    "CreateContext",
    "UpdateContext",
    "BatchUpdateContext",
    "DeleteContext",
    "CloneContext",
    "ListContext",
    "ReadContext",
    # Settings
    "Settings",
    "load_settings",
    # Exceptions
    "MetaCrudError",
    "ConnectionError",
    "QueryError",
    "TypeNotFoundError",
    "DuplicateTypeError",
    "TypeRegistryFrozenError",
    "SchemaDefinitionError",
    "SchemaValidationError",
    "RegistryFrozenError",
    "RegistryNotValidatedError",
    "EntityNotFoundError",
    "FieldNotFoundError",
    "OperationError",
    "ReferenceError",
    "HasReferenceError",
    "RecordNotFoundError",
]
