"""Core components for metacrud."""

from metacrud.core.codes import Code, http_status_for
from metacrud.core.connection import DatabaseConnection
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

__all__ = [
    "Code",
    "http_status_for",
    "DatabaseConnection",
    "DeletePolicy",
    "FieldSpec",
    "EntitySpec",
    "RoleSpec",
    "FieldInfo",
    "EntityInfo",
    "QueryResult",
    "Result",
]
