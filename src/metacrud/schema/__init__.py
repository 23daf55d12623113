"""Schema management for metacrud."""

from metacrud.schema.meta import BackReference, EntityMeta
from metacrud.schema.models import Base, Record
from metacrud.schema.registry import SchemaRegistry

__all__ = [
    "SchemaRegistry",
    "EntityMeta",
    "BackReference",
    "Base",
    "Record",
]
