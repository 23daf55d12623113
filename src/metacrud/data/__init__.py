"""Data operations for metacrud."""

from metacrud.data.query import OPERATORS, JSONFilterBuilder
from metacrud.data.store import RecordStore

__all__ = [
    "OPERATORS",
    "JSONFilterBuilder",
    "RecordStore",
]
