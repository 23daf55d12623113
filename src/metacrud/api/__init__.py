"""HTTP layer for metacrud."""

from metacrud.api.app import create_app
from metacrud.api.router import entity_router, header_identity, respond

__all__ = [
    "create_app",
    "entity_router",
    "header_identity",
    "respond",
]
