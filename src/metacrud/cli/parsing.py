"""Schema file loading for CLI commands.

A schema file is a JSON object::

    {
        "types": {"order_status": {"kind": "int_enum", "values": [0, 1, 2]}},
        "entities": [{"collection": "order", "fields": [...], ...}]
    }

Hooks cannot be declared in a file; entities loaded this way run the plain
pipeline.
"""

import json
from pathlib import Path
from typing import Any

from metacrud.exceptions import MetaCrudError
from metacrud.fieldtypes import TypeRegistry, int_enum_type, string_enum_type
from metacrud.schema.registry import SchemaRegistry

TYPE_KINDS = {
    "int_enum": int_enum_type,
    "string_enum": string_enum_type,
}


def read_json_file(path: str) -> dict[str, Any]:
    """Read single JSON object from file.

    Raises:
        FileNotFoundError: If file doesn't exist
        json.JSONDecodeError: If file contains invalid JSON
        MetaCrudError: If the top-level value is not an object
    """
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    with file_path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise MetaCrudError(f"Expected a JSON object in {path}, got {type(data).__name__}")
    return data


def build_types(raw_types: dict[str, Any], password_salt: str = "") -> TypeRegistry:
    """Create the built-in types plus the enum types declared in a schema file."""
    types = TypeRegistry.default(password_salt=password_salt)
    for name, declaration in raw_types.items():
        kind = declaration.get("kind") if isinstance(declaration, dict) else None
        factory = TYPE_KINDS.get(kind or "")
        if factory is None:
            raise MetaCrudError(
                f"Type '{name}' has unknown kind {kind!r}",
                context={"valid_kinds": sorted(TYPE_KINDS)},
            )
        types.register(factory(name, declaration.get("values") or []))
    return types


def load_schema(path: str, password_salt: str = "", validate: bool = True) -> SchemaRegistry:
    """Build a registry from a schema file.

    Args:
        path: Path to the schema JSON file
        password_salt: Salt for the ``password`` type
        validate: Whether to run ``validate_all`` after registering

    Returns:
        The populated (and, by default, validated) registry
    """
    raw = read_json_file(path)
    unknown = sorted(set(raw) - {"types", "entities"})
    if unknown:
        raise MetaCrudError(
            f"Unknown top-level key(s) in {path}: {', '.join(unknown)}",
            context={"allowed": ["types", "entities"]},
        )

    registry = SchemaRegistry(build_types(raw.get("types") or {}, password_salt))
    for definition in raw.get("entities") or []:
        registry.register(definition)
    if validate:
        registry.validate_all()
    return registry
