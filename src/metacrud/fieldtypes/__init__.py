"""Field type registry for metacrud."""

from metacrud.fieldtypes.builtin import int_enum_type, password_type, string_enum_type
from metacrud.fieldtypes.registry import Converted, RegisteredType, TypeRegistry

__all__ = [
    "Converted",
    "RegisteredType",
    "TypeRegistry",
    "int_enum_type",
    "string_enum_type",
    "password_type",
]
