"""Core types and specifications for metacrud.

Definitions (``FieldSpec``, ``EntitySpec``) are the input format application
code passes to the schema registry, usually as plain dicts. Output types are
JSON-serializable for the HTTP layer and the CLI.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from metacrud.core.codes import Code

# Attributes a link field may carry; everything else is copied from the
# referenced record.
LINK_FIELD_ATTRIBUTES = frozenset({"name", "link", "list"})


class DeletePolicy(StrEnum):
    """What happens to referencing records when their target is deleted."""

    KEEP = "keep"  # Leave referencing records untouched
    CASCADE = "cascade"  # Delete referencing records too

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid delete policy values."""
        return [p.value for p in cls]


class FieldSpec(BaseModel):
    """Specification for one field of an entity.

    Visibility flags default to True; ``sys`` and ``secure`` default to False.
    A field with ``link`` set is a read-only copy of a value from the record
    referenced by another field of the same entity and may only declare
    ``name``, ``link`` and ``list``.
    """

    name: str = Field(..., min_length=1, description="Field name, unique within the entity")
    type: str = Field(default="string", description="Registered type name")
    required: bool = Field(default=False, description="Whether a value must be supplied")
    default: Any = Field(default=None, description="Value applied on create when absent")
    ref: str | None = Field(default=None, description="Referenced collection name")
    link: str | None = Field(default=None, description="Reference field this value is copied via")
    delete: DeletePolicy | None = Field(
        default=None, description="Policy when the referenced record is deleted"
    )
    create: bool = Field(default=True, description="Shown in create forms")
    update: bool = Field(default=True, description="Shown in update forms")
    search: bool = Field(default=True, description="Usable as a search criterion")
    clone: bool = Field(default=True, description="Copied when a record is cloned")
    sys: bool = Field(default=False, description="Server-only, never sent to clients")
    secure: bool = Field(default=False, description="Never listed or searched")
    view: str | None = Field(default=None, description="Form view tag")
    description: str | None = Field(default=None, description="Human-readable description")
    list: bool = Field(default=True, description="Shown in list tables")

    model_config = {"extra": "forbid", "frozen": True, "use_enum_values": True}

    @model_validator(mode="after")
    def _check_link_attributes(self) -> FieldSpec:
        if self.link is not None:
            extra = sorted(self.model_fields_set - LINK_FIELD_ATTRIBUTES)
            if extra:
                raise ValueError(
                    f"link field '{self.name}' may only declare name, link and list; "
                    f"got {', '.join(extra)}"
                )
        return self

    @property
    def is_link(self) -> bool:
        return self.link is not None

    @property
    def is_ref(self) -> bool:
        return self.ref is not None


class EntitySpec(BaseModel):
    """Specification for one entity (collection).

    Operation flags default to False: an entity only exposes what it declares.
    ``roles`` holds ``"role:mode"`` strings such as ``"admin:*"`` or
    ``"user:cr"``. ``hooks`` is a ``metacrud.hooks.Hooks`` or a mapping of hook
    name to callable.
    """

    collection: str = Field(..., min_length=1, description="Unique collection name")
    fields: list[FieldSpec] = Field(default_factory=list, description="Field definitions")
    primary_keys: list[str] = Field(default_factory=list, description="Unique key field names")
    ref_label: str | None = Field(default=None, description="Field shown for references")
    user_field: str | None = Field(default=None, description="Ownership field name")
    creatable: bool = False
    readable: bool = False
    updatable: bool = False
    deleteable: bool = False
    cloneable: bool = False
    importable: bool = False
    exportable: bool = False
    roles: list[str] | None = Field(default=None, description="Role mode strings")
    hooks: Any = Field(default=None, description="Lifecycle hooks")
    description: str | None = Field(default=None, description="Human-readable description")

    model_config = {"extra": "forbid", "frozen": True, "arbitrary_types_allowed": True}

    @field_validator("hooks", mode="before")
    @classmethod
    def _coerce_hooks(cls, value: Any) -> Any:
        from metacrud.hooks import Hooks

        return Hooks.coerce(value)


class RoleSpec(BaseModel):
    """A role known to the application. Root roles bypass ownership narrowing."""

    name: str
    root: bool = False


class Result(BaseModel):
    """The ``{code, data, err}`` envelope returned by every operation and hook."""

    code: int = Code.SUCCESS
    data: Any = None
    err: str | list[str] | None = None

    @property
    def ok(self) -> bool:
        return self.code == Code.SUCCESS

    @classmethod
    def success(cls, data: Any = None) -> Result:
        return cls(code=Code.SUCCESS, data=data)

    @classmethod
    def fail(cls, code: int, err: str | list[str] | None = None) -> Result:
        return cls(code=code, err=err)

    def to_dict(self) -> dict[str, Any]:
        """Return the envelope, omitting ``data``/``err`` when they are None."""
        envelope: dict[str, Any] = {"code": int(self.code)}
        if self.data is not None:
            envelope["data"] = self.data
        if self.err is not None:
            envelope["err"] = self.err
        return envelope


class QueryResult(BaseModel):
    """Result from a storage query."""

    records: list[dict[str, Any]]
    total_count: int
    limit: int | None = None
    offset: int | None = None


class FieldInfo(BaseModel):
    """Information about a registered field (output format)."""

    name: str
    type: str
    required: bool
    default: Any = None
    ref: str | None = None
    link: str | None = None
    delete: str | None = None
    view: str | None = None
    create: bool = True
    update: bool = True
    search: bool = True
    clone: bool = True
    list: bool = True


class EntityInfo(BaseModel):
    """Information about a registered entity (output format)."""

    collection: str
    description: str | None = None
    primary_keys: list[str] = Field(default_factory=list)
    ref_label: str | None = None
    user_field: str | None = None
    mode: str = ""
    fields: list[FieldInfo] = Field(default_factory=list)
    ref_by: list[str] = Field(default_factory=list)
