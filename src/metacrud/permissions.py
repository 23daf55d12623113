"""Permission modes: which operations a caller may run on an entity.

The server side (entity operation flags) and the role side (``"role:mode"``
strings) are each turned into a ``Mode`` flag set and intersected. A mode
declared by a UI layer is intersected last, so it can narrow the result but
never widen it.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntFlag
from typing import TYPE_CHECKING

from metacrud.core.codes import Code
from metacrud.core.types import EntitySpec, Result

if TYPE_CHECKING:
    from metacrud.schema.meta import EntityMeta

ALL_ROLE_MODE = "*"


class Mode(IntFlag):
    """Operation set. Each member has a one-character wire form."""

    NONE = 0
    CREATE = 1
    READ = 2
    UPDATE = 4
    DELETE = 8
    BATCH = 16
    CLONE = 32
    SEARCH = 64
    IMPORT = 128
    EXPORT = 256
    ALL = 511

    @classmethod
    def parse(cls, text: str, strict: bool = True) -> Mode:
        """Parse a mode string such as ``"crud"``.

        ``"*"`` means every operation. Unknown characters raise ``ValueError``
        when ``strict``; otherwise they are ignored.
        """
        if text == ALL_ROLE_MODE:
            return cls.ALL
        mode = cls.NONE
        for char in text:
            member = _CHAR_TO_MODE.get(char)
            if member is None:
                if strict:
                    raise ValueError(
                        f"unknown mode character '{char}'; valid characters: {MODE_CHARS}"
                    )
                continue
            mode |= member
        return mode

    def to_string(self) -> str:
        """Canonical wire string, e.g. ``"crs"``."""
        return "".join(char for char, member in _CHAR_TO_MODE.items() if member in self)

    def __str__(self) -> str:
        return self.to_string()


_CHAR_TO_MODE: dict[str, Mode] = {
    "c": Mode.CREATE,
    "r": Mode.READ,
    "u": Mode.UPDATE,
    "d": Mode.DELETE,
    "b": Mode.BATCH,
    "o": Mode.CLONE,
    "s": Mode.SEARCH,
    "i": Mode.IMPORT,
    "e": Mode.EXPORT,
}
MODE_CHARS = "".join(_CHAR_TO_MODE)


@dataclass(frozen=True)
class Caller:
    """Authenticated identity of the party making a request."""

    user_id: str | None = None
    role: str | None = None
    root: bool = False


def server_mode(spec: EntitySpec) -> Mode:
    """Operations enabled by an entity's flags."""
    mode = Mode.NONE
    if spec.creatable:
        mode |= Mode.CREATE
    if spec.readable:
        mode |= Mode.READ | Mode.SEARCH
    if spec.updatable:
        mode |= Mode.UPDATE | Mode.BATCH
    if spec.deleteable:
        mode |= Mode.DELETE
    if spec.cloneable:
        mode |= Mode.CLONE
    if spec.importable:
        mode |= Mode.IMPORT
    if spec.exportable:
        mode |= Mode.EXPORT
    return mode


def parse_role_modes(roles: list[str]) -> dict[str, Mode]:
    """Parse ``["admin:*", "user:cr"]`` into role name -> mode.

    Raises:
        ValueError: On a malformed entry or unknown mode character
    """
    parsed: dict[str, Mode] = {}
    for entry in roles:
        name, sep, mode_text = entry.partition(":")
        name = name.strip()
        if not sep or not name:
            raise ValueError(f"role '{entry}' must look like 'name:mode'")
        if name in parsed:
            raise ValueError(f"role '{name}' declared twice")
        parsed[name] = Mode.parse(mode_text.strip())
    return parsed


def effective_mode(meta: EntityMeta, role: str | None, ui_mode: Mode | str | None = None) -> Mode:
    """Operations ``role`` may run on the entity.

    Entities without declared roles allow every flagged operation to every
    caller. Otherwise a role that is not declared gets nothing.
    """
    mode = meta.server_mode
    if meta.role_modes is not None:
        role_mode = meta.role_modes.get(role) if role is not None else None
        mode = mode & role_mode if role_mode is not None else Mode.NONE
    if ui_mode is not None:
        if isinstance(ui_mode, str):
            ui_mode = Mode.parse(ui_mode, strict=False)
        mode &= ui_mode
    return mode


def require(meta: EntityMeta, caller: Caller | None, operation: Mode) -> Result | None:
    """Return a failure ``Result`` if the caller may not run ``operation``."""
    role = caller.role if caller is not None else None
    if meta.role_modes is not None and role is None:
        return Result.fail(Code.NO_SESSION, "authentication required")
    if operation not in effective_mode(meta, role):
        return Result.fail(
            Code.NO_RIGHTS,
            f"operation '{operation.to_string()}' not permitted on '{meta.collection}'",
        )
    return None
