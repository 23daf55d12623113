"""Response codes carried in every ``{code, data, err}`` envelope."""

from __future__ import annotations

from enum import IntEnum


class Code(IntEnum):
    """Fixed response codes shared by the server and client UIs."""

    ERROR = 0
    SUCCESS = 1
    NO_SESSION = 200
    NO_RIGHTS = 201
    NO_PARAMS = 202
    NOT_FOUND = 203
    INVALID_PARAMS = 204
    REF_NOT_FOUND = 205
    REF_NOT_UNIQUE = 206
    HAS_REF = 207
    DUPLICATE_KEY = 300

    @property
    def http_status(self) -> int:
        """HTTP status equivalent used by the generated routes."""
        return _HTTP_STATUS[self]

    @classmethod
    def values(cls) -> list[int]:
        """Return all code values."""
        return [c.value for c in cls]


_HTTP_STATUS: dict[Code, int] = {
    Code.ERROR: 500,
    Code.SUCCESS: 200,
    Code.NO_SESSION: 401,
    Code.NO_RIGHTS: 403,
    Code.NO_PARAMS: 400,
    Code.NOT_FOUND: 404,
    Code.INVALID_PARAMS: 422,
    Code.REF_NOT_FOUND: 422,
    Code.REF_NOT_UNIQUE: 409,
    Code.HAS_REF: 409,
    Code.DUPLICATE_KEY: 409,
}


def http_status_for(code: int) -> int:
    """Map any envelope code to an HTTP status.

    Codes outside ``Code`` come from application hooks. Those in the HTTP
    range are used as-is; anything else is a client error.
    """
    try:
        return Code(code).http_status
    except ValueError:
        if 100 <= code <= 599:
            return code
        return 400
