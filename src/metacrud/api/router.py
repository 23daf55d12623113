"""FastAPI router generation for registered entities.

Every route returns the ``{code, data, err}`` envelope. The HTTP status comes
from the envelope code, so clients can rely on either.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from fastapi import APIRouter, Body, Depends, Header, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from metacrud.core.codes import Code, http_status_for
from metacrud.core.engine import MetaCrud
from metacrud.core.types import Result
from metacrud.permissions import Caller

logger = logging.getLogger(__name__)

# Query parameters of GET /{collection} that are not search filters
LIST_PARAMS = frozenset({"sort_by", "desc", "page", "limit"})

Identity = Callable[..., Caller]


class ListBody(BaseModel):
    filters: dict[str, Any] = Field(default_factory=dict)
    sort_by: str | None = None
    desc: bool = False
    page: int = 1
    limit: int | None = None


class BatchUpdateBody(BaseModel):
    ids: list[str]
    data: dict[str, Any] = Field(default_factory=dict)


class IdsBody(BaseModel):
    ids: list[str] = Field(default_factory=list)


def respond(result: Result) -> JSONResponse:
    """Render a Result as a JSON response."""
    return JSONResponse(
        status_code=http_status_for(result.code),
        content=jsonable_encoder(result.to_dict()),
    )


def header_identity(db: MetaCrud) -> Identity:
    """Dependency reading the caller from ``X-User-Id`` / ``X-User-Role`` headers."""

    def identity(
        x_user_id: str | None = Header(default=None),
        x_user_role: str | None = Header(default=None),
    ) -> Caller:
        return db.caller(user_id=x_user_id, role=x_user_role)

    return identity


def _flag(value: str | None) -> bool:
    return value is not None and value.lower() in ("1", "true", "yes", "on")


def entity_router(db: MetaCrud, name: str, identity: Identity | None = None) -> APIRouter:
    """Build the CRUD router for one collection.

    Args:
        db: Engine holding the validated registry
        name: Collection name
        identity: Dependency returning the request's ``Caller``

    Returns:
        Router mounted under ``/{name}``
    """
    entity = db.entity(name)
    get_caller = identity or header_identity(db)
    router = APIRouter(prefix=f"/{name}", tags=[name])

    @router.get("/meta")
    def read_meta(mode: str | None = None, caller: Caller = Depends(get_caller)):
        info = entity.meta.to_info(entity.mode(caller, mode))
        return respond(Result.success(info.model_dump()))

    @router.get("/mode")
    def read_mode(mode: str | None = None, caller: Caller = Depends(get_caller)):
        return respond(Result.success(entity.mode(caller, mode).to_string()))

    @router.get("/ref")
    def read_refs(caller: Caller = Depends(get_caller)):
        return respond(entity.refs(caller))

    @router.get("")
    def list_by_query(request: Request, caller: Caller = Depends(get_caller)):
        query = request.query_params
        params: dict[str, Any] = {
            "filters": {k: v for k, v in query.items() if k not in LIST_PARAMS},
            "sort_by": query.get("sort_by"),
            "desc": _flag(query.get("desc")),
        }
        try:
            if "page" in query:
                params["page"] = int(query["page"])
            if "limit" in query:
                params["limit"] = int(query["limit"])
        except ValueError:
            return respond(Result.fail(Code.INVALID_PARAMS, "page and limit must be integers"))
        return respond(entity.list(params, caller))

    @router.post("/list")
    def list_by_body(body: ListBody, caller: Caller = Depends(get_caller)):
        return respond(entity.list(body.model_dump(), caller))

    @router.get("/{record_id}")
    def read_record(record_id: str, caller: Caller = Depends(get_caller)):
        return respond(entity.read(record_id, caller))

    @router.post("")
    def create_record(
        data: dict[str, Any] | None = Body(default=None), caller: Caller = Depends(get_caller)
    ):
        return respond(entity.create(data or {}, caller))

    @router.put("/{record_id}")
    def update_record(
        record_id: str,
        data: dict[str, Any] | None = Body(default=None),
        caller: Caller = Depends(get_caller),
    ):
        return respond(entity.update(record_id, data or {}, caller))

    @router.put("")
    def batch_update(body: BatchUpdateBody, caller: Caller = Depends(get_caller)):
        return respond(entity.batch_update(body.ids, body.data, caller))

    @router.delete("")
    def delete_records(
        ids: list[str] | None = Query(default=None),
        body: IdsBody | None = Body(default=None),
        caller: Caller = Depends(get_caller),
    ):
        targets = list(ids or [])
        if body is not None:
            targets.extend(body.ids)
        return respond(entity.delete(targets, caller))

    @router.post("/clone/{record_id}")
    def clone_record(
        record_id: str,
        data: dict[str, Any] | None = Body(default=None),
        caller: Caller = Depends(get_caller),
    ):
        return respond(entity.clone(record_id, data or {}, caller))

    logger.debug("Built router for %s", name)
    return router
