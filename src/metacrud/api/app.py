"""FastAPI application factory."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

import metacrud
from metacrud.api.router import Identity, entity_router, header_identity
from metacrud.core.codes import Code
from metacrud.core.engine import MetaCrud
from metacrud.exceptions import MetaCrudError

logger = logging.getLogger(__name__)


def _describe(error: dict) -> str:
    """``"ids: Field required"`` from one pydantic error entry."""
    location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
    return f"{location or 'body'}: {error.get('msg', 'invalid')}"


def create_app(db: MetaCrud, identity: Identity | None = None, title: str = "metacrud") -> FastAPI:
    """Build an app with one router per registered collection.

    Args:
        db: Engine holding the validated registry
        identity: Dependency returning the request's ``Caller``; defaults to
            reading ``X-User-Id`` and ``X-User-Role`` headers
        title: OpenAPI title

    Returns:
        FastAPI application
    """
    app = FastAPI(title=title, version=metacrud.__version__)
    get_caller = identity or header_identity(db)

    @app.exception_handler(MetaCrudError)
    async def metacrud_error_handler(request: Request, exc: MetaCrudError) -> JSONResponse:
        logger.error("Request %s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(
            status_code=Code.ERROR.http_status,
            content={"code": int(Code.ERROR), "err": exc.message},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        problems = [_describe(error) for error in exc.errors()]
        logger.debug("Rejected %s %s: %s", request.method, request.url.path, problems)
        return JSONResponse(
            status_code=Code.INVALID_PARAMS.http_status,
            content={"code": int(Code.INVALID_PARAMS), "err": problems},
        )

    @app.get("/", tags=["meta"])
    def list_collections() -> dict:
        return {"code": int(Code.SUCCESS), "data": db.list_entities()}

    for name in db.list_entities():
        app.include_router(entity_router(db, name, get_caller))

    logger.info("Mounted %d collection router(s)", len(db.list_entities()))
    return app
