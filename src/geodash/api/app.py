# src/geodash/api/app.py
"""
FastAPI application wiring.

Creates the app, applies the CORS policy from settings (`api.cors_origins`,
`api.cors_allow_local`), and maps typed query failures to HTTP responses so the routes
in `geodash.api.routes` only deal with successful results.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware

from geodash.config.settings import get_settings
from geodash.core.logging import configure_logging
from geodash.domain.errors import InvalidQuery, QueryError

from .routes import STATUS_BY_KIND, router

configure_logging()
logger = logging.getLogger(__name__)

LOCALHOST_ORIGIN_REGEX = r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"

app = FastAPI(title="GeoDash API", version="0.1.0")

_api = get_settings().api
_origin_regex = LOCALHOST_ORIGIN_REGEX if _api.cors_allow_local and not _api.cors_origins else None
if _api.cors_origins or _origin_regex:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_api.cors_origins,
        allow_origin_regex=_origin_regex,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(router)


@app.exception_handler(QueryError)
async def query_error_handler(request: Request, exc: QueryError) -> JSONResponse:
    logger.info("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.kind.value)
    return JSONResponse(
        status_code=STATUS_BY_KIND.get(exc.kind, 400),
        content={"detail": {"code": exc.kind.value, "message": exc.message}},
    )


@app.exception_handler(InvalidQuery)
async def invalid_query_handler(request: Request, exc: InvalidQuery) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": {"code": "VALIDATION_ERROR", "message": str(exc)}})


@app.get("/api/health")
def health() -> dict:
    return {"status": "ok"}
