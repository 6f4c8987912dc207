"""
FastAPI Application Factory
===========================

Creates and configures the CRM API application with routers, middleware and
error handlers.

Errors are always answered as ``{"error": ...}``: 400 for business-rule
violations and invalid bodies, 401 for bad credentials, 404 for absent
resources, 500 (with ``error_name``) for anything unexpected.
"""

from __future__ import annotations

import logging
import uuid

import yaml
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from open_crm.api.routes import (
    apps,
    companies,
    configuration,
    contacts,
    database,
    health,
    interactions,
)
from open_crm.infrastructure.config import Settings, get_settings
from open_crm.infrastructure.dependencies import lifespan_manager, verify_api_key
from open_crm.infrastructure.logging import request_id_var
from open_crm.ports.database import DatabaseAdapter

logger = logging.getLogger(__name__)


def create_app(
    *,
    adapter: DatabaseAdapter | None = None,
    api_key: str | None = None,
    settings: Settings | None = None,
    enable_lifespan: bool = True,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        adapter: Database adapter to serve; the configured one when omitted.
        api_key: Overrides ``API_API_KEY``; empty disables authentication.
        settings: Settings to use instead of the cached ones.
        enable_lifespan: Run the startup/shutdown hooks.

    Returns:
        Configured FastAPI application instance.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.api.title,
        version=settings.api.version,
        description=(
            "Small CRM tracking companies, their contacts, product subscriptions "
            "and the interactions with them, with follow-up reminders."
        ),
        debug=settings.api.debug,
        lifespan=lifespan_manager if enable_lifespan else None,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        default_response_class=ORJSONResponse,
    )
    app.state.adapter = adapter
    app.state.api_key = settings.api.api_key if api_key is None else api_key

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        token = request_id_var.set(request_id)
        try:
            logger.info("%s %s", request.method, request.url.path)
            response = await call_next(request)
        finally:
            request_id_var.reset(token)
        response.headers["x-request-id"] = request_id
        return response

    _register_error_handlers(app)

    # Include routers
    app.include_router(health.router, prefix="/health", tags=["Health"])
    protected = [Depends(verify_api_key)]
    for module, tag in (
        (database, "Database"),
        (companies, "Companies"),
        (contacts, "Contacts"),
        (apps, "Apps"),
        (interactions, "Interactions"),
        (configuration, "Configuration"),
    ):
        app.include_router(module.router, tags=[tag], dependencies=protected)

    @app.get("/openapi.yaml", include_in_schema=False)
    def openapi_yaml() -> Response:
        schema = app.openapi()
        content = yaml.safe_dump(schema, sort_keys=False, allow_unicode=True)
        return Response(content=content, media_type="application/yaml")

    return app


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> ORJSONResponse:
        return ORJSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError) -> ORJSONResponse:
        errors = exc.errors()
        message = errors[0]["msg"] if errors else "invalid request"
        return ORJSONResponse(status_code=400, content={"error": message})

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception) -> ORJSONResponse:
        logger.warning("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return ORJSONResponse(
            status_code=500,
            content={"error": str(exc), "error_name": type(exc).__name__},
        )
