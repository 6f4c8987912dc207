"""
Dependency Injection Container
==============================

FastAPI dependency functions wiring the database adapter and the per-request
``CrmSession``.
"""

from __future__ import annotations

import base64
import binascii
import logging
import secrets
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Annotated, Any

from fastapi import Depends, HTTPException, Request, status

from open_crm.application.crm_session import CrmSession
from open_crm.infrastructure.config import get_settings
from open_crm.infrastructure.database import get_database_adapter
from open_crm.infrastructure.logging import configure_logging
from open_crm.ports.database import DatabaseAdapter

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = logging.getLogger(__name__)

AUTH_REALM = 'Basic realm="CRM Server"'


# -----------------------------------------------------------------------------
# Lifecycle management
# -----------------------------------------------------------------------------


@asynccontextmanager
async def lifespan_manager(app: FastAPI) -> AsyncIterator[dict[str, Any]]:
    """
    Configure logging and connect the database adapter on startup.

    Usage in FastAPI:
        app = FastAPI(lifespan=lifespan_manager)
    """
    settings = get_settings()
    configure_logging(settings.log_level)
    adapter = get_adapter_of(app)
    logger.info("Serving CRM database through %s", type(adapter).__name__)
    yield {}
    logger.info("CRM API shutting down")


def get_adapter_of(app: FastAPI) -> DatabaseAdapter:
    """Adapter injected into ``app``, else the pooled one for the configured URL."""
    adapter = getattr(app.state, "adapter", None)
    if adapter is None:
        adapter = get_database_adapter()
        app.state.adapter = adapter
    return adapter


# -----------------------------------------------------------------------------
# FastAPI Dependency providers
# -----------------------------------------------------------------------------


async def get_adapter(request: Request) -> DatabaseAdapter:
    """Dependency: the database adapter served by this app."""
    return get_adapter_of(request.app)


async def get_crm_session(
    adapter: Annotated[DatabaseAdapter, Depends(get_adapter)],
) -> AsyncIterator[CrmSession]:
    """Dependency: one CRM session per request, closed once the request is done."""
    async with CrmSession(adapter) as crm:
        yield crm


def _equal(given: str, expected: str) -> bool:
    return secrets.compare_digest(given.encode("utf-8"), expected.encode("utf-8"))


def _credentials_match(header: str, api_key: str) -> bool:
    if _equal(header, api_key):
        return True
    scheme, _, value = header.partition(" ")
    scheme = scheme.lower()
    if scheme == "bearer":
        return _equal(value.strip(), api_key)
    if scheme == "basic":
        try:
            decoded = base64.b64decode(value.strip(), validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            return False
        username, _, password = decoded.partition(":")
        return _equal(username, api_key) or _equal(password, api_key)
    return False


async def verify_api_key(request: Request) -> bool:
    """
    Verify the ``Authorization`` header if authentication is enabled.

    Accepted forms: the raw key, ``Bearer <key>``, or Basic credentials whose
    user name or password is the key.
    """
    api_key: str = getattr(request.app.state, "api_key", "")
    if not api_key:
        return True

    header = request.headers.get("authorization")
    if not header or not _credentials_match(header, api_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": AUTH_REALM},
        )
    return True


CrmDep = Annotated[CrmSession, Depends(get_crm_session)]
AdapterDep = Annotated[DatabaseAdapter, Depends(get_adapter)]
