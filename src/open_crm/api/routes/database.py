"""
Database Endpoints
==================

Whole-database operations: reset and dump.
"""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Body

from open_crm.domain.defaults import empty_database, normalize_database
from open_crm.infrastructure.dependencies import AdapterDep, CrmDep

router = APIRouter()


@router.post("/reset", summary="Replace the whole database")
async def reset(adapter: AdapterDep, body: Annotated[Any, Body()] = None) -> dict[str, Any]:
    """
    Recreate the database from the request body (empty when omitted).

    Missing parts of the body are taken from the empty database. Returns the
    resulting configuration.
    """
    if isinstance(body, dict):
        body = {**empty_database().to_json(), **body}
    database = normalize_database(body if body is not None else empty_database())
    await adapter.create(database)
    session = await adapter.open()
    async with session:
        config = await session.load_config()
    return config.to_json()


@router.get("/dump", summary="Full database content")
async def dump(crm: CrmDep) -> dict[str, Any]:
    return (await crm.dump()).to_json()
