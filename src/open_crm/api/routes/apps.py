"""
App Endpoints
=============
"""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Body

from open_crm.api.errors import not_found, unwrap
from open_crm.domain.entities import AppMatch
from open_crm.infrastructure.dependencies import CrmDep

router = APIRouter(prefix="/apps")


def _flatten(match: AppMatch | None) -> dict[str, Any]:
    if match is None:
        raise not_found("app")
    return {**match.app.to_json(), "company": match.company.name}


@router.get("/by-name/{app_name}", summary="App by name")
async def get_app_by_name(app_name: str, crm: CrmDep) -> dict[str, Any]:
    """The app, with the name of its company under ``company``."""
    return _flatten(await crm.find_app_by_name(app_name))


@router.get("/by-email/{email}", summary="App by contact email")
async def get_app_by_email(email: str, crm: CrmDep) -> dict[str, Any]:
    return _flatten(await crm.find_app_by_email(email))


@router.post("", summary="Add an app to a company")
async def add_app(crm: CrmDep, body: Annotated[dict[str, Any], Body()]) -> dict[str, Any]:
    app = unwrap(await crm.add_app(body))
    return {"app": app.to_json()}


@router.put("/{app_name}", summary="Update an app")
async def update_app(
    app_name: str, crm: CrmDep, body: Annotated[dict[str, Any], Body()]
) -> dict[str, Any]:
    app = unwrap(await crm.update_app(app_name, body))
    return {"message": "App updated successfully", "app": app.to_json()}
