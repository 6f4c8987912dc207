"""
Configuration Endpoints
=======================

Database-wide configuration: plans, staff, interaction kinds and tags, and
email templates.
"""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Body, Query

from open_crm.api.errors import unwrap
from open_crm.infrastructure.dependencies import CrmDep

router = APIRouter()


@router.get("/config", summary="Current configuration")
async def get_config(crm: CrmDep) -> dict[str, Any]:
    return (await crm.load_config()).to_json()


@router.put("/config", summary="Merge into the configuration")
async def update_config(crm: CrmDep, body: Annotated[dict[str, Any], Body()]) -> dict[str, Any]:
    return unwrap(await crm.update_config(body)).to_json()


@router.get("/config/staff", summary="Staff members by email")
async def get_staff(crm: CrmDep) -> dict[str, str]:
    return (await crm.load_config()).staff


@router.post("/config/staff", summary="Add a staff member")
async def add_staff(crm: CrmDep, body: Annotated[dict[str, Any], Body()]) -> dict[str, Any]:
    """Body: ``{"email": ..., "name": ...}``."""
    staff = unwrap(await crm.add_staff(body.get("email"), body.get("name")))
    return {"staff": staff}


@router.get("/config/templates", summary="Email templates")
async def get_templates(
    crm: CrmDep,
    render_for: Annotated[str | None, Query(alias="renderFor")] = None,
) -> dict[str, Any]:
    """All templates; rendered for ``renderFor`` when given."""
    templates = (await crm.load_config()).templates or []
    if render_for:
        templates = [unwrap(await crm.render_template(t, render_for)) for t in templates]
    return {"templates": [t.to_json() for t in templates]}


@router.post("/config/templates", summary="Add an email template")
async def add_template(crm: CrmDep, body: Annotated[dict[str, Any], Body()]) -> dict[str, Any]:
    template = unwrap(await crm.add_template(body))
    return {"template": template.to_json()}


@router.post("/render-template", summary="Render a template for a contact")
async def render_template(crm: CrmDep, body: Annotated[dict[str, Any], Body()]) -> dict[str, Any]:
    """Body: ``{"template": {"subject", "content"}, "filter": ...}``."""
    template = unwrap(await crm.render_template(body.get("template") or {}, body.get("filter")))
    return {"template": template.to_json()}
