"""
Company Endpoints
=================
"""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Body, HTTPException, status

from open_crm.api.errors import not_found, unwrap
from open_crm.infrastructure.dependencies import CrmDep

router = APIRouter(prefix="/companies")


@router.get("", summary="List all companies")
async def list_companies(crm: CrmDep) -> list[dict[str, Any]]:
    return [company.to_json() for company in (await crm.dump()).companies]


@router.get("/search/{filter}", summary="Fuzzy search on name, url and address")
async def search_companies(filter: str, crm: CrmDep) -> dict[str, Any]:
    return {"rows": [company.to_json() for company in await crm.search_companies(filter)]}


@router.get("/{name}", summary="Company by name (case-insensitive)")
async def get_company(name: str, crm: CrmDep) -> dict[str, Any]:
    company = await crm.find_company_by_name(name)
    if company is None:
        raise not_found("company")
    return company.to_json()


@router.post("", summary="Add a company")
async def add_company(crm: CrmDep, body: Annotated[dict[str, Any], Body()]) -> dict[str, Any]:
    if not body.get("name"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Failed to add company")
    return unwrap(await crm.add_company(body)).to_json()


@router.put("/{name}", summary="Update a company")
async def update_company(
    name: str, crm: CrmDep, body: Annotated[dict[str, Any], Body()]
) -> dict[str, Any]:
    """Merge the body into the company. The name cannot be changed."""
    company = unwrap(await crm.update_company(name, body))
    return {"company": company.to_json()}
