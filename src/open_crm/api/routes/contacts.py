"""
Contact Endpoints
=================
"""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Body

from open_crm.api.errors import not_found, unwrap
from open_crm.infrastructure.dependencies import CrmDep

router = APIRouter(prefix="/contacts")


@router.get("/by-email/{email}", summary="Contact by email")
async def get_contact_by_email(email: str, crm: CrmDep) -> dict[str, Any]:
    """The contact, with the name of its company under ``company``."""
    match = await crm.find_contact_by_email(email)
    if match is None:
        raise not_found("contact")
    return {**match.contact.to_json(), "company": match.company.name}


@router.post("", summary="Add a contact to a company")
async def add_contact(crm: CrmDep, body: Annotated[dict[str, Any], Body()]) -> dict[str, Any]:
    contact = unwrap(await crm.add_contact(body))
    return {"contact": contact.to_json()}


@router.put("/{email}", summary="Update a contact")
async def update_contact(
    email: str, crm: CrmDep, body: Annotated[dict[str, Any], Body()]
) -> dict[str, Any]:
    contact = unwrap(await crm.update_contact(email, body))
    return {"contact": contact.to_json()}
