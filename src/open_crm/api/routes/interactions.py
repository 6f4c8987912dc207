"""
Interaction Endpoints
=====================

Interactions are addressed by company name and 0-based position within the
company.
"""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Body, HTTPException, Query, status

from open_crm.api.errors import unwrap
from open_crm.infrastructure.dependencies import CrmDep

router = APIRouter()


@router.post("/interactions", summary="Log an interaction")
async def add_interaction(crm: CrmDep, body: Annotated[dict[str, Any], Body()]) -> dict[str, Any]:
    interaction = unwrap(await crm.add_interaction(body))
    return {"interaction": interaction.to_json()}


@router.put("/interactions/{company}/{index}", summary="Update an interaction")
async def update_interaction(
    company: str, index: int, crm: CrmDep, body: Annotated[dict[str, Any], Body()]
) -> dict[str, Any]:
    interaction = unwrap(await crm.update_interaction(company, index, body))
    return {"interaction": interaction.to_json()}


@router.post("/interactions/{company}/{index}/done", summary="Clear a follow-up date")
async def done_interaction(company: str, index: int, crm: CrmDep) -> dict[str, Any]:
    interaction = unwrap(await crm.done_interaction(company, index))
    return {"interaction": interaction.to_json()}


@router.get("/followups", summary="Interactions due for follow-up")
async def followups(
    crm: CrmDep,
    start_date: Annotated[str | None, Query()] = None,
    end_date: Annotated[str | None, Query()] = None,
) -> dict[str, Any]:
    """Follow-ups dated within ``[start_date, end_date]`` (inclusive, by day)."""
    if not start_date or not end_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="start_date and end_date are required",
        )
    found = await crm.find_followups(start_date, end_date)
    return {"followups": [followup.to_json() for followup in found]}
