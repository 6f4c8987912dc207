"""HTTP mapping of session results."""

from __future__ import annotations

from typing import TypeVar

from fastapi import HTTPException, status

from open_crm.domain.entities import ErrorResult

T = TypeVar("T")


def unwrap(result: T | ErrorResult) -> T:
    """Return ``result``, or answer 400 with its error message."""
    if isinstance(result, ErrorResult):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.error)
    return result


def not_found(what: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{what} not found")
