"""
Ports Layer (Hexagonal Architecture)
====================================

Abstract interfaces defining the contracts between the CRM core and its
storage backends.

Secondary Ports (driven):
- DatabaseAdapter: opens sessions on one backend
- DatabaseSession: reads and writes the CRM database
"""

from open_crm.ports.database import (
    CompanyAttributes,
    DatabaseAdapter,
    DatabaseSession,
    coerce_company,
)

__all__ = [
    "CompanyAttributes",
    "DatabaseAdapter",
    "DatabaseSession",
    "coerce_company",
]
