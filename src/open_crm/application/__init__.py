"""
Application Layer
=================

Use cases orchestrating the domain over a database session.
"""

from open_crm.application.crm_session import CrmSession

__all__ = ["CrmSession"]
