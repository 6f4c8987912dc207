"""
Outbound Adapters
=================

Database backends implementing the ``DatabaseSession`` port:

- InMemoryAdapter: process memory
- FileSystemAdapter: one JSON file
- RemoteApiAdapter: another CRM API server
- CouchDBAdapter: CouchDB documents and views

Remote and CouchDB sessions are wrapped in a ``SessionCache``.
"""

from open_crm.adapters.outbound.db_couchdb import CouchDBAdapter, CouchDBError, CouchDBSession
from open_crm.adapters.outbound.db_file import FileSystemAdapter, FileSystemSession
from open_crm.adapters.outbound.db_memory import InMemoryAdapter, InMemorySession
from open_crm.adapters.outbound.db_remote import RemoteApiAdapter, RemoteApiSession
from open_crm.adapters.outbound.session_cache import SessionCache

__all__ = [
    "CouchDBAdapter",
    "CouchDBError",
    "CouchDBSession",
    "FileSystemAdapter",
    "FileSystemSession",
    "InMemoryAdapter",
    "InMemorySession",
    "RemoteApiAdapter",
    "RemoteApiSession",
    "SessionCache",
]
