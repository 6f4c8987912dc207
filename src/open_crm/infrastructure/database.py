"""
Database Adapter Factory
========================

Maps a connection descriptor to the adapter serving it:

- ``file:<path>`` / ``file://relative/path`` / ``file:///absolute/path``
- ``memory:``
- ``http(s)://[user:password@]host[:port]`` (another CRM API server)
- ``couchdb(s)://[user:password@]host[:port]/database``

Without a descriptor, ``DATABASE_URL`` is used, else the JSON file named by
``DATABASE_JSON_FILE`` (``./crm.json`` by default).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from open_crm.adapters.outbound.db_couchdb import CouchDBAdapter
from open_crm.adapters.outbound.db_file import FileSystemAdapter
from open_crm.adapters.outbound.db_memory import InMemoryAdapter
from open_crm.adapters.outbound.db_remote import RemoteApiAdapter
from open_crm.infrastructure.config import Settings, get_settings
from open_crm.ports.database import DatabaseAdapter

logger = logging.getLogger(__name__)

ConnectionKind = Literal["file", "memory", "remote", "couchdb"]


@dataclass(frozen=True)
class ConnectionOptions:
    """A parsed connection descriptor."""

    kind: ConnectionKind
    path: Path | None = None
    url: str | None = None

    @property
    def key(self) -> str:
        if self.path is not None:
            return f"{self.kind}:{self.path.resolve()}"
        return f"{self.kind}:{self.url or ''}"


def parse_connection_url(url: str | None = None, settings: Settings | None = None) -> ConnectionOptions:
    """
    Parse a connection descriptor.

    Args:
        url: Descriptor; falls back to the configured one when empty.
        settings: Settings to read the fallbacks from.

    Returns:
        The connection options.

    Raises:
        ValueError: If the scheme is not supported.
    """
    settings = settings or get_settings()
    if not url:
        url = settings.database.url
    if not url:
        return ConnectionOptions(kind="file", path=Path.cwd() / settings.database.json_file)

    scheme, sep, rest = url.partition(":")
    if not sep:
        raise ValueError(f"invalid database URL: {url!r}")
    scheme = scheme.lower()

    if scheme == "file":
        if rest.startswith("//"):
            rest = rest[2:]
        path = Path(rest)
        return ConnectionOptions(kind="file", path=path if path.is_absolute() else Path.cwd() / path)
    if scheme == "memory":
        return ConnectionOptions(kind="memory")
    if scheme in ("http", "https"):
        return ConnectionOptions(kind="remote", url=url)
    if scheme in ("couchdb", "couchdbs"):
        return ConnectionOptions(kind="couchdb", url=url)
    raise ValueError(f"unsupported database URL scheme: {scheme!r}")


def connect_crm_database(url: str | None = None, settings: Settings | None = None) -> DatabaseAdapter:
    """Build a new adapter for ``url`` (see ``parse_connection_url``)."""
    settings = settings or get_settings()
    return build_adapter(parse_connection_url(url, settings), settings)


def build_adapter(options: ConnectionOptions, settings: Settings | None = None) -> DatabaseAdapter:
    """Build a new adapter from parsed connection options."""
    settings = settings or get_settings()
    logger.debug("Connecting to %s database", options.kind)

    if options.kind == "file":
        if options.path is None:
            raise ValueError("file database needs a path")
        return FileSystemAdapter(options.path, auto_close_seconds=settings.database.auto_close_seconds)
    if options.kind == "memory":
        return InMemoryAdapter()
    if options.url is None:
        raise ValueError(f"{options.kind} database needs a URL")
    if options.kind == "remote":
        return RemoteApiAdapter(
            options.url,
            api_key=settings.api.api_key or None,
            timeout=settings.database.http_timeout_seconds,
        )
    return CouchDBAdapter(options.url, timeout=settings.database.http_timeout_seconds)


# -----------------------------------------------------------------------------
# Adapter pool
# -----------------------------------------------------------------------------

_adapters: dict[str, DatabaseAdapter] = {}


def get_database_adapter(url: str | None = None, settings: Settings | None = None) -> DatabaseAdapter:
    """One shared adapter per descriptor, so ``memory:`` keeps its content."""
    options = parse_connection_url(url, settings)
    adapter = _adapters.get(options.key)
    if adapter is None:
        adapter = connect_crm_database(url, settings)
        _adapters[options.key] = adapter
    return adapter


def clear_database_adapters() -> None:
    _adapters.clear()
