"""
JSON File Database Adapter
==========================

Loads the whole database from one JSON file when a session opens and writes
it back when a modified session closes. The previous content is kept in
``<path>.bak``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import shutil
from pathlib import Path
from typing import Any

from open_crm.adapters.outbound.db_memory import InMemorySession
from open_crm.domain.defaults import empty_database, normalize_database
from open_crm.domain.entities import Database
from open_crm.ports.database import DatabaseAdapter

logger = logging.getLogger(__name__)


def backup_path(path: Path) -> Path:
    return path.with_name(path.name + ".bak")


def read_database(path: Path) -> Database:
    """Read and normalize a database file. Malformed content raises."""
    with path.open(encoding="utf-8") as f:
        raw: Any = json.load(f)
    return normalize_database(raw)


def write_database(path: Path, database: Database, backup: bool = True) -> None:
    """Write ``database`` to ``path``, first copying the existing file to ``.bak``."""
    if backup and path.exists():
        shutil.copyfile(path, backup_path(path))
    path.parent.mkdir(parents=True, exist_ok=True)
    content = json.dumps(database.to_json(), indent=4, ensure_ascii=False)
    path.write_text(content + "\n", encoding="utf-8")


class FileSystemSession(InMemorySession):
    """
    In-memory session persisted to a JSON file on ``close()``.

    When ``auto_close_seconds`` is set, the session also flushes itself once
    that delay has elapsed; an explicit ``close()`` cancels the timer.
    """

    def __init__(
        self,
        path: Path,
        database: Database,
        auto_close_seconds: float | None = None,
    ) -> None:
        super().__init__(database)
        self._path = path
        self._timer: asyncio.TimerHandle | None = None
        self._pending: asyncio.Task[None] | None = None
        if auto_close_seconds:
            loop = asyncio.get_running_loop()
            self._timer = loop.call_later(auto_close_seconds, self._auto_close)

    @property
    def path(self) -> Path:
        return self._path

    def _auto_close(self) -> None:
        self._timer = None
        logger.debug("Auto-closing session on %s", self._path)
        self._pending = asyncio.ensure_future(self._flush())

    async def _flush(self) -> None:
        if not self.is_modified:
            return
        await asyncio.to_thread(write_database, self._path, self._database)
        self.is_modified = False
        logger.info("Saved %d companies to %s", len(self._database.companies), self._path)

    async def close(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._pending is not None:
            await self._pending
            self._pending = None
        await self._flush()


class FileSystemAdapter(DatabaseAdapter):
    """Adapter for a database stored in a single JSON file."""

    def __init__(self, path: str | Path, auto_close_seconds: float | None = None) -> None:
        self._path = Path(path)
        self._auto_close_seconds = auto_close_seconds

    @property
    def path(self) -> Path:
        return self._path

    async def create(self, initial_data: Database) -> None:
        database = normalize_database(initial_data)
        await asyncio.to_thread(write_database, self._path, database, False)
        logger.info("Created database file %s", self._path)

    async def open(self) -> FileSystemSession:
        try:
            database = await asyncio.to_thread(read_database, self._path)
        except FileNotFoundError:
            logger.info("Database file %s not found, creating an empty one", self._path)
            database = empty_database()
            await asyncio.to_thread(write_database, self._path, database, False)
        return FileSystemSession(self._path, database, self._auto_close_seconds)
