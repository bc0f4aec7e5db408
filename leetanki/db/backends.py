"""
Key-value persistence for the review store.

The review core only needs get/set-by-key semantics. Two engines implement
that contract:

- MemoryBackend: a dict, with optional artificial latency and an outage switch
  (used by tests and the `memory://` URL)
- SqlBackend: a single `kv_store` table of JSON text via SQLAlchemy Core, so
  any SQLAlchemy URL works (SQLite by default, PostgreSQL via psycopg2)

`set_many` writes every key in one transaction: a multi-key update is either
fully visible or not at all.
"""

from __future__ import annotations

import asyncio
import copy
import json
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from loguru import logger
from sqlalchemy import Column, MetaData, String, Table, Text, create_engine, delete, insert, select, update
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from leetanki.exceptions import StorageUnavailable

MEMORY_URL = "memory://"

metadata = MetaData()

kv_store = Table(
    "kv_store",
    metadata,
    Column("key", String(128), primary_key=True),
    Column("value", Text, nullable=False),
)


class KeyValueBackend(ABC):
    """Async get/set-by-key contract."""

    @abstractmethod
    async def get_many(self, keys: Iterable[str]) -> dict[str, Any]:
        """Read several keys in one consistent snapshot; missing keys are omitted."""

    @abstractmethod
    async def set_many(self, values: Mapping[str, Any]) -> None:
        """Write several keys atomically."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove a key (no-op when absent)."""

    async def get(self, key: str, default: Any = None) -> Any:
        return (await self.get_many([key])).get(key, default)

    async def set(self, key: str, value: Any) -> None:
        await self.set_many({key: value})

    def close(self) -> None:
        """Release resources."""


# =============================================================================
# In-memory
# =============================================================================


class MemoryBackend(KeyValueBackend):
    """
    Dict-backed store.

    Every call yields to the event loop (sleeping `latency` seconds) before
    touching the data, so tests can interleave readers and writers. Values are
    deep-copied on the way in and out to mimic a real serialization boundary.
    """

    def __init__(self, latency: float = 0.0):
        self.latency = latency
        self.available = True
        self.write_count = 0
        self._data: dict[str, Any] = {}

    async def _io(self) -> None:
        await asyncio.sleep(self.latency)
        if not self.available:
            raise StorageUnavailable("memory backend marked unavailable")

    async def get_many(self, keys: Iterable[str]) -> dict[str, Any]:
        keys = list(keys)
        await self._io()
        return {key: copy.deepcopy(self._data[key]) for key in keys if key in self._data}

    async def set_many(self, values: Mapping[str, Any]) -> None:
        staged = copy.deepcopy(dict(values))
        await self._io()
        self._data.update(staged)
        self.write_count += 1

    async def delete(self, key: str) -> None:
        await self._io()
        self._data.pop(key, None)


# =============================================================================
# SQL
# =============================================================================


class SqlBackend(KeyValueBackend):
    """
    SQLAlchemy-backed store.

    Blocking engine calls run in a worker thread so the event loop keeps
    serving other coroutines while the database works.
    """

    def __init__(self, url: str, echo: bool = False):
        """
        Initialize the SQL backend.

        Args:
            url: SQLAlchemy database URL
            echo: Log emitted SQL
        """
        self.url = url
        try:
            self.engine = create_engine(url, echo=echo, **_engine_options(url))
            metadata.create_all(self.engine)
        except (SQLAlchemyError, OSError) as exc:
            raise StorageUnavailable(f"Cannot open {url}: {exc}") from exc

        logger.info("Key-value store initialized at {}", self.engine.url.render_as_string(hide_password=True))

    async def get_many(self, keys: Iterable[str]) -> dict[str, Any]:
        return await self._run(self._get_many_sync, list(keys))

    async def set_many(self, values: Mapping[str, Any]) -> None:
        await self._run(self._set_many_sync, dict(values))

    async def delete(self, key: str) -> None:
        await self._run(self._delete_sync, key)

    async def _run(self, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except SQLAlchemyError as exc:
            logger.error("Storage error on {}: {}", self.url, exc)
            raise StorageUnavailable(str(exc)) from exc

    def _get_many_sync(self, keys: list[str]) -> dict[str, Any]:
        if not keys:
            return {}
        stmt = select(kv_store.c.key, kv_store.c.value).where(kv_store.c.key.in_(keys))
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).all()
        return {key: json.loads(value) for key, value in rows}

    def _set_many_sync(self, values: dict[str, Any]) -> None:
        with self.engine.begin() as conn:
            for key, value in values.items():
                payload = json.dumps(value)
                result = conn.execute(update(kv_store).where(kv_store.c.key == key).values(value=payload))
                if result.rowcount == 0:
                    conn.execute(insert(kv_store).values(key=key, value=payload))

    def _delete_sync(self, key: str) -> None:
        with self.engine.begin() as conn:
            conn.execute(delete(kv_store).where(kv_store.c.key == key))

    def close(self) -> None:
        self.engine.dispose()


def _engine_options(url: str) -> dict[str, Any]:
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite":
        return {"pool_pre_ping": True}

    database = parsed.database
    if not database or database == ":memory:":
        # One shared connection, otherwise each worker thread sees its own empty database.
        return {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}

    Path(database).parent.mkdir(parents=True, exist_ok=True)
    return {"connect_args": {"check_same_thread": False}}


def create_backend(url: str) -> KeyValueBackend:
    """Pick a backend for a database URL."""
    if url == MEMORY_URL:
        return MemoryBackend()
    return SqlBackend(url)
