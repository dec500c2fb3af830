"""Database connection pool management.

Wraps an asyncpg pool so that build and project writes survive a dropped
TCP connection (database restart, idle-connection reaper) by retrying on a
fresh connection.  Also owns the idempotent schema bootstrap run at startup.
"""

import asyncio
import logging
from typing import Any

import asyncpg

from tinyci.config import settings

logger = logging.getLogger(__name__)

# Exceptions that mean "the connection died -- retry with a fresh one"
_RETRY_EXCEPTIONS = (
    asyncpg.ConnectionDoesNotExistError,
    asyncpg.InterfaceError,
    ConnectionResetError,
    OSError,
)

_MAX_RETRIES = 3

SCHEMA_STATEMENTS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS builds (
        id          TEXT PRIMARY KEY,
        repo_url    TEXT,
        commit_id   TEXT,
        timestamp   TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS projects (
        id          SERIAL PRIMARY KEY,
        repo_url    TEXT,
        token       TEXT,
        autodeploy  BOOLEAN,
        branch      TEXT
    )
    """,
)


class _ResilientPool:
    """Thin wrapper around :class:`asyncpg.Pool` that retries on dead connections.

    Only the shorthand query methods are wrapped; everything else is
    proxied straight through to the underlying pool.
    """

    __slots__ = ("_pool",)

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def fetch(self, query: str, *args: Any, **kw: Any) -> list:
        return await self._retry(self._pool.fetch, query, *args, **kw)

    async def fetchrow(self, query: str, *args: Any, **kw: Any):
        return await self._retry(self._pool.fetchrow, query, *args, **kw)

    async def fetchval(self, query: str, *args: Any, **kw: Any):
        return await self._retry(self._pool.fetchval, query, *args, **kw)

    async def execute(self, query: str, *args: Any, **kw: Any) -> str:
        return await self._retry(self._pool.execute, query, *args, **kw)

    @staticmethod
    async def _retry(func, *args: Any, **kw: Any):
        for attempt in range(_MAX_RETRIES + 1):
            try:
                return await func(*args, **kw)
            except _RETRY_EXCEPTIONS as exc:
                if attempt >= _MAX_RETRIES:
                    _invalidate_pool()
                    raise
                wait = min(0.5 * (2 ** attempt), 5.0)
                logger.warning(
                    "DB connection lost (attempt %d/%d): %s -- retrying in %.1fs",
                    attempt + 1, _MAX_RETRIES + 1, exc, wait,
                )
                await asyncio.sleep(wait)

    def __getattr__(self, name: str):
        return getattr(self._pool, name)


_pool: asyncpg.Pool | None = None
_pool_loop: asyncio.AbstractEventLoop | None = None
_wrapper: _ResilientPool | None = None


def _invalidate_pool() -> None:
    """Drop the module-level pool so the next get_pool() builds a new one."""
    global _pool, _wrapper
    _pool = None
    _wrapper = None


async def get_pool() -> _ResilientPool:
    """Get or create the database connection pool.

    If the running event loop has changed (common in test suites),
    the stale pool is discarded and a fresh one is created.
    """
    global _pool, _pool_loop, _wrapper
    loop = asyncio.get_running_loop()
    if _pool is not None and _pool_loop is not loop:
        _pool.terminate()
        _pool = None
        _wrapper = None
    if _pool is None:
        _pool = await asyncio.wait_for(
            asyncpg.create_pool(
                dsn=settings.DATABASE_URL,
                min_size=1,
                max_size=10,
                command_timeout=30,
            ),
            timeout=20,
        )
        _pool_loop = loop
        _wrapper = _ResilientPool(_pool)
    return _wrapper  # type: ignore[return-value]


async def ensure_schema() -> None:
    """Create the builds/projects tables if they do not exist yet."""
    pool = await get_pool()
    for statement in SCHEMA_STATEMENTS:
        await pool.execute(statement)


async def close_pool() -> None:
    """Close the database connection pool."""
    global _pool, _pool_loop, _wrapper
    if _pool is not None:
        await _pool.close()
        _pool = None
        _pool_loop = None
        _wrapper = None
