"""
Async PostgreSQL access for the relational store of record.

This module wraps an asyncpg connection pool in a small handle object that is
created once at process start and passed explicitly into every component that
needs relational access. There is no module-level pool: the API lifespan and
the streamer job each own their handle and close it on shutdown.

Key Components:
- create_relational_store(): build the shared, bounded pool from Settings
- RelationalStore: fetch/fetchrow/fetchval/execute helpers plus ping/close
- connect_listener(): open the one dedicated LISTEN connection, outside the pool

Error Handling:
Every asyncpg, socket or timeout failure raised while talking to PostgreSQL
is re-raised as RelationalStoreError so callers only ever catch one type.

Usage:
    store = await create_relational_store(settings)
    rows = await store.fetch("SELECT * FROM compensation_data WHERE id = $1", key)
    await store.close()
"""

import asyncio
import logging
from typing import Any, List, Optional

import asyncpg
from asyncpg import Connection, Pool

from compsearch.core.config import Settings
from compsearch.core.exceptions import RelationalStoreError

logger = logging.getLogger(__name__)

# Failures that mean "the relational store could not answer"
RELATIONAL_ERRORS = (
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
    OSError,
    asyncio.TimeoutError,
)


# =============================================================================
# Relational Store Handle
# =============================================================================

class RelationalStore:
    """
    Handle around the shared asyncpg pool.

    The pool is bounded (Settings.db_pool_max) and shared by the federation
    router, the bulk synchronization engine and trigger installation. The
    change-capture listener never borrows from it.
    """

    def __init__(self, pool: Pool):
        self.pool = pool

    async def fetch(self, query: str, *args: Any) -> List[asyncpg.Record]:
        """
        Execute a query and return all rows.

        Args:
            query: SQL text with $1, $2, ... placeholders.
            *args: Positional parameters matching the placeholders.

        Returns:
            List of records; each supports row['column'] access.

        Raises:
            RelationalStoreError: If the pool or the query fails.
        """
        try:
            async with self.pool.acquire() as conn:
                return await conn.fetch(query, *args)
        except RELATIONAL_ERRORS as e:
            raise RelationalStoreError(f"Relational query failed: {e}") from e

    async def fetchrow(self, query: str, *args: Any) -> Optional[asyncpg.Record]:
        """Execute a query and return the first row, or None."""
        try:
            async with self.pool.acquire() as conn:
                return await conn.fetchrow(query, *args)
        except RELATIONAL_ERRORS as e:
            raise RelationalStoreError(f"Relational query failed: {e}") from e

    async def fetchval(self, query: str, *args: Any) -> Any:
        """Execute a query and return the first column of the first row."""
        try:
            async with self.pool.acquire() as conn:
                return await conn.fetchval(query, *args)
        except RELATIONAL_ERRORS as e:
            raise RelationalStoreError(f"Relational query failed: {e}") from e

    async def execute(self, query: str, *args: Any) -> str:
        """
        Execute a command and return its status string (e.g. 'CREATE TRIGGER').

        Raises:
            RelationalStoreError: If the pool or the command fails.
        """
        try:
            async with self.pool.acquire() as conn:
                return await conn.execute(query, *args)
        except RELATIONAL_ERRORS as e:
            raise RelationalStoreError(f"Relational command failed: {e}") from e

    async def ping(self) -> bool:
        """Return True when `SELECT 1` succeeds, False otherwise."""
        try:
            return await self.fetchval("SELECT 1") == 1
        except RelationalStoreError as e:
            logger.error(f"Relational health check failed: {e}")
            return False

    async def close(self) -> None:
        """
        Drain and close the pool.

        Waits for in-flight queries to release their connections before
        closing them.
        """
        await self.pool.close()
        logger.info("PostgreSQL connection pool closed")


# =============================================================================
# Lifecycle Helpers
# =============================================================================

async def create_relational_store(settings: Settings) -> RelationalStore:
    """
    Create the shared connection pool and wrap it in a RelationalStore.

    Args:
        settings: Application settings (DSN, pool bounds, command timeout).

    Returns:
        RelationalStore: Handle owning the new pool.

    Raises:
        RelationalStoreError: If PostgreSQL is unreachable or rejects the login.
    """
    try:
        pool = await asyncpg.create_pool(
            dsn=settings.database_url,
            min_size=settings.db_pool_min,
            max_size=settings.db_pool_max,
            command_timeout=settings.db_command_timeout,
        )
    except RELATIONAL_ERRORS as e:
        raise RelationalStoreError(f"Could not create PostgreSQL pool: {e}") from e

    logger.info(
        f"PostgreSQL pool created (min={settings.db_pool_min}, max={settings.db_pool_max})"
    )
    return RelationalStore(pool)


async def connect_listener(settings: Settings) -> Connection:
    """
    Open the dedicated connection used only for LISTEN.

    The connection is created outside the shared pool so it is never handed
    to another caller and lives until change capture stops.

    Raises:
        RelationalStoreError: If the connection cannot be established.
    """
    try:
        return await asyncpg.connect(dsn=settings.database_url)
    except RELATIONAL_ERRORS as e:
        raise RelationalStoreError(f"Could not open listener connection: {e}") from e
