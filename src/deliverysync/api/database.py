#!/usr/bin/env python3
"""PostgreSQL access helpers shared by the order and integration repositories.

Repositories never touch the asyncpg pool directly. They borrow a connection
through database_connection(), and any driver error escaping the block comes
out as a member of the DatabaseError family, so callers only need to catch
our own types. Each statement autocommits; the repositories rely on
conditional single-statement writes rather than transactions.

Example:
    async with database_connection(pool) as conn:
        row = await conn.fetchrow(
            "SELECT id, status FROM orders WHERE tenant_id = $1 AND external_id = $2",
            tenant_id, order_id,
        )
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import asyncpg

from .exceptions import (
    ConnectionPoolError,
    DatabaseError,
    IntegrityError,
    TransactionError,
)

logger = logging.getLogger(__name__)

ACQUIRE_TIMEOUT_SECONDS = 30.0

_DRIVER_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError)

# Checked in order; the first matching class wins.
_CONVERSIONS = (
    (asyncpg.UniqueViolationError, IntegrityError, "Duplicate key", {"constraint": "unique"}),
    (asyncpg.ForeignKeyViolationError, IntegrityError, "Foreign key violation", {"constraint": "foreign_key"}),
    (asyncpg.NotNullViolationError, IntegrityError, "Not null violation", {"constraint": "not_null"}),
    (asyncpg.DeadlockDetectedError, TransactionError, "Deadlock detected", {"operation": "transaction"}),
    ((asyncpg.QueryCanceledError, asyncio.TimeoutError), TransactionError, "Query timed out", {"operation": "query"}),
    ((*_DRIVER_ERRORS, OSError), DatabaseError, "Database operation failed", {}),
)


def _convert_db_exception(e: Exception) -> Exception:
    """Map a driver exception onto our DatabaseError family.

    Anything that is not a driver error (already converted, or a plain bug
    inside the caller's block) is handed back untouched.
    """
    if isinstance(e, DatabaseError):
        return e

    for driver_types, error_type, label, extra in _CONVERSIONS:
        if isinstance(e, driver_types):
            if error_type is IntegrityError and isinstance(e, asyncpg.UniqueViolationError):
                extra = {"constraint": getattr(e, "constraint_name", None) or "unique"}
            return error_type(f"{label}: {e}", cause=e, **extra)

    return e


async def _acquire(pool):
    if pool is None:
        raise ConnectionPoolError("No database pool; was create_pool() called?")

    try:
        return await asyncio.wait_for(pool.acquire(), timeout=ACQUIRE_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        raise ConnectionPoolError(
            f"Timeout waiting {ACQUIRE_TIMEOUT_SECONDS}s for a pooled connection",
            details={"timeout_seconds": ACQUIRE_TIMEOUT_SECONDS},
        )
    except (OSError, *_DRIVER_ERRORS) as e:
        raise ConnectionPoolError(f"Could not acquire a connection: {e}", cause=e)


@asynccontextmanager
async def database_connection(pool) -> AsyncIterator[Any]:
    """Borrow a connection for autocommit statements."""
    conn = await _acquire(pool)
    try:
        yield conn
    except (*_DRIVER_ERRORS, asyncio.TimeoutError) as e:
        # asyncpg raises asyncio.TimeoutError when command_timeout expires
        raise _convert_db_exception(e)
    finally:
        await pool.release(conn)


async def create_pool(
    database_url: str,
    min_size: int = 2,
    max_size: int = 10,
    command_timeout: float = 60.0,
    **kwargs,
):
    """Open the asyncpg pool used for the lifetime of the process.

    Raises:
        ConnectionPoolError: The database is unreachable or rejected us
    """
    try:
        pool = await asyncpg.create_pool(
            database_url,
            min_size=min_size,
            max_size=max_size,
            command_timeout=command_timeout,
            **kwargs,
        )
    except (OSError, *_DRIVER_ERRORS) as e:
        raise ConnectionPoolError(f"Could not open database pool: {e}", cause=e)

    logger.info(f"Opened database pool ({min_size}-{max_size} connections)")
    return pool


async def close_pool(pool, timeout: float = 10.0):
    # Connections still checked out after `timeout` are terminated.
    if pool is None:
        return

    try:
        await asyncio.wait_for(pool.close(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"Database pool did not close within {timeout}s; terminating")
        pool.terminate()
    else:
        logger.info("Closed database pool")


async def check_database_health(pool) -> dict[str, Any]:
    """Run SELECT 1 against the pool for the scheduler's health report.

    Never raises; failures come back as {"healthy": False, "error": ...}.
    """
    if pool is None:
        return {"healthy": False, "error": "Pool not initialized"}

    try:
        async with database_connection(pool) as conn:
            result = await conn.fetchval("SELECT 1")
    except DatabaseError as e:
        return {"healthy": False, "error": str(e)}

    size, idle = pool.get_size(), pool.get_idle_size()
    return {
        "healthy": result == 1,
        "pool_size": size,
        "pool_free": idle,
        "pool_used": size - idle,
    }
