"""Async database connection pool with an RLS context manager.

- `rls_connection()` sets app.tenant_id / app.user_id per transaction so
  PostgreSQL RLS policies filter rows to the caller.
- Fail-closed: raises ValueError if tenant_id or user_id are empty.
- `service_connection()` is for startup reads of tables without user
  policies (tenant credential configuration).
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import asyncpg

logger = logging.getLogger(__name__)

_pool: asyncpg.Pool | None = None


class DatabaseConfig:
    """Builds connection strings based on detected environment."""

    @staticmethod
    def get_connection_string() -> str:
        if url := os.environ.get("DATABASE_URL"):
            return url

        # Cloud Run -> managed Cloud SQL / AlloyDB over private IP
        if os.environ.get("K_SERVICE") or os.environ.get("CLOUD_RUN_JOB"):
            host = os.environ.get("DB_HOST")
            db = os.environ.get("DB_NAME", "intake")
            user = os.environ.get("DB_USER", "intake")
            password = os.environ.get("DB_PASSWORD", "")
            return f"postgresql://{user}:{password}@{host}/{db}"

        sslmode = os.environ.get("DB_SSLMODE", "disable")
        return (
            f"postgresql://{os.environ.get('DB_USER', 'intake')}:"
            f"{os.environ.get('DB_PASSWORD', 'intake')}@"
            f"{os.environ.get('DB_HOST', 'localhost')}:"
            f"{os.environ.get('DB_PORT', '5432')}/"
            f"{os.environ.get('DB_NAME', 'intake')}?sslmode={sslmode}"
        )


async def get_pool() -> asyncpg.Pool:
    """Return the singleton connection pool, creating it if necessary."""
    global _pool  # noqa: PLW0603
    if _pool is None:
        dsn = DatabaseConfig.get_connection_string()
        logger.info("Creating database pool (host hidden for security)")
        _pool = await asyncpg.create_pool(
            dsn=dsn,
            min_size=1,
            max_size=int(os.environ.get("DB_POOL_MAX", "5")),
            command_timeout=30,
        )
    return _pool


async def close_pool() -> None:
    """Gracefully close the connection pool."""
    global _pool  # noqa: PLW0603
    if _pool is not None:
        await _pool.close()
        _pool = None
        logger.info("Database pool closed")


async def check_db_connection() -> bool:
    """Health check: returns True if the database is reachable."""
    try:
        pool = await get_pool()
        async with pool.acquire() as conn:
            await conn.fetchval("SELECT 1")
        return True
    except (OSError, asyncpg.PostgresError):
        logger.exception("Database health check failed")
        return False


@asynccontextmanager
async def rls_connection(tenant_id: str, user_id: str) -> AsyncIterator[asyncpg.Connection]:
    """Acquire a transaction-scoped connection with RLS session variables set.

    Raises ValueError if tenant_id or user_id are empty (fail-closed).
    """
    if not tenant_id or not user_id:
        raise ValueError("tenant_id and user_id are required (fail-closed)")

    pool = await get_pool()
    async with pool.acquire() as conn, conn.transaction():
        # set_config(..., true) is SET LOCAL with bind parameters
        await conn.execute("SELECT set_config('app.tenant_id', $1, true)", tenant_id)
        await conn.execute("SELECT set_config('app.user_id', $1, true)", user_id)
        yield conn


@asynccontextmanager
async def service_connection() -> AsyncIterator[asyncpg.Connection]:
    pool = await get_pool()
    async with pool.acquire() as conn:
        yield conn
