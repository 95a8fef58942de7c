# backend/imagestore/database/core.py

"""
Database connection management.

AsyncDatabase owns the psycopg connection pool. It is created once with the
service container, opened during bootstrap and closed on shutdown; every
other database class leases connections through it.
"""

import asyncio
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncGenerator, Dict, Optional

import psycopg
from loguru import logger
from psycopg.conninfo import make_conninfo
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool, PoolTimeout

from ..config import Settings
from ..exceptions import BootstrapFailure
from ..utils.time_utils import utc_now


def read_credential(credential_file: str) -> str:
    """
    Read a secret from a mounted credential file.

    Raises:
        BootstrapFailure: If the file is missing, unreadable or empty
    """
    try:
        secret = Path(credential_file).read_text(encoding="utf-8").strip()
    except OSError as e:
        raise BootstrapFailure(f"Cannot read credential file {credential_file}: {e}") from e
    if not secret:
        raise BootstrapFailure(f"Credential file {credential_file} is empty")
    return secret


class AsyncDatabase:
    """
    Async connection pool wrapper.

    The pool is the only arbiter of concurrent database access; callers hold a
    leased connection for a single query or transaction and give it back.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._pool: Optional[AsyncConnectionPool] = None
        self._connection_attempts = 0
        self._failed_connections = 0
        self._pool_created_at = None

    @property
    def is_initialized(self) -> bool:
        return self._pool is not None

    def build_conninfo(self, password: str) -> str:
        return make_conninfo(
            host=self.settings.pg_host,
            port=self.settings.pg_port,
            user=self.settings.pg_user,
            dbname=self.settings.pg_database,
            password=password,
        )

    async def initialize(self) -> None:
        """
        Read the database credential and open the connection pool.

        Raises:
            BootstrapFailure: If the credential is unavailable or the pool
                cannot be opened
        """
        if self._pool is not None:
            return

        password = read_credential(self.settings.pg_password_file)
        pool = AsyncConnectionPool(
            self.build_conninfo(password),
            min_size=min(self.settings.db_pool_min_size, self.settings.db_pool_max_size),
            max_size=self.settings.db_pool_max_size,
            timeout=self.settings.db_pool_timeout,
            kwargs={"row_factory": dict_row},
            open=False,
        )
        try:
            await pool.open(wait=True, timeout=self.settings.db_pool_timeout)
        except (psycopg.Error, PoolTimeout, OSError) as e:
            self._failed_connections += 1
            await pool.close()
            raise BootstrapFailure(f"Failed to open database pool: {e}") from e

        self._pool = pool
        self._pool_created_at = utc_now()
        logger.info(
            f"Database pool opened ({self.settings.pg_host}:{self.settings.pg_port}/"
            f"{self.settings.pg_database}, max_size={self.settings.db_pool_max_size})"
        )

    async def close(self) -> None:
        """Close the connection pool."""
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("Database pool closed")

    @asynccontextmanager
    async def get_connection(self) -> AsyncGenerator[Any, None]:
        """
        Lease a pooled connection for the duration of the block.

        The connection goes back to the pool on exit, whether or not the
        block raised.

        Usage:
            async with db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute("SELECT * FROM camera")
        """
        if not self._pool:
            raise RuntimeError("Database pool not initialized")

        self._connection_attempts += 1
        try:
            async with self._pool.connection() as conn:
                yield conn
        except psycopg.OperationalError:
            self._failed_connections += 1
            raise

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[Any, None]:
        """Lease a connection and run the block inside one transaction."""
        async with self.get_connection() as conn:
            async with conn.transaction():
                yield conn

    async def health_check(self, timeout: float = 5.0) -> Dict[str, Any]:
        """Run ``SELECT 1`` through the pool and time it."""
        if not self._pool:
            return {"status": "unhealthy", "error": "Pool not initialized"}

        start_time = time.monotonic()
        try:
            async with asyncio.timeout(timeout):
                async with self.get_connection() as conn:
                    async with conn.cursor() as cur:
                        await cur.execute("SELECT 1")
                        await cur.fetchone()
        except asyncio.TimeoutError:
            return {"status": "unhealthy", "error": f"Health check timed out after {timeout}s"}
        except (psycopg.Error, RuntimeError) as e:
            return {"status": "unhealthy", "error": str(e)}

        return {
            "status": "healthy",
            "response_time_ms": round((time.monotonic() - start_time) * 1000, 2),
        }

    def get_pool_stats(self) -> Dict[str, Any]:
        """Connection pool statistics for monitoring."""
        if not self._pool:
            return {"status": "not_initialized"}

        stats: Dict[str, Any] = {
            "status": "open",
            "pool_created_at": self._pool_created_at.isoformat() if self._pool_created_at else None,
            "connection_attempts": self._connection_attempts,
            "failed_connections": self._failed_connections,
        }
        stats.update(self._pool.get_stats())
        return stats
