# backend/imagestore/database/camera_operations.py
"""
Camera lookups.

``camera_exists`` is cache-aside: a hit never touches the pool, a miss leases
one connection for a single query and writes the answer back to the cache.
"""

import psycopg

from ..constants import CAMERA_EXISTS_CACHE_NAMESPACE
from ..exceptions import CameraOperationError
from ..utils.cache_manager import MemoryCache
from .core import AsyncDatabase


class CameraQueryBuilder:
    """Centralized queries for camera operations."""

    @staticmethod
    def build_camera_exists_query() -> str:
        return "SELECT EXISTS (SELECT 1 FROM camera WHERE name = %(name)s) AS present"


class CameraOperations:
    """Camera database operations using composition pattern."""

    def __init__(self, db: AsyncDatabase, cache: MemoryCache, ttl_seconds: float) -> None:
        self.db = db
        self.cache = cache
        self.ttl_seconds = ttl_seconds

    async def _query_camera_exists(self, name: str) -> bool:
        try:
            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        CameraQueryBuilder.build_camera_exists_query(), {"name": name}
                    )
                    row = await cur.fetchone()
        except psycopg.Error as e:
            raise CameraOperationError(
                f"Failed to look up camera {name!r}", operation="camera_exists"
            ) from e
        return bool(row and row["present"])

    async def camera_exists(self, name: str) -> bool:
        """
        Check whether a camera is registered.

        Args:
            name: Camera name

        Returns:
            True if a camera row with this name exists
        """
        return await self.cache.get(
            CAMERA_EXISTS_CACHE_NAMESPACE,
            name,
            populate=lambda: self._query_camera_exists(name),
            ttl_seconds=self.ttl_seconds,
        )

    async def invalidate_cache(self) -> int:
        return await self.cache.invalidate(CAMERA_EXISTS_CACHE_NAMESPACE)
