# backend/imagestore/database/data_access.py
"""
Data Access Layer.

Bootstraps the pool and the reference snapshot exactly once per process and
serves cached lookups and transactional writes against them.

Lifecycle: constructed by the service container, ``bootstrap()`` at startup
(any failure there is fatal for the process), ``close()`` at shutdown.
"""

import asyncio
import copy
from typing import Dict, Optional

import psycopg
from loguru import logger

from ..config import Settings
from ..exceptions import BootstrapFailure
from ..models.photo_model import Photo
from ..models.reference_model import ReferenceSnapshot, ThumbnailSpec
from ..utils.cache_manager import MemoryCache
from .camera_operations import CameraOperations
from .core import AsyncDatabase
from .photo_operations import PhotoOperations
from .reference_operations import ReferenceOperations


class DataAccessLayer:
    def __init__(
        self,
        settings: Settings,
        db: Optional[AsyncDatabase] = None,
        cache: Optional[MemoryCache] = None,
    ) -> None:
        self.settings = settings
        self.db = db or AsyncDatabase(settings)
        self.cache = cache or MemoryCache(default_ttl=settings.camera_cache_ttl)
        self.reference_ops = ReferenceOperations(self.db)
        self.camera_ops = CameraOperations(self.db, self.cache, settings.camera_cache_ttl)
        self.photo_ops = PhotoOperations(self.db)
        self._snapshot: Optional[ReferenceSnapshot] = None
        self._bootstrap_task: Optional[asyncio.Task] = None

    async def _bootstrap(self) -> ReferenceSnapshot:
        try:
            await self.db.initialize()
            snapshot = await self.reference_ops.load_snapshot()
        except BootstrapFailure:
            raise
        except (psycopg.Error, KeyError, ValueError, RuntimeError) as e:
            raise BootstrapFailure(f"Failed to load reference data: {e}") from e

        self._snapshot = snapshot
        logger.info(
            f"Reference data loaded: schema {snapshot.schema_version}, "
            f"{len(snapshot.cameras)} cameras, {len(snapshot.media_types)} media types, "
            f"{len(snapshot.tags)} tags, {len(snapshot.thumbnail_specs)} thumbnail specs"
        )
        return snapshot

    async def bootstrap(self, refresh: bool = False) -> ReferenceSnapshot:
        """
        Open the pool and load the reference snapshot, once.

        Concurrent and repeated callers share the same load. ``refresh=True``
        reloads the snapshot and drops cached camera lookups.

        Raises:
            BootstrapFailure: If credentials, the pool or any reference query fail
        """
        if refresh and self._bootstrap_task is not None and self._bootstrap_task.done():
            self._bootstrap_task = None
            await self.camera_ops.invalidate_cache()
        if self._bootstrap_task is None:
            self._bootstrap_task = asyncio.ensure_future(self._bootstrap())
        return await self._bootstrap_task

    @property
    def snapshot(self) -> ReferenceSnapshot:
        if self._snapshot is None:
            raise RuntimeError("Reference data not loaded; call bootstrap() first")
        return self._snapshot

    async def camera_exists(self, name: str) -> bool:
        return await self.camera_ops.camera_exists(name)

    async def create_photo(self, photo: Photo) -> int:
        photo_id = await self.photo_ops.create_photo(photo, self.snapshot)
        logger.debug(
            f"Created photo {photo_id} for {photo.camera} with "
            f"{len(photo.thumbnails)} thumbnails"
        )
        return photo_id

    def get_thumbnail_specs(self) -> Dict[str, ThumbnailSpec]:
        """Copy of the thumbnail spec map; the shared snapshot stays untouched."""
        return copy.deepcopy(dict(self.snapshot.thumbnail_specs))

    def media_type_for_extension(self, extension: str) -> Optional[str]:
        media_type = self.snapshot.media_type_for_extension(extension)
        return media_type.type_name if media_type else None

    async def close(self) -> None:
        await self.cache.clear()
        await self.db.close()
