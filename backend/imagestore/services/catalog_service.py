# backend/imagestore/services/catalog_service.py
"""
Catalog Service - durable record of uploaded, not-yet-processed images.

Responsibilities:
- Store uploaded image bytes under ``<images_path>/<camera>/<event-id>.<ext>``
- Append one event per upload to the camera's Redis stream; the stream id is
  the ordering anchor and the filename stem
- Keep one metadata hash per image under ``image:meta:<camera>:<random16>``
- Scan, load and remove metadata records

Storage layout:
- ``image:meta:<camera>:<random16>`` -> hash
  ``{v, filename, path, metadataKey, stream, event, camera, format}``
- ``image:stream:<camera>`` -> stream of ``{v, metadata}`` entries

Lifecycle: one instance per process. The directory and camera sets below are
in-process memory, rebuilt lazily after a restart.
"""

import secrets
import string
from pathlib import Path
from typing import AsyncIterator, Dict, List, Optional, Set

from loguru import logger
from redis.asyncio import Redis
from redis.exceptions import RedisError

from ..config import Settings
from ..constants import (
    CATALOG_SCAN_COUNT,
    IMAGE_META_NAMESPACE,
    IMAGE_STREAM_NAMESPACE,
    META_FIELD_METADATA_KEY,
    META_FIELD_STREAM,
    METADATA_KEY_RANDOM_LENGTH,
    STREAM_FIELD_METADATA,
    STREAM_FIELD_VERSION,
)
from ..exceptions import TransientStoreError
from ..models.image_model import ImageRecord, ImageUpload
from ..utils.file_helpers import ensure_directory_exists, write_file

_KEY_ALPHABET = string.ascii_letters + string.digits


def random_key_suffix(length: int = METADATA_KEY_RANDOM_LENGTH) -> str:
    return "".join(secrets.choice(_KEY_ALPHABET) for _ in range(length))


def stream_name(camera: str) -> str:
    return f"{IMAGE_STREAM_NAMESPACE}:{camera}"


def metadata_pattern(camera: Optional[str] = None) -> str:
    """Scan pattern for metadata keys, optionally scoped to one camera."""
    return f"{IMAGE_META_NAMESPACE}:{camera or '*'}:*"


class CatalogService:
    def __init__(self, settings: Settings, redis_client: Optional[Redis] = None) -> None:
        self.settings = settings
        self.images_dir = settings.images_dir
        self.redis = redis_client or Redis.from_url(settings.redis_url, decode_responses=True)
        self.known_cameras: Set[str] = set()
        self._existing_dirs: Set[str] = set()

    async def close(self) -> None:
        await self.redis.aclose()

    async def _reserve_metadata_key(self, camera: str) -> str:
        """
        Generate a metadata key no other record uses.

        ``HSETNX`` creates the hash only if it does not exist yet, so the
        reservation is atomic; a collision just draws another suffix.
        """
        while True:
            key = f"{IMAGE_META_NAMESPACE}:{camera}:{random_key_suffix()}"
            if await self.redis.hsetnx(key, META_FIELD_METADATA_KEY, key):
                return key
            logger.debug(f"Metadata key collision on {key}, regenerating")

    async def _ensure_camera_dir(self, camera: str) -> Path:
        camera_dir = self.images_dir / camera
        dir_key = str(camera_dir)
        if dir_key not in self._existing_dirs:
            logger.debug(f"Directory {camera_dir} not previously encountered")
            await ensure_directory_exists(camera_dir)
            self._existing_dirs.add(dir_key)
        return camera_dir

    async def store_image(self, upload: ImageUpload, image_data: bytes) -> ImageRecord:
        """
        Accept an image for storage.

        The file is fully written before the metadata record references it.
        If a later step raises, the reserved key is deleted again. Only a
        process crash in between can leave a reserved hash without a
        ``stream`` field behind, which scans ignore.

        Args:
            upload: Version, camera and format of the image
            image_data: Raw image bytes

        Returns:
            The committed ImageRecord

        Raises:
            TransientStoreError: If Redis or the filesystem fail
        """
        camera = upload.camera
        self.known_cameras.add(camera)

        try:
            metadata_key = await self._reserve_metadata_key(camera)
        except RedisError as e:
            raise TransientStoreError(
                f"Failed to reserve a metadata key for {camera}",
                operation="store_image",
                details={"camera": camera},
            ) from e

        try:
            return await self._commit_upload(metadata_key, upload, image_data)
        except TransientStoreError:
            await self._release_metadata_key(metadata_key)
            raise

    async def _release_metadata_key(self, metadata_key: str) -> None:
        try:
            await self.redis.delete(metadata_key)
        except RedisError as e:
            logger.warning(f"Could not release reserved key {metadata_key}: {e}")
        else:
            logger.debug(f"Released reserved key {metadata_key}")

    async def _commit_upload(
        self, metadata_key: str, upload: ImageUpload, image_data: bytes
    ) -> ImageRecord:
        camera = upload.camera
        event_stream = stream_name(camera)
        try:
            event_id = await self.redis.xadd(
                event_stream,
                {STREAM_FIELD_VERSION: upload.version, STREAM_FIELD_METADATA: metadata_key},
            )
        except RedisError as e:
            raise TransientStoreError(
                f"Failed to register upload from {camera}",
                operation="store_image",
                details={"camera": camera},
            ) from e

        filename = f"{event_id}.{upload.format}"
        try:
            camera_dir = await self._ensure_camera_dir(camera)
            file_path = camera_dir / filename
            await write_file(file_path, image_data)
        except OSError as e:
            raise TransientStoreError(
                f"Failed to write image {filename} for {camera}",
                operation="store_image",
                details={"camera": camera, "filename": filename},
            ) from e
        logger.debug(f"Wrote file {file_path} ({len(image_data)} bytes)")

        record = ImageRecord(
            metadata_key=metadata_key,
            version=upload.version,
            camera=camera,
            format=upload.format,
            stream=event_stream,
            event=event_id,
            path=str(file_path),
            filename=filename,
        )
        try:
            await self.redis.hset(metadata_key, mapping=record.to_hash())
        except RedisError as e:
            raise TransientStoreError(
                f"Failed to commit metadata for {file_path}",
                operation="store_image",
                details={"metadata_key": metadata_key},
            ) from e

        logger.info(f"Stored image {filename} from {camera} as {metadata_key}")
        return record

    async def load_image(self, key: str) -> Optional[ImageRecord]:
        """
        Load one record.

        Hashes without a ``stream`` field (partially written or foreign keys)
        are treated as absent.
        """
        try:
            fields: Dict[str, str] = await self.redis.hgetall(key)
        except RedisError as e:
            raise TransientStoreError(
                f"Failed to read {key}", operation="load_image", details={"key": key}
            ) from e
        if not fields or not fields.get(META_FIELD_STREAM):
            return None
        return ImageRecord.from_hash(key, fields)

    async def iter_metadata_keys(self, camera: Optional[str] = None) -> AsyncIterator[str]:
        """Yield metadata keys page by page with a SCAN cursor."""
        cursor = 0
        pattern = metadata_pattern(camera)
        while True:
            try:
                cursor, keys = await self.redis.scan(
                    cursor=cursor, match=pattern, count=CATALOG_SCAN_COUNT
                )
            except RedisError as e:
                raise TransientStoreError(
                    "Failed to scan catalog", operation="scan", details={"pattern": pattern}
                ) from e
            for key in keys:
                yield key
            if not cursor:
                break

    async def load_images(
        self, camera: Optional[str] = None, limit: Optional[int] = None
    ) -> List[ImageRecord]:
        """
        Scan for records, optionally for one camera.

        Args:
            camera: Camera name, or None for every camera
            limit: Maximum records returned (default: ``max_image_queue``)
        """
        if limit is None:
            limit = self.settings.max_image_queue
        records: List[ImageRecord] = []
        if limit <= 0:
            return records

        seen: Set[str] = set()
        async for key in self.iter_metadata_keys(camera):
            if key in seen:
                continue
            seen.add(key)
            record = await self.load_image(key)
            if record is None:
                logger.debug(f"Skipping {key}: no stream reference")
                continue
            records.append(record)
            if len(records) >= limit:
                break
        return records

    async def replace_image(self, key: str, record: ImageRecord) -> None:
        """Atomically replace the whole metadata hash of ``key``."""
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.delete(key)
                pipe.hset(key, mapping=record.to_hash())
                await pipe.execute()
        except RedisError as e:
            raise TransientStoreError(
                f"Failed to rewrite {key}", operation="replace_image", details={"key": key}
            ) from e

    async def remove_image(self, key: str) -> bool:
        """
        Delete a metadata record. The image file is left in place.

        Returns:
            True if a record was deleted
        """
        try:
            removed = await self.redis.delete(key)
        except RedisError as e:
            raise TransientStoreError(
                f"Failed to remove {key}", operation="remove_image", details={"key": key}
            ) from e
        logger.debug(f"Removed catalog record {key}")
        return bool(removed)
