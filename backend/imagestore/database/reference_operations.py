# backend/imagestore/database/reference_operations.py
"""
Reference data loading.

Reads the reference tables (schema version, media types, tags, cameras,
camera tags and thumbnail specs) into one ReferenceSnapshot. The six queries
run in parallel, each on its own pooled connection.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional

from ..constants import SCHEMA_VERSION_CONFIG_NAME
from ..models.reference_model import Camera, MediaType, ReferenceSnapshot, Tag, ThumbnailSpec
from .core import AsyncDatabase


class ReferenceQueryBuilder:
    """Queries for the reference tables."""

    SCHEMA_VERSION = "SELECT config_value FROM config WHERE config_name = %(name)s"
    MEDIA_TYPES = "SELECT id, type_name, extension FROM mediatype"
    TAGS = "SELECT id, tag_name, service_tag, descr FROM tag"
    CAMERAS = "SELECT id, name, descr FROM camera"
    CAMERA_TAGS = "SELECT camera, tag FROM tag_camera"
    THUMBNAIL_SPECS = "SELECT id, name, descr, spec FROM thumbnail_spec ORDER BY id"


def _spec_params(raw: Any) -> Dict[str, Any]:
    if raw is None:
        return {}
    if isinstance(raw, (str, bytes)):
        raw = json.loads(raw)
    return dict(raw)


def build_snapshot(
    schema_rows: List[Dict[str, Any]],
    media_type_rows: List[Dict[str, Any]],
    tag_rows: List[Dict[str, Any]],
    camera_rows: List[Dict[str, Any]],
    camera_tag_rows: List[Dict[str, Any]],
    spec_rows: List[Dict[str, Any]],
) -> ReferenceSnapshot:
    """
    Assemble a snapshot from raw rows.

    Camera/tag associations are merged into each camera's tag list;
    associations pointing at unknown cameras or tags are ignored.
    """
    schema_version: Optional[str] = schema_rows[0]["config_value"] if schema_rows else None

    media_types = {
        row["type_name"]: MediaType(
            id=row["id"], type_name=row["type_name"], extension=row["extension"]
        )
        for row in media_type_rows
    }

    tags = {
        row["id"]: Tag(
            id=row["id"],
            name=row["tag_name"],
            is_service_tag=bool(row.get("service_tag")),
            description=row.get("descr"),
        )
        for row in tag_rows
    }

    cameras: Dict[str, Camera] = {}
    cameras_by_id: Dict[int, Camera] = {}
    for row in camera_rows:
        camera = Camera(id=row["id"], name=row["name"], description=row.get("descr"))
        cameras[camera.name] = camera
        cameras_by_id[camera.id] = camera

    for row in camera_tag_rows:
        camera = cameras_by_id.get(row["camera"])
        tag = tags.get(row["tag"])
        if camera is not None and tag is not None:
            camera.tags.append(tag)

    thumbnail_specs = {
        row["name"]: ThumbnailSpec(
            id=row["id"],
            name=row["name"],
            description=row.get("descr"),
            params=_spec_params(row.get("spec")),
        )
        for row in spec_rows
    }

    return ReferenceSnapshot(
        schema_version=schema_version,
        media_types=media_types,
        tags=tags,
        cameras=cameras,
        thumbnail_specs=thumbnail_specs,
    )


class ReferenceOperations:
    """Loads the reference snapshot through the connection pool."""

    def __init__(self, db: AsyncDatabase) -> None:
        self.db = db

    async def _fetch_all(
        self, query: str, params: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        async with self.db.get_connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(query, params)
                return await cur.fetchall()

    async def load_snapshot(self) -> ReferenceSnapshot:
        rows = await asyncio.gather(
            self._fetch_all(
                ReferenceQueryBuilder.SCHEMA_VERSION, {"name": SCHEMA_VERSION_CONFIG_NAME}
            ),
            self._fetch_all(ReferenceQueryBuilder.MEDIA_TYPES),
            self._fetch_all(ReferenceQueryBuilder.TAGS),
            self._fetch_all(ReferenceQueryBuilder.CAMERAS),
            self._fetch_all(ReferenceQueryBuilder.CAMERA_TAGS),
            self._fetch_all(ReferenceQueryBuilder.THUMBNAIL_SPECS),
        )
        return build_snapshot(*rows)
