# backend/imagestore/database/photo_operations.py
"""
Photo persistence.

A photo and all of its thumbnails are written in one transaction: either the
photo row and every thumbnail row exist afterwards, or none of them do.
"""

from typing import Any, Dict, List, Tuple

import psycopg

from ..exceptions import PhotoOperationError
from ..models.photo_model import Photo
from ..models.reference_model import ReferenceSnapshot
from .core import AsyncDatabase


class PhotoQueryBuilder:
    """Centralized queries for photo operations."""

    INSERT_PHOTO = """
        INSERT INTO photo (camera, mediatype, filename, photo_dt)
        VALUES (%(camera)s, %(mediatype)s, %(filename)s, %(photo_dt)s)
        RETURNING id
    """

    INSERT_THUMBNAIL = """
        INSERT INTO thumbnail (photo, spec, filename)
        VALUES (%(photo)s, %(spec)s, %(filename)s)
    """


def resolve_photo_ids(
    photo: Photo, snapshot: ReferenceSnapshot
) -> Tuple[Dict[str, Any], List[Tuple[int, str]]]:
    """
    Map names in ``photo`` to reference ids.

    Returns:
        ``(photo_params, [(spec_id, filename), ...])``

    Raises:
        PhotoOperationError: If the camera, media type or a thumbnail spec is
            not in the reference snapshot
    """
    camera = snapshot.cameras.get(photo.camera)
    if camera is None:
        raise PhotoOperationError(
            f"Camera {photo.camera!r} is not in the reference snapshot",
            operation="create_photo",
            details={"camera": photo.camera},
        )
    media_type = snapshot.media_types.get(photo.media_type)
    if media_type is None:
        raise PhotoOperationError(
            f"Media type {photo.media_type!r} is not in the reference snapshot",
            operation="create_photo",
            details={"media_type": photo.media_type},
        )

    thumbnails = []
    for thumb in photo.thumbnails:
        spec = snapshot.thumbnail_specs.get(thumb.spec)
        if spec is None:
            raise PhotoOperationError(
                f"Thumbnail spec {thumb.spec!r} is not in the reference snapshot",
                operation="create_photo",
                details={"spec": thumb.spec},
            )
        thumbnails.append((spec.id, thumb.filename))

    photo_params = {
        "camera": camera.id,
        "mediatype": media_type.id,
        "filename": photo.filename,
        "photo_dt": photo.date,
    }
    return photo_params, thumbnails


class PhotoOperations:
    """Photo database operations using composition pattern."""

    def __init__(self, db: AsyncDatabase) -> None:
        self.db = db

    async def create_photo(self, photo: Photo, snapshot: ReferenceSnapshot) -> int:
        """
        Insert a photo and one thumbnail row per derivative.

        Args:
            photo: Processed photo with its thumbnails
            snapshot: Reference snapshot used to resolve ids

        Returns:
            Id of the new photo row
        """
        photo_params, thumbnails = resolve_photo_ids(photo, snapshot)
        try:
            async with self.db.transaction() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(PhotoQueryBuilder.INSERT_PHOTO, photo_params)
                    row = await cur.fetchone()
                    photo_id = row["id"]
                    if thumbnails:
                        await cur.executemany(
                            PhotoQueryBuilder.INSERT_THUMBNAIL,
                            [
                                {"photo": photo_id, "spec": spec_id, "filename": filename}
                                for spec_id, filename in thumbnails
                            ],
                        )
        except psycopg.Error as e:
            raise PhotoOperationError(
                f"Failed to create photo for {photo.filename}",
                operation="create_photo",
                details={"camera": photo.camera, "filename": photo.filename},
            ) from e
        return photo_id
