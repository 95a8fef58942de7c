# backend/imagestore/models/image_model.py
from datetime import datetime
from pathlib import PurePath
from typing import Dict, Optional

from pydantic import BaseModel, Field, field_validator

from ..constants import (
    DEFAULT_IMAGE_FORMAT,
    IMAGE_META_NAMESPACE,
    META_FIELD_CAMERA,
    META_FIELD_EVENT,
    META_FIELD_FILENAME,
    META_FIELD_FORMAT,
    META_FIELD_METADATA_KEY,
    META_FIELD_PATH,
    META_FIELD_STREAM,
    META_FIELD_VERSION,
)
from ..utils.time_utils import safe_event_id_to_datetime


def camera_from_metadata_key(key: str) -> Optional[str]:
    """Extract the camera name from ``image:meta:<camera>:<random>``."""
    prefix = f"{IMAGE_META_NAMESPACE}:"
    if not key.startswith(prefix):
        return None
    camera, sep, _ = key[len(prefix):].rpartition(":")
    return camera if sep and camera else None


class ImageUpload(BaseModel):
    """Metadata supplied with an uploaded image."""

    version: str = Field(..., min_length=1, description="Version of the camera app")
    camera: str = Field(..., min_length=1, description="Name of the uploading camera")
    format: str = Field(
        default=DEFAULT_IMAGE_FORMAT, min_length=1, description="Image file extension"
    )

    @field_validator("camera")
    @classmethod
    def validate_camera(cls, v: str) -> str:
        if "/" in v or "\\" in v or v in (".", ".."):
            raise ValueError("Camera name cannot contain path separators")
        return v

    @field_validator("format")
    @classmethod
    def normalize_format(cls, v: str) -> str:
        return v.lstrip(".").lower()


class ImageRecord(BaseModel):
    """One uploaded image that has not been processed yet."""

    metadata_key: str = Field(..., description="Unique catalog key of the record")
    version: Optional[str] = Field(None, description="Camera app version")
    camera: str = Field(..., description="Camera that uploaded the image")
    format: str = Field(default=DEFAULT_IMAGE_FORMAT, description="Image extension")
    stream: str = Field(..., description="Stream the upload event was appended to")
    event: str = Field(..., description="Stream event id, also the filename stem")
    path: str = Field(..., description="Full path of the stored image")
    filename: str = Field(..., description="File name of the stored image")

    @property
    def event_date(self) -> Optional[datetime]:
        """Creation time decoded from the stream event id."""
        return safe_event_id_to_datetime(self.event)

    @classmethod
    def from_hash(cls, key: str, fields: Dict[str, str]) -> "ImageRecord":
        """
        Build a record from a metadata hash.

        Records written before ``camera``/``format`` were stored get them from
        the key and the file name respectively.
        """
        path = fields.get(META_FIELD_PATH, "")
        filename = fields.get(META_FIELD_FILENAME) or PurePath(path).name
        image_format = fields.get(META_FIELD_FORMAT) or (
            PurePath(filename).suffix.lstrip(".") or DEFAULT_IMAGE_FORMAT
        )
        return cls(
            metadata_key=fields.get(META_FIELD_METADATA_KEY) or key,
            version=fields.get(META_FIELD_VERSION),
            camera=fields.get(META_FIELD_CAMERA) or camera_from_metadata_key(key) or "",
            format=image_format,
            stream=fields[META_FIELD_STREAM],
            event=fields.get(META_FIELD_EVENT, ""),
            path=path,
            filename=filename,
        )

    def to_hash(self) -> Dict[str, str]:
        fields = {
            META_FIELD_FILENAME: self.filename,
            META_FIELD_PATH: self.path,
            META_FIELD_METADATA_KEY: self.metadata_key,
            META_FIELD_STREAM: self.stream,
            META_FIELD_EVENT: self.event,
            META_FIELD_CAMERA: self.camera,
            META_FIELD_FORMAT: self.format,
        }
        if self.version is not None:
            fields[META_FIELD_VERSION] = self.version
        return fields


class ReconciliationReport(BaseModel):
    """Summary of one catalog consistency sweep."""

    checked: int = Field(default=0, ge=0, description="Records examined")
    corrected: int = Field(default=0, ge=0, description="Records rewritten")
    renamed: int = Field(default=0, ge=0, description="Files renamed")
    not_needing_rename: int = Field(default=0, ge=0, description="Records already correct")
    errors: int = Field(default=0, ge=0, description="Errors, duplicates included")
    duplicates: Dict[str, list] = Field(
        default_factory=dict, description="Paths referenced by more than one record"
    )
    duration_seconds: float = Field(default=0.0, ge=0)
