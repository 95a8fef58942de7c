# backend/imagestore/models/reference_model.py
"""
Reference data models.

The reference snapshot is loaded once at bootstrap and treated as immutable
for the rest of the session.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class MediaType(BaseModel):
    id: int
    type_name: str = Field(..., description="Mimetype, e.g. image/jpeg")
    extension: str = Field(..., description="File extension without dot")


class Tag(BaseModel):
    id: int
    name: str
    is_service_tag: bool = False
    description: Optional[str] = None


class Camera(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    tags: List[Tag] = Field(default_factory=list)


class ThumbnailSpec(BaseModel):
    """One thumbnail transformation produced for every photo."""

    id: int
    name: str = Field(..., description="Spec name, echoed back by the processor")
    description: Optional[str] = None
    params: Dict[str, Any] = Field(
        default_factory=dict, description="Transform parameters passed to the processor"
    )


class ReferenceSnapshot(BaseModel):
    """In-memory copy of the reference tables."""

    schema_version: Optional[str] = None
    media_types: Dict[str, MediaType] = Field(
        default_factory=dict, description="Keyed by type name"
    )
    tags: Dict[int, Tag] = Field(default_factory=dict, description="Keyed by tag id")
    cameras: Dict[str, Camera] = Field(
        default_factory=dict, description="Keyed by camera name"
    )
    thumbnail_specs: Dict[str, ThumbnailSpec] = Field(
        default_factory=dict, description="Keyed by spec name"
    )

    model_config = ConfigDict(frozen=True)

    def media_type_for_extension(self, extension: str) -> Optional[MediaType]:
        extension = extension.lstrip(".").lower()
        for media_type in self.media_types.values():
            if media_type.extension.lower() == extension:
                return media_type
        return None
