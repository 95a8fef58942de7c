# backend/imagestore/models/photo_model.py
from datetime import datetime
from typing import List

from pydantic import BaseModel, Field

from ..constants import DEFAULT_MEDIA_TYPE


class Thumbnail(BaseModel):
    """One generated derivative of a photo."""

    spec: str = Field(..., description="Name of the thumbnail spec that produced it")
    filename: str = Field(..., description="Path of the generated file")


class Photo(BaseModel):
    """A processed image ready to be persisted."""

    camera: str = Field(..., description="Name of the camera that uploaded the photo")
    date: datetime = Field(..., description="When the photo was taken")
    media_type: str = Field(default=DEFAULT_MEDIA_TYPE, description="Mimetype of the file")
    filename: str = Field(..., description="Path of the original image")
    thumbnails: List[Thumbnail] = Field(default_factory=list)
