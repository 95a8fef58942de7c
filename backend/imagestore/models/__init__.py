"""
imagestore Pydantic models.

    - image_model: catalog records, upload metadata, reconciliation reports
    - reference_model: reference snapshot loaded at bootstrap
    - photo_model: processed photos and their thumbnails
    - job_model: scheduler jobs and the processor wire format
"""

from .image_model import ImageRecord, ImageUpload, ReconciliationReport
from .job_model import (
    ProcessorCommand,
    ProcessorRequest,
    ProcessorResponse,
    ProcessorResultCommand,
    QueueJob,
    SchedulerStatus,
)
from .photo_model import Photo, Thumbnail
from .reference_model import Camera, MediaType, ReferenceSnapshot, Tag, ThumbnailSpec

__all__ = [
    "ImageRecord",
    "ImageUpload",
    "ReconciliationReport",
    "ProcessorCommand",
    "ProcessorRequest",
    "ProcessorResponse",
    "ProcessorResultCommand",
    "QueueJob",
    "SchedulerStatus",
    "Photo",
    "Thumbnail",
    "Camera",
    "MediaType",
    "ReferenceSnapshot",
    "Tag",
    "ThumbnailSpec",
]
