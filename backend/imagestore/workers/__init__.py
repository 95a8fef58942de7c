"""
Background workers: the import loop and the thumbnail scheduler.
"""

from .base_worker import BaseWorker
from .import_worker import ImportWorker
from .thumbnail_worker import ThumbnailScheduler

__all__ = ["BaseWorker", "ImportWorker", "ThumbnailScheduler"]
