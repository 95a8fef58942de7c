"""
Service layer: catalog storage and reconciliation, and the image processor client.
"""

from .catalog_reconciliation_service import CatalogReconciliationService
from .catalog_service import CatalogService
from .image_processor_client import ImageProcessorClient

__all__ = ["CatalogReconciliationService", "CatalogService", "ImageProcessorClient"]
