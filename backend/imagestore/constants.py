# backend/imagestore/constants.py
"""
Global Constants for imagestore

Centralized location for application constants to avoid hardcoded values
throughout the codebase.
"""

from typing import Dict

# =============================================================================
# CATALOG
# =============================================================================

IMAGE_META_NAMESPACE = "image:meta"
IMAGE_STREAM_NAMESPACE = "image:stream"

METADATA_KEY_RANDOM_LENGTH = 16

# Hash fields of an image metadata record
META_FIELD_VERSION = "v"
META_FIELD_FILENAME = "filename"
META_FIELD_PATH = "path"
META_FIELD_METADATA_KEY = "metadataKey"
META_FIELD_STREAM = "stream"
META_FIELD_EVENT = "event"
META_FIELD_CAMERA = "camera"
META_FIELD_FORMAT = "format"

# Stream entry fields
STREAM_FIELD_VERSION = "v"
STREAM_FIELD_METADATA = "metadata"

DEFAULT_IMAGE_FORMAT = "jpg"

# Extension written by an earlier schema that never resolved the real format
LEGACY_PLACEHOLDER_EXTENSION = "undefined"

CATALOG_SCAN_COUNT = 100

# =============================================================================
# MEDIA TYPES
# =============================================================================

DEFAULT_MEDIA_TYPE = "image/jpeg"

# Content types accepted by the upload endpoint, mapped to file extensions
ACCEPTABLE_IMAGES: Dict[str, str] = {
    "image/jpeg": "jpg",
}

# =============================================================================
# CACHE
# =============================================================================

CAMERA_EXISTS_CACHE_NAMESPACE = "camera_exists"
DEFAULT_CACHE_TTL_SECONDS = 60

# =============================================================================
# DATABASE
# =============================================================================

SCHEMA_VERSION_CONFIG_NAME = "schema_version"
