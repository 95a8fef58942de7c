# backend/imagestore/utils/router_helpers.py
"""
Router Helper Functions

Decorator for standardized error handling in FastAPI routers, and the
content type check used by the upload endpoint.
"""

from functools import wraps
from typing import Callable, Optional

from fastapi import HTTPException
from loguru import logger

from ..constants import ACCEPTABLE_IMAGES


def handle_exceptions(operation_name: str):
    """
    Decorator for standardized exception handling in router endpoints.

    HTTPExceptions pass through; anything else is logged and becomes a 500.

    Usage:
        @handle_exceptions("store image")
        async def upload_image(...):
            ...
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except HTTPException:
                raise
            except Exception as e:
                logger.error(f"Error {operation_name}: {e}")
                raise HTTPException(
                    status_code=500, detail=f"Failed to {operation_name}"
                )

        return wrapper

    return decorator


def image_format_for_content_type(content_type: Optional[str]) -> Optional[str]:
    """
    Map an upload's Content-Type to the stored file extension.

    Parameters such as ``; charset=...`` are ignored. Returns None for
    unsupported types.
    """
    if not content_type:
        return None
    media_type = content_type.split(";", 1)[0].strip().lower()
    return ACCEPTABLE_IMAGES.get(media_type)
