# backend/imagestore/routers/image_routers.py
"""
Image upload HTTP endpoint.

Cameras POST raw image bytes; the body is stored through the catalog and
picked up later by the import worker.
"""

from fastapi import APIRouter, HTTPException, Request, Response, status
from loguru import logger
from pydantic import ValidationError

from ..dependencies import CatalogServiceDep
from ..models.image_model import ImageUpload
from ..utils.router_helpers import handle_exceptions, image_format_for_content_type

router = APIRouter(tags=["images"])


@router.post("/images/{version}/{camera}", status_code=status.HTTP_204_NO_CONTENT)
@handle_exceptions("store image")
async def upload_image(
    version: str, camera: str, request: Request, catalog: CatalogServiceDep
) -> Response:
    """
    Store an uploaded image.

    Returns 204 once the file and its catalog record are written, 415 for an
    unsupported Content-Type and 500 if storage fails.
    """
    content_type = request.headers.get("content-type")
    image_format = image_format_for_content_type(content_type)
    if image_format is None:
        logger.warning(f"Rejected upload from {camera}: unsupported content type {content_type}")
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail=f"Unsupported content type: {content_type}",
        )

    try:
        upload = ImageUpload(version=version, camera=camera, format=image_format)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    body = await request.body()
    await catalog.store_image(upload, body)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
