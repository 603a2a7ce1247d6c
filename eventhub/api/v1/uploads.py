"""
Image upload endpoint for EventHub.
"""

import logging
from fastapi import APIRouter, Depends, File, UploadFile, status
from pydantic import BaseModel

from ...schemas.user import Identity
from ...services.blob_store import LocalBlobStore
from ..dependencies import get_blob_store, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/uploads", tags=["Uploads"])


class UploadResponse(BaseModel):
    """Stored image location."""
    image_url: str
    size: int
    content_type: str


@router.post("/", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_image(
    image: UploadFile = File(...),
    current_user: Identity = Depends(get_current_user),
    blob_store: LocalBlobStore = Depends(get_blob_store)
):
    """
    Store an event image and return the URL to put in an event's image_url.
    Only jpeg, png and gif images are accepted.
    """
    content = await image.read()
    content_type = image.content_type or "application/octet-stream"

    url = await blob_store.store(content, content_type)
    logger.info(f"User {current_user.id} uploaded {image.filename} -> {url}")

    return UploadResponse(image_url=url, size=len(content), content_type=content_type)
