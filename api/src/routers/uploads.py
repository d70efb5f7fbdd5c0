"""
Image upload router.

Stores restaurant, menu, profile and document images in the object store
and returns their public URL.
"""

from typing import Dict

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status

from api.src.dependencies import get_current_user, get_storage_service
from api.src.models.auth import CurrentUser
from api.src.models.base import ErrorResponse, MessageResponse
from api.src.services.storage_service import StorageService

router = APIRouter(
    prefix="/upload",
    tags=["Uploads"],
    responses={
        400: {"model": ErrorResponse, "description": "Unsupported file"},
        401: {"model": ErrorResponse, "description": "Unauthorized"},
        413: {"model": ErrorResponse, "description": "File too large"},
        503: {"model": ErrorResponse, "description": "Storage not configured"},
    },
)


@router.post("/image", status_code=status.HTTP_201_CREATED, summary="Upload Image")
async def upload_image(
    file: UploadFile = File(...),
    folder: str = Form("uploads"),
    current_user: CurrentUser = Depends(get_current_user),
    storage: StorageService = Depends(get_storage_service),
) -> Dict[str, str]:
    """Upload a JPEG, PNG, WebP or GIF image; returns ``url`` and ``public_id``."""
    # at most one byte past the limit
    data = await file.read(storage.settings.upload_max_bytes + 1)
    return await storage.upload_image(data, file.content_type or "", folder)


@router.delete("/image", response_model=MessageResponse, summary="Delete Image")
async def delete_image(
    public_id: str = Query(..., min_length=3),
    current_user: CurrentUser = Depends(get_current_user),
    storage: StorageService = Depends(get_storage_service),
) -> MessageResponse:
    await storage.delete_image(public_id)
    return MessageResponse(message="Image deleted successfully")
