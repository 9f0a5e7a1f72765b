"""API endpoints for the sharded image index.

Route functions are synchronous: FastAPI runs each call in its own worker
thread, and synchronous indexing blocks only that thread.
"""
from fastapi import APIRouter, UploadFile, File, Form, Depends, HTTPException, Response, status
from typing import Dict, List, Optional
import logging

from retrieval_gateway.gateway import ImageGateway, get_gateway
from retrieval_gateway.schemas import StorageIn, StorageOut
from retrieval_gateway.settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix=settings.API_PREFIX)


@router.get("/storages/{storage}/images/{image_id}", response_model=Dict[str, str])
def get_image_by_storage(
    storage: str,
    image_id: int,
    gateway: ImageGateway = Depends(get_gateway)
):
    """Get the properties of an image on one storage."""
    logger.debug("REST request to get image %s on storage %s", image_id, storage)
    return gateway.get_by_storage(storage, image_id)


@router.get("/images/{image_id}", response_model=Dict[str, str])
def get_image(
    image_id: int,
    gateway: ImageGateway = Depends(get_gateway)
):
    """Get the properties of an image, searching every storage."""
    logger.debug("REST request to get image %s", image_id)
    return gateway.get(image_id)


@router.get("/images", response_model=List[Dict[str, str]])
def list_images(gateway: ImageGateway = Depends(get_gateway)):
    """List the properties of every indexed image."""
    logger.debug("REST request to list images")
    return gateway.list_all()


@router.post("/images", response_model=Dict[str, str], status_code=status.HTTP_201_CREATED)
def create_image(
    image_id: int = Form(..., alias="id"),
    storage: Optional[str] = Form(None),
    keys: Optional[str] = Form(None),
    values: Optional[str] = Form(None),
    async_: bool = Form(False, alias="async"),
    image_bytes: UploadFile = File(..., alias="imageBytes"),
    gateway: ImageGateway = Depends(get_gateway)
):
    """
    Index an image.

    keys/values are delimited lists (e.g. keys=author;date, values=bob;2015).
    Without a storage, the image goes to the next storage in round-robin order.
    With async=true the call returns once the image is queued.
    """
    logger.debug("REST request to create image %s", image_id)

    # Validate file size
    file_bytes = image_bytes.file.read()
    if len(file_bytes) > settings.MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File size exceeds maximum of {settings.MAX_UPLOAD_BYTES} bytes"
        )

    return gateway.create(
        image_id,
        file_bytes,
        storage_name=storage or None,
        keys=keys,
        values=values,
        async_=async_
    )


@router.delete("/storages/{storage}/images/{image_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_image(
    storage: str,
    image_id: int,
    gateway: ImageGateway = Depends(get_gateway)
):
    """Remove an image from a storage."""
    logger.debug("REST request to delete image %s from storage %s", image_id, storage)
    gateway.delete(storage, image_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/storages", response_model=StorageOut, status_code=status.HTTP_201_CREATED)
def create_storage(
    request: StorageIn,
    gateway: ImageGateway = Depends(get_gateway)
):
    """Create an empty storage."""
    logger.debug("REST request to save storage %s", request.id)
    name, size = gateway.create_storage(request.id)
    return StorageOut(id=name, size=size)


@router.get("/storages", response_model=List[StorageOut])
def list_storages(gateway: ImageGateway = Depends(get_gateway)):
    """List storages in placement order."""
    logger.debug("REST request to list storages")
    return [StorageOut(id=name, size=size) for name, size in gateway.list_storages()]
