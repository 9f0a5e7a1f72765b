"""Errors surfaced by the gateway to its callers.

Every error carries the storage and image it refers to (when known) so the
HTTP layer can render a precise message. Status codes are assigned in
``retrieval_gateway.app``.
"""
from typing import Optional


class RetrievalError(Exception):
    """Base class for all user-visible gateway failures."""

    def __init__(
        self,
        message: str,
        storage: Optional[str] = None,
        image_id: Optional[int] = None
    ):
        super().__init__(message)
        self.message = message
        self.storage = storage
        self.image_id = image_id


class ShardNotFound(RetrievalError):
    """Named storage does not exist and must not be created."""

    def __init__(self, storage: str):
        super().__init__(f"Storage {storage} cannot be found!", storage=storage)


class ImageNotFound(RetrievalError):
    """No storage (or not the named one) holds the image."""

    def __init__(self, image_id: int, storage: Optional[str] = None):
        if storage is None:
            message = f"Image {image_id} cannot be found !"
        else:
            message = f"Image {image_id} cannot be found on storage {storage} !"
        super().__init__(message, storage=storage, image_id=image_id)


class DuplicateImage(RetrievalError):
    """Image id is already indexed on the target storage."""

    def __init__(self, image_id: int, storage: str):
        super().__init__(
            f"Image {image_id} already exist in storage {storage}",
            storage=storage,
            image_id=image_id
        )


class InvalidImagePayload(RetrievalError):
    """Uploaded bytes are not a usable picture."""


class MalformedProperties(RetrievalError):
    """Keys and values encodings do not pair up."""


class NoShardsAvailable(RetrievalError):
    """No storage exists to receive an unassigned image."""


class StorageAlreadyExists(RetrievalError):
    """Explicit storage creation for a name that is already registered."""

    def __init__(self, storage: str):
        super().__init__(f"Storage {storage} already exist!", storage=storage)


class InternalIndexingFailure(RetrievalError):
    """Any other index engine failure; opaque and not retried here."""

    def __init__(
        self,
        message: str,
        storage: Optional[str] = None,
        image_id: Optional[int] = None,
        cause: Optional[BaseException] = None
    ):
        super().__init__(message, storage=storage, image_id=image_id)
        self.cause = cause
