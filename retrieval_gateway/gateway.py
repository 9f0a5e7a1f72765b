"""Ingestion, lookup and deletion of indexed images.

The gateway composes the registry, the storages and the aggregator into the
operations exposed over HTTP, and translates index engine failures into
``retrieval_gateway.errors``. It knows nothing about HTTP itself.
"""
from typing import Dict, List, Optional, Tuple
import logging
import threading

from retrieval_gateway.aggregator import StorageAggregator
from retrieval_gateway.errors import (
    DuplicateImage, ImageNotFound, InternalIndexingFailure, InvalidImagePayload
)
from retrieval_gateway.image_utils import open_image_from_bytes
from retrieval_gateway.properties import decode_properties
from retrieval_gateway.registry import StorageRegistry, build_registry
from retrieval_gateway.storage import AlreadyIndexedError, NoValidPictureError, PictureNotIndexedError

logger = logging.getLogger(__name__)


class ImageGateway:
    """Front end of the sharded image index."""

    def __init__(self, registry: StorageRegistry, aggregator: StorageAggregator = None):
        self.registry = registry
        self.aggregator = aggregator or StorageAggregator(registry)

    def get_by_storage(self, storage_name: str, image_id: int) -> Dict[str, str]:
        """Properties of an image on one named storage."""
        storage = self.registry.resolve_for_lookup(storage_name)

        properties = storage.get_properties(image_id)
        if properties is None:
            raise ImageNotFound(image_id, storage=storage_name)
        return properties

    def get(self, image_id: int) -> Dict[str, str]:
        """Properties of an image on whichever storage holds it."""
        return self.aggregator.find_properties(image_id)

    def list_all(self) -> List[Dict[str, str]]:
        """Properties of every indexed image."""
        return self.aggregator.list_all_properties()

    def create(
        self,
        image_id: int,
        image_bytes: bytes,
        storage_name: Optional[str] = None,
        keys: Optional[str] = None,
        values: Optional[str] = None,
        async_: bool = False
    ) -> Dict[str, str]:
        """
        Index an image with its properties.

        Args:
            image_id: Caller-supplied identifier
            image_bytes: Encoded picture
            storage_name: Target storage, created if missing; round-robin if None
            keys: Delimited property keys
            values: Delimited property values, one per key
            async_: Queue the picture instead of waiting for indexing

        Returns:
            Properties stored for the image. On the async path the picture may
            not be indexed yet, in which case the submitted properties are returned.

        Raises:
            InvalidImagePayload: Bytes are not a picture, or not an indexable one
            MalformedProperties: keys and values do not pair up
            DuplicateImage: image_id is already indexed on the storage
            InternalIndexingFailure: Any other index engine failure
        """
        if storage_name is None:
            storage = self.registry.next_storage()
        else:
            storage = self.registry.resolve(storage_name, create_if_missing=True)

        try:
            image = open_image_from_bytes(image_bytes)
        except ValueError as e:
            raise InvalidImagePayload(
                f"Image not valid: {e}", storage=storage.name, image_id=image_id
            ) from e

        properties = decode_properties(keys, values)

        try:
            if async_:
                assigned_id = storage.add_to_index_queue(image, image_id, properties)
            else:
                assigned_id = storage.index_picture(image, image_id, properties)
        except AlreadyIndexedError as e:
            raise DuplicateImage(image_id, storage.name) from e
        except NoValidPictureError as e:
            raise InvalidImagePayload(
                f"Cannot insert image: {e}", storage=storage.name, image_id=image_id
            ) from e
        except Exception as e:
            logger.exception("Indexing image %s on storage %s failed", image_id, storage.name)
            raise InternalIndexingFailure(
                f"Cannot insert image: {e}", storage=storage.name, image_id=image_id, cause=e
            ) from e

        stored = storage.get_properties(assigned_id)
        if stored is not None:
            return stored
        if async_:
            return properties
        raise InternalIndexingFailure(
            f"Image {assigned_id} indexed but not readable on storage {storage.name}",
            storage=storage.name,
            image_id=assigned_id
        )

    def delete(self, storage_name: str, image_id: int) -> None:
        """
        Remove an image from a named storage.

        Raises:
            ShardNotFound: If the storage does not exist
            ImageNotFound: If the image is not indexed on the storage
            InternalIndexingFailure: If the index engine cannot remove it
        """
        storage = self.registry.resolve_for_lookup(storage_name)

        if not storage.is_picture_in_index(image_id):
            raise ImageNotFound(image_id, storage=storage_name)

        try:
            storage.delete_picture(image_id)
        except PictureNotIndexedError as e:
            # Removed by a concurrent delete after the existence check
            raise ImageNotFound(image_id, storage=storage_name) from e
        except Exception as e:
            logger.error("Cannot delete image %s from storage %s: %s", image_id, storage_name, e)
            raise InternalIndexingFailure(
                f"Cannot delete image: {e}", storage=storage_name, image_id=image_id, cause=e
            ) from e

    def create_storage(self, name: str) -> Tuple[str, int]:
        """Create an empty storage; returns (name, size)."""
        storage = self.registry.create(name)
        return storage.name, storage.size()

    def list_storages(self) -> List[Tuple[str, int]]:
        """(name, size) of every storage in registry order."""
        return [(storage.name, storage.size()) for storage in self.registry.list_all()]

    def close(self) -> None:
        self.registry.close()


_gateway: Optional[ImageGateway] = None
_gateway_lock = threading.Lock()


def get_gateway() -> ImageGateway:
    """Dependency for FastAPI to get the process-wide gateway."""
    global _gateway
    with _gateway_lock:
        if _gateway is None:
            _gateway = ImageGateway(build_registry())
        return _gateway


def close_gateway() -> None:
    """Close the process-wide gateway, if it was built."""
    global _gateway
    with _gateway_lock:
        if _gateway is not None:
            _gateway.close()
            _gateway = None
