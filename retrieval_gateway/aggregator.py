"""Queries spanning every storage of the registry."""
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Optional, TypeVar
import logging

from retrieval_gateway.errors import ImageNotFound, InternalIndexingFailure
from retrieval_gateway.registry import StorageRegistry
from retrieval_gateway.settings import settings
from retrieval_gateway.storage import Storage

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StorageAggregator:
    """Fan a read out to all storages and merge the answers.

    Storages are queried in parallel, but results are always merged in the
    registry's storage order, never in completion order.
    """

    def __init__(self, registry: StorageRegistry, max_workers: int = None):
        self.registry = registry
        self.max_workers = max_workers or settings.FANOUT_WORKERS

    def _query_all(self, storages: List[Storage], query: Callable[[Storage], T]) -> List[T]:
        if not storages:
            return []
        workers = min(self.max_workers, len(storages))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="fanout") as executor:
            # map() yields in input order
            return list(executor.map(query, storages))

    def find_properties(self, image_id: int) -> Dict[str, str]:
        """
        Find an image's properties on any storage.

        An id is only unique inside one storage. If several storages hold it,
        the last storage in registry order wins.

        Raises:
            ImageNotFound: If no storage holds the image
            InternalIndexingFailure: If a storage query fails
        """
        storages = self.registry.list_all()
        try:
            results = self._query_all(storages, lambda s: s.get_properties(image_id))
        except Exception as e:
            logger.exception("Lookup of image %s across storages failed", image_id)
            raise InternalIndexingFailure(
                f"Cannot read image {image_id}: {e}", image_id=image_id, cause=e
            ) from e

        found: Optional[Dict[str, str]] = None
        for properties in results:
            if properties is not None:
                found = properties

        if found is None:
            raise ImageNotFound(image_id)
        return found

    def list_all_properties(self) -> List[Dict[str, str]]:
        """
        List the properties of every image of every storage.

        Storage order first, then insertion order inside each storage. Ids
        held by several storages appear once per storage.

        Raises:
            InternalIndexingFailure: If any storage fails; no partial listing
        """
        storages = self.registry.list_all()
        try:
            results = self._query_all(storages, lambda s: s.get_all_properties())
        except Exception as e:
            logger.exception("Listing images across storages failed")
            raise InternalIndexingFailure(f"Cannot list images: {e}", cause=e) from e

        properties: List[Dict[str, str]] = []
        for per_storage in results:
            properties.extend(per_storage.values())
        return properties
