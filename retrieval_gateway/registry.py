"""Directory of named storages and round-robin placement of new images."""
from typing import Callable, Dict, Iterable, List, Optional
import logging
import threading

from retrieval_gateway.errors import NoShardsAvailable, ShardNotFound, StorageAlreadyExists
from retrieval_gateway.settings import settings
from retrieval_gateway.storage import Storage, create_storage

logger = logging.getLogger(__name__)


class StorageRegistry:
    """Thread-safe create-or-get map of storages.

    Lookups never take the lock; only the creation of a missing storage does,
    so two concurrent first accesses still produce a single storage.
    """

    def __init__(
        self,
        storage_factory: Callable[[str], Storage] = None,
        names: Iterable[str] = (),
        default_storage: str = None,
        auto_create_default: bool = None
    ):
        """Initialize registry.

        Args:
            storage_factory: Builds the storage for a new name (default from settings)
            names: Storages to open immediately, in registry order
            default_storage: Storage created when placing an image into an empty registry
            auto_create_default: If False, an empty registry raises NoShardsAvailable instead
        """
        self._factory = storage_factory or create_storage
        self.default_storage = default_storage or settings.DEFAULT_STORAGE
        if auto_create_default is None:
            auto_create_default = settings.AUTO_CREATE_DEFAULT_STORAGE
        self.auto_create_default = auto_create_default

        self._storages: Dict[str, Storage] = {}
        self._create_lock = threading.Lock()

        # Round-robin cursor, advanced on every selection
        self._cursor = 0
        self._cursor_lock = threading.Lock()

        for name in names:
            self.resolve(name, create_if_missing=True)

    def get(self, name: str) -> Optional[Storage]:
        """Get a storage by name, or None."""
        return self._storages.get(name)

    def resolve(self, name: str, create_if_missing: bool = False) -> Storage:
        """
        Get a storage by name, optionally creating it.

        Raises:
            ShardNotFound: If missing and create_if_missing is False
        """
        storage = self._storages.get(name)
        if storage is not None:
            return storage
        if not create_if_missing:
            raise ShardNotFound(name)
        return self._get_or_create(name)

    def resolve_for_lookup(self, name: str) -> Storage:
        """Get an existing storage; read and delete paths never create one."""
        return self.resolve(name, create_if_missing=False)

    def create(self, name: str) -> Storage:
        """
        Explicitly create a new storage.

        Raises:
            StorageAlreadyExists: If the name is already registered
        """
        with self._create_lock:
            if name in self._storages:
                raise StorageAlreadyExists(name)
            return self._add(name)

    def _get_or_create(self, name: str) -> Storage:
        with self._create_lock:
            storage = self._storages.get(name)
            if storage is None:
                storage = self._add(name)
            return storage

    def _add(self, name: str) -> Storage:
        # Caller holds _create_lock
        storage = self._factory(name)
        self._storages[name] = storage
        logger.info("Created storage %s", name)
        return storage

    def next_storage(self) -> Storage:
        """
        Pick the storage for an image submitted without a storage name.

        Round-robin over the storages known at call time. The cursor moves on
        every call whatever the outcome of the ingestion that follows.

        Raises:
            NoShardsAvailable: If no storage exists and default creation is disabled
        """
        snapshot = self.list_all()
        if not snapshot:
            if not self.auto_create_default:
                raise NoShardsAvailable("No storage available to index the image")
            return self.resolve(self.default_storage, create_if_missing=True)

        with self._cursor_lock:
            position = self._cursor
            self._cursor += 1
        return snapshot[position % len(snapshot)]

    def list_all(self) -> List[Storage]:
        """Snapshot of all storages in creation order."""
        with self._create_lock:
            return list(self._storages.values())

    def close(self) -> None:
        """Close every storage."""
        for storage in self.list_all():
            storage.close()


def build_registry() -> StorageRegistry:
    """Factory function to build the registry configured by settings."""
    if settings.INDEX_ENGINE not in ("sql", "memory"):
        raise ValueError(f"Unknown index engine: {settings.INDEX_ENGINE}")

    names: List[str] = []
    if settings.INDEX_ENGINE == "sql":
        from retrieval_gateway.cli_create_tables import create_tables
        from retrieval_gateway.sql_storage import list_storage_names
        create_tables()
        names = list_storage_names()
    return StorageRegistry(names=names)
