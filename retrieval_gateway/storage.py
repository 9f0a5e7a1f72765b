"""Storage (shard) interface and index engine implementations."""
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Dict, Optional
import logging
import threading

from PIL import Image

from retrieval_gateway.image_utils import is_indexable
from retrieval_gateway.settings import settings

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Index engine failure."""


class AlreadyIndexedError(StorageError):
    """Picture id is already present in the storage."""


class NoValidPictureError(StorageError):
    """Picture cannot be indexed (unsupported structure, too small, ...)."""


class PictureNotIndexedError(StorageError):
    """Picture id is not present in the storage."""


def check_indexable(image: Image.Image) -> None:
    """Raise NoValidPictureError if the picture is too small to index."""
    if not is_indexable(image):
        raise NoValidPictureError(
            f"Picture {image.size[0]}x{image.size[1]} is smaller than "
            f"{settings.MIN_IMAGE_DIMENSION}px"
        )


class Storage(ABC):
    """Abstract storage interface: one shard of the image index."""

    name: str

    @abstractmethod
    def index_picture(self, image: Image.Image, image_id: int, properties: Dict[str, str]) -> int:
        """
        Index a picture and wait for completion.

        Args:
            image: Decoded picture
            image_id: Caller-supplied identifier (unique inside this storage)
            properties: Property mapping attached to the picture

        Returns:
            Identifier assigned to the indexed picture

        Raises:
            AlreadyIndexedError: If image_id is already indexed here
            NoValidPictureError: If the picture cannot be indexed
        """
        pass

    @abstractmethod
    def add_to_index_queue(self, image: Image.Image, image_id: int, properties: Dict[str, str]) -> int:
        """
        Queue a picture for indexing and return without waiting.

        Returns:
            Provisional identifier of the queued picture

        Raises:
            AlreadyIndexedError: If image_id is already indexed or queued here
            NoValidPictureError: If the picture cannot be indexed
        """
        pass

    @abstractmethod
    def get_properties(self, image_id: int) -> Optional[Dict[str, str]]:
        """
        Get the property mapping stored for a picture.

        Returns:
            Property mapping, or None if the picture is not indexed
        """
        pass

    @abstractmethod
    def is_picture_in_index(self, image_id: int) -> bool:
        """Check if a picture is indexed in this storage."""
        pass

    @abstractmethod
    def delete_picture(self, image_id: int) -> None:
        """
        Remove a picture from the index.

        Raises:
            PictureNotIndexedError: If the picture is not indexed
            StorageError: If the picture could not be removed
        """
        pass

    @abstractmethod
    def get_all_properties(self) -> Dict[int, Dict[str, str]]:
        """Get every indexed picture's properties, in insertion order."""
        pass

    @abstractmethod
    def size(self) -> int:
        """Number of indexed pictures."""
        pass

    def close(self) -> None:
        """Release resources held by the storage."""
        pass


@dataclass
class IndexingJob:
    """Queued indexing request and its outcome."""
    image_id: int
    status: str = "pending"  # pending -> indexed | failed
    error_message: Optional[str] = None


class QueuedStorage(Storage):
    """Storage whose asynchronous path runs index_picture on a worker thread.

    One worker per storage, so queued pictures of a storage are indexed in
    submission order. Failures known at submission time are raised right
    away; the worker repeats the checks for pictures indexed meanwhile.
    """

    def __init__(self, name: str, job_history: int = None):
        self.name = name
        self.job_history = job_history or settings.JOB_HISTORY_LIMIT
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"index-{name}")
        self._jobs: Dict[int, IndexingJob] = {}  # Submission order
        self._futures = set()
        self._jobs_lock = threading.Lock()

    def add_to_index_queue(self, image: Image.Image, image_id: int, properties: Dict[str, str]) -> int:
        check_indexable(image)
        if self.is_picture_in_index(image_id):
            raise AlreadyIndexedError(f"Picture {image_id} already indexed in {self.name}")

        job = IndexingJob(image_id=image_id)
        with self._jobs_lock:
            queued = self._jobs.get(image_id)
            if queued is not None and queued.status == "pending":
                raise AlreadyIndexedError(f"Picture {image_id} already queued in {self.name}")
            self._jobs.pop(image_id, None)
            self._jobs[image_id] = job
            future = self._executor.submit(self._run_job, job, image, dict(properties))
            self._futures.add(future)
        future.add_done_callback(self._forget_future)
        return image_id

    def _run_job(self, job: IndexingJob, image: Image.Image, properties: Dict[str, str]) -> None:
        try:
            self.index_picture(image, job.image_id, properties)
        except Exception as e:
            job.status = "failed"
            job.error_message = str(e)
            logger.error("Queued indexing of image %s on storage %s failed: %s", job.image_id, self.name, e)
        else:
            job.status = "indexed"
        with self._jobs_lock:
            self._prune_jobs()

    def _forget_future(self, future: Future) -> None:
        with self._jobs_lock:
            self._futures.discard(future)

    def _prune_jobs(self) -> None:
        # Caller holds _jobs_lock; keeps the newest finished jobs
        finished = [image_id for image_id, job in self._jobs.items() if job.status != "pending"]
        for image_id in finished[:max(0, len(finished) - self.job_history)]:
            del self._jobs[image_id]

    def get_job(self, image_id: int) -> Optional[IndexingJob]:
        """Get the latest queued job for a picture, if any."""
        with self._jobs_lock:
            return self._jobs.get(image_id)

    def wait_for_queue(self, timeout: float = None) -> None:
        """Block until every queued job has finished."""
        with self._jobs_lock:
            pending = list(self._futures)
        wait(pending, timeout=timeout)

    def close(self) -> None:
        self._executor.shutdown(wait=True)


class MemoryStorage(QueuedStorage):
    """In-process storage (for development and tests)."""

    def __init__(self, name: str):
        super().__init__(name)
        self._pictures: Dict[int, Dict[str, str]] = {}
        self._lock = threading.Lock()

    def index_picture(self, image: Image.Image, image_id: int, properties: Dict[str, str]) -> int:
        check_indexable(image)
        with self._lock:
            if image_id in self._pictures:
                raise AlreadyIndexedError(f"Picture {image_id} already indexed in {self.name}")
            self._pictures[image_id] = dict(properties)
        return image_id

    def get_properties(self, image_id: int) -> Optional[Dict[str, str]]:
        with self._lock:
            properties = self._pictures.get(image_id)
            return dict(properties) if properties is not None else None

    def is_picture_in_index(self, image_id: int) -> bool:
        with self._lock:
            return image_id in self._pictures

    def delete_picture(self, image_id: int) -> None:
        with self._lock:
            if image_id not in self._pictures:
                raise PictureNotIndexedError(f"Picture {image_id} not indexed in {self.name}")
            del self._pictures[image_id]

    def get_all_properties(self) -> Dict[int, Dict[str, str]]:
        with self._lock:
            return {image_id: dict(props) for image_id, props in self._pictures.items()}

    def size(self) -> int:
        with self._lock:
            return len(self._pictures)


def create_storage(name: str) -> Storage:
    """Factory function to create a storage based on settings."""
    if settings.INDEX_ENGINE == "memory":
        return MemoryStorage(name)
    elif settings.INDEX_ENGINE == "sql":
        from retrieval_gateway.sql_storage import SqlStorage
        return SqlStorage(name)
    else:
        raise ValueError(f"Unknown index engine: {settings.INDEX_ENGINE}")
