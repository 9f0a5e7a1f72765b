"""Storage backed by the SQL catalog (durable across restarts)."""
from typing import Dict, List, Optional
import logging

from PIL import Image
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from retrieval_gateway.db import SessionLocal
from retrieval_gateway.models import IndexedImage, StorageRecord
from retrieval_gateway.storage import (
    AlreadyIndexedError, PictureNotIndexedError, QueuedStorage, StorageError, check_indexable
)

logger = logging.getLogger(__name__)


def get_or_create_storage_record(db: Session, name: str) -> StorageRecord:
    """Get or create a storage row."""
    record = db.execute(select(StorageRecord).where(StorageRecord.name == name)).scalar_one_or_none()

    if not record:
        record = StorageRecord(name=name)
        db.add(record)
        try:
            db.commit()
        except IntegrityError:
            # Created concurrently by another process
            db.rollback()
            record = db.execute(select(StorageRecord).where(StorageRecord.name == name)).scalar_one()
        else:
            db.refresh(record)

    return record


def list_storage_names(session_factory: sessionmaker = None) -> List[str]:
    """Names of every stored storage, in creation order."""
    session_factory = session_factory or SessionLocal
    with session_factory() as db:
        result = db.execute(select(StorageRecord.name).order_by(StorageRecord.id))
        return list(result.scalars().all())


class SqlStorage(QueuedStorage):
    """Storage persisting its index catalog through SQLAlchemy."""

    def __init__(self, name: str, session_factory: sessionmaker = None):
        super().__init__(name)
        self._session_factory = session_factory or SessionLocal
        with self._session_factory() as db:
            self._storage_pk = get_or_create_storage_record(db, name).id

    def _find(self, db: Session, image_id: int) -> Optional[IndexedImage]:
        return db.execute(
            select(IndexedImage).where(
                IndexedImage.storage_id == self._storage_pk,
                IndexedImage.image_id == image_id
            )
        ).scalar_one_or_none()

    def index_picture(self, image: Image.Image, image_id: int, properties: Dict[str, str]) -> int:
        check_indexable(image)

        width, height = image.size
        with self._session_factory() as db:
            if self._find(db, image_id) is not None:
                raise AlreadyIndexedError(f"Picture {image_id} already indexed in {self.name}")

            db.add(IndexedImage(
                storage_id=self._storage_pk,
                image_id=image_id,
                properties=dict(properties),
                width=width,
                height=height
            ))
            try:
                db.commit()
            except IntegrityError:
                # Unique (storage, image) index lost a concurrent insert race
                db.rollback()
                raise AlreadyIndexedError(f"Picture {image_id} already indexed in {self.name}")
            except SQLAlchemyError as e:
                db.rollback()
                raise StorageError(f"Cannot store picture {image_id}: {e}") from e

        return image_id

    def get_properties(self, image_id: int) -> Optional[Dict[str, str]]:
        with self._session_factory() as db:
            row = self._find(db, image_id)
            return dict(row.properties) if row is not None else None

    def is_picture_in_index(self, image_id: int) -> bool:
        with self._session_factory() as db:
            return self._find(db, image_id) is not None

    def delete_picture(self, image_id: int) -> None:
        with self._session_factory() as db:
            row = self._find(db, image_id)
            if row is None:
                raise PictureNotIndexedError(f"Picture {image_id} not indexed in {self.name}")
            db.delete(row)
            try:
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise StorageError(f"Cannot delete picture {image_id}: {e}") from e

    def get_all_properties(self) -> Dict[int, Dict[str, str]]:
        with self._session_factory() as db:
            rows = db.execute(
                select(IndexedImage)
                .where(IndexedImage.storage_id == self._storage_pk)
                .order_by(IndexedImage.id)
            ).scalars().all()
            return {row.image_id: dict(row.properties) for row in rows}

    def size(self) -> int:
        with self._session_factory() as db:
            return db.execute(
                select(func.count(IndexedImage.id)).where(IndexedImage.storage_id == self._storage_pk)
            ).scalar_one()
