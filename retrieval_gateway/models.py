"""SQLAlchemy models for the SQL index engine."""
from sqlalchemy import Column, Integer, String, BigInteger, ForeignKey, Index, JSON
from sqlalchemy.orm import relationship
from retrieval_gateway.db import Base


class StorageRecord(Base):
    """Storage model (one row per shard, never deleted)."""
    __tablename__ = "storages"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, index=True, nullable=False)

    # Relationships
    images = relationship("IndexedImage", back_populates="storage", cascade="all, delete-orphan")


class IndexedImage(Base):
    """Indexed picture and its property mapping."""
    __tablename__ = "indexed_images"

    id = Column(Integer, primary_key=True, index=True)  # Insertion order
    storage_id = Column(Integer, ForeignKey("storages.id"), nullable=False, index=True)
    image_id = Column(BigInteger, nullable=False)  # Caller-supplied, unique per storage
    properties = Column(JSON, nullable=False, default=dict)
    width = Column(Integer, nullable=False)
    height = Column(Integer, nullable=False)

    # Relationships
    storage = relationship("StorageRecord", back_populates="images")

    # Indexes
    __table_args__ = (
        Index("idx_indexed_image_storage_image", "storage_id", "image_id", unique=True),
    )
