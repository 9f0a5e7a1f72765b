"""CLI script to create database tables.

Usage: python -m retrieval_gateway.cli_create_tables
"""
from retrieval_gateway.db import engine, Base
from retrieval_gateway.models import StorageRecord, IndexedImage  # noqa: F401 (registers tables)


def create_tables(bind=None):
    """Create all database tables."""
    Base.metadata.create_all(bind or engine)


if __name__ == "__main__":
    create_tables()
    print("Tables created successfully!")
