"""Tests for the SQL-backed storage."""
import pytest
from PIL import Image
from sqlalchemy.orm import sessionmaker

from retrieval_gateway.db import Base, make_engine
from retrieval_gateway.gateway import ImageGateway
from retrieval_gateway.registry import StorageRegistry, build_registry
from retrieval_gateway.settings import settings
from retrieval_gateway.sql_storage import SqlStorage, list_storage_names
from retrieval_gateway.storage import AlreadyIndexedError, NoValidPictureError, PictureNotIndexedError
from retrieval_gateway import cli_create_tables, models, sql_storage  # noqa: F401 (models registers tables)


@pytest.fixture
def sql_engine(tmp_path):
    """Fresh database file with all tables."""
    engine = make_engine(f"sqlite:///{tmp_path / 'index.db'}")
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(sql_engine):
    return sessionmaker(sql_engine, expire_on_commit=False, autoflush=False)


@pytest.fixture
def storage(session_factory):
    storage = SqlStorage("s1", session_factory)
    yield storage
    storage.close()


def test_index_and_read(storage, picture):
    assert storage.index_picture(picture, 1, {"b": "2", "a": "1"}) == 1

    properties = storage.get_properties(1)
    assert list(properties.items()) == [("b", "2"), ("a", "1")]
    assert storage.is_picture_in_index(1)
    assert not storage.is_picture_in_index(2)
    assert storage.get_properties(2) is None
    assert storage.size() == 1


def test_index_duplicate(storage, picture):
    storage.index_picture(picture, 1, {"v": "first"})

    with pytest.raises(AlreadyIndexedError):
        storage.index_picture(picture, 1, {"v": "second"})
    assert storage.get_properties(1) == {"v": "first"}


def test_index_too_small(storage):
    with pytest.raises(NoValidPictureError):
        storage.index_picture(Image.new("RGB", (2, 2)), 1, {})
    assert storage.size() == 0


def test_delete(storage, picture):
    storage.index_picture(picture, 1, {})

    storage.delete_picture(1)

    assert not storage.is_picture_in_index(1)
    with pytest.raises(PictureNotIndexedError):
        storage.delete_picture(1)


def test_all_properties_in_insertion_order(storage, picture):
    storage.index_picture(picture, 9, {"n": "9"})
    storage.index_picture(picture, 3, {"n": "3"})

    assert storage.get_all_properties() == {9: {"n": "9"}, 3: {"n": "3"}}
    assert list(storage.get_all_properties()) == [9, 3]


def test_storages_are_isolated_and_durable(session_factory, picture):
    first = SqlStorage("a", session_factory)
    second = SqlStorage("b", session_factory)
    first.index_picture(picture, 1, {"on": "a"})

    assert second.get_properties(1) is None

    reopened = SqlStorage("a", session_factory)
    assert reopened.get_properties(1) == {"on": "a"}
    assert list_storage_names(session_factory) == ["a", "b"]
    for s in (first, second, reopened):
        s.close()


def test_gateway_over_sql(session_factory, sample_image_bytes):
    registry = StorageRegistry(storage_factory=lambda name: SqlStorage(name, session_factory))
    gateway = ImageGateway(registry)

    gateway.create(1, sample_image_bytes, storage_name="s1", keys="k", values="v")
    gateway.create(2, sample_image_bytes, storage_name="s1", keys="k", values="w", async_=True)
    registry.resolve("s1").wait_for_queue(timeout=5)

    assert gateway.get(2) == {"k": "w"}
    assert gateway.list_all() == [{"k": "v"}, {"k": "w"}]

    # A new registry sees the stored storages again
    reloaded = StorageRegistry(
        storage_factory=lambda name: SqlStorage(name, session_factory),
        names=list_storage_names(session_factory)
    )
    assert ImageGateway(reloaded).get_by_storage("s1", 1) == {"k": "v"}

    registry.close()
    reloaded.close()


def test_build_registry_sql_engine(monkeypatch, sql_engine, session_factory):
    monkeypatch.setattr(settings, "INDEX_ENGINE", "sql")
    monkeypatch.setattr(cli_create_tables, "engine", sql_engine)
    monkeypatch.setattr(sql_storage, "SessionLocal", session_factory)
    SqlStorage("kept", session_factory).close()

    registry = build_registry()

    assert [s.name for s in registry.list_all()] == ["kept"]
    assert isinstance(registry.resolve("new", create_if_missing=True), SqlStorage)
    assert list_storage_names(session_factory) == ["kept", "new"]
    registry.close()


def test_database_url_comes_from_settings():
    from retrieval_gateway import db

    expected = settings.DATABASE_URL
    if expected.startswith("postgres://"):
        expected = expected.replace("postgres://", "postgresql+psycopg://", 1)
    assert db.database_url == expected
