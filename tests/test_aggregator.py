"""Tests for cross-storage lookup and listing."""
import time

import pytest

from retrieval_gateway.aggregator import StorageAggregator
from retrieval_gateway.errors import ImageNotFound, InternalIndexingFailure
from retrieval_gateway.registry import StorageRegistry
from retrieval_gateway.storage import MemoryStorage


class SlowStorage(MemoryStorage):
    """Answers reads after a fixed delay."""

    delay = 0.0

    def get_properties(self, image_id):
        time.sleep(self.delay)
        return super().get_properties(image_id)


class BrokenStorage(MemoryStorage):
    def get_properties(self, image_id):
        raise RuntimeError("index file unreadable")

    def get_all_properties(self):
        raise RuntimeError("index file unreadable")


@pytest.fixture
def aggregator(registry):
    return StorageAggregator(registry)


def test_find_on_single_storage(registry, aggregator, picture):
    registry.resolve("a", create_if_missing=True)
    registry.resolve("b", create_if_missing=True).index_picture(picture, 7, {"k": "b"})

    assert aggregator.find_properties(7) == {"k": "b"}


def test_find_missing_everywhere(registry, aggregator, picture):
    registry.resolve("a", create_if_missing=True).index_picture(picture, 1, {})

    with pytest.raises(ImageNotFound) as excinfo:
        aggregator.find_properties(2)
    assert excinfo.value.image_id == 2


def test_find_with_no_storages(aggregator):
    with pytest.raises(ImageNotFound):
        aggregator.find_properties(1)


def test_find_collision_last_storage_wins(registry, aggregator, picture):
    registry.resolve("a", create_if_missing=True).index_picture(picture, 1, {"from": "a"})
    registry.resolve("b", create_if_missing=True).index_picture(picture, 1, {"from": "b"})
    registry.resolve("c", create_if_missing=True)

    assert aggregator.find_properties(1) == {"from": "b"}


@pytest.mark.parametrize("delays", [(0.2, 0.0), (0.0, 0.2)])
def test_find_collision_ignores_completion_order(picture, delays):
    def factory(name):
        storage = SlowStorage(name)
        storage.delay = delays[0] if name == "first" else delays[1]
        return storage

    registry = StorageRegistry(storage_factory=factory, names=["first", "second"])
    registry.resolve("first").index_picture(picture, 3, {"from": "first"})
    registry.resolve("second").index_picture(picture, 3, {"from": "second"})

    assert StorageAggregator(registry).find_properties(3) == {"from": "second"}
    registry.close()


def test_find_storage_failure(picture):
    registry = StorageRegistry(storage_factory=BrokenStorage, names=["bad"])

    with pytest.raises(InternalIndexingFailure) as excinfo:
        StorageAggregator(registry).find_properties(1)
    assert "index file unreadable" in excinfo.value.message
    registry.close()


def test_list_follows_storage_then_insertion_order(registry, aggregator, picture):
    a = registry.resolve("a", create_if_missing=True)
    b = registry.resolve("b", create_if_missing=True)
    b.index_picture(picture, 10, {"n": "b10"})
    a.index_picture(picture, 2, {"n": "a2"})
    a.index_picture(picture, 1, {"n": "a1"})
    b.index_picture(picture, 1, {"n": "b1"})

    assert aggregator.list_all_properties() == [
        {"n": "a2"}, {"n": "a1"}, {"n": "b10"}, {"n": "b1"}
    ]


def test_list_empty(aggregator):
    assert aggregator.list_all_properties() == []


def test_list_failure_is_not_partial(picture):
    def factory(name):
        return BrokenStorage(name) if name == "bad" else MemoryStorage(name)

    registry = StorageRegistry(storage_factory=factory, names=["good", "bad"])
    registry.resolve("good").index_picture(picture, 1, {"k": "v"})

    with pytest.raises(InternalIndexingFailure):
        StorageAggregator(registry).list_all_properties()
    registry.close()
