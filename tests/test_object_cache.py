"""Tests for the identity cache table."""

import gc
import sys

import pytest

from arenabridge import ArenaBridgeError
from arenabridge import ArenaExhaustedError
from arenabridge import ModuleTornDownError
from arenabridge import NativeArena
from arenabridge import ObjectCache
from arenabridge import ObjectCacheCorruptionError


class _Target:
    """Weak-referenceable stand-in for a host wrapper."""


@pytest.fixture()
def cache() -> ObjectCache:
    """Build a cache over a fresh backing arena.

    :returns: Empty cache.
    """
    return ObjectCache(NativeArena())


def test_get_after_add_returns_new_reference(cache: ObjectCache) -> None:
    """A hit hands the caller its own strong reference."""
    target = _Target()
    cache.add(0x1000, target)
    before: int = sys.getrefcount(target)

    found = cache.get(0x1000)

    assert found is target
    assert sys.getrefcount(target) == before + 1


def test_miss_returns_none(cache: ObjectCache) -> None:
    assert cache.get(0x2000) is None


def test_delete_removes_entry(cache: ObjectCache) -> None:
    target = _Target()
    cache.add(0x1000, target)
    cache.delete(0x1000)

    assert cache.get(0x1000) is None
    assert 0x1000 not in cache
    assert len(cache) == 0


def test_cache_does_not_keep_wrapper_alive(cache: ObjectCache) -> None:
    """Entries are non-owning."""
    target = _Target()
    cache.add(0x1000, target)
    del target
    gc.collect()

    assert cache.get(0x1000) is None
    cache.delete(0x1000)


def test_duplicate_add_is_fatal(cache: ObjectCache) -> None:
    """A second live entry for one address breaks identity."""
    first = _Target()
    second = _Target()
    cache.add(0x1000, first)

    with pytest.raises(ObjectCacheCorruptionError) as excinfo:
        cache.add(0x1000, second)

    assert isinstance(excinfo.value, AssertionError)
    assert isinstance(excinfo.value, ArenaBridgeError) is False
    assert cache.get(0x1000) is first


def test_delete_of_missing_key_is_fatal(cache: ObjectCache) -> None:
    with pytest.raises(ObjectCacheCorruptionError):
        cache.delete(0x3000)


def test_entries_are_backed_by_arena_slots() -> None:
    """Each entry consumes one slot of the backing arena."""
    backing = NativeArena()
    cache = ObjectCache(backing)
    targets: list[_Target] = [_Target(), _Target()]
    cache.add(0x1000, targets[0])
    cache.add(0x2000, targets[1])

    assert backing.bytes_allocated == 32
    assert sorted(cache.keys()) == [0x1000, 0x2000]


def test_backing_exhaustion_leaves_table_unchanged() -> None:
    cache = ObjectCache(NativeArena(max_bytes=16))
    kept = _Target()
    rejected = _Target()
    cache.add(0x1000, kept)

    with pytest.raises(ArenaExhaustedError):
        cache.add(0x2000, rejected)

    assert 0x2000 not in cache
    assert len(cache) == 1


def test_drain_returns_live_wrappers_and_closes(cache: ObjectCache) -> None:
    alive = _Target()
    dead = _Target()
    cache.add(0x1000, alive)
    cache.add(0x2000, dead)
    del dead
    gc.collect()

    drained = cache.drain()

    assert drained == [(0x1000, alive)]
    assert cache.is_closed is True
    assert len(cache) == 0
    with pytest.raises(ModuleTornDownError):
        cache.get(0x1000)
    with pytest.raises(ModuleTornDownError):
        cache.add(0x1000, alive)


def test_deleted_slots_are_reused_under_cap() -> None:
    """Backing memory tracks live entries, not the number of adds ever made."""
    backing = NativeArena(max_bytes=32)
    cache = ObjectCache(backing)

    for index in range(20):
        target = _Target()
        cache.add(0x1000 + index * 0x10, target)
        cache.delete(0x1000 + index * 0x10)

    assert len(cache) == 0
    assert backing.bytes_allocated == 16


def test_stale_entry_is_replaced_and_late_delete_is_ignored(cache: ObjectCache) -> None:
    """A dead wrapper's pending delete never removes its successor."""
    first = _Target()
    stale_entry = cache.add(0x1000, first)
    del first
    gc.collect()

    second = _Target()
    fresh_entry = cache.add(0x1000, second)
    cache.delete(0x1000, stale_entry)

    assert cache.get(0x1000) is second
    cache.delete(0x1000, fresh_entry)
    assert 0x1000 not in cache


def test_delete_with_foreign_entry_is_fatal(cache: ObjectCache) -> None:
    first = _Target()
    second = _Target()
    first_entry = cache.add(0x1000, first)
    cache.add(0x2000, second)

    with pytest.raises(ObjectCacheCorruptionError):
        cache.delete(0x2000, first_entry)
    assert cache.get(0x2000) is second
