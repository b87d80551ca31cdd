"""Tests for the native arena allocator."""

import pytest

from arenabridge import ArenaExhaustedError
from arenabridge import ArenaFreedError
from arenabridge import NativeArena


def test_records_are_distinct_and_aligned() -> None:
    """Allocations never overlap and honor the requested alignment."""
    arena = NativeArena()
    first = arena.allocate(3)
    second = arena.allocate(5, alignment=16)

    assert second.address % 16 == 0
    assert second.address >= first.address + first.size
    assert arena.bytes_allocated == 8


def test_record_never_shares_arena_address() -> None:
    """The first record sits past the arena header."""
    arena = NativeArena()
    record = arena.allocate(1, alignment=1)

    assert record.address != arena.address


def test_large_allocation_spills_into_new_block() -> None:
    """Requests larger than a block still succeed."""
    arena = NativeArena(block_size=64)
    payload: bytes = bytes(range(200))
    record = arena.allocate_bytes(payload)

    assert record.read() == payload
    small = arena.allocate_bytes(b"tail")
    assert small.read() == b"tail"


def test_allocation_limit_raises_exhaustion() -> None:
    """Exceeding ``max_bytes`` is a recoverable memory error."""
    arena = NativeArena(max_bytes=10)
    arena.allocate(8)

    with pytest.raises(ArenaExhaustedError) as excinfo:
        arena.allocate(4)

    assert isinstance(excinfo.value, MemoryError)
    assert excinfo.value.requested == 4
    assert excinfo.value.limit == 10
    assert arena.bytes_allocated == 8


@pytest.mark.parametrize("size", [0, -1])
def test_invalid_size_is_rejected(size: int) -> None:
    arena = NativeArena()
    with pytest.raises(ValueError):
        arena.allocate(size)


def test_invalid_alignment_is_rejected() -> None:
    arena = NativeArena()
    with pytest.raises(ValueError):
        arena.allocate(4, alignment=3)


def test_invalid_configuration_is_rejected() -> None:
    with pytest.raises(ValueError):
        NativeArena(block_size=0)
    with pytest.raises(ValueError):
        NativeArena(max_bytes=-1)


def test_read_after_free_is_detected() -> None:
    """Records of a freed arena refuse to be read."""
    arena = NativeArena()
    record = arena.allocate_bytes(b"gone")
    arena.free()

    assert arena.is_freed is True
    with pytest.raises(ArenaFreedError):
        record.read()
    with pytest.raises(ArenaFreedError):
        arena.allocate(1)


def test_double_free_is_detected() -> None:
    arena = NativeArena()
    arena.free()
    with pytest.raises(ArenaFreedError):
        arena.free()


def test_fused_arenas_are_released_together() -> None:
    """Memory of a fused group survives until every member is freed."""
    left = NativeArena()
    right = NativeArena()
    third = NativeArena()
    left.fuse(right)
    right.fuse(third)
    record = left.allocate_bytes(b"kept")

    assert left.is_fused_with(third) is True
    left.free()
    right.free()
    assert left.is_freed is False
    assert record.read() == b"kept"

    third.free()
    assert left.is_freed is True
    assert right.is_freed is True
    assert third.is_freed is True


def test_fuse_is_idempotent_within_a_group() -> None:
    left = NativeArena()
    right = NativeArena()
    left.fuse(right)
    right.fuse(left)

    left.free()
    assert right.is_freed is False
    right.free()
    assert right.is_freed is True


def test_fuse_with_freed_arena_is_rejected() -> None:
    live = NativeArena()
    dead = NativeArena()
    dead.free()

    with pytest.raises(ArenaFreedError):
        live.fuse(dead)
