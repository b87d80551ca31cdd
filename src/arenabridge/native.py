"""Native arena allocator backing wrapped records.

Memory comes from raw ``ctypes`` blocks, so record addresses are real and stay
stable until the owning lifetime group is released in one bulk operation.
"""

import ctypes
import logging

from arenabridge.errors import ArenaExhaustedError
from arenabridge.errors import ArenaFreedError

_LOGGER: logging.Logger = logging.getLogger(__name__)
_DEFAULT_BLOCK_SIZE: int = 4096
_DEFAULT_ALIGNMENT: int = 8
# Records never start inside the header, so no record shares its arena's address.
_ARENA_HEADER_SIZE: int = 16


def _validate_block_size(block_size: int) -> int:
    """Validate a native block size.

    :param block_size: Candidate block size in bytes.
    :returns: The validated block size.
    :raises ValueError: If the block size is not a positive integer.
    """
    if isinstance(block_size, int) is False or block_size <= 0:
        raise ValueError(f"block_size must be a positive integer, got {block_size!r}")
    return block_size


def _validate_max_bytes(max_bytes: int | None) -> int | None:
    """Validate an optional arena byte limit.

    :param max_bytes: Candidate limit or ``None`` for unlimited.
    :returns: The validated limit.
    :raises ValueError: If the limit is negative or not an integer.
    """
    if max_bytes is None:
        return None
    if isinstance(max_bytes, int) is False or max_bytes < 0:
        raise ValueError(f"max_bytes must be a non-negative integer or None, got {max_bytes!r}")
    return max_bytes


def _validate_alignment(alignment: int) -> int:
    """Validate an allocation alignment.

    :param alignment: Candidate alignment.
    :returns: The validated alignment.
    :raises ValueError: If alignment is not a positive power of two.
    """
    if isinstance(alignment, int) is False or alignment <= 0 or alignment & (alignment - 1) != 0:
        raise ValueError(f"alignment must be a positive power of two, got {alignment!r}")
    return alignment


class _LifetimeGroup:
    """Set of fused arenas whose memory is released together."""

    members: list["NativeArena"]
    live_members: int
    released: bool

    def __init__(self, arena: "NativeArena") -> None:
        self.members = [arena]
        self.live_members = 1
        self.released = False

    def absorb(self, other: "_LifetimeGroup") -> None:
        """Move every member of ``other`` into this group.

        :param other: Group to merge and retire.
        """
        for member in other.members:
            member._group = self
            self.members.append(member)
        self.live_members += other.live_members
        other.members = []
        other.live_members = 0

    def drop_member(self) -> bool:
        """Drop one live member and release memory when none remain.

        :returns: ``True`` when this call released the group's memory.
        """
        self.live_members -= 1
        if self.live_members > 0:
            return False

        for member in self.members:
            member._blocks.clear()
        self.released = True
        return True


class NativeRecord:
    """Address-stable record allocated inside a native arena."""

    _address: int
    _size: int
    _arena: "NativeArena"

    def __init__(self, address: int, size: int, arena: "NativeArena") -> None:
        """Initialize a record handle.

        :param address: Absolute memory address of the record.
        :param size: Record size in bytes.
        :param arena: Arena the record was allocated from.
        """
        self._address = address
        self._size = size
        self._arena = arena

    @property
    def address(self) -> int:
        """Return the record address, its identity for the arena's lifetime."""
        return self._address

    @property
    def size(self) -> int:
        """Return the record size in bytes."""
        return self._size

    @property
    def arena(self) -> "NativeArena":
        """Return the arena that owns this record."""
        return self._arena

    def read(self) -> bytes:
        """Copy the record contents out of native memory.

        :returns: Record bytes.
        :raises ArenaFreedError: If the owning arena memory was released.
        """
        if self._arena.is_freed is True:
            raise ArenaFreedError(f"Record at {self._address:#x} belongs to a freed arena")
        return ctypes.string_at(self._address, self._size)

    def __repr__(self) -> str:
        return f"<NativeRecord {self._address:#x} size={self._size}>"


class NativeArena:
    """Bump allocator over raw memory blocks with fused, bulk-freed lifetimes."""

    _blocks: list[ctypes.Array]
    _block_size: int
    _max_bytes: int | None
    _bytes_allocated: int
    _offset: int
    _address: int
    _group: _LifetimeGroup
    _is_released: bool

    def __init__(self, block_size: int = _DEFAULT_BLOCK_SIZE, max_bytes: int | None = None) -> None:
        """Initialize an arena with one empty block.

        :param block_size: Size of each regular block in bytes.
        :param max_bytes: Optional cap on the total bytes handed out.
        """
        self._block_size = _validate_block_size(block_size)
        self._max_bytes = _validate_max_bytes(max_bytes)
        self._bytes_allocated = 0
        first_block: ctypes.Array = ctypes.create_string_buffer(self._block_size)
        self._blocks = [first_block]
        self._offset = _ARENA_HEADER_SIZE
        self._address = ctypes.addressof(first_block)
        self._group = _LifetimeGroup(self)
        self._is_released = False

    @property
    def address(self) -> int:
        """Return the address of the first block, the arena's stable identity."""
        return self._address

    @property
    def is_freed(self) -> bool:
        """Report whether this arena's memory has been released."""
        return self._group.released

    @property
    def is_released(self) -> bool:
        """Report whether this arena already gave up its hold on its group."""
        return self._is_released

    @property
    def bytes_allocated(self) -> int:
        """Return the number of record bytes handed out so far."""
        return self._bytes_allocated

    def is_fused_with(self, other: "NativeArena") -> bool:
        """Report whether ``other`` shares this arena's lifetime group.

        :param other: Arena to compare against.
        :returns: ``True`` when both arenas are freed together.
        """
        return self._group is other._group

    def allocate(self, size: int, alignment: int = _DEFAULT_ALIGNMENT) -> NativeRecord:
        """Allocate one record.

        :param size: Record size in bytes; must be at least one.
        :param alignment: Power-of-two alignment of the record address.
        :returns: The allocated record.
        :raises ValueError: If ``size`` or ``alignment`` is invalid.
        :raises ArenaExhaustedError: If the arena byte limit would be exceeded.
        :raises ArenaFreedError: If the arena was already freed.
        """
        if isinstance(size, int) is False or size < 1:
            raise ValueError(f"size must be a positive integer, got {size!r}")
        _validate_alignment(alignment)
        if self._is_released is True or self.is_freed is True:
            raise ArenaFreedError("Cannot allocate from a freed arena")
        if self._max_bytes is not None and self._bytes_allocated + size > self._max_bytes:
            raise ArenaExhaustedError(size, self._max_bytes)

        block: ctypes.Array = self._blocks[-1]
        base: int = ctypes.addressof(block)
        start: int = (base + self._offset + alignment - 1) & ~(alignment - 1)
        if start + size > base + len(block):
            block_size: int = max(self._block_size, size + alignment)
            block = ctypes.create_string_buffer(block_size)
            self._blocks.append(block)
            base = ctypes.addressof(block)
            start = (base + alignment - 1) & ~(alignment - 1)

        self._offset = start + size - base
        self._bytes_allocated += size
        return NativeRecord(start, size, self)

    def allocate_bytes(self, data: bytes, alignment: int = _DEFAULT_ALIGNMENT) -> NativeRecord:
        """Allocate one record and fill it with ``data``.

        :param data: Initial record contents; must not be empty.
        :param alignment: Power-of-two alignment of the record address.
        :returns: The populated record.
        """
        record: NativeRecord = self.allocate(len(data), alignment)
        ctypes.memmove(record.address, data, len(data))
        return record

    def fuse(self, other: "NativeArena") -> None:
        """Merge the lifetime groups of this arena and ``other``.

        After fusion, no memory of either arena is released until every
        member of the combined group has been freed.

        :param other: Arena to fuse with.
        :raises ArenaFreedError: If either arena was already freed.
        """
        if self._is_released is True or other._is_released is True:
            raise ArenaFreedError("Cannot fuse a freed arena")
        if self._group is other._group:
            return

        target: _LifetimeGroup = self._group
        source: _LifetimeGroup = other._group
        if len(source.members) > len(target.members):
            target, source = source, target
        target.absorb(source)

    def free(self) -> None:
        """Release this arena's hold on its lifetime group.

        :raises ArenaFreedError: If this arena was already freed.
        """
        if self._is_released is True:
            raise ArenaFreedError(f"Arena {self._address:#x} was already freed")
        self._is_released = True
        released: bool = self._group.drop_member()
        if released is True:
            _LOGGER.debug("released native arena group containing %#x", self._address)

    def __repr__(self) -> str:
        state: str = "freed" if self.is_freed is True else "live"
        return f"<NativeArena {self._address:#x} {state} bytes={self._bytes_allocated}>"
