"""Identity cache mapping native record addresses to their host wrappers."""

import ctypes
import logging
import struct
import weakref

from arenabridge.errors import ModuleTornDownError
from arenabridge.errors import ObjectCacheCorruptionError
from arenabridge.native import NativeArena
from arenabridge.native import NativeRecord

_LOGGER: logging.Logger = logging.getLogger(__name__)
# Each entry mirrors ``(key, id(wrapper))`` into a backing arena slot; slots of
# deleted entries are reused.
_CACHE_SLOT_FORMAT: str = "<QQ"
_CACHE_SLOT_SIZE: int = struct.calcsize(_CACHE_SLOT_FORMAT)


class CacheEntry:
    """Non-owning table entry; the wrapper must remove it before it is reclaimed."""

    wrapper_ref: "weakref.ReferenceType[object]"
    slot: NativeRecord
    retired: bool

    def __init__(self, wrapper_ref: "weakref.ReferenceType[object]", slot: NativeRecord) -> None:
        self.wrapper_ref = wrapper_ref
        self.slot = slot
        self.retired = False


class ObjectCache:
    """Keyed table from native address to a weakly held host wrapper.

    The cache never keeps a wrapper alive. Every wrapper registered through
    :meth:`add` must call :meth:`delete` for its key from its own finalizer.
    The table is meant for use from a single thread and takes no lock.
    """

    _entries: dict[int, CacheEntry]
    _backing_arena: NativeArena
    _free_slots: list[NativeRecord]
    _is_closed: bool

    def __init__(self, backing_arena: NativeArena) -> None:
        """Initialize an empty cache.

        :param backing_arena: Arena that entry slots are allocated from.
        """
        self._entries = {}
        self._backing_arena = backing_arena
        self._free_slots = []
        self._is_closed = False

    @property
    def is_closed(self) -> bool:
        """Report whether the cache was drained by module teardown."""
        return self._is_closed

    def _require_open(self) -> None:
        """Reject use after teardown.

        :raises ModuleTornDownError: If the cache was drained.
        """
        if self._is_closed is True:
            raise ModuleTornDownError("Object cache was torn down")

    def add(self, key: int, wrapper: object) -> CacheEntry:
        """Register ``wrapper`` for ``key`` without taking a strong reference.

        An entry whose wrapper is already dead but whose finalizer has not run
        yet is replaced; that pending finalizer then leaves the new entry alone.

        :param key: Native record address.
        :param wrapper: Host wrapper exposing the record.
        :returns: The new entry, to be handed back to :meth:`delete`.
        :raises ObjectCacheCorruptionError: If ``key`` already has a live entry.
        :raises ArenaExhaustedError: If the backing arena has no room for the entry.
        """
        self._require_open()
        existing: CacheEntry | None = self._entries.get(key)
        slot: NativeRecord
        if existing is not None:
            if existing.wrapper_ref() is not None:
                raise ObjectCacheCorruptionError(
                    f"Duplicate object cache entry for address {key:#x}: {existing.wrapper_ref()!r}"
                )
            existing.retired = True
            slot = existing.slot
            _LOGGER.debug("object cache replacing stale entry for %#x", key)
        elif len(self._free_slots) > 0:
            slot = self._free_slots.pop()
        else:
            slot = self._backing_arena.allocate(_CACHE_SLOT_SIZE)

        ctypes.memmove(slot.address, struct.pack(_CACHE_SLOT_FORMAT, key, id(wrapper)), _CACHE_SLOT_SIZE)
        entry: CacheEntry = CacheEntry(weakref.ref(wrapper), slot)
        self._entries[key] = entry
        _LOGGER.debug("object cache add %#x -> %s", key, type(wrapper).__name__)
        return entry

    def delete(self, key: int, expected: CacheEntry | None = None) -> None:
        """Remove the entry for ``key``.

        :param key: Native record address.
        :param expected: Entry returned by :meth:`add`; when it was already
            replaced, nothing is removed.
        :raises ObjectCacheCorruptionError: If ``key`` has no matching entry.
        """
        if expected is not None and expected.retired is True:
            return
        entry: CacheEntry | None = self._entries.get(key)
        if entry is None:
            raise ObjectCacheCorruptionError(f"Object cache has no entry for address {key:#x}")
        if expected is not None and entry is not expected:
            raise ObjectCacheCorruptionError(f"Object cache entry for address {key:#x} belongs to another wrapper")
        mirrored_key, _ = struct.unpack(_CACHE_SLOT_FORMAT, entry.slot.read())
        if mirrored_key != key:
            raise ObjectCacheCorruptionError(f"Cache slot for address {key:#x} holds {mirrored_key:#x}")

        del self._entries[key]
        entry.retired = True
        self._free_slots.append(entry.slot)
        _LOGGER.debug("object cache delete %#x", key)

    def get(self, key: int) -> object | None:
        """Look up the wrapper for ``key``.

        The returned object is a new strong reference owned by the caller.

        :param key: Native record address.
        :returns: The cached wrapper or ``None`` on a miss.
        """
        self._require_open()
        entry: CacheEntry | None = self._entries.get(key)
        if entry is None:
            return None
        # Dead but not yet deleted: the wrapper's finalizer is still pending.
        return entry.wrapper_ref()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def keys(self) -> list[int]:
        """Return the registered addresses.

        :returns: Snapshot of cache keys.
        """
        return list(self._entries)

    def drain(self) -> list[tuple[int, object]]:
        """Close the cache and hand back every wrapper that is still alive.

        :returns: ``(key, wrapper)`` pairs for live wrappers.
        """
        live: list[tuple[int, object]] = []
        for key, entry in self._entries.items():
            entry.retired = True
            wrapper: object | None = entry.wrapper_ref()
            if wrapper is not None:
                live.append((key, wrapper))
        self._entries.clear()
        self._free_slots.clear()
        self._is_closed = True
        return live
