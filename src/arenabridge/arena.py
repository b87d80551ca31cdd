"""Host wrapper that owns one native arena."""

import logging
import weakref

from arenabridge.errors import ArenaFreedError
from arenabridge.module_state import ModuleState
from arenabridge.native import NativeArena
from arenabridge.native import NativeRecord
from arenabridge.native import _DEFAULT_ALIGNMENT
from arenabridge.native import _DEFAULT_BLOCK_SIZE
from arenabridge.wrapper import NativeWrapper
from arenabridge.wrapper import get_or_create

_LOGGER: logging.Logger = logging.getLogger(__name__)


def _release_native_arena(native: NativeArena) -> None:
    """Free a native arena once its wrapper is collected.

    :param native: Arena owned by the collected wrapper.
    """
    _LOGGER.debug("arena wrapper collected, freeing %r", native)
    native.free()


class Arena(NativeWrapper):
    """Refcounted host handle for one native arena.

    Collecting the wrapper is the only way the arena is freed. Objects that
    need arena memory alive keep a reference to this wrapper.
    """

    _native: NativeArena
    _release_finalizer: weakref.finalize | None

    @classmethod
    def new(
        cls,
        state: ModuleState,
        block_size: int = _DEFAULT_BLOCK_SIZE,
        max_bytes: int | None = None,
    ) -> "Arena":
        """Allocate a fresh native arena and wrap it.

        :param state: Module state holding the identity cache.
        :param block_size: Block size of the new arena.
        :param max_bytes: Optional byte cap of the new arena.
        :returns: Wrapper owning the new arena.
        """
        native: NativeArena = NativeArena(block_size=block_size, max_bytes=max_bytes)
        try:
            return cls.adopt(state, native)
        except Exception:
            native.free()
            raise

    @classmethod
    def adopt(cls, state: ModuleState, native: NativeArena) -> "Arena":
        """Wrap an existing native arena, taking ownership of it.

        Adopting the same arena again returns the existing wrapper.

        :param state: Module state holding the identity cache.
        :param native: Native arena to wrap.
        :returns: The single wrapper for ``native``.
        :raises ArenaFreedError: If ``native`` was already freed.
        """
        if native.is_freed is True or native.is_released is True:
            raise ArenaFreedError(f"Cannot adopt freed arena {native.address:#x}")
        return get_or_create(state, cls, native.address, native)

    def _initialize(self, state: ModuleState, key: int, native: NativeArena) -> None:
        super()._initialize(state, key)
        self._native = native
        self._release_finalizer = None

    def _on_registered(self) -> None:
        self._release_finalizer = weakref.finalize(self, _release_native_arena, self._native)

    @property
    def native(self) -> NativeArena:
        """Return the owned native arena."""
        self._require_valid()
        return self._native

    def allocate(self, size: int, alignment: int = _DEFAULT_ALIGNMENT) -> NativeRecord:
        """Allocate a record from the owned arena.

        :param size: Record size in bytes.
        :param alignment: Power-of-two alignment.
        :returns: The allocated record.
        """
        return self.native.allocate(size, alignment)

    def allocate_bytes(self, data: bytes, alignment: int = _DEFAULT_ALIGNMENT) -> NativeRecord:
        """Allocate a record holding a copy of ``data``.

        :param data: Record contents.
        :param alignment: Power-of-two alignment.
        :returns: The populated record.
        """
        return self.native.allocate_bytes(data, alignment)

    def fuse(self, other: "Arena") -> None:
        """Fuse lifetimes so neither arena is freed before both wrappers die.

        :param other: Arena wrapper to fuse with.
        """
        self.native.fuse(other.native)

    def is_fused_with(self, other: "Arena") -> bool:
        """Report whether ``other`` shares this arena's lifetime.

        :param other: Arena wrapper to compare against.
        :returns: ``True`` when the arenas are fused.
        """
        return self.native.is_fused_with(other.native)

    def __repr__(self) -> str:
        return f"<Arena {self._key:#x}>"
