"""Per-module context shared by every cache and arena operation."""

import logging

from arenabridge.errors import ModuleTornDownError
from arenabridge.native import NativeArena
from arenabridge.native import _DEFAULT_BLOCK_SIZE
from arenabridge.object_cache import ObjectCache

_LOGGER: logging.Logger = logging.getLogger(__name__)


class ModuleState:
    """Hold the identity cache, its backing arena, and registered wrapper types.

    One state is created at startup and passed explicitly to every operation
    that needs the cache. :meth:`teardown` ends its life.
    """

    obj_cache_arena: NativeArena
    object_cache: ObjectCache
    types: dict[str, type]
    _is_torn_down: bool

    def __init__(self, block_size: int = _DEFAULT_BLOCK_SIZE, cache_max_bytes: int | None = None) -> None:
        """Initialize a module state with an empty cache.

        :param block_size: Block size of the cache backing arena.
        :param cache_max_bytes: Optional byte cap on the cache backing arena.
        """
        self.obj_cache_arena = NativeArena(block_size=block_size, max_bytes=cache_max_bytes)
        self.object_cache = ObjectCache(self.obj_cache_arena)
        self.types = {}
        self._is_torn_down = False

    @property
    def is_torn_down(self) -> bool:
        """Report whether :meth:`teardown` already ran."""
        return self._is_torn_down

    def require_live(self) -> None:
        """Reject use of a torn-down state.

        :raises ModuleTornDownError: If the state was torn down.
        """
        if self._is_torn_down is True:
            raise ModuleTornDownError("Module state was torn down")

    def add_class(self, cls: type) -> type:
        """Register a wrapper type under its short class name.

        :param cls: Wrapper type to register.
        :returns: ``cls`` unchanged.
        :raises ValueError: If another type is registered under the same name.
        """
        self.require_live()
        name: str = cls.__qualname__.rsplit(".", 1)[-1]
        existing: type | None = self.types.get(name)
        if existing is not None and existing is not cls:
            raise ValueError(f"A wrapper type named {name!r} is already registered")
        self.types[name] = cls
        return cls

    def teardown(self) -> None:
        """Invalidate outstanding wrappers and free the cache backing arena.

        Wrappers still alive lose their cache finalizer and refuse further
        record access. Calling this twice is a no-op.
        """
        if self._is_torn_down is True:
            return
        self._is_torn_down = True

        live_wrappers: list[tuple[int, object]] = self.object_cache.drain()
        for _, wrapper in live_wrappers:
            wrapper._invalidate()
        self.obj_cache_arena.free()
        self.types.clear()
        _LOGGER.debug("module state torn down, invalidated %d live wrappers", len(live_wrappers))
