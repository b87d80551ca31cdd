"""Get-or-create protocol shared by every cached wrapper type."""

import logging
import weakref
from typing import TypeVar

from arenabridge.errors import ForbiddenConstructionError
from arenabridge.errors import ModuleTornDownError
from arenabridge.errors import ObjectCacheCorruptionError
from arenabridge.module_state import ModuleState
from arenabridge.object_cache import CacheEntry

_LOGGER: logging.Logger = logging.getLogger(__name__)
WrapperT = TypeVar("WrapperT", bound="NativeWrapper")


def _finalize_cache_entry(state_ref: "weakref.ReferenceType[ModuleState]", key: int, entry: CacheEntry) -> None:
    """Remove a collected wrapper's cache entry.

    :param state_ref: Weak reference to the owning module state.
    :param key: Cache key of the collected wrapper.
    :param entry: Entry registered for the collected wrapper.
    """
    state: ModuleState | None = state_ref()
    if state is None or state.is_torn_down is True:
        return
    state.object_cache.delete(key, entry)


class NativeWrapper:
    """Base class for host objects that expose one native address.

    Instances are produced only by :func:`get_or_create`, which guarantees that
    a native address has at most one live wrapper per module state.
    """

    _state: ModuleState
    _key: int
    _cache_finalizer: weakref.finalize | None
    _invalidated: bool

    def __init__(self, *args: object, **kwargs: object) -> None:
        """Prevent direct construction.

        :raises ForbiddenConstructionError: Always.
        """
        _ = args, kwargs
        raise ForbiddenConstructionError(f"Objects of type {type(self).__name__} may not be created directly.")

    def _initialize(self, state: ModuleState, key: int) -> None:
        """Populate a freshly allocated wrapper.

        Subclasses extend this with their own fields and call it first.

        :param state: Owning module state.
        :param key: Native address this wrapper exposes.
        """
        self._state = state
        self._key = key
        self._cache_finalizer = None
        self._invalidated = False

    def _bind(self, entry: CacheEntry) -> None:
        """Attach the finalizer that removes this wrapper's cache entry.

        :param entry: Entry the cache created for this wrapper.
        """
        state_ref: "weakref.ReferenceType[ModuleState]" = weakref.ref(self._state)
        self._cache_finalizer = weakref.finalize(self, _finalize_cache_entry, state_ref, self._key, entry)
        self._on_registered()

    def _on_registered(self) -> None:
        """Hook run once the wrapper is registered in the cache."""

    def _invalidate(self) -> None:
        """Detach from a torn-down module state."""
        if self._cache_finalizer is not None:
            self._cache_finalizer.detach()
            self._cache_finalizer = None
        self._invalidated = True

    def _require_valid(self) -> None:
        """Reject use after module teardown.

        :raises ModuleTornDownError: If the owning module state was torn down.
        """
        if self._invalidated is True:
            raise ModuleTornDownError(f"{type(self).__name__} outlived its module state")

    @property
    def address(self) -> int:
        """Return the native address this wrapper exposes."""
        return self._key

    @property
    def is_valid(self) -> bool:
        """Report whether the wrapper is still usable."""
        return self._invalidated is False


def get_or_create(state: ModuleState, wrapper_type: type[WrapperT], key: int, *init_args: object) -> WrapperT:
    """Return the wrapper for ``key``, creating and registering it on a miss.

    :param state: Module state holding the identity cache.
    :param wrapper_type: Wrapper class to construct on a miss.
    :param key: Native address identifying the wrapped object.
    :param init_args: Extra arguments for ``wrapper_type._initialize``.
    :returns: The single live wrapper for ``key``.
    :raises ModuleTornDownError: If ``state`` was torn down.
    :raises ObjectCacheCorruptionError: If ``key`` is cached under another wrapper type.
    :raises ArenaExhaustedError: If the cache cannot store a new entry.
    """
    state.require_live()
    cached: object | None = state.object_cache.get(key)
    if cached is not None:
        return _check_cached_type(cached, wrapper_type, key)

    wrapper: WrapperT = object.__new__(wrapper_type)
    wrapper._initialize(state, key, *init_args)

    # Initialization may run collector callbacks that registered this key.
    reentrant: object | None = state.object_cache.get(key)
    if reentrant is not None:
        _LOGGER.debug("discarding duplicate %s for %#x built during re-entry", wrapper_type.__name__, key)
        return _check_cached_type(reentrant, wrapper_type, key)

    entry: CacheEntry = state.object_cache.add(key, wrapper)
    wrapper._bind(entry)
    return wrapper


def _check_cached_type(cached: object, wrapper_type: type[WrapperT], key: int) -> WrapperT:
    """Ensure a cache hit has the requested wrapper type.

    :param cached: Wrapper found in the cache.
    :param wrapper_type: Requested wrapper type.
    :param key: Cache key.
    :returns: ``cached``.
    :raises ObjectCacheCorruptionError: If the types differ.
    """
    if type(cached) is not wrapper_type:
        raise ObjectCacheCorruptionError(
            f"Address {key:#x} is cached as {type(cached).__name__}, not {wrapper_type.__name__}"
        )
    return cached
