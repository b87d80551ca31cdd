"""Module lifecycle entrypoints for arenabridge."""

import logging

from arenabridge.arena import Arena
from arenabridge.module_state import ModuleState
from arenabridge.native import _DEFAULT_BLOCK_SIZE
from arenabridge.record import RecordWrapper

_LOGGER: logging.Logger = logging.getLogger(__name__)


def init_module(block_size: int = _DEFAULT_BLOCK_SIZE, cache_max_bytes: int | None = None) -> ModuleState:
    """Create a module state with an empty cache and the built-in wrapper types.

    :param block_size: Block size of the cache backing arena.
    :param cache_max_bytes: Optional byte cap on the cache backing arena.
    :returns: New module state to pass to every cache and arena operation.
    """
    state: ModuleState = ModuleState(block_size=block_size, cache_max_bytes=cache_max_bytes)
    state.add_class(Arena)
    state.add_class(RecordWrapper)
    _LOGGER.debug("module state initialized with types %s", sorted(state.types))
    return state


def teardown_module(state: ModuleState) -> None:
    """Tear down a module state created by :func:`init_module`.

    :param state: Module state to tear down.
    """
    state.teardown()
