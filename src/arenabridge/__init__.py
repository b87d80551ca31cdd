"""Public package API for arenabridge."""

from arenabridge.api import init_module
from arenabridge.api import teardown_module
from arenabridge.arena import Arena
from arenabridge.errors import ArenaBridgeError
from arenabridge.errors import ArenaExhaustedError
from arenabridge.errors import ArenaFreedError
from arenabridge.errors import ForbiddenConstructionError
from arenabridge.errors import ModuleTornDownError
from arenabridge.errors import ObjectCacheCorruptionError
from arenabridge.module_state import ModuleState
from arenabridge.native import NativeArena
from arenabridge.native import NativeRecord
from arenabridge.object_cache import ObjectCache
from arenabridge.record import RecordWrapper
from arenabridge.strings import get_str_data
from arenabridge.wrapper import NativeWrapper
from arenabridge.wrapper import get_or_create

__all__: list[str] = [
    "init_module",
    "teardown_module",
    "get_or_create",
    "get_str_data",
    "Arena",
    "ModuleState",
    "NativeArena",
    "NativeRecord",
    "NativeWrapper",
    "ObjectCache",
    "RecordWrapper",
    "ArenaBridgeError",
    "ArenaExhaustedError",
    "ArenaFreedError",
    "ForbiddenConstructionError",
    "ModuleTornDownError",
    "ObjectCacheCorruptionError",
]
