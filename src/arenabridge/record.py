"""Host wrapper exposing one native record."""

from arenabridge.arena import Arena
from arenabridge.module_state import ModuleState
from arenabridge.native import NativeArena
from arenabridge.native import NativeRecord
from arenabridge.wrapper import NativeWrapper
from arenabridge.wrapper import get_or_create


class RecordWrapper(NativeWrapper):
    """Read-only view of a record, pinning the arena that owns its memory."""

    _record: NativeRecord
    _owner: Arena

    @classmethod
    def get(cls, state: ModuleState, record: NativeRecord, owner: Arena) -> "RecordWrapper":
        """Return the single wrapper for ``record``.

        :param state: Module state holding the identity cache.
        :param record: Native record to expose.
        :param owner: Arena wrapper whose lifetime covers ``record``.
        :returns: Wrapper for ``record``.
        :raises ValueError: If ``owner`` does not keep ``record`` alive.
        """
        owner_native: NativeArena = owner.native
        is_owned: bool = record.arena is owner_native or record.arena.is_fused_with(owner_native)
        if is_owned is False:
            raise ValueError(f"{record!r} is not allocated in {owner!r} or an arena fused with it")
        return get_or_create(state, cls, record.address, record, owner)

    def _initialize(self, state: ModuleState, key: int, record: NativeRecord, owner: Arena) -> None:
        super()._initialize(state, key)
        self._record = record
        self._owner = owner

    @property
    def arena(self) -> Arena:
        """Return the arena wrapper kept alive by this record."""
        self._require_valid()
        return self._owner

    @property
    def size(self) -> int:
        self._require_valid()
        return self._record.size

    @property
    def data(self) -> bytes:
        """Return a copy of the record bytes."""
        self._require_valid()
        return self._record.read()

    def __len__(self) -> int:
        return self.size

    def __bytes__(self) -> bytes:
        return self.data

    def __repr__(self) -> str:
        # Stays readable after teardown so invalidated wrappers can still be logged.
        state: str = "" if self._invalidated is False else " invalidated"
        return f"<RecordWrapper {self._key:#x} size={self._record.size}{state}>"
