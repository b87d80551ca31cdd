"""Custom error types for arenabridge."""


class ArenaBridgeError(Exception):
    """Base class for all recoverable arenabridge errors."""


class ArenaExhaustedError(ArenaBridgeError, MemoryError):
    """Raised when a native arena cannot satisfy an allocation."""

    requested: int
    limit: int

    def __init__(self, requested: int, limit: int) -> None:
        """Initialize an exhaustion error.

        :param requested: Number of bytes the failed allocation asked for.
        :param limit: Configured byte limit of the arena.
        """
        self.requested = requested
        self.limit = limit
        super().__init__(f"Arena limit of {limit} bytes exceeded by a {requested} byte allocation")


class ArenaFreedError(ArenaBridgeError):
    """Raised when memory of an already freed arena is touched."""


class ModuleTornDownError(ArenaBridgeError):
    """Raised when a torn-down module state or one of its wrappers is used."""


class ForbiddenConstructionError(ArenaBridgeError, RuntimeError):
    """Raised when a cached wrapper type is instantiated directly."""


class ObjectCacheCorruptionError(AssertionError):
    """Raised when the one-wrapper-per-record invariant is already broken.

    This deliberately does not derive from :class:`ArenaBridgeError`: it is not
    meant to be caught and recovered from.
    """
