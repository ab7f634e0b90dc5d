"""Exception hierarchy for the progression engine."""


class ProgressionError(Exception):
    """Base class for all engine errors."""

    retryable: bool = False


class ConfigurationError(ProgressionError):
    """Static configuration violates an engine invariant."""


class LevelTableError(ConfigurationError):
    """Level table is empty, unordered or not contiguous."""


class ConcurrentUpdateError(ProgressionError):
    """A user's progress record changed underneath a read-modify-write.

    Surfaced to the UI layer as a retryable failure.
    """

    retryable = True

    def __init__(self, user_id: str, attempts: int):
        super().__init__(
            f"Progress for user {user_id!r} was modified concurrently "
            f"({attempts} attempt(s))"
        )
        self.user_id = user_id
        self.attempts = attempts


class StreakActionError(ProgressionError):
    """A paid streak freeze or repair is not allowed right now."""
