"""Error taxonomy shared by the scheduler, the store and the API layer."""


class FlashdrillError(Exception):
    """Base class for all domain errors."""


class InvalidArgument(FlashdrillError, ValueError):
    """Malformed grade, limit, filter or invariant-violating state.

    Always a caller or data bug; never retried.
    """


class NotFound(FlashdrillError, LookupError):
    """The requested record does not exist (or is not visible to the learner)."""


class Conflict(FlashdrillError):
    """A concurrent write won the race; retry the whole read-compute-write cycle."""
