"""
Exception types raised by the replay engine.

Data problems (bad timestamps, unreadable files) are logged and skipped by
the components that ingest data; argument errors are raised to the caller.
"""


class ReplayError(Exception):
    """Base class for replay engine errors."""


class MalformedEventError(ReplayError, ValueError):
    """A raw event record could not be normalized (bad or missing timestamp)."""


class InvalidArgumentError(ReplayError, ValueError):
    """A transport control was called with an out-of-range argument."""


class TripNotFoundError(ReplayError, LookupError):
    """The requested trip id is not present in the index."""
