class RelayError(Exception):
    """Base class for failures of relay collaborators."""


class CompletionError(RelayError):
    """The completion provider failed or returned no usable text."""


class TransportError(RelayError):
    """Sending a message to the channel provider failed."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class CacheError(RelayError):
    """The dedup key-value store could not be read or written."""
