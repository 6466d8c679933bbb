"""Error types raised by Inkwell's remote and provider layers."""


class InkwellError(RuntimeError):
    """Base class for Inkwell failures carrying a human-readable message."""


class RemoteError(InkwellError):
    """A call to the remote backend failed."""

    def __init__(self, message: str, status_code: int | None = None, code: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class ProviderError(InkwellError):
    """An external provider (review, speech, poem lookup, rhymes) failed."""


class StorageError(InkwellError):
    """On-device persistence could not be read or written."""
