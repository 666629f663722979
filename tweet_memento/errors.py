"""Error types raised while loading, indexing and windowing an export."""


class MementoError(Exception):
    """Base exception for Tweet Memento."""

    pass


class MalformedExportError(MementoError, ValueError):
    """An export entry's payload is not valid JSON (or not the expected shape)."""

    pass


class MissingRequiredFieldError(MementoError, ValueError):
    """A post record lacks its id, text or a parsable timestamp."""

    def __init__(self, field: str, message: str = ""):
        self.field = field
        super().__init__(message or f"Record is missing required field '{field}'")


class InvalidWindowConfigError(MementoError, ValueError):
    """Window size must be a positive integer."""

    pass


class ArchiveReadError(MementoError, IOError):
    """The export container is corrupt or lacks a required entry."""

    pass
