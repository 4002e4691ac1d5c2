"""
Error types raised by the memory store.

Every failure the store can produce derives from MemoryManagerError so the
dispatcher can turn it into an error result with a single except clause.
"""


class MemoryManagerError(Exception):
    """Base class for all memory store failures."""


class ArgumentError(MemoryManagerError):
    """A required argument is missing, empty or of the wrong type."""


class UnknownActionError(MemoryManagerError):
    """The requested action or tool is not recognized."""

    def __init__(self, action, kind: str = "action"):
        self.action = action
        super().__init__(f"Unknown {kind}: {action}")


class FileOperationError(MemoryManagerError):
    """A filesystem operation failed for a specific path."""

    def __init__(self, operation: str, path: str, error: object):
        self.operation = operation
        self.path = path
        self.cause = error
        detail = error.strerror if isinstance(error, OSError) and error.strerror else error
        super().__init__(f"Failed to {operation} at {path}: {detail}")


class ManifestSyncError(FileOperationError):
    """The directory manifest could not be regenerated after a mutation."""


class RecordParseError(MemoryManagerError):
    """A structured memory file does not hold a well-formed record."""

    def __init__(self, path: str, reason: str):
        self.path = path
        super().__init__(f"Malformed memory record at {path}: {reason}")
