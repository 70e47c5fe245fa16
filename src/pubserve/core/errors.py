"""Error types raised by the resolution and listing engine."""

from pathlib import Path


class ResourceAccessError(OSError):
    """Filesystem access failed for a reason other than absence.

    Raised for permission denials, I/O faults and similar conditions while
    resolving a path or enumerating a directory. Never retried.
    """

    def __init__(self, path: Path, cause: OSError) -> None:
        super().__init__(cause.errno, cause.strerror or str(cause), str(path))
        self.path = path
        self.cause = cause
