"""Exception hierarchy for elearning-parser.

Every error raised by the file access layer derives from ``ModuleError``.
The access errors also derive from the matching built-in exception so
callers can catch ``OSError``, ``FileNotFoundError`` or ``ValueError``
without importing this module.
"""

from typing import Any, Optional


class ModuleError(Exception):
    """Base error for module parsing and access.

    Attributes:
        metadata: Extra context about the failure (path, operation, backend)
    """

    def __init__(self, message: str, metadata: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.metadata: dict[str, Any] = dict(metadata or {})


class FileAccessError(ModuleError, OSError):
    """A file could not be listed or read from its storage backend."""


class PackageFileNotFoundError(FileAccessError, FileNotFoundError):
    """A requested file does not exist in the package."""


class ObjectNotFoundError(PackageFileNotFoundError):
    """An object key does not exist in the object store bucket."""


class InvalidConfigurationError(FileAccessError, ValueError):
    """Illegal argument or unusable storage target.

    Raised for None paths, roots that are not directories and
    unreadable archives. Never cached.
    """
