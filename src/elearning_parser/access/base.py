"""File access contract shared by every storage backend.

Parsers and module type detectors read package files only through
``FileAccess``. Concrete backends implement the ``_internal`` hooks; the
public methods validate arguments and provide default batch, prefetch and
size behaviour that backends may override.
"""

from abc import ABC, abstractmethod
from typing import BinaryIO, Iterable, Optional

from elearning_parser.exceptions import InvalidConfigurationError


# Returned by get_total_size() when a backend cannot compute it
SIZE_UNSUPPORTED = -1


def normalize_root(root_path: Optional[str]) -> str:
    """Normalize a root path: None becomes "", one trailing slash is removed.

    Args:
        root_path: Raw root path

    Returns:
        Normalized root path
    """
    if root_path is None:
        return ""
    if root_path.endswith("/"):
        return root_path[:-1]
    return root_path


def detect_single_top_level(names: Iterable[str]) -> str:
    """Detect an implicit root shared by every entry name.

    The root is the first path segment when all entries share exactly one
    top-level directory. A file directly at the top level, or two distinct
    top-level directories, means there is no implicit root.

    Args:
        names: Entry names using "/" separators

    Returns:
        The shared top-level directory, or "" if there is none
    """
    top_level_dirs: set[str] = set()
    for name in names:
        slash_index = name.find("/")
        if slash_index <= 0:
            return ""
        top_level_dirs.add(name[:slash_index])
        if len(top_level_dirs) > 1:
            return ""
    return next(iter(top_level_dirs)) if len(top_level_dirs) == 1 else ""


def similar_files_hint(target_path: str, files: list[str], empty_message: str) -> str:
    """Build the suggestion suffix appended to not-found messages.

    Args:
        target_path: Path that was requested
        files: All file paths known to the backend
        empty_message: Suffix to use when the backend holds no files

    Returns:
        Suffix beginning with ". " listing similar or available files
    """
    if not files:
        return f". {empty_message}"

    if "/" in target_path:
        target_dir, target_name = target_path.rsplit("/", 1)
    else:
        target_dir, target_name = "", target_path

    lowered = target_name.lower()
    suggestions = [
        f for f in files
        if lowered in f.lower() or not target_dir or f.startswith(target_dir)
    ][:3]
    if suggestions:
        return ". Similar files: " + ", ".join(suggestions)

    hint = ". Available files: " + ", ".join(files[:5])
    if len(files) > 5:
        hint += f" (and {len(files) - 5} more)"
    return hint


class FileAccess(ABC):
    """Read-only access to the files of one content package.

    Paths are relative to ``root_path``. How a leading "/" resolves is up
    to each backend: the default ``full_path`` treats it as absolute within
    the storage target, while object stores keep it under the root.
    """

    @property
    @abstractmethod
    def root_path(self) -> str:
        """Root path all relative paths are resolved against."""

    def file_exists(self, path: str) -> bool:
        """Check whether a file exists.

        Args:
            path: Path relative to the root

        Returns:
            True if the file exists

        Raises:
            InvalidConfigurationError: If path is None
        """
        if path is None:
            raise InvalidConfigurationError("Path cannot be None")
        return self._file_exists_internal(path)

    def list_files(self, directory_path: str) -> list[str]:
        """List the files inside a directory.

        Args:
            directory_path: Directory relative to the root ("" for the root)

        Returns:
            File paths within the directory

        Raises:
            InvalidConfigurationError: If directory_path is None
            OSError: If the directory cannot be listed
        """
        if directory_path is None:
            raise InvalidConfigurationError("Directory path cannot be None")
        return self._list_files_internal(directory_path)

    def get_file_contents(self, path: str) -> BinaryIO:
        """Open a file for reading.

        Args:
            path: Path relative to the root

        Returns:
            Binary stream over the file contents; the caller closes it

        Raises:
            InvalidConfigurationError: If path is None
            PackageFileNotFoundError: If the file does not exist
            OSError: If the file cannot be read
        """
        if path is None:
            raise InvalidConfigurationError("Path cannot be None")
        return self._get_file_contents_internal(path)

    def read_bytes(self, path: str) -> bytes:
        """Read a whole file into memory."""
        with self.get_file_contents(path) as stream:
            return stream.read()

    def full_path(self, path: str) -> str:
        """Resolve a path against the root.

        Args:
            path: Relative path, or absolute path starting with "/"

        Returns:
            Path within the storage target
        """
        if path is None:
            raise InvalidConfigurationError("Path cannot be None")
        if path.startswith("/"):
            return path[1:]
        root = self.root_path
        if not path:
            return root or ""
        return f"{root}/{path}" if root else path

    def file_exists_batch(self, paths: list[str]) -> dict[str, bool]:
        """Check the existence of several files.

        Backends with remote storage override this to check in parallel.
        A path missing from the result is inconclusive, not absent.

        Args:
            paths: Paths to check; None elements are skipped

        Returns:
            Mapping of path to existence
        """
        if paths is None:
            raise InvalidConfigurationError("Paths list cannot be None")
        return {path: self.file_exists(path) for path in paths if path is not None}

    def prefetch_common_files(self) -> None:
        """Warm caches with well-known manifest files. No-op by default."""

    def get_all_files(self) -> list[str]:
        """List every file in the package."""
        return self.list_files("")

    def clear_caches(self) -> None:
        """Drop any internal caches. No-op by default."""

    def get_total_size(self) -> int:
        """Total size of all files in bytes, or -1 if unsupported."""
        return SIZE_UNSUPPORTED

    def __repr__(self) -> str:
        return f"{type(self).__name__}(root_path={self.root_path!r})"

    @abstractmethod
    def _file_exists_internal(self, path: str) -> bool:
        ...

    @abstractmethod
    def _list_files_internal(self, directory_path: str) -> list[str]:
        ...

    @abstractmethod
    def _get_file_contents_internal(self, path: str) -> BinaryIO:
        ...
