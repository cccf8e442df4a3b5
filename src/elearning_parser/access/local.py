"""File access for packages extracted to a local directory."""

import logging
import os
from pathlib import Path
from typing import BinaryIO, Optional, Union

from elearning_parser.access.base import FileAccess
from elearning_parser.access.streaming import ProgressCallback, create_enhanced_stream
from elearning_parser.exceptions import (
    FileAccessError,
    InvalidConfigurationError,
    PackageFileNotFoundError,
)

logger = logging.getLogger(__name__)


class LocalFileAccess(FileAccess):
    """Reads package files from a directory on the local file system.

    Attributes:
        progress_callback: Optional observer attached to every opened stream
    """

    def __init__(
        self,
        root_path: Union[str, Path],
        progress_callback: Optional[ProgressCallback] = None,
    ):
        """Initialize local file access.

        Args:
            root_path: Directory containing the extracted package
            progress_callback: Optional observer called with (bytes_read, total_size)

        Raises:
            InvalidConfigurationError: If root_path is None or not a directory
        """
        if root_path is None:
            raise InvalidConfigurationError("Root path cannot be None")

        root = str(root_path)
        if len(root) > 1 and root.endswith("/"):
            root = root[:-1]
        self._root_path = root
        self.progress_callback = progress_callback

        path = Path(root)
        if not path.is_dir():
            if not path.exists():
                context = "path does not exist"
            elif path.is_file():
                context = "path points to a file"
            else:
                context = "path exists but is not a directory"
            raise InvalidConfigurationError(
                f"Invalid root directory for LocalFileAccess: '{root}' ({context})",
                metadata={"path": root},
            )

    @property
    def root_path(self) -> str:
        return self._root_path

    def _resolve(self, path: str) -> Path:
        return Path(self.full_path(path))

    def _relative(self, path: Path) -> str:
        try:
            return path.relative_to(self.root_path).as_posix()
        except ValueError:
            return path.as_posix()

    def _file_exists_internal(self, path: str) -> bool:
        try:
            return self._resolve(path).exists()
        except OSError:
            return False

    def _list_files_internal(self, directory_path: str) -> list[str]:
        dir_path = self._resolve(directory_path)

        if not dir_path.exists():
            raise FileAccessError(
                f"Directory not found: '{directory_path}' (full path: '{dir_path.absolute()}') "
                f"in root '{self.root_path}'",
                metadata={"path": directory_path, "operation": "listFiles"},
            )
        if not dir_path.is_dir():
            file_type = "regular file" if dir_path.is_file() else "special file"
            raise FileAccessError(
                f"Path is not a directory: '{directory_path}' (is a {file_type}) "
                f"in root '{self.root_path}'",
                metadata={"path": directory_path, "operation": "listFiles"},
            )

        try:
            files = [self._relative(child) for child in dir_path.iterdir() if child.is_file()]
        except OSError as e:
            raise FileAccessError(
                f"Failed to list files in directory: '{directory_path}' "
                f"(full path: '{dir_path.absolute()}') in root '{self.root_path}': {e}",
                metadata={"path": directory_path, "operation": "listFiles"},
            ) from e

        return sorted(files)

    def _get_file_contents_internal(self, path: str) -> BinaryIO:
        file_path = self._resolve(path)

        if not self._file_exists_internal(path):
            raise PackageFileNotFoundError(
                f"File not found: '{path}' (full path: '{file_path.absolute()}') "
                f"in root '{self.root_path}'",
                metadata={"path": path, "operation": "getFileContents"},
            )

        if file_path.is_dir() or not os.access(file_path, os.R_OK):
            try:
                stat = file_path.stat()
                kind = "directory" if file_path.is_dir() else "file"
                details = f" (size: {stat.st_size} bytes, type: {kind})"
            except OSError:
                details = " (unable to read file attributes)"
            raise FileAccessError(
                f"File is not readable: '{path}' (full path: '{file_path.absolute()}')"
                f"{details} in root '{self.root_path}'",
                metadata={"path": path, "operation": "getFileContents"},
            )

        try:
            stream = open(file_path, "rb")
            size = file_path.stat().st_size
        except OSError as e:
            raise FileAccessError(
                f"Failed to open file: '{path}' in root '{self.root_path}': {e}",
                metadata={"path": path, "operation": "getFileContents"},
            ) from e

        return create_enhanced_stream(stream, size, self.progress_callback)

    def get_total_size(self) -> int:
        """Sum the sizes of every regular file below the root.

        Files whose size cannot be read contribute 0.
        """
        total = 0
        for path in Path(self.root_path).rglob("*"):
            try:
                if path.is_file():
                    total += path.stat().st_size
            except OSError as e:
                logger.debug(f"Could not stat {path}: {e}")
        return total
