"""File access for packages stored as zip archives on disk."""

import logging
import zipfile
from pathlib import Path
from typing import BinaryIO, Optional, Union

from elearning_parser.access.base import FileAccess, detect_single_top_level, similar_files_hint
from elearning_parser.access.streaming import ProgressCallback, create_enhanced_stream
from elearning_parser.exceptions import (
    FileAccessError,
    InvalidConfigurationError,
    PackageFileNotFoundError,
)

logger = logging.getLogger(__name__)


class ZipFileAccess(FileAccess):
    """Reads package files directly from a zip archive.

    The archive is opened and indexed once. When every entry lives under a
    single top-level directory, that directory becomes the root path.

    Attributes:
        zip_path: Path to the archive on disk
        progress_callback: Optional observer attached to every opened stream
    """

    def __init__(
        self,
        zip_path: Union[str, Path],
        progress_callback: Optional[ProgressCallback] = None,
    ):
        """Open and index a zip archive.

        Args:
            zip_path: Path to the zip archive
            progress_callback: Optional observer called with (bytes_read, total_size)

        Raises:
            InvalidConfigurationError: If the archive cannot be opened
        """
        if zip_path is None:
            raise InvalidConfigurationError("ZIP file path cannot be None")

        self.zip_path = str(zip_path)
        self.progress_callback = progress_callback

        try:
            self._zip = zipfile.ZipFile(self.zip_path)
        except (OSError, zipfile.BadZipFile) as e:
            raise InvalidConfigurationError(
                f"Failed to open ZIP file: '{self.zip_path}' ({e})",
                metadata={"path": self.zip_path},
            ) from e

        self._entries: dict[str, zipfile.ZipInfo] = {}
        self._directories: set[str] = set()
        for info in self._zip.infolist():
            if info.is_dir():
                self._directories.add(info.filename)
            else:
                self._entries[info.filename] = info

        self._root_path = detect_single_top_level(
            info.filename for info in self._zip.infolist()
        )
        if self._root_path:
            logger.debug(f"Detected internal root '{self._root_path}' in {self.zip_path}")

    @property
    def root_path(self) -> str:
        return self._root_path

    @property
    def directories(self) -> set[str]:
        """Directory marker entries recorded in the archive."""
        return set(self._directories)

    def _file_exists_internal(self, path: str) -> bool:
        return self.full_path(path) in self._entries

    def _list_files_internal(self, directory_path: str) -> list[str]:
        prefix = self.full_path(directory_path)
        return [name for name in self._entries if name.startswith(prefix)]

    def _get_file_contents_internal(self, path: str) -> BinaryIO:
        full = self.full_path(path)
        info = self._entries.get(full)

        if info is None:
            suggestion = similar_files_hint(
                path,
                list(self._entries),
                "ZIP archive appears to be empty or contains only directories.",
            )
            root_note = f" with internal root '{self.root_path}'" if self.root_path else ""
            raise PackageFileNotFoundError(
                f"File not found in ZIP archive: '{path}' (full path: '{full}') "
                f"in ZIP file '{self.zip_path}'{root_note}{suggestion}",
                metadata={"path": path, "operation": "getFileContents"},
            )

        try:
            stream = self._zip.open(info)
        except (OSError, zipfile.BadZipFile, RuntimeError) as e:
            raise FileAccessError(
                f"Failed to read '{path}' from ZIP file '{self.zip_path}': {e}",
                metadata={"path": path, "operation": "getFileContents"},
            ) from e

        return create_enhanced_stream(stream, info.file_size, self.progress_callback)

    def get_total_size(self) -> int:
        """Sum of the uncompressed sizes of all file entries."""
        return sum(info.file_size for info in self._entries.values() if info.file_size >= 0)

    def close(self) -> None:
        """Close the underlying archive."""
        try:
            self._zip.close()
        except OSError as e:
            raise FileAccessError(f"Failed to close ZIP file: '{self.zip_path}' ({e})") from e

    def __enter__(self) -> "ZipFileAccess":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
