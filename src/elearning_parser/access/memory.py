"""File access for zip packages held entirely in memory.

Useful when a package arrives as an upload or a download body and should
never touch the disk. All entries are decompressed once at construction.
"""

import io
import logging
import zipfile
from dataclasses import dataclass
from typing import BinaryIO, Optional, Union

from elearning_parser.access.base import FileAccess, detect_single_top_level, similar_files_hint
from elearning_parser.access.streaming import ProgressCallback, create_enhanced_stream
from elearning_parser.exceptions import InvalidConfigurationError, PackageFileNotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileEntry:
    """A file loaded from an in-memory archive.

    Attributes:
        path: Entry name inside the archive
        content: Decompressed bytes
    """

    path: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


def _normalize_directory(directory: str) -> str:
    return directory if directory.endswith("/") else directory + "/"


class InMemoryFileAccess(FileAccess):
    """Reads package files from zip bytes loaded into memory.

    Attributes:
        progress_callback: Optional observer attached to every opened stream
    """

    def __init__(
        self,
        data: Union[bytes, bytearray, BinaryIO],
        progress_callback: Optional[ProgressCallback] = None,
    ):
        """Load every entry of a zip archive into memory.

        Args:
            data: Zip archive bytes, or a binary stream to read them from
            progress_callback: Optional observer called with (bytes_read, total_size)

        Raises:
            InvalidConfigurationError: If data is None or not a readable zip archive
        """
        if data is None:
            raise InvalidConfigurationError("ZIP data cannot be None")

        if not isinstance(data, (bytes, bytearray)):
            data = data.read()

        self.progress_callback = progress_callback
        self._entries: dict[str, FileEntry] = {}
        self._directories: set[str] = set()
        self._total_size = self._load(bytes(data))
        self._root_path = detect_single_top_level(self._entries)
        logger.debug(
            f"Loaded in-memory ZIP: {len(self._entries)} files, {self._total_size} bytes, "
            f"root '{self._root_path}'"
        )

    def _load(self, data: bytes) -> int:
        total = 0
        try:
            with zipfile.ZipFile(io.BytesIO(data)) as archive:
                for info in archive.infolist():
                    if info.is_dir():
                        self._directories.add(_normalize_directory(info.filename))
                        continue
                    content = archive.read(info)
                    self._entries[info.filename] = FileEntry(info.filename, content)
                    total += len(content)
                    self._add_parent_directories(info.filename)
        except (zipfile.BadZipFile, OSError, ValueError, RuntimeError) as e:
            raise InvalidConfigurationError(
                f"Failed to read in-memory ZIP data ({len(data)} bytes): {e}",
                metadata={"path": "<in-memory>", "operation": "loadArchive"},
            ) from e
        return total

    def _add_parent_directories(self, file_path: str) -> None:
        while "/" in file_path:
            file_path = file_path.rsplit("/", 1)[0]
            if not file_path:
                break
            self._directories.add(file_path + "/")

    @property
    def root_path(self) -> str:
        return self._root_path

    @property
    def file_count(self) -> int:
        return len(self._entries)

    @property
    def directory_count(self) -> int:
        return len(self._directories)

    def _file_exists_internal(self, path: str) -> bool:
        return self.full_path(path) in self._entries

    def _list_files_internal(self, directory_path: str) -> list[str]:
        full = self.full_path(directory_path)
        prefix = _normalize_directory(full) if full else ""
        return [name for name in self._entries if name.startswith(prefix)]

    def _get_file_contents_internal(self, path: str) -> BinaryIO:
        full = self.full_path(path)
        entry = self._entries.get(full)
        if entry is None:
            suggestion = similar_files_hint(
                path,
                list(self._entries),
                "In-memory ZIP appears to be empty or contains only directories.",
            )
            root_note = f" with internal root '{self.root_path}'" if self.root_path else ""
            raise PackageFileNotFoundError(
                f"File not found in in-memory ZIP: '{path}' (full path: '{full}')"
                f"{root_note}{suggestion}",
                metadata={"path": path, "operation": "getFileContents"},
            )
        return create_enhanced_stream(io.BytesIO(entry.content), entry.size, self.progress_callback)

    def get_all_files(self) -> list[str]:
        return list(self._entries)

    def get_total_size(self) -> int:
        return self._total_size

    def close(self) -> None:
        """Nothing to release; present so callers can treat all archives alike."""

    def __enter__(self) -> "InMemoryFileAccess":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
