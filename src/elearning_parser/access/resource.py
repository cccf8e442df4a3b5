"""File access for content bundled as resources of a Python package.

Sample packages and fixtures shipped inside a distribution are read with
``importlib.resources``. When the package is imported from a zip archive
(zipimport, zipapp) listings enumerate the entries of that archive;
otherwise resources are resolved directly through the resource loader.
"""

import importlib.resources
import logging
import zipfile
from types import ModuleType
from typing import BinaryIO, Union

from elearning_parser.access.base import FileAccess, normalize_root
from elearning_parser.exceptions import FileAccessError, PackageFileNotFoundError

logger = logging.getLogger(__name__)


class ResourceFileAccess(FileAccess):
    """Read-only access to resources of an importable package.

    Paths are relative to the package directory, then to ``root_path``.

    Attributes:
        package: Name of the package holding the resources
        packaged: True when the package was imported from a zip archive
    """

    def __init__(self, package: Union[str, ModuleType], root_path: str = ""):
        """Initialize resource access.

        Args:
            package: Package name or module object
            root_path: Sub-directory of the package to scope paths to
        """
        self._anchor = importlib.resources.files(package)
        self.package = package if isinstance(package, str) else package.__name__
        self._root_path = normalize_root(root_path)
        self.packaged = isinstance(self._anchor, zipfile.Path)
        logger.debug(
            f"Resource access for {self.package} "
            f"({'archive' if self.packaged else 'directory'} strategy)"
        )

    @property
    def root_path(self) -> str:
        return self._root_path

    def _resource(self, path: str):
        full = self.full_path(path)
        return self._anchor.joinpath(full) if full else self._anchor

    def _file_exists_internal(self, path: str) -> bool:
        try:
            return self._resource(path).is_file()
        except (OSError, KeyError, ValueError):
            return False

    def _list_files_internal(self, directory_path: str) -> list[str]:
        if self.packaged:
            return self._list_archive(directory_path)
        return self._list_loader(directory_path)

    def _list_archive(self, directory_path: str) -> list[str]:
        archive_path = self._anchor.root.filename
        package_prefix = self._anchor.at
        prefix = package_prefix + self.full_path(directory_path)
        try:
            with zipfile.ZipFile(archive_path) as archive:
                names = archive.namelist()
        except (OSError, zipfile.BadZipFile) as e:
            raise FileAccessError(
                f"Failed to enumerate archive '{archive_path}' for package {self.package}: {e}",
                metadata={"path": directory_path, "operation": "listFiles"},
            ) from e
        return [
            name[len(package_prefix):]
            for name in names
            if name.startswith(prefix) and not name.endswith("/")
        ]

    def _list_loader(self, directory_path: str) -> list[str]:
        directory = self._resource(directory_path)
        if not directory.is_dir():
            return []
        full = self.full_path(directory_path)
        base = f"{full}/" if full else ""
        return sorted(base + child.name for child in directory.iterdir() if child.is_file())

    def _get_file_contents_internal(self, path: str) -> BinaryIO:
        resource = self._resource(path)
        if not self._file_exists_internal(path):
            raise PackageFileNotFoundError(
                f"Resource not found in package {self.package}: '{path}'",
                metadata={"path": path, "operation": "getFileContents"},
            )
        try:
            return resource.open("rb")
        except OSError as e:
            raise FileAccessError(
                f"Failed to open resource '{path}' in package {self.package}: {e}",
                metadata={"path": path, "operation": "getFileContents"},
            ) from e
