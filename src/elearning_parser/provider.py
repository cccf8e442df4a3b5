"""File provider used by module parsers.

Parsers receive a ``ModuleFileProvider`` rather than a raw backend. It
validates arguments, logs each call, and adds a few package-level queries
on top of the file access contract.
"""

import logging
from typing import BinaryIO, Optional

from elearning_parser.access.base import SIZE_UNSUPPORTED, FileAccess
from elearning_parser.config import is_file_validation_enabled, is_module_size_enabled
from elearning_parser.exceptions import InvalidConfigurationError

logger = logging.getLogger(__name__)

XAPI_JS_FILE = "xAPI.js"
XAPI_SEND_STATEMENT_FILE = "sendStatement.js"


class ModuleFileProvider:
    """Facade over a FileAccess for parsers.

    Backend errors propagate unchanged.

    Attributes:
        file_access: Backend serving the package files
        validate_file_exists: Whether find_missing_files checks the backend
        calculate_module_size: Whether get_module_size sums file sizes
    """

    def __init__(
        self,
        file_access: FileAccess,
        validate_file_exists: Optional[bool] = None,
        calculate_module_size: Optional[bool] = None,
    ):
        """Wrap a backend.

        Args:
            file_access: Backend serving the package files
            validate_file_exists: Enable existence validation; None reads
                ELEARNING_VALIDATE_FILE_EXISTS
            calculate_module_size: Enable size calculation; None reads
                ELEARNING_CALCULATE_MODULE_SIZE
        """
        if file_access is None:
            raise InvalidConfigurationError("FileAccess cannot be None")
        self.file_access = file_access
        if validate_file_exists is None:
            validate_file_exists = is_file_validation_enabled()
        if calculate_module_size is None:
            calculate_module_size = is_module_size_enabled()
        self.validate_file_exists = validate_file_exists
        self.calculate_module_size = calculate_module_size

    @property
    def root_path(self) -> str:
        return self.file_access.root_path

    def get_file_contents(self, path: str) -> BinaryIO:
        if path is None:
            raise InvalidConfigurationError("Path cannot be None")
        logger.debug(f"Getting file contents for path: {path}")
        return self.file_access.get_file_contents(path)

    def file_exists(self, path: str) -> bool:
        if path is None:
            raise InvalidConfigurationError("Path cannot be None")
        exists = self.file_access.file_exists(path)
        logger.debug(f"File exists check for {path}: {exists}")
        return exists

    def list_files(self, directory: str) -> list[str]:
        if directory is None:
            raise InvalidConfigurationError("Directory cannot be None")
        files = self.file_access.list_files(directory)
        logger.debug(f"Listed {len(files)} files in directory: {directory}")
        return files

    def file_exists_batch(self, paths: list[str]) -> dict[str, bool]:
        if paths is None:
            raise InvalidConfigurationError("Paths list cannot be None")
        return self.file_access.file_exists_batch(paths)

    def prefetch_common_files(self) -> None:
        logger.debug("Prefetching common module files")
        self.file_access.prefetch_common_files()

    def has_xapi_support(self) -> bool:
        """Check whether the package ships xAPI tracking scripts.

        Either ``xAPI.js`` or ``sendStatement.js`` is enough. A file left out
        of the batch result counts as absent.

        Returns:
            True if at least one xAPI script exists
        """
        results = self.file_access.file_exists_batch([XAPI_JS_FILE, XAPI_SEND_STATEMENT_FILE])
        has_xapi = results.get(XAPI_JS_FILE, False) or results.get(XAPI_SEND_STATEMENT_FILE, False)
        logger.debug(f"xAPI support detected: {has_xapi}")
        return has_xapi

    def get_total_size(self) -> int:
        """Total size of the package in bytes, or -1 if the backend cannot tell."""
        size = self.file_access.get_total_size()
        if size == SIZE_UNSUPPORTED:
            logger.debug(f"Total size calculation not supported by {type(self.file_access).__name__}")
        else:
            logger.debug(f"Total module size: {size} bytes")
        return size

    def find_missing_files(self, paths: list[str]) -> list[str]:
        """Return the referenced files that do not exist.

        Only runs when existence validation is enabled; otherwise nothing is
        reported missing. A path the backend could not check is not reported.

        Args:
            paths: Paths referenced by the module

        Returns:
            Missing paths in the order given
        """
        if paths is None:
            raise InvalidConfigurationError("Paths list cannot be None")
        if not self.validate_file_exists:
            logger.debug("File existence validation disabled, skipping check")
            return []

        unique = [path for path in dict.fromkeys(paths) if path is not None]
        results = self.file_access.file_exists_batch(unique)
        missing = [path for path in unique if results.get(path) is False]
        unchecked = len(unique) - len(results)
        if unchecked:
            logger.debug(f"Could not verify {unchecked} referenced files")
        if missing:
            logger.warning(f"Module references {len(missing)} missing files: {missing}")
        return missing

    def get_module_size(self) -> Optional[int]:
        """Total package size when size calculation is enabled.

        Returns:
            Size in bytes, or None if disabled or unsupported by the backend
        """
        if not self.calculate_module_size:
            logger.debug("Module size calculation disabled")
            return None
        size = self.get_total_size()
        return None if size == SIZE_UNSUPPORTED else size
