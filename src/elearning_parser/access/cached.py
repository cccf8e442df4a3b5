"""Caching decorator for any FileAccess backend.

Memoizes existence checks, directory listings and whole-file contents.
Entries live until ``clear_cache`` is called; there is no expiry and no
change detection.
"""

import io
import logging
import threading
from typing import BinaryIO, Callable, Optional

from elearning_parser.access.base import FileAccess
from elearning_parser.access.cache_map import CacheMap
from elearning_parser.exceptions import (
    FileAccessError,
    InvalidConfigurationError,
    PackageFileNotFoundError,
)

logger = logging.getLogger(__name__)

# Called with a human-readable description of each cache event
CacheEventCallback = Callable[[str], None]


class CachedFileAccess(FileAccess):
    """Wraps a FileAccess and memoizes its results.

    Concurrent callers asking for the same uncached key share a single
    delegate call. A failed call is not cached, so a later call retries.

    Attributes:
        delegate: The wrapped backend
    """

    def __init__(self, delegate: FileAccess, event_callback: Optional[CacheEventCallback] = None):
        """Initialize the decorator.

        Args:
            delegate: Backend to wrap
            event_callback: Optional function called with cache event messages

        Raises:
            InvalidConfigurationError: If delegate is None
        """
        if delegate is None:
            raise InvalidConfigurationError("FileAccess delegate cannot be None")

        self.delegate = delegate
        self._event_callback = event_callback

        self._exists_cache: CacheMap[bool] = CacheMap()
        self._list_cache: CacheMap[tuple[str, ...]] = CacheMap()
        self._contents_cache: CacheMap[bytes] = CacheMap()

        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    @property
    def root_path(self) -> str:
        return self.delegate.root_path

    @property
    def _delegate_name(self) -> str:
        return type(self.delegate).__name__

    def _notify(self, message: str) -> None:
        logger.debug(message)
        if self._event_callback is not None:
            try:
                self._event_callback(message)
            except Exception as e:
                logger.debug(f"Cache event callback failed: {e}")

    def _record(self, hit: bool, operation: str, key: str) -> None:
        with self._lock:
            if hit:
                self._hits += 1
            else:
                self._misses += 1
        self._notify(f"Cache {'hit' if hit else 'miss'}: {operation} for {key}")

    def _file_exists_internal(self, path: str) -> bool:
        try:
            exists, cached = self._exists_cache.compute_if_absent(path, self.delegate.file_exists)
        except Exception as e:
            logger.debug(f"Existence check failed for {path} using {self._delegate_name}: {e}")
            return False
        self._record(cached, "fileExists", path)
        return exists

    def _list_files_internal(self, directory_path: str) -> list[str]:
        def load(directory: str) -> tuple[str, ...]:
            return tuple(self.delegate.list_files(directory))

        try:
            files, cached = self._list_cache.compute_if_absent(directory_path, load)
        except Exception as e:
            raise FileAccessError(
                f"Error listing files in directory: {directory_path} using {self._delegate_name}",
                metadata={
                    "path": directory_path,
                    "operation": "listFiles",
                    "file_access": self._delegate_name,
                },
            ) from e
        self._record(cached, "listFiles", directory_path)
        return list(files)

    def _get_file_contents_internal(self, path: str) -> BinaryIO:
        def load(p: str) -> bytes:
            with self.delegate.get_file_contents(p) as stream:
                return stream.read()

        try:
            contents, cached = self._contents_cache.compute_if_absent(path, load)
        except Exception as e:
            error_type = PackageFileNotFoundError if isinstance(e, FileNotFoundError) else FileAccessError
            raise error_type(
                f"Error reading file contents for path: {path} using {self._delegate_name}: {e}",
                metadata={
                    "path": path,
                    "operation": "getFileContents",
                    "file_access": self._delegate_name,
                },
            ) from e
        self._record(cached, "getFileContents", path)
        return io.BytesIO(contents)

    def file_exists_batch(self, paths: list[str]) -> dict[str, bool]:
        return self.delegate.file_exists_batch(paths)

    def prefetch_common_files(self) -> None:
        self.delegate.prefetch_common_files()

    def get_total_size(self) -> int:
        return self.delegate.get_total_size()

    def clear_cache(self, path: Optional[str] = None) -> None:
        """Clear cached entries.

        Args:
            path: Clear only the entries for this path; everything if omitted
        """
        if path is None:
            with self._lock:
                total = len(self._exists_cache) + len(self._list_cache) + len(self._contents_cache)
                self._exists_cache.clear()
                self._list_cache.clear()
                self._contents_cache.clear()
                self._hits = 0
                self._misses = 0
            self._notify(f"Cache cleared: {total} entries removed")
            return

        with self._lock:
            removed = sum(
                cache.pop(path, None) is not None
                for cache in (self._exists_cache, self._list_cache, self._contents_cache)
            )
        if removed:
            self._notify(f"Cache cleared for path: {path} ({removed} entries)")

    def clear_caches(self) -> None:
        self.clear_cache()
        self.delegate.clear_caches()

    def get_cache_statistics(self) -> dict[str, float]:
        """Report hit/miss counters and entry counts."""
        with self._lock:
            hits, misses = self._hits, self._misses
            stats = {
                "hits": hits,
                "misses": misses,
                "hit_ratio": hits / (hits + misses) if hits + misses else 0.0,
                "file_exists_cache_size": len(self._exists_cache),
                "list_files_cache_size": len(self._list_cache),
                "file_contents_cache_size": len(self._contents_cache),
            }
        self._notify(
            f"Cache stats: {stats['hit_ratio'] * 100:.1f}% hit ratio "
            f"({hits} hits, {misses} misses)"
        )
        return stats
