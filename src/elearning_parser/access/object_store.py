"""File access engine for bucket/key object stores.

``ObjectStoreFileAccess`` turns a minimal object store client into a
``FileAccess`` with multi-level caching:

- existence, listing, size and small-file content caches per instance
- a once-computed snapshot of every key under the root ("scope scan")
- a streaming threshold: small objects are fetched whole and cached,
  large objects are streamed on every read and never cached
- a bounded thread pool for batch existence checks, prefetching and
  size aggregation

Known limitation: ``clear_caches`` and ``reconfigure`` clear the maps
atomically with respect to each other, but a backend call that started
before the clear may still store its result afterwards. Callers that
need a strictly clean state should quiesce readers before reconfiguring.
"""

import io
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed, wait
from dataclasses import dataclass, field
from typing import BinaryIO, Iterator, Optional, Protocol

from elearning_parser.access.base import FileAccess, normalize_root
from elearning_parser.access.cache_map import CacheMap
from elearning_parser.access.streaming import ProgressCallback, create_enhanced_stream
from elearning_parser.exceptions import (
    FileAccessError,
    InvalidConfigurationError,
    PackageFileNotFoundError,
)

logger = logging.getLogger(__name__)

STREAMING_THRESHOLD = 5 * 1024 * 1024
MAX_CACHE_SIZE = 1000
DEFAULT_MAX_WORKERS = 10

COMMON_MODULE_FILES = (
    "imsmanifest.xml",
    "cmi5.xml",
    "xAPI.js",
    "sendStatement.js",
    "manifest.xml",
    "tincan.xml",
    "MANIFEST.MF",
)


class ObjectStoreClient(Protocol):
    """Operations the engine needs from an object store.

    Keys are full keys within the bucket. Any method may raise; the engine
    decides per operation whether that is fatal.
    """

    def head_exists(self, key: str) -> bool:
        ...

    def head_size(self, key: str) -> int:
        ...

    def list_page(
        self, prefix: str, continuation_token: Optional[str] = None
    ) -> tuple[list[str], Optional[str]]:
        ...

    def get_bytes(self, key: str) -> bytes:
        ...

    def get_stream(self, key: str) -> BinaryIO:
        ...

    def list_common_prefixes(self, prefix: str, delimiter: str = "/") -> list[str]:
        ...


@dataclass(frozen=True)
class ScopeSnapshot:
    """Immutable list of every file under the root at scan time.

    Attributes:
        paths: Root-relative paths in listing order
    """

    paths: tuple[str, ...]
    _index: frozenset = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "_index", frozenset(self.paths))

    def __contains__(self, path: object) -> bool:
        return path in self._index

    def __len__(self) -> int:
        return len(self.paths)

    def __iter__(self) -> Iterator[str]:
        return iter(self.paths)


def _in_snapshot(snapshot: ScopeSnapshot, path: str) -> bool:
    return (path[1:] if path.startswith("/") else path) in snapshot


class ObjectStoreFileAccess(FileAccess):
    """FileAccess backed by an object store, with caching and parallel I/O.

    Attributes:
        client: Object store collaborator
        eager_cache: Scan the whole root at construction and after reconfigure
        streaming_threshold: Largest object size that is buffered and cached
        progress_callback: Optional observer attached to returned streams
    """

    def __init__(
        self,
        client: ObjectStoreClient,
        root_path: Optional[str] = None,
        eager_cache: bool = True,
        max_workers: int = DEFAULT_MAX_WORKERS,
        streaming_threshold: int = STREAMING_THRESHOLD,
        max_cache_entries: int = MAX_CACHE_SIZE,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        """Initialize the engine.

        Args:
            client: Object store collaborator
            root_path: Key prefix to scope paths to. None detects a single
                top-level prefix on first use; "" means the bucket root.
            eager_cache: Scan all keys under the root immediately
            max_workers: Size of the worker pool for parallel calls
            streaming_threshold: Objects up to this size are cached in memory
            max_cache_entries: Capacity of the small-file content cache
            progress_callback: Optional observer called with (bytes_read, total_size)
        """
        self.client = client
        self.eager_cache = eager_cache
        self.streaming_threshold = streaming_threshold
        self.progress_callback = progress_callback

        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="object-store"
        )

        self._exists_cache: CacheMap[bool] = CacheMap()
        self._list_cache: CacheMap[tuple[str, ...]] = CacheMap()
        self._content_cache: CacheMap[bytes] = CacheMap(max_entries=max_cache_entries)
        self._size_cache: CacheMap[int] = CacheMap()
        self._snapshot: Optional[ScopeSnapshot] = None

        # Guards multi-step invalidation and root changes
        self._lock = threading.RLock()
        self._scan_lock = threading.Lock()
        self._root_lock = threading.Lock()

        self._root_path = normalize_root(root_path)
        self._root_resolved = root_path is not None

        if eager_cache:
            self._eager_scan()

    # Root path

    @property
    def root_path(self) -> str:
        if not self._root_resolved:
            with self._root_lock:
                # reconfigure() may have published a root while we waited
                if not self._root_resolved:
                    detected = self._detect_root()
                    if not self._root_resolved:
                        self._root_path = detected
                        self._root_resolved = True
        return self._root_path

    def internal_root_directory(self) -> str:
        """Return the root, detecting a single top-level prefix if none was given."""
        return self.root_path

    def full_path(self, path: str) -> str:
        """Resolve a path to an object key under the root.

        A leading "/" is stripped and the path is still joined to the root,
        so keys outside the root are never addressed.

        Args:
            path: Path relative to the root

        Returns:
            Full object key ("" resolves to the root itself)
        """
        if path is None:
            raise InvalidConfigurationError("Path cannot be None")
        if path.startswith("/"):
            path = path[1:]
        root = self.root_path
        if not path:
            return root
        return f"{root}/{path}" if root else path

    def _detect_root(self) -> str:
        try:
            prefixes = self.client.list_common_prefixes("", "/")
        except Exception as e:
            logger.debug(f"Failed to detect internal root directory: {e}")
            return ""
        if len(prefixes) != 1:
            logger.debug(f"Found {len(prefixes)} top-level prefixes, using store root")
            return ""
        root = normalize_root(prefixes[0])
        logger.info(f"Detected internal root directory '{root}'")
        return root

    def reconfigure(self, new_root: Optional[str]) -> None:
        """Clear every cache, then adopt a new root path.

        In eager mode the new root is scanned immediately.

        Args:
            new_root: New root path (None or "" for the store root)
        """
        with self._lock:
            self.clear_caches()
            # Waits for any running detection so its result cannot win
            with self._root_lock:
                self._root_path = normalize_root(new_root)
                self._root_resolved = True
        logger.info(f"Reconfigured root path to '{self._root_path}'")
        if self.eager_cache:
            self._eager_scan()

    def _relative_key(self, key: str) -> Optional[str]:
        """Convert a full key to a root-relative path, or None if outside the root."""
        root = self.root_path
        if not root:
            return key
        if key.startswith(root + "/"):
            return key[len(root) + 1:]
        return None

    def _list_prefix(self, directory_path: str) -> str:
        full = self.full_path(directory_path)
        return f"{full.rstrip('/')}/" if full else ""

    # Existence

    def _head_exists(self, path: str) -> bool:
        try:
            return bool(self.client.head_exists(self.full_path(path)))
        except Exception as e:
            logger.debug(f"Failed to check file existence for {path}: {e}")
            return False

    def _file_exists_internal(self, path: str) -> bool:
        cached = self._exists_cache.get(path)
        if cached is not None:
            return cached

        snapshot = self._snapshot
        if snapshot is not None:
            exists = _in_snapshot(snapshot, path)
            return self._exists_cache.put_if_absent(path, exists)

        exists, _ = self._exists_cache.compute_if_absent(path, self._head_exists)
        return exists

    def file_exists_batch(self, paths: list[str]) -> dict[str, bool]:
        """Check many paths, querying uncached ones in parallel.

        A path whose check raised is left out of the result; callers must
        treat a missing key as unknown rather than absent.
        """
        if paths is None:
            return super().file_exists_batch(paths)

        results: dict[str, bool] = {}
        uncached: list[str] = []
        snapshot = self._snapshot

        for path in dict.fromkeys(p for p in paths if p is not None):
            cached = self._exists_cache.get(path)
            if cached is not None:
                results[path] = cached
            elif snapshot is not None:
                exists = _in_snapshot(snapshot, path)
                results[path] = self._exists_cache.put_if_absent(path, exists)
            else:
                uncached.append(path)

        if not uncached:
            return results

        futures = {self._executor.submit(self._check_and_cache, path): path for path in uncached}
        for future in as_completed(futures):
            path = futures[future]
            try:
                results[path] = future.result()
            except Exception as e:
                logger.debug(f"Failed to check file existence for {path} in batch: {e}")
        return results

    def _check_and_cache(self, path: str) -> bool:
        exists = bool(self.client.head_exists(self.full_path(path)))
        self._exists_cache.put(path, exists)
        return exists

    # Listing and scanning

    def _list_files_internal(self, directory_path: str) -> list[str]:
        files, _ = self._list_cache.compute_if_absent(directory_path, self._list_on_store)
        return list(files)

    def _list_on_store(self, directory_path: str) -> tuple[str, ...]:
        prefix = self._list_prefix(directory_path)
        files: list[str] = []
        token: Optional[str] = None
        try:
            while True:
                keys, token = self.client.list_page(prefix, token)
                for key in keys:
                    if key.endswith("/"):
                        continue
                    relative = self._relative_key(key)
                    if relative is not None:
                        files.append(relative)
                if not token:
                    break
        except Exception as e:
            raise FileAccessError(
                f"Failed to list files in directory: '{directory_path}' (prefix: '{prefix}'): {e}",
                metadata={"path": directory_path, "operation": "listFiles"},
            ) from e

        logger.debug(f"Listed {len(files)} files in directory: '{directory_path}'")
        return tuple(files)

    def scan(self) -> ScopeSnapshot:
        """Return the snapshot of every file under the root, scanning at most once.

        Concurrent callers share the result of a single full listing.
        Every discovered path is marked as existing.
        """
        snapshot = self._snapshot
        if snapshot is not None:
            return snapshot

        with self._scan_lock:
            snapshot = self._snapshot
            if snapshot is not None:
                return snapshot

            logger.info(f"Scanning all files under root '{self.root_path}'")
            snapshot = ScopeSnapshot(self._list_on_store(""))
            for path in snapshot:
                self._exists_cache.put(path, True)
            self._snapshot = snapshot
            logger.info(f"Found {len(snapshot)} files under root '{self.root_path}'")
            return snapshot

    def get_all_files(self) -> list[str]:
        return list(self.scan().paths)

    def _eager_scan(self) -> None:
        try:
            self.scan()
        except Exception as e:
            logger.warning(f"Eager scan failed, falling back to lazy loading: {e}")

    # Reading

    def _fetch_size(self, path: str) -> int:
        try:
            return int(self.client.head_size(self.full_path(path)))
        except Exception as e:
            logger.debug(f"Failed to get file size for {path}: {e}")
            return 0

    def get_cached_file_size(self, path: str) -> int:
        """Size of a file, from the size cache or the store.

        A cached size of 0 is indistinguishable from a failed lookup, so it
        is discarded and fetched again. Only non-zero sizes are cached.
        """
        cached = self._size_cache.get(path)
        if cached == 0:
            self._size_cache.pop(path)
            cached = None
        if cached is not None:
            return cached

        size = self._fetch_size(path)
        if size > 0:
            self._size_cache.put(path, size)
        return size

    def _get_file_contents_internal(self, path: str) -> BinaryIO:
        cached = self._content_cache.get(path)
        if cached is not None:
            logger.debug(f"Returning cached content for {path}")
            return self._wrap(io.BytesIO(cached), len(cached))

        size = self.get_cached_file_size(path)
        key = self.full_path(path)

        if size <= self.streaming_threshold:
            logger.debug(f"Caching small file: {path} ({size} bytes)")
            content = self._fetch(path, key, self.client.get_bytes)
            self._content_cache.put(path, content)
            return self._wrap(io.BytesIO(content), len(content))

        logger.debug(f"Streaming large file: {path} ({size} bytes)")
        stream = self._fetch(path, key, self.client.get_stream)
        return self._wrap(stream, size)

    def _fetch(self, path: str, key: str, getter):
        try:
            return getter(key)
        except FileNotFoundError as e:
            raise PackageFileNotFoundError(
                f"File not found in object store: '{path}' (key: '{key}')",
                metadata={"path": path, "operation": "getFileContents"},
            ) from e
        except Exception as e:
            raise FileAccessError(
                f"Failed to read '{path}' from object store (key: '{key}'): {e}",
                metadata={"path": path, "operation": "getFileContents"},
            ) from e

    def _wrap(self, stream: BinaryIO, size: int) -> BinaryIO:
        return create_enhanced_stream(stream, size, self.progress_callback)

    # Best-effort bulk operations

    def prefetch_common_files(self) -> None:
        """Fetch well-known manifest files in parallel and cache the small ones.

        Missing files and backend errors are ignored per file.
        """
        candidates = [f for f in COMMON_MODULE_FILES if f not in self._content_cache]
        if not candidates:
            return

        logger.debug(f"Prefetching {len(candidates)} common module files")
        futures = [self._executor.submit(self._prefetch_single_file, f) for f in candidates]
        wait(futures)
        for future in futures:
            error = future.exception()
            if error is not None:
                logger.debug(f"Prefetch task failed: {error}")

    def _prefetch_single_file(self, path: str) -> None:
        try:
            key = self.full_path(path)
            exists = bool(self.client.head_exists(key))
            self._exists_cache.put(path, exists)
            if not exists:
                return
            size = int(self.client.head_size(key))
            if size <= 0:
                return
            self._size_cache.put(path, size)
            if size <= self.streaming_threshold:
                content = self.client.get_bytes(key)
                self._content_cache.put(path, content)
                logger.debug(f"Prefetched file: {path} ({len(content)} bytes)")
        except Exception as e:
            logger.debug(f"Failed to prefetch {path}: {e}")

    def get_total_size(self) -> int:
        """Sum the sizes of all files under the root.

        Uses cached sizes where available and fetches the rest in parallel.
        A size that cannot be fetched contributes 0.
        """
        paths = self.scan().paths
        if not paths:
            return 0

        cached_sizes = {path: self._size_cache.get(path) for path in paths}
        missing = [path for path, size in cached_sizes.items() if not size]
        total = sum(size for size in cached_sizes.values() if size)
        if not missing:
            return total

        futures = [self._executor.submit(self._fetch_and_cache_size, path) for path in missing]
        for future in as_completed(futures):
            try:
                total += future.result()
            except Exception as e:
                logger.debug(f"Failed to get file size during total calculation: {e}")
        logger.debug(f"Total module size calculated: {total} bytes")
        return total

    def _fetch_and_cache_size(self, path: str) -> int:
        size = self._fetch_size(path)
        if size > 0:
            self._size_cache.put(path, size)
        return size

    # Cache management

    def clear_caches(self) -> None:
        """Empty every cache and drop the snapshot. The store is not touched."""
        with self._lock:
            self._exists_cache.clear()
            self._list_cache.clear()
            self._content_cache.clear()
            self._size_cache.clear()
            self._snapshot = None
        logger.debug("All caches cleared")

    def get_cache_stats(self) -> dict[str, int]:
        """Number of entries in each cache."""
        snapshot = self._snapshot
        return {
            "file_exists_cache": len(self._exists_cache),
            "directory_list_cache": len(self._list_cache),
            "small_file_cache": len(self._content_cache),
            "file_size_cache": len(self._size_cache),
            "scope_snapshot": len(snapshot) if snapshot is not None else 0,
        }

    def cached_paths(self) -> set[str]:
        """Every path currently present in any cache."""
        keys: set[str] = set()
        for cache in (self._exists_cache, self._list_cache, self._content_cache, self._size_cache):
            keys.update(cache.keys())
        snapshot = self._snapshot
        if snapshot is not None:
            keys.update(snapshot)
        return keys

    # Lifecycle

    def shutdown(self) -> None:
        """Release the worker pool. The instance must not be used afterwards."""
        self._executor.shutdown(wait=True)

    def __enter__(self) -> "ObjectStoreFileAccess":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

