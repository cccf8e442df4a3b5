"""Tests for the object store file access engine."""

import threading

import pytest

from elearning_parser.access.object_store import (
    COMMON_MODULE_FILES,
    STREAMING_THRESHOLD,
    ObjectStoreFileAccess,
    ScopeSnapshot,
)
from elearning_parser.exceptions import (
    FileAccessError,
    InvalidConfigurationError,
    PackageFileNotFoundError,
)

MIB = 1024 * 1024


@pytest.fixture
def engines():
    """Track engines created by a test and shut them down afterwards."""
    created = []

    def _make(client, **kwargs):
        kwargs.setdefault("eager_cache", False)
        engine = ObjectStoreFileAccess(client, **kwargs)
        created.append(engine)
        return engine

    yield _make

    for engine in created:
        engine.shutdown()


class TestScopeSnapshot:
    """Tests for ScopeSnapshot."""

    def test_membership_and_order(self):
        """Paths keep listing order and support membership checks."""
        snapshot = ScopeSnapshot(("b.txt", "a.txt"))

        assert list(snapshot) == ["b.txt", "a.txt"]
        assert "a.txt" in snapshot
        assert "c.txt" not in snapshot
        assert len(snapshot) == 2

    def test_is_immutable(self):
        """Snapshots cannot be modified after publication."""
        snapshot = ScopeSnapshot(("a.txt",))
        with pytest.raises(AttributeError):
            snapshot.paths = ("b.txt",)


class TestFileExists:
    """Tests for single-path existence checks."""

    def test_missing_path_is_cached_false(self, make_store, engines):
        """A missing path returns False and the second check makes no backend call."""
        store = make_store({"a.txt": b"a"})
        engine = engines(store, root_path="")

        assert engine.file_exists("missing.txt") is False
        assert engine.file_exists("missing.txt") is False
        assert store.calls["head_exists"] == 1

    def test_existing_path_is_cached(self, make_store, engines):
        """A present path returns True once and is then served from cache."""
        store = make_store({"course/a.txt": b"a"})
        engine = engines(store, root_path="course")

        assert engine.file_exists("a.txt") is True
        assert engine.file_exists("a.txt") is True
        assert store.calls["head_exists"] == 1

    def test_backend_error_is_false_and_cached(self, make_store, engines):
        """A failing existence call reads as False and is remembered."""
        store = make_store({"a.txt": b"a"})
        store.failing_exists.add("a.txt")
        engine = engines(store, root_path="")

        assert engine.file_exists("a.txt") is False
        store.failing_exists.clear()
        assert engine.file_exists("a.txt") is False
        assert store.calls["head_exists"] == 1

    def test_snapshot_answers_without_backend(self, make_store, engines):
        """With a snapshot, existence comes from membership, not head calls."""
        store = make_store({"course/a.txt": b"a", "course/b.txt": b"b"})
        engine = engines(store, root_path="course", eager_cache=True)

        assert engine.file_exists("a.txt") is True
        assert engine.file_exists("zzz.txt") is False
        assert engine.file_exists("/b.txt") is True
        assert store.calls["head_exists"] == 0

    def test_leading_slash_stays_under_root(self, make_store, engines):
        """A leading slash is stripped and the path still resolves under the root."""
        store = make_store({"imsmanifest.xml": b"bucket", "course/imsmanifest.xml": b"course"})
        engine = engines(store, root_path="course")

        assert engine.full_path("/imsmanifest.xml") == "course/imsmanifest.xml"
        assert engine.full_path("/") == "course"
        assert engine.file_exists("/imsmanifest.xml") is True
        assert engine.read_bytes("/imsmanifest.xml") == b"course"
        assert store.keys_fetched == ["course/imsmanifest.xml"]

    def test_leading_slash_outside_root_is_missing(self, make_store, engines):
        """Keys outside the root cannot be reached with an absolute path."""
        store = make_store({"shared/lib.js": b"x", "course/a.txt": b"a"})
        engine = engines(store, root_path="course")

        assert engine.file_exists("/shared/lib.js") is False
        with pytest.raises(PackageFileNotFoundError):
            engine.get_file_contents("/shared/lib.js")

    def test_none_path_raises(self, make_store, engines):
        """None is rejected before any backend call."""
        store = make_store()
        engine = engines(store, root_path="")

        with pytest.raises(InvalidConfigurationError):
            engine.file_exists(None)
        assert store.calls["head_exists"] == 0


class TestFileExistsBatch:
    """Tests for parallel existence checks."""

    def test_failing_paths_are_omitted(self, make_store, engines):
        """Existing paths map to True, failures are left out, nothing raises."""
        store = make_store({"a.txt": b"a", "b.txt": b"b"})
        store.failing_exists.add("broken.txt")
        engine = engines(store, root_path="")

        results = engine.file_exists_batch(["a.txt", "b.txt", "broken.txt", "missing.txt"])

        assert results == {"a.txt": True, "b.txt": True, "missing.txt": False}

    def test_uses_cache_for_known_paths(self, make_store, engines):
        """Paths already checked do not hit the backend again."""
        store = make_store({"a.txt": b"a"})
        engine = engines(store, root_path="")
        engine.file_exists("a.txt")

        results = engine.file_exists_batch(["a.txt", "c.txt"])

        assert results == {"a.txt": True, "c.txt": False}
        assert store.calls["head_exists"] == 2

    def test_results_are_cached(self, make_store, engines):
        """Batch results feed later single checks."""
        store = make_store({"a.txt": b"a"})
        engine = engines(store, root_path="")

        engine.file_exists_batch(["a.txt", "b.txt"])
        engine.file_exists("a.txt")
        engine.file_exists("b.txt")

        assert store.calls["head_exists"] == 2

    def test_failed_path_is_retried_later(self, make_store, engines):
        """A failed batch check is not cached."""
        store = make_store({"a.txt": b"a"})
        store.failing_exists.add("a.txt")
        engine = engines(store, root_path="")

        assert engine.file_exists_batch(["a.txt"]) == {}
        store.failing_exists.clear()
        assert engine.file_exists_batch(["a.txt"]) == {"a.txt": True}

    def test_snapshot_avoids_backend(self, make_store, engines):
        """With a snapshot, batch checks make no head calls."""
        store = make_store({"a.txt": b"a"})
        engine = engines(store, root_path="", eager_cache=True)

        assert engine.file_exists_batch(["a.txt", "b.txt"]) == {"a.txt": True, "b.txt": False}
        assert store.calls["head_exists"] == 0

    def test_none_list_raises(self, make_store, engines):
        engine = engines(make_store(), root_path="")
        with pytest.raises(InvalidConfigurationError):
            engine.file_exists_batch(None)


class TestListFiles:
    """Tests for directory listing."""

    def test_paginates_and_strips_root(self, make_store, engines):
        """Every page is consumed and keys come back root-relative."""
        objects = {f"course/content/page{i}.html": b"x" for i in range(5)}
        store = make_store(objects, page_size=2)
        engine = engines(store, root_path="course")

        files = engine.list_files("content")

        assert files == [f"content/page{i}.html" for i in range(5)]
        assert store.calls["list_page"] == 3

    def test_drops_directory_markers(self, make_store, engines):
        """Keys ending in a slash are not files."""
        store = make_store({"course/content/": b"", "course/content/a.html": b"a"})
        engine = engines(store, root_path="course")

        assert engine.list_files("content") == ["content/a.html"]

    def test_drops_keys_outside_root(self, make_store, engines):
        """Keys returned outside the root prefix are ignored."""
        store = make_store({"course/a.html": b"a", "other/b.html": b"b"})
        store.list_page = lambda prefix, token=None: (["course/a.html", "other/b.html"], None)
        engine = engines(store, root_path="course")

        assert engine.list_files("") == ["a.html"]

    def test_listing_is_memoized(self, make_store, engines):
        """A directory is listed on the backend only once."""
        store = make_store({"a.html": b"a"})
        engine = engines(store, root_path="")

        engine.list_files("")
        engine.list_files("")

        assert store.calls["list_page"] == 1

    def test_listing_error_propagates_and_is_not_cached(self, make_store, engines):
        """A failed listing raises FileAccessError and is retried next time."""
        store = make_store({"a.html": b"a"})
        store.fail_listing = True
        engine = engines(store, root_path="")

        with pytest.raises(FileAccessError, match="Failed to list files"):
            engine.list_files("")

        store.fail_listing = False
        assert engine.list_files("") == ["a.html"]


class TestGetFileContents:
    """Tests for reads around the streaming threshold."""

    def test_small_file_is_fetched_once(self, make_store, engines):
        """The second read of a small file returns the same bytes with no backend call."""
        store = make_store({"a.txt": b"0123456789"})
        engine = engines(store, root_path="")

        first = engine.read_bytes("a.txt")
        calls_after_first = sum(store.calls.values())
        second = engine.read_bytes("a.txt")

        assert first == second == b"0123456789"
        assert sum(store.calls.values()) == calls_after_first
        assert store.keys_fetched == ["a.txt"]

    def test_large_file_is_streamed_every_time(self, make_store, engines):
        """Files over the threshold are never cached."""
        store = make_store({"big.bin": b"x" * 100})
        engine = engines(store, root_path="", streaming_threshold=10)

        assert engine.read_bytes("big.bin") == b"x" * 100
        assert engine.read_bytes("big.bin") == b"x" * 100

        assert store.calls["get_stream"] == 2
        assert store.calls["get_bytes"] == 0
        assert engine.get_cache_stats()["small_file_cache"] == 0

    def test_file_at_threshold_is_cached(self, make_store, engines):
        """The threshold itself is inclusive."""
        store = make_store({"edge.bin": b"x" * 10})
        engine = engines(store, root_path="", streaming_threshold=10)

        engine.read_bytes("edge.bin")
        engine.read_bytes("edge.bin")

        assert store.calls["get_bytes"] == 1

    def test_missing_file_raises_not_found(self, make_store, engines):
        """A missing object surfaces as PackageFileNotFoundError."""
        engine = engines(make_store({"a.txt": b"a"}), root_path="")

        with pytest.raises(PackageFileNotFoundError, match="missing.txt"):
            engine.get_file_contents("missing.txt")

    def test_backend_error_raises_file_access_error(self, make_store, engines):
        """Other read failures surface as FileAccessError."""
        store = make_store({"a.txt": b"a"})
        store.failing_get.add("a.txt")
        engine = engines(store, root_path="")

        with pytest.raises(FileAccessError) as exc_info:
            engine.get_file_contents("a.txt")
        assert not isinstance(exc_info.value, PackageFileNotFoundError)
        assert exc_info.value.metadata["path"] == "a.txt"

    def test_content_cache_evicts_oldest_first(self, make_store, engines):
        """The content cache drops the earliest inserted file, even if recently read."""
        store = make_store({"a": b"a", "b": b"b", "c": b"c"})
        engine = engines(store, root_path="", max_cache_entries=2)

        engine.read_bytes("a")
        engine.read_bytes("b")
        engine.read_bytes("a")
        engine.read_bytes("c")
        engine.read_bytes("b")
        engine.read_bytes("a")

        assert store.keys_fetched == ["a", "b", "c", "a"]

    def test_progress_callback_sees_whole_read(self, make_store, engines):
        """A progress observer is notified when the stream closes."""
        events = []
        store = make_store({"a.txt": b"0123456789"})
        engine = engines(store, root_path="", progress_callback=lambda n, total: events.append((n, total)))

        with engine.get_file_contents("a.txt") as stream:
            assert stream.read() == b"0123456789"

        assert events[-1] == (10, 10)


class TestFileSize:
    """Tests for size caching."""

    def test_non_zero_size_is_cached(self, make_store, engines):
        store = make_store({"a.txt": b"abc"})
        engine = engines(store, root_path="")

        assert engine.get_cached_file_size("a.txt") == 3
        assert engine.get_cached_file_size("a.txt") == 3
        assert store.calls["head_size"] == 1

    def test_zero_size_is_fetched_again(self, make_store, engines):
        """A size of 0 is treated as unknown."""
        store = make_store({"empty.txt": b""})
        engine = engines(store, root_path="")

        assert engine.get_cached_file_size("empty.txt") == 0
        assert engine.get_cached_file_size("empty.txt") == 0
        assert store.calls["head_size"] == 2

    def test_failed_lookup_returns_zero(self, make_store, engines):
        store = make_store({"a.txt": b"abc"})
        store.failing_size.add("a.txt")
        engine = engines(store, root_path="")

        assert engine.get_cached_file_size("a.txt") == 0


class TestScan:
    """Tests for the once-computed scope snapshot."""

    def test_concurrent_scans_list_once(self, make_store, engines):
        """N concurrent callers trigger one full listing and share its result."""
        store = make_store({f"course/f{i}.txt": b"x" for i in range(20)})
        store.list_delay = 0.05
        engine = engines(store, root_path="course")

        callers = 8
        barrier = threading.Barrier(callers)
        results = [None] * callers

        def worker(index):
            barrier.wait()
            results[index] = engine.scan()

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(callers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert store.calls["list_page"] == 1
        assert all(result is results[0] for result in results)
        assert len(results[0]) == 20

    def test_scan_marks_paths_as_existing(self, make_store, engines):
        store = make_store({"a.txt": b"a", "b.txt": b"b"})
        engine = engines(store, root_path="")

        engine.scan()

        assert engine.get_cache_stats()["file_exists_cache"] == 2
        assert engine.file_exists("a.txt") is True
        assert store.calls["head_exists"] == 0

    def test_get_all_files(self, make_store, engines):
        store = make_store({"course/a.txt": b"a", "course/sub/b.txt": b"b"})
        engine = engines(store, root_path="course")

        assert engine.get_all_files() == ["a.txt", "sub/b.txt"]
        engine.get_all_files()
        assert store.calls["list_page"] == 1

    def test_eager_scan_runs_at_construction(self, make_store, engines):
        store = make_store({"a.txt": b"a"})
        engines(store, root_path="", eager_cache=True)

        assert store.calls["list_page"] == 1

    def test_eager_scan_failure_falls_back_to_lazy(self, make_store, engines):
        """A failed eager scan does not prevent construction."""
        store = make_store({"a.txt": b"a"})
        store.fail_listing = True
        engine = engines(store, root_path="", eager_cache=True)

        assert engine.get_cache_stats()["scope_snapshot"] == 0
        store.fail_listing = False
        assert engine.get_all_files() == ["a.txt"]


class TestTotalSize:
    """Tests for size aggregation."""

    def test_round_trip_small_and_large(self, make_store, engines):
        """Total size, single fetch for small reads, repeated streams for large reads."""
        store = make_store({"a.txt": b"x" * 10, "big.bin": b"y" * (10 * MIB)})
        engine = engines(store, root_path="", streaming_threshold=5 * MIB)

        assert engine.get_total_size() == 10 + 10 * MIB

        engine.read_bytes("a.txt")
        engine.read_bytes("a.txt")
        assert store.keys_fetched.count("a.txt") == 1

        engine.read_bytes("big.bin")
        engine.read_bytes("big.bin")
        assert store.keys_fetched.count("big.bin") == 2

    def test_cached_sizes_need_no_backend(self, make_store, engines):
        store = make_store({"a.txt": b"abc", "b.txt": b"de"})
        engine = engines(store, root_path="")

        assert engine.get_total_size() == 5
        assert engine.get_total_size() == 5
        assert store.calls["head_size"] == 2

    def test_failed_sizes_contribute_zero(self, make_store, engines):
        store = make_store({"a.txt": b"abc", "b.txt": b"de"})
        store.failing_size.add("b.txt")
        engine = engines(store, root_path="")

        assert engine.get_total_size() == 3

    def test_empty_root(self, make_store, engines):
        engine = engines(make_store(), root_path="")
        assert engine.get_total_size() == 0


class TestPrefetch:
    """Tests for best-effort prefetching of manifest files."""

    def test_tolerates_missing_and_failing_files(self, make_store, engines):
        """Prefetch never raises; found files become cache hits."""
        store = make_store({"imsmanifest.xml": b"<manifest/>"})
        store.failing_exists.add("cmi5.xml")
        engine = engines(store, root_path="")

        engine.prefetch_common_files()
        head_calls = store.calls["head_exists"]

        assert engine.file_exists("imsmanifest.xml") is True
        assert store.calls["head_exists"] == head_calls
        assert engine.read_bytes("imsmanifest.xml") == b"<manifest/>"
        assert store.calls["get_bytes"] == 1

    def test_checks_every_candidate(self, make_store, engines):
        store = make_store()
        engine = engines(store, root_path="")

        engine.prefetch_common_files()

        assert store.calls["head_exists"] == len(COMMON_MODULE_FILES)

    def test_skips_content_cached_files(self, make_store, engines):
        store = make_store({"imsmanifest.xml": b"<manifest/>"})
        engine = engines(store, root_path="")
        engine.read_bytes("imsmanifest.xml")

        engine.prefetch_common_files()

        assert store.calls["get_bytes"] == 1
        assert store.calls["head_exists"] == len(COMMON_MODULE_FILES) - 1

    def test_large_manifest_is_not_cached(self, make_store, engines):
        store = make_store({"imsmanifest.xml": b"x" * 50})
        engine = engines(store, root_path="", streaming_threshold=10)

        engine.prefetch_common_files()

        assert store.calls["get_bytes"] == 0
        assert engine.get_cache_stats()["file_size_cache"] == 1


class TestRootDetection:
    """Tests for detecting a single top-level prefix."""

    def test_single_prefix_becomes_root(self, make_store, engines):
        store = make_store({"course/imsmanifest.xml": b"m", "course/a.html": b"a"})
        engine = engines(store)

        assert engine.root_path == "course"
        assert engine.internal_root_directory() == "course"
        assert engine.file_exists("imsmanifest.xml") is True
        assert store.calls["list_common_prefixes"] == 1

    def test_multiple_prefixes_leave_root_empty(self, make_store, engines):
        store = make_store({"one/a.html": b"a", "two/b.html": b"b"})
        engine = engines(store)

        assert engine.root_path == ""

    def test_detection_failure_leaves_root_empty(self, make_store, engines):
        store = make_store({"course/a.html": b"a"})
        store.fail_prefixes = True
        engine = engines(store)

        assert engine.root_path == ""

    def test_explicit_root_skips_detection(self, make_store, engines):
        store = make_store({"course/a.html": b"a"})
        engine = engines(store, root_path="course/")

        assert engine.root_path == "course"
        assert store.calls["list_common_prefixes"] == 0

    def test_concurrent_detection_runs_once(self, make_store, engines):
        store = make_store({"course/a.html": b"a"})
        engine = engines(store)
        barrier = threading.Barrier(6)
        roots = []

        def worker():
            barrier.wait()
            roots.append(engine.root_path)

        threads = [threading.Thread(target=worker) for _ in range(6)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert roots == ["course"] * 6
        assert store.calls["list_common_prefixes"] == 1


class TestReconfigure:
    """Tests for switching the root and clearing caches."""

    def _populate(self, engine):
        engine.file_exists("x.txt")
        engine.file_exists("gone.txt")
        engine.list_files("")
        engine.read_bytes("x.txt")
        engine.scan()

    def test_no_old_root_entries_survive(self, make_store, engines):
        """Immediately after reconfigure no cache holds a key from the old root."""
        store = make_store({"old/x.txt": b"x", "new/y.txt": b"y"})
        engine = engines(store, root_path="old")
        self._populate(engine)
        old_keys = engine.cached_paths()
        assert old_keys

        engine.reconfigure("new")

        assert old_keys & engine.cached_paths() == set()
        assert all(count == 0 for count in engine.get_cache_stats().values())
        assert engine.root_path == "new"

    def test_old_results_are_not_reused(self, make_store, engines):
        store = make_store({"old/x.txt": b"x", "new/y.txt": b"y"})
        engine = engines(store, root_path="old")
        self._populate(engine)

        engine.reconfigure("new/")

        assert engine.file_exists("x.txt") is False
        assert engine.file_exists("y.txt") is True
        assert engine.list_files("") == ["y.txt"]

    def test_eager_mode_rescans_new_root(self, make_store, engines):
        store = make_store({"old/x.txt": b"x", "new/y.txt": b"y"})
        engine = engines(store, root_path="old", eager_cache=True)

        engine.reconfigure("new")

        assert engine.cached_paths() == {"y.txt"}
        assert store.calls["list_page"] == 2

    def test_reconfigure_during_root_detection(self, make_store, engines):
        """A detection still running when reconfigure starts cannot overwrite the new root."""
        store = make_store({"old/x.txt": b"x"})
        store.prefix_delay = 0.3
        engine = engines(store)

        detector = threading.Thread(target=lambda: engine.root_path)
        detector.start()
        assert store.prefixes_started.wait(timeout=5)

        engine.reconfigure("new")
        detector.join()

        assert engine.root_path == "new"
        assert engine.full_path("y.txt") == "new/y.txt"
        assert store.calls["list_common_prefixes"] == 1

    def test_clear_caches_keeps_root(self, make_store, engines):
        store = make_store({"old/x.txt": b"x"})
        engine = engines(store, root_path="old")
        self._populate(engine)

        engine.clear_caches()

        assert engine.cached_paths() == set()
        assert engine.root_path == "old"
        assert engine.read_bytes("x.txt") == b"x"


class TestClearRace:
    """Stress test for clearing caches while readers populate them."""

    def test_clear_during_population(self, make_store, engines):
        """Readers racing with clears never fail and never see wrong bytes.

        A population in flight during a clear may re-insert its entry
        afterwards; that is accepted. Once readers stop, a final clear
        leaves every cache empty.
        """
        objects = {f"f{i}.txt": f"content-{i}".encode() for i in range(20)}
        store = make_store(objects)
        engine = engines(store, root_path="")
        errors = []
        stop = threading.Event()

        def reader(offset):
            i = offset
            while not stop.is_set():
                name = f"f{i % 20}.txt"
                try:
                    assert engine.file_exists(name) is True
                    assert engine.read_bytes(name) == objects[name]
                except Exception as e:
                    errors.append(e)
                i += 1

        def clearer():
            for _ in range(200):
                engine.clear_caches()

        readers = [threading.Thread(target=reader, args=(n,)) for n in range(4)]
        for thread in readers:
            thread.start()
        clear_thread = threading.Thread(target=clearer)
        clear_thread.start()
        clear_thread.join()
        stop.set()
        for thread in readers:
            thread.join()

        assert errors == []
        engine.clear_caches()
        assert engine.cached_paths() == set()


class TestLifecycle:
    """Tests for construction defaults and shutdown."""

    def test_defaults(self, make_store):
        with ObjectStoreFileAccess(make_store(), root_path="", eager_cache=False) as engine:
            assert engine.streaming_threshold == STREAMING_THRESHOLD
            assert engine.eager_cache is False

    def test_context_manager_shuts_down_pool(self, make_store):
        with ObjectStoreFileAccess(make_store(), root_path="", eager_cache=False) as engine:
            pass
        with pytest.raises(RuntimeError):
            engine.file_exists_batch(["a.txt"])
