"""Shared fixtures for elearning-parser tests."""

import io
import threading
import time
import zipfile
from collections import Counter
from typing import Optional

import pytest


class FakeObjectStore:
    """In-memory object store that counts every call.

    Keys map to bytes. Failures can be injected per key and per operation.
    """

    def __init__(self, objects: Optional[dict] = None, page_size: int = 1000):
        self.objects: dict[str, bytes] = dict(objects or {})
        self.page_size = page_size
        self.calls: Counter = Counter()
        self.keys_fetched: list[str] = []
        self.failing_exists: set[str] = set()
        self.failing_size: set[str] = set()
        self.failing_get: set[str] = set()
        self.fail_listing = False
        self.fail_prefixes = False
        self.list_delay = 0.0
        self.prefix_delay = 0.0
        self.prefixes_started = threading.Event()
        self.sizes_override: dict[str, int] = {}
        self._lock = threading.Lock()

    def _count(self, operation: str) -> None:
        with self._lock:
            self.calls[operation] += 1

    def head_exists(self, key: str) -> bool:
        self._count("head_exists")
        if key in self.failing_exists:
            raise ConnectionError(f"backend unavailable for {key}")
        return key in self.objects

    def head_size(self, key: str) -> int:
        self._count("head_size")
        if key in self.failing_size:
            raise ConnectionError(f"backend unavailable for {key}")
        if key not in self.objects:
            raise FileNotFoundError(key)
        return self.sizes_override.get(key, len(self.objects[key]))

    def list_page(self, prefix: str, continuation_token: Optional[str] = None):
        self._count("list_page")
        if self.list_delay:
            time.sleep(self.list_delay)
        if self.fail_listing:
            raise ConnectionError("listing unavailable")
        keys = sorted(k for k in self.objects if k.startswith(prefix))
        start = int(continuation_token or 0)
        page = keys[start:start + self.page_size]
        end = start + self.page_size
        return page, (str(end) if end < len(keys) else None)

    def list_common_prefixes(self, prefix: str, delimiter: str = "/"):
        self._count("list_common_prefixes")
        self.prefixes_started.set()
        if self.prefix_delay:
            time.sleep(self.prefix_delay)
        if self.fail_prefixes:
            raise ConnectionError("listing unavailable")
        groups = []
        for key in sorted(self.objects):
            if not key.startswith(prefix):
                continue
            rest = key[len(prefix):]
            if delimiter in rest:
                group = prefix + rest.split(delimiter, 1)[0] + delimiter
                if group not in groups:
                    groups.append(group)
        return groups

    def get_bytes(self, key: str) -> bytes:
        self._count("get_bytes")
        self._check_get(key)
        with self._lock:
            self.keys_fetched.append(key)
        return self.objects[key]

    def get_stream(self, key: str):
        self._count("get_stream")
        self._check_get(key)
        with self._lock:
            self.keys_fetched.append(key)
        return io.BytesIO(self.objects[key])

    def _check_get(self, key: str) -> None:
        if key in self.failing_get:
            raise ConnectionError(f"backend unavailable for {key}")
        if key not in self.objects:
            raise FileNotFoundError(key)


@pytest.fixture
def make_store():
    """Factory for call-counting fake object stores."""

    def _make(objects: Optional[dict] = None, page_size: int = 1000) -> FakeObjectStore:
        return FakeObjectStore(objects, page_size=page_size)

    return _make


@pytest.fixture
def package_dir(tmp_path):
    """Extracted SCORM-like package on disk."""
    root = tmp_path / "course"
    (root / "content" / "images").mkdir(parents=True)
    (root / "imsmanifest.xml").write_text("<manifest identifier=\"course\"/>")
    (root / "content" / "index.html").write_text("<html>lesson</html>")
    (root / "content" / "images" / "logo.png").write_bytes(b"\x89PNG\r\n")
    return root


def build_zip(entries: dict, directories: tuple = ()) -> bytes:
    """Build zip archive bytes from a name -> content mapping."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        for directory in directories:
            archive.writestr(zipfile.ZipInfo(directory), b"")
        for name, content in entries.items():
            archive.writestr(name, content)
    return buffer.getvalue()


@pytest.fixture
def zip_builder():
    """Expose build_zip to tests."""
    return build_zip


@pytest.fixture
def rooted_zip(tmp_path):
    """Zip file on disk whose entries share one top-level directory."""
    path = tmp_path / "course.zip"
    path.write_bytes(
        build_zip(
            {
                "course/imsmanifest.xml": b"<manifest/>",
                "course/content/index.html": b"<html>lesson</html>",
                "course/content/quiz.html": b"<html>quiz</html>",
            },
            directories=("course/", "course/content/"),
        )
    )
    return path


@pytest.fixture
def flat_zip(tmp_path):
    """Zip file on disk with files at the top level."""
    path = tmp_path / "flat.zip"
    path.write_bytes(
        build_zip(
            {
                "imsmanifest.xml": b"<manifest/>",
                "xAPI.js": b"// xapi",
                "content/index.html": b"<html/>",
            }
        )
    )
    return path
