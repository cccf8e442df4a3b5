"""Storage backends that expose a content package as read-only files.

Use ``elearning_parser.access.factory.open_file_access`` to pick a backend
from a source string.
"""

from elearning_parser.access.archive import ZipFileAccess
from elearning_parser.access.base import SIZE_UNSUPPORTED, FileAccess
from elearning_parser.access.cached import CachedFileAccess
from elearning_parser.access.local import LocalFileAccess
from elearning_parser.access.memory import InMemoryFileAccess
from elearning_parser.access.object_store import (
    COMMON_MODULE_FILES,
    ObjectStoreClient,
    ObjectStoreFileAccess,
    ScopeSnapshot,
)
from elearning_parser.access.resource import ResourceFileAccess
from elearning_parser.access.s3 import S3FileAccess, S3ObjectStore, parse_s3_url

__all__ = [
    "COMMON_MODULE_FILES",
    "SIZE_UNSUPPORTED",
    "CachedFileAccess",
    "FileAccess",
    "InMemoryFileAccess",
    "LocalFileAccess",
    "ObjectStoreClient",
    "ObjectStoreFileAccess",
    "ResourceFileAccess",
    "S3FileAccess",
    "S3ObjectStore",
    "ScopeSnapshot",
    "ZipFileAccess",
    "parse_s3_url",
]
