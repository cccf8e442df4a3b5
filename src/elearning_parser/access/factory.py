"""Pick a FileAccess backend for a package source string."""

import logging
from pathlib import Path
from typing import Optional, Union

from elearning_parser.access.archive import ZipFileAccess
from elearning_parser.access.base import FileAccess
from elearning_parser.access.cached import CachedFileAccess
from elearning_parser.access.local import LocalFileAccess
from elearning_parser.access.s3 import S3FileAccess, parse_s3_url
from elearning_parser.config import ParserConfig
from elearning_parser.exceptions import InvalidConfigurationError

logger = logging.getLogger(__name__)


def open_file_access(
    source: Union[str, Path],
    config: Optional[ParserConfig] = None,
    cached: bool = False,
) -> FileAccess:
    """Open a content package from a URL, zip file, or directory.

    Args:
        source: "s3://bucket/prefix" URL, path to a .zip file, or directory.
            "s3:///prefix" takes the bucket from the s3.bucket setting.
        config: Settings for S3 and engine tuning (defaults used if omitted)
        cached: Wrap the backend in a CachedFileAccess

    Returns:
        FileAccess for the package

    Raises:
        InvalidConfigurationError: If the source is not a recognized package
    """
    if source is None or str(source) == "":
        raise InvalidConfigurationError("Package source cannot be empty")

    if config is None:
        config = ParserConfig()

    text = str(source)
    if text.startswith("s3://"):
        bucket, prefix = parse_s3_url(text, default_bucket=config.s3.bucket)
        logger.info(f"Opening S3 package: bucket={bucket}, prefix='{prefix}'")
        access: FileAccess = S3FileAccess(
            bucket,
            root_path=prefix or None,
            endpoint_url=config.s3.endpoint_url or None,
            region=config.s3.region or None,
            eager_cache=config.access.eager_cache,
            max_workers=config.access.max_workers,
            streaming_threshold=config.access.streaming_threshold,
            max_cache_entries=config.access.max_cache_entries,
        )
    else:
        path = Path(source)
        if path.is_file() and path.suffix.lower() == ".zip":
            logger.info(f"Opening ZIP package: {path}")
            access = ZipFileAccess(path)
        elif path.is_dir():
            logger.info(f"Opening directory package: {path}")
            access = LocalFileAccess(path)
        else:
            raise InvalidConfigurationError(
                f"Unsupported package source: {text} "
                "(expected an s3:// URL, a .zip file, or a directory)"
            )

    if cached:
        return CachedFileAccess(access)
    return access
