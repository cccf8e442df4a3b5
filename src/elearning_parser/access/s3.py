"""Amazon S3 (and S3-compatible) storage for content packages.

``S3ObjectStore`` adapts a boto3 S3 client to the object store operations
the caching engine needs; ``S3FileAccess`` puts the two together.

Credentials are taken from environment variables when both are set:
    ELEARNING_S3_ACCESS_KEY_ID
    ELEARNING_S3_SECRET_ACCESS_KEY
Otherwise boto3's default credential chain applies (profiles, instance
roles, AWS_* variables).
"""

import io
import logging
import os
from typing import Any, BinaryIO, Optional

import boto3
from botocore.exceptions import ClientError

from elearning_parser.access.object_store import ObjectStoreFileAccess
from elearning_parser.exceptions import InvalidConfigurationError, ObjectNotFoundError

logger = logging.getLogger(__name__)

LIST_PAGE_SIZE = 1000

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


def parse_s3_url(s3_url: str, default_bucket: str = "") -> tuple[str, str]:
    """Parse an S3 URL into bucket and key prefix.

    Args:
        s3_url: S3 URL like "s3://bucket/courses/intro"
        default_bucket: Bucket used when the URL names none ("s3:///courses/intro")

    Returns:
        Tuple of (bucket, prefix); prefix is "" for a bare bucket URL

    Raises:
        InvalidConfigurationError: If URL format is invalid
    """
    if not s3_url or not s3_url.startswith("s3://"):
        raise InvalidConfigurationError(f"Invalid S3 URL format: {s3_url}")
    parts = s3_url[5:].split("/", 1)
    bucket = parts[0] or default_bucket
    if not bucket:
        raise InvalidConfigurationError(f"Invalid S3 URL format: {s3_url}")
    prefix = parts[1].strip("/") if len(parts) == 2 else ""
    return bucket, prefix


def _is_not_found(error: ClientError) -> bool:
    return str(error.response.get("Error", {}).get("Code")) in _NOT_FOUND_CODES


class _BodyReader(io.RawIOBase):
    """Raw stream over a boto3 ``StreamingBody``."""

    def __init__(self, body: Any):
        super().__init__()
        self._body = body

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        data = self._body.read(len(buffer))
        count = len(data)
        buffer[:count] = data
        return count

    def close(self) -> None:
        if not self.closed:
            try:
                self._body.close()
            finally:
                super().close()


class S3ObjectStore:
    """Object store operations on one S3 bucket.

    Attributes:
        bucket: S3 bucket name
        endpoint_url: Custom endpoint for S3-compatible services, or None
        region: Bucket region, or None for the default
    """

    def __init__(
        self,
        bucket: str,
        client: Any = None,
        endpoint_url: Optional[str] = None,
        region: Optional[str] = None,
    ):
        """Initialize the store.

        Args:
            bucket: S3 bucket name
            client: Pre-built boto3 S3 client; one is created if omitted
            endpoint_url: Custom endpoint URL
            region: Region name

        Raises:
            InvalidConfigurationError: If bucket is empty
        """
        if not bucket:
            raise InvalidConfigurationError("S3 bucket name cannot be empty")

        self.bucket = bucket
        self.endpoint_url = endpoint_url
        self.region = region
        self._client = client if client is not None else self._create_client()

    def _create_client(self):
        access_key = os.environ.get("ELEARNING_S3_ACCESS_KEY_ID")
        secret_key = os.environ.get("ELEARNING_S3_SECRET_ACCESS_KEY")

        kwargs: dict[str, Any] = {}
        if self.endpoint_url:
            kwargs["endpoint_url"] = self.endpoint_url
        if self.region:
            kwargs["region_name"] = self.region
        if access_key and secret_key:
            kwargs["aws_access_key_id"] = access_key
            kwargs["aws_secret_access_key"] = secret_key
        else:
            logger.debug("S3 credentials not set in environment, using default credential chain")

        return boto3.client("s3", **kwargs)

    def head_exists(self, key: str) -> bool:
        """Check whether an object exists.

        Raises:
            ClientError: For failures other than a missing object
        """
        try:
            self._client.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            if _is_not_found(e):
                return False
            raise

    def head_size(self, key: str) -> int:
        """Content length of an object in bytes.

        Raises:
            ObjectNotFoundError: If the object does not exist
        """
        try:
            response = self._client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            self._raise_not_found(e, key)
            raise
        return int(response.get("ContentLength", 0))

    def list_page(
        self, prefix: str, continuation_token: Optional[str] = None
    ) -> tuple[list[str], Optional[str]]:
        """Fetch one page of keys under a prefix.

        Returns:
            Tuple of (keys, next continuation token or None)
        """
        kwargs: dict[str, Any] = {"Bucket": self.bucket, "Prefix": prefix, "MaxKeys": LIST_PAGE_SIZE}
        if continuation_token:
            kwargs["ContinuationToken"] = continuation_token

        response = self._client.list_objects_v2(**kwargs)
        keys = [item["Key"] for item in response.get("Contents", [])]
        next_token = response.get("NextContinuationToken") if response.get("IsTruncated") else None
        return keys, next_token

    def list_common_prefixes(self, prefix: str, delimiter: str = "/") -> list[str]:
        """List the key groupings directly below a prefix."""
        response = self._client.list_objects_v2(
            Bucket=self.bucket, Prefix=prefix, Delimiter=delimiter
        )
        return [item["Prefix"] for item in response.get("CommonPrefixes", [])]

    def get_bytes(self, key: str) -> bytes:
        """Download a whole object.

        Raises:
            ObjectNotFoundError: If the object does not exist
        """
        with self.get_stream(key) as stream:
            return stream.read()

    def get_stream(self, key: str) -> BinaryIO:
        """Open an object for streaming reads.

        Raises:
            ObjectNotFoundError: If the object does not exist
        """
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            self._raise_not_found(e, key)
            raise
        return io.BufferedReader(_BodyReader(response["Body"]))

    def _raise_not_found(self, error: ClientError, key: str) -> None:
        if _is_not_found(error):
            raise ObjectNotFoundError(
                f"Object not found: s3://{self.bucket}/{key}",
                metadata={"bucket": self.bucket, "key": key},
            ) from error


class S3FileAccess(ObjectStoreFileAccess):
    """Caching file access for a package stored in an S3 bucket.

    Attributes:
        store: Underlying S3 object store
    """

    def __init__(
        self,
        bucket: str,
        root_path: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        region: Optional[str] = None,
        client: Any = None,
        **engine_options,
    ):
        """Initialize S3 file access.

        Args:
            bucket: S3 bucket name
            root_path: Key prefix of the package; None detects it
            endpoint_url: Custom endpoint URL
            region: Region name
            client: Pre-built boto3 S3 client
            **engine_options: Passed through to ObjectStoreFileAccess
        """
        self.store = S3ObjectStore(bucket, client=client, endpoint_url=endpoint_url, region=region)
        super().__init__(self.store, root_path=root_path, **engine_options)

    @classmethod
    def from_url(cls, s3_url: str, **kwargs) -> "S3FileAccess":
        """Create file access from an "s3://bucket/prefix" URL.

        A URL without a prefix leaves the root to be detected.
        """
        bucket, prefix = parse_s3_url(s3_url)
        return cls(bucket, root_path=prefix or None, **kwargs)

    def __repr__(self) -> str:
        return f"S3FileAccess(bucket={self.store.bucket!r}, root_path={self.root_path!r})"
