"""Content store over S3-compatible object storage.

The pipeline talks to the store through the narrow ContentStore interface;
S3ContentStore binds it to boto3 with path-style addressing so MinIO and
other S3-compatible servers work behind a configurable internal endpoint.
"""

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Optional, Union

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from hlspipe.core.config import Settings

SEGMENT_CONTENT_TYPE = "video/MP2T"
PLAYLIST_CONTENT_TYPE = "application/vnd.apple.mpegurl"

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


class StorageError(Exception):
    """Raised when an object store operation fails."""

    def __init__(self, message: str, bucket: str = "", key: str = ""):
        super().__init__(message)
        self.bucket = bucket
        self.key = key


class ObjectNotFoundError(StorageError):
    """Raised when the requested object does not exist."""


@dataclass
class StorageResult:
    """Result of a storage write."""
    bucket: str
    key: str
    file_size: int = 0
    etag: Optional[str] = None


@dataclass
class StorageConfig:
    """Storage configuration."""
    endpoint_url: str
    region: str = "us-east-1"
    access_key: str = ""
    secret_key: str = ""

    @classmethod
    def from_settings(cls, settings: Settings) -> "StorageConfig":
        return cls(
            endpoint_url=settings.STORAGE_ENDPOINT_URL,
            region=settings.STORAGE_REGION,
            access_key=settings.STORAGE_ACCESS_KEY,
            secret_key=settings.STORAGE_SECRET_KEY,
        )


def get_s3_client(config: StorageConfig):
    """Create a boto3 S3 client bound to the internal endpoint.

    Path-style addressing keeps the bucket in the URL path, which is what
    the public URL rewrite relies on.
    """
    session = boto3.session.Session(
        aws_access_key_id=config.access_key or None,
        aws_secret_access_key=config.secret_key or None,
        region_name=config.region,
    )
    return session.client(
        "s3",
        endpoint_url=config.endpoint_url,
        config=BotoConfig(
            signature_version="s3v4",
            s3={"addressing_style": "path"},
        ),
    )


_shared_client = None
_shared_client_config: Optional[StorageConfig] = None


def get_shared_s3_client(config: StorageConfig):
    """Get the process-wide S3 client, created on first use.

    boto3 clients are thread-safe; a new one is built only if the
    configuration changes.
    """
    global _shared_client, _shared_client_config
    if _shared_client is None or _shared_client_config != config:
        _shared_client = get_s3_client(config)
        _shared_client_config = config
    return _shared_client


def _is_not_found(exc: ClientError) -> bool:
    error = exc.response.get("Error", {})
    status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return str(error.get("Code")) in _NOT_FOUND_CODES or status == 404


class ContentStore(ABC):
    """Abstract object store used by the pipeline and the playback resolver."""

    @abstractmethod
    def put(
        self,
        bucket: str,
        key: str,
        data: Union[bytes, BinaryIO],
        content_type: str = "application/octet-stream",
    ) -> StorageResult:
        """Write an object, replacing any existing object at the key."""

    @abstractmethod
    def get(self, bucket: str, key: str) -> BinaryIO:
        """Open an object for reading.

        Raises:
            ObjectNotFoundError: If the object does not exist
        """

    @abstractmethod
    def head(self, bucket: str, key: str) -> bool:
        """Check whether an object exists without fetching its content."""

    @abstractmethod
    def list_keys(self, bucket: str, prefix: str) -> list[str]:
        """List object keys under a prefix in ascending key order."""

    def upload_file(
        self,
        bucket: str,
        key: str,
        file_path: Union[str, Path],
        content_type: str = "application/octet-stream",
    ) -> StorageResult:
        """Upload a local file."""
        with open(file_path, "rb") as f:
            return self.put(bucket, key, f, content_type)

    def download(self, bucket: str, key: str, destination: Union[str, Path]) -> Path:
        """Stream an object into a local file, creating parent directories.

        Returns:
            Path of the written file
        """
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        body = self.get(bucket, key)
        try:
            with open(destination, "wb") as out:
                while True:
                    chunk = body.read(1024 * 1024)
                    if not chunk:
                        break
                    out.write(chunk)
        except OSError as e:
            raise StorageError(f"Failed to write {bucket}/{key} to {destination}: {e}", bucket, key) from e
        finally:
            close = getattr(body, "close", None)
            if close is not None:
                close()
        return destination


class S3ContentStore(ContentStore):
    """S3/MinIO compatible content store."""

    def __init__(self, config: StorageConfig, client=None):
        self.config = config
        self._client = client

    @property
    def client(self):
        """Get or create S3 client."""
        if self._client is None:
            self._client = get_s3_client(self.config)
        return self._client

    def put(
        self,
        bucket: str,
        key: str,
        data: Union[bytes, BinaryIO],
        content_type: str = "application/octet-stream",
    ) -> StorageResult:
        if isinstance(data, (bytes, bytearray)):
            file_size = len(data)
        else:
            file_size = os.fstat(data.fileno()).st_size if hasattr(data, "fileno") else 0

        try:
            response = self.client.put_object(
                Bucket=bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to put {bucket}/{key}: {e}", bucket, key) from e

        etag = response.get("ETag", "").strip('"')
        return StorageResult(bucket=bucket, key=key, file_size=file_size, etag=etag)

    def get(self, bucket: str, key: str) -> BinaryIO:
        try:
            response = self.client.get_object(Bucket=bucket, Key=key)
        except ClientError as e:
            if _is_not_found(e):
                raise ObjectNotFoundError(f"Object {bucket}/{key} does not exist", bucket, key) from e
            raise StorageError(f"Failed to get {bucket}/{key}: {e}", bucket, key) from e
        except BotoCoreError as e:
            raise StorageError(f"Failed to get {bucket}/{key}: {e}", bucket, key) from e

        body = response.get("Body")
        if body is None:
            raise StorageError(f"No body received for {bucket}/{key}", bucket, key)
        return body

    def head(self, bucket: str, key: str) -> bool:
        try:
            self.client.head_object(Bucket=bucket, Key=key)
            return True
        except ClientError as e:
            if _is_not_found(e):
                return False
            raise StorageError(f"Failed to head {bucket}/{key}: {e}", bucket, key) from e
        except BotoCoreError as e:
            raise StorageError(f"Failed to head {bucket}/{key}: {e}", bucket, key) from e

    def list_keys(self, bucket: str, prefix: str) -> list[str]:
        keys = []
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
                for obj in page.get("Contents", []):
                    keys.append(obj["Key"])
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to list {bucket}/{prefix}: {e}", bucket, prefix) from e
        return sorted(keys)
