"""AWS S3 storage backend."""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

from fsspec.spec import AbstractFileSystem

from storage_exchange.storage.fsspec_backend import FsspecStorage

logger = logging.getLogger(__name__)

__all__ = ["S3Storage"]


class S3Storage(FsspecStorage):
    """AWS S3 storage backend scoped to a bucket (and optional prefix).

    Provides storage operations on AWS S3 using fsspec/s3fs. Works with
    S3-compatible stores (MinIO, LocalStack) through ``endpoint_url``.

    Appending rewrites the whole object: S3 has no native append.

    Example:
        >>> storage = S3Storage("my-bucket", prefix="exchange")
        >>> await storage.write_text("/a.txt", "hello")

    Environment Variables:
        AWS_ACCESS_KEY_ID: AWS access key
        AWS_SECRET_ACCESS_KEY: AWS secret key
        AWS_REGION: AWS region
        AWS_ENDPOINT_URL: Custom S3 endpoint (for MinIO, LocalStack, etc.)

    Options:
        anon: If True, use anonymous access (for public buckets)
    """

    def __init__(
        self,
        bucket: str,
        key: Optional[str] = None,
        secret: Optional[str] = None,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        prefix: str = "",
        **options: Any,
    ) -> None:
        root = f"{bucket}/{prefix.strip('/')}".rstrip("/")
        super().__init__("s3", root, **options)
        self.bucket = bucket
        self.prefix = prefix.strip("/")
        self._key = key or os.environ.get("AWS_ACCESS_KEY_ID")
        self._secret = secret or os.environ.get("AWS_SECRET_ACCESS_KEY")
        self.region = region or os.environ.get("AWS_REGION")
        self.endpoint_url = endpoint_url or os.environ.get("AWS_ENDPOINT_URL")

    def _create_filesystem(self) -> AbstractFileSystem:
        import s3fs

        fs_options: Dict[str, Any] = {}

        if self._key and self._secret:
            fs_options["key"] = self._key
            fs_options["secret"] = self._secret

        client_kwargs: Dict[str, Any] = {}
        if self.region:
            client_kwargs["region_name"] = self.region
        if self.endpoint_url:
            client_kwargs["endpoint_url"] = self.endpoint_url
        if client_kwargs:
            fs_options["client_kwargs"] = client_kwargs

        if self.options.get("anon"):
            fs_options["anon"] = True

        return s3fs.S3FileSystem(skip_instance_cache=True, **fs_options)

    def _close_filesystem(self, fs: AbstractFileSystem) -> None:
        import s3fs

        # The client is only created on first request
        creator = getattr(fs, "_s3creator", None)
        if creator is not None:
            s3fs.S3FileSystem.close_session(fs.loop, creator)
            logger.debug("Closed S3 session for %r", self)

    def __repr__(self) -> str:
        return f"S3Storage(bucket={self.bucket!r}, prefix={self.prefix!r})"
