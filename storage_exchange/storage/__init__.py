"""Storage backend abstraction for storage-exchange.

Provides a unified asynchronous interface over different storage backends:
local filesystem, Azure Blob Storage, AWS S3 and any other fsspec
filesystem.

Usage:
    from storage_exchange.storage import LocalStorage

    async with LocalStorage("/tmp/se-local") as storage:
        await storage.write_text("/hello.txt", "hi")
"""

from storage_exchange.storage.azure import AzureBlobStorage
from storage_exchange.storage.base import (
    AsyncStream,
    Entry,
    FileOperations,
    StorageBackend,
    WriteMode,
)
from storage_exchange.storage.fsspec_backend import FsspecStorage
from storage_exchange.storage.local import LocalStorage
from storage_exchange.storage.s3 import S3Storage

__all__ = [
    "AsyncStream",
    "AzureBlobStorage",
    "Entry",
    "FileOperations",
    "FsspecStorage",
    "LocalStorage",
    "S3Storage",
    "StorageBackend",
    "WriteMode",
]
