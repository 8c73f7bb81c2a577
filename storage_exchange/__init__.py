"""storage-exchange: copy files and folders between named storages.

Usage:
    from storage_exchange import StorageManager, StorageName, copy_file

    async with StorageManager.from_config("storage.yaml") as manager:
        temp = manager.lookup(StorageName.TEMP)
        local = manager.lookup(StorageName.LOCAL)
        await copy_file(temp, "/23skidoo.txt", local, "/newfolder5/23skidoo.txt")
"""

from storage_exchange.config import (
    AzureStorageOptions,
    LocalStorageOptions,
    S3StorageOptions,
    StorageName,
)
from storage_exchange.copy import FolderCopyResult, copy_file, copy_folder
from storage_exchange.errors import (
    ConfigurationError,
    FolderCopyError,
    InvalidOperationError,
    NotFoundError,
    NotRegisteredError,
    StorageError,
    StorageExchangeError,
    TransferError,
    UnsupportedConfigurationError,
)
from storage_exchange.facade import StorageFacade
from storage_exchange.manager import ReleaseFailure, StorageManager, register_backend_factory
from storage_exchange.storage.base import Entry, WriteMode

__version__ = "1.0.0"

__all__ = [
    "AzureStorageOptions",
    "ConfigurationError",
    "Entry",
    "FolderCopyError",
    "FolderCopyResult",
    "InvalidOperationError",
    "LocalStorageOptions",
    "NotFoundError",
    "NotRegisteredError",
    "ReleaseFailure",
    "S3StorageOptions",
    "StorageError",
    "StorageExchangeError",
    "StorageFacade",
    "StorageManager",
    "StorageName",
    "TransferError",
    "UnsupportedConfigurationError",
    "WriteMode",
    "copy_file",
    "copy_folder",
    "register_backend_factory",
]
