"""Azure Blob Storage backend."""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

from fsspec.asyn import sync
from fsspec.spec import AbstractFileSystem

from storage_exchange.storage.fsspec_backend import FsspecStorage

logger = logging.getLogger(__name__)

__all__ = ["AzureBlobStorage"]


class AzureBlobStorage(FsspecStorage):
    """Azure Blob Storage backend scoped to one container.

    Provides storage operations on a blob container using fsspec/adlfs.
    Virtual paths map to blob names inside the container; folders are
    implicit prefixes.

    Example:
        >>> storage = AzureBlobStorage("devstore", "${AZURE_STORAGE_KEY}", "exchange")
        >>> await storage.exists("/newfolder23/a.txt")
        False

    Environment Variables:
        AZURE_STORAGE_ACCOUNT: Storage account name (when not passed)
        AZURE_STORAGE_KEY: Storage account key (when not passed)

    Options:
        connection_string: Full connection string, used instead of the key
        create_container: Create the container on first use (default True)
    """

    def __init__(
        self,
        account_name: Optional[str],
        account_key: Optional[str],
        container_name: str,
        **options: Any,
    ) -> None:
        self.create_container = options.pop("create_container", True)
        super().__init__("abfs", container_name, **options)
        self.account_name = account_name or os.environ.get("AZURE_STORAGE_ACCOUNT")
        self._account_key = account_key or os.environ.get("AZURE_STORAGE_KEY")
        self.container_name = container_name

    @property
    def scheme(self) -> str:
        return "az"

    def _create_filesystem(self) -> AbstractFileSystem:
        import adlfs

        fs_options: Dict[str, Any] = {}
        if self.account_name:
            fs_options["account_name"] = self.account_name
        if self._account_key:
            fs_options["account_key"] = self._account_key
        if self.options.get("connection_string"):
            fs_options["connection_string"] = self.options["connection_string"]

        fs = adlfs.AzureBlobFileSystem(skip_instance_cache=True, **fs_options)

        if self.create_container and not fs.exists(self.container_name):
            logger.info("Creating container %s in account %s", self.container_name, self.account_name)
            fs.mkdir(self.container_name)
        return fs

    def _close_filesystem(self, fs: AbstractFileSystem) -> None:
        from adlfs.utils import close_credential, close_service_client

        sync(fs.loop, close_service_client, fs)
        if getattr(fs, "credential", None) is not None:
            sync(fs.loop, close_credential, fs)
        logger.debug("Closed service client for %r", self)

    def __repr__(self) -> str:
        return (
            f"AzureBlobStorage(account_name={self.account_name!r}, "
            f"container_name={self.container_name!r})"
        )
