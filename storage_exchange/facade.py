"""Restricted view of a registered storage backend."""

from __future__ import annotations

from typing import List, Optional

from storage_exchange.config import StorageName
from storage_exchange.storage.base import (
    AsyncStream,
    Entry,
    FileOperations,
    StorageBackend,
    WriteMode,
)

__all__ = ["StorageFacade"]


class StorageFacade(FileOperations):
    """Forwards data operations to a backend owned by the registry.

    A facade has no ``release``: only the ``StorageManager`` that built the
    backend ends its lifetime. Facades are cheap and created per lookup.
    """

    def __init__(self, name: StorageName, backend: StorageBackend) -> None:
        self._name = name
        self._backend = backend

    @property
    def name(self) -> StorageName:
        return self._name

    @property
    def scheme(self) -> str:
        return self._backend.scheme

    async def exists(self, path: str) -> bool:
        return await self._backend.exists(path)

    async def list(self, path: Optional[str] = None, recursive: bool = False) -> List[Entry]:
        return await self._backend.list(path, recursive=recursive)

    async def open_read(self, path: str) -> AsyncStream:
        return await self._backend.open_read(path)

    async def open_write(self, path: str, mode: WriteMode = WriteMode.CREATE) -> AsyncStream:
        return await self._backend.open_write(path, mode)

    async def rename(self, path: str, new_path: str) -> None:
        await self._backend.rename(path, new_path)

    async def remove(self, path: str, recursive: bool = False) -> None:
        await self._backend.remove(path, recursive=recursive)

    async def read_bytes(self, path: str) -> bytes:
        return await self._backend.read_bytes(path)

    async def write_bytes(
        self, path: str, data: bytes, mode: WriteMode = WriteMode.CREATE
    ) -> int:
        return await self._backend.write_bytes(path, data, mode)

    def __repr__(self) -> str:
        return f"StorageFacade({self._name.value}: {self._backend!r})"
