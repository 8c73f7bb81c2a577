"""Universal fsspec-based storage backend.

Provides a single storage backend that works with any fsspec-compatible
filesystem (memory, local, S3, Azure Blob, GCS, ...). The Azure and S3
backends build on it and only differ in how the filesystem is created.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import fsspec
from fsspec.spec import AbstractFileSystem

from storage_exchange import paths
from storage_exchange.errors import InvalidOperationError, NotFoundError
from storage_exchange.storage.base import (
    AsyncStream,
    Entry,
    StorageBackend,
    WriteMode,
    translate_errors,
)

logger = logging.getLogger(__name__)

__all__ = ["FsspecStorage"]

# Protocols whose folders must exist before a file can be written
_HIERARCHICAL_PROTOCOLS = ("file", "local")


def _to_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value)
    return None


class FsspecStorage(StorageBackend):
    """Storage backend over an fsspec filesystem.

    ``root`` is the filesystem path the backend is scoped to: a container
    for Azure, ``bucket/prefix`` for S3, any path for the memory or local
    filesystems. Virtual paths are resolved below it.

    Each backend owns its own filesystem instance (fsspec's instance cache
    is skipped) so releasing one backend never affects another.

    Example:
        >>> storage = FsspecStorage("memory", "/scratch")
        >>> await storage.write_text("/a/b.txt", "hello")
        >>> await storage.read_text("/a/b.txt")
        'hello'
    """

    def __init__(self, protocol: str, root: str, **storage_options: Any) -> None:
        super().__init__(root, **storage_options)
        self.protocol = protocol
        self._fs: Optional[AbstractFileSystem] = None
        self._connect_lock: Optional[asyncio.Lock] = None

    @property
    def scheme(self) -> str:
        return self.protocol

    def _create_filesystem(self) -> AbstractFileSystem:
        """Build the filesystem. Subclasses override to map their options."""
        return fsspec.filesystem(self.protocol, skip_instance_cache=True, **self.options)

    def _close_filesystem(self, fs: AbstractFileSystem) -> None:
        """Close client sessions held by ``fs``. Subclasses override."""

    @property
    def fs(self) -> AbstractFileSystem:
        """Lazy-load the filesystem (blocking; async operations use ``_filesystem``)."""
        self._ensure_open()
        if self._fs is None:
            self._fs = self._create_filesystem()
            logger.info("Connected %r", self)
        return self._fs

    async def _filesystem(self) -> AbstractFileSystem:
        """Return the filesystem, connecting in a worker thread on first use."""
        self._ensure_open()
        if self._fs is not None:
            return self._fs
        if self._connect_lock is None:
            self._connect_lock = asyncio.Lock()
        async with self._connect_lock:
            if self._fs is None:
                fs = await self._run(self._create_filesystem)
                if self._released:
                    await asyncio.to_thread(self._close_filesystem, fs)
                    self._ensure_open()
                self._fs = fs
                logger.info("Connected %r", self)
        return self._fs

    def _full_path(self, virtual: str) -> str:
        """Map a normalised virtual path to a filesystem path."""
        base = self.root.rstrip("/")
        relative = virtual.lstrip("/")
        if not relative:
            return base or "/"
        return f"{base}/{relative}" if base else relative

    def _to_virtual(self, name: str) -> str:
        """Map a filesystem path returned by ls/find back to a virtual path."""
        return paths.ROOT + paths.relative_to(name.lstrip("/"), self.root.strip("/"))

    def _to_entry(self, name: str, info: Dict[str, Any]) -> Entry:
        is_dir = info.get("type") == "directory"
        modified = None
        for key in ("mtime", "last_modified", "LastModified", "created"):
            modified = _to_datetime(info.get(key))
            if modified is not None:
                break
        return Entry(
            path=self._to_virtual(name),
            is_directory=is_dir,
            size=0 if is_dir else int(info.get("size", info.get("Size", 0)) or 0),
            modified=modified,
        )

    async def exists(self, path: str) -> bool:
        full_path = self._full_path(self._virtual(path))
        with translate_errors("check existence of", full_path, self.scheme):
            fs = await self._filesystem()
            return await self._run(fs.exists, full_path)

    async def list(self, path: Optional[str] = None, recursive: bool = False) -> List[Entry]:
        virtual = self._virtual(path)
        full_path = self._full_path(virtual)

        def _list(fs: AbstractFileSystem) -> List[Entry]:
            if not fs.exists(full_path):
                return []
            if fs.isfile(full_path):
                return [self._to_entry(full_path, fs.info(full_path))]

            if recursive:
                items = fs.find(full_path, withdirs=True, detail=True)
            else:
                items = {info["name"]: info for info in fs.ls(full_path, detail=True)}

            entries = []
            for name, info in items.items():
                entry = self._to_entry(name, info)
                if entry.path == virtual:
                    continue
                entries.append(entry)
            return sorted(entries, key=lambda e: e.path)

        with translate_errors("list", virtual, self.scheme):
            fs = await self._filesystem()
            entries = await self._run(_list, fs)
        logger.debug("Listed %d entries under %s://%s", len(entries), self.scheme, full_path)
        return entries

    async def open_read(self, path: str) -> AsyncStream:
        virtual = self._virtual(path)
        full_path = self._full_path(virtual)
        with translate_errors("open for reading", virtual, self.scheme):
            fs = await self._filesystem()
            handle = await self._open_handle(fs.open, full_path, "rb")
        logger.debug("Opened %s://%s for reading", self.scheme, full_path)
        return AsyncStream(handle, virtual, backend=self.scheme)

    async def open_write(self, path: str, mode: WriteMode = WriteMode.CREATE) -> AsyncStream:
        virtual = self._virtual(path)
        if virtual == paths.ROOT:
            raise InvalidOperationError(
                "Cannot open the storage root for writing", path=virtual, backend=self.scheme
            )
        full_path = self._full_path(virtual)

        def _open(fs: AbstractFileSystem):
            if self.protocol in _HIERARCHICAL_PROTOCOLS:
                fs.makedirs(fs._parent(full_path), exist_ok=True)
            file_mode = mode.file_mode
            if mode is WriteMode.APPEND and not fs.exists(full_path):
                file_mode = WriteMode.CREATE.file_mode
            return fs.open(full_path, file_mode)

        with translate_errors("open for writing", virtual, self.scheme):
            fs = await self._filesystem()
            handle = await self._open_handle(_open, fs)
        logger.debug("Opened %s://%s for writing (%s)", self.scheme, full_path, mode.value)
        return AsyncStream(handle, virtual, backend=self.scheme)

    async def rename(self, path: str, new_path: str) -> None:
        virtual = self._virtual(path)
        source = self._full_path(virtual)
        target = self._full_path(self._virtual(new_path))

        def _rename(fs: AbstractFileSystem) -> None:
            if not fs.exists(source):
                raise NotFoundError(
                    f"Cannot rename missing path {virtual}", path=virtual, backend=self.scheme
                )
            fs.mv(source, target, recursive=fs.isdir(source))

        with translate_errors("rename", virtual, self.scheme):
            fs = await self._filesystem()
            await self._run(_rename, fs)
        logger.debug("Renamed %s://%s to %s", self.scheme, source, target)

    async def remove(self, path: str, recursive: bool = False) -> None:
        virtual = self._virtual(path)
        if virtual == paths.ROOT:
            raise InvalidOperationError(
                "Cannot remove the storage root", path=virtual, backend=self.scheme
            )
        full_path = self._full_path(virtual)

        def _remove(fs: AbstractFileSystem) -> bool:
            if not fs.exists(full_path):
                return False
            if fs.isdir(full_path):
                if not recursive and fs.ls(full_path, detail=False):
                    raise InvalidOperationError(
                        f"Folder {virtual} is not empty; pass recursive=True to remove it",
                        path=virtual,
                        backend=self.scheme,
                    )
                fs.rm(full_path, recursive=True)
            else:
                fs.rm(full_path)
            return True

        with translate_errors("remove", virtual, self.scheme):
            fs = await self._filesystem()
            removed = await self._run(_remove, fs)
        if removed:
            logger.debug("Removed %s://%s", self.scheme, full_path)
        else:
            logger.debug("Nothing to remove at %s://%s", self.scheme, full_path)

    def _release(self) -> None:
        fs, self._fs = self._fs, None
        if fs is not None:
            self._close_filesystem(fs)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(protocol={self.protocol!r}, root={self.root!r})"
