"""Local filesystem storage backend."""

from __future__ import annotations

import logging
import shutil
from datetime import datetime
from pathlib import Path
from typing import List, Optional

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

__all__ = ["LocalStorage"]


class LocalStorage(StorageBackend):
    """Local filesystem storage backend scoped to a root directory.

    The root is created on construction. Writes create intermediate
    folders; ``WriteMode.CREATE`` overwrites existing files.

    Example:
        >>> storage = LocalStorage("/tmp/se-local")
        >>> await storage.write_text("/newfolder5/23skidoo.txt", "23 skidoo!")
        >>> [e.path for e in await storage.list("/newfolder5")]
        ['/newfolder5/23skidoo.txt']
    """

    def __init__(self, root: str, **options) -> None:
        super().__init__(root, **options)
        self._root_path = Path(root).expanduser().resolve()
        self._root_path.mkdir(parents=True, exist_ok=True)
        logger.info("Local storage ready at %s", self._root_path)

    @property
    def scheme(self) -> str:
        return "local"

    @property
    def root_path(self) -> Path:
        return self._root_path

    def _resolve_path(self, path: Optional[str]) -> Path:
        """Resolve a virtual path to a filesystem path under the root."""
        virtual = self._virtual(path)
        return self._root_path.joinpath(*paths.split_parts(virtual))

    def _to_entry(self, item: Path) -> Entry:
        stat = item.stat()
        is_dir = item.is_dir()
        return Entry(
            path=paths.ROOT + item.relative_to(self._root_path).as_posix(),
            is_directory=is_dir,
            size=0 if is_dir else stat.st_size,
            modified=datetime.fromtimestamp(stat.st_mtime),
        )

    async def exists(self, path: str) -> bool:
        resolved = self._resolve_path(path)
        return await self._run(resolved.exists)

    async def list(self, path: Optional[str] = None, recursive: bool = False) -> List[Entry]:
        resolved = self._resolve_path(path)

        def _list() -> List[Entry]:
            if not resolved.exists():
                return []
            if resolved.is_file():
                return [self._to_entry(resolved)]

            iterator = resolved.rglob("*") if recursive else resolved.iterdir()
            entries = []
            for item in iterator:
                try:
                    entries.append(self._to_entry(item))
                except FileNotFoundError:
                    # Removed between listing and stat
                    continue
            return sorted(entries, key=lambda e: e.path)

        with translate_errors("list", self._virtual(path), self.scheme):
            entries = await self._run(_list)
        logger.debug("Listed %d entries under %s", len(entries), resolved)
        return entries

    async def open_read(self, path: str) -> AsyncStream:
        virtual = self._virtual(path)
        resolved = self._resolve_path(virtual)
        with translate_errors("open for reading", virtual, self.scheme):
            handle = await self._open_handle(open, resolved, "rb")
        logger.debug("Opened %s for reading", resolved)
        return AsyncStream(handle, virtual, backend=self.scheme)

    async def open_write(self, path: str, mode: WriteMode = WriteMode.CREATE) -> AsyncStream:
        virtual = self._virtual(path)
        if virtual == paths.ROOT:
            raise InvalidOperationError(
                "Cannot open the storage root for writing", path=virtual, backend=self.scheme
            )
        resolved = self._resolve_path(virtual)

        def _open():
            resolved.parent.mkdir(parents=True, exist_ok=True)
            return open(resolved, mode.file_mode)

        with translate_errors("open for writing", virtual, self.scheme):
            handle = await self._open_handle(_open)
        logger.debug("Opened %s for writing (%s)", resolved, mode.value)
        return AsyncStream(handle, virtual, backend=self.scheme)

    async def rename(self, path: str, new_path: str) -> None:
        virtual = self._virtual(path)
        source = self._resolve_path(virtual)
        target = self._resolve_path(new_path)

        def _rename() -> None:
            if not source.exists():
                raise NotFoundError(
                    f"Cannot rename missing path {virtual}", path=virtual, backend=self.scheme
                )
            target.parent.mkdir(parents=True, exist_ok=True)
            source.replace(target)

        with translate_errors("rename", virtual, self.scheme):
            await self._run(_rename)
        logger.debug("Renamed %s to %s", source, target)

    async def remove(self, path: str, recursive: bool = False) -> None:
        virtual = self._virtual(path)
        if virtual == paths.ROOT:
            raise InvalidOperationError(
                "Cannot remove the storage root", path=virtual, backend=self.scheme
            )
        resolved = self._resolve_path(virtual)

        def _remove() -> bool:
            if not resolved.exists():
                return False
            if resolved.is_dir():
                if recursive:
                    shutil.rmtree(resolved)
                elif any(resolved.iterdir()):
                    raise InvalidOperationError(
                        f"Folder {virtual} is not empty; pass recursive=True to remove it",
                        path=virtual,
                        backend=self.scheme,
                    )
                else:
                    resolved.rmdir()
            else:
                resolved.unlink()
            return True

        with translate_errors("remove", virtual, self.scheme):
            removed = await self._run(_remove)
        if removed:
            logger.debug("Removed %s", resolved)
        else:
            logger.debug("Nothing to remove at %s", resolved)
