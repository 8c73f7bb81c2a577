"""Abstract base classes for storage backends.

Defines the asynchronous capability contract every backend implements,
the byte stream type returned by ``open_read``/``open_write``, and the
listing entry type.
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import IO, Any, Callable, Iterator, List, Optional, TypeVar

from storage_exchange import paths
from storage_exchange.errors import (
    InvalidOperationError,
    NotFoundError,
    StorageError,
    StorageExchangeError,
)

logger = logging.getLogger(__name__)

__all__ = [
    "AsyncStream",
    "Entry",
    "FileOperations",
    "StorageBackend",
    "WriteMode",
    "translate_errors",
]

T = TypeVar("T")


class WriteMode(Enum):
    """How ``open_write`` treats an existing file.

    - CREATE: create the file, truncating it when it already exists
    - APPEND: append to the file, creating it when missing
    """

    CREATE = "create"
    APPEND = "append"

    @property
    def file_mode(self) -> str:
        return "ab" if self is WriteMode.APPEND else "wb"


@dataclass(frozen=True)
class Entry:
    """A file or folder returned by a listing."""

    path: str
    is_directory: bool = False
    size: int = 0
    modified: Optional[datetime] = None

    @property
    def name(self) -> str:
        return self.path.rstrip("/").rsplit("/", 1)[-1]


@contextmanager
def translate_errors(operation: str, path: str, backend: str = "") -> Iterator[None]:
    """Map backend-native exceptions to the storage-exchange hierarchy."""
    try:
        yield
    except StorageExchangeError:
        raise
    except FileNotFoundError as exc:
        raise NotFoundError(
            f"Path not found during {operation}: {path}",
            path=path,
            backend=backend,
            cause=exc,
        ) from exc
    except (IsADirectoryError, NotADirectoryError, FileExistsError) as exc:
        raise InvalidOperationError(
            f"Cannot {operation} {path}: {exc}",
            path=path,
            backend=backend,
            cause=exc,
        ) from exc
    except Exception as exc:
        raise StorageError(
            f"Failed to {operation} {path}: {exc}",
            path=path,
            backend=backend,
            cause=exc,
        ) from exc


class AsyncStream:
    """Asynchronous wrapper around a blocking binary file object.

    Reads, writes and close run in a worker thread so the event loop keeps
    serving other copies. Closing is idempotent.

    Example:
        >>> async with await storage.open_read("/report.csv") as stream:
        ...     head = await stream.read(1024)
    """

    def __init__(self, handle: IO[bytes], path: str, *, backend: str = "") -> None:
        self._handle = handle
        self.path = path
        self.backend = backend
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self) -> None:
        if self._closed:
            raise InvalidOperationError(
                f"Stream for {self.path} is closed", path=self.path, backend=self.backend
            )

    async def read(self, size: int = -1) -> bytes:
        """Read up to ``size`` bytes (everything when negative)."""
        self._check_open()
        with translate_errors("read", self.path, self.backend):
            data: bytes = await asyncio.to_thread(self._handle.read, size)
        return data

    async def write(self, data: bytes) -> int:
        """Write ``data`` and return the number of bytes written."""
        self._check_open()
        with translate_errors("write", self.path, self.backend):
            written = await asyncio.to_thread(self._handle.write, data)
        return len(data) if written is None else written

    async def aclose(self) -> None:
        """Close the underlying handle, flushing pending writes."""
        if self._closed:
            return
        self._closed = True
        with translate_errors("close", self.path, self.backend):
            await asyncio.to_thread(self._handle.close)

    async def __aenter__(self) -> "AsyncStream":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<AsyncStream {self.backend}:{self.path} {state}>"


class FileOperations(ABC):
    """Data operations shared by backends and the facades that wrap them.

    All operations take virtual paths relative to the storage root and are
    coroutines; cancelling the awaiting task cancels the operation at its
    next suspension point.
    """

    @abstractmethod
    async def exists(self, path: str) -> bool:
        """Return True if a file or folder exists at ``path``."""

    @abstractmethod
    async def list(self, path: Optional[str] = None, recursive: bool = False) -> List[Entry]:
        """List entries under ``path`` (the root when None).

        Non-recursive listings return immediate children only. A missing
        path lists as empty. Entries are sorted by path.
        """

    @abstractmethod
    async def open_read(self, path: str) -> AsyncStream:
        """Open ``path`` for reading.

        Raises:
            NotFoundError: If the file does not exist
        """

    @abstractmethod
    async def open_write(self, path: str, mode: WriteMode = WriteMode.CREATE) -> AsyncStream:
        """Open ``path`` for writing, creating intermediate folders."""

    @abstractmethod
    async def rename(self, path: str, new_path: str) -> None:
        """Move ``path`` to ``new_path``.

        Raises:
            NotFoundError: If ``path`` does not exist
        """

    @abstractmethod
    async def remove(self, path: str, recursive: bool = False) -> None:
        """Remove a file or folder. Removing a missing path is a no-op.

        Raises:
            InvalidOperationError: If ``path`` is a non-empty folder and
                ``recursive`` is False
        """

    # Convenience methods (can be overridden for efficiency)

    async def read_bytes(self, path: str) -> bytes:
        async with await self.open_read(path) as stream:
            return await stream.read()

    async def write_bytes(
        self, path: str, data: bytes, mode: WriteMode = WriteMode.CREATE
    ) -> int:
        async with await self.open_write(path, mode) as stream:
            return await stream.write(data)

    async def read_text(self, path: str, encoding: str = "utf-8") -> str:
        data = await self.read_bytes(path)
        return data.decode(encoding)

    async def write_text(self, path: str, contents: str, encoding: str = "utf-8") -> int:
        return await self.write_bytes(path, contents.encode(encoding))

    async def read_json(self, path: str) -> Any:
        """Read and parse a JSON document."""
        text = await self.read_text(path)
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise StorageError(
                f"Invalid JSON in {path}: {exc}", path=path, cause=exc
            ) from exc

    async def write_json(self, path: str, value: Any, *, indent: Optional[int] = 2) -> int:
        """Serialize ``value`` as JSON and write it to ``path``."""
        return await self.write_text(path, json.dumps(value, indent=indent, default=str))


class StorageBackend(FileOperations):
    """Abstract base class for storage backends.

    A backend is a long-lived handle to one storage root. It is safe to use
    from many concurrent operations and is released exactly once.

    Subclasses implement the data operations and, if they hold resources,
    ``_release``.
    """

    def __init__(self, root: str, **options: Any) -> None:
        self.root = root
        self.options = options
        self._released = False

    @property
    @abstractmethod
    def scheme(self) -> str:
        """Return the URI scheme for this backend (e.g. 'local', 'az', 's3')."""

    @property
    def released(self) -> bool:
        return self._released

    def _ensure_open(self) -> None:
        if self._released:
            raise InvalidOperationError(
                f"{self!r} has been released", backend=self.scheme
            )

    async def _run(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run a blocking backend call in a worker thread."""
        self._ensure_open()
        return await asyncio.to_thread(func, *args, **kwargs)

    async def _open_handle(self, func: Callable[..., IO[bytes]], *args: Any) -> IO[bytes]:
        """Run a blocking open in a worker thread.

        The worker thread cannot be interrupted, so when the awaiting task is
        cancelled mid-open the handle it eventually returns is closed rather
        than leaked.
        """
        self._ensure_open()
        opening = asyncio.ensure_future(asyncio.to_thread(func, *args))
        try:
            return await asyncio.shield(opening)
        except asyncio.CancelledError:
            opening.add_done_callback(self._close_abandoned)
            raise

    def _close_abandoned(self, opening: "asyncio.Future[IO[bytes]]") -> None:
        if opening.cancelled() or opening.exception() is not None:
            return
        handle = opening.result()
        try:
            handle.close()
        except Exception as exc:
            logger.warning("Failed to close abandoned handle on %r: %s", self, exc)
        else:
            logger.debug("Closed handle opened by a cancelled operation on %r", self)

    def _virtual(self, path: Optional[str]) -> str:
        try:
            return paths.normalize(path)
        except ValueError as exc:
            raise InvalidOperationError(str(exc), path=path, backend=self.scheme) from exc

    async def release(self) -> None:
        """Release backend-held resources. Idempotent."""
        if self._released:
            return
        self._released = True
        await asyncio.to_thread(self._release)
        logger.info("Released %r", self)

    def close(self) -> None:
        """Release synchronously, for callers outside the event loop."""
        if self._released:
            return
        self._released = True
        self._release()
        logger.info("Released %r", self)

    def _release(self) -> None:
        """Hook for subclasses holding connections or handles."""

    async def __aenter__(self) -> "StorageBackend":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.release()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(root={self.root!r})"
