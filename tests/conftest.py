"""Pytest configuration and fixtures."""

from __future__ import annotations

import io
import logging
import threading
import time
import uuid
from pathlib import Path
from typing import Iterator, List, Set

import fsspec
import pytest

from storage_exchange import paths
from storage_exchange.storage.base import AsyncStream
from storage_exchange.storage.fsspec_backend import FsspecStorage
from storage_exchange.storage.local import LocalStorage


def _clear_memory_root(root: str) -> None:
    fs = fsspec.filesystem("memory")
    prefix = root.rstrip("/")
    for key in [k for k in fs.store if k == prefix or k.startswith(prefix + "/")]:
        del fs.store[key]
    for key in [d for d in fs.pseudo_dirs if d == prefix or d.startswith(prefix + "/")]:
        fs.pseudo_dirs.remove(key)


@pytest.fixture
def memory_root() -> Iterator[str]:
    """A unique root in fsspec's process-wide memory filesystem."""
    root = f"/se-test-{uuid.uuid4().hex}"
    yield root
    _clear_memory_root(root)


@pytest.fixture
def memory_storage(memory_root: str) -> FsspecStorage:
    return FsspecStorage("memory", memory_root)


@pytest.fixture
def local_storage(tmp_path: Path) -> LocalStorage:
    return LocalStorage(str(tmp_path / "local"))


@pytest.fixture
def restore_logging() -> Iterator[None]:
    """Restore root logger handlers after tests that call setup_logging."""
    root_logger = logging.getLogger()
    handlers = root_logger.handlers[:]
    level = root_logger.level
    yield
    root_logger.handlers[:] = handlers
    root_logger.setLevel(level)


class TrackingHandle(io.BytesIO):
    """In-memory file handle that counts concurrently open handles.

    Optional failure injection for reads and close, and a per-read delay
    so concurrent copies overlap.
    """

    def __init__(
        self,
        data: bytes,
        owner: "TrackingStorage",
        *,
        fail_read: bool = False,
        fail_close: bool = False,
    ) -> None:
        super().__init__(data)
        self.owner = owner
        self.fail_read = fail_read
        self.fail_close = fail_close
        self.close_calls = 0
        owner._opened()

    def read(self, size: int = -1) -> bytes:
        if self.owner.read_delay:
            time.sleep(self.owner.read_delay)
        if self.fail_read:
            raise OSError("simulated read failure")
        return super().read(size)

    def close(self) -> None:
        self.close_calls += 1
        if not self.closed:
            self.owner._closed()
        super().close()
        if self.fail_close:
            raise OSError("simulated close failure")


class TrackingStorage(FsspecStorage):
    """Memory storage whose read streams are tracked and can be made to fail."""

    def __init__(self, root: str, *, read_delay: float = 0.0) -> None:
        super().__init__("memory", root)
        self.read_delay = read_delay
        self.fail_reads: Set[str] = set()
        self.fail_closes: Set[str] = set()
        self.streams: List[AsyncStream] = []
        self.handles: List[TrackingHandle] = []
        self.active = 0
        self.peak = 0
        self._lock = threading.Lock()

    def _opened(self) -> None:
        with self._lock:
            self.active += 1
            self.peak = max(self.peak, self.active)

    def _closed(self) -> None:
        with self._lock:
            self.active -= 1

    async def open_read(self, path: str) -> AsyncStream:
        virtual = paths.normalize(path)
        data = await self.read_bytes_raw(virtual)
        handle = TrackingHandle(
            data,
            self,
            fail_read=virtual in self.fail_reads,
            fail_close=virtual in self.fail_closes,
        )
        self.handles.append(handle)
        stream = AsyncStream(handle, virtual, backend=self.scheme)
        self.streams.append(stream)
        return stream

    async def read_bytes_raw(self, path: str) -> bytes:
        async with await super().open_read(path) as stream:
            return await stream.read()


@pytest.fixture
def tracking_storage(memory_root: str) -> TrackingStorage:
    return TrackingStorage(memory_root)


class CloseRecorder:
    """File handle proxy that records whether ``close`` was called."""

    def __init__(self, handle) -> None:
        self._handle = handle
        self.closed = False

    def __getattr__(self, name):
        return getattr(self._handle, name)

    def close(self) -> None:
        self.closed = True
        self._handle.close()


class SlowStorage(FsspecStorage):
    """Memory storage whose connect and open calls block their worker thread."""

    def __init__(self, root: str, *, open_delay: float = 0.0, connect_delay: float = 0.0) -> None:
        super().__init__("memory", root)
        self.open_delay = open_delay
        self.connect_delay = connect_delay
        self.connects = 0
        self.handles: List[CloseRecorder] = []

    def _create_filesystem(self):
        time.sleep(self.connect_delay)
        self.connects += 1
        return super()._create_filesystem()

    async def _open_handle(self, func, *args):
        def _slow_open():
            time.sleep(self.open_delay)
            handle = CloseRecorder(func(*args))
            self.handles.append(handle)
            return handle

        return await super()._open_handle(_slow_open)
