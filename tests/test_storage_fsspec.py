"""Tests for storage_exchange.storage.fsspec_backend using fsspec's memory filesystem."""

import asyncio

import pytest

from storage_exchange.errors import InvalidOperationError, NotFoundError
from storage_exchange.storage import FsspecStorage, WriteMode
from tests.conftest import SlowStorage


class TestFsspecStoragePaths:
    """Tests for virtual path mapping."""

    def test_full_path(self):
        storage = FsspecStorage("memory", "/bucket")
        assert storage._full_path("/") == "/bucket"
        assert storage._full_path("/a/b.txt") == "/bucket/a/b.txt"

    def test_full_path_without_leading_slash_root(self):
        storage = FsspecStorage("memory", "container/prefix/")
        assert storage._full_path("/a.txt") == "container/prefix/a.txt"

    def test_to_virtual(self):
        storage = FsspecStorage("memory", "/bucket")
        assert storage._to_virtual("/bucket/a/b.txt") == "/a/b.txt"
        assert storage._to_virtual("bucket/dir/") == "/dir"

    def test_scheme_is_protocol(self):
        assert FsspecStorage("memory", "/x").scheme == "memory"


class TestFsspecStorageOperations:
    """Tests for the capability contract on the memory filesystem."""

    def test_write_read_roundtrip(self, memory_storage):
        async def _inner():
            await memory_storage.write_text("/newfolder5/23skidoo.txt", "23 skidoo!")
            assert await memory_storage.exists("/newfolder5/23skidoo.txt") is True
            assert await memory_storage.exists("/newfolder5") is True
            assert await memory_storage.read_text("/newfolder5/23skidoo.txt") == "23 skidoo!"

        asyncio.run(_inner())

    def test_create_overwrites(self, memory_storage):
        async def _inner():
            await memory_storage.write_text("/a.txt", "first version")
            await memory_storage.write_text("/a.txt", "second")
            assert await memory_storage.read_text("/a.txt") == "second"

        asyncio.run(_inner())

    def test_append(self, memory_storage):
        async def _inner():
            await memory_storage.write_bytes("/log.txt", b"one\n", WriteMode.APPEND)
            await memory_storage.write_bytes("/log.txt", b"two\n", WriteMode.APPEND)
            assert await memory_storage.read_bytes("/log.txt") == b"one\ntwo\n"

        asyncio.run(_inner())

    def test_open_read_missing(self, memory_storage):
        with pytest.raises(NotFoundError):
            asyncio.run(memory_storage.open_read("/missing.txt"))

    def test_list(self, memory_storage):
        async def _inner():
            await memory_storage.write_text("/source/a.txt", "a")
            await memory_storage.write_text("/source/b.txt", "bb")
            await memory_storage.write_text("/source/sub/c.txt", "ccc")

            shallow = await memory_storage.list("/source")
            assert [e.path for e in shallow] == ["/source/a.txt", "/source/b.txt", "/source/sub"]
            assert [e.is_directory for e in shallow] == [False, False, True]
            assert shallow[1].size == 2

            deep = await memory_storage.list("/source", recursive=True)
            files = [e.path for e in deep if not e.is_directory]
            assert files == ["/source/a.txt", "/source/b.txt", "/source/sub/c.txt"]
            assert "/source" not in [e.path for e in deep]

            root = await memory_storage.list()
            assert [e.path for e in root] == ["/source"]

        asyncio.run(_inner())

    def test_list_missing_is_empty(self, memory_storage):
        assert asyncio.run(memory_storage.list("/nowhere", recursive=True)) == []

    def test_rename(self, memory_storage):
        async def _inner():
            await memory_storage.write_text("/a.txt", "data")
            await memory_storage.rename("/a.txt", "/moved/b.txt")
            assert await memory_storage.exists("/a.txt") is False
            assert await memory_storage.read_text("/moved/b.txt") == "data"

        asyncio.run(_inner())

    def test_rename_missing(self, memory_storage):
        with pytest.raises(NotFoundError):
            asyncio.run(memory_storage.rename("/missing.txt", "/b.txt"))

    def test_remove(self, memory_storage):
        async def _inner():
            await memory_storage.write_text("/folder/a.txt", "data")
            await memory_storage.write_text("/folder/b.txt", "data")

            with pytest.raises(InvalidOperationError, match="not empty"):
                await memory_storage.remove("/folder")
            assert await memory_storage.exists("/folder/a.txt") is True

            await memory_storage.remove("/folder/a.txt")
            assert await memory_storage.exists("/folder/a.txt") is False

            await memory_storage.remove("/folder", recursive=True)
            assert await memory_storage.exists("/folder/b.txt") is False

            # Missing paths are a no-op
            await memory_storage.remove("/folder/never-existed.txt")

        asyncio.run(_inner())

    def test_remove_root_rejected(self, memory_storage):
        with pytest.raises(InvalidOperationError):
            asyncio.run(memory_storage.remove("/", recursive=True))

    def test_release_drops_filesystem(self, memory_storage):
        async def _inner():
            await memory_storage.write_text("/a.txt", "x")
            assert memory_storage._fs is not None
            await memory_storage.release()
            assert memory_storage._fs is None
            with pytest.raises(InvalidOperationError):
                await memory_storage.exists("/a.txt")

        asyncio.run(_inner())

    def test_each_backend_owns_its_filesystem(self, memory_root):
        first = FsspecStorage("memory", memory_root)
        second = FsspecStorage("memory", memory_root)
        assert first.fs is not second.fs


class TestFsspecStorageConnection:
    """Tests for lazy filesystem creation."""

    def test_connect_does_not_block_the_event_loop(self, memory_root):
        storage = SlowStorage(memory_root, connect_delay=0.3)
        gaps = []

        async def _heartbeat():
            loop = asyncio.get_running_loop()
            last = loop.time()
            while True:
                await asyncio.sleep(0.02)
                now = loop.time()
                gaps.append(now - last)
                last = now

        async def _inner():
            beat = asyncio.create_task(_heartbeat())
            await asyncio.sleep(0)
            assert await storage.exists("/a.txt") is False
            beat.cancel()
            with pytest.raises(asyncio.CancelledError):
                await beat

        asyncio.run(_inner())
        assert storage.connects == 1
        assert gaps
        assert max(gaps) < 0.2

    def test_concurrent_first_use_connects_once(self, memory_root):
        storage = SlowStorage(memory_root, connect_delay=0.05)

        async def _inner():
            results = await asyncio.gather(*(storage.exists(f"/{i}.txt") for i in range(5)))
            assert results == [False] * 5

        asyncio.run(_inner())
        assert storage.connects == 1

    def test_cancelled_open_closes_handle(self, memory_root):
        storage = SlowStorage(memory_root, open_delay=0.2)

        async def _inner():
            task = asyncio.create_task(storage.open_write("/a.txt"))
            await asyncio.sleep(0.05)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

            await asyncio.sleep(0.4)
            assert len(storage.handles) == 1
            assert storage.handles[0].closed

        asyncio.run(_inner())

    def test_release_closes_filesystem(self, memory_root):
        closed = []

        class ClosingStorage(FsspecStorage):
            def _close_filesystem(self, fs):
                closed.append(fs)

        storage = ClosingStorage("memory", memory_root)

        async def _inner():
            await storage.exists("/a.txt")
            fs = storage._fs
            await storage.release()
            assert closed == [fs]

        asyncio.run(_inner())
