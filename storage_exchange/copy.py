"""Copy orchestration between any two storages.

Data is streamed chunk by chunk, so memory use stays bounded regardless of
file size. Both ends are always closed, including on failure and
cancellation.

Example:
    >>> size = await copy_file(temp, "/23skidoo.txt", local, "/newfolder5/23skidoo.txt")
    >>> result = await copy_folder(local, "/source/", True, cloud, "/newfolder23/")
    >>> result.bytes_copied
    2048
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from storage_exchange import paths
from storage_exchange.errors import FolderCopyError, TransferError
from storage_exchange.storage.base import AsyncStream, Entry, FileOperations, WriteMode

logger = logging.getLogger(__name__)

__all__ = [
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_MAX_CONCURRENCY",
    "FolderCopyResult",
    "copy_file",
    "copy_folder",
    "target_path_for",
]

DEFAULT_CHUNK_SIZE = 1024 * 1024
DEFAULT_MAX_CONCURRENCY = 8


@dataclass
class FolderCopyResult:
    """Outcome of a successful folder copy."""

    copied: List[Tuple[str, str]] = field(default_factory=list)
    bytes_copied: int = 0

    @property
    def count(self) -> int:
        return len(self.copied)


async def _close_streams(streams: Sequence[AsyncStream]) -> List[BaseException]:
    """Close every stream, returning the errors instead of raising them."""
    failures: List[BaseException] = []
    cancelled: Optional[asyncio.CancelledError] = None
    for stream in streams:
        try:
            await stream.aclose()
        except asyncio.CancelledError as e:
            cancelled = e
        except Exception as e:
            logger.warning("Failed to close %r: %s", stream, e)
            failures.append(e)
    if cancelled is not None:
        raise cancelled
    return failures


def _attach_suppressed(error: BaseException, failures: List[BaseException]) -> None:
    suppressed = getattr(error, "suppressed", None)
    if isinstance(suppressed, list):
        suppressed.extend(failures)


async def copy_file(
    source: FileOperations,
    source_path: str,
    target: FileOperations,
    target_path: str,
    mode: WriteMode = WriteMode.CREATE,
    *,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> int:
    """Stream one file from ``source`` to ``target``.

    Args:
        source: Storage to read from
        source_path: File to read
        target: Storage to write to (may be the same as ``source``)
        target_path: File to write
        mode: CREATE overwrites, APPEND appends
        chunk_size: Bytes read per chunk

    Returns:
        Number of bytes copied

    Raises:
        NotFoundError: If ``source_path`` does not exist
        TransferError: If streaming or closing the target fails
    """
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")

    reader = await source.open_read(source_path)
    try:
        writer = await target.open_write(target_path, mode)
    except BaseException as e:
        _attach_suppressed(e, await _close_streams([reader]))
        raise

    copied = 0
    try:
        while True:
            chunk = await reader.read(chunk_size)
            if not chunk:
                break
            await writer.write(chunk)
            copied += len(chunk)
    except asyncio.CancelledError:
        logger.debug("Copy of %s to %s cancelled after %d bytes", source_path, target_path, copied)
        await _close_streams([writer, reader])
        raise
    except Exception as e:
        error = TransferError(
            f"Failed to copy {source_path} to {target_path}: {e}",
            source_path=source_path,
            target_path=target_path,
            cause=e,
        )
        _attach_suppressed(error, await _close_streams([writer, reader]))
        raise error from e

    # Closing the writer commits the data, so its failure fails the copy
    failures = await _close_streams([writer, reader])
    if failures:
        error = TransferError(
            f"Failed to release streams after copying {source_path} to {target_path}",
            source_path=source_path,
            target_path=target_path,
            cause=failures[0],
        )
        _attach_suppressed(error, failures[1:])
        raise error from failures[0]

    logger.debug("Copied %d bytes from %s to %s", copied, source_path, target_path)
    return copied


def target_path_for(
    entry_path: str,
    source_path: Optional[str],
    target_prefix: Optional[str],
    rebase: bool = True,
) -> str:
    """Compute where a listed file lands on the target.

    Example:
        >>> target_path_for("/source/sub/a.txt", "/source/", "/newfolder23/")
        '/newfolder23/sub/a.txt'
        >>> target_path_for("/source/sub/a.txt", "/source/", "/newfolder23/", rebase=False)
        '/newfolder23/source/sub/a.txt'
    """
    if not rebase:
        return paths.join(target_prefix, entry_path)
    relative = paths.relative_to(entry_path, source_path)
    if not relative:
        # source_path named the file itself
        relative = paths.split_parts(entry_path)[-1]
    return paths.join(target_prefix, relative)


async def copy_folder(
    source: FileOperations,
    source_path: Optional[str],
    recursive: bool,
    target: FileOperations,
    target_prefix: Optional[str],
    mode: WriteMode = WriteMode.CREATE,
    *,
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    rebase: bool = True,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> FolderCopyResult:
    """Copy every file under ``source_path`` to ``target`` below ``target_prefix``.

    Copies run concurrently, at most ``max_concurrency`` at a time. A
    failing copy does not stop its siblings; all copies finish before the
    outcome is reported. Successful copies are not rolled back.

    Raises:
        FolderCopyError: If one or more files failed to copy
    """
    if max_concurrency < 1:
        raise ValueError(f"max_concurrency must be positive, got {max_concurrency}")

    entries: List[Entry] = await source.list(source_path, recursive=recursive)
    plan = [
        (entry.path, target_path_for(entry.path, source_path, target_prefix, rebase))
        for entry in entries
        if not entry.is_directory
    ]
    logger.info(
        "Copying %d file(s) from %s to %s (recursive=%s, max_concurrency=%d)",
        len(plan),
        paths.normalize(source_path),
        paths.normalize(target_prefix),
        recursive,
        max_concurrency,
    )

    semaphore = asyncio.Semaphore(max_concurrency)

    async def _copy_one(src: str, dst: str) -> int:
        async with semaphore:
            return await copy_file(source, src, target, dst, mode, chunk_size=chunk_size)

    outcomes = await asyncio.gather(
        *(_copy_one(src, dst) for src, dst in plan),
        return_exceptions=True,
    )

    result = FolderCopyResult()
    failures = {}
    for (src, dst), outcome in zip(plan, outcomes):
        if isinstance(outcome, BaseException):
            logger.warning("Failed to copy %s to %s: %s", src, dst, outcome)
            failures[src] = outcome
        else:
            result.copied.append((src, dst))
            result.bytes_copied += outcome

    if failures:
        raise FolderCopyError(
            f"Failed to copy {len(failures)} of {len(plan)} file(s) from {paths.normalize(source_path)}",
            failures=failures,
            succeeded=result.copied,
        )

    logger.info("Copied %d file(s), %d bytes", result.count, result.bytes_copied)
    return result
