"""CLI entry point for storage-exchange.

Usage:
    storage-exchange --config storage.yaml demo
    storage-exchange --config storage.yaml ls Local /source --recursive
    storage-exchange copy-file Temp /23skidoo.txt Local /newfolder5/23skidoo.txt
    storage-exchange copy-folder Local /source/ Cloud1 /newfolder23/ --recursive

Settings not given on the command line come from STORAGE_EXCHANGE_*
environment variables (or a .env file).
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from storage_exchange.config import StorageName
from storage_exchange.copy import copy_file, copy_folder
from storage_exchange.env import load_env_file
from storage_exchange.errors import FolderCopyError, StorageExchangeError
from storage_exchange.manager import StorageManager
from storage_exchange.observability import setup_logging
from storage_exchange.settings import StorageExchangeSettings
from storage_exchange.storage.base import WriteMode

logger = logging.getLogger(__name__)

__all__ = ["build_parser", "main", "run_demo"]

DEMO_FILE = "/23skidoo.txt"
DEMO_CONTENTS = "23 skidoo!"


async def run_demo(
    manager: StorageManager,
    *,
    max_concurrency: int,
    chunk_size: int,
) -> None:
    """Walk through a file round trip and a folder upload.

    Writes a file to Temp, copies it to Local, removes the Temp copy, then
    copies Local's /source/ folder to Cloud1 when Cloud1 is configured.
    """
    temp = manager.lookup(StorageName.TEMP)
    local = manager.lookup(StorageName.LOCAL)

    await temp.write_text(DEMO_FILE, DEMO_CONTENTS)
    size = await copy_file(
        temp, DEMO_FILE, local, "/newfolder5/23skidoo.txt", chunk_size=chunk_size
    )
    await temp.remove(DEMO_FILE)
    print(f"Copied {DEMO_FILE} ({size} bytes) from Temp to Local:/newfolder5/23skidoo.txt")

    if StorageName.CLOUD1 not in manager:
        logger.warning("Cloud1 is not configured; skipping folder copy to the cloud")
        return

    cloud = manager.lookup(StorageName.CLOUD1)
    result = await copy_folder(
        local,
        "/source/",
        True,
        cloud,
        "/newfolder23/",
        max_concurrency=max_concurrency,
        chunk_size=chunk_size,
    )
    print(f"Copied {result.count} file(s) ({result.bytes_copied} bytes) from Local:/source/ to Cloud1:/newfolder23/")


async def _list(manager: StorageManager, args: argparse.Namespace) -> None:
    storage = manager.lookup(args.name)
    for entry in await storage.list(args.path, recursive=args.recursive):
        kind = "d" if entry.is_directory else "-"
        modified = entry.modified.strftime("%Y-%m-%d %H:%M:%S") if entry.modified else "-"
        print(f"{kind} {entry.size:>12} {modified:>19} {entry.path}")


async def _copy_file(manager: StorageManager, args: argparse.Namespace, chunk_size: int) -> None:
    mode = WriteMode.APPEND if args.append else WriteMode.CREATE
    size = await copy_file(
        manager.lookup(args.source),
        args.source_path,
        manager.lookup(args.target),
        args.target_path,
        mode,
        chunk_size=chunk_size,
    )
    print(f"Copied {size} bytes")


async def _copy_folder(
    manager: StorageManager,
    args: argparse.Namespace,
    max_concurrency: int,
    chunk_size: int,
) -> None:
    result = await copy_folder(
        manager.lookup(args.source),
        args.source_path,
        args.recursive,
        manager.lookup(args.target),
        args.target_prefix,
        max_concurrency=max_concurrency,
        rebase=not args.no_rebase,
        chunk_size=chunk_size,
    )
    for source_path, target_path in result.copied:
        print(f"{source_path} -> {target_path}")
    print(f"Copied {result.count} file(s), {result.bytes_copied} bytes")


async def _run(args: argparse.Namespace, settings: StorageExchangeSettings) -> None:
    max_concurrency = getattr(args, "max_concurrency", None) or settings.max_concurrency

    async with StorageManager.from_config(args.config, environment=args.environment) as manager:
        if args.command == "demo":
            await run_demo(manager, max_concurrency=max_concurrency, chunk_size=settings.chunk_size)
        elif args.command == "ls":
            await _list(manager, args)
        elif args.command == "copy-file":
            await _copy_file(manager, args, settings.chunk_size)
        elif args.command == "copy-folder":
            await _copy_folder(manager, args, max_concurrency, settings.chunk_size)


def build_parser(settings: StorageExchangeSettings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="storage-exchange",
        description="Copy files and folders between configured storages",
    )
    parser.add_argument(
        "--config",
        default=settings.config_path,
        help=f"Storage configuration YAML (default: {settings.config_path})",
    )
    parser.add_argument(
        "--environment",
        default=settings.environment,
        help="Environment overlay to apply, e.g. 'development' reads storage.development.yaml",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose (DEBUG level) logging",
    )
    parser.add_argument(
        "--log-format",
        choices=["human", "json"],
        default=settings.log_format,
        help="Log format (default: human). Can also set via STORAGE_EXCHANGE_LOG_FORMAT",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("demo", help="Run the Temp -> Local -> Cloud1 walkthrough")

    ls_parser = subparsers.add_parser("ls", help="List a storage folder")
    ls_parser.add_argument("name", help="Storage name (Local, Temp, Cloud1, Cloud2)")
    ls_parser.add_argument("path", nargs="?", default=None, help="Folder to list (default: root)")
    ls_parser.add_argument("--recursive", "-r", action="store_true", help="List recursively")

    file_parser = subparsers.add_parser("copy-file", help="Copy one file between storages")
    file_parser.add_argument("source", help="Source storage name")
    file_parser.add_argument("source_path", help="Source file path")
    file_parser.add_argument("target", help="Target storage name")
    file_parser.add_argument("target_path", help="Target file path")
    file_parser.add_argument(
        "--append", action="store_true", help="Append to the target instead of overwriting it"
    )

    folder_parser = subparsers.add_parser("copy-folder", help="Copy a folder between storages")
    folder_parser.add_argument("source", help="Source storage name")
    folder_parser.add_argument("source_path", help="Source folder path")
    folder_parser.add_argument("target", help="Target storage name")
    folder_parser.add_argument("target_prefix", help="Target folder")
    folder_parser.add_argument("--recursive", "-r", action="store_true", help="Include subfolders")
    folder_parser.add_argument(
        "--no-rebase",
        action="store_true",
        help="Append each file's full source path to the target prefix",
    )
    folder_parser.add_argument(
        "--max-concurrency",
        type=int,
        default=None,
        help=f"Concurrent file copies (default: {settings.max_concurrency})",
    )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    load_env_file()
    settings = StorageExchangeSettings()

    parser = build_parser(settings)
    args = parser.parse_args(argv)

    setup_logging(
        verbose=args.verbose,
        json_format=args.log_format == "json",
        log_file=settings.log_file,
        level=settings.log_level,
    )

    try:
        asyncio.run(_run(args, settings))
    except FolderCopyError as e:
        logger.error("%s", e)
        for source_path in e.failed_paths:
            print(f"FAILED {source_path}: {e.failures[source_path]}", file=sys.stderr)
        return 1
    except StorageExchangeError as e:
        logger.error("%s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
