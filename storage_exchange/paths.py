"""Virtual path helpers shared by backends and the copy orchestrator.

A virtual path is ``/``-separated and relative to a backend root. The
normalised form has a leading slash and no trailing slash: ``/a/b.txt``.
The root itself is ``/``.
"""

from __future__ import annotations

from typing import List, Optional

__all__ = ["ROOT", "normalize", "join", "relative_to", "parent", "split_parts"]

ROOT = "/"


def split_parts(path: Optional[str]) -> List[str]:
    """Split a virtual path into segments, resolving ``.`` and ``..``.

    Raises:
        ValueError: If ``..`` would climb above the root
    """
    parts: List[str] = []
    for segment in (path or "").replace("\\", "/").split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            if not parts:
                raise ValueError(f"Path escapes the storage root: {path!r}")
            parts.pop()
            continue
        parts.append(segment)
    return parts


def normalize(path: Optional[str]) -> str:
    """Return the normalised form of ``path``.

    Example:
        >>> normalize("newfolder5//23skidoo.txt")
        '/newfolder5/23skidoo.txt'
        >>> normalize(None)
        '/'
    """
    return ROOT + "/".join(split_parts(path))


def join(*paths: Optional[str]) -> str:
    """Join virtual paths, normalising separators.

    Example:
        >>> join("/newfolder23/", "/source/a.txt")
        '/newfolder23/source/a.txt'
    """
    parts: List[str] = []
    for path in paths:
        parts.extend(split_parts(path))
    return ROOT + "/".join(parts)


def relative_to(path: str, base: Optional[str]) -> str:
    """Return ``path`` relative to ``base`` (without a leading slash).

    Example:
        >>> relative_to("/source/sub/a.txt", "/source/")
        'sub/a.txt'

    Raises:
        ValueError: If ``path`` is not below ``base``
    """
    path_parts = split_parts(path)
    base_parts = split_parts(base)
    if path_parts[: len(base_parts)] != base_parts:
        raise ValueError(f"{normalize(path)} is not under {normalize(base)}")
    return "/".join(path_parts[len(base_parts):])


def parent(path: str) -> str:
    """Return the parent folder of ``path`` (the root is its own parent)."""
    parts = split_parts(path)
    return ROOT + "/".join(parts[:-1])
