from __future__ import annotations

import os
from typing import Tuple


def clean_path(p: str) -> str:
    """Normalize a filesystem path to a canonical forward-slash form.

    Rules:
    - Convert backslashes to slashes
    - Collapse redundant separators and '.' segments
    - Resolve 'a/..' pairs lexically (no symlink resolution)
    """
    p = os.path.normpath(p.replace("\\", "/"))
    return p.replace("\\", "/")


def canonical_root(root: str) -> str:
    """Absolute, cleaned form of a root directory as stored in a ledger."""
    return clean_path(os.path.abspath(root))


def relativize(path: str, root: str) -> Tuple[str, bool]:
    """Return ``(relative_path, outside_root)`` for ``path`` against ``root``.

    Paths outside ``root`` are flagged, never rejected; their relative form keeps
    the leading '..' segments. A path that cannot be expressed relative to root
    at all (different drive) is returned in absolute cleaned form.
    """
    try:
        rel = os.path.relpath(path, root)
    except ValueError:
        return clean_path(os.path.abspath(path)), True
    rel = rel.replace("\\", "/")
    outside = ".." in rel.split("/")
    return rel, outside


def join_root(root: str, rel: str) -> str:
    """Absolute cleaned form of a ledger key under ``root``."""
    return clean_path(os.path.join(root, rel))
