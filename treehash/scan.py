from __future__ import annotations

import os
from typing import Dict, FrozenSet, Iterable, List, NamedTuple, Optional

from .errors import ConfigurationError
from .pathutil import clean_path


def _abs(p: str) -> str:
    return clean_path(os.path.abspath(p))


def _descend(dirpath: str, names: Iterable[str], chain: FrozenSet[str], follow_links: bool) -> Dict[str, FrozenSet[str]]:
    """Subdirectories the walk enters, in name order, each with its ancestor chain.

    Symlinked directories are left out unless ``follow_links``, as are links
    back into the chain.
    """
    out: Dict[str, FrozenSet[str]] = {}
    for name in sorted(names):
        path = os.path.join(dirpath, name)
        if not follow_links and os.path.islink(path):
            continue
        real = os.path.realpath(path)
        if real in chain:
            continue  # symlink loop
        out[path] = chain | {real}
    return out


def list_all_files_in_dir(root: str, include_linked_dirs: bool = True, include_linked_files: bool = True) -> List[str]:
    """List every regular file below ``root`` as a cleaned absolute path.

    Args:
        root: Directory to scan.
        include_linked_dirs: Descend into symlinked directories.
        include_linked_files: Keep symlinks that point at regular files.

    Raises:
        ConfigurationError: If ``root`` is not a directory.
    """
    if not os.path.isdir(root):
        raise ConfigurationError(f"given path is not a directory: {root}")
    out: List[str] = []
    # real paths of each walked directory and its ancestors
    chains: Dict[str, FrozenSet[str]] = {root: frozenset([os.path.realpath(root)])}
    for dirpath, dirnames, filenames in os.walk(root, followlinks=include_linked_dirs):
        subdirs = _descend(dirpath, dirnames, chains.pop(dirpath), include_linked_dirs)
        chains.update(subdirs)
        dirnames[:] = [os.path.basename(p) for p in subdirs]
        for name in sorted(filenames):
            full = os.path.join(dirpath, name)
            if not include_linked_files and os.path.islink(full):
                continue
            if not os.path.isfile(full):
                continue
            out.append(_abs(full))
    return out


class Selection(NamedTuple):
    files: List[str]
    invalid_includes: List[str]
    invalid_excludes: List[str]


def _under(path: str, directory: str) -> bool:
    return path == directory or path.startswith(directory.rstrip("/") + "/")


def select_files(
    root: str,
    *,
    includes: Iterable[str] = (),
    excludes: Iterable[str] = (),
    ledger_path: Optional[str] = None,
    include_linked_dirs: bool = True,
    include_linked_files: bool = True,
) -> Selection:
    """Build the candidate list for a run from include/exclude paths.

    Includes and excludes are relative to ``root`` (absolute paths also work).
    With includes, only the included directories are scanned and included plain
    files are appended after the excludes were applied; without includes the
    whole root is scanned. The ledger file itself is never a candidate.
    """
    includes = list(includes)
    excludes = list(excludes)
    invalid_inc: List[str] = []
    invalid_exc: List[str] = []

    files: List[str] = []
    if includes:
        for inc in includes:
            path = _abs(os.path.join(root, inc))
            if os.path.isdir(path):
                files.extend(list_all_files_in_dir(path, include_linked_dirs, include_linked_files))
    else:
        files = list_all_files_in_dir(root, include_linked_dirs, include_linked_files)
    files = list(dict.fromkeys(files))

    for exc in excludes:
        path = _abs(os.path.join(root, exc))
        if os.path.isdir(path):
            files = [f for f in files if not _under(f, path)]
        elif os.path.isfile(path):
            files = [f for f in files if f != path]
        else:
            invalid_exc.append(exc)

    for inc in includes:
        path = _abs(os.path.join(root, inc))
        if os.path.isdir(path):
            continue
        if os.path.isfile(path):
            if path not in files:
                files.append(path)
        else:
            invalid_inc.append(inc)

    if ledger_path:
        ledger_abs = _abs(ledger_path)
        files = [f for f in files if f != ledger_abs]
    return Selection(files, invalid_inc, invalid_exc)
