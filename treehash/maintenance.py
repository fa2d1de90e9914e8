from __future__ import annotations

import os
from typing import Iterable, List, Set

from .errors import ConfigurationError
from .ledger import Ledger
from .pathutil import canonical_root, clean_path, join_root


def _require_root(root_dir: str) -> str:
    if not root_dir or not os.path.isdir(root_dir):
        raise ConfigurationError(f"root directory does not exist or is not a directory: {root_dir}")
    return canonical_root(root_dir)


def _abs_set(paths: Iterable[str]) -> Set[str]:
    return {clean_path(os.path.abspath(p)) for p in paths}


def prune(ledger: Ledger, root_dir: str, keep: Iterable[str]) -> Ledger:
    """Return a copy of ``ledger`` holding only the entries named by ``keep``.

    Each element of ``keep`` is either absolute or relative to ``root_dir``; an
    entry survives when its key, or the key joined to the root, is in ``keep``.

    Raises:
        ConfigurationError: If ``root_dir`` is not an existing directory.
    """
    root = _require_root(root_dir)
    wanted = {clean_path(p) for p in keep}
    kept = {
        key: entry
        for key, entry in ledger.entries.items()
        if key in wanted or clean_path(key) in wanted or join_root(root, key) in wanted
    }
    return Ledger(entries=kept, root_dir=ledger.root_dir, hash_algorithm=ledger.hash_algorithm)


def find_removed(ledger: Ledger, root_dir: str, existing: Iterable[str]) -> List[str]:
    """List ledger keys whose file is not among ``existing`` (absolute paths).

    The result follows ledger order and is recomputable from the same inputs.

    Raises:
        ConfigurationError: If ``root_dir`` is not an existing directory.
    """
    root = _require_root(root_dir)
    present = _abs_set(existing)
    return [key for key in ledger.entries if join_root(root, key) not in present]
