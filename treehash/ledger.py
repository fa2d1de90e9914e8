"""Ledger record codec.

On disk a ledger is a JSON object::

    {
      "version": "1",
      "settings": {"rootDir": "/data", "hashAlgorithm": "Keccak_512"},
      "files": {"d1/f1.dat": {"hash": "<hex>", "lastModified": 1700000000}}
    }

An empty source is a valid, empty ledger. Anything that does not parse, or that
carries a different ``version``, is discarded as a whole.
"""

from __future__ import annotations

import io
import json
import os
import stat
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, BinaryIO, Dict, NamedTuple, Optional, Union

from .constants import (
    DEFAULT_HASH_ALGORITHM,
    FORMAT_VERSION,
    KEY_FILES,
    KEY_HASH,
    KEY_HASH_ALGORITHM,
    KEY_LAST_MODIFIED,
    KEY_ROOT_DIR,
    KEY_SETTINGS,
    KEY_VERSION,
)
from .errors import ConfigurationError, LedgerError, LedgerSettingsError, PersistenceError, UnsupportedAlgorithm
from .hashutil import get_algorithm
from .pathutil import canonical_root


_UNREAD = object()


@dataclass
class Entry:
    # Values are kept as parsed; type checks happen where they are used.
    digest_hex: Any = None
    last_modified: Any = None
    # JSON value read from disk; written back untouched until the entry is replaced
    raw: Any = field(default=_UNREAD, compare=False, repr=False)

    @classmethod
    def from_json(cls, obj: Any) -> "Entry":
        if not isinstance(obj, dict):
            return cls(raw=obj)
        return cls(digest_hex=obj.get(KEY_HASH), last_modified=obj.get(KEY_LAST_MODIFIED), raw=obj)

    def to_json(self) -> Any:
        if self.raw is not _UNREAD:
            return self.raw
        out: Dict[str, Any] = {KEY_HASH: self.digest_hex}
        if self.last_modified is not None:
            out[KEY_LAST_MODIFIED] = self.last_modified
        return out


@dataclass
class Ledger:
    entries: Dict[str, Entry] = field(default_factory=dict)
    root_dir: Optional[str] = None
    hash_algorithm: Optional[str] = None


class LoadOutcome(Enum):
    OK = "ok"
    MALFORMED = "malformed"
    VERSION_MISMATCH = "version mismatch"
    MALFORMED_SETTINGS = "malformed settings"

    @property
    def fatal(self) -> bool:
        return self in (LoadOutcome.MALFORMED, LoadOutcome.VERSION_MISMATCH)


class LoadResult(NamedTuple):
    ledger: Ledger
    outcome: LoadOutcome
    detail: str = ""


@dataclass(frozen=True)
class Settings:
    root_dir: str
    hash_algorithm: str


def parse_ledger(data: Union[bytes, str]) -> LoadResult:
    """Decode ledger bytes. Never raises for bad content; see :class:`LoadOutcome`."""
    if isinstance(data, bytes):
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as exc:
            return LoadResult(Ledger(), LoadOutcome.MALFORMED, f"ledger is not valid UTF-8 ({exc})")
    else:
        text = data
    if not text.strip():
        return LoadResult(Ledger(), LoadOutcome.OK)

    try:
        doc = json.loads(text)
    except ValueError as exc:
        return LoadResult(Ledger(), LoadOutcome.MALFORMED, f"ledger is not valid JSON ({exc})")
    if not isinstance(doc, dict):
        return LoadResult(Ledger(), LoadOutcome.MALFORMED, "ledger root is not a JSON object")

    version = doc.get(KEY_VERSION)
    if version != FORMAT_VERSION:
        found = "missing" if version is None else repr(version)
        return LoadResult(
            Ledger(),
            LoadOutcome.VERSION_MISMATCH,
            f"ledger version is {found}, expected '{FORMAT_VERSION}'",
        )

    files = doc.get(KEY_FILES, {})
    if not isinstance(files, dict):
        return LoadResult(Ledger(), LoadOutcome.MALFORMED, f"'{KEY_FILES}' is not a JSON object")
    ledger = Ledger(entries={str(k): Entry.from_json(v) for k, v in files.items()})

    if KEY_SETTINGS not in doc:
        return LoadResult(ledger, LoadOutcome.OK)
    settings = doc[KEY_SETTINGS]
    if not isinstance(settings, dict):
        return LoadResult(ledger, LoadOutcome.MALFORMED_SETTINGS, f"'{KEY_SETTINGS}' is not a JSON object")
    missing = []
    root = settings.get(KEY_ROOT_DIR)
    if isinstance(root, str) and root:
        ledger.root_dir = root
    else:
        missing.append(KEY_ROOT_DIR)
    alg = settings.get(KEY_HASH_ALGORITHM)
    if isinstance(alg, str) and alg:
        ledger.hash_algorithm = alg
    else:
        missing.append(KEY_HASH_ALGORITHM)
    if missing:
        return LoadResult(
            ledger,
            LoadOutcome.MALFORMED_SETTINGS,
            f"ledger settings lack a valid {', '.join(missing)}",
        )
    return LoadResult(ledger, LoadOutcome.OK)


def load_ledger(source: Union[BinaryIO, io.TextIOBase]) -> LoadResult:
    """Read a whole ledger from an open stream.

    Raises:
        LedgerError: If the stream cannot be read.
    """
    try:
        data = source.read()
    except (OSError, ValueError) as exc:
        raise LedgerError(f"unable to read ledger: {exc}") from exc
    return parse_ledger(data if data is not None else b"")


def resolve_root(ledger: Ledger, root_dir: Optional[str] = None) -> str:
    """Canonical root: the caller's, else the one stored in the ledger.

    Raises:
        ConfigurationError: If neither is set.
    """
    root = root_dir or ledger.root_dir
    if not root:
        raise ConfigurationError("no root directory configured and none stored in the ledger")
    return canonical_root(root)


def resolve_settings(ledger: Ledger, root_dir: Optional[str] = None, hash_algorithm: Optional[str] = None) -> Settings:
    """Merge caller settings over the ledger's embedded ones, then over defaults.

    Raises:
        ConfigurationError: If no root directory is known, or the caller's
            algorithm is unknown.
        LedgerSettingsError: If the algorithm named by the ledger is unknown.
    """
    root = resolve_root(ledger, root_dir)

    if hash_algorithm:
        try:
            alg = get_algorithm(hash_algorithm)
        except UnsupportedAlgorithm as exc:
            raise ConfigurationError(str(exc)) from exc
    elif ledger.hash_algorithm:
        try:
            alg = get_algorithm(ledger.hash_algorithm)
        except UnsupportedAlgorithm as exc:
            raise LedgerSettingsError(str(exc)) from exc
    else:
        alg = get_algorithm(DEFAULT_HASH_ALGORITHM)
    return Settings(root_dir=root, hash_algorithm=alg.name)


def dump_ledger(ledger: Ledger, settings: Settings) -> bytes:
    """Serialize with the current format version and the effective settings."""
    doc = {
        KEY_VERSION: FORMAT_VERSION,
        KEY_SETTINGS: {
            KEY_ROOT_DIR: settings.root_dir,
            KEY_HASH_ALGORITHM: settings.hash_algorithm,
        },
        KEY_FILES: {k: e.to_json() for k, e in ledger.entries.items()},
    }
    return (json.dumps(doc, indent=4, sort_keys=True) + "\n").encode("utf-8")


def _sync(dest) -> None:
    try:
        fd = dest.fileno()
    except (OSError, ValueError):
        return  # in-memory stream
    # fsync is meaningless (EINVAL) on pipes and terminals
    if stat.S_ISREG(os.fstat(fd).st_mode):
        os.fsync(fd)


def save_ledger(ledger: Ledger, settings: Settings, dest: Union[BinaryIO, io.TextIOBase], *, truncate: bool = True) -> None:
    """Write the full ledger to ``dest`` and flush it to stable storage.

    Args:
        ledger: Ledger to persist.
        settings: Effective settings embedded in the record.
        dest: Writable stream (binary preferred; text streams get UTF-8 text).
        truncate: Rewind and truncate ``dest`` before writing.

    Raises:
        PersistenceError: On any truncate, write or flush failure.
    """
    payload = dump_ledger(ledger, settings)
    try:
        if truncate:
            dest.seek(0)
            dest.truncate(0)
        if isinstance(dest, io.TextIOBase):
            dest.write(payload.decode("utf-8"))
        else:
            dest.write(payload)
        dest.flush()
        _sync(dest)
    except (OSError, ValueError) as exc:
        raise PersistenceError(f"unable to write ledger: {exc}") from exc
