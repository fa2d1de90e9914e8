"""Engine facade: load the ledger, resolve settings, process, save.

Every entry point takes an immutable :class:`~treehash.config.EngineConfig` and
returns a :class:`RunResult`; fatal conditions come back as a status, never as a
bare exception, and per-file problems are aggregated into the counts.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Tuple

from .config import EngineConfig
from .constants import DEFAULT_HASH_ALGORITHM
from .errors import (
    ConfigurationError,
    LedgerError,
    LedgerFormatError,
    LedgerSettingsError,
    LedgerVersionError,
    PersistenceError,
)
from .events import EventListener, Reporter
from .ledger import Ledger, LoadOutcome, Settings, load_ledger, resolve_root, resolve_settings, save_ledger
from .maintenance import find_removed as _find_removed
from .maintenance import prune as _prune
from .processor import RunModeProcessor


class Status(Enum):
    OK = "ok"
    FILES_FAILED = "files failed"
    ERRORS_REPORTED = "errors reported"
    CONFIG_ERROR = "configuration error"
    LEDGER_ERROR = "ledger error"
    PERSISTENCE_ERROR = "persistence error"

    @property
    def fatal(self) -> bool:
        return self in (Status.CONFIG_ERROR, Status.LEDGER_ERROR, Status.PERSISTENCE_ERROR)


@dataclass(frozen=True)
class RunResult:
    status: Status
    message: str = ""
    processed: int = 0
    failed: int = 0
    warnings: int = 0
    errors: int = 0
    written: int = 0
    # find_removed: removed keys; prune: dropped keys
    paths: Tuple[str, ...] = ()

    @property
    def fatal(self) -> bool:
        return self.status.fatal

    @property
    def ok(self) -> bool:
        return self.status is Status.OK


def _ledger_location(config: EngineConfig) -> str:
    return config.ledger_path or "<stream>"


def _check_ledger_path(path: str, *, must_exist: bool, writable: bool) -> None:
    if os.path.isdir(path):
        raise ConfigurationError(f"ledger path is a directory: {path}")
    if os.path.exists(path):
        if not os.path.isfile(path):
            raise ConfigurationError(f"ledger path is not a regular file: {path}")
        if writable and not os.access(path, os.W_OK):
            raise ConfigurationError(f"ledger file is not writable: {path}")
        return
    if must_exist:
        raise ConfigurationError(f"ledger file does not exist: {path}")
    parent = os.path.dirname(os.path.abspath(path))
    if not os.path.isdir(parent):
        raise ConfigurationError(f"directory for ledger file does not exist: {parent}")


def _load(config: EngineConfig, reporter: Reporter, *, must_exist: bool, writable: bool) -> Ledger:
    location = _ledger_location(config)
    if not config.ledger_path and config.ledger_source is None:
        raise ConfigurationError("no ledger configured")
    if config.ledger_path:
        _check_ledger_path(config.ledger_path, must_exist=must_exist, writable=writable)
        if not os.path.exists(config.ledger_path):
            return Ledger()
        try:
            fh = open(config.ledger_path, "rb")
        except OSError as exc:
            raise ConfigurationError(f"unable to open ledger file: {exc}") from exc
        source = fh
    else:
        if writable and config.ledger_destination is None:
            raise ConfigurationError("no ledger destination configured")
        fh = None
        source = config.ledger_source
    try:
        loaded = load_ledger(source)
    except LedgerError as exc:
        reporter.error(str(exc), location)
        raise
    finally:
        if fh is not None:
            fh.close()

    if loaded.outcome is LoadOutcome.MALFORMED:
        reporter.error(f"ledger is malformed: {loaded.detail}", location)
        raise LedgerFormatError(loaded.detail)
    if loaded.outcome is LoadOutcome.VERSION_MISMATCH:
        reporter.error(f"ledger has an unsupported version: {loaded.detail}", location)
        raise LedgerVersionError(loaded.detail)
    if loaded.outcome is LoadOutcome.MALFORMED_SETTINGS:
        reporter.error(f"ledger settings are malformed: {loaded.detail}", location)
    return loaded.ledger


def _store(config: EngineConfig, ledger: Ledger, settings: Settings) -> None:
    if config.ledger_path:
        mode = "r+b" if os.path.exists(config.ledger_path) else "w+b"
        try:
            fh = open(config.ledger_path, mode)
        except OSError as exc:
            raise PersistenceError(f"unable to open ledger file for writing: {exc}") from exc
        with fh:
            save_ledger(ledger, settings, fh, truncate=True)
    else:
        save_ledger(ledger, settings, config.ledger_destination, truncate=config.truncate_destination)


def _result(reporter: Reporter, status: Optional[Status] = None, message: str = "", **extra) -> RunResult:
    if status is None:
        if reporter.errors:
            status = Status.ERRORS_REPORTED
        elif reporter.failed:
            status = Status.FILES_FAILED
        else:
            status = Status.OK
    return RunResult(
        status=status,
        message=message,
        processed=reporter.processed,
        failed=reporter.failed,
        warnings=reporter.warnings,
        errors=reporter.errors,
        **extra,
    )


def _guarded(config: EngineConfig, reporter: Reporter, body) -> RunResult:
    try:
        return body()
    except ConfigurationError as exc:
        return _result(reporter, Status.CONFIG_ERROR, str(exc))
    except LedgerSettingsError as exc:
        reporter.error(str(exc), _ledger_location(config))
        return _result(reporter, Status.LEDGER_ERROR, str(exc))
    except LedgerError as exc:
        return _result(reporter, Status.LEDGER_ERROR, str(exc))
    except PersistenceError as exc:
        reporter.error(str(exc), _ledger_location(config))
        return _result(reporter, Status.PERSISTENCE_ERROR, str(exc))


def run(config: EngineConfig, listener: Optional[EventListener] = None) -> RunResult:
    """Apply ``config.mode`` to ``config.files`` and save when the mode updates."""
    reporter = Reporter(listener)

    def body() -> RunResult:
        config.validate()
        ledger = _load(config, reporter, must_exist=not config.mode.updates, writable=config.mode.updates)
        settings = resolve_settings(ledger, config.root_dir, config.hash_algorithm)
        proc = RunModeProcessor(ledger, settings, reporter, hmac_key=config.hmac_key)
        written = proc.run(config.mode, config.files)
        if config.mode.updates:
            _store(config, ledger, settings)
        return _result(reporter, written=written)

    return _guarded(config, reporter, body)


def prune(config: EngineConfig, keep: Iterable[str], listener: Optional[EventListener] = None) -> RunResult:
    """Drop every ledger entry not named in ``keep`` and save the ledger.

    ``RunResult.paths`` lists the dropped keys.
    """
    reporter = Reporter(listener)

    def body() -> RunResult:
        ledger = _load(config, reporter, must_exist=True, writable=True)
        # entries are not re-hashed, so the stored algorithm name is kept as is
        settings = Settings(resolve_root(ledger, config.root_dir), ledger.hash_algorithm or DEFAULT_HASH_ALGORITHM)
        pruned = _prune(ledger, settings.root_dir, keep)
        dropped = tuple(k for k in ledger.entries if k not in pruned.entries)
        _store(config, pruned, settings)
        return _result(reporter, paths=dropped)

    return _guarded(config, reporter, body)


def find_removed(config: EngineConfig, existing: Iterable[str], listener: Optional[EventListener] = None) -> RunResult:
    """Report ledger keys with no file among ``existing``; nothing is written.

    ``RunResult.paths`` lists the removed keys in ledger order.
    """
    reporter = Reporter(listener)

    def body() -> RunResult:
        ledger = _load(config, reporter, must_exist=True, writable=False)
        removed = _find_removed(ledger, resolve_root(ledger, config.root_dir), existing)
        return _result(reporter, paths=tuple(removed))

    return _guarded(config, reporter, body)


class Engine:
    """Convenience wrapper binding a config and a listener."""

    def __init__(self, config: EngineConfig, listener: Optional[EventListener] = None):
        self.config = config
        self.listener = listener

    def run(self) -> RunResult:
        return run(self.config, self.listener)

    def prune(self, keep: Iterable[str]) -> RunResult:
        return prune(self.config, keep, self.listener)

    def find_removed(self, existing: Iterable[str]) -> RunResult:
        return find_removed(self.config, existing, self.listener)
