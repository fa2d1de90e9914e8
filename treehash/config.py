from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import BinaryIO, Iterable, Optional, Tuple, Union

from .errors import ConfigurationError, UnsupportedAlgorithm
from .hashutil import get_algorithm


class RunMode(Enum):
    # re-hash every candidate and overwrite its entry
    UPDATE = "update"
    # hash only candidates without an entry
    UPDATE_NEW = "update_new"
    # re-hash tracked candidates whose mtime advanced
    UPDATE_MODIFIED = "update_modified"
    # compare every candidate against its entry; never writes
    VERIFY = "verify"

    @property
    def updates(self) -> bool:
        return self is not RunMode.VERIFY

    @classmethod
    def parse(cls, value: Union[str, "RunMode"]) -> "RunMode":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            names = ", ".join(m.value for m in cls)
            raise ConfigurationError(f"invalid mode '{value}' (expected one of: {names})") from None


@dataclass(frozen=True)
class EngineConfig:
    """Everything one engine call needs. Build it with :meth:`builder`.

    The ledger is either a path (read and rewritten in place) or a pair of
    streams, e.g. stdin/stdout. ``truncate_destination`` applies to streams only.
    """

    mode: RunMode = RunMode.VERIFY
    root_dir: Optional[str] = None
    hash_algorithm: Optional[str] = None
    hmac_key: Union[str, bytes] = ""
    files: Tuple[str, ...] = ()
    ledger_path: Optional[str] = None
    ledger_source: Optional[BinaryIO] = None
    ledger_destination: Optional[BinaryIO] = None
    truncate_destination: bool = True

    @staticmethod
    def builder() -> "ConfigBuilder":
        return ConfigBuilder()

    def validate(self) -> None:
        if not isinstance(self.mode, RunMode):
            raise ConfigurationError(f"invalid mode {self.mode!r}")
        if self.hash_algorithm:
            try:
                get_algorithm(self.hash_algorithm)
            except UnsupportedAlgorithm as exc:
                raise ConfigurationError(str(exc)) from exc
        has_streams = self.ledger_source is not None or self.ledger_destination is not None
        if self.ledger_path and has_streams:
            raise ConfigurationError("configure either a ledger path or ledger streams, not both")
        if not self.ledger_path and self.ledger_source is None:
            raise ConfigurationError("no ledger configured")
        if self.mode.updates and not self.ledger_path and self.ledger_destination is None:
            raise ConfigurationError(f"mode '{self.mode.value}' needs a ledger destination")


class ConfigBuilder:
    def __init__(self):
        self._cfg = EngineConfig()

    def mode(self, mode: Union[str, RunMode]) -> "ConfigBuilder":
        self._cfg = replace(self._cfg, mode=RunMode.parse(mode))
        return self

    def root_dir(self, path: Optional[str]) -> "ConfigBuilder":
        self._cfg = replace(self._cfg, root_dir=str(path) if path else None)
        return self

    def hash_algorithm(self, name: Optional[str]) -> "ConfigBuilder":
        self._cfg = replace(self._cfg, hash_algorithm=name or None)
        return self

    def hmac_key(self, key: Union[str, bytes, None]) -> "ConfigBuilder":
        self._cfg = replace(self._cfg, hmac_key=key or "")
        return self

    def files(self, paths: Iterable[str]) -> "ConfigBuilder":
        self._cfg = replace(self._cfg, files=tuple(str(p) for p in paths))
        return self

    def ledger_path(self, path: str) -> "ConfigBuilder":
        self._cfg = replace(self._cfg, ledger_path=str(path))
        return self

    def ledger_streams(
        self,
        source: BinaryIO,
        destination: Optional[BinaryIO] = None,
        *,
        truncate: bool = True,
    ) -> "ConfigBuilder":
        self._cfg = replace(
            self._cfg,
            ledger_source=source,
            ledger_destination=destination,
            truncate_destination=truncate,
        )
        return self

    def build(self) -> EngineConfig:
        self._cfg.validate()
        return self._cfg
