from __future__ import annotations

import os
import stat
from typing import Iterable, Optional, Union

from .config import RunMode
from .events import Reporter
from .hashutil import Algorithm, compute_digest, get_algorithm
from .ledger import Entry, Ledger, Settings
from .pathutil import relativize


def _mtime_seconds(st: os.stat_result) -> int:
    return int(st.st_mtime_ns // 1_000_000_000)


def _stat_regular(path: str) -> Optional[os.stat_result]:
    try:
        st = os.stat(path)
    except OSError:
        return None
    return st if stat.S_ISREG(st.st_mode) else None


class _FileJob:
    """Per-candidate context shared by the mode handlers."""

    def __init__(self, path: str, rel: str, st: os.stat_result):
        self.path = path
        self.rel = rel
        self.mtime = _mtime_seconds(st)


class RunModeProcessor:
    """Applies one run mode to a candidate list, mutating ``ledger.entries``.

    Candidates are handled strictly in list order. A failure on one file is
    reported and never stops the loop.
    """

    def __init__(
        self,
        ledger: Ledger,
        settings: Settings,
        reporter: Reporter,
        *,
        hmac_key: Union[str, bytes, None] = None,
    ):
        self.ledger = ledger
        self.settings = settings
        self.reporter = reporter
        self.hmac_key = hmac_key
        self.algorithm: Algorithm = get_algorithm(settings.hash_algorithm)
        self.changed = 0

    def run(self, mode: RunMode, files: Iterable[str]) -> int:
        """Process all candidates; returns the number of entries written."""
        handler = {
            RunMode.VERIFY: self._verify,
            RunMode.UPDATE: self._update,
            RunMode.UPDATE_NEW: self._update_new,
            RunMode.UPDATE_MODIFIED: self._update_modified,
        }[mode]
        for path in files:
            st = _stat_regular(path)
            if st is None:
                self.reporter.warning("file does not exist or is not a regular file", path)
                self.reporter.file_processed(path, False)
                continue
            rel, outside = relativize(path, self.settings.root_dir)
            if outside:
                self.reporter.warning("file is outside of the root directory", path)
            handler(_FileJob(path, rel, st))
        return self.changed

    def _digest(self, job: _FileJob) -> Optional[str]:
        try:
            return compute_digest(job.path, self.algorithm, self.hmac_key)
        except OSError as exc:
            self.reporter.error(f"unable to hash file ({exc.strerror or exc})", job.path)
            return None

    def _write(self, job: _FileJob) -> None:
        digest = self._digest(job)
        if digest is None:
            self.reporter.file_processed(job.path, False)
            return
        self.ledger.entries[job.rel] = Entry(digest_hex=digest, last_modified=job.mtime)
        self.changed += 1
        self.reporter.file_processed(job.path, True)

    def _verify(self, job: _FileJob) -> None:
        digest = self._digest(job)
        if digest is None:
            self.reporter.file_processed(job.path, False)
            return
        entry = self.ledger.entries.get(job.rel)
        if entry is None:
            self.reporter.warning("no saved hash for file", job.path)
            self.reporter.file_processed(job.path, False)
            return
        if not isinstance(entry.digest_hex, str):
            self.reporter.error("saved hash is not a string", job.path)
            self.reporter.file_processed(job.path, False)
            return
        self.reporter.file_processed(job.path, digest == entry.digest_hex)

    def _update(self, job: _FileJob) -> None:
        self._write(job)

    def _update_new(self, job: _FileJob) -> None:
        if job.rel in self.ledger.entries:
            return
        self._write(job)

    def _update_modified(self, job: _FileJob) -> None:
        entry = self.ledger.entries.get(job.rel)
        if entry is None:
            self.reporter.warning("file is not tracked in the ledger", job.path)
            self.reporter.file_processed(job.path, False)
            return
        stored = entry.last_modified
        if isinstance(stored, bool) or not isinstance(stored, int):
            self.reporter.error("saved entry has no valid modification time", job.path)
            self.reporter.file_processed(job.path, False)
            return
        if job.mtime > stored:
            self._write(job)


def process_files(
    ledger: Ledger,
    settings: Settings,
    mode: RunMode,
    files: Iterable[str],
    reporter: Reporter,
    *,
    hmac_key: Union[str, bytes, None] = None,
) -> int:
    return RunModeProcessor(ledger, settings, reporter, hmac_key=hmac_key).run(mode, files)
