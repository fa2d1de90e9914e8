from __future__ import annotations

import argparse
import os
import sys
from typing import List, Optional, TextIO

from treehash import __version__
from treehash.config import EngineConfig, RunMode
from treehash.constants import STDIO_LEDGER
from treehash.engine import RunResult, Status, find_removed, prune, run
from treehash.errors import ConfigurationError, UnsupportedAlgorithm
from treehash.events import EventListener
from treehash.hashutil import algorithm_names, get_algorithm
from treehash.pathutil import clean_path, relativize
from treehash.scan import select_files


# Exit codes
EXIT_OK = 0
EXIT_INVALID = -1
EXIT_ENGINE = -2
EXIT_FILES_FAILED = 1
EXIT_ERRORS = 2

LOG_QUIET, LOG_ERRORS, LOG_WARNINGS, LOG_ALL = 0, 1, 2, 3
_LOG_LEVELS = {"q": LOG_QUIET, "e": LOG_ERRORS, "w": LOG_WARNINGS, "a": LOG_ALL}


class _Console:
    """Prints engine events according to the log level."""

    def __init__(self, loglevel: int, out: TextIO):
        self.loglevel = loglevel
        self.out = out

    def _print(self, line: str) -> None:
        print(line, file=self.out, flush=True)

    def on_file_processed(self, path: str, success: bool) -> None:
        if not success and self.loglevel >= LOG_ERRORS:
            self._print(f"file unsuccessful: {path}")
        elif success and self.loglevel >= LOG_ALL:
            self._print(f"file successful: {path}")

    def on_warning(self, msg: str, path: str) -> None:
        if self.loglevel >= LOG_WARNINGS:
            self._print(f"WARNING: {msg} @ {path}")

    def on_error(self, msg: str, path: str) -> None:
        if self.loglevel >= LOG_ERRORS:
            self._print(f"ERROR: {msg} @ {path}")

    def listener(self) -> EventListener:
        return EventListener(
            on_file_processed=self.on_file_processed,
            on_warning=self.on_warning,
            on_error=self.on_error,
        )


def _exit_code(result: RunResult) -> int:
    """Map an engine result to the process exit code."""
    if result.status is Status.CONFIG_ERROR:
        print(f"Error: {result.message}", file=sys.stderr)
        return EXIT_INVALID
    if result.fatal:
        print(f"Error: {result.message}", file=sys.stderr)
        return EXIT_ENGINE
    if result.status is Status.ERRORS_REPORTED:
        return EXIT_ERRORS
    if result.status is Status.FILES_FAILED:
        return EXIT_FILES_FAILED
    return EXIT_OK


def _check_root(root: str) -> bool:
    if not os.path.isdir(root):
        print("Error: root does not exist or is not a directory", file=sys.stderr)
        return False
    return True


def _check_ledger_file(ledger: str, *, must_exist: bool) -> bool:
    if ledger == STDIO_LEDGER:
        return True
    if os.path.exists(ledger):
        if not os.path.isfile(ledger):
            print("Error: hash-file is not a file", file=sys.stderr)
            return False
    elif must_exist:
        print("Error: hash-file does not exist", file=sys.stderr)
        return False
    return True


def _candidates(
    root: str,
    ledger: str,
    includes: List[str],
    excludes: List[str],
    linked_dirs: bool,
    linked_files: bool,
) -> List[str]:
    sel = select_files(
        root,
        includes=includes,
        excludes=excludes,
        ledger_path=None if ledger == STDIO_LEDGER else ledger,
        include_linked_dirs=linked_dirs,
        include_linked_files=linked_files,
    )
    for e in sel.invalid_excludes:
        print(f"invalid exclude-path (ignoring): {e}", file=sys.stderr)
    for i in sel.invalid_includes:
        print(f"invalid include-path (ignoring): {i}", file=sys.stderr)
    return sel.files


def _with_ledger(builder, ledger: str, *, writes: bool):
    if ledger == STDIO_LEDGER:
        # stdout carries the ledger; it cannot be rewound
        return builder.ledger_streams(
            sys.stdin.buffer,
            sys.stdout.buffer if writes else None,
            truncate=False,
        )
    return builder.ledger_path(ledger)


def cmd_run(
    root: str,
    ledger: str,
    mode: str,
    *,
    loglevel: int = LOG_WARNINGS,
    includes: Optional[List[str]] = None,
    excludes: Optional[List[str]] = None,
    hmac_key: Optional[str] = None,
    hash_alg: Optional[str] = None,
    linked_dirs: bool = True,
    linked_files: bool = True,
) -> int:
    """Hash or verify the selected files of ``root`` against ``ledger``.

    Args:
        root: Root directory; ledger keys are relative to it.
        ledger: Ledger file path, or "-" to read stdin and write stdout.
        mode: "update", "update_new", "update_modified" or "verify".
        loglevel: One of the LOG_* levels.
        includes: Paths (relative to root) to restrict the scan to.
        excludes: Paths (relative to root) to leave out.
        hmac_key: When set, digests are HMACs under this key.
        hash_alg: Algorithm name; default comes from the ledger, then Keccak_512.
        linked_dirs: Follow directory symlinks while scanning.
        linked_files: Include file symlinks.

    Returns:
        The process exit code.
    """
    try:
        run_mode = RunMode.parse(mode)
        if hash_alg:
            get_algorithm(hash_alg)
    except (ConfigurationError, UnsupportedAlgorithm) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_INVALID
    if not _check_root(root):
        return EXIT_INVALID
    if not _check_ledger_file(ledger, must_exist=not run_mode.updates):
        return EXIT_INVALID

    # with the ledger on stdout, all diagnostics go to stderr
    console = _Console(loglevel, sys.stderr if ledger == STDIO_LEDGER else sys.stdout)
    try:
        files = _candidates(root, ledger, includes or [], excludes or [], linked_dirs, linked_files)
        builder = (
            EngineConfig.builder()
            .mode(run_mode)
            .root_dir(root)
            .hash_algorithm(hash_alg)
            .hmac_key(hmac_key)
            .files(files)
        )
        config = _with_ledger(builder, ledger, writes=run_mode.updates).build()
    except ConfigurationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_INVALID
    except OSError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_ENGINE
    return _exit_code(run(config, console.listener()))


def cmd_clean(
    root: str,
    ledger: str,
    *,
    loglevel: int = LOG_WARNINGS,
    includes: Optional[List[str]] = None,
    excludes: Optional[List[str]] = None,
    linked_dirs: bool = True,
    linked_files: bool = True,
) -> int:
    """Remove every ledger entry whose file is not among the selected files."""
    if not _check_root(root) or not _check_ledger_file(ledger, must_exist=True):
        return EXIT_INVALID
    console = _Console(loglevel, sys.stderr)
    try:
        keep = _candidates(root, ledger, includes or [], excludes or [], linked_dirs, linked_files)
        config = _with_ledger(EngineConfig.builder().root_dir(root), ledger, writes=True).build()
    except ConfigurationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_INVALID
    except OSError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_ENGINE
    result = prune(config, keep, console.listener())
    if not result.fatal and loglevel >= LOG_ALL:
        for key in result.paths:
            print(f"removed entry: {key}", file=sys.stderr)
    return _exit_code(result)


def _drop_excluded(missing: List[str], root: str, excludes: List[str]) -> List[str]:
    for e in excludes:
        path = clean_path(os.path.join(root, e))
        rel, _ = relativize(path, root)
        # a vanished directory can only be recognised by its trailing slash
        as_dir = os.path.isdir(path) or (not os.path.exists(path) and e.endswith(("/", "\\")))
        if as_dir:
            prefix = rel.rstrip("/") + "/"
            missing = [m for m in missing if m != rel and not m.startswith(prefix)]
        else:
            missing = [m for m in missing if m != rel]
    return missing


def cmd_check_removed(
    root: str,
    ledger: str,
    *,
    loglevel: int = LOG_WARNINGS,
    includes: Optional[List[str]] = None,
    excludes: Optional[List[str]] = None,
    linked_dirs: bool = True,
    linked_files: bool = True,
    out: Optional[TextIO] = None,
) -> int:
    """Print the ledger keys (one per line) whose files no longer exist."""
    if not _check_root(root) or not _check_ledger_file(ledger, must_exist=True):
        return EXIT_INVALID
    console = _Console(loglevel, sys.stderr)
    excludes = excludes or []
    try:
        existing = _candidates(root, ledger, includes or [], excludes, linked_dirs, linked_files)
        config = _with_ledger(EngineConfig.builder().root_dir(root), ledger, writes=False).build()
    except ConfigurationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_INVALID
    except OSError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_ENGINE
    result = find_removed(config, existing, console.listener())
    if result.fatal:
        return _exit_code(result)
    out = out or sys.stdout
    for line in _drop_excluded(list(result.paths), root, excludes):
        print(line, file=out)
    return _exit_code(result)


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str):
        self.print_usage(sys.stderr)
        print(f"{self.prog}: error: {message}", file=sys.stderr)
        sys.exit(EXIT_INVALID)


def main(argv: List[str] | None = None):
    ap = _ArgumentParser(
        prog="treehash",
        description="TreeHash is a utility to create and verify hashes for a file-tree.",
        epilog=(
            "Exit codes: 0 success, 1 at least one file was unsuccessful, 2 an error was reported, "
            "-1 invalid arguments, -2 the ledger could not be read or written."
        ),
    )
    ap.add_argument("-m", "--mode", choices=[m.value for m in RunMode], help="Mode of operation")
    ap.add_argument(
        "-l",
        "--loglevel",
        choices=sorted(_LOG_LEVELS),
        default="w",
        help=(
            "Verbosity: 'q' prints nothing, 'e' errors only, 'w' errors and warnings (default), "
            "'a' errors, warnings and processed files"
        ),
    )
    ap.add_argument("-r", "--root", required=True, help="Root directory (for listing files and relative paths)")
    ap.add_argument(
        "-f",
        "--hashfile",
        required=True,
        help=(
            "Path to the ledger file; '-' reads it from stdin and (when updating) writes it to stdout, "
            "with all messages on stderr"
        ),
    )
    ap.add_argument("-e", "--exclude", action="append", default=[], help="File or directory to exclude (relative to --root)")
    ap.add_argument(
        "-i",
        "--include",
        action="append",
        default=[],
        help="File or directory to include (relative to --root); when set only these are used",
    )
    ap.add_argument("-k", "--hmac-key", help="Compute HMACs with this key instead of plain hashes")
    ap.add_argument(
        "-c",
        "--clean",
        action="store_true",
        help="Remove entries of files that no longer exist (honours -e and -i); consider a backup first",
    )
    ap.add_argument(
        "--check-removed",
        action="store_true",
        help="List entries of files that no longer exist (honours -e and -i)",
    )
    ap.add_argument("--no-linked-dirs", action="store_true", help="Do not follow linked directories")
    ap.add_argument("--no-linked-files", action="store_true", help="Exclude linked files")
    ap.add_argument(
        "--hash-alg",
        help=f"Hash algorithm: {', '.join(algorithm_names())} (default Keccak_512, or the ledger's)",
    )
    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    args = ap.parse_args(argv)
    loglevel = _LOG_LEVELS[args.loglevel]
    common = dict(
        loglevel=loglevel,
        includes=args.include,
        excludes=args.exclude,
        linked_dirs=not args.no_linked_dirs,
        linked_files=not args.no_linked_files,
    )

    if args.clean:
        if args.mode or args.hmac_key or args.check_removed:
            print("Error: -c cannot be used with -m, -k or --check-removed", file=sys.stderr)
            sys.exit(EXIT_INVALID)
        sys.exit(cmd_clean(args.root, args.hashfile, **common))
    if args.check_removed:
        if args.mode or args.hmac_key:
            print("Error: --check-removed cannot be used with -m, -k or -c", file=sys.stderr)
            sys.exit(EXIT_INVALID)
        sys.exit(cmd_check_removed(args.root, args.hashfile, **common))
    if not args.mode:
        print("Error: mode must be set (-m)", file=sys.stderr)
        sys.exit(EXIT_INVALID)
    sys.exit(
        cmd_run(
            args.root,
            args.hashfile,
            args.mode,
            hmac_key=args.hmac_key,
            hash_alg=args.hash_alg,
            **common,
        )
    )


if __name__ == "__main__":
    main()
