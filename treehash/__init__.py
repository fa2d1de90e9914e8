"""
TreeHash — an integrity ledger for directory trees.

Features:

- JSON ledger mapping relative paths to digests and modification times, with
  the root directory and hash algorithm embedded so a ledger describes itself.
- Run modes: full update, add-new-only, update-if-modified and verify.
- Plain digests (SHA-2, SHA-3, Keccak, BLAKE2b) or HMACs under a caller key.
- Maintenance: prune entries to a keep-set and list entries whose files are gone.
- Pipe-friendly: the ledger can be read from stdin and written to stdout.
"""

__version__ = "1.0"

__all__ = [
    "config",
    "engine",
    "events",
    "hashutil",
    "ledger",
    "maintenance",
    "scan",
]

# Programmatic API: build a treehash.config.EngineConfig and pass it to
# treehash.engine.run / prune / find_removed; the CLI lives in treehash.cli.
