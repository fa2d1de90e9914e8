from __future__ import annotations

import json
import os
import shutil
import tempfile
import unittest
from pathlib import Path

from treehash.config import EngineConfig, RunMode
from treehash.engine import Status, find_removed, prune, run
from treehash.errors import ConfigurationError
from treehash.ledger import Entry, Ledger
from treehash.maintenance import find_removed as find_removed_keys
from treehash.maintenance import prune as prune_ledger
from treehash.pathutil import clean_path
from treehash.scan import _descend, list_all_files_in_dir, select_files


def _write(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


def _make_tree(root: Path) -> None:
    _write(root / "d1" / "f1.dat", b"one")
    _write(root / "d1" / "f2.dat", b"two")
    _write(root / "d1" / "d2" / "f3.dat", b"three")


def _abs(root: Path, rel: str) -> str:
    return clean_path(os.path.abspath(os.path.join(str(root), rel)))


class TreeTestCase(unittest.TestCase):
    def setUp(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.base = Path(tmp.name)
        self.root = self.base / "tree"
        _make_tree(self.root)


class PruneTests(TreeTestCase):
    def setUp(self):
        super().setUp()
        self.ledger = Ledger(
            entries={
                "d1/f1.dat": Entry("11", 1),
                "d1/f2.dat": Entry("22", 2),
                "d1/d2/f3.dat": Entry("33", 3),
            },
            root_dir=str(self.root),
            hash_algorithm="Sha256",
        )

    def test_relative_and_absolute_keep(self):
        keep = ["d1/f2.dat", _abs(self.root, "d1/d2/f3.dat")]
        pruned = prune_ledger(self.ledger, str(self.root), keep)
        self.assertEqual(list(pruned.entries), ["d1/f2.dat", "d1/d2/f3.dat"])
        self.assertEqual(pruned.root_dir, self.ledger.root_dir)
        self.assertEqual(pruned.hash_algorithm, "Sha256")
        # input ledger is left alone
        self.assertEqual(len(self.ledger.entries), 3)

    def test_unclean_keep_paths(self):
        pruned = prune_ledger(self.ledger, str(self.root), ["./d1//f1.dat", "d1/d2/../f2.dat"])
        self.assertEqual(list(pruned.entries), ["d1/f1.dat", "d1/f2.dat"])

    def test_empty_keep_drops_everything(self):
        self.assertEqual(prune_ledger(self.ledger, str(self.root), []).entries, {})

    def test_root_must_exist(self):
        with self.assertRaises(ConfigurationError):
            prune_ledger(self.ledger, str(self.base / "missing"), ["d1/f1.dat"])


class FindRemovedTests(TreeTestCase):
    def test_deleted_directory(self):
        ledger = Ledger(entries={k: Entry("x", 0) for k in ("d1/f1.dat", "d1/f2.dat", "d1/d2/f3.dat")})
        shutil.rmtree(self.root / "d1" / "d2")
        existing = list_all_files_in_dir(str(self.root))
        first = find_removed_keys(ledger, str(self.root), existing)
        self.assertEqual(first, ["d1/d2/f3.dat"])
        self.assertEqual(find_removed_keys(ledger, str(self.root), existing), first)

    def test_result_follows_ledger_order(self):
        ledger = Ledger(entries={k: Entry("x", 0) for k in ("z.dat", "d1/f1.dat", "a.dat")})
        existing = list_all_files_in_dir(str(self.root))
        self.assertEqual(find_removed_keys(ledger, str(self.root), existing), ["z.dat", "a.dat"])

    def test_root_must_exist(self):
        with self.assertRaises(ConfigurationError):
            find_removed_keys(Ledger(), str(self.base / "nope"), [])


class EngineMaintenanceTests(TreeTestCase):
    def setUp(self):
        super().setUp()
        self.ledger_path = self.base / "hashes.json"
        cfg = (
            EngineConfig.builder()
            .mode(RunMode.UPDATE)
            .root_dir(str(self.root))
            .ledger_path(str(self.ledger_path))
            .files(list_all_files_in_dir(str(self.root)))
            .build()
        )
        self.assertTrue(run(cfg).ok)
        # root comes from the ledger from here on
        self.config = EngineConfig.builder().ledger_path(str(self.ledger_path)).build()

    def test_prune_rewrites_ledger(self):
        (self.root / "d1" / "f1.dat").unlink()
        result = prune(self.config, list_all_files_in_dir(str(self.root)))
        self.assertIs(result.status, Status.OK)
        self.assertEqual(result.paths, ("d1/f1.dat",))
        doc = json.loads(self.ledger_path.read_text(encoding="utf-8"))
        self.assertEqual(set(doc["files"]), {"d1/f2.dat", "d1/d2/f3.dat"})
        self.assertEqual(doc["settings"]["hashAlgorithm"], "Keccak_512")

    def test_find_removed_does_not_write(self):
        shutil.rmtree(self.root / "d1" / "d2")
        before = self.ledger_path.read_bytes()
        result = find_removed(self.config, list_all_files_in_dir(str(self.root)))
        self.assertIs(result.status, Status.OK)
        self.assertEqual(result.paths, ("d1/d2/f3.dat",))
        self.assertEqual(self.ledger_path.read_bytes(), before)

    def test_missing_ledger(self):
        self.ledger_path.unlink()
        self.assertIs(find_removed(self.config, []).status, Status.CONFIG_ERROR)
        self.assertIs(prune(self.config, []).status, Status.CONFIG_ERROR)
        self.assertFalse(self.ledger_path.exists())

    def test_unknown_algorithm_name_does_not_block_maintenance(self):
        doc = json.loads(self.ledger_path.read_text(encoding="utf-8"))
        doc["settings"]["hashAlgorithm"] = "Md5"
        self.ledger_path.write_text(json.dumps(doc), encoding="utf-8")
        (self.root / "d1" / "f1.dat").unlink()
        existing = list_all_files_in_dir(str(self.root))

        result = find_removed(self.config, existing)
        self.assertIs(result.status, Status.OK)
        self.assertEqual(result.paths, ("d1/f1.dat",))

        result = prune(self.config, existing)
        self.assertIs(result.status, Status.OK)
        self.assertEqual(result.paths, ("d1/f1.dat",))
        doc = json.loads(self.ledger_path.read_text(encoding="utf-8"))
        self.assertEqual(doc["settings"]["hashAlgorithm"], "Md5")
        self.assertEqual(set(doc["files"]), {"d1/f2.dat", "d1/d2/f3.dat"})


class ScanTests(TreeTestCase):
    def test_lists_regular_files_sorted(self):
        files = list_all_files_in_dir(str(self.root))
        self.assertEqual(files, [_abs(self.root, r) for r in ("d1/f1.dat", "d1/f2.dat", "d1/d2/f3.dat")])

    @unittest.skipUnless(hasattr(os, "symlink"), "symlinks not supported")
    def test_descend_only_where_the_walk_goes(self):
        root = str(self.root)
        try:
            os.symlink(str(self.root / "d1" / "d2"), os.path.join(root, "linkdir"))
            os.symlink(root, os.path.join(root, "d1", "loop"))
        except (OSError, NotImplementedError):
            self.skipTest("cannot create symlinks")
        chain = frozenset([os.path.realpath(root)])
        d1 = os.path.join(root, "d1")

        self.assertEqual(list(_descend(root, ["linkdir", "d1"], chain, False)), [d1])
        followed = _descend(root, ["linkdir", "d1"], chain, True)
        self.assertEqual(list(followed), [d1, os.path.join(root, "linkdir")])
        self.assertEqual(followed[d1], chain | {os.path.realpath(d1)})

        self.assertEqual(list(_descend(d1, ["loop", "d2"], followed[d1], True)), [os.path.join(d1, "d2")])

    def test_not_a_directory(self):
        with self.assertRaises(ConfigurationError):
            list_all_files_in_dir(str(self.root / "d1" / "f1.dat"))

    @unittest.skipUnless(hasattr(os, "symlink"), "symlinks not supported")
    def test_symlinks(self):
        try:
            os.symlink(str(self.root / "d1" / "f1.dat"), str(self.root / "link.dat"))
            os.symlink(str(self.root / "d1" / "d2"), str(self.root / "linkdir"))
            os.symlink(str(self.root), str(self.root / "d1" / "loop"))
        except (OSError, NotImplementedError):
            self.skipTest("cannot create symlinks")

        everything = list_all_files_in_dir(str(self.root))
        self.assertIn(_abs(self.root, "link.dat"), everything)
        self.assertIn(_abs(self.root, "linkdir/f3.dat"), everything)
        self.assertIn(_abs(self.root, "d1/d2/f3.dat"), everything)
        self.assertFalse(any("/loop/" in f for f in everything))

        plain = list_all_files_in_dir(str(self.root), include_linked_dirs=False, include_linked_files=False)
        self.assertEqual(plain, [_abs(self.root, r) for r in ("d1/f1.dat", "d1/f2.dat", "d1/d2/f3.dat")])


class SelectTests(TreeTestCase):
    def test_excludes_and_invalid_paths(self):
        sel = select_files(str(self.root), excludes=["d1/d2", "d1/f1.dat", "nope"])
        self.assertEqual(sel.files, [_abs(self.root, "d1/f2.dat")])
        self.assertEqual(sel.invalid_excludes, ["nope"])
        self.assertEqual(sel.invalid_includes, [])

    def test_includes_restrict_scan(self):
        sel = select_files(str(self.root), includes=["d1/d2", "d1/f1.dat", "missing.dat"])
        self.assertEqual(sel.files, [_abs(self.root, "d1/d2/f3.dat"), _abs(self.root, "d1/f1.dat")])
        self.assertEqual(sel.invalid_includes, ["missing.dat"])

    def test_included_file_beats_directory_exclude(self):
        sel = select_files(str(self.root), includes=["d1", "d1/d2/f3.dat"], excludes=["d1/d2"])
        self.assertEqual(
            sel.files,
            [_abs(self.root, "d1/f1.dat"), _abs(self.root, "d1/f2.dat"), _abs(self.root, "d1/d2/f3.dat")],
        )

    def test_ledger_file_is_never_a_candidate(self):
        ledger = self.root / "hashes.json"
        ledger.write_text("", encoding="utf-8")
        sel = select_files(str(self.root), ledger_path=str(ledger))
        self.assertNotIn(_abs(self.root, "hashes.json"), sel.files)
        self.assertEqual(len(sel.files), 3)


if __name__ == "__main__":
    unittest.main()
