# Copyright Red Hat
#
# tests/test_manager.py - Manager and configuration tests
#
# This file is part of the driftcheck project.
#
# SPDX-License-Identifier: Apache-2.0
import unittest
from unittest.mock import patch
import tempfile
import logging
import shutil
import json
import os

from driftcheck import (
    DriftcheckArgumentError,
    DriftcheckBusyError,
    DriftcheckConfigError,
    DriftcheckNotFoundError,
    DriftcheckPathError,
    DriftcheckStateError,
    DriftcheckSystemError,
)
from driftcheck.manager import DriftcheckConfig, Manager
from driftcheck.manager._manager import _lock_root, _unlock_root
from driftcheck.scan import ChangeKind, Verdict

from ._util import TempRoots, corrupt_file, make_tree, write_file

log = logging.getLogger()

FILES = {
    "a/b.txt": "the quick brown fox",
    "c.txt": "jumps over the lazy dog",
    "photos/cat.jpg": b"\xff\xd8\xff\xe0 not really a jpeg",
}


class ManagerTestsBase(unittest.TestCase):
    roots = ("a", "b")

    def setUp(self):
        log.debug("Preparing %s", self._testMethodName)
        self.temp = TempRoots(self.roots)
        self.temp.populate(FILES)
        self.manager = self.temp.manager()

    def tearDown(self):
        log.debug("Tearing down (%s)", self._testMethodName)
        self.temp.cleanup()


class ManagerTests(ManagerTestsBase):
    def test_add_root(self):
        root = self.manager.roots["a"]
        self.assertEqual(root.path, self.temp.paths["a"])
        self.assertEqual(root.database, os.path.join(self.temp.state_dir, "a.db"))

    def test_add_root_spec(self):
        path = self.temp.paths["a"]
        root = self.manager.add_root(f"mirror={path}/")
        self.assertEqual(root.name, "mirror")
        self.assertEqual(root.path, path)

    def test_add_root_invalid(self):
        with self.assertRaises(DriftcheckArgumentError):
            self.manager.add_root("no-path-given")
        with self.assertRaises(DriftcheckArgumentError):
            self.manager.add_root("bad name", self.temp.paths["a"])
        with self.assertRaises(DriftcheckPathError):
            self.manager.add_root("x", os.path.join(self.temp.base, "missing"))

    def test_resolve_root(self):
        self.assertEqual(self.manager.resolve_root("a"), "a")
        with self.assertRaises(DriftcheckNotFoundError):
            self.manager.resolve_root("nonexistent")
        spec = f"c={self.temp.paths['b']}"
        self.assertEqual(self.manager.resolve_root(spec), "c")
        self.assertIn("c", self.manager.roots)

    def test_scan_and_classify(self):
        results = self.manager.scan_and_classify("a")
        self.assertEqual(len(results.added), len(FILES))
        self.assertTrue(os.path.exists(self.manager.roots["a"].database))
        results = self.manager.scan_and_classify("a")
        self.assertEqual(len(results.unchanged), len(FILES))

    def test_scan_store_inside_root(self):
        path = self.temp.paths["a"]
        db = os.path.join(path, ".driftcheck.db")
        self.manager.add_root("inside", path, database=db)
        self.manager.scan_and_classify("inside")
        results = self.manager.scan_and_classify("inside")
        self.assertEqual(len(results.added), 0)
        self.assertIsNone(results.get(".driftcheck.db"))
        self.assertIsNone(results.get(".driftcheck.db.lock"))

    def test_bit_rot_suspect_and_accept(self):
        self.manager.scan_and_classify("a")
        corrupt_file(self.temp.path("a", "a/b.txt"), "the quick brown f0x")
        results = self.manager.scan_and_classify("a")
        self.assertEqual([e.path for e in results.suspect], ["a/b.txt"])
        self.assertEqual([s.path for s in self.manager.suspects("a")], ["a/b.txt"])

        # Still suspect until accepted
        results = self.manager.scan_and_classify("a")
        self.assertEqual([e.path for e in results.suspect], ["a/b.txt"])

        record = self.manager.accept_suspect("a", "a/b.txt")
        self.assertEqual(record.signature, results.get("a/b.txt").current.signature)
        self.assertEqual(self.manager.suspects("a"), [])
        results = self.manager.scan_and_classify("a")
        self.assertEqual(results.suspect, [])
        self.assertEqual(len(results.unchanged), len(FILES))

    def test_accept_suspect_unknown_path(self):
        self.manager.scan_and_classify("a")
        write_file(self.temp.path("a", "new.txt"), "new")
        with self.assertRaises(DriftcheckNotFoundError):
            self.manager.accept_suspect("a", "new.txt")

    def test_accept_suspect_no_store(self):
        with self.assertRaises(DriftcheckNotFoundError):
            self.manager.accept_suspect("a", "c.txt")

    def test_root_lock_busy(self):
        lockfile = self.manager.roots["a"].database + ".lock"
        fd = _lock_root(lockfile)
        try:
            with self.assertRaises(DriftcheckBusyError):
                self.manager.scan_and_classify("a")
        finally:
            _unlock_root(lockfile, fd)
        self.manager.scan_and_classify("a")

    def test_store_for_other_root(self):
        self.manager.scan_and_classify("a")
        self.manager.roots["b"].database = self.manager.roots["a"].database
        with self.assertRaises(DriftcheckStateError):
            self.manager.scan_and_classify("b")

    def test_scan_roots(self):
        report = self.manager.scan_roots(["a", "b"])
        self.assertFalse(report.failed)
        self.assertEqual(sorted(report.results), ["a", "b"])
        self.assertIsNone(report.reconcile)

    def test_scan_roots_failure_isolated(self):
        blocker = os.path.join(self.temp.base, "blocker")
        write_file(blocker, "not a directory")
        self.manager.roots["b"].database = os.path.join(blocker, "b.db")
        report = self.manager.scan_roots(["a", "b"])
        self.assertTrue(report.failed)
        self.assertIn("a", report.results)
        self.assertIsInstance(report.errors["b"], DriftcheckSystemError)
        self.assertIn("Root b failed", report.summary())

    def test_check_requires_two_roots(self):
        with self.assertRaises(DriftcheckArgumentError):
            self.manager.check(["a"])

    def test_check_consistent(self):
        report = self.manager.check(["a", "b"])
        self.assertFalse(report.failed)
        self.assertEqual(len(report.reconcile.consistent), len(FILES))
        data = json.loads(report.json())
        self.assertEqual(data["reconcile"]["counts"]["consistent"], len(FILES))

    def test_check_two_roots_inconclusive(self):
        make_tree(self.temp.paths["b"], {"c.txt": "jumps over the lazy d0g"})
        self.manager.check(["a", "b"])
        report = self.manager.check(["a", "b"])
        verdict = report.reconcile.get("c.txt")
        self.assertEqual(verdict.verdict, Verdict.DIVERGENT_SUSPECT)
        self.assertEqual(sorted(verdict.suspect_roots), ["a", "b"])
        self.assertTrue(verdict.inconclusive)
        self.assertIn("divergent_suspect", report.short())

    def test_stats_and_dupes(self):
        write_file(self.temp.path("a", "copy.txt"), FILES["c.txt"])
        self.manager.scan_and_classify("a")
        stats = self.manager.stats("a")
        self.assertEqual(stats["records"], len(FILES) + 1)
        total = sum(len(content) for content in FILES.values()) + len(FILES["c.txt"])
        self.assertEqual(stats["total_size"], total)
        self.assertEqual(stats["average_size"], total // (len(FILES) + 1))
        self.assertEqual(stats["suspects"], 0)
        self.assertEqual(stats["hash_algorithm"], "sha256")
        self.assertGreater(stats["database_size"], 0)
        dupes = self.manager.dupes("a")
        self.assertEqual(len(dupes), 1)
        self.assertEqual(
            [r.path for r in next(iter(dupes.values()))], ["c.txt", "copy.txt"]
        )

    def test_stats_no_store(self):
        with self.assertRaises(DriftcheckNotFoundError):
            self.manager.stats("a")


class ManagerThreeRootTests(ManagerTestsBase):
    roots = ("a", "b", "c")

    def test_check_names_minority(self):
        make_tree(self.temp.paths["c"], {"c.txt": "jumps over the lazy d0g"})
        report = self.manager.check(["a", "b", "c"])
        # First sight of the content: explained by the Added classification
        verdict = report.reconcile.get("c.txt")
        self.assertEqual(verdict.verdict, Verdict.DIVERGENT_EXPLAINED)

        report = self.manager.check(["a", "b", "c"])
        verdict = report.reconcile.get("c.txt")
        self.assertEqual(verdict.verdict, Verdict.DIVERGENT_SUSPECT)
        self.assertEqual(verdict.suspect_roots, ["c"])
        self.assertEqual(
            verdict.majority_signature, verdict.per_root_signature["a"]
        )
        # The majority value is never applied to the minority's store
        self.assertEqual(report.results["c"].get("c.txt").kind, ChangeKind.UNCHANGED)
        self.assertEqual(len(report.reconcile.suspect), 1)

    def test_check_local_suspect_is_explained(self):
        self.manager.check(["a", "b", "c"])
        corrupt_file(self.temp.path("c", "a/b.txt"), "the quick brown f0x")
        report = self.manager.check(["a", "b", "c"])
        self.assertEqual(report.results["c"].get("a/b.txt").kind, ChangeKind.SUSPECT)
        verdict = report.reconcile.get("a/b.txt")
        self.assertEqual(verdict.verdict, Verdict.DIVERGENT_EXPLAINED)
        self.assertEqual(verdict.minority_roots, ["c"])

    def test_check_missing_path(self):
        self.manager.check(["a", "b", "c"])
        os.unlink(self.temp.path("b", "c.txt"))
        report = self.manager.check(["a", "b", "c"])
        verdict = report.reconcile.get("c.txt")
        self.assertEqual(verdict.verdict, Verdict.CONSISTENT)
        self.assertEqual(verdict.missing_roots, ["b"])

    def test_compare(self):
        make_tree(self.temp.paths["c"], {"c.txt": "jumps over the lazy d0g"})
        self.manager.scan_roots(["a", "b", "c"])
        results = self.manager.compare(["a", "b", "c"])
        verdict = results.get("c.txt")
        self.assertEqual(verdict.verdict, Verdict.DIVERGENT_SUSPECT)
        self.assertEqual(verdict.suspect_roots, ["c"])
        self.assertEqual(len(results.consistent), len(FILES) - 1)

    def test_compare_uses_suspect_signature(self):
        self.manager.scan_roots(["a", "b", "c"])
        corrupt_file(self.temp.path("c", "a/b.txt"), "the quick brown f0x")
        self.manager.scan_and_classify("c")
        results = self.manager.compare(["a", "b", "c"])
        verdict = results.get("a/b.txt")
        self.assertEqual(verdict.verdict, Verdict.DIVERGENT_EXPLAINED)
        self.assertEqual(verdict.minority_roots, ["c"])

    def test_compare_requires_store(self):
        self.manager.scan_roots(["a", "b"])
        with self.assertRaises(DriftcheckNotFoundError):
            self.manager.compare(["a", "b", "c"])


class ConfigTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.mkdtemp(prefix="driftcheck-config-")
        self.config_file = os.path.join(self.tmpdir, "driftcheck.conf")
        self.root = os.path.join(self.tmpdir, "root")
        os.makedirs(self.root)

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def _write_config(self, text):
        with open(self.config_file, "w", encoding="utf8") as f:
            f.write(text)

    def test_missing_config_file(self):
        config = DriftcheckConfig.from_file(self.config_file)
        self.assertEqual(config, DriftcheckConfig())

    def test_from_file(self):
        self._write_config(
            "[Global]\n"
            f"StateDir = {self.tmpdir}/state\n"
            "HashAlgorithm = blake2b\n"
            "Workers = 4\n"
            "FollowSymlinks = yes\n"
            "CommitInterval = 0\n"
            "Sync = no\n"
            "Exclude = *.tmp, cache/*\n"
            "UseMagic = yes\n"
            "\n"
            "[Root:primary]\n"
            f"Path = {self.root}\n"
            "\n"
            "[Root:backup]\n"
            f"Path = {self.root}\n"
            f"Database = {self.tmpdir}/backup.db\n"
        )
        config = DriftcheckConfig.from_file(self.config_file)
        self.assertEqual(config.state_dir, f"{self.tmpdir}/state")
        self.assertEqual(config.hash_algorithm, "blake2b")
        self.assertEqual(config.workers, 4)
        self.assertTrue(config.follow_symlinks)
        self.assertEqual(config.commit_interval, 0)
        self.assertFalse(config.sync)
        self.assertEqual(config.exclude_patterns, ["*.tmp", "cache/*"])
        self.assertTrue(config.use_magic_file_type)
        self.assertEqual(sorted(config.roots), ["backup", "primary"])
        self.assertEqual(
            config.roots["primary"].database, f"{self.tmpdir}/state/primary.db"
        )
        self.assertEqual(config.roots["backup"].database, f"{self.tmpdir}/backup.db")

        options = config.scan_options(quiet=True)
        self.assertEqual(options.hash_algorithm, "blake2b")
        self.assertEqual(options.exclude_patterns, ("*.tmp", "cache/*"))
        self.assertTrue(options.quiet)

        manager = Manager(config)
        self.assertEqual(sorted(manager.roots), ["backup", "primary"])
        self.assertEqual(manager.options.workers, 4)

    def test_bad_values(self):
        for text in (
            "[Global]\nWorkers = many\n",
            "[Global]\nWorkers = 0\n",
            "[Global]\nHashAlgorithm = crc32\n",
            "[Global]\nSync = perhaps\n",
            "[Global]\nCommitInterval = -1\n",
            "[Root:nopath]\nDatabase = /tmp/x.db\n",
            "[Root:bad name]\nPath = /tmp\n",
            "not an ini file\n",
        ):
            self._write_config(text)
            with self.assertRaises(DriftcheckConfigError, msg=text):
                DriftcheckConfig.from_file(self.config_file)


class LockTests(unittest.TestCase):
    def test_lock_unlock(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            lockfile = os.path.join(tmpdir, "sub", "root.db.lock")
            fd = _lock_root(lockfile)
            with self.assertRaises(DriftcheckBusyError):
                _lock_root(lockfile)
            _unlock_root(lockfile, fd)
            fd = _lock_root(lockfile)
            _unlock_root(lockfile, fd)

    def test_lock_system_error(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            lockfile = os.path.join(tmpdir, "root.db.lock")
            with patch(
                "driftcheck.manager._manager.os.open", side_effect=PermissionError
            ):
                with self.assertRaises(DriftcheckSystemError):
                    _lock_root(lockfile)
