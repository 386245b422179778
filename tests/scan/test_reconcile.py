# Copyright Red Hat
#
# tests/scan/test_reconcile.py - Cross-root Reconciler tests.
#
# This file is part of the driftcheck project.
#
# SPDX-License-Identifier: Apache-2.0
import unittest
from unittest.mock import MagicMock, patch
import json

from driftcheck import DriftcheckArgumentError
from driftcheck.scan import ChangeKind, Reconciler, ScanOptions, Verdict

from ._util import make_event

S1 = "1" * 64
S2 = "2" * 64
S3 = "3" * 64

UNCHANGED = ChangeKind.UNCHANGED


def _results(**per_root):
    """
    Build per-root event lists from ``root=[events]`` keyword arguments.
    """
    return dict(per_root)


class TestReconciler(unittest.TestCase):
    def setUp(self):
        self.reconciler = Reconciler(ScanOptions(quiet=True))

    def test_consistent(self):
        results = self.reconciler.reconcile(
            ["a", "b"],
            _results(
                a=[make_event("x.txt", UNCHANGED, S1)],
                b=[make_event("x.txt", ChangeKind.ADDED, S1)],
            ),
        )
        verdict = results.get("x.txt")
        self.assertEqual(verdict.verdict, Verdict.CONSISTENT)
        self.assertEqual(verdict.per_root_signature, {"a": S1, "b": S1})
        self.assertEqual(verdict.suspect_roots, [])
        self.assertEqual(len(results.consistent), 1)

    def test_three_roots_names_minority(self):
        results = self.reconciler.reconcile(
            ["a", "b", "c"],
            _results(
                a=[make_event("x.txt", UNCHANGED, S1)],
                b=[make_event("x.txt", UNCHANGED, S1)],
                c=[make_event("x.txt", UNCHANGED, S2)],
            ),
        )
        verdict = results.get("x.txt")
        self.assertEqual(verdict.verdict, Verdict.DIVERGENT_SUSPECT)
        self.assertEqual(verdict.suspect_roots, ["c"])
        self.assertEqual(verdict.majority_signature, S1)
        self.assertFalse(verdict.inconclusive)
        self.assertEqual(len(results.suspect), 1)

    def test_two_roots_mutually_suspect(self):
        results = self.reconciler.reconcile(
            ["a", "b"],
            _results(
                a=[make_event("x.txt", UNCHANGED, S1)],
                b=[make_event("x.txt", UNCHANGED, S2)],
            ),
        )
        verdict = results.get("x.txt")
        self.assertEqual(verdict.verdict, Verdict.DIVERGENT_SUSPECT)
        self.assertEqual(sorted(verdict.suspect_roots), ["a", "b"])
        self.assertTrue(verdict.inconclusive)
        self.assertIsNone(verdict.majority_signature)

    def test_three_way_split_is_inconclusive(self):
        results = self.reconciler.reconcile(
            ["a", "b", "c"],
            _results(
                a=[make_event("x.txt", UNCHANGED, S1)],
                b=[make_event("x.txt", UNCHANGED, S2)],
                c=[make_event("x.txt", UNCHANGED, S3)],
            ),
        )
        verdict = results.get("x.txt")
        self.assertEqual(verdict.verdict, Verdict.DIVERGENT_SUSPECT)
        self.assertEqual(sorted(verdict.suspect_roots), ["a", "b", "c"])
        self.assertTrue(verdict.inconclusive)

    def test_explained_by_local_history(self):
        for kind in (ChangeKind.SUSPECT, ChangeKind.ADDED, ChangeKind.UPDATED):
            results = self.reconciler.reconcile(
                ["a", "b", "c"],
                _results(
                    a=[make_event("x.txt", UNCHANGED, S1)],
                    b=[make_event("x.txt", UNCHANGED, S1)],
                    c=[make_event("x.txt", kind, S2)],
                ),
            )
            verdict = results.get("x.txt")
            self.assertEqual(verdict.verdict, Verdict.DIVERGENT_EXPLAINED)
            self.assertEqual(verdict.suspect_roots, [])
            self.assertEqual(verdict.minority_roots, ["c"])

    def test_two_roots_hint(self):
        results = self.reconciler.reconcile(
            ["a", "b"],
            _results(
                a=[make_event("x.txt", ChangeKind.UPDATED, S1, updated=200)],
                b=[make_event("x.txt", ChangeKind.UPDATED, S2, updated=100)],
            ),
        )
        verdict = results.get("x.txt")
        self.assertEqual(verdict.verdict, Verdict.DIVERGENT_EXPLAINED)
        self.assertTrue(verdict.inconclusive)
        self.assertEqual(verdict.hint_root, "a")
        self.assertIn("a was updated most recently", verdict.hint)

    def test_two_roots_hint_tie(self):
        results = self.reconciler.reconcile(
            ["a", "b"],
            _results(
                a=[make_event("x.txt", UNCHANGED, S1, updated=100)],
                b=[make_event("x.txt", UNCHANGED, S2, updated=100)],
            ),
        )
        self.assertIsNone(results.get("x.txt").hint)

    def test_missing_root(self):
        results = self.reconciler.reconcile(
            ["a", "b", "c"],
            _results(
                a=[make_event("x.txt", UNCHANGED, S1)],
                b=[make_event("x.txt", ChangeKind.REMOVED, S1)],
                c=[],
            ),
        )
        verdict = results.get("x.txt")
        self.assertEqual(verdict.verdict, Verdict.CONSISTENT)
        self.assertEqual(verdict.missing_roots, ["b", "c"])
        self.assertEqual(len(results.missing), 1)

    def test_unreadable_root_does_not_vote(self):
        results = self.reconciler.reconcile(
            ["a", "b", "c"],
            _results(
                a=[make_event("x.txt", UNCHANGED, S1)],
                b=[make_event("x.txt", UNCHANGED, S1)],
                c=[make_event("x.txt", ChangeKind.UNREADABLE, S2)],
            ),
        )
        verdict = results.get("x.txt")
        self.assertEqual(verdict.verdict, Verdict.CONSISTENT)
        self.assertEqual(verdict.unreadable_roots, ["c"])
        self.assertNotIn("c", verdict.per_root_signature)

    def test_removed_everywhere_has_no_verdict(self):
        results = self.reconciler.reconcile(
            ["a", "b"],
            _results(
                a=[make_event("x.txt", ChangeKind.REMOVED, S1)],
                b=[make_event("x.txt", ChangeKind.REMOVED, S1)],
            ),
        )
        self.assertEqual(len(results), 0)

    def test_path_order(self):
        events = [make_event(p, UNCHANGED, S1) for p in ("z", "a/b", "m")]
        results = self.reconciler.reconcile(["a", "b"], _results(a=events, b=events))
        self.assertEqual([v.path for v in results], ["a/b", "m", "z"])

    def test_too_few_roots(self):
        with self.assertRaises(DriftcheckArgumentError):
            self.reconciler.reconcile(["a"], _results(a=[]))
        with self.assertRaises(DriftcheckArgumentError):
            self.reconciler.reconcile(["a", "a"], _results(a=[]))

    def test_missing_results(self):
        with self.assertRaises(DriftcheckArgumentError):
            self.reconciler.reconcile(["a", "b"], _results(a=[]))

    def test_magic_check_on_suspect_roots(self):
        reconciler = Reconciler(ScanOptions(quiet=True, use_magic_file_type=True))
        check = MagicMock()
        check.to_dict.return_value = {"mismatch": True}
        with patch.object(
            reconciler.file_type_detector, "check", return_value=check
        ) as mock_check:
            results = reconciler.reconcile(
                ["a", "b", "c"],
                _results(
                    a=[make_event("x.jpg", UNCHANGED, S1, root="/a")],
                    b=[make_event("x.jpg", UNCHANGED, S1, root="/b")],
                    c=[make_event("x.jpg", UNCHANGED, S2, root="/c")],
                ),
            )
        mock_check.assert_called_once_with("/c/x.jpg")
        verdict = results.get("x.jpg")
        self.assertIs(verdict.file_type_checks["c"], check)
        self.assertEqual(
            verdict.to_dict()["file_type_checks"]["c"], {"mismatch": True}
        )


class TestReconcileResults(unittest.TestCase):
    def setUp(self):
        reconciler = Reconciler(ScanOptions(quiet=True))
        self.results = reconciler.reconcile(
            ["a", "b", "c"],
            _results(
                a=[
                    make_event("same.txt", UNCHANGED, S1),
                    make_event("rot.txt", UNCHANGED, S1),
                ],
                b=[
                    make_event("same.txt", UNCHANGED, S1),
                    make_event("rot.txt", UNCHANGED, S1),
                ],
                c=[
                    make_event("same.txt", UNCHANGED, S1),
                    make_event("rot.txt", UNCHANGED, S2),
                ],
            ),
        )

    def test_summary(self):
        summary = self.results.summary()
        self.assertIn("Reconciled 2 paths across a, b, c", summary)
        self.assertIn("Paths divergent_suspect:   1", summary)

    def test_short(self):
        short = self.results.short()
        self.assertIn("divergent_suspect", short)
        self.assertIn("rot.txt", short)
        self.assertIn("suspect_roots: c", short)
        self.assertNotIn("same.txt", short)

    def test_json(self):
        data = json.loads(self.results.json(pretty=True))
        self.assertEqual(data["counts"]["divergent_suspect"], 1)
        self.assertEqual([v["path"] for v in data["verdicts"]], ["rot.txt"])
        self.assertEqual(data["verdicts"][0]["suspect_roots"], ["c"])
        data = json.loads(self.results.json(include_consistent=True))
        self.assertEqual(len(data["verdicts"]), 2)
