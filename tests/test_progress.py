# Copyright Red Hat
#
# tests/test_progress.py - Progress and throbber tests
#
# This file is part of the driftcheck project.
#
# SPDX-License-Identifier: Apache-2.0
import unittest
from io import StringIO

from driftcheck.progress import (
    NullProgress,
    NullThrobber,
    ProgressFactory,
    SimpleProgress,
    SimpleThrobber,
)


class TestSimpleProgress(unittest.TestCase):
    def setUp(self):
        self.stream = StringIO()
        self.progress = SimpleProgress("Test", term_stream=self.stream, width=10)

    def test_start_bad_total(self):
        with self.assertRaises(ValueError):
            self.progress.start(0)

    def test_progress_before_start(self):
        with self.assertRaises(ValueError) as cm:
            self.progress.progress(1)
        self.assertIn("called before start()", str(cm.exception))

    def test_progress_out_of_range(self):
        self.progress.start(10)
        with self.assertRaises(ValueError):
            self.progress.progress(-1)
        with self.assertRaises(ValueError):
            self.progress.progress(11)
        self.progress.cancel()

    def test_progress_output(self):
        self.progress.start(10)
        self.assertTrue(self.progress.registered)
        self.progress.progress(5, "half way")
        self.progress.end("Done")
        self.assertFalse(self.progress.registered)
        output = self.stream.getvalue()
        self.assertIn("Test:  50% [=====-----] (half way)", output)
        self.assertIn("Test: 100% [==========] ()", output)
        self.assertTrue(output.endswith("Done\n"))
        self.assertEqual(self.progress.total, 0)

    def test_progress_one_line_per_percent(self):
        self.progress.start(1000)
        for done in range(0, 11):
            self.progress.progress(done)
        self.progress.cancel("Quit!")
        lines = self.stream.getvalue().splitlines()
        # 0% and 1% (done=10) plus the cancel message
        self.assertEqual(len(lines), 3)
        self.assertEqual(lines[-1], "Quit!")

    def test_reset_position_repeats_line(self):
        self.progress.start(100)
        self.progress.progress(1)
        self.progress.reset_position()
        self.progress.progress(1)
        self.progress.cancel()
        self.assertEqual(len(self.stream.getvalue().splitlines()), 2)


class TestSimpleThrobber(unittest.TestCase):
    def test_throb_before_start(self):
        throbber = SimpleThrobber("Scan", term_stream=StringIO())
        with self.assertRaises(ValueError):
            throbber.throb()

    def test_throbber_output(self):
        stream = StringIO()
        throbber = SimpleThrobber("Scan", term_stream=stream, every=2)
        throbber.start()
        for _ in range(5):
            throbber.throb()
        throbber.end("finished")
        self.assertEqual(throbber.count, 5)
        self.assertFalse(throbber.started)
        self.assertEqual(
            stream.getvalue().splitlines(), ["Scan: 2", "Scan: 4", "Scan: finished"]
        )

    def test_throbber_message(self):
        stream = StringIO()
        throbber = SimpleThrobber("Scan", term_stream=stream, every=1)
        throbber.start()
        throbber.throb("a.txt")
        throbber.end()
        self.assertEqual(stream.getvalue(), "Scan: 1 (a.txt)\n")


class TestProgressFactory(unittest.TestCase):
    def test_get_progress(self):
        self.assertIsInstance(
            ProgressFactory.get_progress("x", term_stream=StringIO()), SimpleProgress
        )
        self.assertIsInstance(ProgressFactory.get_progress("x", quiet=True), NullProgress)

    def test_get_throbber(self):
        self.assertIsInstance(
            ProgressFactory.get_throbber("x", term_stream=StringIO()), SimpleThrobber
        )
        throbber = ProgressFactory.get_throbber("x", quiet=True)
        self.assertIsInstance(throbber, NullThrobber)
        throbber.start()
        throbber.throb()
        throbber.end("done")
        self.assertEqual(throbber.count, 1)

    def test_null_progress(self):
        progress = NullProgress("x")
        progress.start(3)
        progress.progress(2)
        progress.end()
        self.assertEqual(progress.total, 0)
