# Copyright Red Hat
#
# tests/test_driftcheck.py - driftcheck package unit tests
#
# This file is part of the driftcheck project.
#
# SPDX-License-Identifier: Apache-2.0
import unittest
from unittest.mock import MagicMock
from io import StringIO
import logging
import threading
import errno
import sys

import driftcheck

log = logging.getLogger()


class DriftcheckTestsSimple(unittest.TestCase):
    """Test driftcheck module"""

    def setUp(self):
        log.debug("Preparing %s", self._testMethodName)

    def tearDown(self):
        log.debug("Tearing down (%s)", self._testMethodName)
        driftcheck.set_debug_mask(0)

    def test_set_debug_mask(self):
        driftcheck.set_debug_mask(driftcheck.DRIFTCHECK_DEBUG_ALL)
        self.assertEqual(driftcheck.get_debug_mask(), driftcheck.DRIFTCHECK_DEBUG_ALL)

    def test_set_debug_mask_bad_mask(self):
        with self.assertRaises(ValueError):
            driftcheck.set_debug_mask(driftcheck.DRIFTCHECK_DEBUG_ALL + 1)
        with self.assertRaises(ValueError):
            driftcheck.set_debug_mask(-1)

    def test_SubsystemFilter(self):
        # Start with no subsystems enabled
        driftcheck.set_debug_mask(0)
        sf = driftcheck.SubsystemFilter("driftcheck")
        self.assertEqual(sf.enabled_subsystems, set())
        # Enable a couple and ensure new filters initialise from cache
        driftcheck.set_debug_mask(
            driftcheck.DRIFTCHECK_DEBUG_SCAN | driftcheck.DRIFTCHECK_DEBUG_STORE
        )
        sf2 = driftcheck.SubsystemFilter("driftcheck")
        self.assertIn(driftcheck.DRIFTCHECK_SUBSYSTEM_SCAN, sf2.enabled_subsystems)
        self.assertIn(driftcheck.DRIFTCHECK_SUBSYSTEM_STORE, sf2.enabled_subsystems)
        self.assertNotIn(
            driftcheck.DRIFTCHECK_SUBSYSTEM_RECONCILE, sf2.enabled_subsystems
        )

    def test_SubsystemFilter_filter(self):
        sf = driftcheck.SubsystemFilter("driftcheck")
        sf.set_debug_subsystems([driftcheck.DRIFTCHECK_SUBSYSTEM_STORE])

        def record(level, subsystem=None):
            rec = logging.LogRecord("driftcheck", level, __file__, 1, "msg", (), None)
            if subsystem:
                rec.subsystem = subsystem
            return rec

        self.assertTrue(sf.filter(record(logging.INFO)))
        self.assertTrue(sf.filter(record(logging.DEBUG)))
        self.assertTrue(
            sf.filter(record(logging.DEBUG, driftcheck.DRIFTCHECK_SUBSYSTEM_STORE))
        )
        self.assertFalse(
            sf.filter(record(logging.DEBUG, driftcheck.DRIFTCHECK_SUBSYSTEM_SCAN))
        )

    def test_format_timestamp_ns(self):
        self.assertEqual(driftcheck.format_timestamp_ns(None), "")
        self.assertEqual(driftcheck.format_timestamp_ns(0), "1970-01-01 00:00:00")

    def test_size_fmt(self):
        self.assertEqual(driftcheck.size_fmt(512), "512B")
        self.assertEqual(driftcheck.size_fmt(1536), "1.5KiB")
        self.assertEqual(driftcheck.size_fmt(2**20), "1.0MiB")
        self.assertEqual(driftcheck.size_fmt(3 * 2**40), "3.0TiB")

    def test_IOAccessError(self):
        err = driftcheck.IOAccessError(
            "/srv/a.txt", OSError(errno.EACCES, "Permission denied")
        )
        self.assertEqual(err.path, "/srv/a.txt")
        self.assertEqual(err.errno, errno.EACCES)
        self.assertEqual(str(err), "Cannot access /srv/a.txt: Permission denied")
        self.assertIsInstance(err, driftcheck.DriftcheckError)

    def test_exception_hierarchy(self):
        for exc in (
            driftcheck.DriftcheckSystemError,
            driftcheck.DriftcheckNotFoundError,
            driftcheck.DriftcheckArgumentError,
            driftcheck.DriftcheckPathError,
            driftcheck.DriftcheckBusyError,
            driftcheck.DriftcheckStateError,
            driftcheck.DriftcheckConfigError,
            driftcheck.StoreIOError,
        ):
            self.assertTrue(issubclass(exc, driftcheck.DriftcheckError))

    def test_ProgressAwareHandler(self):
        stream = StringIO()
        handler = driftcheck.ProgressAwareHandler(stream)
        handler.setFormatter(logging.Formatter("%(levelname)s - %(message)s"))
        rec = logging.LogRecord("driftcheck", logging.WARNING, __file__, 1, "hi", (), None)
        handler.emit(rec)
        self.assertEqual(stream.getvalue(), "WARNING - hi\n")

    def test_notify_log_output(self):
        progress = MagicMock()
        driftcheck.register_progress(progress)
        try:
            self.assertTrue(progress.registered)
            driftcheck.notify_log_output(StringIO())
            progress.reset_position.assert_not_called()
            driftcheck.notify_log_output(sys.stderr)
            progress.reset_position.assert_called_once()
        finally:
            driftcheck.unregister_progress(progress)
        self.assertFalse(progress.registered)

    def test_notify_log_output_concurrent_registry(self):
        errors = []
        stop = threading.Event()

        def churn():
            while not stop.is_set():
                progress = MagicMock()
                driftcheck.register_progress(progress)
                driftcheck.unregister_progress(progress)

        def notify():
            try:
                for _ in range(2000):
                    driftcheck.notify_log_output(sys.stderr)
            except RuntimeError as err:
                errors.append(err)

        churners = [threading.Thread(target=churn) for _ in range(4)]
        for thread in churners:
            thread.start()
        try:
            notify()
        finally:
            stop.set()
            for thread in churners:
                thread.join()
        self.assertEqual(errors, [])
