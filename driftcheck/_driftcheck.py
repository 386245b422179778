# Copyright Red Hat
#
# driftcheck/_driftcheck.py - Mirror drift checker global definitions
#
# This file is part of the driftcheck project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Global definitions for the top-level driftcheck package.
"""
from typing import Optional, TextIO, Union, TYPE_CHECKING
from datetime import datetime
import threading
import logging
import weakref
import string
import sys

if TYPE_CHECKING:
    from .progress import ProgressBase, ThrobberBase

_log = logging.getLogger("driftcheck")

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error

# Driftcheck debugging subsystem mask
DRIFTCHECK_DEBUG_MANAGER = 1
DRIFTCHECK_DEBUG_COMMAND = 2
DRIFTCHECK_DEBUG_SCAN = 4
DRIFTCHECK_DEBUG_STORE = 8
DRIFTCHECK_DEBUG_RECONCILE = 16
DRIFTCHECK_DEBUG_ALL = (
    DRIFTCHECK_DEBUG_MANAGER
    | DRIFTCHECK_DEBUG_COMMAND
    | DRIFTCHECK_DEBUG_SCAN
    | DRIFTCHECK_DEBUG_STORE
    | DRIFTCHECK_DEBUG_RECONCILE
)

# Driftcheck debugging subsystem names
DRIFTCHECK_SUBSYSTEM_MANAGER = "driftcheck.manager"
DRIFTCHECK_SUBSYSTEM_COMMAND = "driftcheck.command"
DRIFTCHECK_SUBSYSTEM_SCAN = "driftcheck.scan"
DRIFTCHECK_SUBSYSTEM_STORE = "driftcheck.store"
DRIFTCHECK_SUBSYSTEM_RECONCILE = "driftcheck.reconcile"

_DEBUG_MASK_TO_SUBSYSTEM = {
    DRIFTCHECK_DEBUG_MANAGER: DRIFTCHECK_SUBSYSTEM_MANAGER,
    DRIFTCHECK_DEBUG_COMMAND: DRIFTCHECK_SUBSYSTEM_COMMAND,
    DRIFTCHECK_DEBUG_SCAN: DRIFTCHECK_SUBSYSTEM_SCAN,
    DRIFTCHECK_DEBUG_STORE: DRIFTCHECK_SUBSYSTEM_STORE,
    DRIFTCHECK_DEBUG_RECONCILE: DRIFTCHECK_SUBSYSTEM_RECONCILE,
}

_debug_subsystems = set()

# Registry of active progress instances: uses a WeakSet so we don't prevent
# garbage collection.
_active_progress: weakref.WeakSet = weakref.WeakSet()
_active_progress_lock = threading.Lock()

#: Default configuration file location
DRIFTCHECK_CONFIG_PATH = "/etc/driftcheck/driftcheck.conf"

#: Default directory for per-root snapshot databases
DRIFTCHECK_STATE_DIR = "/var/lib/driftcheck"

#: Nanoseconds per second
NSECS_PER_SEC = 1000000000

#: Characters permitted in root names
DRIFTCHECK_VALID_NAME_CHARS = set(
    string.ascii_lowercase + string.ascii_uppercase + string.digits + "+_.-"
)

#: All suffixes are expressed in powers of two.
_SIZE_SUFFIXES = ("B", "KiB", "MiB", "GiB", "TiB", "PiB", "EiB", "ZiB")


def format_timestamp_ns(value: Optional[int]) -> str:
    """
    Format an integer nanosecond UNIX timestamp as a human readable local
    time string.

    :param value: The timestamp to format, or ``None``.
    :type value: ``Optional[int]``
    :returns: An ISO-8601 style string or the empty string if ``value``
              is ``None``.
    :rtype: ``str``
    """
    if value is None:
        return ""
    return datetime.fromtimestamp(value / NSECS_PER_SEC).isoformat(sep=" ")


def size_fmt(value: int) -> str:
    """
    Format a size in bytes as a human readable string using binary
    (power of two) units.

    :param value: The size to format in bytes.
    :type value: ``int``
    :returns: A string such as ``"1.5MiB"``.
    :rtype: ``str``
    """
    size = float(value)
    for suffix in _SIZE_SUFFIXES:
        if abs(size) < 1024.0 or suffix == _SIZE_SUFFIXES[-1]:
            if suffix == "B":
                return f"{int(size)}{suffix}"
            return f"{size:.1f}{suffix}"
        size /= 1024.0
    return f"{value}B"  # pragma: no cover


class SubsystemFilter(logging.Filter):
    """
    Filters DEBUG records based on a set of enabled subsystem names.
    Non-DEBUG records or DEBUG records without a 'subsystem' attribute
    are always passed through.
    """

    def __init__(self, name=""):
        super().__init__(name)
        self.enabled_subsystems = set(_debug_subsystems)

    def filter(self, record):
        if record.levelno != logging.DEBUG:
            return True

        if not hasattr(record, "subsystem"):
            return True

        return record.subsystem in self.enabled_subsystems

    def set_debug_subsystems(self, subsystems):
        """Sets the collection of subsystems to allow."""
        self.enabled_subsystems = set(subsystems)


def get_debug_mask():
    """
    Return the current debug mask for the ``driftcheck`` package.

    :returns: The current debug mask value
    :rtype: int
    """
    enabled_subsystems = set(_debug_subsystems)
    driftcheck_log = logging.getLogger("driftcheck")

    for handler in driftcheck_log.handlers:
        for f in handler.filters:
            if isinstance(f, SubsystemFilter):
                enabled_subsystems.update(f.enabled_subsystems)

    mask_map = {v: k for k, v in _DEBUG_MASK_TO_SUBSYSTEM.items()}
    mask = 0
    for subsystem_name in enabled_subsystems:
        mask |= mask_map.get(subsystem_name, 0)
    return mask


def set_debug_mask(mask):
    """
    Set the debug mask for the ``driftcheck`` package.

    :param mask: the logical OR of the ``DRIFTCHECK_DEBUG_*``
                 values to log.
    :rtype: None
    """
    # pylint: disable=global-statement
    global _debug_subsystems

    if mask < 0 or mask > DRIFTCHECK_DEBUG_ALL:
        raise ValueError(f"Invalid driftcheck debug mask: {mask}")

    enabled_subsystems = [
        subsystem_name
        for flag, subsystem_name in _DEBUG_MASK_TO_SUBSYSTEM.items()
        if mask & flag
    ]

    driftcheck_log = logging.getLogger("driftcheck")
    for handler in driftcheck_log.handlers:
        for f in handler.filters:
            if isinstance(f, SubsystemFilter):
                f.set_debug_subsystems(enabled_subsystems)

    _debug_subsystems = set(enabled_subsystems)


def register_progress(progress: Union["ProgressBase", "ThrobberBase"]):
    """Register a progress instance for log coordination."""
    with _active_progress_lock:
        _active_progress.add(progress)
    progress.registered = True


def unregister_progress(progress: Union["ProgressBase", "ThrobberBase"]):
    """Unregister a progress instance."""
    with _active_progress_lock:
        _active_progress.discard(progress)
    progress.registered = False


def notify_log_output(stream: TextIO):
    """
    Notify progress instances that log output occurred on stream.

    Called by ProgressAwareHandler after emitting a record.

    :param stream: The stream that received output.
    :type stream: ``TextIO``
    """
    if stream not in (sys.stdout, sys.stderr):
        return
    with _active_progress_lock:
        active = list(_active_progress)
    for progress in active:
        if hasattr(progress, "reset_position"):
            progress.reset_position()


class ProgressAwareHandler(logging.StreamHandler):
    """
    A logging handler that coordinates with active Progress instances.

    After emitting a log record, notifies any Progress instances writing
    to the same stream so they can avoid interleaving with the log message.
    """

    def __init__(self, stream: Optional[TextIO] = None, **kwargs):
        super().__init__(stream=stream or sys.stderr, **kwargs)

    def emit(self, record):
        try:
            msg = self.format(record)
            self.stream.write(msg + "\n")
            self.stream.flush()
            notify_log_output(self.stream)
        except Exception:  # pylint: disable=broad-exception-caught
            self.handleError(record)


#
# Driftcheck exception types
#


class DriftcheckError(Exception):
    """
    Base class for driftcheck errors.
    """


class DriftcheckSystemError(DriftcheckError):
    """
    An error when calling the operating system.
    """


class DriftcheckNotFoundError(DriftcheckError):
    """
    The requested object does not exist.
    """


class DriftcheckArgumentError(DriftcheckError):
    """
    An invalid argument was passed to a driftcheck API call.
    """


class DriftcheckPathError(DriftcheckError):
    """
    An invalid path was supplied, for example a root that is not a
    directory.
    """


class DriftcheckBusyError(DriftcheckError):
    """
    A resource needed by the current command is already in use: for e.g.
    another process is scanning the same root.
    """


class DriftcheckStateError(DriftcheckError):
    """
    The state of an object does not allow an operation to proceed: for
    e.g. a snapshot database recorded for a different root.
    """


class DriftcheckConfigError(DriftcheckError):
    """
    An error parsing the driftcheck configuration.
    """


class StoreIOError(DriftcheckError):
    """
    The snapshot store is unreachable or a store operation failed.
    """


class IOAccessError(DriftcheckError):
    """
    A path could not be read during a scan: for e.g. permission denied,
    or the path vanished while the scan was in progress.
    """

    def __init__(self, path: str, err: OSError):
        """
        Initialise a new ``IOAccessError`` exception.

        :param path: The path that could not be accessed.
        :param err: The underlying ``OSError``.
        """
        self.path = path
        self.errno = err.errno
        self.strerror = err.strerror or str(err)
        super().__init__(f"Cannot access {path}: {self.strerror}")


__all__ = [
    # Debug logging
    "DRIFTCHECK_DEBUG_MANAGER",
    "DRIFTCHECK_DEBUG_COMMAND",
    "DRIFTCHECK_DEBUG_SCAN",
    "DRIFTCHECK_DEBUG_STORE",
    "DRIFTCHECK_DEBUG_RECONCILE",
    "DRIFTCHECK_DEBUG_ALL",
    "DRIFTCHECK_SUBSYSTEM_MANAGER",
    "DRIFTCHECK_SUBSYSTEM_COMMAND",
    "DRIFTCHECK_SUBSYSTEM_SCAN",
    "DRIFTCHECK_SUBSYSTEM_STORE",
    "DRIFTCHECK_SUBSYSTEM_RECONCILE",
    "SubsystemFilter",
    "get_debug_mask",
    "set_debug_mask",
    "register_progress",
    "unregister_progress",
    "notify_log_output",
    "ProgressAwareHandler",
    # Constants
    "DRIFTCHECK_CONFIG_PATH",
    "DRIFTCHECK_STATE_DIR",
    "NSECS_PER_SEC",
    "DRIFTCHECK_VALID_NAME_CHARS",
    # Helpers
    "format_timestamp_ns",
    "size_fmt",
    # Exceptions
    "DriftcheckError",
    "DriftcheckSystemError",
    "DriftcheckNotFoundError",
    "DriftcheckArgumentError",
    "DriftcheckPathError",
    "DriftcheckBusyError",
    "DriftcheckStateError",
    "DriftcheckConfigError",
    "StoreIOError",
    "IOAccessError",
]
