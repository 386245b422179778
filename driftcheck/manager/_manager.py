# Copyright Red Hat
#
# driftcheck/manager/_manager.py - Mirror drift checker manager
#
# This file is part of the driftcheck project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Manager interface and configuration.
"""
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from configparser import ConfigParser, Error as ConfigParserError
from os.path import abspath, dirname, exists, isdir, join, normpath
from typing import Any, Dict, Iterable, List, Optional
from functools import wraps
import threading
import logging
import fcntl
import time
import json
import os

from driftcheck import (
    DRIFTCHECK_CONFIG_PATH,
    DRIFTCHECK_STATE_DIR,
    DRIFTCHECK_SUBSYSTEM_MANAGER,
    DRIFTCHECK_VALID_NAME_CHARS,
    DriftcheckArgumentError,
    DriftcheckBusyError,
    DriftcheckConfigError,
    DriftcheckError,
    DriftcheckNotFoundError,
    DriftcheckPathError,
    DriftcheckSystemError,
)
from driftcheck.scan import (
    ClassifyResults,
    DiffClassifier,
    ChangeEvent,
    ChangeKind,
    FileRecord,
    ReconcileResults,
    Reconciler,
    ScanEntry,
    ScanOptions,
    Scanner,
    SnapshotStore,
    SuspectRecord,
    accept_suspect,
)
from driftcheck.scan.options import (
    DEFAULT_COMMIT_INTERVAL,
    DEFAULT_HASH_ALGORITHM,
    HASH_ALGORITHMS,
)

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_manager(msg, *args, **kwargs):
    """A wrapper for manager subsystem debug logs."""
    _log.debug(
        msg, *args, extra={"subsystem": DRIFTCHECK_SUBSYSTEM_MANAGER}, **kwargs
    )


#: Main configuration file section
_DRIFTCHECK_CFG_GLOBAL = "Global"

#: Prefix for root configuration sections
_DRIFTCHECK_CFG_ROOT_PREFIX = "Root:"

#: Configuration keys
_CFG_STATE_DIR = "StateDir"
_CFG_HASH_ALGORITHM = "HashAlgorithm"
_CFG_WORKERS = "Workers"
_CFG_FOLLOW_SYMLINKS = "FollowSymlinks"
_CFG_COMMIT_INTERVAL = "CommitInterval"
_CFG_SYNC = "Sync"
_CFG_EXCLUDE = "Exclude"
_CFG_USE_MAGIC = "UseMagic"
_CFG_PATH = "Path"
_CFG_DATABASE = "Database"

#: Suffix of per-root lock files
_LOCK_SUFFIX = ".lock"


def _check_root_name(name: str):
    """
    Validate a root name.

    :param name: The name to check.
    :raises ``DriftcheckArgumentError``: If ``name`` is empty or contains
                                         invalid characters.
    """
    if not name:
        raise DriftcheckArgumentError("Root name cannot be empty")
    invalid = set(name) - DRIFTCHECK_VALID_NAME_CHARS
    if invalid:
        raise DriftcheckArgumentError(
            f"Root name {name} contains invalid characters: "
            f"{', '.join(sorted(invalid))}"
        )


@dataclass
class RootConfig:
    """
    A named root directory and the location of its snapshot store.
    """

    name: str
    path: str
    database: str

    def to_dict(self):
        """
        Return a dictionary representation of this ``RootConfig``.
        """
        return {"name": self.name, "path": self.path, "database": self.database}


@dataclass
class DriftcheckConfig:
    """
    Manager configuration.
    """

    state_dir: str = DRIFTCHECK_STATE_DIR
    hash_algorithm: str = DEFAULT_HASH_ALGORITHM
    workers: int = 1
    follow_symlinks: bool = False
    commit_interval: int = DEFAULT_COMMIT_INTERVAL
    sync: bool = True
    exclude_patterns: List[str] = field(default_factory=list)
    use_magic_file_type: bool = False
    roots: Dict[str, RootConfig] = field(default_factory=dict)

    def default_database(self, name: str) -> str:
        """
        Return the default snapshot database path for root ``name``.

        :param name: The root name.
        :type name: ``str``
        :rtype: ``str``
        """
        return join(self.state_dir, f"{name}.db")

    def scan_options(self, **overrides) -> ScanOptions:
        """
        Return ``ScanOptions`` built from this configuration with any
        non-``None`` ``overrides`` applied.

        :rtype: ``ScanOptions``
        """
        options = ScanOptions(
            hash_algorithm=self.hash_algorithm,
            workers=self.workers,
            follow_symlinks=self.follow_symlinks,
            exclude_patterns=tuple(self.exclude_patterns),
            commit_interval=self.commit_interval,
            sync=self.sync,
            use_magic_file_type=self.use_magic_file_type,
        )
        return options.merge(**overrides)

    # pylint: disable=too-many-locals,too-many-branches
    @classmethod
    def from_file(cls, config_file: str = DRIFTCHECK_CONFIG_PATH) -> "DriftcheckConfig":
        """
        Load ``DriftcheckConfig`` from an INI-style configuration file located
        at ``config_file``. A missing file yields the default configuration.

        :param config_file: path to driftcheck.conf
        :type config_file: ``str``.
        :returns: A ``DriftcheckConfig`` instance initialised from
                  ``config_file``.
        :rtype: ``DriftcheckConfig``
        :raises ``DriftcheckConfigError``: If the file cannot be parsed or
                                           contains invalid values.
        """
        if not exists(config_file):
            _log_debug_manager("No configuration file at '%s'", config_file)
            return DriftcheckConfig()

        _log_debug("Loading configuration from '%s'", config_file)
        cfg = ConfigParser()
        try:
            cfg.read([config_file])
        except ConfigParserError as err:
            raise DriftcheckConfigError(
                f"Error parsing configuration file {config_file}: {err}"
            ) from err

        kwargs = {}
        try:
            if cfg.has_section(_DRIFTCHECK_CFG_GLOBAL):
                section = cfg[_DRIFTCHECK_CFG_GLOBAL]
                if cfg.has_option(_DRIFTCHECK_CFG_GLOBAL, _CFG_STATE_DIR):
                    kwargs["state_dir"] = section[_CFG_STATE_DIR].strip()
                if cfg.has_option(_DRIFTCHECK_CFG_GLOBAL, _CFG_HASH_ALGORITHM):
                    algorithm = section[_CFG_HASH_ALGORITHM].strip().lower()
                    if algorithm not in HASH_ALGORITHMS:
                        raise DriftcheckConfigError(
                            f"Invalid {_CFG_HASH_ALGORITHM} in {config_file}: "
                            f"{algorithm}"
                        )
                    kwargs["hash_algorithm"] = algorithm
                if cfg.has_option(_DRIFTCHECK_CFG_GLOBAL, _CFG_WORKERS):
                    kwargs["workers"] = section.getint(_CFG_WORKERS)
                    if kwargs["workers"] < 1:
                        raise DriftcheckConfigError(
                            f"Invalid {_CFG_WORKERS} in {config_file}: "
                            f"{kwargs['workers']}"
                        )
                if cfg.has_option(_DRIFTCHECK_CFG_GLOBAL, _CFG_FOLLOW_SYMLINKS):
                    kwargs["follow_symlinks"] = section.getboolean(
                        _CFG_FOLLOW_SYMLINKS
                    )
                if cfg.has_option(_DRIFTCHECK_CFG_GLOBAL, _CFG_COMMIT_INTERVAL):
                    kwargs["commit_interval"] = section.getint(_CFG_COMMIT_INTERVAL)
                    if kwargs["commit_interval"] < 0:
                        raise DriftcheckConfigError(
                            f"Invalid {_CFG_COMMIT_INTERVAL} in {config_file}: "
                            f"{kwargs['commit_interval']}"
                        )
                if cfg.has_option(_DRIFTCHECK_CFG_GLOBAL, _CFG_SYNC):
                    kwargs["sync"] = section.getboolean(_CFG_SYNC)
                if cfg.has_option(_DRIFTCHECK_CFG_GLOBAL, _CFG_EXCLUDE):
                    patterns = section[_CFG_EXCLUDE]
                    kwargs["exclude_patterns"] = [
                        pat.strip() for pat in patterns.split(",") if pat.strip()
                    ]
                if cfg.has_option(_DRIFTCHECK_CFG_GLOBAL, _CFG_USE_MAGIC):
                    kwargs["use_magic_file_type"] = section.getboolean(_CFG_USE_MAGIC)
        except ValueError as err:
            raise DriftcheckConfigError(
                f"Invalid value in configuration file {config_file}: {err}"
            ) from err

        config = DriftcheckConfig(**kwargs)

        for section_name in cfg.sections():
            if not section_name.startswith(_DRIFTCHECK_CFG_ROOT_PREFIX):
                continue
            name = section_name[len(_DRIFTCHECK_CFG_ROOT_PREFIX) :].strip()
            try:
                _check_root_name(name)
            except DriftcheckArgumentError as err:
                raise DriftcheckConfigError(f"{config_file}: {err}") from err
            if not cfg.has_option(section_name, _CFG_PATH):
                raise DriftcheckConfigError(
                    f"Root {name} in {config_file} has no {_CFG_PATH}"
                )
            path = normpath(abspath(cfg[section_name][_CFG_PATH].strip()))
            if cfg.has_option(section_name, _CFG_DATABASE):
                database = abspath(cfg[section_name][_CFG_DATABASE].strip())
            else:
                database = abspath(config.default_database(name))
            config.roots[name] = RootConfig(name, path, database)
            _log_debug_manager("Configured root %s at %s (%s)", name, path, database)

        return config


def _lock_root(lockfile: str) -> int:
    """
    Take the exclusive lock for one root's snapshot store.

    :param lockfile: The path of the lock file.
    :returns: A file descriptor open on the lock file.
    """

    def cleanup():
        try:
            os.close(fd)
        except OSError as err:
            _log_debug("Exception closing lock fd %d: %s", fd, err)

    _log_debug_manager("Locking root via %s", lockfile)

    lockdir = dirname(lockfile)
    try:
        if lockdir:
            os.makedirs(lockdir, exist_ok=True)
        flags = os.O_RDWR | os.O_CREAT
        if hasattr(os, "O_CLOEXEC"):
            flags |= os.O_CLOEXEC
        fd = os.open(lockfile, flags, 0o600)
    except OSError as err:
        raise DriftcheckSystemError(
            f"Failed to create root lockfile {lockfile}: {err}"
        ) from err

    try:
        fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
    except BlockingIOError as err:
        cleanup()
        raise DriftcheckBusyError(
            f"Root already locked at '{lockfile}': {err}"
        ) from err
    except OSError as err:  # pragma: no cover
        cleanup()
        raise DriftcheckSystemError(
            f"Failed to take exclusive lock on root lockfile {lockfile}: {err}"
        ) from err

    try:
        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode("utf8"))
    except OSError:  # pragma: no cover
        pass

    return fd


def _unlock_root(lockfile: str, fd: int):
    """
    Release the root lock held on the open file descriptor ``fd``.

    :param lockfile: The path of the lock file.
    :param fd: The open locking file descriptor.
    """
    _log_debug_manager("Unlocking root (%s)", lockfile)
    try:
        fcntl.flock(fd, fcntl.LOCK_UN)
    except OSError as err:
        raise DriftcheckSystemError(
            f"Failed to release exclusive lock on root lockfile {lockfile}: {err}"
        ) from err
    finally:
        try:
            os.close(fd)
        except OSError:  # pragma: no cover
            pass


# pylint: disable=protected-access
def _with_root_lock(func):
    """
    Decorator for Manager methods that accept a root name as their first
    positional parameter. The root's lock is held for the duration of the
    call.
    """

    @wraps(func)
    def wrapper(*args, **kwargs):
        # args[0] is self, args[1] is the root name
        root = args[0]._get_root(args[1])
        lockfile = root.database + _LOCK_SUFFIX
        fd = -1
        tid = getattr(threading, "get_native_id", threading.get_ident)()
        try:
            fd = _lock_root(lockfile)
            _log_debug_manager("Acquired root lock at %s (tid=%d)", lockfile, tid)
            ret = func(*args, **kwargs)
        finally:
            if fd >= 0:
                _unlock_root(lockfile, fd)
                _log_debug_manager("Released root lock at %s (tid=%d)", lockfile, tid)
        return ret

    return wrapper


class CheckReport:
    """
    The outcome of running the scan pipelines of several roots and,
    optionally, reconciling them.
    """

    def __init__(
        self,
        root_ids: List[str],
        results: Dict[str, ClassifyResults],
        errors: Dict[str, DriftcheckError],
        reconcile: Optional[ReconcileResults] = None,
    ):
        self.root_ids = root_ids
        self.results = results
        self.errors = errors
        self.reconcile = reconcile

    def __repr__(self):
        return f"CheckReport({self.root_ids!r}, ...)"

    @property
    def failed(self) -> bool:
        """
        ``True`` if any root's run failed with a store-level or other fatal
        error. Discovering suspect content is not a failure.
        """
        return bool(self.errors)

    def summary(self) -> str:
        """
        Return a human readable summary of this report.

        :rtype: ``str``
        """
        parts = [self.results[root_id].summary() for root_id in sorted(self.results)]
        for root_id in sorted(self.errors):
            parts.append(f"Root {root_id} failed: {self.errors[root_id]}")
        if self.reconcile is not None:
            parts.append(self.reconcile.summary())
        return "\n\n".join(parts)

    def short(self) -> str:
        """
        Return the summary followed by every notable event and verdict.

        :rtype: ``str``
        """
        parts = [self.summary()]
        for root_id in sorted(self.results):
            events = self.results[root_id].short()
            if events:
                parts.append(f"{root_id}:\n{events}")
        if self.reconcile is not None:
            verdicts = self.reconcile.short()
            if verdicts:
                parts.append(verdicts)
        return "\n\n".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert this ``CheckReport`` into a dictionary representation.

        :rtype: ``Dict[str, Any]``
        """
        return {
            "root_ids": list(self.root_ids),
            "failed": self.failed,
            "results": {
                root_id: results.to_dict()
                for root_id, results in sorted(self.results.items())
            },
            "errors": {
                root_id: str(err) for root_id, err in sorted(self.errors.items())
            },
            "reconcile": (
                self.reconcile.to_dict() if self.reconcile is not None else None
            ),
        }

    def json(self, pretty: bool = False) -> str:
        """
        Return JSON representation of this ``CheckReport``.

        :param pretty: Indent JSON to be human readable.
        :type pretty: ``bool``
        :rtype: ``str``
        """
        return json.dumps(self.to_dict(), indent=4 if pretty else None)


class Manager:
    """
    Mirror drift checker high level interface.

    Each root has its own snapshot store. Store handles are opened per
    operation in the thread that uses them and are never shared.
    """

    def __init__(
        self,
        config: Optional[DriftcheckConfig] = None,
        options: Optional[ScanOptions] = None,
    ):
        """
        Initialise a new ``Manager``.

        :param config: The configuration to use. Defaults to an empty
                       ``DriftcheckConfig``.
        :type config: ``Optional[DriftcheckConfig]``
        :param options: Scan options. Defaults to options derived from
                        ``config``.
        :type options: ``Optional[ScanOptions]``
        """
        self.config: DriftcheckConfig = config or DriftcheckConfig()
        self.options: ScanOptions = options or self.config.scan_options()
        self.roots: Dict[str, RootConfig] = dict(self.config.roots)

    def add_root(
        self, name: str, path: Optional[str] = None, database: Optional[str] = None
    ) -> RootConfig:
        """
        Add a root at runtime. ``name`` may be given as ``"name=/path"``.

        :param name: The root name, or a ``name=path`` specification.
        :type name: ``str``
        :param path: The root directory if not given in ``name``.
        :type path: ``Optional[str]``
        :param database: An optional snapshot database path.
        :type database: ``Optional[str]``
        :returns: The new ``RootConfig``.
        :rtype: ``RootConfig``
        :raises ``DriftcheckArgumentError``: If the name is invalid or no path
                                             is given.
        :raises ``DriftcheckPathError``: If the path is not a directory.
        """
        if path is None:
            if "=" not in name:
                raise DriftcheckArgumentError(
                    f"Root specification {name} must be of the form NAME=PATH"
                )
            name, path = name.split("=", 1)
        name = name.strip()
        _check_root_name(name)
        if not path:
            raise DriftcheckArgumentError(f"Root {name} has an empty path")
        path = normpath(abspath(path))
        if not isdir(path):
            raise DriftcheckPathError(f"Root path {path} is not a directory")
        if name in self.roots and self.roots[name].path != path:
            _log_warn(
                "Replacing root %s (%s) with %s", name, self.roots[name].path, path
            )
        database = abspath(database or self.config.default_database(name))
        root = RootConfig(name, path, database)
        self.roots[name] = root
        _log_debug_manager("Added root %s at %s (%s)", name, path, root.database)
        return root

    def resolve_root(self, spec: str) -> str:
        """
        Resolve a root name or ``name=path`` specification to a root name,
        adding the root if required.

        :param spec: The root name or specification.
        :type spec: ``str``
        :returns: The root name.
        :rtype: ``str``
        """
        if "=" in spec:
            return self.add_root(spec).name
        return self._get_root(spec).name

    def _get_root(self, root_id: str) -> RootConfig:
        if root_id not in self.roots:
            raise DriftcheckNotFoundError(f"Unknown root: {root_id}")
        return self.roots[root_id]

    def _store(self, root: RootConfig) -> SnapshotStore:
        return SnapshotStore(
            root.database, root.path, self.options.hash_algorithm, sync=self.options.sync
        )

    def _existing_store(self, root: RootConfig) -> SnapshotStore:
        if not exists(root.database):
            raise DriftcheckNotFoundError(
                f"No snapshot store for root {root.name} at {root.database}"
            )
        return self._store(root)

    @_with_root_lock
    def scan_and_classify(self, root_id: str) -> ClassifyResults:
        """
        Scan root ``root_id``, classify every path against its stored
        baseline and durably update the snapshot store.

        :param root_id: The root name.
        :type root_id: ``str``
        :returns: The classification events for this run.
        :rtype: ``ClassifyResults``
        """
        root = self._get_root(root_id)
        scanner = Scanner(self.options)
        store = self._store(root)
        entries = scanner.scan(root.path, exclude_paths=store.files)
        classifier = DiffClassifier(self.options)
        with store:
            results = classifier.classify(root.name, root.path, entries, store)
        counts = results.counts()
        _log_info(
            "Root %s: %d added, %d removed, %d updated, %d suspect, %d unreadable",
            root.name,
            counts["added"],
            counts["removed"],
            counts["updated"],
            counts["suspect"],
            counts["unreadable"],
        )
        return results

    def reconcile(
        self, root_ids: Iterable[str], per_root_events: Dict[str, Iterable[ChangeEvent]]
    ) -> ReconcileResults:
        """
        Reconcile the classification results of two or more roots.

        :param root_ids: The names of the roots to reconcile.
        :type root_ids: ``Iterable[str]``
        :param per_root_events: The classification results for each root.
        :type per_root_events: ``Dict[str, Iterable[ChangeEvent]]``
        :rtype: ``ReconcileResults``
        """
        return Reconciler(self.options).reconcile(root_ids, per_root_events)

    @_with_root_lock
    def accept_suspect(self, root_id: str, path: str) -> FileRecord:
        """
        Accept the current on-disk content of ``path`` in root ``root_id`` as
        its trusted baseline. This is the only way a Suspect record's stored
        signature advances.

        :param root_id: The root name.
        :type root_id: ``str``
        :param path: The path relative to the root.
        :type path: ``str``
        :returns: The record as written.
        :rtype: ``FileRecord``
        """
        root = self._get_root(root_id)
        entry = Scanner(self.options).scan_path(root.path, path)
        with self._existing_store(root) as store:
            return accept_suspect(store, entry, time.time_ns())

    def scan_roots(self, root_ids: Iterable[str]) -> CheckReport:
        """
        Run the scan pipelines of ``root_ids`` in parallel and wait for all
        of them to finish. A failure of one root does not affect the others.

        :param root_ids: The names of the roots to scan.
        :type root_ids: ``Iterable[str]``
        :rtype: ``CheckReport``
        """
        root_ids = sorted(set(root_ids))
        for root_id in root_ids:
            self._get_root(root_id)

        results: Dict[str, ClassifyResults] = {}
        errors: Dict[str, DriftcheckError] = {}
        if not root_ids:
            return CheckReport(root_ids, results, errors)

        with ThreadPoolExecutor(
            max_workers=len(root_ids), thread_name_prefix="driftcheck-root"
        ) as executor:
            futures = {
                root_id: executor.submit(self.scan_and_classify, root_id)
                for root_id in root_ids
            }
            for root_id, future in futures.items():
                try:
                    results[root_id] = future.result()
                except DriftcheckError as err:
                    _log_error("Scan of root %s failed: %s", root_id, err)
                    errors[root_id] = err
        return CheckReport(root_ids, results, errors)

    def check(self, root_ids: Iterable[str]) -> CheckReport:
        """
        Scan two or more roots in parallel then reconcile the roots whose
        scans succeeded.

        :param root_ids: The names of the roots to check.
        :type root_ids: ``Iterable[str]``
        :rtype: ``CheckReport``
        :raises ``DriftcheckArgumentError``: If fewer than two roots are given.
        """
        root_ids = sorted(set(root_ids))
        if len(root_ids) < 2:
            raise DriftcheckArgumentError("Checking requires at least two roots")
        report = self.scan_roots(root_ids)
        if len(report.results) < 2:
            _log_warn(
                "Not reconciling: only %d root(s) scanned successfully",
                len(report.results),
            )
            return report
        report.reconcile = self.reconcile(list(report.results), report.results)
        return report

    def _stored_events(self, root: RootConfig) -> List[ChangeEvent]:
        """
        Build events describing the stored state of ``root``. Paths in the
        suspect ledger carry the observed (untrusted) signature.
        """
        events = []
        with self._existing_store(root) as store:
            suspects = {suspect.path: suspect for suspect in store.list_suspects()}
            for record in store.list_all():
                full_path = join(root.path, record.path)
                suspect = suspects.get(record.path)
                if suspect is not None:
                    # Sizes are not stored.
                    current = ScanEntry(
                        record.path, full_path, suspect.timestamp, -1, suspect.signature
                    )
                    kind = ChangeKind.SUSPECT
                else:
                    current = ScanEntry(
                        record.path, full_path, record.timestamp, -1, record.signature
                    )
                    kind = ChangeKind.UNCHANGED
                events.append(
                    ChangeEvent(
                        record.path,
                        kind,
                        previous=record,
                        current=current,
                        record=record,
                    )
                )
        return events

    def compare(self, root_ids: Iterable[str]) -> ReconcileResults:
        """
        Reconcile the stored state of two or more roots without scanning.

        :param root_ids: The names of the roots to compare.
        :type root_ids: ``Iterable[str]``
        :rtype: ``ReconcileResults``
        """
        root_ids = sorted(set(root_ids))
        if len(root_ids) < 2:
            raise DriftcheckArgumentError("Comparing requires at least two roots")
        per_root_events = {
            root_id: self._stored_events(self._get_root(root_id))
            for root_id in root_ids
        }
        return self.reconcile(root_ids, per_root_events)

    def suspects(self, root_id: str) -> List[SuspectRecord]:
        """
        Return the suspect ledger of root ``root_id``.

        :rtype: ``List[SuspectRecord]``
        """
        with self._existing_store(self._get_root(root_id)) as store:
            return store.list_suspects()

    def dupes(self, root_id: str) -> Dict[str, List[FileRecord]]:
        """
        Return the records of root ``root_id`` that share a signature.

        :rtype: ``Dict[str, List[FileRecord]]``
        """
        with self._existing_store(self._get_root(root_id)) as store:
            return store.find_dupes()

    def stats(self, root_id: str) -> Dict[str, Any]:
        """
        Return statistics for the snapshot store of root ``root_id``.

        :rtype: ``Dict[str, Any]``
        """
        root = self._get_root(root_id)
        with self._existing_store(root) as store:
            metadata = store.metadata()
            stats = {
                "name": root.name,
                "path": root.path,
                "database": root.database,
                "hash_algorithm": metadata["hash_algorithm"],
                "records": store.count(),
                "total_size": store.total_size(),
                "suspects": len(store.list_suspects()),
                "created": metadata["created"],
                "last_updated": metadata["last_updated"],
            }
        records = stats["records"]
        stats["average_size"] = stats["total_size"] // records if records else 0
        try:
            stats["database_size"] = os.path.getsize(root.database)
        except OSError as err:
            raise DriftcheckSystemError(
                f"Cannot stat snapshot store {root.database}: {err}"
            ) from err
        return stats


__all__ = [
    "CheckReport",
    "DriftcheckConfig",
    "Manager",
    "RootConfig",
]
