# Copyright Red Hat
#
# driftcheck/scan/treewalk.py - Mirror drift checker tree walk
#
# This file is part of the driftcheck project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Tree walking and content signature scanning.
"""
from concurrent.futures import Future, ThreadPoolExecutor
from collections import deque
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional, Set, Tuple, Union
from fnmatch import fnmatch
from datetime import datetime
import logging
import stat
import os

from driftcheck import (
    DRIFTCHECK_SUBSYSTEM_SCAN,
    DriftcheckPathError,
    IOAccessError,
)
from driftcheck.progress import ProgressFactory

from .hasher import ContentHasher
from .options import ScanOptions

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_scan(msg, *args, **kwargs):
    """A wrapper for scan subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": DRIFTCHECK_SUBSYSTEM_SCAN}, **kwargs)


def split_path(path: str) -> Tuple[str, str]:
    """
    Split a relative POSIX path into ``(dirname, basename)``.

    Top level paths have an empty ``dirname``.

    :param path: The relative path to split.
    :type path: ``str``
    :returns: A ``(dirname, basename)`` tuple.
    :rtype: ``Tuple[str, str]``
    """
    dirname, _, basename = path.rpartition("/")
    return dirname, basename


def is_under(path: str, directory: str) -> bool:
    """
    Return ``True`` if ``path`` is ``directory`` or lies beneath it. The
    empty string names the root itself.

    :param path: The relative path to test.
    :type path: ``str``
    :param directory: The relative directory path.
    :type directory: ``str``
    :rtype: ``bool``
    """
    if not directory:
        return True
    return path == directory or path.startswith(directory + "/")


def _dirent_is_dir(dirent: os.DirEntry) -> bool:
    # Uses d_type where the platform provides it
    try:
        return dirent.is_dir(follow_symlinks=False)
    except OSError:
        return False


@dataclass(frozen=True)
class ScanEntry:
    """
    A single regular file observed by the ``Scanner``.
    """

    #: Path relative to the scanned root (POSIX separators)
    path: str
    #: Full path from the host perspective
    full_path: str
    #: Modification time in integer nanoseconds
    mtime: int
    #: File size in bytes
    size: int
    #: Content signature (lowercase hex digest)
    signature: str

    @property
    def basename(self) -> str:
        """The final component of ``path``."""
        return split_path(self.path)[1]

    @property
    def dirname(self) -> str:
        """The directory part of ``path`` (empty for top level files)."""
        return split_path(self.path)[0]

    def to_dict(self):
        """
        Return a dictionary representation of this ``ScanEntry``.

        :rtype: ``dict``
        """
        return {
            "path": self.path,
            "mtime": self.mtime,
            "size": self.size,
            "signature": self.signature,
        }


@dataclass(frozen=True)
class ScanFailure:
    """
    A path that could not be read during a scan.
    """

    #: Path relative to the scanned root ("" for the root itself)
    path: str
    #: The access error raised for this path
    error: IOAccessError
    #: ``True`` if the failed path is a directory
    is_dir: bool = False


ScanItem = Union[ScanEntry, ScanFailure]

# A candidate regular file found by the walk: (relpath, full_path, stat)
_Candidate = Tuple[str, str, os.stat_result]

#: Maximum hash attempts for a file that changes while it is hashed
_HASH_ATTEMPTS = 3


class Scanner:
    """
    Walk a root directory and compute a content signature for every regular
    file beneath it.
    """

    def __init__(self, options: ScanOptions, hasher: Optional[ContentHasher] = None):
        """
        Initialise a new ``Scanner`` object.

        :param options: Options to control this ``Scanner`` instance.
        :type options: ``ScanOptions``
        :param hasher: An optional ``ContentHasher`` to use in place of one
                       built from ``options``.
        :type hasher: ``Optional[ContentHasher]``
        """
        self.options: ScanOptions = options
        self.hasher: ContentHasher = hasher or ContentHasher(
            options.hash_algorithm, options.chunk_size
        )
        self.exclude_patterns: Tuple[str, ...] = tuple(options.exclude_patterns)

    def _excluded(self, relpath: str, name: str) -> bool:
        return any(
            fnmatch(relpath, pat) or fnmatch(name, pat) for pat in self.exclude_patterns
        )

    # pylint: disable=too-many-branches
    def _walk(
        self, root: str, exclude_paths: Set[str]
    ) -> Iterator[Union[_Candidate, ScanFailure]]:
        """
        Walk ``root`` depth first in sorted name order yielding candidate
        regular files and ``ScanFailure`` objects for unreadable paths.
        """
        follow_symlinks = self.options.follow_symlinks
        visited = set()
        try:
            root_stat = os.stat(root)
            visited.add((root_stat.st_dev, root_stat.st_ino))
        except OSError as err:
            yield ScanFailure("", IOAccessError(root, err), is_dir=True)
            return

        to_visit = [(root, "")]
        while to_visit:
            dir_path, dir_rel = to_visit.pop()
            try:
                with os.scandir(dir_path) as it:
                    dirents = sorted(it, key=lambda d: d.name)
            except OSError as err:
                _log_debug_scan("Cannot read directory '%s': %s", dir_path, err)
                yield ScanFailure(dir_rel, IOAccessError(dir_path, err), is_dir=True)
                continue

            subdirs = []
            for dirent in dirents:
                relpath = f"{dir_rel}/{dirent.name}" if dir_rel else dirent.name
                if dirent.path in exclude_paths:
                    continue
                if self._excluded(relpath, dirent.name):
                    _log_debug_scan("Excluding '%s'", relpath)
                    continue

                is_link = False
                try:
                    is_link = dirent.is_symlink()
                    if is_link and not follow_symlinks:
                        _log_debug_scan("Skipping symbolic link '%s'", relpath)
                        continue
                    path_stat = dirent.stat(follow_symlinks=follow_symlinks)
                except FileNotFoundError as err:
                    if follow_symlinks and is_link:
                        _log_debug_scan("Found dangling symbolic link '%s'", relpath)
                        continue
                    _log_debug_scan("Path '%s' vanished during scan", relpath)
                    yield ScanFailure(relpath, IOAccessError(dirent.path, err))
                    continue
                except OSError as err:
                    yield ScanFailure(
                        relpath,
                        IOAccessError(dirent.path, err),
                        is_dir=_dirent_is_dir(dirent),
                    )
                    continue

                if stat.S_ISDIR(path_stat.st_mode):
                    key = (path_stat.st_dev, path_stat.st_ino)
                    if key in visited:
                        _log_debug_scan("Skipping directory loop at '%s'", relpath)
                        continue
                    visited.add(key)
                    subdirs.append((dirent.path, relpath))
                elif stat.S_ISREG(path_stat.st_mode):
                    yield (relpath, dirent.path, path_stat)
                else:
                    _log_debug_scan("Skipping non-regular file '%s'", relpath)

            to_visit.extend(reversed(subdirs))

    def _hash_candidate(self, relpath: str, full_path: str, path_stat) -> ScanItem:
        """
        Hash one candidate file returning a ``ScanEntry`` or ``ScanFailure``.

        The file is stat'ed again once hashed: if it was modified while
        queued or hashed it is hashed again so that the recorded mtime and
        signature describe the same content.
        """
        for attempt in range(1, _HASH_ATTEMPTS + 1):
            try:
                signature = self.hasher.hash_file(full_path)
                post_stat = os.stat(full_path)
            except IOAccessError as err:
                _log_debug_scan("Cannot hash '%s': %s", full_path, err)
                return ScanFailure(relpath, err)
            except OSError as err:
                _log_debug_scan("Cannot stat '%s': %s", full_path, err)
                return ScanFailure(relpath, IOAccessError(full_path, err))
            if post_stat.st_mtime_ns == path_stat.st_mtime_ns:
                break
            _log_debug_scan(
                "File '%s' modified during scan (attempt %d)", relpath, attempt
            )
            path_stat = post_stat
        return ScanEntry(
            path=relpath,
            full_path=full_path,
            mtime=path_stat.st_mtime_ns,
            size=path_stat.st_size,
            signature=signature,
        )

    def _scan(self, root: str, exclude_paths: Set[str]) -> Iterator[ScanItem]:
        workers = self.options.workers
        max_in_flight = 2 * workers
        throbber = ProgressFactory.get_throbber(
            f"Scanning {root}", quiet=self.options.quiet
        )
        start_time = datetime.now()
        failures = 0

        def _emit(item: ScanItem) -> ScanItem:
            nonlocal failures
            if isinstance(item, ScanFailure):
                failures += 1
            throbber.throb()
            return item

        _log_info("Scanning root %s with %d worker(s)", root, workers)
        throbber.start()
        try:
            if workers == 1:
                for item in self._walk(root, exclude_paths):
                    if isinstance(item, ScanFailure):
                        yield _emit(item)
                    else:
                        yield _emit(self._hash_candidate(*item))
            else:
                pending = deque()
                with ThreadPoolExecutor(
                    max_workers=workers, thread_name_prefix="driftcheck-hash"
                ) as executor:
                    for item in self._walk(root, exclude_paths):
                        if isinstance(item, ScanFailure):
                            pending.append(item)
                        else:
                            pending.append(
                                executor.submit(self._hash_candidate, *item)
                            )
                        while len(pending) >= max_in_flight:
                            head = pending.popleft()
                            yield _emit(
                                head.result() if isinstance(head, Future) else head
                            )
                    while pending:
                        head = pending.popleft()
                        yield _emit(head.result() if isinstance(head, Future) else head)
        except (KeyboardInterrupt, SystemExit):
            throbber.end("Quit!")
            raise
        end_time = datetime.now()
        throbber.end(
            f"scanned {throbber.count} paths in {end_time - start_time} "
            f"({failures} unreadable)"
        )

    def scan(self, root: str, exclude_paths: Iterable[str] = ()) -> Iterator[ScanItem]:
        """
        Return a new lazy iterator over the regular files beneath ``root``.

        Each call returns a fresh generator that walks the whole tree again.
        Items are ``ScanEntry`` objects for files that were read and
        ``ScanFailure`` objects for files or directories that could not be
        read. Directories themselves are never yielded.

        :param root: The root directory to scan.
        :type root: ``str``
        :param exclude_paths: Full paths to skip (for e.g. the store's own
                              database files).
        :type exclude_paths: ``Iterable[str]``
        :returns: An iterator of ``ScanEntry`` and ``ScanFailure`` objects.
        :rtype: ``Iterator[Union[ScanEntry, ScanFailure]]``
        :raises ``DriftcheckPathError``: If ``root`` is not a directory.
        """
        if not os.path.isdir(root):
            raise DriftcheckPathError(f"Root path {root} is not a directory")
        root = os.path.normpath(root)
        return self._scan(root, {os.path.normpath(p) for p in exclude_paths})

    def scan_path(self, root: str, relpath: str) -> ScanEntry:
        """
        Hash the single file ``relpath`` beneath ``root``.

        :param root: The root directory containing the file.
        :type root: ``str``
        :param relpath: The path of the file relative to ``root``.
        :type relpath: ``str``
        :returns: A new ``ScanEntry`` for the file.
        :rtype: ``ScanEntry``
        :raises ``DriftcheckPathError``: If ``relpath`` escapes ``root`` or
                                         is not a regular file.
        :raises ``IOAccessError``: If the file cannot be read.
        """
        norm = os.path.normpath(relpath.lstrip("/"))
        if norm in (".", "") or norm == ".." or norm.startswith("../"):
            raise DriftcheckPathError(f"Invalid path relative to {root}: {relpath}")
        full_path = os.path.join(root, norm)
        try:
            if self.options.follow_symlinks:
                path_stat = os.stat(full_path)
            else:
                path_stat = os.lstat(full_path)
        except OSError as err:
            raise IOAccessError(full_path, err) from err
        if not stat.S_ISREG(path_stat.st_mode):
            raise DriftcheckPathError(f"Path {full_path} is not a regular file")
        item = self._hash_candidate(norm, full_path, path_stat)
        if isinstance(item, ScanFailure):
            raise item.error
        return item


__all__ = [
    "ScanEntry",
    "ScanFailure",
    "ScanItem",
    "Scanner",
    "is_under",
    "split_path",
]
