# Copyright Red Hat
#
# driftcheck/scan/store.py - Mirror drift checker snapshot store
#
# This file is part of the driftcheck project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Persistent per-root snapshot store backed by SQLite.
"""
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Set
import logging
import sqlite3
import time
import os

from driftcheck import (
    DRIFTCHECK_SUBSYSTEM_STORE,
    DriftcheckStateError,
    StoreIOError,
    format_timestamp_ns,
)

from .treewalk import ScanEntry, split_path

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_store(msg, *args, **kwargs):
    """A wrapper for store subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": DRIFTCHECK_SUBSYSTEM_STORE}, **kwargs)


#: Suffixes of files that SQLite and driftcheck create beside a database.
STORE_FILE_SUFFIXES = ("", "-journal", "-wal", "-shm", ".lock")

_SCHEMA = (
    "CREATE TABLE IF NOT EXISTS metadata ("
    " root TEXT NOT NULL,"
    " hash_algorithm TEXT NOT NULL,"
    " created INTEGER NOT NULL,"
    " last_updated INTEGER NOT NULL)",
    "CREATE TABLE IF NOT EXISTS entries ("
    " path TEXT PRIMARY KEY,"
    " basename TEXT NOT NULL,"
    " dirname TEXT NOT NULL,"
    " signature TEXT NOT NULL,"
    " timestamp INTEGER NOT NULL,"
    " updated INTEGER NOT NULL,"
    " size INTEGER NOT NULL DEFAULT 0)",
    "CREATE INDEX IF NOT EXISTS entries_signature ON entries (signature)",
    "CREATE TABLE IF NOT EXISTS suspects ("
    " path TEXT PRIMARY KEY,"
    " signature TEXT NOT NULL,"
    " timestamp INTEGER NOT NULL,"
    " detected INTEGER NOT NULL)",
)


@dataclass(frozen=True)
class FileRecord:
    """
    The trusted baseline for one path within one root.
    """

    #: Path relative to the root (POSIX separators)
    path: str
    #: Content signature
    signature: str
    #: Modification time observed when the signature was recorded (ns)
    timestamp: int
    #: Wall-clock time of the last write to this record (ns)
    updated: int
    #: File size in bytes observed when the signature was recorded
    size: int = 0

    @property
    def basename(self) -> str:
        """The final component of ``path``."""
        return split_path(self.path)[1]

    @property
    def dirname(self) -> str:
        """The directory part of ``path``."""
        return split_path(self.path)[0]

    @classmethod
    def from_entry(cls, entry: ScanEntry, now: int) -> "FileRecord":
        """
        Build a new ``FileRecord`` from a freshly scanned ``ScanEntry``.

        :param entry: The scanned entry.
        :type entry: ``ScanEntry``
        :param now: The current time in nanoseconds.
        :type now: ``int``
        :rtype: ``FileRecord``
        """
        return cls(
            path=entry.path,
            signature=entry.signature,
            timestamp=entry.mtime,
            updated=now,
            size=entry.size,
        )

    def to_dict(self):
        """
        Return a dictionary representation of this ``FileRecord``.

        :rtype: ``dict``
        """
        return {
            "path": self.path,
            "basename": self.basename,
            "dirname": self.dirname,
            "signature": self.signature,
            "timestamp": self.timestamp,
            "updated": self.updated,
            "size": self.size,
        }

    def __str__(self):
        return (
            f"{self.path}: {self.signature} "
            f"(mtime {format_timestamp_ns(self.timestamp)}, "
            f"updated {format_timestamp_ns(self.updated)})"
        )


@dataclass(frozen=True)
class SuspectRecord:
    """
    A suspect ledger entry: content that changed without an mtime change.
    """

    #: Path relative to the root
    path: str
    #: The signature observed on disk (not trusted)
    signature: str
    #: The modification time observed on disk (ns)
    timestamp: int
    #: When the suspect was first detected (ns)
    detected: int

    def to_dict(self):
        """
        Return a dictionary representation of this ``SuspectRecord``.

        :rtype: ``dict``
        """
        return {
            "path": self.path,
            "signature": self.signature,
            "timestamp": self.timestamp,
            "detected": self.detected,
        }


def _row_to_record(row) -> FileRecord:
    return FileRecord(
        path=row[0], signature=row[1], timestamp=row[2], updated=row[3], size=row[4]
    )


def _row_to_suspect(row) -> SuspectRecord:
    return SuspectRecord(
        path=row[0], signature=row[1], timestamp=row[2], detected=row[3]
    )


class SnapshotStore:
    """
    A per-root database of trusted ``FileRecord`` baselines.

    A ``SnapshotStore`` connection must only be used from the thread that
    opened it.
    """

    def __init__(
        self, db_path: str, root_path: str, hash_algorithm: str, sync: bool = True
    ):
        """
        Initialise a new ``SnapshotStore`` object. The database is not
        opened until ``open()`` is called.

        :param db_path: The path to the SQLite database file.
        :type db_path: ``str``
        :param root_path: The root directory that this store describes.
        :type root_path: ``str``
        :param hash_algorithm: The signature algorithm used for this root.
        :type hash_algorithm: ``str``
        :param sync: Wait for writes to reach stable storage.
        :type sync: ``bool``
        """
        self.db_path: str = db_path
        self.root_path: str = root_path
        self.hash_algorithm: str = hash_algorithm
        self.sync: bool = sync
        self._conn: Optional[sqlite3.Connection] = None

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    def __repr__(self):
        return (
            f"SnapshotStore({self.db_path!r}, {self.root_path!r}, "
            f"{self.hash_algorithm!r}, sync={self.sync})"
        )

    @property
    def files(self) -> List[str]:
        """
        The database file and the auxiliary files that may exist beside it.
        """
        return [self.db_path + suffix for suffix in STORE_FILE_SUFFIXES]

    @property
    def conn(self) -> sqlite3.Connection:
        """
        The open database connection.

        :raises ``StoreIOError``: If the store is not open.
        """
        if self._conn is None:
            raise StoreIOError(f"Snapshot store {self.db_path} is not open")
        return self._conn

    def _check_metadata(self, now: int):
        cur = self.conn.execute(
            "SELECT root, hash_algorithm, created, last_updated FROM metadata"
        )
        row = cur.fetchone()
        if row is None:
            _log_debug_store(
                "Initialising snapshot store %s for %s", self.db_path, self.root_path
            )
            self.conn.execute(
                "INSERT INTO metadata (root, hash_algorithm, created, last_updated) "
                "VALUES (?, ?, ?, ?)",
                (self.root_path, self.hash_algorithm, now, now),
            )
            self.conn.commit()
            return
        if row[0] != self.root_path:
            raise DriftcheckStateError(
                f"Snapshot store {self.db_path} belongs to root {row[0]}, "
                f"not {self.root_path}"
            )
        if row[1] != self.hash_algorithm:
            raise DriftcheckStateError(
                f"Snapshot store {self.db_path} uses hash algorithm {row[1]}, "
                f"not {self.hash_algorithm}"
            )

    def open(self):
        """
        Open (creating if necessary) the snapshot database.

        :raises ``StoreIOError``: If the database cannot be opened.
        :raises ``DriftcheckStateError``: If the database was created for a
                                          different root or hash algorithm.
        """
        if self._conn is not None:
            return
        db_dir = os.path.dirname(self.db_path)
        try:
            if db_dir:
                os.makedirs(db_dir, exist_ok=True)
        except OSError as err:
            raise StoreIOError(
                f"Cannot create snapshot store directory {db_dir}: {err}"
            ) from err
        try:
            self._conn = sqlite3.connect(self.db_path)
            if not self.sync:
                self._conn.execute("PRAGMA synchronous = OFF")
            for statement in _SCHEMA:
                self._conn.execute(statement)
            self._conn.commit()
            self._check_metadata(time.time_ns())
        except sqlite3.Error as err:
            self._close_quietly()
            raise StoreIOError(
                f"Cannot open snapshot store {self.db_path}: {err}"
            ) from err
        except DriftcheckStateError:
            self._close_quietly()
            raise
        _log_debug_store("Opened snapshot store %s", self.db_path)

    def _close_quietly(self):
        if self._conn is None:
            return
        try:
            self._conn.close()
        except sqlite3.Error as err:
            _log_debug_store("Error closing %s: %s", self.db_path, err)
        self._conn = None

    def close(self):
        """
        Close the snapshot database. Uncommitted changes are discarded.
        """
        if self._conn is None:
            return
        try:
            self._conn.rollback()
            self._conn.close()
        except sqlite3.Error as err:
            raise StoreIOError(
                f"Error closing snapshot store {self.db_path}: {err}"
            ) from err
        finally:
            self._conn = None
        _log_debug_store("Closed snapshot store %s", self.db_path)

    def _execute(self, sql: str, params=()) -> sqlite3.Cursor:
        try:
            return self.conn.execute(sql, params)
        except sqlite3.Error as err:
            raise StoreIOError(f"Snapshot store {self.db_path}: {err}") from err

    def commit(self):
        """
        Make all pending changes durable.

        :raises ``StoreIOError``: If the commit fails.
        """
        try:
            self.conn.commit()
        except sqlite3.Error as err:
            raise StoreIOError(
                f"Cannot commit snapshot store {self.db_path}: {err}"
            ) from err

    def rollback(self):
        """
        Discard all uncommitted changes.
        """
        try:
            self.conn.rollback()
        except sqlite3.Error as err:
            raise StoreIOError(
                f"Cannot roll back snapshot store {self.db_path}: {err}"
            ) from err

    @contextmanager
    def transaction(self):
        """
        A context manager that commits on success and rolls back on error.
        """
        try:
            yield self
        except BaseException:
            self.rollback()
            raise
        self.commit()

    def get(self, path: str) -> Optional[FileRecord]:
        """
        Return the ``FileRecord`` for ``path`` or ``None`` if not present.

        :param path: The relative path to look up.
        :type path: ``str``
        :rtype: ``Optional[FileRecord]``
        """
        row = self._execute(
            "SELECT path, signature, timestamp, updated, size FROM entries "
            "WHERE path = ?",
            (path,),
        ).fetchone()
        return _row_to_record(row) if row else None

    def put(self, record: FileRecord) -> FileRecord:
        """
        Insert or replace the record for ``record.path``.

        The stored ``updated`` value never moves backwards: if an existing
        record has a later ``updated`` value that value is kept.

        :param record: The record to write.
        :type record: ``FileRecord``
        :returns: The record as written.
        :rtype: ``FileRecord``
        """
        previous = self.get(record.path)
        if previous is not None and previous.updated > record.updated:
            record = FileRecord(
                path=record.path,
                signature=record.signature,
                timestamp=record.timestamp,
                updated=previous.updated,
                size=record.size,
            )
        self._execute(
            "INSERT OR REPLACE INTO entries "
            "(path, basename, dirname, signature, timestamp, updated, size) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                record.path,
                record.basename,
                record.dirname,
                record.signature,
                record.timestamp,
                record.updated,
                record.size,
            ),
        )
        return record

    def remove(self, path: str) -> bool:
        """
        Delete the record for ``path``.

        :param path: The relative path to remove.
        :type path: ``str``
        :returns: ``True`` if a record was deleted.
        :rtype: ``bool``
        """
        cur = self._execute("DELETE FROM entries WHERE path = ?", (path,))
        self._execute("DELETE FROM suspects WHERE path = ?", (path,))
        return cur.rowcount > 0

    def list_all(self) -> Iterator[FileRecord]:
        """
        Iterate over all records in path order.

        :rtype: ``Iterator[FileRecord]``
        """
        cur = self._execute(
            "SELECT path, signature, timestamp, updated, size FROM entries ORDER BY path"
        )
        for row in cur:
            yield _row_to_record(row)

    def paths(self) -> Set[str]:
        """
        Return the set of all stored paths.

        :rtype: ``Set[str]``
        """
        return {row[0] for row in self._execute("SELECT path FROM entries")}

    def count(self) -> int:
        """
        Return the number of stored records.

        :rtype: ``int``
        """
        return self._execute("SELECT COUNT(*) FROM entries").fetchone()[0]

    def total_size(self) -> int:
        """
        Return the sum of the recorded file sizes in bytes.

        :rtype: ``int``
        """
        return self._execute("SELECT COALESCE(SUM(size), 0) FROM entries").fetchone()[0]

    def mark_suspect(self, path: str, signature: str, timestamp: int, detected: int):
        """
        Record ``path`` in the suspect ledger. The first detection time of an
        existing ledger entry is preserved.

        :param path: The suspect path.
        :type path: ``str``
        :param signature: The signature observed on disk.
        :type signature: ``str``
        :param timestamp: The modification time observed on disk.
        :type timestamp: ``int``
        :param detected: The current time in nanoseconds.
        :type detected: ``int``
        """
        previous = self.get_suspect(path)
        if previous is not None:
            detected = previous.detected
        self._execute(
            "INSERT OR REPLACE INTO suspects (path, signature, timestamp, detected) "
            "VALUES (?, ?, ?, ?)",
            (path, signature, timestamp, detected),
        )

    def clear_suspect(self, path: str) -> bool:
        """
        Remove ``path`` from the suspect ledger.

        :returns: ``True`` if a ledger entry was removed.
        :rtype: ``bool``
        """
        cur = self._execute("DELETE FROM suspects WHERE path = ?", (path,))
        return cur.rowcount > 0

    def get_suspect(self, path: str) -> Optional[SuspectRecord]:
        """
        Return the suspect ledger entry for ``path`` or ``None``.

        :rtype: ``Optional[SuspectRecord]``
        """
        row = self._execute(
            "SELECT path, signature, timestamp, detected FROM suspects "
            "WHERE path = ?",
            (path,),
        ).fetchone()
        return _row_to_suspect(row) if row else None

    def list_suspects(self) -> List[SuspectRecord]:
        """
        Return all suspect ledger entries in path order.

        :rtype: ``List[SuspectRecord]``
        """
        cur = self._execute(
            "SELECT path, signature, timestamp, detected FROM suspects ORDER BY path"
        )
        return [_row_to_suspect(row) for row in cur.fetchall()]

    def find_dupes(self) -> Dict[str, List[FileRecord]]:
        """
        Find records that share a content signature.

        :returns: A dictionary mapping each duplicated signature to the
                  records that carry it.
        :rtype: ``Dict[str, List[FileRecord]]``
        """
        cur = self._execute(
            "SELECT path, signature, timestamp, updated, size FROM entries "
            "WHERE signature IN ("
            " SELECT signature FROM entries GROUP BY signature HAVING COUNT(*) > 1"
            ") ORDER BY signature, path"
        )
        dupes: Dict[str, List[FileRecord]] = {}
        for row in cur.fetchall():
            record = _row_to_record(row)
            dupes.setdefault(record.signature, []).append(record)
        return dupes

    def touch(self, now: int):
        """
        Set the store's ``last_updated`` metadata to ``now``.
        """
        self._execute("UPDATE metadata SET last_updated = MAX(last_updated, ?)", (now,))

    def metadata(self) -> Dict[str, object]:
        """
        Return the store metadata as a dictionary.

        :rtype: ``Dict[str, object]``
        """
        row = self._execute(
            "SELECT root, hash_algorithm, created, last_updated FROM metadata"
        ).fetchone()
        return {
            "root": row[0],
            "hash_algorithm": row[1],
            "created": row[2],
            "last_updated": row[3],
        }


__all__ = [
    "FileRecord",
    "STORE_FILE_SUFFIXES",
    "SnapshotStore",
    "SuspectRecord",
]
