# Copyright Red Hat
#
# driftcheck/scan/classifier.py - Mirror drift checker diff classifier
#
# This file is part of the driftcheck project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Classify freshly scanned entries against the stored baseline of a root.
"""
from typing import Any, Dict, Iterable, Iterator, List, Optional
from datetime import datetime
from enum import Enum
import logging
import json
import time

from driftcheck import (
    DRIFTCHECK_SUBSYSTEM_SCAN,
    DriftcheckNotFoundError,
    IOAccessError,
    StoreIOError,
    format_timestamp_ns,
)

from .filetypes import FileTypeCheck, FileTypeDetector
from .options import ScanOptions
from .store import FileRecord, SnapshotStore
from .treewalk import ScanEntry, ScanFailure, ScanItem, is_under

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_scan(msg, *args, **kwargs):
    """A wrapper for scan subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": DRIFTCHECK_SUBSYSTEM_SCAN}, **kwargs)


#: Note attached to Updated events where only the mtime moved.
NOTE_CONTENT_UNCHANGED = "content unchanged"

#: Note attached to Updated events where the mtime went backwards.
NOTE_MTIME_BACKWARDS = "modification time moved backwards"


class ChangeKind(Enum):
    """
    Classification of one path in one root for one scan.
    """

    ADDED = "added"
    REMOVED = "removed"
    UPDATED = "updated"
    SUSPECT = "suspect"
    UNCHANGED = "unchanged"
    UNREADABLE = "unreadable"


class ChangeEvent:
    """
    The classification of a single path.
    """

    def __init__(
        self,
        path: str,
        kind: ChangeKind,
        previous: Optional[FileRecord] = None,
        current: Optional[ScanEntry] = None,
        record: Optional[FileRecord] = None,
        note: Optional[str] = None,
        error: Optional[IOAccessError] = None,
    ):
        """
        Initialise a new ``ChangeEvent``.

        :param path: The relative path classified.
        :param kind: The ``ChangeKind`` assigned.
        :param previous: The stored record before this scan, if any.
        :param current: The entry observed by this scan, if any.
        :param record: The stored record after this scan, if any.
        :param note: An optional human readable note.
        :param error: The access error for ``UNREADABLE`` events.
        """
        self.path: str = path
        self.kind: ChangeKind = kind
        self.previous: Optional[FileRecord] = previous
        self.current: Optional[ScanEntry] = current
        self.record: Optional[FileRecord] = record
        self.note: Optional[str] = note
        self.error: Optional[IOAccessError] = error
        self.file_type_check: Optional[FileTypeCheck] = None

    def __repr__(self):
        return f"ChangeEvent({self.path!r}, {self.kind})"

    def __str__(self):
        note = f" ({self.note})" if self.note else ""
        error = f" ({self.error})" if self.error else ""
        ftc = f" [{self.file_type_check}]" if self.file_type_check else ""
        return f"{self.kind.value:<10} {self.path}{note}{error}{ftc}"

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert this ``ChangeEvent`` into a dictionary representation
        suitable for encoding as JSON.

        :returns: A dictionary mapping this instance's keys to values.
        :rtype: ``Dict[str, Any]``
        """
        out = {"path": self.path, "kind": self.kind.value}
        if self.previous:
            out["previous"] = self.previous.to_dict()
        if self.current:
            out["current"] = self.current.to_dict()
        if self.note:
            out["note"] = self.note
        if self.error:
            out["error"] = str(self.error)
        if self.file_type_check:
            out["file_type_check"] = self.file_type_check.to_dict()
        return out


class ClassifyResults:
    """Container for the classification events of one root."""

    def __init__(
        self,
        root_id: str,
        root_path: str,
        events: List[ChangeEvent],
        options: ScanOptions,
        timestamp: int,
    ):
        self.root_id = root_id
        self.root_path = root_path
        self._events = events
        self._index = {event.path: event for event in events}
        self.options = options
        self.timestamp = timestamp

    def __repr__(self) -> str:
        return (
            f"ClassifyResults({self.root_id!r}, {self.root_path!r}, [...], "
            f"{self.options!r}, {self.timestamp})"
        )

    # List-like interface
    def __iter__(self) -> Iterator[ChangeEvent]:
        return iter(self._events)

    def __len__(self):
        return len(self._events)

    def __getitem__(self, index: int) -> ChangeEvent:
        return self._events[index]

    def get(self, path: str) -> Optional[ChangeEvent]:
        """
        Return the event for ``path`` or ``None`` if it was not classified.

        :param path: The relative path to look up.
        :type path: ``str``
        :rtype: ``Optional[ChangeEvent]``
        """
        return self._index.get(path)

    def _of_kind(self, kind: ChangeKind) -> List[ChangeEvent]:
        return [event for event in self._events if event.kind == kind]

    @property
    def added(self) -> List[ChangeEvent]:
        """Events with ``ChangeKind.ADDED``."""
        return self._of_kind(ChangeKind.ADDED)

    @property
    def removed(self) -> List[ChangeEvent]:
        """Events with ``ChangeKind.REMOVED``."""
        return self._of_kind(ChangeKind.REMOVED)

    @property
    def updated(self) -> List[ChangeEvent]:
        """Events with ``ChangeKind.UPDATED``."""
        return self._of_kind(ChangeKind.UPDATED)

    @property
    def suspect(self) -> List[ChangeEvent]:
        """Events with ``ChangeKind.SUSPECT``."""
        return self._of_kind(ChangeKind.SUSPECT)

    @property
    def unchanged(self) -> List[ChangeEvent]:
        """Events with ``ChangeKind.UNCHANGED``."""
        return self._of_kind(ChangeKind.UNCHANGED)

    @property
    def unreadable(self) -> List[ChangeEvent]:
        """Events with ``ChangeKind.UNREADABLE``."""
        return self._of_kind(ChangeKind.UNREADABLE)

    def counts(self) -> Dict[str, int]:
        """
        Return the number of events of each kind.

        :returns: A dictionary mapping ``ChangeKind`` values to counts.
        :rtype: ``Dict[str, int]``
        """
        counts = {kind.value: 0 for kind in ChangeKind}
        for event in self._events:
            counts[event.kind.value] += 1
        return counts

    def paths(self) -> List[str]:
        """
        Return the list of paths that were not classified Unchanged.

        :rtype: ``List[str]``
        """
        return [e.path for e in self._events if e.kind != ChangeKind.UNCHANGED]

    def short(self) -> str:
        """
        Return one line for each event that is not Unchanged.

        :rtype: ``str``
        """
        return "\n".join(
            str(event) for event in self._events if event.kind != ChangeKind.UNCHANGED
        )

    def summary(self) -> str:
        """
        Return a summary of this ``ClassifyResults`` instance.

        :returns: A string summarizing this instance.
        :rtype: ``str``
        """
        counts = self.counts()
        return (
            f"Root {self.root_id} ({self.root_path}) "
            f"at {format_timestamp_ns(self.timestamp)}\n"
            f"  Paths added:      {counts['added']}\n"
            f"  Paths removed:    {counts['removed']}\n"
            f"  Paths updated:    {counts['updated']}\n"
            f"  Paths suspect:    {counts['suspect']}\n"
            f"  Paths unchanged:  {counts['unchanged']}\n"
            f"  Paths unreadable: {counts['unreadable']}"
        )

    def to_dict(self, include_unchanged: bool = False) -> Dict[str, Any]:
        """
        Convert this ``ClassifyResults`` into a dictionary representation.

        :param include_unchanged: Include Unchanged events.
        :type include_unchanged: ``bool``
        :rtype: ``Dict[str, Any]``
        """
        return {
            "root_id": self.root_id,
            "root_path": self.root_path,
            "timestamp": self.timestamp,
            "counts": self.counts(),
            "events": [
                event.to_dict()
                for event in self._events
                if include_unchanged or event.kind != ChangeKind.UNCHANGED
            ],
        }

    def json(self, pretty: bool = False, include_unchanged: bool = False) -> str:
        """
        Return JSON representation of this ``ClassifyResults``.

        :param pretty: Indent JSON to be human readable.
        :type pretty: ``bool``
        :param include_unchanged: Include Unchanged events.
        :type include_unchanged: ``bool``
        :rtype: ``str``
        """
        return json.dumps(
            self.to_dict(include_unchanged=include_unchanged),
            indent=4 if pretty else None,
        )


class DiffClassifier:
    """
    Compare scanned entries with the stored baseline of one root, update
    the baseline and emit one ``ChangeEvent`` per path.
    """

    def __init__(self, options: Optional[ScanOptions] = None):
        self.options: ScanOptions = options or ScanOptions()
        self.file_type_detector: FileTypeDetector = FileTypeDetector()

    def _check_file_type(self, event: ChangeEvent):
        if self.options.use_magic_file_type and event.current is not None:
            event.file_type_check = self.file_type_detector.check(
                event.current.full_path
            )

    def _classify_entry(
        self,
        entry: ScanEntry,
        previous: Optional[FileRecord],
        store: SnapshotStore,
        now: int,
    ) -> ChangeEvent:
        """
        Classify one readable entry and apply the matching store update.
        """
        if previous is None:
            record = store.put(FileRecord.from_entry(entry, now))
            store.clear_suspect(entry.path)
            return ChangeEvent(entry.path, ChangeKind.ADDED, current=entry, record=record)

        same_signature = entry.signature == previous.signature
        same_mtime = entry.mtime == previous.timestamp

        if same_signature and same_mtime:
            # Content is back at the baseline: drop any stale ledger entry.
            if store.get_suspect(entry.path) is not None:
                store.clear_suspect(entry.path)
            return ChangeEvent(
                entry.path,
                ChangeKind.UNCHANGED,
                previous=previous,
                current=entry,
                record=previous,
            )

        if not same_signature and same_mtime:
            store.mark_suspect(entry.path, entry.signature, entry.mtime, now)
            _log_warn(
                "Content of %s changed without a modification time change "
                "(%s -> %s)",
                entry.full_path,
                previous.signature,
                entry.signature,
            )
            event = ChangeEvent(
                entry.path,
                ChangeKind.SUSPECT,
                previous=previous,
                current=entry,
                record=previous,
            )
            self._check_file_type(event)
            return event

        if same_signature:
            note = NOTE_CONTENT_UNCHANGED
        elif entry.mtime < previous.timestamp:
            note = NOTE_MTIME_BACKWARDS
        else:
            note = None
        record = store.put(FileRecord.from_entry(entry, now))
        store.clear_suspect(entry.path)
        return ChangeEvent(
            entry.path,
            ChangeKind.UPDATED,
            previous=previous,
            current=entry,
            record=record,
            note=note,
        )

    # pylint: disable=too-many-locals,too-many-branches
    def classify(
        self,
        root_id: str,
        root_path: str,
        entries: Iterable[ScanItem],
        store: SnapshotStore,
        now: Optional[int] = None,
    ) -> ClassifyResults:
        """
        Classify the scanned ``entries`` of one root against ``store``.

        The Removed pass runs only after every entry has been consumed. Paths
        that were unreadable in this scan, or that lie beneath any unreadable
        path, are never reported Removed.

        :param root_id: The name of the root being classified.
        :type root_id: ``str``
        :param root_path: The root directory path.
        :type root_path: ``str``
        :param entries: ``ScanEntry`` and ``ScanFailure`` items from a scan.
        :type entries: ``Iterable[Union[ScanEntry, ScanFailure]]``
        :param store: The open snapshot store for this root.
        :type store: ``SnapshotStore``
        :param now: The classification time in nanoseconds.
        :type now: ``Optional[int]``
        :returns: The events for this root.
        :rtype: ``ClassifyResults``
        :raises ``StoreIOError``: If a store operation fails. Uncommitted
                                  changes are rolled back.
        """
        now = now if now is not None else time.time_ns()
        interval = self.options.commit_interval
        events: List[ChangeEvent] = []
        seen = set()
        unreadable: List[str] = []
        pending = 0
        writes = 0

        def _wrote():
            nonlocal pending, writes
            pending += 1
            writes += 1
            if interval and pending >= interval:
                store.commit()
                _log_debug_scan("Committed %d records for %s", pending, root_id)
                pending = 0

        start_time = datetime.now()
        try:
            for item in entries:
                if isinstance(item, ScanFailure):
                    seen.add(item.path)
                    unreadable.append(item.path)
                    if item.is_dir:
                        previous = None
                    else:
                        previous = store.get(item.path)
                    _log_warn("%s: %s", root_id, item.error)
                    events.append(
                        ChangeEvent(
                            item.path,
                            ChangeKind.UNREADABLE,
                            previous=previous,
                            record=previous,
                            error=item.error,
                        )
                    )
                    continue

                seen.add(item.path)
                previous = store.get(item.path)
                event = self._classify_entry(item, previous, store, now)
                _log_debug_scan("%s: %s", root_id, event)
                events.append(event)
                if event.kind != ChangeKind.UNCHANGED:
                    _wrote()

            if not self.options.skip_delete_check:
                for path in sorted(store.paths() - seen):
                    if any(is_under(path, p) for p in unreadable):
                        continue
                    previous = store.get(path)
                    store.remove(path)
                    events.append(
                        ChangeEvent(path, ChangeKind.REMOVED, previous=previous)
                    )
                    _wrote()

            if writes:
                store.touch(now)
            store.commit()
        except BaseException:
            try:
                store.rollback()
            except StoreIOError as err:
                _log_error("Rollback failed for %s: %s", root_id, err)
            raise

        results = ClassifyResults(root_id, root_path, events, self.options, now)
        _log_info(
            "Classified %d paths for %s in %s",
            len(events),
            root_id,
            datetime.now() - start_time,
        )
        return results


def accept_suspect(store: SnapshotStore, entry: ScanEntry, now: int) -> FileRecord:
    """
    Promote the freshly scanned ``entry`` to the trusted baseline for its
    path and clear the path's suspect ledger entry.

    :param store: The open snapshot store.
    :type store: ``SnapshotStore``
    :param entry: The freshly scanned entry to accept.
    :type entry: ``ScanEntry``
    :param now: The current time in nanoseconds.
    :type now: ``int``
    :returns: The record as written.
    :rtype: ``FileRecord``
    :raises ``DriftcheckNotFoundError``: If ``entry.path`` has no record.
    """
    if store.get(entry.path) is None:
        raise DriftcheckNotFoundError(f"No stored record for {entry.path}")
    with store.transaction():
        record = store.put(FileRecord.from_entry(entry, now))
        store.clear_suspect(entry.path)
        store.touch(now)
    _log_info("Accepted %s as new baseline (%s)", entry.path, entry.signature)
    return record


__all__ = [
    "ChangeEvent",
    "ChangeKind",
    "ClassifyResults",
    "DiffClassifier",
    "NOTE_CONTENT_UNCHANGED",
    "NOTE_MTIME_BACKWARDS",
    "accept_suspect",
]
