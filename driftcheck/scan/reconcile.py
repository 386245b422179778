# Copyright Red Hat
#
# driftcheck/scan/reconcile.py - Mirror drift checker cross-root reconciler
#
# This file is part of the driftcheck project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Cross-root reconciliation of mirrored trees.

Single-root classification cannot detect a corrupted file whose
modification time and content both look stable from that root's own
history. Comparing the current signatures of the same path across mirrors
can: a root that believes nothing changed while disagreeing with its
mirrors is suspect.
"""
from typing import Any, Dict, Iterable, List, Mapping, Optional
from enum import Enum
import logging
import json

from driftcheck import DRIFTCHECK_SUBSYSTEM_RECONCILE, DriftcheckArgumentError
from driftcheck.progress import ProgressFactory

from .classifier import ChangeEvent, ChangeKind
from .filetypes import FileTypeCheck, FileTypeDetector
from .options import ScanOptions

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_reconcile(msg, *args, **kwargs):
    """A wrapper for reconcile subsystem debug logs."""
    _log.debug(
        msg, *args, extra={"subsystem": DRIFTCHECK_SUBSYSTEM_RECONCILE}, **kwargs
    )


#: Local classifications that account for a root disagreeing with its mirrors.
EXPLAINING_KINDS = (ChangeKind.SUSPECT, ChangeKind.ADDED, ChangeKind.UPDATED)


class Verdict(Enum):
    """
    Cross-root verdict for one path.
    """

    CONSISTENT = "consistent"
    DIVERGENT_EXPLAINED = "divergent_explained"
    DIVERGENT_SUSPECT = "divergent_suspect"


class ReconciliationVerdict:
    """
    The reconciliation verdict for a single path across a set of roots.
    """

    # pylint: disable=too-many-arguments
    def __init__(
        self,
        path: str,
        per_root_signature: Dict[str, str],
        verdict: Verdict,
        suspect_roots: Optional[List[str]] = None,
        per_root_kind: Optional[Dict[str, ChangeKind]] = None,
        majority_signature: Optional[str] = None,
        minority_roots: Optional[List[str]] = None,
        missing_roots: Optional[List[str]] = None,
        unreadable_roots: Optional[List[str]] = None,
        inconclusive: bool = False,
    ):
        self.path: str = path
        self.per_root_signature: Dict[str, str] = per_root_signature
        self.verdict: Verdict = verdict
        self.suspect_roots: List[str] = suspect_roots or []
        self.per_root_kind: Dict[str, ChangeKind] = per_root_kind or {}
        #: The probable-good signature, for reporting only
        self.majority_signature: Optional[str] = majority_signature
        self.minority_roots: List[str] = minority_roots or []
        self.missing_roots: List[str] = missing_roots or []
        self.unreadable_roots: List[str] = unreadable_roots or []
        #: ``True`` when no majority exists to name the faulty side
        self.inconclusive: bool = inconclusive
        #: The root most recently updated on purpose (a hint, never applied)
        self.hint_root: Optional[str] = None
        self.hint: Optional[str] = None
        self.file_type_checks: Dict[str, FileTypeCheck] = {}

    def __repr__(self):
        return f"ReconciliationVerdict({self.path!r}, {self.verdict})"

    def __str__(self):
        out = f"{self.verdict.value:<19} {self.path}"
        if self.suspect_roots:
            out += f"\n  suspect_roots: {', '.join(self.suspect_roots)}"
            if self.inconclusive:
                out += " (inconclusive: no majority)"
        if self.verdict != Verdict.CONSISTENT:
            for root_id, signature in self.per_root_signature.items():
                kind = self.per_root_kind.get(root_id)
                out += f"\n  {root_id}: {signature} ({kind.value if kind else ''})"
        if self.majority_signature and self.minority_roots:
            out += f"\n  majority_signature: {self.majority_signature}"
        if self.missing_roots:
            out += f"\n  missing_roots: {', '.join(self.missing_roots)}"
        if self.unreadable_roots:
            out += f"\n  unreadable_roots: {', '.join(self.unreadable_roots)}"
        if self.hint:
            out += f"\n  hint: {self.hint}"
        for root_id, check in self.file_type_checks.items():
            out += f"\n  file_type[{root_id}]: {check}"
        return out

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert this ``ReconciliationVerdict`` into a dictionary
        representation suitable for encoding as JSON.

        :returns: A dictionary mapping this instance's keys to values.
        :rtype: ``Dict[str, Any]``
        """
        out = {
            "path": self.path,
            "verdict": self.verdict.value,
            "per_root_signature": dict(self.per_root_signature),
            "per_root_kind": {
                root_id: kind.value for root_id, kind in self.per_root_kind.items()
            },
            "suspect_roots": list(self.suspect_roots),
            "minority_roots": list(self.minority_roots),
            "missing_roots": list(self.missing_roots),
            "unreadable_roots": list(self.unreadable_roots),
            "inconclusive": self.inconclusive,
        }
        if self.majority_signature:
            out["majority_signature"] = self.majority_signature
        if self.hint:
            out["hint"] = self.hint
            out["hint_root"] = self.hint_root
        if self.file_type_checks:
            out["file_type_checks"] = {
                root_id: check.to_dict()
                for root_id, check in self.file_type_checks.items()
            }
        return out


class ReconcileResults:
    """Container for the verdicts of one reconciliation run."""

    def __init__(self, root_ids: List[str], verdicts: List[ReconciliationVerdict]):
        self.root_ids = root_ids
        self._verdicts = verdicts
        self._index = {verdict.path: verdict for verdict in verdicts}

    def __repr__(self) -> str:
        return f"ReconcileResults({self.root_ids!r}, [...])"

    def __iter__(self):
        return iter(self._verdicts)

    def __len__(self):
        return len(self._verdicts)

    def __getitem__(self, index: int) -> ReconciliationVerdict:
        return self._verdicts[index]

    def get(self, path: str) -> Optional[ReconciliationVerdict]:
        """
        Return the verdict for ``path`` or ``None``.

        :rtype: ``Optional[ReconciliationVerdict]``
        """
        return self._index.get(path)

    def _of_verdict(self, verdict: Verdict) -> List[ReconciliationVerdict]:
        return [v for v in self._verdicts if v.verdict == verdict]

    @property
    def consistent(self) -> List[ReconciliationVerdict]:
        """Paths on which all roots agree."""
        return self._of_verdict(Verdict.CONSISTENT)

    @property
    def explained(self) -> List[ReconciliationVerdict]:
        """Divergent paths accounted for by local history."""
        return self._of_verdict(Verdict.DIVERGENT_EXPLAINED)

    @property
    def suspect(self) -> List[ReconciliationVerdict]:
        """Divergent paths that local history cannot explain."""
        return self._of_verdict(Verdict.DIVERGENT_SUSPECT)

    @property
    def missing(self) -> List[ReconciliationVerdict]:
        """Paths that are absent from at least one root."""
        return [v for v in self._verdicts if v.missing_roots]

    def summary(self) -> str:
        """
        Return a summary of this ``ReconcileResults`` instance.

        :rtype: ``str``
        """
        return (
            f"Reconciled {len(self)} paths across {', '.join(self.root_ids)}\n"
            f"  Paths consistent:          {len(self.consistent)}\n"
            f"  Paths divergent_explained: {len(self.explained)}\n"
            f"  Paths divergent_suspect:   {len(self.suspect)}\n"
            f"  Paths missing from a root: {len(self.missing)}"
        )

    def short(self) -> str:
        """
        Return a description of every verdict that is not Consistent or
        that names missing or unreadable roots.

        :rtype: ``str``
        """
        return "\n".join(
            str(v)
            for v in self._verdicts
            if v.verdict != Verdict.CONSISTENT or v.missing_roots or v.unreadable_roots
        )

    def to_dict(self, include_consistent: bool = False) -> Dict[str, Any]:
        """
        Convert this ``ReconcileResults`` into a dictionary representation.

        :param include_consistent: Include fully consistent verdicts.
        :type include_consistent: ``bool``
        :rtype: ``Dict[str, Any]``
        """
        return {
            "root_ids": list(self.root_ids),
            "counts": {
                Verdict.CONSISTENT.value: len(self.consistent),
                Verdict.DIVERGENT_EXPLAINED.value: len(self.explained),
                Verdict.DIVERGENT_SUSPECT.value: len(self.suspect),
                "missing": len(self.missing),
            },
            "verdicts": [
                v.to_dict()
                for v in self._verdicts
                if include_consistent
                or v.verdict != Verdict.CONSISTENT
                or v.missing_roots
                or v.unreadable_roots
            ],
        }

    def json(self, pretty: bool = False, include_consistent: bool = False) -> str:
        """
        Return JSON representation of this ``ReconcileResults``.

        :param pretty: Indent JSON to be human readable.
        :type pretty: ``bool``
        :rtype: ``str``
        """
        return json.dumps(
            self.to_dict(include_consistent=include_consistent),
            indent=4 if pretty else None,
        )


def _index_events(events: Iterable[ChangeEvent]) -> Dict[str, ChangeEvent]:
    return {event.path: event for event in events}


class Reconciler:
    """
    Compare the current signatures of each path across two or more roots.
    """

    def __init__(self, options: Optional[ScanOptions] = None):
        self.options: ScanOptions = options or ScanOptions()
        self.file_type_detector: FileTypeDetector = FileTypeDetector()

    def _set_hint(self, verdict: ReconciliationVerdict, events: Dict[str, ChangeEvent]):
        """
        Name the minority root whose record was most recently updated on
        purpose. This is reported only and never applied to any store.
        """
        updated = {
            root_id: events[root_id].record.updated
            for root_id in verdict.minority_roots
            if events[root_id].record is not None
        }
        if len(updated) < 2:
            return
        latest = max(updated.values())
        latest_roots = [r for r, value in updated.items() if value == latest]
        if len(latest_roots) != 1:
            return
        verdict.hint_root = latest_roots[0]
        verdict.hint = (
            f"{latest_roots[0]} was updated most recently and is likelier correct"
        )

    # pylint: disable=too-many-locals
    def _reconcile_path(
        self,
        path: str,
        root_ids: List[str],
        indexes: Dict[str, Dict[str, ChangeEvent]],
    ) -> ReconciliationVerdict:
        events: Dict[str, ChangeEvent] = {}
        signatures: Dict[str, str] = {}
        missing = []
        unreadable = []
        for root_id in root_ids:
            event = indexes[root_id].get(path)
            if event is None or event.kind == ChangeKind.REMOVED:
                missing.append(root_id)
            elif event.kind == ChangeKind.UNREADABLE or event.current is None:
                unreadable.append(root_id)
            else:
                events[root_id] = event
                signatures[root_id] = event.current.signature

        kinds = {root_id: event.kind for root_id, event in events.items()}
        groups: Dict[str, List[str]] = {}
        for root_id, signature in signatures.items():
            groups.setdefault(signature, []).append(root_id)

        if len(groups) <= 1:
            return ReconciliationVerdict(
                path,
                signatures,
                Verdict.CONSISTENT,
                per_root_kind=kinds,
                majority_signature=next(iter(groups), None),
                missing_roots=missing,
                unreadable_roots=unreadable,
            )

        sizes = sorted((len(members) for members in groups.values()), reverse=True)
        if sizes[0] > sizes[1]:
            majority_signature = max(groups, key=lambda sig: len(groups[sig]))
            minority = [r for r in signatures if signatures[r] != majority_signature]
            inconclusive = False
        else:
            majority_signature = None
            minority = list(signatures)
            inconclusive = True

        if any(kinds[root_id] not in EXPLAINING_KINDS for root_id in minority):
            result = Verdict.DIVERGENT_SUSPECT
            suspect_roots = list(minority)
        else:
            result = Verdict.DIVERGENT_EXPLAINED
            suspect_roots = []

        verdict = ReconciliationVerdict(
            path,
            signatures,
            result,
            suspect_roots=suspect_roots,
            per_root_kind=kinds,
            majority_signature=majority_signature,
            minority_roots=minority,
            missing_roots=missing,
            unreadable_roots=unreadable,
            inconclusive=inconclusive,
        )
        if inconclusive:
            self._set_hint(verdict, events)

        if result == Verdict.DIVERGENT_SUSPECT:
            _log_warn(
                "Divergent content for %s: suspect root(s) %s%s",
                path,
                ", ".join(suspect_roots),
                " (inconclusive)" if inconclusive else "",
            )
            if self.options.use_magic_file_type:
                for root_id in suspect_roots:
                    verdict.file_type_checks[root_id] = self.file_type_detector.check(
                        events[root_id].current.full_path
                    )
        else:
            _log_debug_reconcile("Divergence explained for %s: %s", path, kinds)
        return verdict

    def reconcile(
        self,
        root_ids: Iterable[str],
        per_root_results: Mapping[str, Iterable[ChangeEvent]],
    ) -> ReconcileResults:
        """
        Reconcile the classification results of two or more roots.

        Every path with a current signature in at least one root receives a
        verdict. Roots lacking the path are listed in ``missing_roots`` and
        roots that could not read it in ``unreadable_roots``; neither takes
        part in the signature vote.

        :param root_ids: The names of the roots to reconcile.
        :type root_ids: ``Iterable[str]``
        :param per_root_results: The classification events of each root,
                                 keyed by root name.
        :type per_root_results: ``Mapping[str, Iterable[ChangeEvent]]``
        :returns: The verdicts for this run in path order.
        :rtype: ``ReconcileResults``
        :raises ``DriftcheckArgumentError``: If fewer than two roots are
                                             given or a root has no results.
        """
        root_ids = sorted(set(root_ids))
        if len(root_ids) < 2:
            raise DriftcheckArgumentError("Reconciliation requires at least two roots")
        for root_id in root_ids:
            if root_id not in per_root_results:
                raise DriftcheckArgumentError(
                    f"No classification results for root {root_id}"
                )

        indexes = {
            root_id: _index_events(per_root_results[root_id]) for root_id in root_ids
        }
        paths = sorted(
            {
                path
                for index in indexes.values()
                for path, event in index.items()
                if event.current is not None
            }
        )
        _log_info("Reconciling %d paths across %s", len(paths), ", ".join(root_ids))

        verdicts = []
        if not paths:
            return ReconcileResults(root_ids, verdicts)

        progress = ProgressFactory.get_progress(
            "Reconciling roots", quiet=self.options.quiet
        )
        progress.start(len(paths))
        try:
            for i, path in enumerate(paths):
                progress.progress(i, f"Reconciling '{path}'")
                verdicts.append(self._reconcile_path(path, root_ids, indexes))
        except KeyboardInterrupt:
            progress.cancel("Quit!")
            raise
        results = ReconcileResults(root_ids, verdicts)
        progress.end(
            f"Reconciled {len(paths)} paths ({len(results.suspect)} divergent suspect)"
        )
        return results


__all__ = [
    "EXPLAINING_KINDS",
    "ReconcileResults",
    "ReconciliationVerdict",
    "Reconciler",
    "Verdict",
]
