# Copyright Red Hat
#
# driftcheck/scan/__init__.py - Mirror drift checker scan package
#
# This file is part of the driftcheck project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Scan package.

Provides content hashing, tree scanning, the per-root snapshot store,
classification of scanned entries against the stored baseline and
cross-root reconciliation. The main entry points are ``Scanner``,
``DiffClassifier``, ``Reconciler`` and ``ScanOptions``.
"""
from .classifier import (
    ChangeEvent,
    ChangeKind,
    ClassifyResults,
    DiffClassifier,
    accept_suspect,
)
from .hasher import ContentHasher
from .options import ScanOptions
from .reconcile import ReconcileResults, ReconciliationVerdict, Reconciler, Verdict
from .store import FileRecord, SnapshotStore, SuspectRecord
from .treewalk import ScanEntry, ScanFailure, Scanner, split_path

__all__ = [
    "ChangeEvent",
    "ChangeKind",
    "ClassifyResults",
    "ContentHasher",
    "DiffClassifier",
    "FileRecord",
    "ReconcileResults",
    "ReconciliationVerdict",
    "Reconciler",
    "ScanEntry",
    "ScanFailure",
    "ScanOptions",
    "Scanner",
    "SnapshotStore",
    "SuspectRecord",
    "Verdict",
    "accept_suspect",
    "split_path",
]
