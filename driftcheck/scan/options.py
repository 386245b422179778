# Copyright Red Hat
#
# driftcheck/scan/options.py - Mirror drift checker scan options
#
# This file is part of the driftcheck project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Scan and classification options.
"""
from dataclasses import dataclass, field, fields, replace
from typing import Tuple, Union
from argparse import Namespace
import logging

from driftcheck import DriftcheckArgumentError

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error

#: Supported content hash algorithms.
HASH_ALGORITHMS = ("md5", "sha1", "sha256", "sha512", "blake2b")

#: Default content hash algorithm.
DEFAULT_HASH_ALGORITHM = "sha256"

#: Default streaming read size.
DEFAULT_CHUNK_SIZE = 2**20

#: Default number of records between durable store commits.
DEFAULT_COMMIT_INTERVAL = 1000


@dataclass(frozen=True)
class ScanOptions:
    """
    Scan, classification and reconciliation options.
    """

    #: Content hash algorithm
    hash_algorithm: str = DEFAULT_HASH_ALGORITHM
    #: Read size used when streaming file content into the hash
    chunk_size: int = DEFAULT_CHUNK_SIZE
    #: Number of hashing workers used within a single root
    workers: int = 1
    #: Follow symlinks when walking file system trees
    follow_symlinks: bool = False
    #: File patterns to exclude (glob notation, relative to the root)
    exclude_patterns: Tuple[str, ...] = field(default_factory=tuple)
    #: Do not detect removed paths
    skip_delete_check: bool = False
    #: Number of records between store commits (0 for one transaction)
    commit_interval: int = DEFAULT_COMMIT_INTERVAL
    #: Wait for store writes to reach stable storage
    sync: bool = True
    #: Generate file type information using magic for suspect paths
    use_magic_file_type: bool = False
    #: Do not output progress or status updates
    quiet: bool = False

    def __post_init__(self):
        if self.hash_algorithm not in HASH_ALGORITHMS:
            raise DriftcheckArgumentError(
                f"Unknown hash algorithm: {self.hash_algorithm} "
                f"(expected one of {', '.join(HASH_ALGORITHMS)})"
            )
        if self.chunk_size <= 0:
            raise DriftcheckArgumentError(
                f"Invalid chunk size: {self.chunk_size} (must be positive)"
            )
        if self.workers < 1:
            raise DriftcheckArgumentError(
                f"Invalid worker count: {self.workers} (must be at least 1)"
            )
        if self.commit_interval < 0:
            raise DriftcheckArgumentError(
                f"Invalid commit interval: {self.commit_interval}"
            )

    def __str__(self):
        """
        Return a human readable string representation of this
        ``ScanOptions`` instance.

        :returns: A human readable string.
        :rtype: ``str``
        """
        items = [
            (key, val) if not isinstance(val, tuple) else (key, " ".join(val))
            for key, val in self.__dict__.items()
        ]
        return "\n".join(f"{key}={val}" for key, val in items)

    def to_dict(self):
        """
        Return a dictionary representation of this ``ScanOptions`` object.

        :returns: A dictionary mapping option names to values.
        :rtype: ``dict``
        """
        return {
            f.name: (
                list(getattr(self, f.name))
                if isinstance(getattr(self, f.name), tuple)
                else getattr(self, f.name)
            )
            for f in fields(self)
        }

    def merge(self, **overrides) -> "ScanOptions":
        """
        Return a copy of this ``ScanOptions`` with the non-``None`` values
        in ``overrides`` applied.

        :param overrides: Option values keyed by field name.
        :returns: A new ``ScanOptions`` instance.
        :rtype: ``ScanOptions``
        """
        field_names = {f.name for f in fields(self)}
        changes = {}
        for name, value in overrides.items():
            if name not in field_names:
                raise DriftcheckArgumentError(f"Unknown scan option: {name}")
            if value is None:
                continue
            changes[name] = tuple(value) if isinstance(value, list) else value
        return replace(self, **changes)

    @classmethod
    def from_cmd_args(cls, cmd_args: Namespace) -> "ScanOptions":
        """
        Initialise ScanOptions from command line arguments.

        Construct a new ``ScanOptions`` object from the command line
        arguments in ``cmd_args``. Arguments that are absent or ``None``
        keep their default values.

        :param cmd_args: The command line selection arguments.
        :type cmd_args: ``Namespace``
        :returns: A new ``ScanOptions`` instance
        :rtype: ``ScanOptions``
        """

        def get_value(name: str) -> Union[bool, int, str, Tuple[str, ...]]:
            """
            Get a value from ``cmd_args``, converting lists to tuples.

            :param name: The name of the argument.
            :type name: ``str``
            :returns: The argument converted to a tuple if appropriate.
            :rtype: ``Union[bool, int, str, Tuple[str, ...]]``
            """
            attr = getattr(cmd_args, name)
            if isinstance(attr, list):
                return tuple(attr)
            return attr

        field_names = {f.name for f in fields(cls)}
        kwargs = {
            name: get_value(name)
            for name in field_names
            if getattr(cmd_args, name, None) is not None
        }
        options = cls(**kwargs)
        _log_debug("Initialised ScanOptions from arguments: %s", repr(options))
        return options


__all__ = [
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_COMMIT_INTERVAL",
    "DEFAULT_HASH_ALGORITHM",
    "HASH_ALGORITHMS",
    "ScanOptions",
]
