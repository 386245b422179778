# Copyright Red Hat
#
# driftcheck/scan/hasher.py - Mirror drift checker content hasher
#
# This file is part of the driftcheck project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Streaming content hashing.
"""
from hashlib import blake2b, md5, sha1, sha256, sha512
from typing import BinaryIO
import logging

from driftcheck import DriftcheckArgumentError, IOAccessError

from .options import DEFAULT_CHUNK_SIZE

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error

_HASH_TYPES = {
    "md5": md5,
    "sha1": sha1,
    "sha256": sha256,
    "sha512": sha512,
    "blake2b": blake2b,
}


class ContentHasher:
    """
    Compute a content signature for file data without loading whole files
    into memory.
    """

    def __init__(self, algorithm: str = "sha256", chunk_size: int = DEFAULT_CHUNK_SIZE):
        """
        Initialise a new ``ContentHasher`` object.

        :param algorithm: The name of the hash algorithm to use.
        :type algorithm: ``str``
        :param chunk_size: The read size used to stream file content.
        :type chunk_size: ``int``
        :raises ``DriftcheckArgumentError``: If ``algorithm`` is unknown or
                                             ``chunk_size`` is not positive.
        """
        if algorithm not in _HASH_TYPES:
            raise DriftcheckArgumentError(f"Unknown hash algorithm: {algorithm}")
        if chunk_size <= 0:
            raise DriftcheckArgumentError(f"Invalid chunk size: {chunk_size}")
        self.algorithm: str = algorithm
        self.chunk_size: int = chunk_size
        self.hasher = _HASH_TYPES[algorithm]

    @property
    def digest_size(self) -> int:
        """
        The length of the hexadecimal signatures produced by this hasher.
        """
        return self.hasher(usedforsecurity=False).digest_size * 2

    def hash_stream(self, stream: BinaryIO) -> str:
        """
        Hash the remaining content of the binary stream ``stream``.

        :param stream: An open binary file object.
        :type stream: ``BinaryIO``
        :returns: The lowercase hexadecimal digest of the stream content.
        :rtype: ``str``
        """
        hasher = self.hasher(usedforsecurity=False)
        for chunk in iter(lambda: stream.read(self.chunk_size), b""):
            hasher.update(chunk)
        return hasher.hexdigest()

    def hash_file(self, file_path: str) -> str:
        """
        Calculate the content signature of the file at ``file_path``.

        :param file_path: The path to the file to hash.
        :type file_path: ``str``
        :returns: The lowercase hexadecimal digest of the file content.
        :rtype: ``str``
        :raises ``IOAccessError``: If the file cannot be opened or read.
        """
        try:
            with open(file_path, "rb") as f:
                return self.hash_stream(f)
        except OSError as err:
            raise IOAccessError(file_path, err) from err


__all__ = [
    "ContentHasher",
]
