# Copyright Red Hat
#
# tests/scan/test_hasher.py - ContentHasher tests.
#
# This file is part of the driftcheck project.
#
# SPDX-License-Identifier: Apache-2.0
import unittest
import tempfile
import errno
import os
from io import BytesIO

from driftcheck import DriftcheckArgumentError, IOAccessError
from driftcheck.scan import ContentHasher

HELLO_SHA256 = "2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824"
HELLO_MD5 = "5d41402abc4b2a76b9719d911017c592"


class TestContentHasher(unittest.TestCase):
    def test_ContentHasher_defaults(self):
        hasher = ContentHasher()
        self.assertEqual(hasher.algorithm, "sha256")
        self.assertEqual(hasher.digest_size, 64)

    def test_ContentHasher_bad_algorithm(self):
        with self.assertRaises(DriftcheckArgumentError):
            ContentHasher("crc32")

    def test_ContentHasher_bad_chunk_size(self):
        with self.assertRaises(DriftcheckArgumentError):
            ContentHasher(chunk_size=0)

    def test_hash_stream(self):
        self.assertEqual(ContentHasher().hash_stream(BytesIO(b"hello")), HELLO_SHA256)
        self.assertEqual(
            ContentHasher("md5").hash_stream(BytesIO(b"hello")), HELLO_MD5
        )

    def test_hash_stream_chunk_size_independent(self):
        data = os.urandom(10000)
        small = ContentHasher(chunk_size=7).hash_stream(BytesIO(data))
        large = ContentHasher(chunk_size=2**20).hash_stream(BytesIO(data))
        self.assertEqual(small, large)

    def test_hash_stream_empty(self):
        self.assertEqual(
            ContentHasher().hash_stream(BytesIO(b"")),
            "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855",
        )

    def test_hash_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "hello.txt")
            with open(path, "wb") as f:
                f.write(b"hello")
            self.assertEqual(ContentHasher().hash_file(path), HELLO_SHA256)

    def test_hash_file_missing(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "missing")
            with self.assertRaises(IOAccessError) as cm:
                ContentHasher().hash_file(path)
            self.assertEqual(cm.exception.path, path)
            self.assertEqual(cm.exception.errno, errno.ENOENT)
            self.assertIn("Cannot access", str(cm.exception))

    def test_digest_sizes(self):
        self.assertEqual(ContentHasher("md5").digest_size, 32)
        self.assertEqual(ContentHasher("sha1").digest_size, 40)
        self.assertEqual(ContentHasher("sha512").digest_size, 128)
        self.assertEqual(ContentHasher("blake2b").digest_size, 128)
