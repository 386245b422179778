# Copyright Red Hat
#
# driftcheck/scan/filetypes.py - Mirror drift checker file types
#
# This file is part of the driftcheck project.
#
# SPDX-License-Identifier: Apache-2.0
"""
File type information support used to annotate suspect content.

A file whose extension promises one kind of content while libmagic finds
another (for e.g. a ``.jpg`` that now reads as ``application/octet-stream``)
is a strong hint that its content has been damaged.
"""
from typing import ClassVar, Dict, Optional, Tuple
from pathlib import Path
from enum import Enum
import logging
import magic

from driftcheck import DRIFTCHECK_SUBSYSTEM_SCAN

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_scan(msg, *args, **kwargs):
    """A wrapper for scan subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": DRIFTCHECK_SUBSYSTEM_SCAN}, **kwargs)


# Format: ".ext": ("mime/type", "description starting with lowercase")
TEXT_EXTENSION_MAP = {
    ".txt": ("text/plain", "plain text document"),
    ".text": ("text/plain", "plain text document"),
    ".md": ("text/markdown", "markdown documentation"),
    ".rst": ("text/x-rst", "reStructuredText document"),
    ".csv": ("text/csv", "comma separated values"),
    ".tsv": ("text/tab-separated-values", "tab separated values"),
    ".json": ("application/json", "json data file"),
    ".xml": ("text/xml", "xml document"),
    ".yaml": ("application/yaml", "yaml data file"),
    ".yml": ("application/yaml", "yaml data file"),
    ".toml": ("application/toml", "toml configuration file"),
    ".ini": ("text/x-ini", "ini configuration file"),
    ".conf": ("text/plain", "configuration file"),
    ".log": ("text/plain", "log file"),
    ".html": ("text/html", "html document"),
    ".htm": ("text/html", "html document"),
    ".css": ("text/css", "css stylesheet"),
    ".js": ("text/javascript", "javascript source"),
    ".py": ("text/x-python", "python script"),
    ".sh": ("text/x-shellscript", "shell script"),
    ".c": ("text/x-c", "c source"),
    ".h": ("text/x-c", "c header"),
    ".svg": ("image/svg+xml", "svg image"),
}

# Format: ".ext": ("mime/type", "description starting with lowercase")
BINARY_EXTENSION_MAP = {
    # Images
    ".jpg": ("image/jpeg", "jpeg image"),
    ".jpeg": ("image/jpeg", "jpeg image"),
    ".png": ("image/png", "png image"),
    ".gif": ("image/gif", "gif image"),
    ".bmp": ("image/bmp", "bitmap image"),
    ".tif": ("image/tiff", "tiff image"),
    ".tiff": ("image/tiff", "tiff image"),
    ".webp": ("image/webp", "webp image"),
    ".heic": ("image/heic", "heic image"),
    # Audio
    ".mp3": ("audio/mpeg", "mp3 audio"),
    ".flac": ("audio/flac", "flac audio"),
    ".ogg": ("audio/ogg", "ogg audio"),
    ".wav": ("audio/x-wav", "wave audio"),
    ".m4a": ("audio/mp4", "mpeg-4 audio"),
    # Video
    ".mp4": ("video/mp4", "mpeg-4 video"),
    ".mkv": ("video/x-matroska", "matroska video"),
    ".avi": ("video/x-msvideo", "avi video"),
    ".mov": ("video/quicktime", "quicktime video"),
    ".webm": ("video/webm", "webm video"),
    # Documents
    ".pdf": ("application/pdf", "pdf document"),
    ".doc": ("application/msword", "word document"),
    ".docx": (
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "word document",
    ),
    ".odt": ("application/vnd.oasis.opendocument.text", "opendocument text"),
    # Archives & Compression
    ".zip": ("application/zip", "zip archive"),
    ".tar": ("application/x-tar", "tar archive"),
    ".gz": ("application/gzip", "gzip compressed file"),
    ".bz2": ("application/x-bzip2", "bzip2 compressed file"),
    ".xz": ("application/x-xz", "xz compressed file"),
    ".zst": ("application/zstd", "zstandard compressed file"),
    ".7z": ("application/x-7z-compressed", "7-zip archive"),
    ".iso": ("application/x-iso9660-image", "iso 9660 image"),
    # Databases
    ".db": ("application/vnd.sqlite3", "database file"),
    ".sqlite": ("application/vnd.sqlite3", "sqlite database"),
    # Executables
    ".so": ("application/x-sharedlib", "shared library"),
    ".exe": (
        "application/vnd.microsoft.portable-executable",
        "windows executable file",
    ),
}


def _guess_file(file_path: Path) -> Optional[Tuple[str, str, str]]:
    """
    Attempt to guess a file's MIME type and description based on the file
    extension.

    :param file_path: A ``Path`` instance containing the file path to check.
    :type file_path: ``Path``
    :returns: A 3-tuple containing (mime_type, description, encoding) if the
              type could be guessed or ``None`` otherwise.
    :rtype: ``Optional[Tuple[str, str, str]]``
    """
    extension = file_path.suffix.lower()
    if not extension:
        return None
    if extension in BINARY_EXTENSION_MAP:
        return (*BINARY_EXTENSION_MAP[extension], "binary")
    if extension in TEXT_EXTENSION_MAP:
        return (*TEXT_EXTENSION_MAP[extension], "utf-8")
    return None


class FileTypeCategory(Enum):
    """
    Enum for file type categories.
    """

    TEXT = "text"
    BINARY = "binary"
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    ARCHIVE = "archive"
    EXECUTABLE = "executable"
    CONFIG = "config"
    LOG = "log"
    DATABASE = "database"
    DOCUMENT = "document"
    SOURCE_CODE = "source_code"
    UNKNOWN = "unknown"


#: Categories whose content is readable text.
_TEXT_LIKE = (
    FileTypeCategory.TEXT,
    FileTypeCategory.CONFIG,
    FileTypeCategory.LOG,
    FileTypeCategory.SOURCE_CODE,
)


class FileTypeInfo:
    """
    Class representing file type information and encoding.
    """

    def __init__(
        self,
        mime_type: str,
        description: str,
        category: FileTypeCategory,
        encoding: Optional[str] = None,
    ):
        """
        Initialise a new ``FileTypeInfo`` object.

        :param mime_type: The detected MIME type.
        :type mime_type: ``str``
        :param description: Type description returned by magic.
        :type description: ``str``
        :param category: File type category.
        :type category: ``FileTypeCategory``
        :param encoding: Optional file encoding.
        :type encoding: ``Optional[str]``
        """
        self.mime_type = mime_type
        self.description = description
        self.category = category
        self.encoding = encoding
        self.is_text_like = category in _TEXT_LIKE or mime_type.startswith("text/")

    def __str__(self):
        """
        Return a string representation of this ``FileTypeInfo`` object.

        :returns: A human readable string describing this instance.
        :rtype: ``str``
        """
        return (
            f"MIME type: {self.mime_type}, "
            f"Category: {self.category.value}, "
            f"Encoding: {self.encoding if self.encoding else 'unknown'}, "
            f"Description: {self.description}"
        )

    def to_dict(self):
        """
        Return a dictionary representation of this ``FileTypeInfo``.

        :rtype: ``dict``
        """
        return {
            "mime_type": self.mime_type,
            "description": self.description,
            "category": self.category.value,
            "encoding": self.encoding,
        }


class FileTypeCheck:
    """
    The result of comparing the file type implied by a path's name with
    the type detected from its content.
    """

    def __init__(self, expected: FileTypeInfo, detected: FileTypeInfo):
        self.expected: FileTypeInfo = expected
        self.detected: FileTypeInfo = detected
        #: ``True`` if content no longer matches what the name promises
        self.mismatch: bool = _categories_disagree(expected, detected)

    def __str__(self):
        verdict = "MISMATCH" if self.mismatch else "ok"
        return (
            f"expected {self.expected.mime_type}, "
            f"detected {self.detected.mime_type} ({verdict})"
        )

    def to_dict(self):
        """
        Return a dictionary representation of this ``FileTypeCheck``.

        :rtype: ``dict``
        """
        return {
            "expected": self.expected.to_dict(),
            "detected": self.detected.to_dict(),
            "mismatch": self.mismatch,
        }


def _categories_disagree(expected: FileTypeInfo, detected: FileTypeInfo) -> bool:
    # UNKNOWN on either side gives no evidence of corruption
    if FileTypeCategory.UNKNOWN in (expected.category, detected.category):
        return False
    if expected.category == detected.category:
        return False
    return not (expected.is_text_like and detected.is_text_like)


class FileTypeDetector:
    """
    Detect file types using ``magic`` from python3-file-magic.
    """

    # fmt: off
    category_rules: ClassVar[Dict[str, FileTypeCategory]] = {
        # --- Archives & Compression ---
        "application/zip": FileTypeCategory.ARCHIVE,
        "application/x-tar": FileTypeCategory.ARCHIVE,
        "application/gzip": FileTypeCategory.ARCHIVE,
        "application/x-gzip": FileTypeCategory.ARCHIVE,
        "application/x-bzip2": FileTypeCategory.ARCHIVE,
        "application/x-xz": FileTypeCategory.ARCHIVE,
        "application/zstd": FileTypeCategory.ARCHIVE,
        "application/x-7z-compressed": FileTypeCategory.ARCHIVE,
        "application/x-iso9660-image": FileTypeCategory.ARCHIVE,
        # --- Executables & Libraries ---
        "application/x-executable": FileTypeCategory.EXECUTABLE,
        "application/x-sharedlib": FileTypeCategory.EXECUTABLE,
        "application/x-pie-executable": FileTypeCategory.EXECUTABLE,
        "application/x-dosexec": FileTypeCategory.EXECUTABLE,
        "application/vnd.microsoft.portable-executable": FileTypeCategory.EXECUTABLE,
        # --- Documents ---
        "application/pdf": FileTypeCategory.DOCUMENT,
        "application/msword": FileTypeCategory.DOCUMENT,
        "application/vnd.openxmlformats-officedocument": FileTypeCategory.DOCUMENT,
        "application/vnd.oasis.opendocument": FileTypeCategory.DOCUMENT,
        "text/markdown": FileTypeCategory.DOCUMENT,
        # --- Configuration & Data Serialization ---
        "application/json": FileTypeCategory.CONFIG,
        "application/xml": FileTypeCategory.CONFIG,
        "text/xml": FileTypeCategory.CONFIG,
        "application/yaml": FileTypeCategory.CONFIG,
        "application/toml": FileTypeCategory.CONFIG,
        "text/x-ini": FileTypeCategory.CONFIG,
        # --- Databases ---
        "application/vnd.sqlite3": FileTypeCategory.DATABASE,
        "application/x-sqlite3": FileTypeCategory.DATABASE,
        # --- Source Code ---
        "text/javascript": FileTypeCategory.SOURCE_CODE,
        "text/x-python": FileTypeCategory.SOURCE_CODE,
        "text/x-script.python": FileTypeCategory.SOURCE_CODE,
        "text/x-shellscript": FileTypeCategory.SOURCE_CODE,
        "text/x-c": FileTypeCategory.SOURCE_CODE,
        "text/html": FileTypeCategory.SOURCE_CODE,
        "text/css": FileTypeCategory.SOURCE_CODE,
        # --- Generic Prefixes (Fallbacks) ---
        "text/": FileTypeCategory.TEXT,
        "image/": FileTypeCategory.IMAGE,
        "audio/": FileTypeCategory.AUDIO,
        "video/": FileTypeCategory.VIDEO,
    }
    # fmt: on

    def detect_file_type(self, file_path: Path, use_magic=False) -> FileTypeInfo:
        """
        Detect file type information, optionally using libmagic for MIME
        type detection. Without ``use_magic`` the type is guessed from the
        file name alone.

        :param file_path: The path to the file to inspect.
        :type file_path: ``Path``.
        :param use_magic: Inspect file content with libmagic.
        :type use_magic: ``bool``
        :returns: File type information for ``file_path``.
        :rtype: ``FileTypeInfo``
        """
        file_path = Path(file_path)
        if use_magic:
            # Some builds of file-magic do not have magic.error
            if hasattr(magic, "error"):
                magic_errors = (magic.error, OSError, ValueError)
            else:
                magic_errors = (OSError, ValueError)

            try:
                fm = magic.detect_from_filename(str(file_path))
                mime_type = fm.mime_type
                encoding = fm.encoding
                description = fm.name

                category = self._categorize_file(mime_type, file_path)

                return FileTypeInfo(mime_type, description, category, encoding)

            except magic_errors as err:
                _log_warn("Error detecting file type for %s: %s", str(file_path), err)
                return FileTypeInfo(
                    "application/octet-stream", "unknown", FileTypeCategory.UNKNOWN
                )
        return self._guess_file_type(file_path)

    def check(self, file_path: Path) -> FileTypeCheck:
        """
        Compare the type implied by ``file_path``'s name with the type that
        libmagic detects from its content.

        :param file_path: The path to the file to inspect.
        :type file_path: ``Path``
        :returns: A ``FileTypeCheck`` describing both types.
        :rtype: ``FileTypeCheck``
        """
        file_path = Path(file_path)
        expected = self._guess_file_type(file_path)
        detected = self.detect_file_type(file_path, use_magic=True)
        check = FileTypeCheck(expected, detected)
        if check.mismatch:
            _log_debug_scan("File type mismatch for %s: %s", str(file_path), check)
        return check

    def _categorize_file(self, mime_type: str, file_path: Path) -> FileTypeCategory:
        """
        Categorize file based on MIME type and file name.

        :param mime_type: Detected file MIME type.
        :type mime_type: ``str``
        :param file_path: Path to the file to categorize.
        :type file_path: ``Path``
        :returns: File type categorization.
        :rtype: ``FileTypeCategory``
        """
        mime_type = mime_type.lower()
        name = file_path.name.lower()
        if mime_type.startswith("text/") and name.endswith(".log"):
            return FileTypeCategory.LOG
        if mime_type.startswith("text/") and name.endswith(".conf"):
            return FileTypeCategory.CONFIG

        for pattern, category in self.category_rules.items():
            if mime_type.startswith(pattern):
                return category

        return FileTypeCategory.BINARY

    def _guess_file_type(self, file_path: Path) -> FileTypeInfo:
        """
        Attempt to guess file type based on extension without using libmagic.

        :param file_path: The path to guess file type for.
        :type file_path: ``Path``
        :returns: A ``FileTypeInfo`` object with a best-effort guess of the
                  file type.
        :rtype: ``FileTypeInfo``
        """
        guess = _guess_file(file_path)
        if guess is None:
            return FileTypeInfo(
                "application/octet-stream",
                "unknown file type",
                FileTypeCategory.UNKNOWN,
                "binary",
            )
        mime_type, description, encoding = guess
        category = self._categorize_file(mime_type, file_path)
        return FileTypeInfo(mime_type, description, category, encoding)


__all__ = [
    "FileTypeCategory",
    "FileTypeCheck",
    "FileTypeDetector",
    "FileTypeInfo",
]
