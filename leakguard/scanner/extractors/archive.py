"""Archive extractor for ZIP, TAR, GZ, and 7Z files.

Every member is extracted in memory and handed back to the format
dispatcher, so a PDF inside a ZIP is read as a PDF and a ZIP inside a TAR
is expanded in turn. Security limits:
- Maximum nesting depth (ArchiveDepthExceededError beyond it)
- Decompression bomb protection (MAX_DECOMPRESSED_SIZE, and MAX_EXTRACTION_RATIO
  for members larger than RATIO_CHECK_MIN_SIZE)
- Maximum member count per archive
- Unsafe member paths are skipped

Supported formats:
- ZIP (.zip)
- TAR (.tar, .tar.gz, .tgz, .tar.bz2, .tbz2, .tar.xz, .txz)
- GZIP (.gz) - single file compression
- 7Z (.7z)

Example:
    >>> from leakguard.scanner.extractors.archive import ArchiveExtractor
    >>> extractor = ArchiveExtractor(max_nesting_depth=2)
    >>> text = extractor.extract(archive_bytes, "documents.zip")
    >>> print(text)  # One "=== member ===" block per scannable member
"""

import gzip
import io
import logging
import lzma
import tarfile
import zipfile
import zlib
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Callable, Generator, List, Optional

import py7zr

from ...core.exceptions import (
    ArchiveDepthExceededError,
    CorruptFileError,
    EncodingError,
    UnsupportedFormatError,
)
from ..constants import (
    MAX_ARCHIVE_NESTING_DEPTH,
    MAX_DECOMPRESSED_SIZE,
    MAX_EXTRACTION_RATIO,
    RATIO_CHECK_MIN_SIZE,
    MAX_FILES_PER_ARCHIVE,
    MAX_SINGLE_FILE_SIZE,
)
from .base import GZIP_MAGIC, SEVEN_ZIP_MAGIC, TAR_MAGIC, TAR_MAGIC_OFFSET, ZIP_MAGICS, get_extension

logger = logging.getLogger(__name__)

ENTRY_SEPARATOR = "\n\n"

_TAR_EXTENSIONS = frozenset({".tar", ".tar.gz", ".tgz", ".tar.bz2", ".tbz2", ".tar.xz", ".txz"})

# Errors raised by the stdlib decompressors on damaged member data
_MEMBER_READ_ERRORS = (zipfile.BadZipFile, zlib.error, lzma.LZMAError, EOFError, OSError)

_RESERVED_NAMES = (
    {"CON", "PRN", "AUX", "NUL"}
    | {f"COM{i}" for i in range(10)}
    | {f"LPT{i}" for i in range(10)}
)


@dataclass
class ExtractedFile:
    """A member extracted from an archive."""
    path: str  # Path within the archive
    content: bytes


def entry_header(path: str) -> str:
    """Header line placed before each member's text."""
    return f"=== {path} ==="


def _is_safe_path(path: str) -> bool:
    """
    Check if an archive member path is safe.

    Rejects absolute paths, parent directory references, null bytes,
    and Windows reserved names.
    """
    if not path or "\x00" in path:
        return False

    if path.startswith("/") or path.startswith("\\"):
        return False

    pure_path = PurePosixPath(path)
    if pure_path.is_absolute() or ".." in pure_path.parts:
        return False

    for part in pure_path.parts:
        if part.upper().split(".")[0] in _RESERVED_NAMES:
            return False

    return True


class _SizeBudget:
    """Tracks decompressed bytes against the per-archive limit."""

    def __init__(self, archive_name: str, limit: int):
        self.archive_name = archive_name
        self.limit = limit
        self.used = 0

    def admit(self, member: str, size: int) -> bool:
        """Return False when the member is too large on its own."""
        if size > MAX_SINGLE_FILE_SIZE:
            logger.warning(f"Skipping large member {member} ({size} bytes) in {self.archive_name}")
            return False
        if self.used + size > self.limit:
            raise CorruptFileError(
                f"Archive {self.archive_name} expands beyond {self.limit} bytes",
                path=self.archive_name,
                reason="decompressed_size",
            )
        self.used += size
        return True


def _check_member_count(archive_name: str, count: int, max_files: int) -> None:
    if count > max_files:
        raise CorruptFileError(
            f"Archive {archive_name} contains {count} members, exceeds limit of {max_files}",
            path=archive_name,
            reason="member_count",
        )


def _iter_zip(content: bytes, name: str, max_total_size: int, max_files: int) -> Generator[ExtractedFile, None, None]:
    try:
        with zipfile.ZipFile(io.BytesIO(content), "r") as zf:
            infos = zf.infolist()
            _check_member_count(name, len(infos), max_files)
            budget = _SizeBudget(name, max_total_size)

            for info in infos:
                if info.is_dir():
                    continue

                if not _is_safe_path(info.filename):
                    logger.warning(f"Skipping unsafe path in archive {name}: {info.filename!r}")
                    continue

                if info.compress_size > 0 and info.file_size > RATIO_CHECK_MIN_SIZE:
                    ratio = info.file_size / info.compress_size
                    if ratio > MAX_EXTRACTION_RATIO:
                        logger.warning(
                            f"Suspicious compression ratio {ratio:.1f} for {info.filename} in {name}, skipping"
                        )
                        continue

                if not budget.admit(info.filename, info.file_size):
                    continue

                yield ExtractedFile(path=info.filename, content=zf.read(info))

    except _MEMBER_READ_ERRORS as e:
        raise CorruptFileError(f"Invalid ZIP archive {name}: {e}", path=name) from e


def _iter_tar(content: bytes, name: str, max_total_size: int, max_files: int) -> Generator[ExtractedFile, None, None]:
    try:
        # tarfile auto-detects gzip/bz2/xz compression
        with tarfile.open(fileobj=io.BytesIO(content), mode="r:*") as tf:
            members = tf.getmembers()
            _check_member_count(name, len(members), max_files)
            budget = _SizeBudget(name, max_total_size)

            for member in members:
                # Skip directories, links, devices
                if not member.isfile():
                    continue

                if not _is_safe_path(member.name):
                    logger.warning(f"Skipping unsafe path in archive {name}: {member.name!r}")
                    continue

                if not budget.admit(member.name, member.size):
                    continue

                handle = tf.extractfile(member)
                if handle is None:
                    continue
                with handle:
                    yield ExtractedFile(path=member.name, content=handle.read())

    except (tarfile.TarError,) + _MEMBER_READ_ERRORS as e:
        raise CorruptFileError(f"Invalid TAR archive {name}: {e}", path=name) from e


def _iter_gzip(content: bytes, name: str, max_total_size: int, max_files: int) -> Generator[ExtractedFile, None, None]:
    decompressed = io.BytesIO()
    try:
        with gzip.GzipFile(fileobj=io.BytesIO(content), mode="rb") as gz:
            while True:
                chunk = gz.read(65536)
                if not chunk:
                    break
                decompressed.write(chunk)
                if decompressed.tell() > min(max_total_size, MAX_SINGLE_FILE_SIZE):
                    raise CorruptFileError(
                        f"GZIP stream {name} expands beyond size limit",
                        path=name,
                        reason="decompressed_size",
                    )
    except _MEMBER_READ_ERRORS as e:
        raise CorruptFileError(f"Invalid GZIP file {name}: {e}", path=name) from e

    # Derive the member name by dropping the .gz suffix
    output_name = Path(name).name
    if output_name.lower().endswith(".gz"):
        output_name = output_name[:-3]
    yield ExtractedFile(path=output_name or "decompressed", content=decompressed.getvalue())


def _iter_7z(content: bytes, name: str, max_total_size: int, max_files: int) -> Generator[ExtractedFile, None, None]:
    try:
        with py7zr.SevenZipFile(io.BytesIO(content), mode="r") as sz:
            entries = [entry for entry in sz.list() if not entry.is_directory]
            _check_member_count(name, len(entries), max_files)

            declared = sum(entry.uncompressed or 0 for entry in entries)
            if declared > max_total_size:
                raise CorruptFileError(
                    f"Archive {name} expands beyond {max_total_size} bytes",
                    path=name,
                    reason="decompressed_size",
                )

            extracted = sz.readall() or {}
    except (py7zr.exceptions.ArchiveError, lzma.LZMAError, EOFError, OSError) as e:
        raise CorruptFileError(f"Invalid 7Z archive {name}: {e}", path=name) from e

    budget = _SizeBudget(name, max_total_size)
    for member_name, bio in extracted.items():
        if not _is_safe_path(member_name):
            logger.warning(f"Skipping unsafe path in archive {name}: {member_name!r}")
            continue
        data = bio.read()
        if not budget.admit(member_name, len(data)):
            continue
        yield ExtractedFile(path=member_name, content=data)


MemberIterator = Callable[[bytes, str, int, int], Generator[ExtractedFile, None, None]]


def select_member_iterator(content: bytes, extension: str) -> Optional[MemberIterator]:
    """Pick the reader for an archive by magic bytes, then by extension."""
    if content[:4] in ZIP_MAGICS or extension == ".zip":
        return _iter_zip

    if content[TAR_MAGIC_OFFSET:TAR_MAGIC_OFFSET + len(TAR_MAGIC)] == TAR_MAGIC or extension in _TAR_EXTENSIONS:
        return _iter_tar

    if content[:6] == SEVEN_ZIP_MAGIC or extension == ".7z":
        return _iter_7z

    if content[:2] == GZIP_MAGIC or extension == ".gz":
        return _iter_gzip

    return None


class ArchiveExtractor:
    """
    Unified archive extractor supporting ZIP, TAR, GZ, and 7Z formats.

    Recursively extracts nested archives up to max_nesting_depth and
    combines the text of all members, each under a path header.
    """

    def __init__(
        self,
        max_nesting_depth: int = MAX_ARCHIVE_NESTING_DEPTH,
        max_files: int = MAX_FILES_PER_ARCHIVE,
        max_total_size: int = MAX_DECOMPRESSED_SIZE,
    ):
        if max_nesting_depth < 0:
            raise ValueError("max_nesting_depth must be non-negative")
        self.max_nesting_depth = max_nesting_depth
        self.max_files = max_files
        self.max_total_size = max_total_size
        self._content_extractor = None  # Lazy-loaded to avoid circular imports

    @property
    def content_extractor(self):
        """Lazy-load the format dispatcher to avoid circular imports."""
        if self._content_extractor is None:
            from .registry import extract_content
            self._content_extractor = extract_content
        return self._content_extractor

    def extract(self, content: bytes, filename: str, depth: int = 0) -> str:
        """
        Extract text from all members of the archive.

        Args:
            content: Archive bytes
            filename: Display name of the archive (file path or member path)
            depth: Nesting level of this archive (0 = file on disk)

        Raises:
            ArchiveDepthExceededError: depth is beyond max_nesting_depth
            CorruptFileError: The archive or one of its members is damaged
        """
        if depth > self.max_nesting_depth:
            raise ArchiveDepthExceededError(
                f"Archive {filename} is nested {depth} levels deep, "
                f"maximum is {self.max_nesting_depth}",
                path=filename,
                max_depth=self.max_nesting_depth,
            )

        iterate = select_member_iterator(content, get_extension(filename))
        if iterate is None:
            raise UnsupportedFormatError(f"Unsupported archive format: {filename}", path=filename)

        blocks: List[str] = []
        for member in iterate(content, filename, self.max_total_size, self.max_files):
            if not member.content:
                continue

            member_name = f"{filename}/{member.path}"
            try:
                _, text = self.content_extractor(
                    member.content,
                    member_name,
                    depth=depth + 1,
                    max_archive_depth=self.max_nesting_depth,
                )
            except (UnsupportedFormatError, EncodingError) as e:
                logger.info(f"Skipping archive member {member_name}: {e.kind}")
                continue

            blocks.append(f"{entry_header(member_name)}\n{text}")

        return ENTRY_SEPARATOR.join(blocks)
