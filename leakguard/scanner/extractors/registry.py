"""Single extraction entry point.

The set of formats is closed: every FormatKind maps to exactly one
extractor function and there is no runtime registration.

Usage:
    >>> from leakguard.scanner.extractors import extract
    >>> content = extract("/data/report.pdf")
    >>> content.format, len(content.text)
    (<FormatKind.PDF: 'pdf'>, 5321)
"""

import logging
import os
from typing import Callable, Dict, Tuple, Union

from ...core.exceptions import ExtractIOError, UnsupportedFormatError
from ...core.types import FormatKind, ScannedContent
from ..constants import FILE_HEAD_SIZE, MAX_ARCHIVE_NESTING_DEPTH, MAX_FILE_SIZE_BYTES
from .archive import ArchiveExtractor
from .base import detect_format
from .pdf import extract_pdf_text
from .spreadsheet import extract_spreadsheet_text
from .text import extract_plain_text

logger = logging.getLogger(__name__)

# (content, name, depth, max_archive_depth) -> text
_Extractor = Callable[[bytes, str, int, int], str]


def _plain_text(content: bytes, name: str, depth: int, max_archive_depth: int) -> str:
    return extract_plain_text(content, name)


def _pdf(content: bytes, name: str, depth: int, max_archive_depth: int) -> str:
    return extract_pdf_text(content, name)


def _spreadsheet(content: bytes, name: str, depth: int, max_archive_depth: int) -> str:
    return extract_spreadsheet_text(content, name)


def _archive(content: bytes, name: str, depth: int, max_archive_depth: int) -> str:
    return ArchiveExtractor(max_nesting_depth=max_archive_depth).extract(content, name, depth)


_EXTRACTORS: Dict[FormatKind, _Extractor] = {
    FormatKind.PLAIN_TEXT: _plain_text,
    FormatKind.PDF: _pdf,
    FormatKind.SPREADSHEET: _spreadsheet,
    FormatKind.ARCHIVE: _archive,
}


def extract_content(
    content: bytes,
    name: str,
    depth: int = 0,
    max_archive_depth: int = MAX_ARCHIVE_NESTING_DEPTH,
) -> Tuple[FormatKind, str]:
    """
    Extract text from in-memory content.

    Args:
        content: Raw bytes
        name: File name or archive member path (extension drives inference)
        depth: Archive nesting level of this content
        max_archive_depth: Deepest archive level that may be expanded

    Returns:
        Tuple of (inferred format, extracted text)

    Raises:
        ExtractError: Any extraction failure (see core.exceptions)
    """
    kind = detect_format(name, content[:FILE_HEAD_SIZE])
    return kind, _EXTRACTORS[kind](content, name, depth, max_archive_depth)


def extract(
    path: Union[str, "os.PathLike[str]"],
    max_archive_depth: int = MAX_ARCHIVE_NESTING_DEPTH,
    max_file_size: int = MAX_FILE_SIZE_BYTES,
) -> ScannedContent:
    """
    Extract scannable text from a file on disk.

    The file is opened once; the handle is released on every exit path.

    Raises:
        UnsupportedFormatError: Unknown format, directory, or oversized file
        ExtractIOError: The file cannot be opened or read
        ExtractError: Any other extraction failure
    """
    path_str = os.fspath(path)

    if os.path.isdir(path_str):
        raise UnsupportedFormatError(f"Not a regular file: {path_str}", path=path_str)

    try:
        with open(path_str, "rb") as f:
            head = f.read(FILE_HEAD_SIZE)
            # Reject unknown formats before reading the whole file
            detect_format(path_str, head)

            size = os.fstat(f.fileno()).st_size
            if size > max_file_size:
                raise UnsupportedFormatError(
                    f"File exceeds size limit ({size} > {max_file_size} bytes): {path_str}",
                    path=path_str,
                    reason="too_large",
                )
            content = head + f.read()
    except OSError as e:
        raise ExtractIOError(f"Cannot read {path_str}: {e}", path=path_str, errno=e.errno) from e

    kind, text = extract_content(content, path_str, depth=0, max_archive_depth=max_archive_depth)
    logger.debug(f"Extracted {len(text)} chars from {path_str} ({kind.value})")
    return ScannedContent(path=path_str, text=text, format=kind)
