"""Format inference shared by all extractors.

Formats are inferred from the file extension and the leading magic bytes.
Magic bytes win over a misleading extension for PDFs and archives; the
spreadsheet check runs first because XLSX files are ZIP containers.
"""

from pathlib import Path

from ...core.exceptions import UnsupportedFormatError
from ...core.types import FormatKind
from ..constants import (
    ARCHIVE_EXTENSIONS,
    PDF_EXTENSIONS,
    SPREADSHEET_EXTENSIONS,
    TEXT_EXTENSIONS,
)

# Magic numbers
PDF_MAGIC = b"%PDF-"
ZIP_MAGICS = (b"PK\x03\x04", b"PK\x05\x06", b"PK\x07\x08")
GZIP_MAGIC = b"\x1f\x8b"
SEVEN_ZIP_MAGIC = b"7z\xbc\xaf\x27\x1c"
TAR_MAGIC = b"ustar"
TAR_MAGIC_OFFSET = 257

_COMPOUND_EXTENSIONS = (".tar.gz", ".tar.bz2", ".tar.xz")


def get_extension(filename: str) -> str:
    """Get lowercase extension, handling compound extensions like .tar.gz."""
    lower = filename.lower()

    for compound in _COMPOUND_EXTENSIONS:
        if lower.endswith(compound):
            return compound

    return Path(filename).suffix.lower()


def has_archive_magic(head: bytes) -> bool:
    """Check leading bytes for ZIP, GZIP, 7Z, or POSIX TAR signatures."""
    if head[:4] in ZIP_MAGICS:
        return True
    if head[:2] == GZIP_MAGIC:
        return True
    if head[:6] == SEVEN_ZIP_MAGIC:
        return True
    return head[TAR_MAGIC_OFFSET:TAR_MAGIC_OFFSET + len(TAR_MAGIC)] == TAR_MAGIC


def detect_format(filename: str, head: bytes = b"") -> FormatKind:
    """
    Infer the content format of a file.

    Args:
        filename: File name or path (only the extension is used)
        head: Leading bytes of the file content

    Returns:
        The inferred FormatKind

    Raises:
        UnsupportedFormatError: If neither extension nor magic bytes match
    """
    extension = get_extension(filename)

    if extension in SPREADSHEET_EXTENSIONS:
        return FormatKind.SPREADSHEET

    if head.startswith(PDF_MAGIC) or extension in PDF_EXTENSIONS:
        return FormatKind.PDF

    if extension in ARCHIVE_EXTENSIONS or has_archive_magic(head):
        return FormatKind.ARCHIVE

    if extension in TEXT_EXTENSIONS or extension == "":
        return FormatKind.PLAIN_TEXT

    raise UnsupportedFormatError(
        f"Unsupported file format: {extension}",
        path=filename,
        extension=extension,
    )
