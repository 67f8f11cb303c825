"""Text extractors for plain text, PDF, spreadsheet, and archive files."""

from .base import detect_format, get_extension
from .registry import extract, extract_content
from .archive import ArchiveExtractor

__all__ = [
    "detect_format",
    "get_extension",
    "extract",
    "extract_content",
    "ArchiveExtractor",
]
