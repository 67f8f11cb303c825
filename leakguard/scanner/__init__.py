"""
Scanner: content extraction and pattern detection.

    >>> from leakguard.scanner import Detector, PatternRegistry, extract
    >>> detector = Detector(PatternRegistry.default())
    >>> findings = detector.detect(extract("/data/notes.txt"))
"""

from .detectors import DetectionMetadata, Detector, PatternRegistry
from .extractors import ArchiveExtractor, detect_format, extract, extract_content

__all__ = [
    "Detector",
    "DetectionMetadata",
    "PatternRegistry",
    "ArchiveExtractor",
    "detect_format",
    "extract",
    "extract_content",
]
