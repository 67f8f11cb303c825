"""Pattern-based detection of sensitive data in extracted text."""

from .checksum import luhn_check, validate_credit_card, validate_ssn
from .detector import DetectionMetadata, Detector, first_match
from .pattern_registry import PatternRegistry, compile_rule

__all__ = [
    "Detector",
    "DetectionMetadata",
    "PatternRegistry",
    "compile_rule",
    "first_match",
    "luhn_check",
    "validate_credit_card",
    "validate_ssn",
]
