"""
LeakGuard - data loss prevention file monitor.

Watches a directory tree, extracts text from plain text, PDF, spreadsheet,
and archive files, scans it for sensitive-data patterns, and delivers one
alert per finding to a collection endpoint with at-least-once semantics.

Quick start:
    >>> from leakguard import Detector, PatternRegistry, extract
    >>> detector = Detector(PatternRegistry.default())
    >>> findings = detector.detect(extract("notes.txt"))
    >>> [f.rule_name for f in findings]
    ['email']
"""

__version__ = "0.1.0"

from .alerts import build_alert
from .config import MonitorConfig
from .core import (
    Alert,
    DeliveryOutcome,
    DeliveryStatus,
    Finding,
    FormatKind,
    LeakGuardError,
    PatternRule,
    QueuedAlertRecord,
    ScannedContent,
)
from .delivery import DeliveryManager, DurableQueue, RetrySweeper
from .scanner import Detector, PatternRegistry, extract

__all__ = [
    "__version__",
    "build_alert",
    "MonitorConfig",
    "Alert",
    "DeliveryOutcome",
    "DeliveryStatus",
    "Finding",
    "FormatKind",
    "LeakGuardError",
    "PatternRule",
    "QueuedAlertRecord",
    "ScannedContent",
    "DeliveryManager",
    "DurableQueue",
    "RetrySweeper",
    "Detector",
    "PatternRegistry",
    "extract",
]
