"""
Core data types for the scan-and-deliver pipeline.

ScannedContent -> Finding -> Alert -> QueuedAlertRecord
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional


class FormatKind(str, Enum):
    """Closed set of content formats the extractor understands."""
    PLAIN_TEXT = "plain_text"
    PDF = "pdf"
    SPREADSHEET = "spreadsheet"
    ARCHIVE = "archive"


@dataclass(frozen=True)
class PatternRule:
    """
    A named detection rule.

    The regex is compiled when the rule is created, so an invalid pattern
    fails at startup rather than mid-scan. An optional validator can reject
    regex matches that are structurally wrong (e.g. failed Luhn checksum).
    """
    name: str
    regex: re.Pattern
    description: str = ""
    validator: Optional[Callable[[str], bool]] = field(default=None, compare=False)

    def accepts(self, value: str) -> bool:
        """Check a candidate match against the rule's validator."""
        if self.validator is None:
            return True
        return bool(self.validator(value))


@dataclass
class ScannedContent:
    """Plain text extracted from one file."""
    path: str
    text: str
    format: FormatKind


@dataclass(frozen=True)
class Finding:
    """A single pattern match in a scanned file."""
    rule_name: str
    matched_text: str
    file_path: str


@dataclass(frozen=True)
class Alert:
    """
    The uniquely identified record of a finding, as sent to the endpoint.

    The id is assigned once by the alert builder and never regenerated, so
    the endpoint can deduplicate re-deliveries.
    """
    id: str
    device_id: str
    file_path: str
    rule_name: str
    matched_snippet: str
    detected_at: str  # ISO 8601, UTC

    def to_dict(self) -> Dict[str, str]:
        """Serialize to the wire / storage form."""
        return {
            "id": self.id,
            "device_id": self.device_id,
            "file_path": self.file_path,
            "rule_name": self.rule_name,
            "matched_snippet": self.matched_snippet,
            "detected_at": self.detected_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Alert":
        return cls(
            id=str(data["id"]),
            device_id=str(data["device_id"]),
            file_path=str(data["file_path"]),
            rule_name=str(data["rule_name"]),
            matched_snippet=str(data["matched_snippet"]),
            detected_at=str(data["detected_at"]),
        )


@dataclass
class QueuedAlertRecord:
    """
    An undelivered alert plus its retry bookkeeping.

    Persisted as one file per alert in the durable queue.
    """
    alert: Alert
    attempt_count: int
    first_queued_at: str  # ISO 8601, UTC
    next_retry_at: str    # ISO 8601, UTC
    last_error: Optional[str] = None

    @property
    def alert_id(self) -> str:
        return self.alert.id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alert": self.alert.to_dict(),
            "attempt_count": self.attempt_count,
            "first_queued_at": self.first_queued_at,
            "next_retry_at": self.next_retry_at,
            "last_error": self.last_error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QueuedAlertRecord":
        return cls(
            alert=Alert.from_dict(data["alert"]),
            attempt_count=int(data["attempt_count"]),
            first_queued_at=str(data["first_queued_at"]),
            next_retry_at=str(data["next_retry_at"]),
            last_error=data.get("last_error"),
        )


class DeliveryStatus(Enum):
    """Terminal outcome of one delivery attempt."""
    DELIVERED = "delivered"
    FAILED = "failed"


@dataclass
class DeliveryOutcome:
    """Result of DeliveryManager.deliver()."""
    status: DeliveryStatus
    alert_id: str
    reason: Optional[str] = None

    @property
    def delivered(self) -> bool:
        return self.status == DeliveryStatus.DELIVERED

    @classmethod
    def success(cls, alert_id: str) -> "DeliveryOutcome":
        return cls(status=DeliveryStatus.DELIVERED, alert_id=alert_id)

    @classmethod
    def failure(cls, alert_id: str, reason: str) -> "DeliveryOutcome":
        return cls(status=DeliveryStatus.FAILED, alert_id=alert_id, reason=reason)
