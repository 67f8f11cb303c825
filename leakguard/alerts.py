"""Alert builder: turns a Finding into a uniquely identified Alert."""

import uuid
from datetime import datetime, timezone
from typing import Optional

from .core.types import Alert, Finding
from .scanner.constants import MAX_SNIPPET_LENGTH


def utc_now_iso(now: Optional[datetime] = None) -> str:
    """ISO 8601 timestamp in UTC."""
    moment = now or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).isoformat()


def truncate_snippet(text: str, limit: int = MAX_SNIPPET_LENGTH) -> str:
    if len(text) <= limit:
        return text
    return text[:limit]


def build_alert(finding: Finding, device_id: str, now: Optional[datetime] = None) -> Alert:
    """
    Build the alert for a finding.

    A fresh UUID4 is assigned here and nowhere else; retries carry the
    same id so the endpoint can deduplicate.
    """
    return Alert(
        id=str(uuid.uuid4()),
        device_id=device_id,
        file_path=finding.file_path,
        rule_name=finding.rule_name,
        matched_snippet=truncate_snippet(finding.matched_text),
        detected_at=utc_now_iso(now),
    )
