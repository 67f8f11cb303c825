"""Tests for the alert builder."""

import uuid
from datetime import datetime, timedelta, timezone

from leakguard.alerts import build_alert, truncate_snippet, utc_now_iso
from leakguard.core.types import Alert, Finding
from leakguard.scanner.constants import MAX_SNIPPET_LENGTH


def finding(text="alice@example.com"):
    return Finding(rule_name="email", matched_text=text, file_path="/data/contacts.txt")


class TestBuildAlert:

    def test_fields(self):
        now = datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)

        alert = build_alert(finding(), "dev-1", now=now)

        assert alert.device_id == "dev-1"
        assert alert.file_path == "/data/contacts.txt"
        assert alert.rule_name == "email"
        assert alert.matched_snippet == "alice@example.com"
        assert alert.detected_at == "2026-03-01T09:30:00+00:00"
        assert uuid.UUID(alert.id).version == 4

    def test_ids_are_unique(self):
        ids = {build_alert(finding(), "dev-1").id for _ in range(100)}
        assert len(ids) == 100

    def test_snippet_truncated(self):
        alert = build_alert(finding("x" * 1000), "dev-1")
        assert len(alert.matched_snippet) == MAX_SNIPPET_LENGTH

    def test_wire_round_trip(self):
        alert = build_alert(finding(), "dev-1")
        assert Alert.from_dict(alert.to_dict()) == alert
        assert set(alert.to_dict()) == {
            "id", "device_id", "file_path", "rule_name", "matched_snippet", "detected_at",
        }


class TestHelpers:

    def test_utc_now_converts_offsets(self):
        local = datetime(2026, 3, 1, 11, 30, tzinfo=timezone(timedelta(hours=2)))
        assert utc_now_iso(local) == "2026-03-01T09:30:00+00:00"

    def test_short_snippet_unchanged(self):
        assert truncate_snippet("abc", limit=5) == "abc"
        assert truncate_snippet("abcdef", limit=5) == "abcde"
