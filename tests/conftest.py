"""Shared fixtures for LeakGuard tests."""

import io
import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, List, Optional

import httpx
import pytest

from leakguard.core.types import Alert
from leakguard.delivery.queue import DurableQueue


def make_pdf(pages: List[str]) -> bytes:
    """
    Build a minimal, valid PDF with one line of Helvetica text per page.

    Offsets in the xref table are computed, so pypdf reads it without
    falling back to recovery mode.
    """
    objects = []
    page_count = len(pages)
    font_obj = 3 + 2 * page_count
    kids = " ".join(f"{3 + 2 * i} 0 R" for i in range(page_count))

    objects.append(b"<< /Type /Catalog /Pages 2 0 R >>")
    objects.append(f"<< /Type /Pages /Kids [{kids}] /Count {page_count} >>".encode())
    for index, text in enumerate(pages):
        content_obj = 4 + 2 * index
        escaped = text.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")
        stream = f"BT /F1 12 Tf 72 712 Td ({escaped}) Tj ET".encode("latin-1")
        objects.append(
            f"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
            f"/Resources << /Font << /F1 {font_obj} 0 R >> >> "
            f"/Contents {content_obj} 0 R >>".encode()
        )
        objects.append(
            f"<< /Length {len(stream)} >>\nstream\n".encode() + stream + b"\nendstream"
        )
    objects.append(b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>")

    out = io.BytesIO()
    out.write(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(out.tell())
        out.write(f"{number} 0 obj\n".encode() + body + b"\nendobj\n")

    xref_offset = out.tell()
    out.write(f"xref\n0 {len(objects) + 1}\n".encode())
    out.write(b"0000000000 65535 f \n")
    for offset in offsets:
        out.write(f"{offset:010d} 00000 n \n".encode())
    out.write(
        f"trailer\n<< /Size {len(objects) + 1} /Root 1 0 R >>\n"
        f"startxref\n{xref_offset}\n%%EOF\n".encode()
    )
    return out.getvalue()


class FakeClock:
    """Settable UTC clock for queue scheduling tests."""

    def __init__(self, start: Optional[datetime] = None):
        self.current = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> datetime:
        self.current += timedelta(seconds=seconds)
        return self.current


class RecordingEndpoint:
    """
    httpx MockTransport handler that records every request.

    `statuses` is consumed one per request; once exhausted, `default`
    is returned. An Exception instance in the list is raised instead.
    """

    def __init__(self, statuses=None, default: int = 200):
        self.statuses = list(statuses or [])
        self.default = default
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status = self.statuses.pop(0) if self.statuses else self.default
        if isinstance(status, Exception):
            raise status
        return httpx.Response(status, json={"ok": status < 400})

    @property
    def bodies(self) -> List[dict]:
        return [json.loads(request.content) for request in self.requests]

    @property
    def alert_ids(self) -> List[str]:
        return [body["id"] for body in self.bodies]

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def queue_dir(tmp_path) -> Path:
    return tmp_path / "failed_alerts"


@pytest.fixture
def queue(queue_dir, clock) -> DurableQueue:
    return DurableQueue(queue_dir, base_backoff=30, max_backoff=3600, clock=clock)


@pytest.fixture
def endpoint() -> RecordingEndpoint:
    return RecordingEndpoint()


@pytest.fixture
def make_alert() -> Callable[..., Alert]:
    counter = {"n": 0}

    def _make(**overrides) -> Alert:
        counter["n"] += 1
        fields = {
            "id": f"00000000-0000-4000-8000-{counter['n']:012d}",
            "device_id": "dev-1",
            "file_path": "/data/contacts.txt",
            "rule_name": "email",
            "matched_snippet": "alice@example.com",
            "detected_at": "2026-01-01T12:00:00+00:00",
        }
        fields.update(overrides)
        return Alert(**fields)

    return _make


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep tests away from the real ~/.leakguard and agent_config.json."""
    for name in (
        "LEAKGUARD_HOME", "LEAKGUARD_AGENT_CONFIG", "LEAKGUARD_QUEUE_DIR",
        "LEAKGUARD_DEVICE_ID", "LEAKGUARD_API_ENDPOINT", "LEAKGUARD_API_KEY",
        "LEAKGUARD_WATCH_DIR", "LEAKGUARD_MAX_ATTEMPTS", "LEAKGUARD_RETRY_BASE_SECONDS",
        "LEAKGUARD_RETRY_MAX_BACKOFF_SECONDS", "LEAKGUARD_SCAN_EXISTING",
        "LEAKGUARD_INCLUDE", "LEAKGUARD_EXCLUDE", "LEAKGUARD_RULES_FILE",
        "LEAKGUARD_REGISTER_URL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("LEAKGUARD_HOME", str(tmp_path / "home"))
    monkeypatch.setenv("LEAKGUARD_AGENT_CONFIG", str(tmp_path / "home" / "agent_config.json"))


@pytest.fixture
def pdf_factory() -> Callable[[List[str]], bytes]:
    return make_pdf


@pytest.fixture
def endpoint_factory() -> Callable[..., RecordingEndpoint]:
    return RecordingEndpoint


@pytest.fixture
def restore_logging():
    """Undo setup_logging() so handlers do not leak across tests."""
    import logging
    from leakguard.logging_config import AUDIT_LOGGER_NAME

    names = ["leakguard", AUDIT_LOGGER_NAME]
    saved = {}
    for name in names:
        logger = logging.getLogger(name)
        saved[name] = (logger.level, list(logger.handlers), logger.propagate)
    yield
    for name, (level, handlers, propagate) in saved.items():
        logger = logging.getLogger(name)
        for handler in logger.handlers:
            if handler not in handlers:
                handler.close()
        logger.setLevel(level)
        logger.handlers[:] = handlers
        logger.propagate = propagate
