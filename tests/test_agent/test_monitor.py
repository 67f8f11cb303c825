"""
Tests for the FileEventLoop.

Uses the real extractors and Detector; the endpoint is an
httpx.MockTransport and the queue lives in tmp_path.
"""

import io
import threading
import zipfile
from unittest.mock import Mock

import pytest
from openpyxl import Workbook

from leakguard.agent.monitor import FileEventLoop, PathState
from leakguard.agent.watcher import EventType, WatchEvent
from leakguard.core.exceptions import ExtractIOError, StorageUnavailableError
from leakguard.core.types import FormatKind, ScannedContent
from leakguard.delivery.manager import DeliveryManager
from leakguard.delivery.queue import RetrySweeper
from leakguard.scanner.detectors import Detector, PatternRegistry


@pytest.fixture
def detector():
    d = Detector(PatternRegistry.default())
    yield d
    d.close()


@pytest.fixture
def manager(endpoint, queue):
    m = DeliveryManager("https://dlp.example.com/alerts", "dev-1", queue, client=endpoint.client(), audit=Mock())
    yield m
    m.close()


@pytest.fixture
def make_loop(detector, manager):
    loops = []

    def _make(**kwargs):
        kwargs.setdefault("io_retry_delay", 0.01)
        loop = FileEventLoop(detector, kwargs.pop("delivery", manager), "dev-1", audit=Mock(), **kwargs)
        loops.append(loop)
        return loop

    yield _make
    for loop in loops:
        loop.shutdown(wait=True)


def created(path):
    return WatchEvent(event_type=EventType.CREATED, path=str(path))


class TestScanFile:
    """The synchronous pipeline for one file."""

    def test_alice_delivered(self, make_loop, endpoint, queue, tmp_path):
        path = tmp_path / "contacts.txt"
        path.write_text("contact: alice@example.com")

        report = make_loop().scan_file(str(path))

        assert [f.rule_name for f in report.findings] == ["email"]
        assert len(report.alerts) == 1
        assert report.delivered_count == 1
        assert endpoint.bodies == [report.alerts[0].to_dict()]
        assert endpoint.bodies[0]["device_id"] == "dev-1"
        assert endpoint.bodies[0]["file_path"] == str(path)
        assert len(queue) == 0

    def test_alice_queued_then_retried(self, make_loop, endpoint_factory, detector, queue, clock, tmp_path):
        endpoint = endpoint_factory(statuses=[503])
        manager = DeliveryManager(
            "https://dlp.example.com/alerts", "dev-1", queue, client=endpoint.client(), audit=Mock(),
        )
        path = tmp_path / "contacts.txt"
        path.write_text("contact: alice@example.com")

        report = make_loop(delivery=manager).scan_file(str(path))

        alert = report.alerts[0]
        assert report.queued_count == 1
        record = queue.get(alert.id)
        assert record.attempt_count == 1

        sweeper = RetrySweeper(queue, manager)
        assert sweeper.sweep_once().attempted == 0
        clock.advance(queue.base_backoff)
        assert sweeper.sweep_once().delivered == 1

        assert endpoint.alert_ids == [alert.id, alert.id]
        assert len(queue) == 0

    def test_one_alert_per_finding(self, make_loop, endpoint, tmp_path):
        path = tmp_path / "dump.txt"
        path.write_text("alice@example.com\nSSN 123-45-6789\nAKIAIOSFODNN7EXAMPLE\n")

        report = make_loop().scan_file(str(path))

        assert [a.rule_name for a in report.alerts] == ["email", "ssn", "aws_access_key"]
        assert len({a.id for a in report.alerts}) == 3
        assert len(endpoint.requests) == 3

    def test_clean_file(self, make_loop, endpoint, tmp_path):
        path = tmp_path / "clean.txt"
        path.write_text("nothing sensitive here")

        report = make_loop().scan_file(str(path))

        assert report.findings == []
        assert report.format == FormatKind.PLAIN_TEXT
        assert endpoint.requests == []

    def test_rescan_gives_same_findings(self, make_loop, tmp_path):
        path = tmp_path / "contacts.txt"
        path.write_text("contact: alice@example.com, card 4111 1111 1111 1111")
        loop = make_loop()

        first = loop.scan_file(str(path))
        second = loop.scan_file(str(path))

        assert first.findings == second.findings
        # New detections get new alert ids
        assert {a.id for a in first.alerts}.isdisjoint(a.id for a in second.alerts)

    @pytest.mark.parametrize("kind", ["txt", "xlsx", "zip", "pdf"])
    def test_finding_in_every_format(self, make_loop, tmp_path, pdf_factory, kind):
        secret = "alice@example.com"
        path = tmp_path / f"sample.{kind}"
        if kind == "txt":
            path.write_text(f"contact {secret}")
        elif kind == "xlsx":
            workbook = Workbook()
            workbook.active.append(["contact", secret])
            workbook.save(path)
        elif kind == "zip":
            buffer = io.BytesIO()
            with zipfile.ZipFile(buffer, "w") as zf:
                zf.writestr("inner/contact.txt", f"contact {secret}")
            path.write_bytes(buffer.getvalue())
        else:
            path.write_bytes(pdf_factory([f"contact {secret}"]))

        report = make_loop(delivery=None).scan_file(str(path))

        assert [f.rule_name for f in report.findings] == ["email"]
        assert report.findings[0].matched_text == secret
        assert report.alerts == []

    def test_unsupported_file_skipped(self, make_loop, endpoint, tmp_path):
        path = tmp_path / "photo.png"
        path.write_bytes(b"\x89PNG\r\n\x1a\n")
        loop = make_loop()

        report = loop.scan_file(str(path))

        assert report.error_kind == "UnsupportedFormatError"
        assert loop.stats.files_skipped == 1
        assert endpoint.requests == []

    def test_io_error_retried(self, make_loop, tmp_path):
        calls = []

        def flaky(path):
            calls.append(path)
            if len(calls) < 3:
                raise ExtractIOError("locked", path=path)
            return ScannedContent(path=path, text="alice@example.com", format=FormatKind.PLAIN_TEXT)

        report = make_loop(extractor=flaky, io_retries=3, delivery=None).scan_file("/data/locked.txt")

        assert report.attempts == 3
        assert report.error is None
        assert [f.rule_name for f in report.findings] == ["email"]

    def test_io_error_gives_up(self, make_loop):
        extractor = Mock(side_effect=ExtractIOError("gone", path="/x.txt"))

        report = make_loop(extractor=extractor, io_retries=2).scan_file("/x.txt")

        assert extractor.call_count == 3
        assert report.error_kind == "ExtractIOError"
        assert report.findings == []


class TestEventHandling:
    """State machine and coalescing."""

    def test_event_runs_scan(self, make_loop, endpoint, tmp_path):
        path = tmp_path / "a.txt"
        path.write_text("alice@example.com")
        loop = make_loop()

        assert loop.handle_event(created(path)) is True
        assert loop.wait_idle(5)

        assert len(endpoint.requests) == 1
        assert loop.state_of(str(path)) == PathState.IDLE
        assert loop.stats.files_scanned == 1

    def test_directory_events_ignored(self, make_loop, tmp_path):
        loop = make_loop()
        event = WatchEvent(event_type=EventType.CREATED, path=str(tmp_path), is_directory=True)
        assert loop.handle_event(event) is False

    def test_events_during_scan_coalesce_into_one_rescan(self, make_loop):
        started = threading.Event()
        release = threading.Event()
        calls = []

        def blocking(path):
            calls.append(path)
            if len(calls) == 1:
                started.set()
                release.wait(5)
            return ScannedContent(path=path, text="", format=FormatKind.PLAIN_TEXT)

        loop = make_loop(extractor=blocking)
        event = created("/data/busy.txt")

        assert loop.handle_event(event) is True
        assert started.wait(5)
        assert loop.state_of("/data/busy.txt") == PathState.SCANNING

        for _ in range(5):
            assert loop.handle_event(WatchEvent(event_type=EventType.MODIFIED, path="/data/busy.txt")) is False
        release.set()
        assert loop.wait_idle(5)

        assert len(calls) == 2
        assert loop.stats.events_coalesced == 5

    def test_distinct_paths_scan_concurrently(self, make_loop):
        barrier = threading.Barrier(2, timeout=5)

        def rendezvous(path):
            barrier.wait()
            return ScannedContent(path=path, text="", format=FormatKind.PLAIN_TEXT)

        loop = make_loop(extractor=rendezvous, max_workers=2)
        loop.handle_event(created("/data/one.txt"))
        loop.handle_event(created("/data/two.txt"))

        assert loop.wait_idle(5)
        assert loop.stats.files_scanned == 2

    def test_no_events_after_shutdown(self, make_loop, tmp_path):
        loop = make_loop()
        loop.shutdown()
        assert loop.handle_event(created(tmp_path / "late.txt")) is False

    def test_storage_failure_is_fatal(self, detector, tmp_path):
        delivery = Mock()
        delivery.deliver.side_effect = StorageUnavailableError("disk gone")
        fatal = []
        path = tmp_path / "a.txt"
        path.write_text("alice@example.com")
        loop = FileEventLoop(detector, delivery, "dev-1", on_fatal=fatal.append, audit=Mock())

        loop.handle_event(created(path))
        assert loop.wait_idle(5)

        assert isinstance(loop.fatal_error, StorageUnavailableError)
        assert fatal == [loop.fatal_error]
        assert loop.handle_event(created(path)) is False
        loop.shutdown()

    def test_unexpected_error_does_not_stop_loop(self, make_loop):
        calls = []

        def crashing(path):
            calls.append(path)
            raise RuntimeError("bug")

        loop = make_loop(extractor=crashing)
        loop.handle_event(created("/data/a.txt"))
        assert loop.wait_idle(5)
        loop.handle_event(created("/data/b.txt"))
        assert loop.wait_idle(5)

        assert calls == ["/data/a.txt", "/data/b.txt"]
