"""
File event loop: drives extract -> detect -> alert -> deliver per file.

State machine per observed path:

    IDLE -> SCANNING -> IDLE                  (no findings, or scan error)
                     -> ALERTING -> IDLE      (one alert per finding)

An event for a path that is SCANNING or ALERTING does not start a second
concurrent scan. It marks the path dirty, and exactly one follow-up scan
runs when the current one finishes, reading the latest file state.

Concurrency Model:
    handle_event() only updates the state table and submits work to a
    ThreadPoolExecutor, so event intake never waits on extraction or
    network I/O. Across different paths there is no ordering guarantee.

Error Policy:
    - UnsupportedFormatError / CorruptFileError / EncodingError /
      ArchiveDepthExceededError: the file's scan ends without alerts
    - ExtractIOError: retried io_retries times, then abandoned for this event
    - Delivery failures: absorbed by the durable queue inside DeliveryManager
    - StorageUnavailableError: logged CRITICAL and passed to on_fatal
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Callable, Dict, List, Optional, Set

from ..alerts import build_alert
from ..core.exceptions import ExtractError, ExtractIOError, StorageUnavailableError
from ..core.types import Alert, DeliveryOutcome, Finding, FormatKind, ScannedContent
from ..delivery.manager import DeliveryManager
from ..logging_config import AuditLogger, get_audit_logger
from ..scanner.constants import MAX_ARCHIVE_NESTING_DEPTH
from ..scanner.detectors.detector import Detector
from ..scanner.extractors.registry import extract
from .watcher import WatchEvent

logger = logging.getLogger(__name__)

Extractor = Callable[[str], ScannedContent]


class PathState(Enum):
    """Lifecycle of one observed path."""
    IDLE = "idle"
    SCANNING = "scanning"
    ALERTING = "alerting"


@dataclass
class ScanReport:
    """What happened to one file in one pass of the pipeline."""
    path: str
    format: Optional[FormatKind] = None
    findings: List[Finding] = field(default_factory=list)
    alerts: List[Alert] = field(default_factory=list)
    outcomes: List[DeliveryOutcome] = field(default_factory=list)
    error: Optional[ExtractError] = None
    attempts: int = 0

    @property
    def error_kind(self) -> Optional[str]:
        return self.error.kind if self.error else None

    @property
    def delivered_count(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.delivered)

    @property
    def queued_count(self) -> int:
        return sum(1 for outcome in self.outcomes if not outcome.delivered)


@dataclass
class LoopStats:
    """Counters since the loop started."""
    files_scanned: int = 0
    files_skipped: int = 0
    findings: int = 0
    alerts_delivered: int = 0
    alerts_queued: int = 0
    events_coalesced: int = 0


class FileEventLoop:
    """
    Per-path scan scheduler.

    Args:
        detector: Detector built over the pattern registry
        delivery: DeliveryManager, or None to detect without alerting
        device_id: Identity stamped on every alert
        max_workers: Concurrent scans across distinct paths
        io_retries: Re-attempts after ExtractIOError for one event
        io_retry_delay: Seconds between those re-attempts
        extractor: Callable path -> ScannedContent (defaults to extract())
        on_fatal: Called with StorageUnavailableError when the queue is gone
    """

    def __init__(
        self,
        detector: Detector,
        delivery: Optional[DeliveryManager],
        device_id: str,
        max_workers: int = 4,
        io_retries: int = 3,
        io_retry_delay: float = 0.5,
        extractor: Optional[Extractor] = None,
        max_archive_depth: int = MAX_ARCHIVE_NESTING_DEPTH,
        on_fatal: Optional[Callable[[Exception], None]] = None,
        audit: Optional[AuditLogger] = None,
    ):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        if io_retries < 0:
            raise ValueError("io_retries must not be negative")

        self.detector = detector
        self.delivery = delivery
        self.device_id = device_id
        self.io_retries = io_retries
        self.io_retry_delay = io_retry_delay
        self.on_fatal = on_fatal
        self._extractor = extractor or partial(extract, max_archive_depth=max_archive_depth)
        self._audit = audit or get_audit_logger()

        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="leakguard-scan")

        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._states: Dict[str, PathState] = {}  # absent = IDLE
        self._dirty: Set[str] = set()
        self._in_flight = 0
        self._closed = False

        self.stats = LoopStats()
        self.fatal_error: Optional[Exception] = None

    # =========================================================================
    # Event intake
    # =========================================================================

    def handle_event(self, event: WatchEvent) -> bool:
        """
        Accept a settled file event.

        Returns:
            True if a scan was scheduled, False if the event was coalesced
            into an in-progress scan or the loop is shut down
        """
        if event.is_directory:
            return False

        path = event.path
        with self._lock:
            if self._closed:
                return False

            if self._states.get(path, PathState.IDLE) is not PathState.IDLE:
                self._dirty.add(path)
                self.stats.events_coalesced += 1
                logger.debug(f"Coalesced {event.event_type.value} event for {path}")
                return False

            self._states[path] = PathState.SCANNING
            self._in_flight += 1

        try:
            self._executor.submit(self._run_path, path)
        except RuntimeError:
            # Executor shut down between the check and the submit
            with self._lock:
                self._states.pop(path, None)
                self._in_flight -= 1
                self._idle.notify_all()
            return False
        return True

    def state_of(self, path: str) -> PathState:
        with self._lock:
            return self._states.get(path, PathState.IDLE)

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no scan is running or queued. Returns False on timeout."""
        with self._idle:
            return self._idle.wait_for(lambda: self._in_flight == 0, timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting events. With wait=True, in-flight scans finish first."""
        with self._lock:
            self._closed = True
            self._dirty.clear()
        self._executor.shutdown(wait=wait)

    def _run_path(self, path: str) -> None:
        """Worker: scan a path until it is no longer dirty."""
        try:
            while True:
                try:
                    self.scan_file(path)
                except StorageUnavailableError as e:
                    self._fatal(e)
                    return
                except Exception as e:
                    logger.error(f"Unexpected error scanning {path}: {e}", exc_info=True)

                with self._lock:
                    if path in self._dirty and not self._closed:
                        self._dirty.discard(path)
                        self._states[path] = PathState.SCANNING
                        logger.debug(f"Rescanning {path} for coalesced events")
                        continue
                    return
        finally:
            with self._lock:
                self._states.pop(path, None)
                self._dirty.discard(path)
                self._in_flight -= 1
                self._idle.notify_all()

    def _fatal(self, error: StorageUnavailableError) -> None:
        logger.critical(f"Durable alert queue unavailable, at-least-once delivery is broken: {error}")
        with self._lock:
            self._closed = True
            self.fatal_error = error
        if self.on_fatal is not None:
            self.on_fatal(error)

    def _set_state(self, path: str, state: PathState) -> None:
        # Only paths scheduled through handle_event are tracked
        with self._lock:
            if path in self._states:
                self._states[path] = state

    # =========================================================================
    # Pipeline
    # =========================================================================

    def _extract_with_retries(self, path: str, report: ScanReport) -> Optional[ScannedContent]:
        for attempt in range(self.io_retries + 1):
            report.attempts = attempt + 1
            try:
                return self._extractor(path)
            except ExtractIOError as e:
                report.error = e
                if attempt < self.io_retries:
                    logger.debug(f"I/O error on {path} (attempt {attempt + 1}), retrying: {e.message}")
                    time.sleep(self.io_retry_delay)
                    continue
                logger.warning(
                    f"Giving up on {path} after {attempt + 1} attempts ({e.kind}): {e.message}"
                )
            except ExtractError as e:
                report.error = e
                log = logger.debug if e.kind == "UnsupportedFormatError" else logger.warning
                log(f"Skipping {path} ({e.kind}): {e.message}")
                return None
        return None

    def scan_file(self, path: str) -> ScanReport:
        """
        Run the full pipeline for one file, synchronously.

        Extraction and detection errors end the scan and are reported in
        the returned ScanReport. Delivery failures are queued.

        Raises:
            StorageUnavailableError: A failed alert could not be queued
        """
        report = ScanReport(path=path)

        content = self._extract_with_retries(path, report)
        if content is None:
            with self._lock:
                self.stats.files_skipped += 1
            return report

        report.error = None
        report.format = content.format
        report.findings = self.detector.detect(content)

        with self._lock:
            self.stats.files_scanned += 1
            self.stats.findings += len(report.findings)

        if not report.findings or self.delivery is None:
            return report

        self._set_state(path, PathState.ALERTING)
        for finding in report.findings:
            alert = build_alert(finding, self.device_id)
            report.alerts.append(alert)
            self._audit.alert_detected(alert_id=alert.id, path=alert.file_path, rule=alert.rule_name)

            outcome = self.delivery.deliver(alert)
            report.outcomes.append(outcome)

        with self._lock:
            self.stats.alerts_delivered += report.delivered_count
            self.stats.alerts_queued += report.queued_count

        return report
