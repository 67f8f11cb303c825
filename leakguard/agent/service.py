"""
Monitor service: wires the pipeline together and owns its threads.

    FileWatcher (watchdog + debounce)
        -> FileEventLoop (scan pool)
            -> Detector (rule pool) -> build_alert -> DeliveryManager
                                                        -> DurableQueue
    RetrySweeper (periodic) -> DeliveryManager

Every collaborator receives its configuration through its constructor;
nothing below this module reads MonitorConfig.
"""

import logging
import os
import signal
import threading
from pathlib import Path
from typing import List, Optional

import httpx

from ..config import MonitorConfig
from ..core.exceptions import StorageUnavailableError
from ..delivery.manager import DeliveryManager
from ..delivery.queue import DurableQueue, RetrySweeper
from ..logging_config import get_audit_logger
from ..scanner.constants import THREAD_JOIN_TIMEOUT
from ..scanner.detectors.detector import Detector
from ..scanner.detectors.pattern_registry import PatternRegistry
from .monitor import FileEventLoop
from .watcher import EventType, FileWatcher, WatchEvent, WatcherConfig, should_watch

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_STORAGE_UNAVAILABLE = 2


def build_registry(rules_file: Optional[Path] = None) -> PatternRegistry:
    """Built-in rules, plus custom rules from a JSON file if given."""
    registry = PatternRegistry.default()
    if rules_file is not None:
        registry = registry.merged_with(PatternRegistry.from_file(rules_file))
    return registry


def _is_within(path: Path, root: Path) -> bool:
    try:
        path.resolve().relative_to(root.resolve())
        return True
    except ValueError:
        return False


class MonitorService:
    """
    Long-running DLP monitor for one directory tree.

    Example:
        >>> service = MonitorService(MonitorConfig.from_env())
        >>> exit_code = service.run()  # Blocks until Ctrl+C or a fatal error
    """

    def __init__(self, config: MonitorConfig, client: Optional[httpx.Client] = None):
        self.config = config
        self._audit = get_audit_logger()
        self._stop_event = threading.Event()
        self._started = False
        self.fatal_error: Optional[Exception] = None

        self.registry = build_registry(config.rules_file)
        self.detector = Detector(self.registry, rule_timeout=config.rule_timeout)
        self.queue = DurableQueue(
            config.queue_dir,
            base_backoff=config.retry_base_seconds,
            max_backoff=config.retry_max_backoff_seconds,
            max_attempts=config.max_attempts,
        )
        self.manager = DeliveryManager(
            config.alerts_url,
            config.device_id,
            self.queue,
            client=client,
            api_key=config.api_key,
            timeout=config.request_timeout,
        )
        self.loop = FileEventLoop(
            self.detector,
            self.manager,
            config.device_id,
            max_workers=config.max_workers,
            io_retries=config.io_retries,
            io_retry_delay=config.io_retry_delay,
            max_archive_depth=config.max_archive_depth,
            on_fatal=self._on_fatal,
        )
        self.sweeper = RetrySweeper(
            self.queue,
            self.manager,
            interval=config.sweep_interval_seconds,
            on_fatal=self._on_fatal,
        )
        self.watcher_config = self._build_watcher_config()
        self.watcher = FileWatcher(
            str(config.watch_dir),
            on_change=self.loop.handle_event,
            config=self.watcher_config,
        )

    def _build_watcher_config(self) -> WatcherConfig:
        watcher_config = WatcherConfig(debounce_seconds=self.config.debounce_seconds)
        if self.config.include_patterns:
            watcher_config.include_patterns = list(self.config.include_patterns)
        if self.config.exclude_patterns:
            watcher_config.exclude_patterns.extend(self.config.exclude_patterns)

        # Queued alerts contain matched snippets; scanning them would loop forever
        if _is_within(self.config.queue_dir, self.config.watch_dir):
            queue_glob = os.path.join(str(self.config.queue_dir.resolve()), "*")
            watcher_config.exclude_patterns.append(queue_glob)
            logger.warning(f"Queue directory {self.config.queue_dir} is inside the watched tree; excluding it")
        return watcher_config

    @property
    def is_running(self) -> bool:
        return self._started and not self._stop_event.is_set()

    def _on_fatal(self, error: Exception) -> None:
        if self.fatal_error is None:
            self.fatal_error = error
        self._stop_event.set()

    def scan_existing(self) -> int:
        """Submit every file already present in the watched tree. Returns the count."""
        root = self.watcher.path
        submitted = 0
        walker = root.rglob("*") if self.watcher_config.recursive else root.glob("*")
        for file_path in walker:
            if self._stop_event.is_set():
                break
            if not file_path.is_file():
                continue
            if not should_watch(str(file_path), self.watcher_config, root=root):
                continue
            if self.loop.handle_event(WatchEvent(event_type=EventType.CREATED, path=str(file_path))):
                submitted += 1
        logger.info(f"Submitted {submitted} existing files for scanning")
        return submitted

    def start(self) -> None:
        """Start the sweeper and the watcher. Returns immediately."""
        if self._started:
            return
        self._started = True
        self._stop_event.clear()

        logger.info(
            f"LeakGuard monitoring {self.config.watch_dir} as device {self.config.device_id}, "
            f"{len(self.registry)} rules, {len(self.queue)} queued alerts"
        )
        self._audit.monitor_start(
            watch_dir=str(self.config.watch_dir),
            device_id=self.config.device_id,
            rules=list(self.registry.names),
        )

        self.sweeper.start()
        self.watcher.start()
        if self.config.scan_existing:
            self.scan_existing()

    def stop(self) -> None:
        """Stop intake, let in-flight scans and deliveries finish, release resources."""
        if not self._started:
            return
        self._stop_event.set()

        self.watcher.stop()
        self.loop.shutdown(wait=True)
        self.sweeper.stop(timeout=THREAD_JOIN_TIMEOUT)
        self.detector.close()
        self.manager.close()
        self._started = False

        stats = self.loop.stats
        logger.info(
            f"LeakGuard stopped: {stats.files_scanned} files scanned, {stats.findings} findings, "
            f"{stats.alerts_delivered} delivered, {stats.alerts_queued} queued"
        )
        self._audit.monitor_stop(
            watch_dir=str(self.config.watch_dir),
            files_scanned=stats.files_scanned,
            findings=stats.findings,
            pending_alerts=len(self.queue) if self.fatal_error is None else None,
        )

    def request_stop(self) -> None:
        self._stop_event.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until a stop is requested. Returns False on timeout."""
        return self._stop_event.wait(timeout)

    def _install_signal_handlers(self) -> List[tuple]:
        if threading.current_thread() is not threading.main_thread():
            return []

        def handler(signum, frame):
            logger.info(f"Received signal {signum}, shutting down")
            self.request_stop()

        previous = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            previous.append((sig, signal.signal(sig, handler)))
        return previous

    def run(self) -> int:
        """
        Run until interrupted or until the durable queue becomes unavailable.

        Returns:
            EXIT_OK, or EXIT_STORAGE_UNAVAILABLE after a fatal queue error
        """
        previous_handlers = self._install_signal_handlers()
        try:
            self.start()
            while not self._stop_event.wait(0.5):
                pass
        finally:
            self.stop()
            for sig, old in previous_handlers:
                signal.signal(sig, old)

        if isinstance(self.fatal_error, StorageUnavailableError):
            logger.critical(f"Stopped because the alert queue is unavailable: {self.fatal_error}")
            return EXIT_STORAGE_UNAVAILABLE
        return EXIT_OK
