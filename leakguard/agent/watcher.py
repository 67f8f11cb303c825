"""
File System Watcher.

Turns watchdog notifications into settled create/modify events for the
scan pipeline.

Uses platform-specific APIs:
- Linux: inotify via watchdog
- macOS: FSEvents via watchdog
- Windows: ReadDirectoryChangesW via watchdog

The OS notifier is best-effort: events may arrive duplicated or in
bursts. Every raw event for a path restarts that path's debounce window,
and only once the path has been quiet for `debounce_seconds` is a single
event dispatched. Deletes are ignored; a move is reported as the creation
of its destination.

Example:
    >>> from leakguard.agent.watcher import FileWatcher
    >>>
    >>> def handle_change(event):
    ...     print(f"{event.event_type.value}: {event.path}")
    >>>
    >>> with FileWatcher("/data", on_change=handle_change):
    ...     time.sleep(60)
"""

import fnmatch
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

logger = logging.getLogger(__name__)

DISPATCH_POLL_INTERVAL = 0.1


class EventType(Enum):
    """File system event types the pipeline reacts to."""
    CREATED = "created"
    MODIFIED = "modified"


@dataclass
class WatchEvent:
    """
    A file system change event.
    """
    event_type: EventType
    path: str
    is_directory: bool = False
    timestamp: str = ""

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = datetime.now(timezone.utc).isoformat()


@dataclass
class WatcherConfig:
    """
    Configuration for the file watcher.
    """
    recursive: bool = True
    include_hidden: bool = False

    # File patterns to include (glob patterns); empty = everything
    include_patterns: List[str] = field(default_factory=list)
    # File patterns to exclude
    exclude_patterns: List[str] = field(default_factory=lambda: [
        "*.tmp", "*.temp", "*.swp", "*.swo", "*~",  # Temp files
        ".git/*", ".svn/*", ".hg/*",                 # VCS
        "__pycache__/*", "*.pyc",                    # Python
        "node_modules/*",                            # Node.js
        ".DS_Store", "Thumbs.db",                    # OS files
    ])

    # Quiet period before a path's events are dispatched
    debounce_seconds: float = 0.5


def should_watch(
    path: str,
    config: WatcherConfig,
    is_directory: bool = False,
    root: Optional[Path] = None,
) -> bool:
    """
    Check a path against the hidden-file, exclude, and include filters.

    Hidden components are judged relative to root, so watching a
    directory that itself lives under a dot-directory still works.
    """
    path_obj = Path(path)
    relative = path_obj
    if root is not None:
        try:
            relative = path_obj.relative_to(root)
        except ValueError:
            pass

    if not config.include_hidden:
        if any(part.startswith('.') for part in relative.parts):
            return False

    for pattern in config.exclude_patterns:
        if fnmatch.fnmatch(str(path), pattern) or fnmatch.fnmatch(path_obj.name, pattern):
            return False

    if config.include_patterns and not is_directory:
        return any(
            fnmatch.fnmatch(str(path), pattern) or fnmatch.fnmatch(path_obj.name, pattern)
            for pattern in config.include_patterns
        )

    return True


class FileWatcher:
    """
    File system watcher with debouncing and filtering.

    Uses watchdog library for cross-platform file system monitoring.
    The callback runs on the watcher's dispatch thread and must not block
    for long; FileEventLoop.handle_event only hands work to a pool.
    """

    def __init__(
        self,
        path: str,
        on_change: Optional[Callable[[WatchEvent], None]] = None,
        config: Optional[WatcherConfig] = None,
    ):
        """
        Initialize watcher.

        Args:
            path: Directory to watch
            on_change: Callback for settled change events
            config: Watcher configuration
        """
        self.path = Path(path).resolve()
        if not self.path.is_dir():
            raise NotADirectoryError(f"Not a directory: {path}")

        self.on_change = on_change
        self.config = config or WatcherConfig()

        # path -> (latest event, monotonic time of latest raw event)
        self._pending_events: Dict[str, Tuple[WatchEvent, float]] = {}
        self._lock = threading.Lock()

        self._callback_failures = 0

        self._observer: Optional[Observer] = None
        self._handler: Optional[_WatchdogHandler] = None

        self._stop_event = threading.Event()
        self._running = False
        self._processor_thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Start watching for changes."""
        if self._running:
            return

        logger.info(f"Starting watcher for: {self.path}")

        self._handler = _WatchdogHandler(self._on_raw_event, self.config, self.path)
        self._observer = Observer()
        self._observer.schedule(
            self._handler,
            str(self.path),
            recursive=self.config.recursive,
        )
        self._observer.start()

        self._stop_event.clear()
        self._running = True
        self._processor_thread = threading.Thread(
            target=self._process_events,
            daemon=True,
            name="leakguard-debounce",
        )
        self._processor_thread.start()

        logger.info(f"Watcher started for: {self.path}")

    def stop(self) -> None:
        """Stop watching. Pending, unsettled events are dropped."""
        if not self._running:
            return

        logger.info(f"Stopping watcher for: {self.path}")
        self._running = False
        self._stop_event.set()

        if self._observer:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

        if self._processor_thread:
            self._processor_thread.join(timeout=2)
            self._processor_thread = None

        with self._lock:
            dropped = len(self._pending_events)
            self._pending_events.clear()
        if dropped:
            logger.debug(f"Dropped {dropped} unsettled events on stop")

        logger.info(f"Watcher stopped for: {self.path}")

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending_events)

    @property
    def callback_failures(self) -> int:
        return self._callback_failures

    def _on_raw_event(self, event: WatchEvent, now: Optional[float] = None) -> None:
        """Record a raw event; restarts the path's debounce window."""
        with self._lock:
            self._pending_events[event.path] = (event, time.monotonic() if now is None else now)

    def _collect_settled(self, now: Optional[float] = None) -> List[WatchEvent]:
        """Remove and return events whose path has been quiet for the debounce window."""
        moment = time.monotonic() if now is None else now
        settled = []
        with self._lock:
            for path, (event, timestamp) in list(self._pending_events.items()):
                if moment - timestamp >= self.config.debounce_seconds:
                    settled.append(event)
                    del self._pending_events[path]
        return settled

    def _process_events(self) -> None:
        """Dispatch settled events until stopped."""
        while not self._stop_event.wait(DISPATCH_POLL_INTERVAL):
            for event in self._collect_settled():
                self._dispatch_event(event)

    def _dispatch_event(self, event: WatchEvent) -> None:
        if not self.on_change:
            return
        try:
            self.on_change(event)
        except Exception as e:
            self._callback_failures += 1
            logger.error(f"Error in event callback for {event.path}: {e}", exc_info=True)

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False


class _WatchdogHandler(FileSystemEventHandler):
    """
    Internal handler for watchdog events.
    """

    def __init__(
        self,
        callback: Callable[[WatchEvent], None],
        config: WatcherConfig,
        root: Optional[Path] = None,
    ):
        super().__init__()
        self.callback = callback
        self.config = config
        self.root = root

    def on_created(self, event: FileSystemEvent) -> None:
        if event.is_directory or not should_watch(event.src_path, self.config, root=self.root):
            return
        self.callback(WatchEvent(event_type=EventType.CREATED, path=str(event.src_path)))

    def on_modified(self, event: FileSystemEvent) -> None:
        # Directory modifications are noise
        if event.is_directory or not should_watch(event.src_path, self.config, root=self.root):
            return
        self.callback(WatchEvent(event_type=EventType.MODIFIED, path=str(event.src_path)))

    def on_moved(self, event: FileSystemEvent) -> None:
        dest = getattr(event, "dest_path", None)
        if event.is_directory or not dest or not should_watch(dest, self.config, root=self.root):
            return
        self.callback(WatchEvent(event_type=EventType.CREATED, path=str(dest)))
