"""
Tests for the file watcher.

Filtering and debouncing are tested with explicit timestamps; one test
runs a real watchdog observer against tmp_path.
"""

import threading
import time
from pathlib import Path

import pytest
from watchdog.events import (
    DirCreatedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
)

from leakguard.agent.watcher import (
    EventType,
    FileWatcher,
    WatchEvent,
    WatcherConfig,
    _WatchdogHandler,
    should_watch,
)


def event(path, event_type=EventType.MODIFIED):
    return WatchEvent(event_type=event_type, path=path)


class TestShouldWatch:

    def test_regular_file(self):
        assert should_watch("/data/report.pdf", WatcherConfig())

    def test_temp_and_vcs_excluded(self):
        config = WatcherConfig()
        assert not should_watch("/data/report.tmp", config)
        assert not should_watch("/data/.report.swp", config)
        assert not should_watch("/data/.git/config", config)

    def test_hidden_relative_to_root(self):
        config = WatcherConfig()
        root = Path("/home/user/.cache/share")

        assert should_watch("/home/user/.cache/share/a.txt", config, root=root)
        assert not should_watch("/home/user/.cache/share/.hidden/a.txt", config, root=root)

    def test_include_hidden(self):
        assert should_watch("/data/.env", WatcherConfig(include_hidden=True))

    def test_include_patterns(self):
        config = WatcherConfig(include_patterns=["*.txt", "*.pdf"])
        assert should_watch("/data/a.txt", config)
        assert not should_watch("/data/a.xlsx", config)
        assert should_watch("/data/sub", config, is_directory=True)


class TestDebounce:
    """Raw events collapse to one dispatch per quiet path."""

    def test_burst_collapses(self, tmp_path):
        watcher = FileWatcher(str(tmp_path), config=WatcherConfig(debounce_seconds=0.5))
        path = str(tmp_path / "a.txt")

        watcher._on_raw_event(event(path, EventType.CREATED), now=100.0)
        for offset in (0.1, 0.2, 0.3, 0.4):
            watcher._on_raw_event(event(path), now=100.0 + offset)

        assert watcher._collect_settled(now=100.8) == []
        settled = watcher._collect_settled(now=101.0)

        assert [e.path for e in settled] == [path]
        assert settled[0].event_type == EventType.MODIFIED
        assert watcher.pending_count == 0

    def test_paths_settle_independently(self, tmp_path):
        watcher = FileWatcher(str(tmp_path), config=WatcherConfig(debounce_seconds=1.0))
        watcher._on_raw_event(event("/a"), now=0.0)
        watcher._on_raw_event(event("/b"), now=0.8)

        assert [e.path for e in watcher._collect_settled(now=1.0)] == ["/a"]
        assert [e.path for e in watcher._collect_settled(now=2.0)] == ["/b"]

    def test_callback_errors_counted(self, tmp_path):
        def broken(evt):
            raise RuntimeError("handler bug")

        watcher = FileWatcher(str(tmp_path), on_change=broken)
        watcher._dispatch_event(event("/a"))

        assert watcher.callback_failures == 1

    def test_requires_directory(self, tmp_path):
        path = tmp_path / "file.txt"
        path.write_text("x")
        with pytest.raises(NotADirectoryError):
            FileWatcher(str(path))


class TestWatchdogHandler:

    @pytest.fixture
    def received(self):
        return []

    @pytest.fixture
    def handler(self, received, tmp_path):
        return _WatchdogHandler(received.append, WatcherConfig(), tmp_path)

    def test_created_and_modified(self, handler, received, tmp_path):
        handler.on_created(FileCreatedEvent(str(tmp_path / "a.txt")))
        handler.on_modified(FileModifiedEvent(str(tmp_path / "a.txt")))

        assert [e.event_type for e in received] == [EventType.CREATED, EventType.MODIFIED]

    def test_move_is_creation_of_destination(self, handler, received, tmp_path):
        handler.on_moved(FileMovedEvent(str(tmp_path / "a.tmp"), str(tmp_path / "a.txt")))

        assert received[0].event_type == EventType.CREATED
        assert received[0].path == str(tmp_path / "a.txt")

    def test_directories_and_filtered_paths_ignored(self, handler, received, tmp_path):
        handler.on_created(DirCreatedEvent(str(tmp_path / "sub")))
        handler.on_created(FileCreatedEvent(str(tmp_path / "x.swp")))
        handler.on_moved(FileMovedEvent(str(tmp_path / "a.txt"), str(tmp_path / "a.tmp")))

        assert received == []

    def test_deletes_ignored(self, handler, received, tmp_path):
        handler.dispatch(FileDeletedEvent(str(tmp_path / "a.txt")))
        assert received == []


class TestObserverIntegration:

    def test_write_produces_settled_event(self, tmp_path):
        received = []
        got_event = threading.Event()

        def on_change(evt):
            received.append(evt)
            got_event.set()

        with FileWatcher(str(tmp_path), on_change=on_change, config=WatcherConfig(debounce_seconds=0.2)):
            time.sleep(0.2)
            target = tmp_path / "new.txt"
            with open(target, "w") as fh:
                fh.write("alice@example.com")
                fh.flush()
                fh.write("\nmore")
            assert got_event.wait(5)
            time.sleep(0.5)

        paths = [Path(e.path).name for e in received]
        assert paths.count("new.txt") == 1
