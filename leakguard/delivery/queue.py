"""
Durable retry queue for undelivered alerts.

One JSON file per alert, keyed by alert id:

    <queue_dir>/<alert id>.json
    {"alert": {...}, "attempt_count": 1, "first_queued_at": "...",
     "next_retry_at": "...", "last_error": "..."}

Writes go to a temp file in the same directory, are fsynced, and then
renamed over the target, so a record is either fully present or absent
after a crash. enqueue() returns only after the rename and the directory
fsync, which is what lets the delivery path report the alert as safe.

Records are never dropped for age. When max_attempts is set, a record that
reaches it is moved to <queue_dir>/abandoned/ and logged at ERROR.

Thread Safety:
    Every read-modify-write of a record runs under that record's lock.
    The lock table itself is guarded by a global lock.
"""

import json
import logging
import os
import tempfile
import threading
import weakref
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Iterator, List, Optional, Union

from ..core.exceptions import QueueError, StorageUnavailableError
from ..core.types import Alert, QueuedAlertRecord

if TYPE_CHECKING:
    from .manager import DeliveryManager

logger = logging.getLogger(__name__)

RECORD_SUFFIX = ".json"
CORRUPT_SUFFIX = ".corrupt"
ABANDONED_DIR_NAME = "abandoned"

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _fsync_directory(directory: Path) -> None:
    """Persist a rename by syncing the containing directory (POSIX only)."""
    if os.name != "posix":
        return
    fd = os.open(str(directory), os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def _atomic_write(target: Path, content: str) -> None:
    """Write content to target via temp file, fsync, and rename."""
    fd, tmp = tempfile.mkstemp(
        dir=str(target.parent),
        prefix=f".{target.name}.",
        suffix=".tmp",
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(content)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp, target)
    except BaseException:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise
    _fsync_directory(target.parent)


class DurableQueue:
    """
    File-backed key-value store of QueuedAlertRecords with backoff scheduling.

    Args:
        directory: Queue directory, created if missing
        base_backoff: Delay in seconds after the first failed attempt
        max_backoff: Upper bound on the delay between attempts
        max_attempts: Optional cap; None retries forever
        clock: Returns the current UTC time (injectable for tests)
    """

    def __init__(
        self,
        directory: Union[str, Path],
        base_backoff: float = 30.0,
        max_backoff: float = 3600.0,
        max_attempts: Optional[int] = None,
        clock: Optional[Clock] = None,
    ):
        if base_backoff <= 0 or max_backoff < base_backoff:
            raise ValueError("Require 0 < base_backoff <= max_backoff")
        if max_attempts is not None and max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.directory = Path(directory)
        self.abandoned_dir = self.directory / ABANDONED_DIR_NAME
        self.base_backoff = base_backoff
        self.max_backoff = max_backoff
        self.max_attempts = max_attempts
        self._clock = clock or _utc_now

        # Entries vanish once no thread holds or waits on the lock
        self._locks: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageUnavailableError(
                f"Cannot create queue directory {self.directory}: {e}",
                directory=str(self.directory),
                operation="mkdir",
            ) from e

    # =========================================================================
    # Scheduling
    # =========================================================================

    def backoff_seconds(self, attempt_count: int) -> float:
        """Delay before the next attempt: base * 2^(n-1), capped at max_backoff."""
        exponent = max(attempt_count, 1) - 1
        # Bound the exponent so huge attempt counts cannot overflow
        if exponent > 62:
            return self.max_backoff
        return min(self.base_backoff * (2 ** exponent), self.max_backoff)

    def now(self) -> datetime:
        return self._clock()

    def is_abandoned(self, record: QueuedAlertRecord) -> bool:
        """True once a record has used up its max_attempts."""
        return self.max_attempts is not None and record.attempt_count >= self.max_attempts

    def new_record(self, alert: Alert, reason: Optional[str] = None) -> QueuedAlertRecord:
        """Record for an alert whose first delivery attempt just failed."""
        now = self.now()
        return QueuedAlertRecord(
            alert=alert,
            attempt_count=1,
            first_queued_at=now.isoformat(),
            next_retry_at=(now + timedelta(seconds=self.backoff_seconds(1))).isoformat(),
            last_error=reason,
        )

    # =========================================================================
    # Paths and locks
    # =========================================================================

    def _record_path(self, alert_id: str) -> Path:
        if not alert_id or "/" in alert_id or "\\" in alert_id or alert_id.startswith("."):
            raise QueueError(f"Invalid alert id for queue storage: {alert_id!r}")
        return self.directory / f"{alert_id}{RECORD_SUFFIX}"

    def _lock_for(self, alert_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(alert_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[alert_id] = lock
            return lock

    @contextmanager
    def record_lock(self, alert_id: str) -> Iterator[None]:
        """Serialize all access to one record."""
        lock = self._lock_for(alert_id)
        with lock:
            yield

    # =========================================================================
    # Storage primitives
    # =========================================================================

    def _write(self, record: QueuedAlertRecord, directory: Optional[Path] = None) -> None:
        target_dir = directory or self.directory
        target = target_dir / self._record_path(record.alert_id).name
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            _atomic_write(target, json.dumps(record.to_dict(), indent=2))
        except OSError as e:
            raise StorageUnavailableError(
                f"Cannot persist alert {record.alert_id} to {target_dir}: {e}",
                directory=str(target_dir),
                operation="write",
            ) from e

    def _quarantine(self, path: Path, error: Exception) -> None:
        corrupt = path.with_name(path.name + CORRUPT_SUFFIX)
        logger.error(f"Unreadable queue record {path.name} ({type(error).__name__}), moved to {corrupt.name}")
        try:
            os.replace(path, corrupt)
        except OSError as e:
            raise StorageUnavailableError(
                f"Cannot quarantine corrupt record {path}: {e}",
                directory=str(self.directory),
                operation="quarantine",
            ) from e

    def _read(self, path: Path) -> Optional[QueuedAlertRecord]:
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            # Acked concurrently
            return None
        except OSError as e:
            raise StorageUnavailableError(
                f"Cannot read queue record {path}: {e}",
                directory=str(self.directory),
                operation="read",
            ) from e

        try:
            record = QueuedAlertRecord.from_dict(json.loads(raw))
            _parse_timestamp(record.next_retry_at)
        except (ValueError, KeyError, TypeError) as e:
            self._quarantine(path, e)
            return None
        return record

    def _delete(self, path: Path, alert_id: str) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageUnavailableError(
                f"Cannot delete queue record {alert_id}: {e}",
                directory=str(self.directory),
                operation="delete",
            ) from e
        _fsync_directory(self.directory)
        return True

    def _record_files(self) -> List[Path]:
        try:
            return [
                entry for entry in self.directory.iterdir()
                if entry.is_file() and entry.name.endswith(RECORD_SUFFIX) and not entry.name.startswith(".")
            ]
        except OSError as e:
            raise StorageUnavailableError(
                f"Cannot list queue directory {self.directory}: {e}",
                directory=str(self.directory),
                operation="list",
            ) from e

    # =========================================================================
    # Public operations
    # =========================================================================

    def enqueue(self, record: QueuedAlertRecord) -> None:
        """
        Persist a record. Returns only once the record is on stable storage.

        Raises:
            StorageUnavailableError: The queue directory cannot be written
        """
        with self.record_lock(record.alert_id):
            self._write(record)
        logger.info(
            f"Queued alert {record.alert_id} (attempt {record.attempt_count}, "
            f"next retry {record.next_retry_at})"
        )

    def record_failure(self, alert: Alert, reason: Optional[str] = None) -> QueuedAlertRecord:
        """
        Register a failed delivery attempt for an alert.

        A new record starts at attempt_count 1; an existing record is
        advanced as by fail(). Both paths run under the record lock.
        """
        with self.record_lock(alert.id):
            path = self._record_path(alert.id)
            existing = self._read(path) if path.exists() else None
            if existing is None:
                record = self.new_record(alert, reason)
                if self._store(record):
                    logger.info(f"Queued alert {alert.id} (attempt 1, next retry {record.next_retry_at})")
            else:
                record = self._advance(existing, reason)

        return record

    def fail(self, alert_id: str, reason: Optional[str] = None) -> Optional[QueuedAlertRecord]:
        """
        Increment attempt_count and reschedule a queued record.

        Returns:
            The updated record, or None if no record exists for alert_id
        """
        with self.record_lock(alert_id):
            record = self._read(self._record_path(alert_id))
            if record is None:
                logger.warning(f"fail() for unknown queued alert {alert_id}")
                return None
            record = self._advance(record, reason)

        return record

    def _advance(self, record: QueuedAlertRecord, reason: Optional[str]) -> QueuedAlertRecord:
        # Caller holds the record lock
        record.attempt_count += 1
        record.last_error = reason
        delay = self.backoff_seconds(record.attempt_count)
        record.next_retry_at = (self.now() + timedelta(seconds=delay)).isoformat()

        if self._store(record):
            logger.info(
                f"Alert {record.alert_id} failed attempt {record.attempt_count}, retrying in {delay:.0f}s"
            )
        return record

    def _store(self, record: QueuedAlertRecord) -> bool:
        """
        Write a record to the pending set, or to abandoned/ once it is out
        of attempts. Returns True if it stays pending. Caller holds the lock.
        """
        if not self.is_abandoned(record):
            self._write(record)
            return True

        self._write(record, directory=self.abandoned_dir)
        self._delete(self._record_path(record.alert_id), record.alert_id)
        logger.error(
            f"Abandoned alert {record.alert_id} after {record.attempt_count} attempts "
            f"(rule {record.alert.rule_name}, file {record.alert.file_path}); "
            f"record kept in {self.abandoned_dir}"
        )
        return False

    def ack(self, alert_id: str) -> bool:
        """
        Remove a delivered record.

        Returns:
            True if a record was deleted, False if none existed
        """
        with self.record_lock(alert_id):
            removed = self._delete(self._record_path(alert_id), alert_id)
        if removed:
            logger.debug(f"Acked queued alert {alert_id}")
        return removed

    def get(self, alert_id: str) -> Optional[QueuedAlertRecord]:
        path = self._record_path(alert_id)
        if not path.exists():
            return None
        return self._read(path)

    def list_records(self) -> List[QueuedAlertRecord]:
        """All pending records, oldest first."""
        records = []
        for path in self._record_files():
            record = self._read(path)
            if record is not None:
                records.append(record)
        records.sort(key=lambda r: (_parse_timestamp(r.first_queued_at), r.alert_id))
        return records

    def list_abandoned(self) -> List[QueuedAlertRecord]:
        if not self.abandoned_dir.is_dir():
            return []
        records = []
        for path in sorted(self.abandoned_dir.glob(f"*{RECORD_SUFFIX}")):
            record = self._read(path)
            if record is not None:
                records.append(record)
        return records

    def drain_due(self, now: Optional[datetime] = None) -> List[QueuedAlertRecord]:
        """
        Records whose next retry time has elapsed, earliest due first.

        Records stay in storage until ack() or fail() is called for them.
        """
        moment = now or self.now()
        due = [
            record for record in self.list_records()
            if _parse_timestamp(record.next_retry_at) <= moment
        ]
        due.sort(key=lambda r: (_parse_timestamp(r.next_retry_at), _parse_timestamp(r.first_queued_at)))
        return due

    def make_due(self, alert_id: str) -> bool:
        """Schedule a queued record for immediate retry."""
        with self.record_lock(alert_id):
            record = self._read(self._record_path(alert_id)) if self._record_path(alert_id).exists() else None
            if record is None:
                return False
            record.next_retry_at = self.now().isoformat()
            self._write(record)
        return True

    def __len__(self) -> int:
        return len(self._record_files())

    def __contains__(self, alert_id: object) -> bool:
        if not isinstance(alert_id, str):
            return False
        return self._record_path(alert_id).exists()

    def __repr__(self) -> str:
        return f"DurableQueue({str(self.directory)!r}, max_attempts={self.max_attempts})"


# =============================================================================
# PERIODIC SWEEP
# =============================================================================

@dataclass
class SweepResult:
    """Counts for one sweep pass."""
    attempted: int = 0
    delivered: int = 0
    failed: int = 0


class RetrySweeper:
    """
    Periodically re-delivers due records from a DurableQueue.

    Runs one sweep immediately on start (picking up records left by a
    previous process), then one every `interval` seconds. stop() lets the
    delivery in flight finish before the thread exits.
    """

    def __init__(
        self,
        queue: DurableQueue,
        manager: "DeliveryManager",
        interval: float = 15.0,
        on_fatal: Optional[Callable[[Exception], None]] = None,
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.queue = queue
        self.manager = manager
        self.interval = interval
        self.on_fatal = on_fatal

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def sweep_once(self, now: Optional[datetime] = None) -> SweepResult:
        """Retry every due record once."""
        result = SweepResult()
        for record in self.queue.drain_due(now):
            if self._stop_event.is_set():
                break
            result.attempted += 1
            outcome = self.manager.retry(record)
            if outcome.delivered:
                result.delivered += 1
            else:
                result.failed += 1

        if result.attempted:
            logger.info(
                f"Retry sweep: {result.delivered} delivered, {result.failed} still failing, "
                f"{len(self.queue)} pending"
            )
        return result

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, daemon=True, name="leakguard-retry-sweeper")
        self._thread.start()
        logger.debug(f"Retry sweeper started (interval {self.interval}s)")

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.sweep_once()
            except StorageUnavailableError as e:
                logger.critical(f"Durable queue unavailable, stopping retry sweeper: {e}")
                self._stop_event.set()
                if self.on_fatal is not None:
                    self.on_fatal(e)
                return
            except Exception as e:
                logger.error(f"Retry sweep failed: {e}", exc_info=True)
            self._stop_event.wait(self.interval)
