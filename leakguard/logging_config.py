"""
LeakGuard logging configuration.

Provides structured logging with JSON output for production and
human-readable console output for development.

Matched values are never written to logs. Log lines name the file path,
the rule, and the error kind only.

Usage:
    from leakguard.logging_config import setup_logging, get_audit_logger

    # In CLI main:
    setup_logging(verbose=True, log_file="/var/log/leakguard.log")

    # For audit events:
    audit = get_audit_logger()
    audit.alert_queued(alert_id="...", path="/data/file.txt", rule="email", attempt_count=1)
"""

import logging
import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Any

AUDIT_LOGGER_NAME = "audit.leakguard"

_STANDARD_RECORD_KEYS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "message", "taskName",
})


# =============================================================================
# FORMATTERS
# =============================================================================

class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs one JSON object per line for easy parsing by log aggregators.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.levelno >= logging.WARNING or record.levelno == logging.DEBUG:
            log_data["source"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Fields passed via `extra`
        for key, value in record.__dict__.items():
            if key not in _STANDARD_RECORD_KEYS:
                log_data[key] = value

        return json.dumps(log_data, default=str)


class ConsoleFormatter(logging.Formatter):
    """
    Human-readable console formatter with optional colors.

    Format: LEVEL: message (INFO lines are printed bare)
    """

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        level = record.levelname
        message = record.getMessage()

        if level == "INFO":
            return message

        if self.use_colors:
            color = self.COLORS.get(level, "")
            return f"{color}{level}{self.RESET}: {message}"
        return f"{level}: {message}"


# =============================================================================
# AUDIT LOGGER
# =============================================================================

class AuditLogger:
    """
    Structured audit logger for alert lifecycle events.

    Audit events are always logged at INFO (ERROR for abandonment) with
    structured data, under the dedicated 'audit.leakguard' namespace.

    Usage:
        audit = get_audit_logger()
        audit.log("monitor_start", watch_dir="/data")
        audit.alert_delivered(alert_id="...", path="/data/a.txt", rule="email")
    """

    def __init__(self, logger: logging.Logger):
        self._logger = logger

    def log(self, event: str, level: int = logging.INFO, **kwargs: Any) -> None:
        """
        Log an audit event with structured data.

        Args:
            event: Event type (e.g., "alert_queued", "monitor_start")
            level: Logging level, INFO unless the event needs attention
            **kwargs: Additional structured data for the event
        """
        extra = {
            "audit_event": event,
            "audit_data": kwargs,
            "audit_timestamp": datetime.now(timezone.utc).isoformat(),
        }
        self._logger.log(level, f"AUDIT: {event}", extra=extra)

    # Convenience methods for the alert lifecycle
    def alert_detected(self, alert_id: str, path: str, rule: str, **kwargs) -> None:
        self.log("alert_detected", alert_id=alert_id, path=path, rule=rule, **kwargs)

    def alert_delivered(self, alert_id: str, path: str, rule: str, **kwargs) -> None:
        self.log("alert_delivered", alert_id=alert_id, path=path, rule=rule, **kwargs)

    def alert_queued(self, alert_id: str, path: str, rule: str, attempt_count: int, **kwargs) -> None:
        self.log("alert_queued", alert_id=alert_id, path=path, rule=rule, attempt_count=attempt_count, **kwargs)

    def alert_abandoned(self, alert_id: str, path: str, rule: str, attempt_count: int, **kwargs) -> None:
        self.log(
            "alert_abandoned", level=logging.ERROR,
            alert_id=alert_id, path=path, rule=rule, attempt_count=attempt_count, **kwargs,
        )

    def monitor_start(self, watch_dir: str, **kwargs) -> None:
        self.log("monitor_start", watch_dir=watch_dir, **kwargs)

    def monitor_stop(self, watch_dir: str, **kwargs) -> None:
        self.log("monitor_stop", watch_dir=watch_dir, **kwargs)


_audit_logger: Optional[AuditLogger] = None


def get_audit_logger() -> AuditLogger:
    """Get the audit logger instance."""
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = AuditLogger(logging.getLogger(AUDIT_LOGGER_NAME))
    return _audit_logger


# =============================================================================
# SETUP FUNCTIONS
# =============================================================================

def setup_logging(
    verbose: bool = False,
    quiet: bool = False,
    log_file: Optional[str] = None,
    json_format: bool = False,
    no_color: bool = False,
) -> None:
    """
    Configure logging for the application.

    Args:
        verbose: Enable DEBUG level logging
        quiet: Only show ERROR and above
        log_file: Path to log file (uses JSON format automatically)
        json_format: Use JSON format for console output
        no_color: Disable colors in console output

    Examples:
        # Development - human readable
        setup_logging(verbose=True)

        # Production - JSON to file
        setup_logging(log_file="/var/log/leakguard.log")
    """
    if quiet:
        level = logging.ERROR
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    root_logger = logging.getLogger("leakguard")
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    if json_format:
        console_handler.setFormatter(JSONFormatter())
    else:
        console_handler.setFormatter(ConsoleFormatter(use_colors=not no_color))
    root_logger.addHandler(console_handler)

    # File handler (always JSON for machine parsing)
    file_handler = None
    if log_file:
        file_path = Path(log_file)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

    # Audit trail shares the handlers but is never filtered below INFO
    audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)
    audit_logger.setLevel(logging.INFO)
    audit_logger.handlers.clear()
    audit_logger.propagate = False
    if not quiet:
        audit_logger.addHandler(console_handler)
    if file_handler is not None:
        audit_logger.addHandler(file_handler)

    # Suppress noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("watchdog").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger with the leakguard namespace.

    Args:
        name: Logger name, typically __name__
    """
    if name.startswith("leakguard"):
        return logging.getLogger(name)
    return logging.getLogger(f"leakguard.{name}")
