"""
LeakGuard Exception Hierarchy.

Provides structured error types so that each stage of the scan-and-deliver
pipeline can decide locally whether a failure is skippable, retryable, or
fatal for the whole monitor.

Exception Hierarchy:
    LeakGuardError (base)
    ├── ConfigurationError
    ├── ExtractError
    │   ├── UnsupportedFormatError
    │   ├── CorruptFileError
    │   ├── ArchiveDepthExceededError
    │   ├── EncodingError
    │   └── ExtractIOError            (transient)
    ├── DetectError
    │   └── RuleTimeoutError
    ├── DeliveryError                 (transient)
    │   ├── NetworkError
    │   ├── DeliveryTimeoutError
    │   └── EndpointRejectedError
    ├── QueueError
    │   └── StorageUnavailableError   (fatal)
    └── RegistrationError

Usage:
    from leakguard.core.exceptions import (
        ExtractError,
        ExtractIOError,
        UnsupportedFormatError,
        StorageUnavailableError,
    )

    try:
        content = extract(path)
    except UnsupportedFormatError:
        # Not a format we scan - skip quietly
    except ExtractIOError:
        # File busy or vanished - retry a few times
    except ExtractError:
        # Corrupt or undecodable - log and move on
"""

from typing import Optional

__all__ = [
    "LeakGuardError",
    "ConfigurationError",
    "ExtractError",
    "UnsupportedFormatError",
    "CorruptFileError",
    "ArchiveDepthExceededError",
    "EncodingError",
    "ExtractIOError",
    "DetectError",
    "RuleTimeoutError",
    "DeliveryError",
    "NetworkError",
    "DeliveryTimeoutError",
    "EndpointRejectedError",
    "QueueError",
    "StorageUnavailableError",
    "RegistrationError",
]


class LeakGuardError(Exception):
    """
    Base exception for all LeakGuard errors.

    All LeakGuard exceptions inherit from this class, making it easy
    to catch any library error while still allowing specific handling.
    """

    is_transient: bool = False

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (details: {self.details})"
        return self.message


class ConfigurationError(LeakGuardError):
    """Invalid configuration or pattern rule definition."""
    pass


# =============================================================================
# EXTRACTION ERRORS
# =============================================================================

class ExtractError(LeakGuardError):
    """
    Content extraction failed for a file.

    Any text extracted before the failure is discarded; the file is never
    partially scanned.
    """

    def __init__(self, message: str, path: Optional[str] = None, **kwargs):
        super().__init__(message, kwargs)
        self.path = path

    @property
    def kind(self) -> str:
        """Short error kind used in log lines."""
        return type(self).__name__


class UnsupportedFormatError(ExtractError):
    """File format is not recognized. Callers should skip, not crash."""
    pass


class CorruptFileError(ExtractError):
    """Parser error while reading a PDF, workbook, or archive."""
    pass


class ArchiveDepthExceededError(ExtractError):
    """
    Archive nesting is deeper than the configured bound.

    Raised instead of expanding further so that nested archives cannot
    exhaust memory or time.
    """

    def __init__(self, message: str, path: Optional[str] = None, max_depth: Optional[int] = None, **kwargs):
        super().__init__(message, path, **kwargs)
        self.max_depth = max_depth


class EncodingError(ExtractError):
    """Text content could not be decoded."""
    pass


class ExtractIOError(ExtractError):
    """
    File could not be opened or read.

    Usually transient (file still being written, locked, or briefly
    missing). Eligible for a bounded number of re-attempts.
    """

    is_transient = True


# =============================================================================
# DETECTION ERRORS
# =============================================================================

class DetectError(LeakGuardError):
    """Error while evaluating a detection rule. Never fatal."""
    pass


class RuleTimeoutError(DetectError):
    """A rule exceeded its evaluation time budget for a file."""

    def __init__(self, rule_name: str, timeout_seconds: float, path: Optional[str] = None):
        super().__init__(
            f"Rule {rule_name} timed out after {timeout_seconds:.2f}s",
            {"rule": rule_name, "path": path},
        )
        self.rule_name = rule_name
        self.timeout_seconds = timeout_seconds
        self.path = path


# =============================================================================
# DELIVERY ERRORS - absorbed by the durable queue
# =============================================================================

class DeliveryError(LeakGuardError):
    """
    Alert delivery to the remote endpoint failed.

    Delivery errors never propagate as failures of the monitor: the alert
    is handed to the durable queue and retried with backoff.
    """

    is_transient = True

    def __init__(self, message: str, url: Optional[str] = None, **kwargs):
        super().__init__(message, kwargs)
        self.url = url


class NetworkError(DeliveryError):
    """Connection could not be established or was dropped."""
    pass


class DeliveryTimeoutError(DeliveryError):
    """The endpoint did not answer within the request timeout."""
    pass


class EndpointRejectedError(DeliveryError):
    """The endpoint answered with a non-success status."""

    def __init__(self, message: str, url: Optional[str] = None, status_code: Optional[int] = None, **kwargs):
        super().__init__(message, url, status_code=status_code, **kwargs)
        self.status_code = status_code


# =============================================================================
# QUEUE ERRORS - fatal
# =============================================================================

class QueueError(LeakGuardError):
    """Durable queue operation failed."""
    pass


class StorageUnavailableError(QueueError):
    """
    The local durable store cannot be written or read.

    This breaks the at-least-once guarantee, so it is the one error that
    stops the monitor.
    """

    def __init__(self, message: str, directory: Optional[str] = None, operation: Optional[str] = None, **kwargs):
        super().__init__(message, {"directory": directory, "operation": operation, **kwargs})
        self.directory = directory
        self.operation = operation


class RegistrationError(LeakGuardError):
    """Device registration with the collection server failed."""
    pass
