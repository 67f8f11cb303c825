"""Core types and errors shared by every LeakGuard component."""

from .exceptions import (
    LeakGuardError,
    ConfigurationError,
    ExtractError,
    UnsupportedFormatError,
    CorruptFileError,
    ArchiveDepthExceededError,
    EncodingError,
    ExtractIOError,
    DetectError,
    RuleTimeoutError,
    DeliveryError,
    NetworkError,
    DeliveryTimeoutError,
    EndpointRejectedError,
    QueueError,
    StorageUnavailableError,
    RegistrationError,
)
from .types import (
    FormatKind,
    PatternRule,
    ScannedContent,
    Finding,
    Alert,
    QueuedAlertRecord,
    DeliveryStatus,
    DeliveryOutcome,
)

__all__ = [
    # Errors
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
    # Types
    "FormatKind",
    "PatternRule",
    "ScannedContent",
    "Finding",
    "Alert",
    "QueuedAlertRecord",
    "DeliveryStatus",
    "DeliveryOutcome",
]
