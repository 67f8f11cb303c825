"""Configuration for the LeakGuard monitor."""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .core.exceptions import ConfigurationError
from .scanner.constants import MAX_ARCHIVE_NESTING_DEPTH, RULE_TIMEOUT

logger = logging.getLogger(__name__)

DEFAULT_AGENT_CONFIG_FILE = "agent_config.json"

_TRUE_VALUES = ("1", "true", "yes")


def default_data_dir() -> Path:
    """
    Default data directory, checked in order:
    1. LEAKGUARD_HOME env var (if set)
    2. ~/.leakguard
    """
    env_dir = os.environ.get("LEAKGUARD_HOME")
    if env_dir:
        return Path(env_dir).expanduser()
    return Path.home() / ".leakguard"


def default_queue_dir() -> Path:
    return default_data_dir() / "failed_alerts"


def agent_config_path() -> Path:
    """Location of the registration file written by `leakguard register`."""
    return Path(os.environ.get("LEAKGUARD_AGENT_CONFIG", DEFAULT_AGENT_CONFIG_FILE)).expanduser()


def _split_patterns(value: str) -> List[str]:
    return [p.strip() for p in value.split(",") if p.strip()]


@dataclass
class MonitorConfig:
    """
    LeakGuard monitor configuration.

    Values only: every component receives what it needs through its
    constructor, nothing reads this object as global state.
    """

    # Identity and endpoint
    watch_dir: Path
    device_id: str
    api_endpoint: str
    api_key: Optional[str] = None

    # Durable queue
    queue_dir: Path = field(default_factory=default_queue_dir)
    retry_base_seconds: float = 30.0
    retry_max_backoff_seconds: float = 3600.0
    max_attempts: Optional[int] = None  # None = retry forever
    sweep_interval_seconds: float = 15.0

    # Event loop
    debounce_seconds: float = 0.5
    max_workers: int = 4
    io_retries: int = 3
    io_retry_delay: float = 0.5
    scan_existing: bool = False
    include_patterns: Optional[List[str]] = None
    exclude_patterns: Optional[List[str]] = None

    # Delivery
    request_timeout: float = 10.0

    # Detection
    rule_timeout: float = RULE_TIMEOUT
    max_archive_depth: int = MAX_ARCHIVE_NESTING_DEPTH
    rules_file: Optional[Path] = None

    def __post_init__(self):
        """Validate configuration values."""
        self.watch_dir = Path(self.watch_dir).expanduser()
        self.queue_dir = Path(self.queue_dir).expanduser()
        if self.rules_file is not None:
            self.rules_file = Path(self.rules_file).expanduser()

        if not self.device_id or not self.device_id.strip():
            raise ConfigurationError("device_id must not be empty")

        if not self.api_endpoint.startswith(("http://", "https://")):
            raise ConfigurationError(
                f"Invalid api_endpoint '{self.api_endpoint}'. Must be an http(s) URL",
            )

        if self.retry_base_seconds <= 0:
            raise ConfigurationError("retry_base_seconds must be positive")

        if self.retry_max_backoff_seconds < self.retry_base_seconds:
            raise ConfigurationError("retry_max_backoff_seconds must be >= retry_base_seconds")

        if self.max_attempts is not None and self.max_attempts < 1:
            raise ConfigurationError("max_attempts must be at least 1 when set")

        if self.sweep_interval_seconds <= 0:
            raise ConfigurationError("sweep_interval_seconds must be positive")

        if self.debounce_seconds < 0:
            raise ConfigurationError("debounce_seconds must not be negative")

        if self.max_workers < 1:
            raise ConfigurationError("max_workers must be at least 1")

        if self.io_retries < 0:
            raise ConfigurationError("io_retries must not be negative")

        if self.request_timeout <= 0 or self.rule_timeout <= 0:
            raise ConfigurationError("request_timeout and rule_timeout must be positive")

        if self.max_archive_depth < 0:
            raise ConfigurationError("max_archive_depth must not be negative")

    @property
    def alerts_url(self) -> str:
        """Endpoint that receives one POST per alert."""
        return self.api_endpoint.rstrip("/") + "/alerts"

    @classmethod
    def from_env(
        cls,
        watch_dir: Optional[str] = None,
        device_id: Optional[str] = None,
        api_endpoint: Optional[str] = None,
    ) -> "MonitorConfig":
        """
        Create config from environment variables.

        Explicit arguments (e.g. from CLI flags) take precedence over the
        environment.

        The device id and api key fall back to the registration file when
        LEAKGUARD_DEVICE_ID / LEAKGUARD_API_KEY are not set.
        """
        registered = {}
        config_file = agent_config_path()
        if config_file.exists():
            try:
                registered = json.loads(config_file.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                raise ConfigurationError(f"Cannot read registration file {config_file}: {e}") from e

        device_id = device_id or os.environ.get("LEAKGUARD_DEVICE_ID") or registered.get("device_id")
        if not device_id:
            raise ConfigurationError(
                "No device id configured. Set LEAKGUARD_DEVICE_ID or run `leakguard register`."
            )

        api_endpoint = api_endpoint or os.environ.get("LEAKGUARD_API_ENDPOINT")
        if not api_endpoint:
            raise ConfigurationError("No endpoint configured. Set LEAKGUARD_API_ENDPOINT.")

        watch = watch_dir or os.environ.get("LEAKGUARD_WATCH_DIR")
        if not watch:
            raise ConfigurationError("No watch directory given. Set LEAKGUARD_WATCH_DIR.")

        kwargs = {}
        try:
            if env_queue := os.environ.get("LEAKGUARD_QUEUE_DIR"):
                kwargs["queue_dir"] = Path(env_queue)

            if env_base := os.environ.get("LEAKGUARD_RETRY_BASE_SECONDS"):
                kwargs["retry_base_seconds"] = float(env_base)

            if env_max := os.environ.get("LEAKGUARD_RETRY_MAX_BACKOFF_SECONDS"):
                kwargs["retry_max_backoff_seconds"] = float(env_max)

            if env_attempts := os.environ.get("LEAKGUARD_MAX_ATTEMPTS"):
                kwargs["max_attempts"] = int(env_attempts)

            if env_sweep := os.environ.get("LEAKGUARD_SWEEP_INTERVAL"):
                kwargs["sweep_interval_seconds"] = float(env_sweep)

            if env_debounce := os.environ.get("LEAKGUARD_DEBOUNCE_SECONDS"):
                kwargs["debounce_seconds"] = float(env_debounce)

            if env_workers := os.environ.get("LEAKGUARD_MAX_WORKERS"):
                kwargs["max_workers"] = int(env_workers)

            if env_timeout := os.environ.get("LEAKGUARD_REQUEST_TIMEOUT"):
                kwargs["request_timeout"] = float(env_timeout)

            if env_rule_timeout := os.environ.get("LEAKGUARD_RULE_TIMEOUT"):
                kwargs["rule_timeout"] = float(env_rule_timeout)

            if env_depth := os.environ.get("LEAKGUARD_MAX_ARCHIVE_DEPTH"):
                kwargs["max_archive_depth"] = int(env_depth)
        except ValueError as e:
            raise ConfigurationError(f"Invalid numeric environment value: {e}") from e

        if env_rules := os.environ.get("LEAKGUARD_RULES_FILE"):
            kwargs["rules_file"] = Path(env_rules)

        if env_existing := os.environ.get("LEAKGUARD_SCAN_EXISTING"):
            kwargs["scan_existing"] = env_existing.lower() in _TRUE_VALUES

        if env_include := os.environ.get("LEAKGUARD_INCLUDE"):
            kwargs["include_patterns"] = _split_patterns(env_include)

        if env_exclude := os.environ.get("LEAKGUARD_EXCLUDE"):
            kwargs["exclude_patterns"] = _split_patterns(env_exclude)

        return cls(
            watch_dir=Path(watch),
            device_id=device_id,
            api_endpoint=api_endpoint,
            api_key=os.environ.get("LEAKGUARD_API_KEY") or registered.get("api_key"),
            **kwargs,
        )
