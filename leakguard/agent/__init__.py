"""
LeakGuard agent: the long-running monitor.

    >>> from leakguard.agent import MonitorService
    >>> from leakguard.config import MonitorConfig
    >>> MonitorService(MonitorConfig.from_env()).run()
"""

from .monitor import FileEventLoop, LoopStats, PathState, ScanReport
from .registration import (
    AgentConfig,
    RegistrationRequest,
    RegistrationResponse,
    RegistrationService,
    is_registered,
    load_agent_config,
)
from .service import MonitorService, build_registry
from .watcher import EventType, FileWatcher, WatchEvent, WatcherConfig

__all__ = [
    "FileEventLoop",
    "LoopStats",
    "PathState",
    "ScanReport",
    "MonitorService",
    "build_registry",
    "FileWatcher",
    "WatchEvent",
    "WatcherConfig",
    "EventType",
    "RegistrationService",
    "RegistrationRequest",
    "RegistrationResponse",
    "AgentConfig",
    "is_registered",
    "load_agent_config",
]
