"""
LeakGuard CLI commands.

Commands:
    watch       Monitor a directory tree and deliver alerts
    scan        One-shot scan of a file or directory
    queue       Inspect or retry undelivered alerts
    register    Register this device with the collection server
"""

from .queue import add_queue_parser, cmd_queue_list, cmd_queue_retry
from .register import add_register_parser, cmd_register
from .scan import add_scan_parser, cmd_scan
from .watch import add_watch_parser, cmd_watch

__all__ = [
    # Parsers
    "add_watch_parser",
    "add_scan_parser",
    "add_queue_parser",
    "add_register_parser",
    # Commands
    "cmd_watch",
    "cmd_scan",
    "cmd_queue_list",
    "cmd_queue_retry",
    "cmd_register",
]
