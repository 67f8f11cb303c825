"""
LeakGuard watch command.

Runs the monitor in the foreground until Ctrl+C.

Usage:
    leakguard watch /data
    leakguard watch /data --endpoint https://dlp.example.com --scan-existing

Exit codes:
    0  Stopped by the user
    2  The durable alert queue became unavailable
"""

from pathlib import Path

from ...agent.service import MonitorService
from ...config import MonitorConfig
from ...logging_config import get_logger
from ..output import echo, error, summary_box

logger = get_logger(__name__)


def config_from_args(args) -> MonitorConfig:
    """Environment-based config with CLI flags applied on top."""
    config = MonitorConfig.from_env(
        watch_dir=args.directory,
        device_id=args.device_id,
        api_endpoint=args.endpoint,
    )
    if args.queue_dir:
        config.queue_dir = Path(args.queue_dir).expanduser()
    if args.rules:
        config.rules_file = Path(args.rules).expanduser()
    if args.scan_existing:
        config.scan_existing = True
    if args.max_attempts is not None:
        config.max_attempts = args.max_attempts
    # Re-run validation for the overridden values
    config.__post_init__()
    return config


def cmd_watch(args) -> int:
    """Execute the watch command."""
    directory = Path(args.directory)
    if not directory.is_dir():
        error(f"Not a directory: {directory}")
        return 1

    config = config_from_args(args)
    service = MonitorService(config)

    summary_box("LeakGuard", [
        ("Watching", config.watch_dir),
        ("Device", config.device_id),
        ("Endpoint", config.alerts_url),
        ("Queue", config.queue_dir),
        ("Rules", ", ".join(service.registry.names)),
    ])
    echo("Press Ctrl+C to stop.")

    exit_code = service.run()
    if exit_code != 0:
        error("Alert queue storage is unavailable; stopped to avoid losing alerts")
    return exit_code


def add_watch_parser(subparsers):
    """Add the watch subparser."""
    parser = subparsers.add_parser(
        "watch",
        help="Monitor a directory and send alerts for sensitive data",
    )
    parser.add_argument(
        "directory",
        help="Directory tree to monitor",
    )
    parser.add_argument(
        "--endpoint",
        help="Collection server base URL (default: LEAKGUARD_API_ENDPOINT)",
    )
    parser.add_argument(
        "--device-id",
        help="Device id (default: LEAKGUARD_DEVICE_ID or registration file)",
    )
    parser.add_argument(
        "--queue-dir",
        help="Directory for undelivered alerts (default: ~/.leakguard/failed_alerts)",
    )
    parser.add_argument(
        "--rules",
        metavar="FILE",
        help="JSON file with additional pattern rules",
    )
    parser.add_argument(
        "--max-attempts",
        type=int,
        help="Abandon an alert after this many failed deliveries (default: never)",
    )
    parser.add_argument(
        "--scan-existing",
        action="store_true",
        help="Scan files already present before watching for changes",
    )
    parser.set_defaults(func=cmd_watch)

    return parser
