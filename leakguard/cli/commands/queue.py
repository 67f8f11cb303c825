"""
LeakGuard queue command.

Inspect and retry alerts waiting in the durable queue.

Usage:
    leakguard queue list
    leakguard queue retry            # Retry alerts whose backoff has elapsed
    leakguard queue retry --all      # Retry everything now
"""

import json
import os
from pathlib import Path

from ...config import MonitorConfig, default_queue_dir
from ...delivery.manager import DeliveryManager
from ...delivery.queue import DurableQueue, RetrySweeper
from ...logging_config import get_logger
from ..output import dim, echo, raw, success, table, warn

logger = get_logger(__name__)


def open_queue(args) -> DurableQueue:
    directory = args.queue_dir or os.environ.get("LEAKGUARD_QUEUE_DIR") or default_queue_dir()
    return DurableQueue(Path(directory).expanduser())


def cmd_queue_list(args) -> int:
    queue = open_queue(args)
    records = queue.list_records()
    abandoned = queue.list_abandoned()

    if args.json:
        raw(json.dumps({
            "pending": [r.to_dict() for r in records],
            "abandoned": [r.to_dict() for r in abandoned],
        }, indent=2))
        return 0

    if not records:
        dim(f"No pending alerts in {queue.directory}")
    else:
        table(
            headers=["Alert", "Rule", "File", "Attempts", "Next retry", "Last error"],
            rows=[
                (
                    r.alert_id, r.alert.rule_name, r.alert.file_path,
                    r.attempt_count, r.next_retry_at, r.last_error or "",
                )
                for r in records
            ],
            title=f"Pending alerts ({len(records)})",
        )

    if abandoned:
        warn(f"{len(abandoned)} abandoned alert(s) in {queue.abandoned_dir}")
    return 0


def cmd_queue_retry(args) -> int:
    config = MonitorConfig.from_env(
        watch_dir=".",
        device_id=args.device_id,
        api_endpoint=args.endpoint,
    )
    queue = open_queue(args)

    if args.all:
        for record in queue.list_records():
            queue.make_due(record.alert_id)

    with DeliveryManager(
        config.alerts_url,
        config.device_id,
        queue,
        api_key=config.api_key,
        timeout=config.request_timeout,
    ) as manager:
        result = RetrySweeper(queue, manager).sweep_once()

    if result.attempted == 0:
        dim("Nothing due for retry.")
        return 0

    echo(f"Retried {result.attempted} alert(s)")
    if result.failed:
        warn(f"{result.failed} still failing, {len(queue)} pending")
        return 1
    success(f"Delivered {result.delivered} alert(s)")
    return 0


def add_queue_parser(subparsers):
    """Add the queue subparser with list / retry actions."""
    parser = subparsers.add_parser(
        "queue",
        help="Inspect or retry undelivered alerts",
    )
    parser.add_argument(
        "--queue-dir",
        help="Queue directory (default: LEAKGUARD_QUEUE_DIR or ~/.leakguard/failed_alerts)",
    )
    actions = parser.add_subparsers(dest="queue_command", metavar="{list,retry}")
    actions.required = True

    list_parser = actions.add_parser("list", help="List pending alerts")
    list_parser.add_argument("--json", action="store_true", help="Output as JSON")
    list_parser.set_defaults(func=cmd_queue_list)

    retry_parser = actions.add_parser("retry", help="Retry pending alerts now")
    retry_parser.add_argument(
        "--all",
        action="store_true",
        help="Retry every pending alert, not only those whose backoff has elapsed",
    )
    retry_parser.add_argument("--endpoint", help="Collection server base URL")
    retry_parser.add_argument("--device-id", help="Device id")
    retry_parser.set_defaults(func=cmd_queue_retry)

    return parser
