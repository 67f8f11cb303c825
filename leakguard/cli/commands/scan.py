"""
LeakGuard scan command.

One-shot scan of a file or directory with the same extract -> detect
pipeline the monitor uses. With --deliver, alerts are sent to the
configured endpoint (and queued on failure) exactly as the monitor would.

Usage:
    leakguard scan <path>
    leakguard scan ./data --recursive --json
    leakguard scan ./export.zip --deliver
"""

import json
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from ...agent.monitor import FileEventLoop, ScanReport
from ...agent.service import build_registry
from ...config import MonitorConfig
from ...delivery.manager import DeliveryManager
from ...delivery.queue import DurableQueue
from ...logging_config import get_logger
from ...scanner.constants import MAX_ARCHIVE_NESTING_DEPTH
from ...scanner.detectors.detector import Detector
from ..output import dim, echo, error, raw, success, table

logger = get_logger(__name__)

LOCAL_DEVICE_ID = "local"


def mask_value(value: str, keep: int = 2) -> str:
    """Mask a matched value for display, keeping a few characters at each end."""
    if len(value) <= keep * 2:
        return "*" * len(value)
    return f"{value[:keep]}{'*' * min(len(value) - keep * 2, 12)}{value[-keep:]}"


def report_to_dict(report: ScanReport) -> Dict[str, Any]:
    """JSON form of a ScanReport. Matched values are masked."""
    return {
        "path": report.path,
        "format": report.format.value if report.format else None,
        "error": report.error_kind,
        "findings": [
            {"rule_name": f.rule_name, "matched": mask_value(f.matched_text)}
            for f in report.findings
        ],
        "alerts": [
            {"id": alert.id, "rule_name": alert.rule_name, "delivered": outcome.delivered}
            for alert, outcome in zip(report.alerts, report.outcomes)
        ],
    }


def iter_files(path: Path, recursive: bool = False) -> Iterator[Path]:
    """Regular files under path (or path itself), in sorted order."""
    if path.is_file():
        yield path
        return
    walker = path.rglob("*") if recursive else path.glob("*")
    for file_path in sorted(walker):
        if file_path.is_file():
            yield file_path


def _build_delivery(args) -> DeliveryManager:
    config = MonitorConfig.from_env(
        watch_dir=args.path,
        device_id=getattr(args, "device_id", None),
        api_endpoint=getattr(args, "endpoint", None),
    )
    queue = DurableQueue(
        config.queue_dir,
        base_backoff=config.retry_base_seconds,
        max_backoff=config.retry_max_backoff_seconds,
        max_attempts=config.max_attempts,
    )
    return DeliveryManager(
        config.alerts_url,
        config.device_id,
        queue,
        api_key=config.api_key,
        timeout=config.request_timeout,
    )


def run_scan(
    path: Path,
    detector: Detector,
    delivery: Optional[DeliveryManager] = None,
    recursive: bool = False,
    max_archive_depth: int = MAX_ARCHIVE_NESTING_DEPTH,
) -> List[ScanReport]:
    """Scan every file under path, one at a time."""
    device_id = delivery.device_id if delivery else LOCAL_DEVICE_ID
    loop = FileEventLoop(
        detector,
        delivery,
        device_id,
        max_workers=1,
        io_retries=1,
        io_retry_delay=0.2,
        max_archive_depth=max_archive_depth,
    )
    try:
        return [loop.scan_file(str(file_path)) for file_path in iter_files(path, recursive)]
    finally:
        loop.shutdown(wait=True)


def print_reports(reports: List[ScanReport]) -> None:
    rows = []
    for report in reports:
        if report.error_kind and report.error_kind != "UnsupportedFormatError":
            rows.append((report.path, "-", f"[red]{report.error_kind}[/red]", ""))
        for index, finding in enumerate(report.findings):
            status = ""
            if index < len(report.outcomes):
                status = "delivered" if report.outcomes[index].delivered else "queued"
            rows.append((report.path, finding.rule_name, mask_value(finding.matched_text), status))

    if rows:
        table(headers=["File", "Rule", "Match", "Alert"], rows=rows, title="Findings")
    else:
        dim("No sensitive data found.")


def cmd_scan(args) -> int:
    """Execute the scan command."""
    path = Path(args.path)
    if not path.exists():
        error(f"Path not found: {path}")
        return 1

    registry = build_registry(Path(args.rules) if args.rules else None)
    detector = Detector(registry)
    delivery = _build_delivery(args) if args.deliver else None

    try:
        reports = run_scan(
            path,
            detector,
            delivery,
            recursive=args.recursive,
            max_archive_depth=args.max_archive_depth,
        )
    finally:
        detector.close()
        if delivery is not None:
            delivery.close()

    total_findings = sum(len(r.findings) for r in reports)
    files_with_findings = sum(1 for r in reports if r.findings)
    errors = sum(1 for r in reports if r.error_kind and r.error_kind != "UnsupportedFormatError")

    logger.info(f"Scan complete: {len(reports)} files, {total_findings} findings")

    if args.json:
        raw(json.dumps({
            "summary": {
                "files_scanned": len(reports),
                "files_with_findings": files_with_findings,
                "findings": total_findings,
                "errors": errors,
            },
            "results": [report_to_dict(r) for r in reports],
        }, indent=2))
    else:
        print_reports(reports)
        echo("")
        echo(f"Scanned: {len(reports)} files")
        if files_with_findings:
            echo(f"With findings: [yellow]{files_with_findings}[/yellow] files ({total_findings} findings)")
        else:
            success("With findings: 0 files")
        if errors:
            echo(f"Errors: {errors} file(s) could not be read")

    if args.fail_on_findings and total_findings:
        return 1
    return 0


def add_scan_parser(subparsers):
    """Add the scan subparser."""
    parser = subparsers.add_parser(
        "scan",
        help="Scan files once for sensitive data",
    )
    parser.add_argument(
        "path",
        help="Path to local file or directory",
    )
    parser.add_argument(
        "--recursive", "-r",
        action="store_true",
        help="Scan directories recursively",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output results as JSON",
    )
    parser.add_argument(
        "--rules",
        metavar="FILE",
        help="JSON file with additional pattern rules",
    )
    parser.add_argument(
        "--max-archive-depth",
        type=int,
        default=MAX_ARCHIVE_NESTING_DEPTH,
        help="Deepest archive nesting level to expand",
    )
    parser.add_argument(
        "--deliver",
        action="store_true",
        help="Send alerts to the configured endpoint (queued on failure)",
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
        "--fail-on-findings",
        action="store_true",
        help="Exit with code 1 if anything is found",
    )
    parser.set_defaults(func=cmd_scan)

    return parser
