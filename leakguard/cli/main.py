"""
LeakGuard CLI - Command-line interface.

Usage:
    leakguard watch /data                     # Monitor until Ctrl+C
    leakguard scan ./report.pdf               # Scan once
    leakguard scan ./data -r --json           # Scan a tree, JSON output
    leakguard queue list                      # Inspect the retry queue
    leakguard register --url <url>            # Register this device
    leakguard --version
"""

import argparse
import sys
from typing import List, Optional

from leakguard import __version__
from leakguard.cli.output import error, echo, set_color_enabled
from leakguard.core.exceptions import ConfigurationError, LeakGuardError, StorageUnavailableError
from leakguard.logging_config import get_logger, setup_logging

logger = get_logger(__name__)

EXIT_STORAGE_UNAVAILABLE = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="leakguard",
        description="LeakGuard - watch files for sensitive data and report it",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  leakguard watch /srv/share --endpoint https://dlp.example.com
  leakguard scan ./export.zip
  leakguard queue retry --all
        """,
    )
    parser.add_argument(
        "--version", "-V",
        action="store_true",
        help="Show version and exit",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Verbose output",
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Quiet mode (errors only)",
    )
    parser.add_argument(
        "--log-file",
        metavar="PATH",
        help="Write logs to file (JSON format)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Log to stderr as JSON lines",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable colored output",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    from leakguard.cli.commands import (
        add_queue_parser,
        add_register_parser,
        add_scan_parser,
        add_watch_parser,
    )

    add_watch_parser(subparsers)
    add_scan_parser(subparsers)
    add_queue_parser(subparsers)
    add_register_parser(subparsers)

    return parser


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        echo(f"leakguard {__version__}")
        return

    setup_logging(
        verbose=args.verbose,
        quiet=args.quiet,
        log_file=args.log_file,
        json_format=args.json_logs,
        no_color=args.no_color,
    )
    if args.no_color:
        set_color_enabled(False)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    try:
        result = args.func(args)

        if isinstance(result, int):
            sys.exit(result)

    except KeyboardInterrupt:
        sys.exit(130)

    except StorageUnavailableError as e:
        logger.critical(f"Alert queue unavailable: {e}")
        error(f"Alert queue unavailable: {e.message}")
        sys.exit(EXIT_STORAGE_UNAVAILABLE)

    except ConfigurationError as e:
        error(f"Configuration error: {e.message}")
        sys.exit(1)

    except LeakGuardError as e:
        error(str(e))
        sys.exit(1)

    except PermissionError as e:
        error(f"Permission denied: {e.filename or e}")
        sys.exit(1)

    except Exception as e:
        # Stack trace is available with --verbose
        if args.verbose:
            logger.exception("Unexpected error")
        error(f"{type(e).__name__}: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
