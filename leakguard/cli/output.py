"""
LeakGuard CLI output utilities.

Rich-based output for user-facing CLI messages and tables, kept separate
from operational logging (which goes to stderr via logging_config).

Usage:
    from leakguard.cli.output import echo, error, table

    echo("Scanning 3 files...")
    error("File not found")
    table(headers=["Rule", "File"], rows=[("email", "/data/a.txt")], title="Findings")
"""

from typing import Any, List, Optional, Tuple

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

# Main console for stdout (user output)
console = Console()

# Error console for stderr
_err_console = Console(stderr=True)


def set_color_enabled(enabled: bool) -> None:
    """Disable colors globally (--no-color)."""
    global console, _err_console
    console = Console(no_color=not enabled)
    _err_console = Console(stderr=True, no_color=not enabled)


def echo(message: str, style: Optional[str] = None, nl: bool = True) -> None:
    """Print a message to the user."""
    console.print(message, style=style, end="\n" if nl else "")


def raw(text: str) -> None:
    """Print text exactly as given (JSON output), without rich markup."""
    console.print(text, markup=False, highlight=False, emoji=False, soft_wrap=True)


def error(message: str) -> None:
    """Print an error message to stderr."""
    _err_console.print(f"[bold red]Error:[/bold red] {message}")


def warn(message: str) -> None:
    console.print(f"[yellow]Warning:[/yellow] {message}")


def success(message: str) -> None:
    console.print(f"[green]{message}[/green]")


def dim(message: str) -> None:
    console.print(f"[dim]{message}[/dim]")


def table(
    headers: List[str],
    rows: List[Tuple[Any, ...]],
    title: Optional[str] = None,
    show_lines: bool = False,
) -> None:
    """
    Print a formatted table.

    Args:
        headers: Column headers
        rows: List of row tuples
        title: Optional table title
        show_lines: Show row separator lines
    """
    t = Table(title=title, show_lines=show_lines)

    for header in headers:
        t.add_column(header)

    for row in rows:
        t.add_row(*[str(cell) for cell in row])

    console.print(t)


def summary_box(title: str, items: List[Tuple[str, Any]]) -> None:
    """Print a summary box with key-value pairs."""
    content = "\n".join(f"[bold]{label}:[/bold] {value}" for label, value in items)
    console.print(Panel(content, title=title, border_style="blue"))


def prompt(message: str, default: str = "") -> str:
    """Ask for a line of input; returns default on empty input."""
    suffix = f" [{default}]" if default else ""
    response = console.input(f"{message}{suffix}: ").strip()
    return response or default
