"""Console helpers shared by the command line tools."""

import functools
import sys
from typing import Any, Callable, Optional

import click
from rich.console import Console
from rich.table import Table

console = Console()
err_console = Console(stderr=True)


def info(message: str) -> None:
    """Print an informational message."""
    console.print(f"[cyan]ℹ[/cyan] {message}")


def success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]✓[/green] {message}")


def warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow]⚠[/yellow] {message}")


def error(message: str) -> None:
    """Print an error message to stderr."""
    err_console.print(f"[red]✗[/red] {message}")


def create_table(title: Optional[str] = None) -> Table:
    """Create a table with the common style."""
    return Table(title=title, show_header=True, header_style="bold")


def print_table(table: Table) -> None:
    """Render a table to the console."""
    console.print(table)


def handle_errors(func: Callable[..., Any]) -> Callable[..., Any]:
    """
    Turn uncaught exceptions into an error message and a non-zero exit.

    click's own exit and usage exceptions pass through untouched.
    """

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except (click.exceptions.Exit, click.ClickException, SystemExit):
            raise
        except (KeyboardInterrupt, click.Abort):
            error("Operation cancelled")
            sys.exit(130)
        except Exception as e:
            error(str(e))
            sys.exit(1)

    return wrapper
