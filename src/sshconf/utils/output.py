"""Rich console output helpers."""

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm

console = Console()
err_console = Console(stderr=True)

_quiet = False


def set_quiet(quiet: bool) -> None:
    """Silence info, ok and step messages."""
    global _quiet
    _quiet = quiet


def info(msg: str) -> None:
    """Print an info message."""
    if _quiet:
        return
    console.print(f"[blue]INFO:[/blue] {escape(msg)}")


def ok(msg: str) -> None:
    """Print a success message."""
    if _quiet:
        return
    console.print(f"[green]OK:[/green] {escape(msg)}")


def step(msg: str) -> None:
    """Print a step message."""
    if _quiet:
        return
    console.print(f"[magenta]STEP:[/magenta] {escape(msg)}")


def warn(msg: str) -> None:
    """Print a warning message to stderr."""
    err_console.print(f"[yellow]WARN:[/yellow] {escape(msg)}")


def error(msg: str) -> None:
    """Print an error message to stderr."""
    err_console.print(f"[red]ERROR:[/red] {escape(msg)}")


def item(msg: str) -> None:
    """Print a list item (always shown)."""
    console.print(f"  - {escape(msg)}", highlight=False)


def section(title: str) -> None:
    """Print a section header."""
    if _quiet:
        return
    console.print(f"\n[bold]=== {escape(title)} ===[/bold]")


def panel(content: str, title: str | None = None, style: str = "cyan") -> None:
    """Print content in a panel."""
    console.print(Panel(content, title=title, border_style=style))


def confirm(prompt: str, default: bool = False) -> bool:
    """Ask a yes/no question on the console."""
    return Confirm.ask(f"[yellow]{escape(prompt)}[/yellow]", default=default, console=console)
