"""Console output shared by every part of tunepress."""

from rich.console import Console
from rich.markup import escape

console = Console()

# Global debug flag, flipped by the --debug option
DEBUG = False


def set_debug(enabled: bool):
    global DEBUG
    DEBUG = enabled


def debug(message: str):
    if DEBUG:
        console.print(f"[dim]Debug: {escape(message)}[/dim]", highlight=False)


def info(message: str):
    console.print(f"[cyan]{escape(message)}[/cyan]", highlight=False)


def warning(message: str):
    console.print(f"[yellow]Warning: {escape(message)}[/yellow]", highlight=False)


def error(message: str):
    console.print(f"[red]{escape(message)}[/red]", highlight=False)
