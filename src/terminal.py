"""Operator-facing console output with colored severity markers."""

from rich.console import Console
from rich.text import Text

_console = Console(highlight=False)

_YES = ('y', 'yes')
_NO = ('n', 'no')


def get_console() -> Console:
    return _console


def set_stderr(enabled: bool = True) -> None:
    """Send console output to stderr, keeping stdout for machine-readable data."""
    global _console
    _console = Console(highlight=False, stderr=enabled)


def header(text: str) -> None:
    _console.print(Text(text, style="bold green"))
    _console.print("=" * 62)


def step(text: str) -> None:
    _console.print(Text(text, style="yellow"))


def detail(text: str, dim: bool = False) -> None:
    _console.print(Text(text, style="dim" if dim else ""))


def info(text: str) -> None:
    _console.print(Text(text, style="bold blue"))


def success(text: str) -> None:
    _console.print(Text(f"✓ {text}", style="green"))


def warn(text: str) -> None:
    _console.print(Text(text, style="bold yellow"))


def error(text: str) -> None:
    _console.print(Text(f"✗ {text}", style="bold red"))


def url(text: str) -> None:
    _console.print(Text(f"   {text}", style="underline green"))


def confirm(question: str) -> bool:
    """Ask a yes/no question until the operator gives a usable answer."""
    while True:
        answer = _console.input(f"{question} (y/n): ").strip().lower()
        if answer in _YES:
            return True
        if answer in _NO:
            return False
        _console.print("Please answer 'y' for yes or 'n' for no")
