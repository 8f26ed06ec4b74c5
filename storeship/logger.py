from rich.console import Console
from functools import lru_cache

_state = {"needs_new_line": False}


@lru_cache(maxsize=1)
def get_console() -> Console:
    """Get or create the shared Console instance"""
    return Console()


def warn(message: str) -> None:
    get_console().print(f"[yellow]{message}[/]")
    _state["needs_new_line"] = True


def add_new_line_if_none() -> None:
    """Print a blank line unless the last thing printed through here already was one."""
    if _state["needs_new_line"]:
        get_console().print()
        _state["needs_new_line"] = False


def new_line() -> None:
    get_console().print()
    _state["needs_new_line"] = False
