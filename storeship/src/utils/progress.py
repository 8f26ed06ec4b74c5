from contextlib import contextmanager
from typing import Iterator, Optional

from storeship.logger import get_console


@contextmanager
def spinner(message: str, fail_message: Optional[str] = None) -> Iterator[None]:
    """Show a spinner while the block runs, then mark it succeeded or failed.

    Exceptions raised inside the block are re-raised after the spinner has
    been marked as failed.
    """
    console = get_console()
    try:
        with console.status(f"[blue]{message}"):
            yield
    except BaseException:
        console.print(f"[red]✖ {fail_message or message}[/]")
        raise
    console.print(f"[green]✔ {message}[/]")
