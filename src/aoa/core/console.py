"""Terminal output for the CLI and for agents running in PREFIX mode.

    - console / stderr_console: shared Rich consoles
    - setup_logging(): send the ``aoa`` logger through a RichHandler on stderr
    - get_logger(): named loggers under ``aoa``
    - emit_line(): print one line of agent output behind its worker tag
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler
from rich.text import Text

console = Console()
stderr_console = Console(stderr=True)


def _normalize_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def _build_handler(level: int) -> RichHandler:
    debug = level <= logging.DEBUG
    handler = RichHandler(
        console=stderr_console,
        markup=False,
        rich_tracebacks=True,
        tracebacks_show_locals=False,
        show_path=False,
        show_time=debug,
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s" if debug else "%(message)s"))
    handler.setLevel(level)
    return handler


def setup_logging(level: str | int = logging.INFO, verbose: bool = False) -> logging.Logger:
    """Route logging through Rich on stderr and return the ``aoa`` logger.

    Safe to call again: the CLI callback configures logging from the
    environment, and ``start`` re-applies the level from its --config file.
    Other libraries only reach the console at WARNING and above.
    """
    numeric_level = logging.DEBUG if verbose else _normalize_level(level)
    handler = _build_handler(numeric_level)

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.WARNING)
    root.addHandler(handler)

    logger = logging.getLogger("aoa")
    logger.handlers.clear()
    logger.setLevel(numeric_level)
    logger.propagate = False
    logger.addHandler(handler)

    return logger


def get_console(stderr: bool = False) -> Console:
    return stderr_console if stderr else console


def get_logger(name: str | None = None) -> logging.Logger:
    return logging.getLogger(name or "aoa")


def emit_line(prefix: str, line: str, *, stderr: bool = False) -> None:
    """Print a subprocess output line tagged with its worker prefix.

    The line is written as plain text so brackets or markup produced by the
    agent are never interpreted by Rich.
    """
    target = get_console(stderr)
    text = Text(f"[{prefix}] ", style="dim red" if stderr else "dim cyan")
    text.append(line)
    target.print(text, soft_wrap=True, highlight=False)
