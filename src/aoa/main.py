from __future__ import annotations

import logging
import signal
from dataclasses import dataclass
from pathlib import Path

import typer
from rich import box
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .commands.common import warn_safe_mode
from .commands.start import start
from .core.config import load_config
from .core.console import get_console, setup_logging

app = typer.Typer(
    help="aoa: dispatch an army of coding agents over isolated git worktrees.",
    no_args_is_help=True,
)
logger = logging.getLogger(__name__)


class ApplicationLifecycle:
    """Signal handling for the CLI process.

    SIGTERM is turned into KeyboardInterrupt so asyncio unwinds the worker
    tasks and every workspace teardown still runs.
    """

    def __init__(self) -> None:
        self._registered = False

    def register_signal_handlers(self) -> None:
        if self._registered:
            return
        signal.signal(signal.SIGTERM, signal.default_int_handler)
        self._registered = True


@dataclass
class AppState:
    logger: logging.Logger
    verbose: bool
    lifecycle: ApplicationLifecycle


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    level = "DEBUG" if verbose else load_config()[0].log_level
    app_logger = setup_logging(level=level, verbose=verbose)

    lifecycle = ApplicationLifecycle()
    lifecycle.register_signal_handlers()

    ctx.obj = AppState(logger=app_logger, verbose=verbose, lifecycle=lifecycle)


@app.command("config")
def show_config(
    config: Path | None = typer.Option(
        None, "--config", "-c", help="Path to an aoa config file (JSON or TOML)."
    ),
) -> None:
    """Show the active configuration and where it came from."""
    loaded, meta = load_config(config_path=config)
    warn_safe_mode(meta)

    table = Table(title="Config", box=box.SIMPLE, expand=True)
    table.add_column("Key", style="cyan", no_wrap=True)
    table.add_column("Value", style="white")

    for section, values in loaded.model_dump().items():
        if isinstance(values, dict):
            for key, value in values.items():
                table.add_row(f"{section}.{key}", escape(str(value)))
        else:
            table.add_row(section, escape(str(values)))

    console = get_console()
    console.print(table)

    meta_lines = [
        f"Path: {meta.path or '(none)'}",
        "File loaded: yes" if meta.file_loaded else "File loaded: no (using defaults + env)",
    ]
    if meta.env_overrides:
        meta_lines.append("Env overrides: " + ", ".join(sorted(meta.env_overrides)))

    console.print(Panel(escape("\n".join(meta_lines)), title="Config source", box=box.SIMPLE))


@app.command("version")
def show_version() -> None:
    """Print the aoa version."""
    get_console().print(__version__)


app.command("start")(start)


def cli() -> None:
    app()


if __name__ == "__main__":
    cli()
