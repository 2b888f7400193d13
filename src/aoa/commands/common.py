from __future__ import annotations

from rich.markup import escape
from rich.panel import Panel

from aoa.core.config import ConfigLoadResult
from aoa.core.console import get_console


def warn_safe_mode(meta: ConfigLoadResult) -> None:
    """Show the Safe Mode panel when the config file could not be used."""
    if not meta.error:
        return
    get_console().print(
        Panel(
            f"[bold red]Configuration Error - Safe Mode Active[/bold red]\n\n"
            f"Failed to load {escape(str(meta.path))}:\n{escape(meta.error)}\n\n"
            f"[yellow]Using default settings.[/yellow]",
            border_style="red",
        )
    )
