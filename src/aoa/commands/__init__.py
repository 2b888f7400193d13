"""CLI subcommands registered on the root Typer app."""
