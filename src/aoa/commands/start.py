from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from rich import box
from rich.markup import escape
from rich.table import Table

from aoa.commands.common import warn_safe_mode
from aoa.core.config import load_config
from aoa.core.console import get_console, setup_logging
from aoa.core.result import ConfigurationError, Err, Ok
from aoa.core.tasks import load_tasks
from aoa.swarm import PoolReport, RunSummary, TaskOutcome, run_agents

CONFIG_ERROR_EXIT = 2
TASK_FAILURE_EXIT = 1

_OUTCOME_STYLE = {
    TaskOutcome.SUCCESS: "green",
    TaskOutcome.NO_CHANGE: "yellow",
    TaskOutcome.FAILURE: "red",
}


def _render_report(report: PoolReport) -> Table:
    table = Table(title="Tasks", box=box.SIMPLE_HEAVY, expand=True)
    table.add_column("#", style="cyan", no_wrap=True)
    table.add_column("Agent", no_wrap=True)
    table.add_column("Task", style="white")
    table.add_column("Outcome", no_wrap=True)
    table.add_column("Detail", style="dim")

    for result in report.results:
        style = _OUTCOME_STYLE[result.outcome]
        detail = result.error_message or (result.commit_sha or "")[:12]
        table.add_row(
            str(result.task.index),
            f"agent-{result.worker_id}",
            escape(result.task.instruction),
            f"[{style}]{result.outcome.value}[/{style}]",
            escape(detail),
        )
    return table


def _fail_config(exc: ConfigurationError) -> typer.Exit:
    get_console().print(f"[bold red]Configuration error:[/bold red] {escape(str(exc))}")
    return typer.Exit(code=CONFIG_ERROR_EXIT)


def start(
    ctx: typer.Context,
    tasks_file: Path = typer.Argument(..., help="JSON file containing an array of task strings."),
    agents: int | None = typer.Option(
        None, "--agents", "-n", help="Number of agents to run in parallel."
    ),
    config: Path | None = typer.Option(
        None, "--config", "-c", help="Path to an aoa config file (JSON or TOML)."
    ),
    directory: Path = typer.Option(
        Path("."), "--dir", "-d", help="Git checkout the agents work against."
    ),
    interactive: bool | None = typer.Option(
        None,
        "--interactive/--batch",
        help="Share the terminal with agents instead of prefixing their output.",
    ),
    auto_approve: bool | None = typer.Option(
        None, "--auto-approve", help="Let agents run tools without asking for permission."
    ),
    model: str | None = typer.Option(None, "--model", "-m", help="Model passed to the agent."),
    prune: bool = typer.Option(
        False, "--prune", help="Remove workspaces left behind by a previous run first."
    ),
    report: Path | None = typer.Option(
        None, "--report", help="Write a JSON summary of the run to this path."
    ),
) -> None:
    """Run every task in TASKS_FILE with its own agent and worktree."""
    loaded, meta = load_config(config_path=config)
    if not getattr(ctx.obj, "verbose", False):
        # The file named by --config may set its own level.
        setup_logging(level=loaded.log_level)
    warn_safe_mode(meta)

    swarm_cfg = loaded.swarm
    agent_cfg = loaded.agent
    if model:
        agent_cfg = agent_cfg.model_copy(update={"model": model})

    workers = agents if agents is not None else swarm_cfg.workers
    use_interactive = swarm_cfg.interactive if interactive is None else interactive
    use_auto_approve = swarm_cfg.auto_approve if auto_approve is None else auto_approve
    target = directory.expanduser().resolve()

    try:
        if workers < 1:
            raise ConfigurationError(
                "Worker count must be at least 1", context={"workers": workers}
            )
        if not target.is_dir():
            raise ConfigurationError("Target is not a directory", context={"path": str(target)})
        tasks = load_tasks(tasks_file)
    except ConfigurationError as exc:
        raise _fail_config(exc) from exc

    try:
        outcome = asyncio.run(
            run_agents(
                tasks,
                workers,
                repo_root=target,
                agent=agent_cfg,
                interactive=use_interactive,
                auto_approve=use_auto_approve,
                worktree_dir=swarm_cfg.worktree_dir,
                prune_stale=prune,
            )
        )
    except ConfigurationError as exc:
        raise _fail_config(exc) from exc
    except KeyboardInterrupt:
        console = get_console()
        console.print("\n[yellow]Interrupted.[/yellow] If workspaces remain, run:")
        console.print("  aoa start --prune ...   or   git worktree prune")
        raise typer.Exit(code=130)

    match outcome:
        case Ok(pool_report):
            exit_code = 0
        case Err(err):
            pool_report = err.report
            exit_code = TASK_FAILURE_EXIT

    console = get_console()
    console.print(_render_report(pool_report))
    console.print(
        f"{len(pool_report.succeeded)} merged, {len(pool_report.unchanged)} unchanged, "
        f"{len(pool_report.failures)} failed"
    )

    if report is not None:
        summary = RunSummary.from_report(pool_report, working_directory=target, workers=workers)
        report.write_text(summary.model_dump_json(indent=2), encoding="utf-8")

    if exit_code:
        first = pool_report.first_failure
        if first is not None:
            console.print(
                f"[bold red]Task {first.task.index} failed:[/bold red] "
                f"{escape(first.error_message or '')}"
            )
        raise typer.Exit(code=exit_code)
