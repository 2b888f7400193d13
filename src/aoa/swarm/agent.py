"""External agent invocation.

Builds the agent argv from configuration and runs it inside a workspace.
"""

from __future__ import annotations

from dataclasses import dataclass

from aoa.core.config import AgentConfig
from aoa.core.console import get_logger
from aoa.core.process import ProcessRunner, StreamMode, format_command
from aoa.core.result import AgentExecutionError, Err, Ok, Result
from aoa.swarm.types import Task, Workspace, worker_label

logger = get_logger(__name__)

NON_INTERACTIVE_FLAG = "-p"
AUTO_APPROVE_FLAG = "--dangerously-skip-permissions"


def build_agent_command(
    instruction: str,
    config: AgentConfig,
    *,
    interactive: bool = False,
    auto_approve: bool = False,
) -> list[str]:
    """Build the agent argv.

    Args:
        instruction: Task text, always passed as the final single argument
        config: Agent binary and model parameters
        interactive: Omit the non-interactive flag
        auto_approve: Let the agent skip permission prompts

    Returns:
        Command as list of strings
    """
    cmd = [config.binary]

    if not interactive:
        cmd.append(NON_INTERACTIVE_FLAG)

    if config.model:
        cmd.extend(["--model", config.model])

    if config.max_tokens is not None:
        cmd.extend(["--max-tokens", str(config.max_tokens)])

    if config.temperature is not None:
        cmd.extend(["--temperature", str(config.temperature)])

    if config.timeout:
        cmd.extend(["--timeout", config.timeout])

    if auto_approve:
        cmd.append(AUTO_APPROVE_FLAG)

    cmd.extend(config.additional_args)
    cmd.append(instruction)
    return cmd


@dataclass
class AgentInvoker:
    """Runs the agent for one task inside its workspace.

    Batch runs stream the agent's output line by line with an ``agent-<id>``
    prefix; interactive runs hand the terminal to the agent.
    """

    runner: ProcessRunner
    config: AgentConfig
    interactive: bool = False
    auto_approve: bool = False

    async def invoke(self, task: Task, workspace: Workspace) -> Result[None, AgentExecutionError]:
        argv = build_agent_command(
            task.instruction,
            self.config,
            interactive=self.interactive,
            auto_approve=self.auto_approve,
        )
        mode = StreamMode.INHERIT if self.interactive else StreamMode.PREFIX
        prefix = worker_label(workspace.worker_id)
        logger.debug("%s running: %s", prefix, format_command(argv))

        match await self.runner.run(argv, cwd=workspace.path, mode=mode, prefix=prefix):
            case Ok(_):
                return Ok(None)
            case Err(err):
                return Err(
                    AgentExecutionError(
                        f"Agent exited with code {err.returncode}",
                        context={"worker": workspace.worker_id, "returncode": err.returncode},
                    )
                )


__all__ = [
    "AUTO_APPROVE_FLAG",
    "AgentInvoker",
    "NON_INTERACTIVE_FLAG",
    "build_agent_command",
]
