"""Process execution for git and agent commands.

Provides:
- StreamMode: how a child's stdout/stderr are observed
- CommandResult: exit status plus captured output
- ProcessRunner: the protocol every command goes through (swappable in tests)
- AsyncProcessRunner: asyncio subprocess implementation
- format_command: shell-quoted rendering of an argv for logs

Commands are always argv lists executed without a shell, so free-form text
such as a task instruction is passed as exactly one argument.
"""

from __future__ import annotations

import asyncio
import shlex
from collections import deque
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol

from aoa.core.console import emit_line, get_logger
from aoa.core.result import Err, Ok, ProcessError, Result

logger = get_logger(__name__)

# Longest line handed to a sink; agents occasionally print very long JSON lines.
_STREAM_LIMIT = 1024 * 1024
# Lines of prefixed output retained for error reporting.
_TAIL_LINES = 200
_READ_CHUNK = 64 * 1024

LineSink = Callable[[str, str, bool], None]


class StreamMode(str, Enum):
    """How a child process's standard streams are observed."""

    INHERIT = "inherit"
    CAPTURE = "capture"
    PREFIX = "prefix"


@dataclass(slots=True)
class CommandResult:
    """Result of an external command execution."""

    argv: list[str]
    returncode: int
    stdout: str
    stderr: str


class ProcessRunner(Protocol):
    """Protocol for command execution."""

    async def run(
        self,
        argv: Sequence[str],
        *,
        cwd: Path,
        mode: StreamMode = StreamMode.CAPTURE,
        prefix: str | None = None,
    ) -> Result[CommandResult, ProcessError]: ...


def format_command(argv: Sequence[str]) -> str:
    """Render argv the way a shell user would type it."""
    return shlex.join(list(argv))


def _default_sink(prefix: str, line: str, is_stderr: bool) -> None:
    emit_line(prefix, line, stderr=is_stderr)


class AsyncProcessRunner:
    """Execute commands with asyncio subprocesses.

    Args:
        sink: Receives (prefix, line, is_stderr) for every line read in
            PREFIX mode. Defaults to printing through the Rich console.
        env: Optional environment for children (default: inherit).
    """

    def __init__(
        self,
        sink: LineSink | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self._sink = sink or _default_sink
        self._env = dict(env) if env is not None else None

    async def _pump(
        self,
        stream: asyncio.StreamReader | None,
        prefix: str,
        is_stderr: bool,
    ) -> str:
        if stream is None:
            return ""
        tail: deque[str] = deque(maxlen=_TAIL_LINES)
        pending = bytearray()

        def emit(raw: bytes) -> None:
            line = raw.decode("utf-8", errors="replace").rstrip("\r")
            tail.append(line)
            self._sink(prefix, line, is_stderr)

        while chunk := await stream.read(_READ_CHUNK):
            pending.extend(chunk)
            while (newline := pending.find(b"\n")) != -1:
                emit(bytes(pending[:newline]))
                del pending[: newline + 1]
            # No newline yet: hand over oversized output in fixed-size pieces.
            while len(pending) >= _STREAM_LIMIT:
                emit(bytes(pending[:_STREAM_LIMIT]))
                del pending[:_STREAM_LIMIT]
        if pending:
            emit(bytes(pending))
        return "\n".join(tail)

    async def run(
        self,
        argv: Sequence[str],
        *,
        cwd: Path,
        mode: StreamMode = StreamMode.CAPTURE,
        prefix: str | None = None,
    ) -> Result[CommandResult, ProcessError]:
        """Run argv in cwd and wait for it to exit.

        Args:
            argv: Program and arguments
            cwd: Working directory for the child
            mode: INHERIT shares this process's stdio, CAPTURE collects output
                silently, PREFIX streams each line through the sink
            prefix: Tag for PREFIX mode lines (defaults to the program name)

        Returns:
            Ok(CommandResult) when the exit status is 0, otherwise
            Err(ProcessError) carrying the exit code and captured output
        """
        tokens = [str(token) for token in argv]
        command = format_command(tokens)
        piped = asyncio.subprocess.PIPE if mode is not StreamMode.INHERIT else None
        stdin = None if mode is StreamMode.INHERIT else asyncio.subprocess.DEVNULL

        logger.debug("exec (%s) in %s: %s", mode.value, cwd, command)
        try:
            proc = await asyncio.create_subprocess_exec(
                *tokens,
                cwd=cwd,
                stdin=stdin,
                stdout=piped,
                stderr=piped,
                env=self._env,
                limit=_STREAM_LIMIT,
            )
        except FileNotFoundError as exc:
            return Err(
                ProcessError(
                    f"Command not found: {tokens[0]}",
                    returncode=127,
                    context={"cmd": command, "cwd": str(cwd), "error": str(exc)},
                )
            )
        except OSError as exc:
            return Err(
                ProcessError(
                    f"Failed to start {tokens[0]}",
                    returncode=126,
                    context={"cmd": command, "cwd": str(cwd), "error": str(exc)},
                )
            )

        try:
            if mode is StreamMode.PREFIX:
                tag = prefix or Path(tokens[0]).name
                stdout, stderr = await asyncio.gather(
                    self._pump(proc.stdout, tag, False),
                    self._pump(proc.stderr, tag, True),
                )
                await proc.wait()
            elif mode is StreamMode.CAPTURE:
                out_bytes, err_bytes = await proc.communicate()
                stdout = out_bytes.decode("utf-8", errors="replace")
                stderr = err_bytes.decode("utf-8", errors="replace")
            else:
                await proc.wait()
                stdout = stderr = ""
        except BaseException:
            # Cancelled, or a sink raised: never leave the child running.
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            raise

        returncode = proc.returncode if proc.returncode is not None else -1
        if returncode != 0:
            return Err(
                ProcessError(
                    f"{command} exited with code {returncode}",
                    returncode=returncode,
                    stdout=stdout,
                    stderr=stderr,
                    context={"cwd": str(cwd)},
                )
            )

        return Ok(CommandResult(argv=tokens, returncode=0, stdout=stdout, stderr=stderr))


__all__ = [
    "AsyncProcessRunner",
    "CommandResult",
    "LineSink",
    "ProcessRunner",
    "StreamMode",
    "format_command",
]
