"""Child process execution for installers, manifest scripts and git."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

from roast.errors import RoastError

logger = logging.getLogger(__name__)


class ProcessExecutionError(RoastError):
    """A child process could not be spawned or exited with a non-zero status."""

    code = 5

    def __init__(
        self,
        message: str,
        command: str | None = None,
        returncode: int | None = None,
        stderr: str = "",
    ):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message)


@dataclass
class CommandResult:
    """Outcome of a finished child process."""

    command: str
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def _failure_message(command: str, returncode: int, stderr: str) -> str:
    message = f"Command `{command}` exited with status {returncode}"
    tail = stderr.strip().splitlines()[-5:]
    if tail:
        message += ":\n" + "\n".join(f"  {line}" for line in tail)
    return message


async def _collect(
    process: asyncio.subprocess.Process, command: str, check: bool
) -> CommandResult:
    stdout, stderr = await process.communicate()
    result = CommandResult(
        command=command,
        returncode=process.returncode if process.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace") if stdout else "",
        stderr=stderr.decode("utf-8", errors="replace") if stderr else "",
    )
    logger.debug("Command `%s` finished with status %d", command, result.returncode)
    if check and not result.ok:
        logger.error("Command failed: %s", command)
        raise ProcessExecutionError(
            _failure_message(command, result.returncode, result.stderr),
            command=command,
            returncode=result.returncode,
            stderr=result.stderr,
        )
    return result


async def run_command(
    args: list[str],
    cwd: Path | None = None,
    verbose: bool = False,
    check: bool = True,
) -> CommandResult:
    """Run a program and wait for it to exit.

    Args:
        args: Program and its arguments
        cwd: Working directory
        verbose: Stream output to the terminal instead of capturing it
        check: Raise if the process exits with a non-zero status

    Returns:
        CommandResult (stdout/stderr are empty when streamed)

    Raises:
        ProcessExecutionError: If the program cannot be started, or exits
            non-zero and ``check`` is set
    """
    command = " ".join(args)
    logger.debug("Running command: %s (cwd=%s)", command, cwd)
    pipe = None if verbose else asyncio.subprocess.PIPE
    try:
        process = await asyncio.create_subprocess_exec(
            *args, cwd=cwd, stdout=pipe, stderr=pipe
        )
    except OSError as e:
        logger.error("Unable to start `%s`: %s", args[0], e)
        raise ProcessExecutionError(
            f"Unable to start `{args[0]}`: {e}", command=command
        ) from e
    return await _collect(process, command, check)


async def run_shell(
    command: str,
    cwd: Path | None = None,
    verbose: bool = False,
    check: bool = True,
) -> CommandResult:
    """Run a single command line through the system shell."""
    logger.debug("Running shell command: %s (cwd=%s)", command, cwd)
    pipe = None if verbose else asyncio.subprocess.PIPE
    try:
        process = await asyncio.create_subprocess_shell(
            command, cwd=cwd, stdout=pipe, stderr=pipe
        )
    except OSError as e:
        logger.error("Unable to start shell for `%s`: %s", command, e)
        raise ProcessExecutionError(
            f"Unable to run `{command}`: {e}", command=command
        ) from e
    return await _collect(process, command, check)


def split_script(script: str) -> list[str]:
    """Split an install script into the command lines it runs.

    Blank lines and ``#`` comments are dropped, and a trailing backslash
    continues a command on the next line.
    """
    commands: list[str] = []
    pending = ""
    for raw in script.splitlines():
        line = raw.strip()
        if not pending and (not line or line.startswith("#")):
            continue
        if line.endswith("\\"):
            pending += line[:-1].rstrip() + " "
            continue
        command = (pending + line).strip()
        pending = ""
        if command:
            commands.append(command)
    if pending.strip():
        commands.append(pending.strip())
    return commands


async def run_script(script: str, cwd: Path, verbose: bool = False) -> list[CommandResult]:
    """Run every command of a script in order, stopping at the first failure.

    Raises:
        ProcessExecutionError: If any command fails to start or exits non-zero
    """
    results = []
    for command in split_script(script):
        results.append(await run_shell(command, cwd=cwd, verbose=verbose))
    return results
