"""Command runner for external build tools.

This module handles:
- Composing kernel `make` invocations (targets, -j, variables)
- Preparing the ARCH/CROSS_COMPILE environment
- Executing long-running commands with output streamed to the log
- Running short query commands and capturing their output

Every external collaborator (git, make, patch, dpkg-deb) is invoked
through run_command() or capture_command().
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

# Tool output goes through its own logger so it can be filtered separately
output_logger = logging.getLogger(f"{__name__}.output")


class CommandError(Exception):
    """Raised when an external command fails."""

    def __init__(
        self,
        message: str,
        command: str,
        exit_code: int | None = None,
        code: str = "command_failed",
    ) -> None:
        super().__init__(message)
        self.command = command
        self.exit_code = exit_code
        self.code = code


@dataclass
class CommandResult:
    """Result of a command execution.

    Attributes:
        command: The command that was executed.
        exit_code: Process exit code.
        started_at: Start time.
        finished_at: Finish time.
    """

    command: str
    exit_code: int
    started_at: datetime
    finished_at: datetime

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    @property
    def duration(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()


def kernel_env(
    arch: str,
    cross_compile: str | None = None,
    env_override: dict[str, str] | None = None,
) -> dict[str, str]:
    """Build the environment for kernel make invocations.

    Args:
        arch: Kernel ARCH value.
        cross_compile: CROSS_COMPILE prefix (omitted when empty).
        env_override: Additional variables to set.

    Returns:
        Copy of the current environment with the kernel variables set.
    """
    env = dict(os.environ)
    env["ARCH"] = arch
    if cross_compile:
        env["CROSS_COMPILE"] = cross_compile
    if env_override:
        env.update(env_override)
    return env


def compose_make_command(
    *targets: str,
    jobs: int | None = None,
    variables: dict[str, str] | None = None,
    silent: bool = False,
) -> list[str]:
    """Compose a `make` command line.

    Args:
        targets: make targets, in order.
        jobs: Parallel job count; omitted when None.
        variables: make variable assignments (NAME=value).
        silent: Pass -s to suppress make's own echoing.

    Returns:
        Command as list of strings suitable for subprocess.
    """
    cmd = ["make"]
    if silent:
        cmd.append("-s")
    if jobs is not None:
        cmd.append(f"-j{jobs}")
    if variables:
        cmd.extend(f"{name}={value}" for name, value in variables.items())
    cmd.extend(targets)
    return cmd


def run_command(
    cmd: list[str],
    cwd: Path | None = None,
    env: dict[str, str] | None = None,
    check: bool = True,
) -> CommandResult:
    """Run a command, streaming its combined output to the log.

    Args:
        cmd: Command and arguments.
        cwd: Working directory.
        env: Full environment for the child (inherits when None).
        check: Raise CommandError on a non-zero exit code.

    Returns:
        CommandResult with execution details.

    Raises:
        CommandError: If the command cannot be started, or exits
            non-zero while check is True.
    """
    cmd_str = shlex.join(cmd)
    logger.info("Running: %s", cmd_str)
    if cwd is not None:
        logger.debug("Working directory: %s", cwd)

    started_at = datetime.now(timezone.utc)
    try:
        with subprocess.Popen(
            cmd,
            cwd=cwd,
            env=env,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
        ) as proc:
            if proc.stdout is not None:
                for line in proc.stdout:
                    output_logger.info(line.rstrip("\n"))
            exit_code = proc.wait()
    except OSError as e:
        raise CommandError(
            f"Failed to execute {cmd[0]}: {e}",
            command=cmd_str,
            code="execution_error",
        ) from e

    finished_at = datetime.now(timezone.utc)
    result = CommandResult(
        command=cmd_str,
        exit_code=exit_code,
        started_at=started_at,
        finished_at=finished_at,
    )
    logger.debug("Exit code %d after %.1fs: %s", exit_code, result.duration, cmd_str)

    if check and not result.success:
        raise CommandError(
            f"Command failed with exit code {exit_code}: {cmd_str}",
            command=cmd_str,
            exit_code=exit_code,
        )
    return result


def capture_command(
    cmd: list[str],
    cwd: Path | None = None,
    env: dict[str, str] | None = None,
    timeout: int | None = None,
) -> str:
    """Run a short query command and return its stripped stdout.

    Args:
        cmd: Command and arguments.
        cwd: Working directory.
        env: Full environment for the child (inherits when None).
        timeout: Timeout in seconds (None = no timeout).

    Returns:
        Standard output with surrounding whitespace removed.

    Raises:
        CommandError: If the command fails, times out, or cannot start.
    """
    cmd_str = shlex.join(cmd)
    logger.debug("Querying: %s", cmd_str)
    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            env=env,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=True,
        )
    except subprocess.TimeoutExpired as e:
        raise CommandError(
            f"{cmd_str} timed out after {timeout}s",
            command=cmd_str,
            exit_code=-1,
            code="timeout",
        ) from e
    except subprocess.CalledProcessError as e:
        stderr = (e.stderr or "").strip()
        raise CommandError(
            f"{cmd_str} failed with exit code {e.returncode}: {stderr}",
            command=cmd_str,
            exit_code=e.returncode,
        ) from e
    except OSError as e:
        raise CommandError(
            f"Failed to execute {cmd[0]}: {e}",
            command=cmd_str,
            code="execution_error",
        ) from e

    return result.stdout.strip()


__all__ = [
    "CommandError",
    "CommandResult",
    "capture_command",
    "compose_make_command",
    "kernel_env",
    "run_command",
]
