"""Subprocess execution returning ``Result`` values.

All external collaborators (``gh``, package builders, ``goss``, ``createrepo_c``,
``git``) are invoked through this module so tests can replace a single seam.
"""

from __future__ import annotations

import signal
import subprocess
from dataclasses import dataclass
from pathlib import Path

from relpkg.core.result import Err, Ok, Result

__all__ = ["ProcessError", "run", "run_and_interrupt", "run_silent"]


@dataclass(frozen=True, slots=True)
class ProcessError:
    """A command that could not be started or exited non-zero.

    Attributes:
        command: The command that was executed.
        returncode: Exit code, or -1 if the process never ran or timed out.
        stdout: Captured standard output (may be empty).
        stderr: Captured standard error, or the OS error text.
    """

    command: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    def __str__(self) -> str:
        cmd_str = " ".join(self.command[:3])
        if len(self.command) > 3:
            cmd_str += " ..."
        return f"{cmd_str} failed (exit {self.returncode})"


def run(
    cmd: list[str],
    cwd: Path,
    env: dict[str, str] | None = None,
    *,
    timeout: float | None = None,
) -> Result[str, ProcessError]:
    """Run ``cmd`` and capture its output.

    Args:
        cmd: Command and arguments.
        cwd: Working directory.
        env: Full environment, or None to inherit.
        timeout: Seconds before the command is killed (None for no limit).

    Returns:
        Ok(stdout) on exit code 0, Err(ProcessError) otherwise.
    """
    try:
        proc = subprocess.run(
            cmd,
            cwd=str(cwd),
            env=env,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        return Err(
            ProcessError(
                command=tuple(cmd),
                returncode=-1,
                stdout=e.stdout if isinstance(e.stdout, str) else "",
                stderr=f"Command timed out after {timeout}s",
            )
        )
    except OSError as e:
        return Err(ProcessError(command=tuple(cmd), returncode=-1, stdout="", stderr=str(e)))

    if proc.returncode != 0:
        return Err(
            ProcessError(
                command=tuple(cmd),
                returncode=proc.returncode,
                stdout=proc.stdout,
                stderr=proc.stderr,
            )
        )

    return Ok(proc.stdout)


def run_silent(
    cmd: list[str],
    cwd: Path,
    env: dict[str, str] | None = None,
) -> Result[None, ProcessError]:
    """Run ``cmd`` with output streaming to the terminal.

    Used for long package builds whose logs belong in the CI job output.
    """
    try:
        proc = subprocess.run(cmd, cwd=str(cwd), env=env, check=False)
    except OSError as e:
        return Err(ProcessError(command=tuple(cmd), returncode=-1, stdout="", stderr=str(e)))

    if proc.returncode != 0:
        return Err(
            ProcessError(command=tuple(cmd), returncode=proc.returncode, stdout="", stderr="")
        )

    return Ok(None)


def run_and_interrupt(
    cmd: list[str],
    cwd: Path,
    *,
    grace_seconds: float,
    stop_timeout: float,
) -> Result[None, ProcessError]:
    """Start a long-running process, check it is alive after ``grace_seconds``,
    then stop it with SIGINT.

    Fails when the process cannot start, exits before the grace period ends, or
    does not stop within ``stop_timeout`` after the interrupt.
    """
    try:
        proc = subprocess.Popen(
            cmd,
            cwd=str(cwd),
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
    except OSError as e:
        return Err(ProcessError(command=tuple(cmd), returncode=-1, stdout="", stderr=str(e)))

    try:
        proc.wait(timeout=grace_seconds)
    except subprocess.TimeoutExpired:
        pass
    else:
        return Err(
            ProcessError(
                command=tuple(cmd),
                returncode=proc.returncode,
                stdout="",
                stderr=f"exited before {grace_seconds}s",
            )
        )

    proc.send_signal(signal.SIGINT)
    try:
        proc.wait(timeout=stop_timeout)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.wait()
        return Err(
            ProcessError(
                command=tuple(cmd),
                returncode=-1,
                stdout="",
                stderr=f"did not stop within {stop_timeout}s of SIGINT",
            )
        )

    return Ok(None)
