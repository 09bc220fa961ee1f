"""Subprocess execution helpers."""

import shutil
import subprocess
from dataclasses import dataclass


@dataclass
class CommandResult:
    """Result of a command execution."""

    returncode: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.returncode == 0


def run(cmd: list[str], *, timeout: int | None = None) -> CommandResult:
    """Run a command with captured text output.

    A timeout or a missing executable is reported as a failed result
    (returncode -1) instead of raising.
    """
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except subprocess.TimeoutExpired:
        return CommandResult(
            returncode=-1, stdout="", stderr=f"Timed out after {timeout}s: {cmd[0]}"
        )
    except FileNotFoundError:
        return CommandResult(returncode=-1, stdout="", stderr=f"Command not found: {cmd[0]}")
    return CommandResult(returncode=result.returncode, stdout=result.stdout, stderr=result.stderr)


def command_exists(cmd: str) -> bool:
    """Check if a command exists in PATH."""
    return shutil.which(cmd) is not None
