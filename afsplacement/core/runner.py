"""
Process runner for vos commands.

The single place external processes are spawned. Inspection, partition
queries and plan execution all go through a CommandRunner, which tests
replace with an in-memory fake.
"""

import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from afsplacement.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """
    Outcome of one external command.

    Attributes:
        argv: Command line that was run
        exit_status: Process exit status
        stdout: Captured standard output
        stderr: Captured standard error
    """
    argv: Tuple[str, ...]
    exit_status: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_status == 0

    def detail(self) -> str:
        """Short failure description for reports."""
        text = (self.stderr or self.stdout).strip()
        if text:
            return f"exit status {self.exit_status}: {text.splitlines()[-1]}"
        return f"exit status {self.exit_status}"


class CommandRunner(ABC):
    """Abstract runner of external commands."""

    @abstractmethod
    def run(self, argv: Sequence[str]) -> CommandResult:
        """
        Run a command to completion.

        Args:
            argv: Command and arguments

        Returns:
            Command result
        """
        pass


class SubprocessRunner(CommandRunner):
    """Runs commands with subprocess, blocking until they exit."""

    def __init__(self, timeout: Optional[float] = None):
        """
        Initialize runner.

        Args:
            timeout: Per-command timeout in seconds (None waits forever)
        """
        self.timeout = timeout

    def run(self, argv: Sequence[str]) -> CommandResult:
        argv = tuple(argv)
        logger.debug("Running command", argv=" ".join(argv))

        try:
            completed = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as e:
            return CommandResult(argv=argv, exit_status=127, stderr=str(e))
        except subprocess.TimeoutExpired:
            return CommandResult(
                argv=argv,
                exit_status=124,
                stderr=f"timed out after {self.timeout}s",
            )

        result = CommandResult(
            argv=argv,
            exit_status=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
        )

        if not result.ok:
            logger.debug(
                "Command failed",
                argv=" ".join(argv),
                exit_status=result.exit_status,
            )

        return result
