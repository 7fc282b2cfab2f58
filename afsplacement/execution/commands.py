"""
Command executors for placement operations.

Maps each operation onto one vos invocation. Building the command line is
pure, so dry runs can show exactly what would be run.
"""

from abc import ABC, abstractmethod
from typing import List

from afsplacement.core.operations import (
    AddSite,
    Backup,
    Move,
    Operation,
    Release,
    RemoveSite,
)
from afsplacement.core.runner import CommandResult, CommandRunner
from afsplacement.utils.config import PlacementConfig


class CommandExecutor(ABC):
    """Capability that performs one operation against the storage servers."""

    @abstractmethod
    def run(self, op: Operation) -> CommandResult:
        """
        Perform an operation, blocking until it finishes.

        Args:
            op: Operation to perform

        Returns:
            Command result; no retry is attempted
        """
        pass


class VosCommandExecutor(CommandExecutor):
    """Performs operations with the vos command suite."""

    def __init__(self, runner: CommandRunner, config: PlacementConfig):
        """
        Initialize executor.

        Args:
            runner: Command runner
            config: Placement configuration
        """
        self.runner = runner
        self.config = config

    def command_for(self, op: Operation) -> List[str]:
        """
        Build the vos command line for an operation.

        Args:
            op: Operation

        Returns:
            Command and arguments
        """
        vos = self.config.vos_path
        verbose = ["-verbose"] if self.config.verbose else []

        if isinstance(op, Move):
            argv = [
                vos, "move", "-id", op.volume,
                "-fromserver", op.source.server,
                "-frompartition", op.source.path(),
                "-toserver", op.target.server,
                "-topartition", op.target.path(),
            ] + verbose
        elif isinstance(op, AddSite):
            argv = [
                vos, "addsite",
                "-server", op.site.server,
                "-partition", op.site.path(),
                "-id", op.volume,
            ]
        elif isinstance(op, RemoveSite):
            argv = [
                vos, "remove",
                "-server", op.site.server,
                "-partition", op.site.path(),
                "-id", f"{op.volume}.readonly",
            ]
        elif isinstance(op, Backup):
            argv = [vos, "backup", "-id", op.volume]
        elif isinstance(op, Release):
            argv = [vos, "release", "-id", op.volume] + verbose
        else:
            raise TypeError(f"unknown operation: {op!r}")

        return argv + list(self.config.vos_flags())

    def run(self, op: Operation) -> CommandResult:
        return self.runner.run(self.command_for(op))
