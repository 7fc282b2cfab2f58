"""
Partition capacity inspection.

Reports free and total space per partition of a server, as printed by
`vos partinfo`:

    Free space on partition /vicepa: 30215568 K blocks out of total 70226368
"""

import re
from abc import ABC, abstractmethod
from typing import List

from afsplacement.core.errors import InspectionError, InspectionParseError
from afsplacement.core.partitions import Partition
from afsplacement.core.runner import CommandRunner
from afsplacement.utils.config import PlacementConfig
from afsplacement.utils.logging import get_logger

logger = get_logger(__name__)

_PARTINFO_RE = re.compile(
    r"^Free space on partition /vicep([a-z]{1,2}):\s+(\d+)\s+K blocks out of total\s+(\d+)"
)


class PartitionInfoSource(ABC):
    """Capability that reports partition capacity of a server."""

    @abstractmethod
    def partitions(self, server: str) -> List[Partition]:
        """
        Query partitions of a server.

        Args:
            server: Server hostname

        Returns:
            Partitions in the server's enumeration order
        """
        pass


def parse_partinfo(server: str, output: str) -> List[Partition]:
    """
    Parse `vos partinfo` output.

    Args:
        server: Server the output belongs to
        output: Command output

    Returns:
        Partitions in output order

    Raises:
        InspectionParseError: If non-empty output has no partition lines
    """
    partitions = []
    for line in output.splitlines():
        match = _PARTINFO_RE.match(line.strip())
        if match:
            name, free, total = match.groups()
            partitions.append(
                Partition(server=server, name=name, free=int(free), total=int(total))
            )

    if not partitions and output.strip():
        raise InspectionParseError(
            None, f"no partition lines in vos partinfo output for {server}"
        )

    return partitions


class VosPartitionInfo(PartitionInfoSource):
    """Partition capacity via `vos partinfo`."""

    def __init__(self, runner: CommandRunner, config: PlacementConfig):
        """
        Initialize source.

        Args:
            runner: Command runner
            config: Placement configuration
        """
        self.runner = runner
        self.config = config

    def partitions(self, server: str) -> List[Partition]:
        argv = [self.config.vos_path, "partinfo", "-server", server]
        argv.extend(self.config.vos_flags())

        result = self.runner.run(argv)
        if not result.ok:
            raise InspectionError(
                None, f"vos partinfo {server} failed, {result.detail()}"
            )

        partitions = parse_partinfo(server, result.stdout)

        logger.debug(
            "Queried partitions",
            server=server,
            partitions=[p.name for p in partitions],
        )

        return partitions


def format_report(partitions: List[Partition], threshold: float) -> List[str]:
    """
    Render a capacity report for a server's partitions.

    Sizes are shown in GiB, with the space still usable below the threshold
    in the last column.

    Args:
        partitions: Partition snapshots
        threshold: Capacity safety threshold

    Returns:
        Report lines, header first
    """
    lines = [
        f"{'Partition':<16} {'Total':>9} {'Used':>9} {'Free':>9} {'%Used':>6} {'Avail':>9}"
    ]
    for p in partitions:
        lines.append(
            f"{str(p):<16} {_gib(p.total):>9} {_gib(p.used):>9} {_gib(p.free):>9}"
            f" {p.percent_used:>5.1f}% {_gib(max(p.available(threshold), 0)):>9}"
        )
    return lines


def _gib(kib: float) -> str:
    return f"{kib / 1048576:.1f}G"
