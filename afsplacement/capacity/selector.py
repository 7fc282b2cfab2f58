"""
Partition selection under a capacity threshold.

A selector lives for one planning run. It queries each server at most once,
picks the candidate partition with the most free space, and keeps a running
account of the space it has already promised within the run.
"""

from dataclasses import replace
from typing import Dict, List, Optional

from afsplacement.capacity.partinfo import PartitionInfoSource
from afsplacement.core.errors import InspectionError, InsufficientSpace, NoCandidateFound
from afsplacement.core.partitions import Partition, PartitionSpec
from afsplacement.utils.config import DEFAULT_THRESHOLD
from afsplacement.utils.logging import get_logger

logger = get_logger(__name__)


def available_space(partition: Partition, threshold: float = DEFAULT_THRESHOLD) -> float:
    """
    Space that may be filled on a partition.

    Args:
        partition: Partition snapshot
        threshold: Fraction of the total that may be used

    Returns:
        free - total * (1 - threshold)
    """
    return partition.available(threshold)


class PartitionSelector:
    """
    Picks destination partitions for one planning run.

    Capacity figures are a snapshot taken the first time a server is asked
    about. Another process may consume the space before the move runs; no
    reservation exists outside this run.
    """

    def __init__(
        self,
        source: PartitionInfoSource,
        threshold: float = DEFAULT_THRESHOLD,
        volume: Optional[str] = None,
    ):
        """
        Initialize selector.

        Args:
            source: Partition capacity source
            threshold: Capacity safety threshold
            volume: Volume being planned, named in errors
        """
        self.source = source
        self.threshold = threshold
        self.volume = volume
        self._cache: Dict[str, List[Partition]] = {}

    def partitions(self, server: str) -> List[Partition]:
        """
        Partitions of a server, queried once per selector.

        Args:
            server: Server hostname

        Returns:
            Cached partition snapshots
        """
        if server not in self._cache:
            try:
                self._cache[server] = [replace(p) for p in self.source.partitions(server)]
            except InspectionError as e:
                raise NoCandidateFound(
                    self.volume, f"cannot query partitions of {server}: {e.detail}"
                ) from e
        return self._cache[server]

    def candidates(self, server: str, spec: PartitionSpec) -> List[Partition]:
        """Partitions of a server matching a spec, in enumeration order."""
        return [p for p in self.partitions(server) if spec.matches(p.name)]

    def select(self, server: str, spec: PartitionSpec) -> Partition:
        """
        Pick the candidate with the most free space.

        Ties go to the first partition in enumeration order.

        Args:
            server: Server hostname
            spec: Partition candidates

        Returns:
            Selected partition

        Raises:
            NoCandidateFound: If no partition matches
        """
        candidates = self.candidates(server, spec)
        if not candidates:
            raise NoCandidateFound(
                self.volume, f"partition spec {spec} matches nothing on {server}"
            )

        best = candidates[0]
        for partition in candidates[1:]:
            if partition.free > best.free:
                best = partition

        logger.debug(
            "Selected partition",
            server=server,
            spec=str(spec),
            partition=best.name,
            free=best.free,
        )

        return best

    def check_capacity(self, partition: Partition, size: int) -> None:
        """
        Verify a partition can take a volume.

        Args:
            partition: Destination partition
            size: Volume size in KiB

        Raises:
            InsufficientSpace: If available space is below the size
        """
        available = available_space(partition, self.threshold)
        if available < size:
            raise InsufficientSpace(
                self.volume,
                f"{partition} has {int(available)} KiB available at threshold "
                f"{self.threshold:.2f}, volume needs {size} KiB",
            )

    def reserve(self, partition: Partition, size: int) -> None:
        """Deduct space promised to a placement in this run."""
        partition.free -= size

    def place(self, server: str, spec: PartitionSpec, size: int) -> Partition:
        """
        Select, check and reserve a destination in one step.

        Args:
            server: Server hostname
            spec: Partition candidates
            size: Volume size in KiB

        Returns:
            Destination partition
        """
        partition = self.select(server, spec)
        self.check_capacity(partition, size)
        self.reserve(partition, size)
        return partition
