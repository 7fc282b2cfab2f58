"""
Shared fixtures: in-memory stand-ins for vos and the volume servers.
"""

from typing import Dict, List, Optional, Sequence, Set, Tuple

import pytest

from afsplacement.capacity.partinfo import PartitionInfoSource
from afsplacement.core.errors import InspectionError, VolumeNotFound
from afsplacement.core.models import (
    Inspection,
    ReplicaStats,
    Site,
    SiteRole,
    Topology,
    Volume,
)
from afsplacement.core.operations import Operation, Plan
from afsplacement.core.partitions import Partition
from afsplacement.core.runner import CommandResult, CommandRunner
from afsplacement.execution.commands import CommandExecutor
from afsplacement.planner.safety import apply_plan
from afsplacement.utils.config import PlacementConfig


class FakeRunner(CommandRunner):
    """Answers commands from canned output, first matching rule wins."""

    def __init__(self):
        self.rules: List[Tuple[str, CommandResult]] = []
        self.calls: List[Tuple[str, ...]] = []

    def add(self, fragment: str, stdout: str = "", exit_status: int = 0, stderr: str = "") -> None:
        self.rules.append(
            (fragment, CommandResult(argv=(), exit_status=exit_status, stdout=stdout, stderr=stderr))
        )

    def run(self, argv: Sequence[str]) -> CommandResult:
        argv = tuple(argv)
        self.calls.append(argv)
        line = " ".join(argv)
        for fragment, result in self.rules:
            if fragment in line:
                return CommandResult(
                    argv=argv,
                    exit_status=result.exit_status,
                    stdout=result.stdout,
                    stderr=result.stderr,
                )
        return CommandResult(argv=argv, exit_status=1, stderr="no canned output")


class FakePartitions(PartitionInfoSource):
    """Partition capacity held in memory."""

    def __init__(self):
        self.servers: Dict[str, List[Partition]] = {}
        self.unreachable: Set[str] = set()
        self.queries: List[str] = []

    def add(self, server: str, name: str, free: int, total: int = 10000) -> None:
        self.servers.setdefault(server, []).append(Partition(server, name, free, total))

    def partitions(self, server: str) -> List[Partition]:
        self.queries.append(server)
        if server in self.unreachable:
            raise InspectionError(None, f"{server} unreachable")
        return list(self.servers.get(server, []))


class FakeCell(CommandExecutor):
    """
    A cell of volumes that can be inspected and changed.

    Acts as both the inspector and the command executor, so executed plans
    change what the next inspection reports.
    """

    def __init__(self):
        self.volumes: Dict[str, Volume] = {}
        self.topologies: Dict[str, Topology] = {}
        self.accesses: Dict[Tuple[str, str], int] = {}
        self.executed: List[Operation] = []
        self.fail_on: Optional[int] = None
        self.inspections = 0

    def add_volume(
        self,
        name: str,
        primary: str,
        replicas: Sequence[str] = (),
        size: int = 100,
        unreleased: bool = False,
    ) -> None:
        """Add a volume; sites are given as "server/partition"."""
        server, partition = primary.split("/")
        self.volumes[name] = Volume(name=name, size=size, unreleased=unreleased)
        self.topologies[name] = Topology(
            primary=Site(server, partition, SiteRole.PRIMARY),
            replicas=[Site(*r.split("/")) for r in replicas],
        )

    def inspect(self, name: str) -> Inspection:
        self.inspections += 1
        if name not in self.volumes:
            raise VolumeNotFound(name, "no such entry")
        topology = self.topologies[name]
        stats = [
            ReplicaStats(site=r, accesses=self.accesses.get((name, r.location()), 0))
            for r in topology.replicas
        ]
        return Inspection(volume=self.volumes[name], topology=topology, replica_stats=stats)

    def run(self, op: Operation) -> CommandResult:
        if self.fail_on is not None and len(self.executed) == self.fail_on:
            return CommandResult(argv=(op.kind.value,), exit_status=255, stderr="VOLSER: busy")
        self.executed.append(op)
        name = op.volume
        self.topologies[name] = apply_plan(
            self.topologies[name], Plan(volume=name, operations=(op,))
        )
        if op.kind.value == "release":
            volume = self.volumes[name]
            self.volumes[name] = Volume(volume.name, volume.size, unreleased=False)
        return CommandResult(argv=(op.kind.value,), exit_status=0)


@pytest.fixture
def runner():
    """Fake command runner."""
    return FakeRunner()


@pytest.fixture
def partitions():
    """Fake partition capacity source."""
    return FakePartitions()


@pytest.fixture
def cell():
    """Fake cell acting as inspector and executor."""
    return FakeCell()


@pytest.fixture
def config():
    """Default placement configuration."""
    return PlacementConfig()
