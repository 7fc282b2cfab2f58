"""
Volume placement data model.

Volumes, their sites and topologies are views refreshed on every planning
run; nothing here is persisted.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set

from afsplacement.core.partitions import PartitionSpec, normalize_partition, partition_path


class SiteRole(str, Enum):
    """Role of a volume site."""

    PRIMARY = "rw"   # Sole writable copy
    REPLICA = "ro"   # Read-only copy, refreshed by release


@dataclass(frozen=True)
class Site:
    """
    One copy of a volume on a server partition.

    Attributes:
        server: Server hostname
        partition: Partition letter identifier
        role: Primary or replica
    """
    server: str
    partition: str
    role: SiteRole = SiteRole.REPLICA

    def __post_init__(self):
        object.__setattr__(self, "partition", normalize_partition(self.partition))

    def location(self) -> str:
        """Return the server/partition string."""
        return f"{self.server}/{self.partition}"

    def path(self) -> str:
        """Return the /vicepX path of the site's partition."""
        return partition_path(self.partition)

    def same_place(self, other: "Site") -> bool:
        """True if both sites live on the same server partition."""
        return self.server == other.server and self.partition == other.partition

    def as_role(self, role: SiteRole) -> "Site":
        """Copy of this site with another role."""
        return Site(self.server, self.partition, role)

    def __str__(self) -> str:
        return self.location()


@dataclass(frozen=True)
class Volume:
    """
    A volume as seen by the planner.

    Attributes:
        name: Read-write volume name
        size: Disk usage in KiB
        unreleased: Primary has changes not yet released to its replicas
    """
    name: str
    size: int
    unreleased: bool = False


@dataclass(frozen=True)
class ReplicaStats:
    """
    Freshness and usage of one replica.

    Attributes:
        site: Replica site
        last_update: Last update time (epoch seconds)
        accesses: Recent access counter
    """
    site: Site
    last_update: int = 0
    accesses: int = 0


@dataclass
class Topology:
    """
    Placement of a volume: the primary first, then its replicas.

    Attributes:
        primary: Read-write site
        replicas: Read-only sites in inspection order
        pending: Replicas added but never released, a subset of replicas
    """
    primary: Site
    replicas: List[Site] = field(default_factory=list)
    pending: List[Site] = field(default_factory=list)

    def sites(self) -> List[Site]:
        """All sites, primary first."""
        return [self.primary] + list(self.replicas)

    def servers(self) -> Set[str]:
        """Distinct servers hosting the volume."""
        return {site.server for site in self.sites()}

    @property
    def replicated(self) -> bool:
        return bool(self.replicas)

    def is_pending(self, site: Site) -> bool:
        """True if a replica was added but never released."""
        return any(site.same_place(p) for p in self.pending)

    def degree(self) -> int:
        """
        Replication degree, counted in servers.

        A read-only clone sitting next to the primary does not count twice.
        Pending replicas, left behind by an interrupted plan, are not
        counted until released.
        """
        counted = [self.primary] + [r for r in self.replicas if not self.is_pending(r)]
        return len({site.server for site in counted})

    def replica_on(self, server: str) -> Optional[Site]:
        """Return the replica hosted on a server, if any."""
        for replica in self.replicas:
            if replica.server == server:
                return replica
        return None

    def sites_on(self, server: str) -> List[Site]:
        """Return every site hosted on a server."""
        return [site for site in self.sites() if site.server == server]

    def __len__(self) -> int:
        return 1 + len(self.replicas)

    def __str__(self) -> str:
        return " ".join(site.location() for site in self.sites())


@dataclass(frozen=True)
class Location:
    """
    One desired location: a server and a partition candidate spec.

    Attributes:
        server: Server hostname
        spec: Partition candidates on that server
    """
    server: str
    spec: PartitionSpec

    @classmethod
    def parse(cls, server: str, spec: str) -> "Location":
        """Create from the textual server and partition spec."""
        return cls(server=server, spec=PartitionSpec.parse(spec))

    def satisfied_by(self, site: Site) -> bool:
        """True if a site already sits on a matching partition."""
        return site.server == self.server and self.spec.matches(site.partition)

    def __str__(self) -> str:
        return f"{self.server}/{self.spec}"


@dataclass(frozen=True)
class Inspection:
    """
    Result of inspecting a volume.

    Attributes:
        volume: Volume with its size and unreleased flag
        topology: Current topology
        replica_stats: Freshness and usage per replica
    """
    volume: Volume
    topology: Topology
    replica_stats: List[ReplicaStats] = field(default_factory=list)

    @property
    def access_counts(self) -> Dict[Site, int]:
        """Recent access counters keyed by replica site."""
        return {stats.site: stats.accesses for stats in self.replica_stats}
