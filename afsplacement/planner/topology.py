"""
Topology planner.

Compares the current placement of a volume with the desired one and emits
the operations that converge them:

Phase A places the primary, Phase B places the replicas, then a release
brings new replicas up to date and Phase C removes replicas nobody asked
for. Removals always come after the release so a synchronized replica is
never dropped before its successor has data.

The planner never changes the number of servers hosting a volume. Plans are
pure data; nothing is executed here, and capacity is only read.
"""

from dataclasses import dataclass
from typing import List, Optional

from afsplacement.capacity.selector import PartitionSelector
from afsplacement.core.errors import (
    InvalidTopology,
    ReplicationCountMismatch,
    SiteAlreadyExists,
    SiteNotFound,
)
from afsplacement.core.models import Location, Site, SiteRole, Topology, Volume
from afsplacement.core.operations import (
    AddSite,
    Backup,
    Move,
    Operation,
    Plan,
    Release,
    RemoveSite,
)
from afsplacement.core.partitions import normalize_partition
from afsplacement.planner.safety import SafetyGate
from afsplacement.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class SiteRef:
    """
    Reference to an existing site: a server and, optionally, a partition.

    Attributes:
        server: Server hostname
        partition: Partition letter identifier, or None for any
    """
    server: str
    partition: Optional[str] = None

    @classmethod
    def parse(cls, text: str) -> "SiteRef":
        """Parse "server" or "server/partition"."""
        server, _, partition = text.partition("/")
        if not server:
            raise InvalidTopology(None, f"empty server in site reference {text!r}")
        return cls(server=server, partition=normalize_partition(partition) if partition else None)

    def matches(self, site: Site) -> bool:
        if site.server != self.server:
            return False
        return self.partition is None or site.partition == self.partition

    def __str__(self) -> str:
        return f"{self.server}/{self.partition}" if self.partition else self.server


class _PlanBuilder:
    """Accumulates operations for one volume."""

    def __init__(self, volume: str):
        self.volume = volume
        self.operations: List[Operation] = []
        self.needs_release = False

    def emit(self, op: Operation) -> None:
        self.operations.append(op)

    def build(self) -> Plan:
        return Plan(
            volume=self.volume,
            operations=tuple(self.operations),
            needs_release=self.needs_release,
        )


class TopologyPlanner:
    """
    Plans placement changes for one volume at a time.

    A planner is bound to a PartitionSelector, which is itself scoped to one
    planning run so that capacity figures are fresh.
    """

    def __init__(
        self,
        selector: PartitionSelector,
        companion_replica: bool = False,
        gate: Optional[SafetyGate] = None,
    ):
        """
        Initialize planner.

        Args:
            selector: Partition selector for this run
            companion_replica: Keep a read-only clone on the primary's partition
            gate: Safety gate (defaults to one matching companion_replica)
        """
        self.selector = selector
        self.companion_replica = companion_replica
        self.gate = gate or SafetyGate(companion_replica=companion_replica)

    # Full topology

    def plan(
        self,
        volume: Volume,
        current: Topology,
        desired: List[Location],
        force: bool = False,
    ) -> Plan:
        """
        Plan convergence to a desired topology.

        Args:
            volume: Volume being placed
            current: Current topology
            desired: Primary location first, then replica locations
            force: Release even if the primary has unreleased changes

        Returns:
            Plan; its needs_release flag tells whether it releases

        Raises:
            InvalidTopology: If the desired list is malformed
            ReplicationCountMismatch: If the desired list would change the
                replication degree
            NoCandidateFound: If a partition spec matches nothing
            InsufficientSpace: If a destination is too full
            UnsafeRelease: If the plan releases unreleased changes without force
        """
        self._validate(volume, current, desired)

        builder = _PlanBuilder(volume.name)
        unplaced = list(current.replicas)

        primary = self._place_primary(volume, current, desired[0], unplaced, builder)

        for location in desired[1:]:
            self._place_replica(volume, location, unplaced, builder)

        # Kept sites added by an interrupted run still need their release
        if any(current.is_pending(r) for r in current.replicas if r not in unplaced):
            builder.needs_release = True

        if builder.needs_release:
            builder.emit(Release(volume.name))

        for replica in unplaced:
            builder.emit(RemoveSite(volume.name, replica))

        plan = builder.build()
        self.gate.check_end_state(current, plan)
        self.gate.authorize(plan, volume.unreleased, force)

        logger.info(
            "Planned volume",
            volume=volume.name,
            primary=str(primary),
            operations=len(plan),
            needs_release=plan.needs_release,
        )

        return plan

    def _validate(self, volume: Volume, current: Topology, desired: List[Location]) -> None:
        if not desired:
            raise InvalidTopology(volume.name, "no desired locations given")

        servers = [location.server for location in desired]
        duplicates = sorted({s for s in servers if servers.count(s) > 1})
        if duplicates:
            raise InvalidTopology(
                volume.name,
                f"server listed more than once: {', '.join(duplicates)}",
            )

        if current.replicated:
            if len(desired) != current.degree():
                detail = (
                    f"volume is on {current.degree()} servers but "
                    f"{len(desired)} locations were given"
                )
                if current.degree() > len(desired):
                    # A run that failed after its release leaves the old
                    # replica released next to the new one.
                    detail += (
                        "; an extra released replica may be left by an "
                        "interrupted run, remove it with vos remove or list its server"
                    )
                raise ReplicationCountMismatch(volume.name, detail)
        elif len(desired) != 1:
            raise ReplicationCountMismatch(
                volume.name,
                f"volume is not replicated; {len(desired) - 1} replica "
                "locations cannot be added",
            )

    def _take_replica_on(self, server: str, unplaced: List[Site]) -> Optional[Site]:
        for replica in unplaced:
            if replica.server == server:
                unplaced.remove(replica)
                return replica
        return None

    def _place_primary(
        self,
        volume: Volume,
        current: Topology,
        target: Location,
        unplaced: List[Site],
        builder: _PlanBuilder,
    ) -> Site:
        """
        Phase A: place the primary.

        Returns:
            Primary site after the plan
        """
        primary = current.primary

        if current.replicated and target.server == primary.server:
            # Same server is good enough; the primary never moves between
            # partitions of one server while it has replicas.
            companion = self._take_replica_on(primary.server, unplaced)
            if self.companion_replica:
                wanted = primary.as_role(SiteRole.REPLICA)
                if companion is not None and not companion.same_place(primary):
                    builder.emit(RemoveSite(volume.name, companion))
                    companion = None
                if companion is None:
                    builder.emit(AddSite(volume.name, wanted))
                    builder.needs_release = True
            return primary

        if not current.replicated and target.satisfied_by(primary):
            return primary

        partition = self.selector.place(target.server, target.spec, volume.size)
        new_primary = Site(target.server, partition.name, SiteRole.PRIMARY)

        builder.emit(Move(volume.name, primary, new_primary))
        builder.emit(Backup(volume.name))

        if not current.replicated:
            return new_primary

        builder.needs_release = True

        if self.companion_replica:
            wanted = new_primary.as_role(SiteRole.REPLICA)
            existing = self._take_replica_on(target.server, unplaced)
            if existing is not None and not existing.same_place(new_primary):
                builder.emit(RemoveSite(volume.name, existing))
                existing = None
            if existing is None:
                builder.emit(AddSite(volume.name, wanted))

        # Without companions, a replica already on the new primary's server
        # stays unplaced and is removed after the release.
        return new_primary

    def _place_replica(
        self,
        volume: Volume,
        location: Location,
        unplaced: List[Site],
        builder: _PlanBuilder,
    ) -> None:
        """Phase B: place one replica."""
        if self._take_replica_on(location.server, unplaced) is not None:
            return

        partition = self.selector.place(location.server, location.spec, volume.size)
        builder.emit(AddSite(volume.name, Site(location.server, partition.name)))
        builder.needs_release = True

    # Single site

    def plan_single(
        self,
        volume: Volume,
        current: Topology,
        source: SiteRef,
        destination: Location,
        force: bool = False,
    ) -> Plan:
        """
        Plan moving exactly one site, leaving the others alone.

        Args:
            volume: Volume being placed
            current: Current topology
            source: Site to evacuate; a server holding both the primary and
                its companion clone selects the primary
            destination: Where the site goes
            force: Release even if the primary has unreleased changes

        Returns:
            Plan

        Raises:
            SiteNotFound: If no site matches the source
            SiteAlreadyExists: If the destination server hosts a site already
            ReplicationCountMismatch: If the move would change the degree
            InsufficientSpace: If the destination is too full
            UnsafeRelease: If the plan releases unreleased changes without force
        """
        matches = [site for site in current.sites() if source.matches(site)]
        if not matches:
            raise SiteNotFound(volume.name, f"no site on {source}")

        site = next((s for s in matches if s.role == SiteRole.PRIMARY), matches[0])
        if len(matches) > 1 and site.role != SiteRole.PRIMARY:
            raise InvalidTopology(
                volume.name,
                f"{source} holds {len(matches)} sites; name the partition",
            )

        if current.sites_on(destination.server):
            raise SiteAlreadyExists(
                volume.name, f"{destination.server} already hosts a site"
            )

        partition = self.selector.place(destination.server, destination.spec, volume.size)
        target = Site(destination.server, partition.name)

        builder = _PlanBuilder(volume.name)

        if site.role == SiteRole.PRIMARY:
            self._move_single_primary(volume, current, site, target, builder)
        else:
            builder.emit(AddSite(volume.name, target))
            builder.needs_release = True
            builder.emit(Release(volume.name))
            builder.emit(RemoveSite(volume.name, site))

        plan = builder.build()
        self.gate.check_end_state(current, plan)
        self.gate.authorize(plan, volume.unreleased, force)

        logger.info(
            "Planned single-site move",
            volume=volume.name,
            source=str(site),
            target=str(target),
            operations=len(plan),
        )

        return plan

    def _move_single_primary(
        self,
        volume: Volume,
        current: Topology,
        primary: Site,
        target: Site,
        builder: _PlanBuilder,
    ) -> None:
        builder.emit(Move(volume.name, primary, target.as_role(SiteRole.PRIMARY)))
        builder.emit(Backup(volume.name))

        if not current.replicated:
            return

        builder.needs_release = True

        if not self.companion_replica:
            builder.emit(Release(volume.name))
            return

        old_companion = next(
            (r for r in current.replicas if r.same_place(primary)), None
        )
        if old_companion is None:
            # Adding a clone next to the moved primary without one to retire
            # would raise the replica count.
            raise ReplicationCountMismatch(
                volume.name,
                f"primary on {primary} has no companion replica; moving it "
                f"would add a replica on {target}",
            )

        builder.emit(AddSite(volume.name, target))
        builder.emit(Release(volume.name))
        builder.emit(RemoveSite(volume.name, old_companion))
