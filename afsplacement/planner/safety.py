"""
Safety gate for placement plans.

Stateless checks applied to a finished plan before anything runs:

- release gating: a plan that releases a primary with unreleased changes is
  refused unless forced
- replication degree: the simulated end state has as many servers as the
  current one
- co-location: the end state puts no two sites of the volume on one server,
  apart from a companion clone on the primary's partition or a layout that
  was already there
"""

from collections import defaultdict
from typing import Dict, List

from afsplacement.core.errors import CoLocatedSites, ReplicationCountMismatch, UnsafeRelease
from afsplacement.core.models import Site, SiteRole, Topology
from afsplacement.core.operations import (
    AddSite,
    Move,
    OperationKind,
    Plan,
    Release,
    RemoveSite,
)
from afsplacement.utils.logging import get_logger

logger = get_logger(__name__)


def apply_plan(topology: Topology, plan: Plan) -> Topology:
    """
    Simulate a plan on a topology.

    Args:
        topology: Starting topology
        plan: Plan to apply

    Returns:
        Topology after every operation succeeded
    """
    primary = topology.primary
    replicas = list(topology.replicas)
    pending = list(topology.pending)

    for op in plan:
        if isinstance(op, Move):
            primary = op.target.as_role(SiteRole.PRIMARY)
        elif isinstance(op, AddSite):
            site = op.site.as_role(SiteRole.REPLICA)
            replicas.append(site)
            pending.append(site)
        elif isinstance(op, RemoveSite):
            replicas = [r for r in replicas if not r.same_place(op.site)]
            pending = [p for p in pending if not p.same_place(op.site)]
        elif isinstance(op, Release):
            pending = []

    return Topology(primary=primary, replicas=replicas, pending=pending)


def _by_server(topology: Topology) -> Dict[str, List[Site]]:
    grouped: Dict[str, List[Site]] = defaultdict(list)
    for site in topology.sites():
        grouped[site.server].append(site)
    return grouped


class SafetyGate:
    """Checks a plan before it is executed."""

    def __init__(self, companion_replica: bool = False):
        """
        Initialize gate.

        Args:
            companion_replica: A replica may share the primary's partition
        """
        self.companion_replica = companion_replica

    def authorize(self, plan: Plan, unreleased: bool, force: bool) -> None:
        """
        Refuse to release a primary that has unreleased changes.

        Args:
            plan: Plan to check
            unreleased: Primary has changes not in any replica
            force: Caller accepts releasing those changes

        Raises:
            UnsafeRelease: If the plan releases, the primary is unreleased
                and force is not set
        """
        if not plan.contains(OperationKind.RELEASE) or not unreleased:
            return

        if not force:
            raise UnsafeRelease(
                plan.volume,
                "primary has changes not yet released to its replicas; "
                "use force to release them",
            )

        logger.warning(
            "Releasing primary with unreleased changes",
            volume=plan.volume,
        )

    def check_end_state(self, current: Topology, plan: Plan) -> Topology:
        """
        Verify the topology a plan leaves behind.

        Args:
            current: Topology before the plan
            plan: Plan to check

        Returns:
            Simulated end topology

        Raises:
            ReplicationCountMismatch: If the number of servers changes
            CoLocatedSites: If the plan co-locates two sites on one server
        """
        after = apply_plan(current, plan)

        if after.degree() != current.degree():
            raise ReplicationCountMismatch(
                plan.volume,
                f"plan changes the volume from {current.degree()} to "
                f"{after.degree()} servers",
            )

        before = _by_server(current)
        for server, sites in _by_server(after).items():
            if len(sites) < 2:
                continue
            if set(sites) == set(before.get(server, [])):
                continue
            if self._is_companion_pair(sites):
                continue
            raise CoLocatedSites(
                plan.volume,
                f"plan leaves {len(sites)} sites on {server}",
            )

        return after

    def _is_companion_pair(self, sites: List[Site]) -> bool:
        if not self.companion_replica or len(sites) != 2:
            return False
        primaries = [s for s in sites if s.role == SiteRole.PRIMARY]
        return len(primaries) == 1 and sites[0].same_place(sites[1])
