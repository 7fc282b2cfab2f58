"""Tests for full-topology planning."""

import pytest

from afsplacement.capacity.selector import PartitionSelector
from afsplacement.core.errors import (
    InsufficientSpace,
    InvalidTopology,
    NoCandidateFound,
    ReplicationCountMismatch,
    UnsafeRelease,
)
from afsplacement.core.models import Location, Site, SiteRole, Topology, Volume
from afsplacement.core.operations import AddSite, Backup, Move, Release, RemoveSite
from afsplacement.planner.safety import apply_plan
from afsplacement.planner.topology import TopologyPlanner


def rw(server, partition):
    return Site(server, partition, SiteRole.PRIMARY)


def ro(server, partition):
    return Site(server, partition)


def locations(*pairs):
    return [Location.parse(server, spec) for server, spec in pairs]


@pytest.fixture
def planner(partitions):
    """Create planner over three servers with room to spare."""
    for server in ("S1", "S2", "S3"):
        partitions.add(server, "a", free=9000)
        partitions.add(server, "b", free=8000)
    return TopologyPlanner(PartitionSelector(partitions, threshold=0.9))


class TestScenarios:
    """Test the reference scenarios."""

    def test_same_server_is_good_enough(self, planner, partitions):
        """Test a primary on the right server is left alone."""
        volume = Volume("X", size=100)
        current = Topology(primary=rw("S1", "a"), replicas=[ro("S2", "b")])

        plan = planner.plan(volume, current, locations(("S1", "b"), ("S2", "b")))

        assert plan.empty
        assert not plan.needs_release
        assert partitions.queries == []

    def test_unreplicated_move_picks_most_free(self, partitions):
        """Test an unreplicated primary moves to the emptiest candidate."""
        partitions.add("S3", "a", free=400, total=1000)
        partitions.add("S3", "b", free=900, total=1000)
        planner = TopologyPlanner(PartitionSelector(partitions, threshold=0.9))
        volume = Volume("Y", size=500)
        current = Topology(primary=rw("S1", "a"))

        plan = planner.plan(volume, current, locations(("S3", ".")))

        assert list(plan) == [Move("Y", rw("S1", "a"), rw("S3", "b")), Backup("Y")]
        assert not plan.needs_release

    def test_count_mismatch(self, planner):
        """Test a desired list that would drop a replica."""
        volume = Volume("Z", size=100)
        current = Topology(primary=rw("S1", "a"), replicas=[ro("S2", "a"), ro("S3", "a")])

        with pytest.raises(ReplicationCountMismatch):
            planner.plan(volume, current, locations(("S1", "a")))

    def test_unreleased_needs_force(self, planner):
        """Test replacing a replica of an unreleased primary."""
        volume = Volume("W", size=100, unreleased=True)
        current = Topology(primary=rw("S1", "a"), replicas=[ro("S2", "a")])
        desired = locations(("S1", "a"), ("S3", "a"))

        with pytest.raises(UnsafeRelease):
            planner.plan(volume, current, desired)

    def test_unreleased_with_force(self, planner):
        """Test force lets the release through."""
        volume = Volume("W", size=100, unreleased=True)
        current = Topology(primary=rw("S1", "a"), replicas=[ro("S2", "a")])

        plan = planner.plan(volume, current, locations(("S1", "a"), ("S3", "a")), force=True)

        assert list(plan) == [
            AddSite("W", ro("S3", "a")),
            Release("W"),
            RemoveSite("W", ro("S2", "a")),
        ]
        assert plan.needs_release


class TestTopologyPlanner:
    """Test TopologyPlanner."""

    def test_idempotent(self, planner):
        """Test planning again after applying a plan yields nothing."""
        volume = Volume("v", size=100)
        current = Topology(primary=rw("S1", "a"), replicas=[ro("S2", "a")])
        desired = locations(("S3", "."), ("S1", "b"))

        plan = planner.plan(volume, current, desired)
        after = apply_plan(current, plan)

        assert planner.plan(volume, after, desired).empty

    def test_resume_after_failed_release(self, planner):
        """Test a site left unreleased is released and the old one removed."""
        volume = Volume("v", size=100)
        current = Topology(
            primary=rw("S1", "a"),
            replicas=[ro("S2", "a"), ro("S3", "a")],
            pending=[ro("S3", "a")],
        )

        plan = planner.plan(volume, current, locations(("S1", "a"), ("S3", "a")))

        assert list(plan) == [Release("v"), RemoveSite("v", ro("S2", "a"))]

    def test_swap_primary_and_replica(self, planner):
        """Test removals come after the release."""
        volume = Volume("v", size=100)
        current = Topology(primary=rw("S1", "a"), replicas=[ro("S2", "b")])

        plan = planner.plan(volume, current, locations(("S2", "."), ("S1", ".")))

        assert list(plan) == [
            Move("v", rw("S1", "a"), rw("S2", "a")),
            Backup("v"),
            AddSite("v", ro("S1", "a")),
            Release("v"),
            RemoveSite("v", ro("S2", "b")),
        ]

    def test_replica_on_server_is_kept(self, planner):
        """Test a replica on the right server stays on its partition."""
        volume = Volume("v", size=100)
        current = Topology(primary=rw("S1", "a"), replicas=[ro("S2", "b")])

        plan = planner.plan(volume, current, locations(("S1", "a"), ("S2", "a")))

        assert plan.empty

    def test_unreplicated_on_matching_partition(self, planner):
        """Test an unreplicated primary on a candidate partition stays."""
        volume = Volume("v", size=100)
        current = Topology(primary=rw("S1", "b"))

        assert planner.plan(volume, current, locations(("S1", "a-c"))).empty

    def test_unreplicated_between_partitions(self, planner):
        """Test an unreplicated primary may move within its server."""
        volume = Volume("v", size=100)
        current = Topology(primary=rw("S1", "b"))

        plan = planner.plan(volume, current, locations(("S1", "a")))

        assert list(plan) == [Move("v", rw("S1", "b"), rw("S1", "a")), Backup("v")]

    def test_unreplicated_cannot_gain_replicas(self, planner):
        """Test an unreplicated volume given replica locations."""
        volume = Volume("v", size=100)
        current = Topology(primary=rw("S1", "a"))

        with pytest.raises(ReplicationCountMismatch):
            planner.plan(volume, current, locations(("S1", "a"), ("S2", "a")))

    def test_empty_desired(self, planner):
        """Test an empty desired list."""
        volume = Volume("v", size=100)

        with pytest.raises(InvalidTopology):
            planner.plan(volume, Topology(primary=rw("S1", "a")), [])

    def test_duplicate_servers(self, planner):
        """Test a server listed twice."""
        volume = Volume("v", size=100)
        current = Topology(primary=rw("S1", "a"), replicas=[ro("S2", "a")])

        with pytest.raises(InvalidTopology):
            planner.plan(volume, current, locations(("S2", "a"), ("S2", "b")))

    def test_no_candidate(self, planner):
        """Test a partition spec matching nothing on the server."""
        volume = Volume("v", size=100)

        with pytest.raises(NoCandidateFound):
            planner.plan(volume, Topology(primary=rw("S1", "a")), locations(("S3", "x")))

    def test_insufficient_space(self, planner):
        """Test a volume too large for the destination."""
        volume = Volume("v", size=9000)

        with pytest.raises(InsufficientSpace):
            planner.plan(volume, Topology(primary=rw("S1", "a")), locations(("S3", ".")))

    def test_capacity_is_only_read(self, planner, partitions):
        """Test planning leaves the capacity source untouched."""
        volume = Volume("v", size=500)

        planner.plan(volume, Topology(primary=rw("S1", "a")), locations(("S3", ".")))

        assert [p.free for p in partitions.servers["S3"]] == [9000, 8000]


class TestCompanionReplica:
    """Test planning with a read-only clone beside the primary."""

    @pytest.fixture
    def companion_planner(self, partitions):
        """Create planner in companion mode."""
        for server in ("S1", "S2", "S3"):
            partitions.add(server, "a", free=9000)
        return TopologyPlanner(PartitionSelector(partitions), companion_replica=True)

    def test_primary_move_takes_companion_along(self, companion_planner):
        """Test the clone follows the primary and the old one goes."""
        volume = Volume("v", size=100)
        current = Topology(
            primary=rw("S1", "a"),
            replicas=[ro("S1", "a"), ro("S2", "a")],
        )

        plan = companion_planner.plan(volume, current, locations(("S3", "."), ("S2", ".")))

        assert list(plan) == [
            Move("v", rw("S1", "a"), rw("S3", "a")),
            Backup("v"),
            AddSite("v", ro("S3", "a")),
            Release("v"),
            RemoveSite("v", ro("S1", "a")),
        ]

    def test_missing_companion_is_added(self, companion_planner):
        """Test a primary without its clone gets one."""
        volume = Volume("v", size=100)
        current = Topology(primary=rw("S1", "a"), replicas=[ro("S2", "a")])

        plan = companion_planner.plan(volume, current, locations(("S1", "a"), ("S2", "a")))

        assert list(plan) == [AddSite("v", ro("S1", "a")), Release("v")]

    def test_companion_in_place(self, companion_planner):
        """Test nothing to do when the clone is already there."""
        volume = Volume("v", size=100)
        current = Topology(
            primary=rw("S1", "a"),
            replicas=[ro("S1", "a"), ro("S2", "a")],
        )

        assert companion_planner.plan(volume, current, locations(("S1", "a"), ("S2", "a"))).empty
