"""Tests for the plan safety gate."""

import pytest

from afsplacement.core.errors import CoLocatedSites, ReplicationCountMismatch, UnsafeRelease
from afsplacement.core.models import Site, SiteRole, Topology
from afsplacement.core.operations import AddSite, Backup, Move, Plan, Release, RemoveSite
from afsplacement.planner.safety import SafetyGate, apply_plan

PRIMARY = Site("S1", "a", SiteRole.PRIMARY)


def plan_of(*operations):
    return Plan(volume="v", operations=tuple(operations))


class TestApplyPlan:
    """Test apply_plan."""

    def test_simulation(self):
        """Test every topology-changing operation."""
        current = Topology(primary=PRIMARY, replicas=[Site("S2", "a")])
        plan = plan_of(
            Move("v", PRIMARY, Site("S3", "b", SiteRole.PRIMARY)),
            Backup("v"),
            AddSite("v", Site("S4", "a")),
            Release("v"),
            RemoveSite("v", Site("S2", "a")),
        )

        after = apply_plan(current, plan)

        assert after.primary == Site("S3", "b", SiteRole.PRIMARY)
        assert after.replicas == [Site("S4", "a")]

    def test_original_untouched(self):
        """Test the starting topology is not modified."""
        current = Topology(primary=PRIMARY, replicas=[Site("S2", "a")])

        apply_plan(current, plan_of(RemoveSite("v", Site("S2", "a"))))

        assert current.replicas == [Site("S2", "a")]

    def test_added_site_pending_until_release(self):
        """Test an added site only counts once released."""
        current = Topology(primary=PRIMARY, replicas=[Site("S2", "a")])

        added = apply_plan(current, plan_of(AddSite("v", Site("S3", "a"))))
        released = apply_plan(added, plan_of(Release("v")))

        assert added.pending == [Site("S3", "a")]
        assert added.degree() == 2
        assert released.pending == []
        assert released.degree() == 3


class TestAuthorize:
    """Test SafetyGate.authorize."""

    @pytest.fixture
    def gate(self):
        """Create gate."""
        return SafetyGate()

    def test_no_release(self, gate):
        """Test plans without a release always pass."""
        gate.authorize(plan_of(Backup("v")), unreleased=True, force=False)

    def test_released_primary(self, gate):
        """Test a release of an up-to-date primary passes."""
        gate.authorize(plan_of(Release("v")), unreleased=False, force=False)

    def test_unreleased_primary(self, gate):
        """Test a release of unreleased changes is refused."""
        with pytest.raises(UnsafeRelease) as exc:
            gate.authorize(plan_of(Release("v")), unreleased=True, force=False)

        assert exc.value.volume == "v"

    def test_forced(self, gate):
        """Test force overrides the refusal."""
        gate.authorize(plan_of(Release("v")), unreleased=True, force=True)


class TestCheckEndState:
    """Test SafetyGate.check_end_state."""

    def test_degree_change(self):
        """Test a plan adding a server."""
        current = Topology(primary=PRIMARY, replicas=[Site("S2", "a")])

        with pytest.raises(ReplicationCountMismatch):
            SafetyGate().check_end_state(
                current, plan_of(AddSite("v", Site("S3", "a")), Release("v"))
            )

    def test_co_location(self):
        """Test a replica added next to the primary."""
        current = Topology(primary=PRIMARY, replicas=[Site("S2", "a")])

        with pytest.raises(CoLocatedSites):
            SafetyGate().check_end_state(current, plan_of(AddSite("v", Site("S1", "a"))))

    def test_companion_allowed(self):
        """Test a clone on the primary's partition in companion mode."""
        current = Topology(primary=PRIMARY, replicas=[Site("S2", "a")])

        after = SafetyGate(companion_replica=True).check_end_state(
            current, plan_of(AddSite("v", Site("S1", "a")))
        )

        assert after.degree() == 2

    def test_companion_on_other_partition(self):
        """Test a clone must share the primary's partition."""
        current = Topology(primary=PRIMARY, replicas=[Site("S2", "a")])

        with pytest.raises(CoLocatedSites):
            SafetyGate(companion_replica=True).check_end_state(
                current, plan_of(AddSite("v", Site("S1", "b")))
            )

    def test_existing_layout_tolerated(self):
        """Test sites already sharing a server are not flagged."""
        current = Topology(
            primary=PRIMARY,
            replicas=[Site("S1", "b"), Site("S2", "a")],
        )
        plan = plan_of(
            AddSite("v", Site("S3", "a")),
            Release("v"),
            RemoveSite("v", Site("S2", "a")),
        )

        after = SafetyGate().check_end_state(current, plan)

        assert after.servers() == {"S1", "S3"}
