"""Tests for batch reconciliation."""

import pytest

from afsplacement.core.errors import InvalidTopology
from afsplacement.core.models import Location, Site
from afsplacement.reconcile.batch import BatchItem, BatchReconciler, parse_batch
from afsplacement.reconcile.service import ReconcileOptions, Reconciler


def locations(*pairs):
    return [Location.parse(server, spec) for server, spec in pairs]


@pytest.fixture
def reconciler(cell, partitions, config):
    """Create reconciler over the fake cell."""
    for server in ("S1", "S2", "S3"):
        partitions.add(server, "a", free=9000)
    return Reconciler(inspector=cell, partitions=partitions, executor=cell, config=config)


class TestParseBatch:
    """Test parse_batch."""

    def test_lines(self):
        """Test volumes with their own locations."""
        items = parse_batch([
            "# nightly rebalance",
            "",
            "user.alice S1 a S2 .   # keep replica anywhere on S2",
            "user.bob S3 b-d",
        ])

        assert [item.volume for item in items] == ["user.alice", "user.bob"]
        assert items[0].desired == locations(("S1", "a"), ("S2", "."))
        assert items[0].line == 3
        assert items[1].desired == locations(("S3", "b-d"))

    def test_shared_locations(self):
        """Test bare names take the shared locations."""
        shared = locations(("S1", "."))

        items = parse_batch(["user.alice", "user.bob S2 a"], shared=shared)

        assert items[0].desired == shared
        assert items[1].desired == locations(("S2", "a"))

    def test_bare_name_without_shared(self):
        """Test a bare name when no shared locations exist."""
        with pytest.raises(InvalidTopology) as exc:
            parse_batch(["user.alice"])

        assert "line 1" in str(exc.value)

    def test_odd_pairs(self):
        """Test a server without a partition spec."""
        with pytest.raises(InvalidTopology):
            parse_batch(["user.alice S1 a S2"])

    def test_bad_partition(self):
        """Test a malformed partition spec names the line."""
        with pytest.raises(InvalidTopology) as exc:
            parse_batch(["", "user.alice S1 9"])

        assert exc.value.volume == "user.alice"
        assert "line 2" in str(exc.value)


class TestBatchReconciler:
    """Test BatchReconciler."""

    def test_failure_does_not_stop_batch(self, reconciler, cell):
        """Test a failing volume is recorded and the rest still run."""
        cell.add_volume("good", "S1/a", ["S2/a"])
        items = [
            BatchItem("missing", locations(("S1", "a"))),
            BatchItem("good", locations(("S1", "a"), ("S3", "a"))),
        ]

        summary = BatchReconciler(reconciler).run(items)

        assert summary.succeeded == 1
        assert summary.failed == 1
        [(volume, reason)] = summary.failures
        assert volume == "missing"
        assert "volume-not-found" in reason
        assert cell.topologies["good"].replicas == [Site("S3", "a")]
        assert summary.render()[-1] == "1 succeeded, 1 failed"
        assert not summary.ok

    def test_execution_failure_recorded(self, reconciler, cell):
        """Test a failed operation is counted as a failed volume."""
        cell.add_volume("v", "S1/a", ["S2/a"])
        cell.fail_on = 0

        summary = BatchReconciler(reconciler).run(
            [BatchItem("v", locations(("S1", "a"), ("S3", "a")))]
        )

        assert summary.failed == 1
        assert summary.failures == [
            ("v", "add replica site of v on S3/a failed: exit status 255: VOLSER: busy")
        ]

    def test_volume_listed_twice(self, reconciler):
        """Test each failing line is counted, even for the same volume."""
        desired = locations(("S1", "a"))

        summary = BatchReconciler(reconciler).run(
            [BatchItem("missing", desired, line=1), BatchItem("missing", desired, line=2)]
        )

        assert summary.failed == 2
        assert [volume for volume, _ in summary.failures] == ["missing", "missing"]
        assert summary.render()[-1] == "0 succeeded, 2 failed"

    def test_stop_file(self, reconciler, cell, tmp_path):
        """Test the stop file halts the batch between volumes."""
        stop_file = tmp_path / "stop"
        stop_file.write_text("")
        cell.add_volume("v", "S1/a")

        summary = BatchReconciler(reconciler, stop_file=str(stop_file)).run(
            [BatchItem("v", locations(("S1", "a"))), BatchItem("w", locations(("S1", "a")))]
        )

        assert summary.stopped
        assert summary.skipped == ["v", "w"]
        assert cell.inspections == 0

    def test_options_apply_to_every_volume(self, reconciler, cell):
        """Test dry-run options reach each volume."""
        cell.add_volume("v", "S1/a", ["S2/a"])
        cell.add_volume("w", "S1/a", ["S2/a"])
        desired = locations(("S1", "a"), ("S3", "a"))

        summary = BatchReconciler(reconciler).run(
            [BatchItem("v", desired), BatchItem("w", desired)],
            ReconcileOptions(dry_run=True),
        )

        assert summary.ok
        assert all(result.dry_run for result in summary.results)
        assert cell.executed == []
