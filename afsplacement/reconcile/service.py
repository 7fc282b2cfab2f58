"""
Volume reconciliation.

Ties the stages together for one volume: inspect the current topology, plan
against fresh capacity figures, gate the plan, then execute it unless this
is a dry run. Every call starts from a new inspection, so re-running after
a partial failure picks up where the volume actually is.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from afsplacement.capacity.partinfo import PartitionInfoSource
from afsplacement.capacity.selector import PartitionSelector
from afsplacement.core.errors import InputError, InvalidTopology
from afsplacement.core.models import Inspection, Location
from afsplacement.core.operations import Plan, RemoveSite
from afsplacement.execution.commands import CommandExecutor
from afsplacement.execution.executor import ExecutionReport, PlanExecutor
from afsplacement.inspection.inspector import VolumeInspector
from afsplacement.planner.topology import SiteRef, TopologyPlanner
from afsplacement.utils.config import PlacementConfig
from afsplacement.utils.logging import bind_volume, clear_volume, get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ReconcileOptions:
    """
    Per-call reconciliation options.

    Attributes:
        force: Release even if the primary has unreleased changes
        threshold: Capacity threshold overriding the configured one
        single_site: Evacuate only this site to the single desired location
        dry_run: Plan and render without executing
    """
    force: bool = False
    threshold: Optional[float] = None
    single_site: Optional[SiteRef] = None
    dry_run: bool = False


@dataclass
class ReconcileResult:
    """
    Outcome of reconciling one volume.

    Attributes:
        volume: Volume name
        plan: Plan that was computed
        report: Execution report (None for dry runs)
        warnings: Warnings raised while planning
    """
    volume: str
    plan: Plan
    report: Optional[ExecutionReport] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def dry_run(self) -> bool:
        return self.report is None

    @property
    def ok(self) -> bool:
        return self.report is None or self.report.ok

    def render(self) -> List[str]:
        """Human-readable summary lines."""
        lines = [f"{self.volume}: warning: {w}" for w in self.warnings]
        lines.extend(self.plan.render())
        if self.report is not None and not self.report.ok:
            lines.append(
                f"{self.volume}: FAILED at {self.report.failed.describe()}: "
                f"{self.report.error}"
            )
            lines.extend(
                f"{self.volume}: not attempted: {op.describe()}"
                for op in self.report.remaining
            )
        return lines


class Reconciler:
    """Converges volumes to desired topologies."""

    def __init__(
        self,
        inspector: VolumeInspector,
        partitions: PartitionInfoSource,
        executor: CommandExecutor,
        config: PlacementConfig,
    ):
        """
        Initialize reconciler.

        Args:
            inspector: Volume inspector
            partitions: Partition capacity source
            executor: Command executor for plan execution
            config: Placement configuration
        """
        self.inspector = inspector
        self.partitions = partitions
        self.executor = executor
        self.config = config
        self.plan_executor = PlanExecutor(executor)

    def plan(
        self,
        volume_name: str,
        desired: Sequence[Location],
        options: ReconcileOptions,
    ) -> Tuple[Inspection, Plan]:
        """
        Inspect a volume and plan its convergence.

        Args:
            volume_name: Read-write volume name
            desired: Desired locations, primary first
            options: Reconciliation options

        Returns:
            (Inspection, Plan)
        """
        threshold = options.threshold if options.threshold is not None else self.config.threshold
        if not 0.0 < threshold <= 1.0:
            raise InputError(volume_name, f"threshold must be in (0, 1], got {threshold}")

        if options.single_site is not None and len(desired) != 1:
            raise InvalidTopology(
                volume_name,
                f"single-site mode takes one destination, got {len(desired)}",
            )

        inspection = self.inspector.inspect(volume_name)

        selector = PartitionSelector(self.partitions, threshold=threshold, volume=volume_name)
        planner = TopologyPlanner(selector, companion_replica=self.config.companion_replica)

        if options.single_site is not None:
            plan = planner.plan_single(
                inspection.volume,
                inspection.topology,
                options.single_site,
                desired[0],
                force=options.force,
            )
        else:
            plan = planner.plan(
                inspection.volume,
                inspection.topology,
                list(desired),
                force=options.force,
            )

        return inspection, plan

    def reconcile(
        self,
        volume_name: str,
        desired: Sequence[Location],
        options: Optional[ReconcileOptions] = None,
    ) -> ReconcileResult:
        """
        Converge one volume to its desired topology.

        Planning errors propagate as PlacementError; execution failures are
        returned in the result's report.

        Args:
            volume_name: Read-write volume name
            desired: Desired locations, primary first
            options: Reconciliation options

        Returns:
            Reconciliation result
        """
        options = options or ReconcileOptions()
        bind_volume(volume_name)
        try:
            inspection, plan = self.plan(volume_name, desired, options)
            result = ReconcileResult(
                volume=volume_name,
                plan=plan,
                warnings=self._removal_warnings(inspection, plan),
            )

            if options.dry_run or plan.empty:
                logger.info(
                    "Plan not executed",
                    volume=volume_name,
                    dry_run=options.dry_run,
                    operations=len(plan),
                )
                if not options.dry_run:
                    result.report = ExecutionReport(volume=volume_name)
                return result

            result.report = self.plan_executor.execute(plan)
            return result
        finally:
            clear_volume()

    def _removal_warnings(self, inspection: Inspection, plan: Plan) -> List[str]:
        """Warn about removing replicas that are still being read."""
        warnings = []
        for op in plan:
            if not isinstance(op, RemoveSite):
                continue
            for stats in inspection.replica_stats:
                if stats.site.same_place(op.site) and stats.accesses > 0:
                    message = (
                        f"replica on {op.site} had {stats.accesses} accesses "
                        "in the past day"
                    )
                    logger.warning(
                        "Removing replica in use",
                        volume=plan.volume,
                        site=str(op.site),
                        accesses=stats.accesses,
                    )
                    warnings.append(message)
        return warnings
