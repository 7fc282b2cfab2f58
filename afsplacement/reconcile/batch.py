"""
Batch reconciliation.

Processes a list of volumes one at a time, in list order. A failure on one
volume is recorded and the batch moves on. A stop file, if configured, is
checked before each volume so a long run can be halted between volumes.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

from afsplacement.core.errors import InvalidPartitionSpec, InvalidTopology, PlacementError
from afsplacement.core.models import Location
from afsplacement.reconcile.service import ReconcileOptions, ReconcileResult, Reconciler
from afsplacement.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class BatchItem:
    """
    One volume and where it should live.

    Attributes:
        volume: Read-write volume name
        desired: Desired locations, primary first
        line: Source line number, 0 if not read from a file
    """
    volume: str
    desired: Sequence[Location]
    line: int = 0


@dataclass
class BatchSummary:
    """
    Tally of a batch run.

    Attributes:
        results: Results of volumes that were planned
        failures: (volume, reason) pairs in batch order
        skipped: Volumes not processed because the batch was stopped
        stopped: The stop file halted the batch
    """
    results: List[ReconcileResult] = field(default_factory=list)
    failures: List[Tuple[str, str]] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    stopped: bool = False

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def ok(self) -> bool:
        return not self.failures and not self.stopped

    def render(self) -> List[str]:
        """Final tally lines."""
        lines = [f"{volume}: FAILED: {reason}" for volume, reason in self.failures]
        if self.stopped:
            lines.append(f"Stopped by stop file, {len(self.skipped)} volumes not processed")
        lines.append(f"{self.succeeded} succeeded, {self.failed} failed")
        return lines


def parse_batch(
    lines: Iterable[str],
    shared: Optional[Sequence[Location]] = None,
) -> List[BatchItem]:
    """
    Parse a batch list.

    Each line holds a volume name, optionally followed by server/partition
    pairs. A bare volume name uses the shared locations. Blank lines and
    lines starting with # are ignored.

    Args:
        lines: Batch file lines
        shared: Locations for bare volume names

    Returns:
        Batch items in file order

    Raises:
        InvalidTopology: If a line is malformed
    """
    items = []
    for number, raw in enumerate(lines, start=1):
        text = raw.split("#", 1)[0].strip()
        if not text:
            continue

        volume, *rest = text.split()
        if rest:
            if len(rest) % 2:
                raise InvalidTopology(
                    volume, f"line {number}: server and partition must come in pairs"
                )
            try:
                desired = [
                    Location.parse(rest[i], rest[i + 1]) for i in range(0, len(rest), 2)
                ]
            except InvalidPartitionSpec as e:
                raise InvalidTopology(volume, f"line {number}: {e.detail}") from e
        elif shared:
            desired = list(shared)
        else:
            raise InvalidTopology(
                volume, f"line {number}: no locations and no shared locations given"
            )

        items.append(BatchItem(volume=volume, desired=desired, line=number))

    return items


class BatchReconciler:
    """Runs a reconciler over a list of volumes."""

    def __init__(self, reconciler: Reconciler, stop_file: Optional[str] = None):
        """
        Initialize batch reconciler.

        Args:
            reconciler: Reconciler for single volumes
            stop_file: Path whose existence halts the batch
        """
        self.reconciler = reconciler
        self.stop_file = Path(stop_file) if stop_file else None

    def _stop_requested(self) -> bool:
        return self.stop_file is not None and self.stop_file.exists()

    def run(
        self,
        items: Sequence[BatchItem],
        options: Optional[ReconcileOptions] = None,
    ) -> BatchSummary:
        """
        Reconcile every item in order.

        Args:
            items: Batch items
            options: Options applied to every volume

        Returns:
            Batch summary
        """
        summary = BatchSummary()

        for index, item in enumerate(items):
            if self._stop_requested():
                summary.stopped = True
                summary.skipped = [i.volume for i in items[index:]]
                logger.warning(
                    "Stop file present, halting batch",
                    stop_file=str(self.stop_file),
                    skipped=len(summary.skipped),
                )
                break

            try:
                result = self.reconciler.reconcile(item.volume, item.desired, options)
            except PlacementError as e:
                summary.failures.append((item.volume, str(e)))
                logger.error(
                    "Volume failed",
                    volume=item.volume,
                    rule=e.rule,
                    error=e.detail,
                )
                continue

            summary.results.append(result)
            if not result.ok:
                report = result.report
                summary.failures.append(
                    (item.volume, f"{report.failed.describe()} failed: {report.error}")
                )

        logger.info(
            "Batch finished",
            succeeded=summary.succeeded,
            failed=summary.failed,
            stopped=summary.stopped,
        )

        return summary
