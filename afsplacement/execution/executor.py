"""
Plan executor.

Runs the operations of a plan strictly in order, one blocking command at a
time, and stops at the first failure. Nothing is rolled back; re-planning
from a fresh inspection resumes convergence.
"""

import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from afsplacement.core.operations import Operation, Plan
from afsplacement.execution.commands import CommandExecutor
from afsplacement.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ExecutionReport:
    """
    Outcome of running a plan.

    Attributes:
        volume: Volume name
        completed: Operations that succeeded, in order
        failed: Operation that failed, if any
        error: Failure detail from the executor
        remaining: Operations never attempted
        start_time: Start timestamp (ms)
        end_time: End timestamp (ms)
    """
    volume: str
    completed: List[Operation] = field(default_factory=list)
    failed: Optional[Operation] = None
    error: str = ""
    remaining: List[Operation] = field(default_factory=list)
    start_time: int = 0
    end_time: int = 0

    def __post_init__(self):
        if self.start_time == 0:
            self.start_time = int(time.time() * 1000)

    @property
    def ok(self) -> bool:
        return self.failed is None

    def duration_ms(self) -> int:
        """
        Get execution duration in milliseconds.

        Returns:
            Duration in ms
        """
        if self.end_time > 0:
            return self.end_time - self.start_time

        return int(time.time() * 1000) - self.start_time

    def to_dict(self) -> Dict:
        """Convert to dictionary for reporting."""
        return {
            "volume": self.volume,
            "ok": self.ok,
            "completed": [op.describe() for op in self.completed],
            "failed": self.failed.describe() if self.failed else None,
            "error": self.error,
            "remaining": [op.describe() for op in self.remaining],
            "duration_ms": self.duration_ms(),
        }


class PlanExecutor:
    """Executes placement plans through a command executor."""

    def __init__(self, executor: CommandExecutor):
        """
        Initialize plan executor.

        Args:
            executor: Command executor performing each operation
        """
        self.executor = executor

    def execute(self, plan: Plan) -> ExecutionReport:
        """
        Run a plan in order, halting on the first failure.

        Args:
            plan: Plan to run

        Returns:
            Execution report
        """
        report = ExecutionReport(volume=plan.volume)
        operations = list(plan.operations)

        for index, op in enumerate(operations):
            logger.info(
                "Running operation",
                volume=plan.volume,
                step=index + 1,
                total=len(operations),
                operation=op.describe(),
            )

            try:
                result = self.executor.run(op)
                error = "" if result.ok else result.detail()
            except Exception as e:
                error = f"{type(e).__name__}: {e}"

            if error:
                report.failed = op
                report.error = error
                report.remaining = operations[index + 1:]

                logger.error(
                    "Operation failed",
                    volume=plan.volume,
                    operation=op.describe(),
                    error=error,
                    remaining=len(report.remaining),
                )
                break

            report.completed.append(op)

        report.end_time = int(time.time() * 1000)

        if report.ok:
            logger.info(
                "Plan completed",
                volume=plan.volume,
                operations=len(report.completed),
                duration_ms=report.duration_ms(),
            )

        return report
