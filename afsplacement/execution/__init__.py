"""
Plan execution through the vos command suite.
"""

from afsplacement.execution.commands import CommandExecutor, VosCommandExecutor
from afsplacement.execution.executor import ExecutionReport, PlanExecutor

__all__ = [
    "CommandExecutor",
    "VosCommandExecutor",
    "PlanExecutor",
    "ExecutionReport",
]
