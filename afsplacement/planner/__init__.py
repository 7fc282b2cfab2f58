"""
Topology planning and the safety gate applied to every plan.
"""

from afsplacement.planner.safety import SafetyGate, apply_plan
from afsplacement.planner.topology import SiteRef, TopologyPlanner

__all__ = [
    "TopologyPlanner",
    "SiteRef",
    "SafetyGate",
    "apply_plan",
]
