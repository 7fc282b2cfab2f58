"""
afs-placement - converge AFS volume placement to a desired topology.

Given where a volume's read-write primary and read-only replicas should
live, the package:
- Inspects where the volume lives now (classic or -format vos output)
- Picks destination partitions by free space under a capacity threshold
- Plans the minimal ordered vos operations, never changing replica count
- Refuses to release unreleased changes unless forced
- Executes the plan in order, stopping at the first failure
"""

__version__ = "0.1.0"

from afsplacement.core.errors import PlacementError
from afsplacement.core.models import Location, Site, SiteRole, Topology, Volume
from afsplacement.reconcile.service import ReconcileOptions, ReconcileResult, Reconciler

__all__ = [
    "PlacementError",
    "Location",
    "Site",
    "SiteRole",
    "Topology",
    "Volume",
    "Reconciler",
    "ReconcileOptions",
    "ReconcileResult",
]
