"""
Core data model: volumes, sites, partitions, operations and errors.
"""

from afsplacement.core.models import (
    Inspection,
    Location,
    ReplicaStats,
    Site,
    SiteRole,
    Topology,
    Volume,
)
from afsplacement.core.operations import (
    AddSite,
    Backup,
    Move,
    Operation,
    OperationKind,
    Plan,
    Release,
    RemoveSite,
)
from afsplacement.core.partitions import Partition, PartitionSpec

__all__ = [
    # Model
    "Volume",
    "Site",
    "SiteRole",
    "Topology",
    "Location",
    "ReplicaStats",
    "Inspection",
    "Partition",
    "PartitionSpec",
    # Operations
    "Operation",
    "OperationKind",
    "Move",
    "AddSite",
    "RemoveSite",
    "Backup",
    "Release",
    "Plan",
]
