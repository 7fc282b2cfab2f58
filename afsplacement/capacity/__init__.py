"""
Partition capacity: inspection, reporting and destination selection.
"""

from afsplacement.capacity.partinfo import (
    PartitionInfoSource,
    VosPartitionInfo,
    format_report,
    parse_partinfo,
)
from afsplacement.capacity.selector import PartitionSelector, available_space

__all__ = [
    "PartitionInfoSource",
    "VosPartitionInfo",
    "PartitionSelector",
    "available_space",
    "format_report",
    "parse_partinfo",
]
