"""
Volume inspection over `vos examine`, in classic and attribute formats.
"""

from afsplacement.inspection.formats import (
    AttributeFormat,
    ClassicFormat,
    VolumeHeader,
    parse_sites,
)
from afsplacement.inspection.inspector import (
    AttributeInspector,
    ClassicInspector,
    VolumeInspector,
)
from afsplacement.inspection.probe import probe_inspector

__all__ = [
    "VolumeInspector",
    "ClassicInspector",
    "AttributeInspector",
    "ClassicFormat",
    "AttributeFormat",
    "VolumeHeader",
    "parse_sites",
    "probe_inspector",
]
