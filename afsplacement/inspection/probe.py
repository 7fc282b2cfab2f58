"""
Inspector selection.

Picks the inspector variant once at startup. vos from OpenAFS 1.6 on
understands `examine -format`; older releases only print the classic
header.
"""

import re
from typing import Optional, Tuple

from afsplacement.core.runner import CommandRunner
from afsplacement.inspection.inspector import (
    AttributeInspector,
    ClassicInspector,
    VolumeInspector,
)
from afsplacement.utils.config import PlacementConfig
from afsplacement.utils.logging import get_logger

logger = get_logger(__name__)

ATTRIBUTE_FORMAT_SINCE = (1, 6)

_VERSION_RE = re.compile(r"(\d+)\.(\d+)(?:\.(\d+))?")


def parse_version(output: str) -> Optional[Tuple[int, int]]:
    """
    Extract the major and minor version from `vos -version` output.

    Args:
        output: Command output such as "OpenAFS 1.8.7 2020-12-10"

    Returns:
        (major, minor) or None if no version is present
    """
    match = _VERSION_RE.search(output)
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


def probe_inspector(runner: CommandRunner, config: PlacementConfig) -> VolumeInspector:
    """
    Select the inspector variant for the installed vos.

    Args:
        runner: Command runner
        config: Placement configuration; inspection_format other than
            "auto" skips the probe

    Returns:
        Inspector instance
    """
    if config.inspection_format == "attribute":
        return AttributeInspector(runner, config)
    if config.inspection_format == "classic":
        return ClassicInspector(runner, config)

    result = runner.run([config.vos_path, "-version"])
    version = parse_version(result.stdout + result.stderr) if result.ok else None

    if version is None:
        logger.warning(
            "Cannot determine vos version, using classic format",
            detail=result.detail(),
        )
        return ClassicInspector(runner, config)

    inspector_class = (
        AttributeInspector if version >= ATTRIBUTE_FORMAT_SINCE else ClassicInspector
    )

    logger.info(
        "Selected inspector",
        vos_version=f"{version[0]}.{version[1]}",
        inspector=inspector_class.format.name,
    )

    return inspector_class(runner, config)
