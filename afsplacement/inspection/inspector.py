"""
Volume inspection.

Normalizes what the volume location database and volume servers report
about a volume into a Volume and its current Topology. The two inspector
variants differ only in the header format they request and parse.
"""

import re
from typing import Dict, List, Tuple, Union

from afsplacement.core.errors import (
    InspectionError,
    InspectionParseError,
    MultiplePrimaries,
    NotPrimary,
    VolumeNotFound,
)
from afsplacement.core.models import Inspection, ReplicaStats, SiteRole, Topology, Volume
from afsplacement.core.runner import CommandResult, CommandRunner
from afsplacement.inspection.formats import (
    AttributeFormat,
    ClassicFormat,
    VolumeHeader,
    parse_sites,
)
from afsplacement.utils.config import PlacementConfig
from afsplacement.utils.logging import get_logger

logger = get_logger(__name__)

_NOT_FOUND_RE = re.compile(r"no such entry|does not exist", re.IGNORECASE)
_CLONE_SUFFIXES = (".readonly", ".backup")
_NEVER_RELEASED = "Not released"


class VolumeInspector:
    """
    Base inspector over `vos examine`.

    Subclasses pick the header format.
    """

    format: Union[ClassicFormat, AttributeFormat]

    def __init__(self, runner: CommandRunner, config: PlacementConfig):
        """
        Initialize inspector.

        Args:
            runner: Command runner
            config: Placement configuration
        """
        self.runner = runner
        self.config = config

    def _examine(self, name: str) -> CommandResult:
        argv = [self.config.vos_path, "examine", "-id", name]
        argv.extend(self.format.examine_flags)
        argv.extend(self.config.vos_flags())
        return self.runner.run(argv)

    def _examine_ok(self, volume: str, name: str) -> str:
        result = self._examine(name)
        if result.ok:
            return result.stdout
        if _NOT_FOUND_RE.search(result.stderr + result.stdout):
            raise VolumeNotFound(volume, f"vos examine {name}: {result.detail()}")
        raise InspectionError(volume, f"vos examine {name} failed, {result.detail()}")

    def inspect(self, name: str) -> Inspection:
        """
        Inspect a read-write volume.

        Args:
            name: Read-write volume name

        Returns:
            Volume, current topology and per-replica statistics

        Raises:
            NotPrimary: If the name is not a read-write volume
            MultiplePrimaries: If more than one read-write site is listed
            VolumeNotFound: If the volume does not exist
            InspectionParseError: If the output cannot be parsed
        """
        if name.endswith(_CLONE_SUFFIXES):
            raise NotPrimary(name, "only read-write volumes can be placed")

        output = self._examine_ok(name, name)
        try:
            headers = self.format.parse_headers(output)
            entries = parse_sites(output)
        except InspectionParseError as e:
            raise InspectionParseError(name, e.detail) from e

        if not headers:
            raise InspectionParseError(name, "no volume header in vos examine output")

        header = headers[0]
        if header.type != "RW":
            raise NotPrimary(name, f"volume type is {header.type}, not RW")

        primaries = [e.site for e in entries if e.site.role == SiteRole.PRIMARY]
        if len(primaries) > 1:
            raise MultiplePrimaries(
                name, "RW sites on " + ", ".join(str(s) for s in primaries)
            )
        if not primaries:
            raise InspectionParseError(name, "no RW site in site list")

        replicas = [e.site for e in entries if e.site.role == SiteRole.REPLICA]
        pending = [
            e.site for e in entries
            if e.site.role == SiteRole.REPLICA and e.flag == _NEVER_RELEASED
        ]
        topology = Topology(primary=primaries[0], replicas=replicas, pending=pending)

        stats = self._replica_stats(name, topology) if replicas else []
        # vos may report only some RO headers; the freshest is the last release
        unreleased = bool(stats) and header.last_update > max(s.last_update for s in stats)

        volume = Volume(name=name, size=header.size, unreleased=unreleased)

        logger.info(
            "Inspected volume",
            volume=name,
            size=volume.size,
            topology=str(topology),
            unreleased=unreleased,
        )

        return Inspection(volume=volume, topology=topology, replica_stats=stats)

    def _replica_stats(self, name: str, topology: Topology) -> List[ReplicaStats]:
        """
        Freshness and usage of each replica.

        A replica site without a volume header has never been released;
        it reports a last update of 0.
        """
        try:
            output = self._examine_ok(name, f"{name}.readonly")
        except VolumeNotFound:
            logger.warning("Replicas listed but never released", volume=name)
            return [ReplicaStats(site=replica) for replica in topology.replicas]

        try:
            headers = self.format.parse_headers(output)
        except InspectionParseError as e:
            raise InspectionParseError(name, e.detail) from e

        by_location: Dict[Tuple[str, str], VolumeHeader] = {
            (h.server, h.partition): h for h in headers if h.type == "RO"
        }

        stats = []
        for replica in topology.replicas:
            header = by_location.get((replica.server, replica.partition))
            if header is None:
                logger.warning(
                    "No volume header for replica site",
                    volume=name,
                    site=str(replica),
                )
                stats.append(ReplicaStats(site=replica))
            else:
                stats.append(
                    ReplicaStats(
                        site=replica,
                        last_update=header.last_update,
                        accesses=header.accesses,
                    )
                )
        return stats


class ClassicInspector(VolumeInspector):
    """Inspector parsing plain `vos examine` output."""

    format = ClassicFormat()


class AttributeInspector(VolumeInspector):
    """Inspector parsing `vos examine -format` output."""

    format = AttributeFormat()
