"""
Parsers for `vos examine` output.

Two header formats exist. The classic format:

    user.alice                        536870915 RW      12345 K  On-line
        afs1.example.com /vicepa
        ...
        Last Update Fri Jun  1 12:00:00 2012
        1234 accesses in the past day (i.e., vnode references)

and the attribute-value format printed with -format:

    name            user.alice
    serv            192.0.2.10      afs1.example.com
    part            /vicepa
    type            RW
    updateDate      1338552000      Fri Jun  1 12:00:00 2012
    diskused        12345
    dayUse          1234

Both are followed by the same VLDB site list:

    number of sites -> 2
       server afs1.example.com partition /vicepa RW Site
       server afs2.example.com partition /vicepb RO Site  -- Not released
"""

import calendar
import re
import time
from dataclasses import dataclass
from typing import Dict, List, Optional

from afsplacement.core.errors import InspectionParseError, InvalidPartitionSpec
from afsplacement.core.models import Site, SiteRole
from afsplacement.core.partitions import normalize_partition

_SITE_RE = re.compile(
    r"^\s*server\s+(\S+)\s+partition\s+(\S+)\s+(RW|RO|BK)\s+Site(?:\s+--\s+(.*?))?\s*$"
)
_CLASSIC_HEAD_RE = re.compile(
    r"^(\S+)\s+(\d+)\s+(RW|RO|BK)\s+(\d+)\s+K\s+(.*?)\s*$"
)
_CLASSIC_LOCATION_RE = re.compile(r"^\s+(\S+)\s+(/vicep[a-z]{1,2})\s*$")
_CLASSIC_UPDATE_RE = re.compile(r"^\s+Last Update\s+(.*?)\s*$")
_CLASSIC_ACCESS_RE = re.compile(r"^\s+(\d+)\s+accesses in the past day")
_CTIME_FORMAT = "%a %b %d %H:%M:%S %Y"


@dataclass(frozen=True)
class VolumeHeader:
    """
    One volume instance as reported by the volume server.

    Attributes:
        name: Volume name
        type: RW, RO or BK
        server: Server hostname
        partition: Partition letter identifier
        size: Disk usage in KiB
        last_update: Last update time (epoch seconds, 0 if never)
        accesses: Accesses in the past day
    """
    name: str
    type: str
    server: str
    partition: str
    size: int
    last_update: int
    accesses: int


@dataclass(frozen=True)
class SiteEntry:
    """
    One line of the VLDB site list.

    Attributes:
        site: Site with its role
        flag: Release flag text such as "Not released", if any
    """
    site: Site
    flag: Optional[str] = None


def parse_ctime(text: str) -> int:
    """
    Parse a ctime-style date as printed by vos.

    Args:
        text: Date such as "Fri Jun  1 12:00:00 2012" or "Never"

    Returns:
        Epoch seconds, 0 for "Never"

    Raises:
        InspectionParseError: If the date is unreadable
    """
    text = " ".join(text.split())
    if not text or text == "Never":
        return 0
    try:
        return calendar.timegm(time.strptime(text, _CTIME_FORMAT))
    except ValueError as e:
        raise InspectionParseError(None, f"unreadable date {text!r}") from e


def parse_sites(output: str) -> List[SiteEntry]:
    """
    Parse the VLDB site list.

    Args:
        output: vos examine output

    Returns:
        Site entries in listed order (backup sites are skipped)

    Raises:
        InspectionParseError: If the output has no site list
    """
    if "number of sites" not in output:
        raise InspectionParseError(None, "no site list in vos examine output")

    entries = []
    for line in output.splitlines():
        match = _SITE_RE.match(line)
        if not match:
            continue
        server, partition, kind, flag = match.groups()
        if kind == "BK":
            continue
        role = SiteRole.PRIMARY if kind == "RW" else SiteRole.REPLICA
        try:
            site = Site(server, normalize_partition(partition), role)
        except InvalidPartitionSpec as e:
            raise InspectionParseError(None, f"bad partition in site list: {partition}") from e
        entries.append(SiteEntry(site=site, flag=flag or None))

    return entries


class ClassicFormat:
    """Header parser for plain `vos examine` output."""

    name = "classic"
    examine_flags: List[str] = []

    def parse_headers(self, output: str) -> List[VolumeHeader]:
        """
        Parse every volume header in the output.

        Args:
            output: vos examine output

        Returns:
            Headers in output order

        Raises:
            InspectionParseError: If a header is incomplete
        """
        headers = []
        current: Optional[Dict] = None

        for line in output.splitlines():
            if head := _CLASSIC_HEAD_RE.match(line):
                if current is not None:
                    headers.append(self._finish(current))
                name, _, kind, size, _ = head.groups()
                current = {"name": name, "type": kind, "size": int(size)}
                continue

            if current is None:
                continue

            if "server" not in current:
                if location := _CLASSIC_LOCATION_RE.match(line):
                    current["server"] = location.group(1)
                    current["partition"] = normalize_partition(location.group(2))
                    continue

            if update := _CLASSIC_UPDATE_RE.match(line):
                current["last_update"] = parse_ctime(update.group(1))
            elif access := _CLASSIC_ACCESS_RE.match(line):
                current["accesses"] = int(access.group(1))

        if current is not None:
            headers.append(self._finish(current))

        return headers

    def _finish(self, fields: Dict) -> VolumeHeader:
        if "server" not in fields:
            raise InspectionParseError(
                None, f"no server/partition line for {fields['name']}"
            )
        return VolumeHeader(
            name=fields["name"],
            type=fields["type"],
            server=fields["server"],
            partition=fields["partition"],
            size=fields["size"],
            last_update=fields.get("last_update", 0),
            accesses=fields.get("accesses", 0),
        )


class AttributeFormat:
    """Header parser for `vos examine -format` output."""

    name = "attribute"
    examine_flags: List[str] = ["-format"]

    _REQUIRED = ("name", "serv", "part", "type", "diskused")

    def parse_headers(self, output: str) -> List[VolumeHeader]:
        """
        Parse every volume header in the output.

        Each header starts with a "name" attribute line.

        Args:
            output: vos examine -format output

        Returns:
            Headers in output order

        Raises:
            InspectionParseError: If a header lacks a required attribute
        """
        headers = []
        current: Optional[Dict[str, List[str]]] = None

        for line in output.splitlines():
            if not line or line[0].isspace():
                continue
            key, *values = line.split()
            if key == "name":
                if current is not None:
                    headers.append(self._finish(current))
                current = {}
            if current is not None:
                current[key] = values

        if current is not None:
            headers.append(self._finish(current))

        return headers

    def _finish(self, attrs: Dict[str, List[str]]) -> VolumeHeader:
        missing = [key for key in self._REQUIRED if not attrs.get(key)]
        if missing:
            raise InspectionParseError(
                None, f"missing attributes {', '.join(missing)} in vos examine -format output"
            )

        try:
            return VolumeHeader(
                name=attrs["name"][0],
                type=attrs["type"][0],
                # "serv" carries the address and, when resolvable, the hostname
                server=attrs["serv"][-1],
                partition=normalize_partition(attrs["part"][0]),
                size=int(attrs["diskused"][0]),
                last_update=int(attrs.get("updateDate", ["0"])[0]),
                accesses=int(attrs.get("dayUse", ["0"])[0]),
            )
        except ValueError as e:
            raise InspectionParseError(
                None, f"bad numeric attribute in vos examine -format output: {e}"
            ) from e
