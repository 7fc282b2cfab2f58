"""
Partitions and partition specs.

A partition is named by its letter identifier (a, b, ..., z, aa, ...). Users
may also write the full /vicepX path. A partition spec selects candidates on
one server:

- "."        every partition on the server
- "a"        exactly one partition
- "c-g"      a letter range
- "ace-gm"   any mix of letters and ranges
- "/vicepaa" exactly one partition, in path form
"""

import re
from dataclasses import dataclass
from typing import FrozenSet, Optional

from afsplacement.core.errors import InvalidPartitionSpec

_PARTITION_RE = re.compile(r"^(?:/?vicep)?([a-z]{1,2})$")
_PATH_RE = re.compile(r"^/?vicep([a-z]{1,2})$")
_LETTER_SET_RE = re.compile(r"^(?:[a-z](?:-[a-z])?)+$")
_LETTER_ITEM_RE = re.compile(r"([a-z])(?:-([a-z]))?")


def normalize_partition(name: str) -> str:
    """
    Normalize a partition name to its bare letter identifier.

    Args:
        name: Partition name ("a", "vicepa" or "/vicepa")

    Returns:
        Letter identifier

    Raises:
        InvalidPartitionSpec: If the name is not a partition
    """
    match = _PARTITION_RE.match(name.strip().lower())
    if not match:
        raise InvalidPartitionSpec(None, f"not a partition name: {name!r}")
    return match.group(1)


def partition_path(name: str) -> str:
    """Return the /vicepX path of a partition."""
    return f"/vicep{name}"


@dataclass(frozen=True)
class PartitionSpec:
    """
    Parsed partition candidate spec.

    Attributes:
        text: Spec as written
        letters: Allowed single-letter partitions (None means all)
        exact: Exact partition name for path-form specs
    """
    text: str
    letters: Optional[FrozenSet[str]] = None
    exact: Optional[str] = None

    @classmethod
    def parse(cls, text: str) -> "PartitionSpec":
        """
        Parse a partition spec.

        Args:
            text: Spec text

        Returns:
            Parsed spec

        Raises:
            InvalidPartitionSpec: If the text is malformed
        """
        value = text.strip().lower()

        if value == ".":
            return cls(text=text)

        if path := _PATH_RE.match(value):
            return cls(text=text, exact=path.group(1))

        if not value or not _LETTER_SET_RE.match(value):
            raise InvalidPartitionSpec(None, f"malformed partition spec: {text!r}")

        letters = set()
        for start, end in _LETTER_ITEM_RE.findall(value):
            end = end or start
            if end < start:
                raise InvalidPartitionSpec(
                    None, f"descending range {start}-{end} in {text!r}"
                )
            span = {chr(c) for c in range(ord(start), ord(end) + 1)}
            if span & letters:
                raise InvalidPartitionSpec(
                    None,
                    f"letter repeated in {text!r}; two-letter partitions "
                    "are written in path form, such as /vicepaa",
                )
            letters.update(span)

        return cls(text=text, letters=frozenset(letters))

    @property
    def is_wildcard(self) -> bool:
        """True if the spec may match more than one partition."""
        if self.exact is not None:
            return False
        return self.letters is None or len(self.letters) > 1

    def matches(self, name: str) -> bool:
        """
        Check whether a partition is a candidate.

        Args:
            name: Partition letter identifier

        Returns:
            True if the partition matches
        """
        if self.exact is not None:
            return name == self.exact
        if self.letters is None:
            return True
        return name in self.letters

    def __str__(self) -> str:
        return self.text


@dataclass
class Partition:
    """
    Capacity snapshot of one partition.

    Attributes:
        server: Server hostname
        name: Partition letter identifier
        free: Free space in KiB
        total: Total space in KiB
    """
    server: str
    name: str
    free: int
    total: int

    @property
    def used(self) -> int:
        return self.total - self.free

    @property
    def percent_used(self) -> float:
        if self.total == 0:
            return 100.0
        return 100.0 * self.used / self.total

    def available(self, threshold: float) -> float:
        """
        Space that may still be filled without crossing the threshold.

        Args:
            threshold: Fraction of the total that may be used

        Returns:
            Available space in KiB (negative when already over)
        """
        return self.free - self.total * (1 - threshold)

    def __str__(self) -> str:
        return f"{self.server}/{self.name}"
