"""
Placement errors.

Every fatal condition names the volume and the rule that was violated, since
these messages end up in logs of unattended batch runs. The classes are
grouped by kind: input errors, inspection errors, invariant violations and
safety violations. Execution failures are reported as data, not raised.
"""

from typing import Optional


class PlacementError(Exception):
    """Base class for all placement failures."""

    rule = "placement-error"

    def __init__(self, volume: Optional[str], detail: str):
        self.volume = volume
        self.detail = detail
        prefix = f"{volume}: " if volume else ""
        super().__init__(f"{prefix}{self.rule}: {detail}")


# Input errors


class InputError(PlacementError):
    """Malformed request, rejected before any external system is touched."""

    rule = "invalid-input"


class InvalidPartitionSpec(InputError):
    """Partition spec is not a letter, a letter set or '.'."""

    rule = "invalid-partition-spec"


class InvalidTopology(InputError):
    """Desired location list is malformed."""

    rule = "invalid-topology"


class NoCandidateFound(InputError):
    """Partition spec matched no partition on the server."""

    rule = "no-candidate-partition"


# Inspection errors


class InspectionError(PlacementError):
    """External inspection command failed."""

    rule = "inspection-failed"


class VolumeNotFound(InspectionError):
    """Volume does not exist."""

    rule = "volume-not-found"


class InspectionParseError(InspectionError):
    """Inspection output could not be parsed."""

    rule = "unparseable-output"


# Invariant violations


class InvariantViolation(PlacementError):
    """Request or current state breaks a topology invariant."""

    rule = "invariant-violation"


class NotPrimary(InvariantViolation):
    """Named volume is not a read-write volume."""

    rule = "not-primary"


class MultiplePrimaries(InvariantViolation):
    """Inspection reported more than one read-write site."""

    rule = "multiple-primaries"


class ReplicationCountMismatch(InvariantViolation):
    """Request would change the number of sites of the volume."""

    rule = "replication-count-mismatch"


class SiteNotFound(InvariantViolation):
    """Source site of a single-site move does not exist."""

    rule = "site-not-found"


class SiteAlreadyExists(InvariantViolation):
    """Destination server already hosts a site of the volume."""

    rule = "site-already-exists"


class CoLocatedSites(InvariantViolation):
    """Plan would leave two sites of the volume on one server."""

    rule = "co-located-sites"


# Safety violations


class SafetyViolation(PlacementError):
    """Plan is valid but unsafe to run."""

    rule = "safety-violation"


class UnsafeRelease(SafetyViolation):
    """Plan releases a primary that has unreleased changes."""

    rule = "unsafe-release"


class InsufficientSpace(SafetyViolation):
    """Destination partition lacks space under the capacity threshold."""

    rule = "insufficient-space"
