"""
Placement operations and plans.

Operations are produced by the planner, never mutated, and executed strictly
in the order they were emitted.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Tuple, Union

from afsplacement.core.models import Site


class OperationKind(str, Enum):
    """Kinds of placement operation."""

    MOVE = "move"
    ADD_SITE = "addsite"
    REMOVE_SITE = "remove"
    BACKUP = "backup"
    RELEASE = "release"


@dataclass(frozen=True)
class Move:
    """Move the primary to another partition."""
    volume: str
    source: Site
    target: Site
    kind = OperationKind.MOVE

    def describe(self) -> str:
        return f"move {self.volume} from {self.source} to {self.target}"


@dataclass(frozen=True)
class AddSite:
    """Add a replica site."""
    volume: str
    site: Site
    kind = OperationKind.ADD_SITE

    def describe(self) -> str:
        return f"add replica site of {self.volume} on {self.site}"


@dataclass(frozen=True)
class RemoveSite:
    """Remove a replica site."""
    volume: str
    site: Site
    kind = OperationKind.REMOVE_SITE

    def describe(self) -> str:
        return f"remove replica of {self.volume} from {self.site}"


@dataclass(frozen=True)
class Backup:
    """Recreate the backup snapshot of the primary."""
    volume: str
    kind = OperationKind.BACKUP

    def describe(self) -> str:
        return f"back up {self.volume}"


@dataclass(frozen=True)
class Release:
    """Propagate the primary to all replicas."""
    volume: str
    kind = OperationKind.RELEASE

    def describe(self) -> str:
        return f"release {self.volume}"


Operation = Union[Move, AddSite, RemoveSite, Backup, Release]


@dataclass(frozen=True)
class Plan:
    """
    Ordered operations that converge one volume to its desired topology.

    Attributes:
        volume: Volume name
        operations: Operations in execution order
        needs_release: Plan propagates the primary to its replicas
    """
    volume: str
    operations: Tuple[Operation, ...] = field(default_factory=tuple)
    needs_release: bool = False

    @property
    def empty(self) -> bool:
        return not self.operations

    def contains(self, kind: OperationKind) -> bool:
        """True if the plan has an operation of the given kind."""
        return any(op.kind == kind for op in self.operations)

    def render(self) -> List[str]:
        """Human-readable rendering, one line per operation."""
        if not self.operations:
            return [f"{self.volume}: already in place"]
        return [
            f"{self.volume}: {index}. {op.describe()}"
            for index, op in enumerate(self.operations, start=1)
        ]

    def __len__(self) -> int:
        return len(self.operations)

    def __iter__(self):
        return iter(self.operations)
