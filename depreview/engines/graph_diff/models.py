"""Data models for the graph-diff engine."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

from semantic_version import Version


class Partition(str, enum.Enum):
    """Build-time (host) vs run-time (target) half of a resolved graph."""

    HOST = "host"
    TARGET = "target"


class PackageStatus(str, enum.Enum):
    DIRECT = "direct"
    TRANSITIVE = "transitive"


@dataclass(frozen=True)
class ResolutionOptions:
    """Options a graph was resolved under; prior and post must agree."""

    resolver_version: str = "2"
    include_dev: bool = True
    all_features: bool = True


@dataclass(frozen=True, order=True)
class SummaryId:
    """Identity of a package inside a graph summary."""

    name: str
    version: str
    source: str


@dataclass(frozen=True)
class DependencyChangeInfo:
    """One package that was added, removed or modified between two graphs.

    ``old_version`` is None for additions and ``new_version`` is None for
    removals. A status-only change (e.g. transitive -> direct) carries the
    same version on both sides.
    """

    name: str
    repository: str | None
    partition: Partition
    old_version: str | None
    new_version: str | None
    build_script_paths: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_upgrade(self) -> bool:
        if self.old_version is None or self.new_version is None:
            return False
        return Version(self.new_version) > Version(self.old_version)


@dataclass(frozen=True)
class DirectTransitiveSplit:
    """A package pinned directly at one version but pulled in at another."""

    name: str
    direct_version: str
    transitive_version: str


# Only one kind of conflict is detected today.
VersionConflict = DirectTransitiveSplit
