"""Direct/transitive version mismatches introduced by an update."""

from __future__ import annotations

from collections.abc import Iterable

import structlog
from semantic_version import Version

from depreview.engines.graph_diff.cargo_metadata import ResolvedGraph
from depreview.engines.graph_diff.models import (
    DependencyChangeInfo,
    DirectTransitiveSplit,
    VersionConflict,
)

log = structlog.get_logger("depreview.graph")


def determine_version_conflicts(
    changes: Iterable[DependencyChangeInfo], post_graph: ResolvedGraph
) -> list[VersionConflict]:
    """Flag changed packages the workspace depends on directly at another version.

    A change whose ``new_version`` is not one of the versions the workspace
    members link directly means the update landed only on a transitive
    edge, leaving two copies of the crate in the build. When several direct
    versions exist the lowest one is reported.
    """
    direct_versions: dict[str, set[str]] = {}
    for pkg in post_graph.direct_dependencies():
        direct_versions.setdefault(pkg.name, set()).add(pkg.version)

    conflicts: list[VersionConflict] = []
    for change in changes:
        if change.new_version is None:
            continue
        versions = direct_versions.get(change.name)
        if not versions or change.new_version in versions:
            continue
        conflict = DirectTransitiveSplit(
            name=change.name,
            direct_version=min(versions, key=Version),
            transitive_version=change.new_version,
        )
        if conflict not in conflicts:
            conflicts.append(conflict)
            log.info(
                "graph.version_conflict",
                name=conflict.name,
                direct=conflict.direct_version,
                transitive=conflict.transitive_version,
            )
    return conflicts
