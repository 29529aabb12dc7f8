"""Diff two resolved dependency graphs into per-partition change records.

Each graph is first reduced to a summary: for both the host (build-time)
and target (run-time) partition, the set of third-party packages reachable
from the workspace, keyed by :class:`SummaryId` and tagged direct or
transitive. The two summaries are then compared partition by partition.
"""

from __future__ import annotations

from collections import defaultdict, deque
from dataclasses import dataclass

import structlog
from semantic_version import Version

from depreview.engines.graph_diff.cargo_metadata import ResolvedGraph
from depreview.engines.graph_diff.models import (
    DependencyChangeInfo,
    PackageStatus,
    Partition,
    SummaryId,
)
from depreview.exceptions import GraphError

log = structlog.get_logger("depreview.graph")


@dataclass(frozen=True)
class GraphSummary:
    """Canonical per-partition view of a resolved graph."""

    host: dict[SummaryId, PackageStatus]
    target: dict[SummaryId, PackageStatus]

    def partition(self, partition: Partition) -> dict[SummaryId, PackageStatus]:
        return self.host if partition is Partition.HOST else self.target


def _summary_id(graph: ResolvedGraph, pkg_id: str) -> SummaryId:
    pkg = graph.packages[pkg_id]
    return SummaryId(pkg.name, pkg.version, pkg.source or "")


def summarize(graph: ResolvedGraph) -> GraphSummary:
    """Partition the graph and tag every third-party package direct or transitive.

    Traversal starts at the workspace members in the target partition.
    Build-dependencies and proc-macro crates move into the host partition,
    everything reachable from there stays host.
    """
    direct = graph.direct_dependency_ids()
    seen: set[tuple[str, Partition]] = set()
    queue: deque[tuple[str, Partition]] = deque()
    for member in sorted(graph.workspace_members):
        queue.append((member, Partition.TARGET))
        seen.add((member, Partition.TARGET))

    summary: dict[Partition, dict[SummaryId, PackageStatus]] = {
        Partition.HOST: {},
        Partition.TARGET: {},
    }
    while queue:
        pkg_id, partition = queue.popleft()
        if pkg_id not in graph.packages:
            raise GraphError(f"dependency {pkg_id!r} missing from packages")
        if pkg_id not in graph.workspace_members:
            status = PackageStatus.DIRECT if pkg_id in direct else PackageStatus.TRANSITIVE
            summary[partition][_summary_id(graph, pkg_id)] = status

        for edge in graph.dependency_edges(pkg_id):
            if edge.target not in graph.packages:
                raise GraphError(f"dependency {edge.target!r} missing from packages")
            next_partitions: set[Partition] = set()
            if edge.kinds & {"normal", "dev"}:
                if graph.packages[edge.target].is_proc_macro:
                    next_partitions.add(Partition.HOST)
                else:
                    next_partitions.add(partition)
            if "build" in edge.kinds:
                next_partitions.add(Partition.HOST)
            for next_partition in next_partitions:
                key = (edge.target, next_partition)
                if key not in seen:
                    seen.add(key)
                    queue.append(key)

    return GraphSummary(host=summary[Partition.HOST], target=summary[Partition.TARGET])


def _version_key(version: str | None) -> tuple[int, Version | None]:
    # None sorts first so additions precede modifications of the same name.
    if version is None:
        return (0, None)
    return (1, Version(version))


def _change_sort_key(change: DependencyChangeInfo) -> tuple:
    return (
        change.partition.value,
        change.name,
        _version_key(change.old_version),
        _version_key(change.new_version),
    )


def _build_scripts(
    prior: ResolvedGraph, post: ResolvedGraph, name: str, versions: list[str | None]
) -> frozenset[str]:
    paths: set[str] = set()
    for version in versions:
        if version is None:
            continue
        found = False
        for graph in (prior, post):
            pkg = graph.find_package(name, version)
            if pkg is not None:
                paths |= pkg.build_script_paths
                found = True
        if not found:
            raise GraphError(f"package {name} {version} not found in either graph")
    return frozenset(paths)


def _repository(prior: ResolvedGraph, post: ResolvedGraph, name: str) -> str | None:
    return prior.repository_for(name) or post.repository_for(name)


def compare_graphs(prior: ResolvedGraph, post: ResolvedGraph) -> list[DependencyChangeInfo]:
    """Return added, removed and modified third-party packages.

    Both graphs must have been resolved with the same options. The result is
    sorted by (partition, name, old version, new version), so it does not
    depend on the order packages appear in either input.
    """
    if prior.options != post.options:
        raise GraphError(
            f"graphs resolved with different options: {prior.options} vs {post.options}"
        )

    prior_summary = summarize(prior)
    post_summary = summarize(post)
    changes: list[DependencyChangeInfo] = []

    for partition in Partition:
        before = prior_summary.partition(partition)
        after = post_summary.partition(partition)

        removed: dict[str, list[SummaryId]] = defaultdict(list)
        added: dict[str, list[SummaryId]] = defaultdict(list)
        for sid in before.keys() - after.keys():
            removed[sid.name].append(sid)
        for sid in after.keys() - before.keys():
            added[sid.name].append(sid)

        pairs: list[tuple[str, str | None, str | None]] = []
        for name in removed.keys() | added.keys():
            old_ids = removed.get(name, [])
            new_ids = added.get(name, [])
            if len(old_ids) == 1 and len(new_ids) == 1:
                pairs.append((name, old_ids[0].version, new_ids[0].version))
                continue
            pairs.extend((name, sid.version, None) for sid in old_ids)
            pairs.extend((name, None, sid.version) for sid in new_ids)

        for sid in before.keys() & after.keys():
            if before[sid] is not after[sid]:
                pairs.append((sid.name, sid.version, sid.version))

        for name, old, new in pairs:
            changes.append(
                DependencyChangeInfo(
                    name=name,
                    repository=_repository(prior, post, name),
                    partition=partition,
                    old_version=old,
                    new_version=new,
                    build_script_paths=_build_scripts(prior, post, name, [old, new]),
                )
            )

    changes.sort(key=_change_sort_key)
    log.info(
        "graph.compared",
        changes=len(changes),
        host=sum(1 for c in changes if c.partition is Partition.HOST),
        target=sum(1 for c in changes if c.partition is Partition.TARGET),
    )
    return changes
