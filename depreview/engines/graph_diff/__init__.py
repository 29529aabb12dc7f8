"""Graph-diff engine: compare two resolved dependency graphs."""

from depreview.engines.graph_diff.cargo_metadata import (
    CargoMetadataProvider,
    DependencyEdge,
    PackageNode,
    ResolvedGraph,
)
from depreview.engines.graph_diff.conflicts import determine_version_conflicts
from depreview.engines.graph_diff.differ import GraphSummary, compare_graphs, summarize
from depreview.engines.graph_diff.manifests import find_package_manifest, locate_package_manifest
from depreview.engines.graph_diff.models import (
    DependencyChangeInfo,
    DirectTransitiveSplit,
    PackageStatus,
    Partition,
    ResolutionOptions,
    SummaryId,
    VersionConflict,
)

__all__ = [
    "CargoMetadataProvider",
    "DependencyChangeInfo",
    "DependencyEdge",
    "DirectTransitiveSplit",
    "GraphSummary",
    "PackageNode",
    "PackageStatus",
    "Partition",
    "ResolutionOptions",
    "ResolvedGraph",
    "SummaryId",
    "VersionConflict",
    "compare_graphs",
    "determine_version_conflicts",
    "find_package_manifest",
    "locate_package_manifest",
    "summarize",
]
