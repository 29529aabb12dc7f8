"""Source diff engine: registry-vs-source and version-vs-version tree diffs."""

from depreview.engines.source_diff.analyzer import (
    PUBLISH_ONLY_FILES,
    DiffAnalyzer,
    file_diff_stats,
)
from depreview.engines.source_diff.models import (
    CrateSourceDiffReport,
    FileDiffStats,
    VersionDiffInfo,
)
from depreview.engines.source_diff.tarball import unpack_crate

__all__ = [
    "PUBLISH_ONLY_FILES",
    "CrateSourceDiffReport",
    "DiffAnalyzer",
    "FileDiffStats",
    "VersionDiffInfo",
    "file_diff_stats",
    "unpack_crate",
]
