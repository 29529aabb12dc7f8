"""Data models for the source diff engine."""

from __future__ import annotations

from dataclasses import dataclass, field

from depreview.core.git import GitRepository, LineStats, TreeChange


@dataclass
class FileDiffStats:
    files_added: int = 0
    files_modified: int = 0
    files_deleted: int = 0


@dataclass
class CrateSourceDiffReport:
    """How the registry tarball of a version differs from its tagged source.

    Markers stay None when the check could not start (no repository declared).
    """

    name: str
    version: str
    release_commit_found: bool | None = None
    release_commit_analyzed: bool | None = None
    is_different: bool | None = None
    file_diff_stats: FileDiffStats | None = None


@dataclass
class VersionDiffInfo:
    """A scoped diff between two commits of one local repository.

    ``subdir`` is the package directory inside the repository (``""`` for
    the root); every path in ``changes`` is relative to it.
    """

    repo: GitRepository
    commit_a: str
    commit_b: str
    subdir: str
    changes: list[TreeChange] = field(default_factory=list)
    line_stats: LineStats = field(default_factory=lambda: LineStats(0, 0))

    @property
    def files_changed(self) -> int:
        return len(self.changes)

    @property
    def touched_paths(self) -> set[str]:
        paths: set[str] = set()
        for change in self.changes:
            if change.path_a:
                paths.add(change.path_a)
            if change.path_b:
                paths.add(change.path_b)
        return paths

    def is_file_modified(self, path: str) -> bool:
        return path in self.touched_paths
