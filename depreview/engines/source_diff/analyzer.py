"""Materialize source trees of crate versions and diff them.

Two kinds of comparison are supported:

* registry vs source: the ``.crate`` published for a version against the
  upstream commit tagged for that version, to spot files that were shipped
  but never committed (:meth:`DiffAnalyzer.analyze_crate_source_diff`);
* version vs version: two releases of the same crate, either from the
  upstream repository (:meth:`DiffAnalyzer.get_version_diff_info`) or from
  the two registry archives (:meth:`DiffAnalyzer.get_version_diff_info_between_repos`).

Every clone, archive and worktree lives in one temporary directory owned
by the analyzer and removed when its ``async with`` block exits.
"""

from __future__ import annotations

import tempfile
from pathlib import Path

import structlog

from depreview.clients.crates_io import CratesIoClient
from depreview.core.git import ChangeKind, GitRepository, TreeChange
from depreview.core.urls import trim_remote_url
from depreview.engines.graph_diff.cargo_metadata import CargoMetadataProvider
from depreview.engines.graph_diff.manifests import find_package_manifest
from depreview.engines.source_diff.models import (
    CrateSourceDiffReport,
    FileDiffStats,
    VersionDiffInfo,
)
from depreview.engines.source_diff.tarball import unpack_crate
from depreview.engines.version_matcher import Resolved, resolve_release_commit
from depreview.exceptions import ManifestNotFoundError, VersionNotResolvedError

log = structlog.get_logger("depreview.source_diff")

# Rewritten by ``cargo publish``; they always differ from the committed copy.
PUBLISH_ONLY_FILES = frozenset(
    {
        ".cargo_vcs_info.json",
        "Cargo.toml",
        "Cargo.toml.orig",
        "Cargo.lock",
    }
)

_UPSTREAM_REFSPEC = "+refs/*:refs/upstream/*"
_OTHER_REF = "refs/depreview/other"


def file_diff_stats(changes: list[TreeChange]) -> FileDiffStats:
    """Count added, modified and deleted paths, skipping publish-only files."""
    stats = FileDiffStats()
    for change in changes:
        if change.path in PUBLISH_ONLY_FILES:
            continue
        if change.kind is ChangeKind.ADDED:
            stats.files_added += 1
        elif change.kind is ChangeKind.MODIFIED:
            stats.files_modified += 1
        else:
            stats.files_deleted += 1
    return stats


class DiffAnalyzer:
    """Owns the scratch space for one review's clones and archives.

    Use as an async context manager::

        async with DiffAnalyzer(registry) as analyzer:
            report = await analyzer.analyze_crate_source_diff("serde", "1.0.0", url)
    """

    def __init__(
        self,
        registry: CratesIoClient,
        workdir: Path | None = None,
        cargo: CargoMetadataProvider | None = None,
    ) -> None:
        self._registry = registry
        self._cargo = cargo or CargoMetadataProvider()
        self._workdir = workdir
        self._tmp: tempfile.TemporaryDirectory[str] | None = None
        self._git_repos: dict[str, GitRepository] = {}
        self._registry_repos: dict[tuple[str, str], GitRepository] = {}

    async def __aenter__(self) -> DiffAnalyzer:
        self._tmp = tempfile.TemporaryDirectory(prefix="depreview-", dir=self._workdir)
        return self

    async def __aexit__(self, *exc: object) -> None:
        if self._tmp is not None:
            self._tmp.cleanup()
            self._tmp = None
        self._git_repos.clear()
        self._registry_repos.clear()

    @property
    def dir(self) -> Path:
        if self._tmp is None:
            raise RuntimeError("DiffAnalyzer used outside of its async context")
        return Path(self._tmp.name)

    # ── repositories ──────────────────────────────────────────────────────

    async def get_git_repo(self, name: str, url: str) -> GitRepository:
        """Clone the upstream repository of *name* (once per analyzer)."""
        remote = trim_remote_url(url)
        repo = self._git_repos.get(remote)
        if repo is None:
            dest = self.dir / f"{name}-source-{len(self._git_repos)}"
            repo = await GitRepository.clone(remote, dest)
            self._git_repos[remote] = repo
        return repo

    async def get_registry_repo(self, name: str, version: str) -> GitRepository:
        """Download the registry archive of a version and commit it to a fresh repository."""
        key = (name, version)
        repo = self._registry_repos.get(key)
        if repo is None:
            archive = await self._registry.download_version(
                name, version, self.dir / f"{name}-{version}.crate"
            )
            package_dir = unpack_crate(archive, self.dir / f"{name}-{version}-cratesio")
            repo = await GitRepository.init_from_directory(
                package_dir, message=f"{name} {version} from crates.io"
            )
            self._registry_repos[key] = repo
        return repo

    async def _package_subdir(self, repo: GitRepository, name: str, commit: str) -> str:
        async with repo.worktree(commit, self.dir) as checkout:
            manifest = await find_package_manifest(checkout, name, self._cargo)
        subdir = manifest.parent.as_posix()
        return "" if subdir == "." else subdir

    # ── registry vs source ────────────────────────────────────────────────

    async def analyze_crate_source_diff(
        self, name: str, version: str, repository: str | None
    ) -> CrateSourceDiffReport:
        """Compare the published archive of *version* with its release commit."""
        if not repository:
            return CrateSourceDiffReport(name=name, version=version)

        crate_repo = await self.get_registry_repo(name, version)
        crate_tree = await crate_repo.tree_id("HEAD")

        git_repo = await self.get_git_repo(name, repository)
        match = await resolve_release_commit(git_repo, name, version)
        if not isinstance(match, Resolved):
            log.info("source_diff.release_commit_not_found", name=name, version=version)
            return CrateSourceDiffReport(name=name, version=version, release_commit_found=False)

        try:
            subdir = await self._package_subdir(git_repo, name, match.commit)
        except ManifestNotFoundError:
            log.info(
                "source_diff.manifest_not_found",
                name=name,
                version=version,
                commit=match.commit,
            )
            return CrateSourceDiffReport(
                name=name,
                version=version,
                release_commit_found=True,
                release_commit_analyzed=False,
            )

        await crate_repo.fetch(str(git_repo.path), [_UPSTREAM_REFSPEC])
        source_tree = await crate_repo.tree_id(match.commit, subdir)
        changes = await crate_repo.diff_tree(source_tree, crate_tree)
        stats = file_diff_stats(changes)
        log.info(
            "source_diff.analyzed",
            name=name,
            version=version,
            added=stats.files_added,
            modified=stats.files_modified,
            deleted=stats.files_deleted,
        )
        return CrateSourceDiffReport(
            name=name,
            version=version,
            release_commit_found=True,
            release_commit_analyzed=True,
            # Files in git but not in the archive are often excluded on purpose.
            is_different=stats.files_added > 0 or stats.files_modified > 0,
            file_diff_stats=stats,
        )

    # ── version vs version ────────────────────────────────────────────────

    async def _resolve(self, repo: GitRepository, name: str, version: str) -> str:
        match = await resolve_release_commit(repo, name, version)
        if not isinstance(match, Resolved):
            raise VersionNotResolvedError(name, version)
        return match.commit

    async def get_version_diff_info(
        self, name: str, repo: GitRepository, version_a: str, version_b: str
    ) -> VersionDiffInfo:
        """Diff two tagged releases of *name* inside its upstream repository.

        Raises VersionNotResolvedError when either version has no unique
        release commit.
        """
        commit_a = await self._resolve(repo, name, version_a)
        commit_b = await self._resolve(repo, name, version_b)

        try:
            subdir = await self._package_subdir(repo, name, commit_b)
        except ManifestNotFoundError:
            subdir = await self._package_subdir(repo, name, commit_a)

        tree_a = await repo.tree_id(commit_a, subdir)
        tree_b = await repo.tree_id(commit_b, subdir)
        return VersionDiffInfo(
            repo=repo,
            commit_a=commit_a,
            commit_b=commit_b,
            subdir=subdir,
            changes=await repo.diff_tree(tree_a, tree_b),
            line_stats=await repo.diff_numstat(tree_a, tree_b),
        )

    async def get_version_diff_info_between_repos(
        self, repo_a: GitRepository, repo_b: GitRepository
    ) -> VersionDiffInfo:
        """Diff the HEAD commits of two single-package repositories.

        The HEAD of *repo_b* is fetched into *repo_a* so both commits can be
        materialized from one repository.
        """
        await repo_a.fetch(str(repo_b.path), [f"+HEAD:{_OTHER_REF}"])
        commit_a = await repo_a.head()
        commit_b = await repo_a.resolve(_OTHER_REF)
        tree_a = await repo_a.tree_id(commit_a)
        tree_b = await repo_a.tree_id(commit_b)
        return VersionDiffInfo(
            repo=repo_a,
            commit_a=commit_a,
            commit_b=commit_b,
            subdir="",
            changes=await repo_a.diff_tree(tree_a, tree_b),
            line_stats=await repo_a.diff_numstat(tree_a, tree_b),
        )
