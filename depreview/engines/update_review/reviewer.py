"""UpdateReviewer: assemble a review for every dependency upgrade.

For each package whose version went up between two graphs:

1. registry download counts for both versions;
2. non-withdrawn RustSec advisories for both versions;
3. registry-vs-source consistency of both versions;
4. a version-to-version diff with unsafe deltas and build-script changes.

Steps 1-3 and 4 each degrade to None on failure instead of failing the
review. Reviews are memoized in a :class:`ReviewCache`.
"""

from __future__ import annotations

import asyncio
import tarfile

import httpx
import structlog
from semantic_version import Version

from depreview.clients.advisory_db import AdvisoryDatabase
from depreview.clients.crates_io import CratesIoClient
from depreview.core.config import Settings
from depreview.engines.graph_diff import (
    DependencyChangeInfo,
    ResolvedGraph,
    compare_graphs,
    determine_version_conflicts,
)
from depreview.engines.source_diff import DiffAnalyzer, VersionDiffInfo
from depreview.engines.unsafe_delta import FileUnsafeCodeChangeStatus, analyze_unsafe_changes
from depreview.engines.update_review.cache import ReviewCache
from depreview.engines.update_review.models import (
    AdvisoryRef,
    DepUpdateReviewReport,
    ReviewKey,
    UpdateReviewReport,
    VersionDiffStats,
    VersionInfo,
)
from depreview.exceptions import (
    AdvisoryDatabaseError,
    DowngradeError,
    GitCommandError,
    ManifestNotFoundError,
    NotAnUpdateError,
    RegistryError,
    VersionNotResolvedError,
)

log = structlog.get_logger("depreview.review")

# Failures that cost one field of a report, never the whole review.
_ENRICHMENT_ERRORS = (
    httpx.HTTPError,
    GitCommandError,
    RegistryError,
    AdvisoryDatabaseError,
    ManifestNotFoundError,
    VersionNotResolvedError,
    OSError,
    tarfile.TarError,
    ValueError,
)


def is_upgrade(change: DependencyChangeInfo) -> bool:
    return change.is_upgrade


def review_key(change: DependencyChangeInfo) -> ReviewKey:
    """Validate that *change* is an upgrade and return its cache key."""
    if change.old_version is None or change.new_version is None:
        raise NotAnUpdateError(
            f"dependency change for {change.name} is an addition or removal, not an update"
        )
    old, new = Version(change.old_version), Version(change.new_version)
    if new < old:
        raise DowngradeError(change.name, change.old_version, change.new_version)
    if new == old:
        raise NotAnUpdateError(f"dependency change for {change.name} keeps version {old}")
    return (change.name, change.old_version, change.new_version)


class UpdateReviewer:
    """Orchestrates graph diffing, evidence gathering and caching."""

    def __init__(
        self,
        registry: CratesIoClient,
        advisories: AdvisoryDatabase | None,
        *,
        cache: ReviewCache | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._registry = registry
        self._advisories = advisories
        self._cache = cache if cache is not None else ReviewCache()
        self._settings = settings or Settings()

    @property
    def cache(self) -> ReviewCache:
        return self._cache

    # ── batch ─────────────────────────────────────────────────────────────

    async def analyze_updates(
        self, prior: ResolvedGraph, post: ResolvedGraph
    ) -> UpdateReviewReport:
        """Review every upgrade between *prior* and *post*.

        A failed review is recorded in ``errors`` and does not stop the others.
        """
        changes = compare_graphs(prior, post)
        result = UpdateReviewReport(version_conflicts=determine_version_conflicts(changes, post))

        updates: dict[ReviewKey, DependencyChangeInfo] = {}
        for change in changes:
            if is_upgrade(change):
                # The same upgrade in both partitions is reviewed once.
                updates.setdefault(review_key(change), change)

        log.info(
            "review.batch_start",
            changes=len(changes),
            updates=len(updates),
            conflicts=len(result.version_conflicts),
        )

        sem = asyncio.Semaphore(self._settings.max_concurrency)

        async def _run_one(change: DependencyChangeInfo) -> DepUpdateReviewReport | None:
            async with sem:
                try:
                    with structlog.contextvars.bound_contextvars(crate=change.name):
                        return await self.review_update(change)
                except Exception as exc:
                    log.error(
                        "review.failed",
                        name=change.name,
                        old=change.old_version,
                        new=change.new_version,
                        error=str(exc),
                    )
                    result.errors.append(
                        f"{change.name} {change.old_version} -> {change.new_version}: {exc}"
                    )
                    return None

        reports = await asyncio.gather(*(_run_one(c) for c in updates.values()))
        result.dep_update_review_reports = [r for r in reports if r is not None]
        return result

    # ── single update ─────────────────────────────────────────────────────

    async def review_update(self, change: DependencyChangeInfo) -> DepUpdateReviewReport:
        """Review one upgrade, served from the cache when already done.

        Raises NotAnUpdateError for additions, removals and unchanged
        versions, and DowngradeError for downgrades.
        """
        key = review_key(change)
        return await self._cache.get_or_create(key, lambda: self._build_report(change, key))

    async def _build_report(
        self, change: DependencyChangeInfo, key: ReviewKey
    ) -> DepUpdateReviewReport:
        name, old_version, new_version = key
        log.info("review.start", name=name, old=old_version, new=new_version)
        async with DiffAnalyzer(self._registry, self._settings.workdir) as analyzer:
            # Sequential: both versions share the analyzer's upstream clone.
            prior = await self._version_info(analyzer, name, old_version, change.repository)
            updated = await self._version_info(analyzer, name, new_version, change.repository)
            diff_stats = await self._diff_stats(analyzer, change, old_version, new_version)
        return DepUpdateReviewReport(name=name, prior=prior, updated=updated, diff_stats=diff_stats)

    # ── enrichment ────────────────────────────────────────────────────────

    async def _version_info(
        self, analyzer: DiffAnalyzer, name: str, version: str, repository: str | None
    ) -> VersionInfo:
        info = VersionInfo(name=name, version=version)

        try:
            info.registry_downloads = await self._registry.get_version_downloads(name, version)
        except _ENRICHMENT_ERRORS as exc:
            self._log_degraded("registry_downloads", name, version, exc)

        if self._advisories is not None:
            try:
                info.known_advisories = [
                    AdvisoryRef(id=a.id, title=a.title, url=a.url)
                    for a in self._advisories.get_advisories(name, version)
                    if not a.is_withdrawn
                ]
            except _ENRICHMENT_ERRORS as exc:
                self._log_degraded("known_advisories", name, version, exc)

        try:
            info.source_diff = await analyzer.analyze_crate_source_diff(name, version, repository)
        except _ENRICHMENT_ERRORS as exc:
            self._log_degraded("source_diff", name, version, exc)

        return info

    async def _diff_stats(
        self,
        analyzer: DiffAnalyzer,
        change: DependencyChangeInfo,
        old_version: str,
        new_version: str,
    ) -> VersionDiffStats | None:
        """Prefer the two registry archives; fall back to the upstream repository."""
        name = change.name
        try:
            repo_old = await analyzer.get_registry_repo(name, old_version)
            repo_new = await analyzer.get_registry_repo(name, new_version)
        except _ENRICHMENT_ERRORS as exc:
            log.info("review.registry_archive_unavailable", name=name, error=str(exc))
        else:
            try:
                info = await analyzer.get_version_diff_info_between_repos(repo_old, repo_new)
                return await self._version_diff_stats(change, info, analyzer)
            except _ENRICHMENT_ERRORS as exc:
                self._log_degraded("diff_stats", name, new_version, exc)
                return None

        if not change.repository:
            return None
        try:
            repo = await analyzer.get_git_repo(name, change.repository)
            info = await analyzer.get_version_diff_info(name, repo, old_version, new_version)
            return await self._version_diff_stats(change, info, analyzer)
        except VersionNotResolvedError as exc:
            log.info("review.release_commit_not_found", name=name, error=str(exc))
            return None
        except _ENRICHMENT_ERRORS as exc:
            self._log_degraded("diff_stats", name, new_version, exc)
            return None

    async def _version_diff_stats(
        self, change: DependencyChangeInfo, info: VersionDiffInfo, analyzer: DiffAnalyzer
    ) -> VersionDiffStats:
        unsafe_stats = await analyze_unsafe_changes(info, analyzer.dir)
        return VersionDiffStats(
            files_changed=info.files_changed,
            scanned_files_changed=len(unsafe_stats),
            insertions=info.line_stats.insertions,
            deletions=info.line_stats.deletions,
            modified_build_scripts={
                path for path in change.build_script_paths if info.is_file_modified(path)
            },
            unsafe_file_changed=[
                s for s in unsafe_stats if s.status is not FileUnsafeCodeChangeStatus.NO_UNSAFE_CODE
            ],
        )

    @staticmethod
    def _log_degraded(field: str, name: str, version: str, exc: BaseException) -> None:
        log.warning(
            "review.enrichment_failed",
            field=field,
            name=name,
            version=version,
            error=str(exc),
            error_type=type(exc).__name__,
        )
