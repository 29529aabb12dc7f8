"""Per-file unsafe deltas for the files touched by a version diff."""

from __future__ import annotations

import asyncio
from pathlib import Path

import structlog

from depreview.engines.source_diff.models import VersionDiffInfo
from depreview.engines.unsafe_delta.models import (
    FileUnsafeChangeStats,
    FileUnsafeCodeChangeStatus,
    UnsafeCounters,
    UnsafeDelta,
)
from depreview.engines.unsafe_delta.scanner import scan_file

log = structlog.get_logger("depreview.unsafe_delta")

_EMPTY = UnsafeCounters()


def classify_unsafe_change(
    post_state: UnsafeCounters | None, delta: UnsafeDelta
) -> FileUnsafeCodeChangeStatus:
    """Map a file's post-change counters and delta to a change status.

    ``post_state`` is None when the file no longer exists after the change.
    """
    if post_state is None:
        if delta.has_no_change:
            return FileUnsafeCodeChangeStatus.NO_UNSAFE_CODE
        return FileUnsafeCodeChangeStatus.ALL_UNSAFE_CODE_REMOVED

    if delta.has_no_change:
        if post_state.has_unsafe:
            return FileUnsafeCodeChangeStatus.UNCERTAIN
        return FileUnsafeCodeChangeStatus.NO_UNSAFE_CODE
    if post_state.has_unsafe:
        return FileUnsafeCodeChangeStatus.UNSAFE_COUNTER_MODIFIED
    return FileUnsafeCodeChangeStatus.ALL_UNSAFE_CODE_REMOVED


def _scan_paths(root: Path, paths: list[str]) -> dict[str, UnsafeCounters | None]:
    return {path: scan_file(root / path) for path in paths}


async def analyze_unsafe_changes(
    info: VersionDiffInfo, workdir: Path
) -> list[FileUnsafeChangeStats]:
    """Scan every diff-touched file at both commits and classify the change.

    Each commit is checked out into its own worktree under *workdir*. Files
    the scanner cannot parse on either side are left out of the result.
    """
    old_paths = [c.path_a for c in info.changes if c.path_a]
    new_paths = [c.path_b for c in info.changes if c.path_b]

    async with info.repo.worktree(info.commit_a, workdir) as tree_a:
        old_stats = await asyncio.to_thread(_scan_paths, tree_a / info.subdir, old_paths)
    async with info.repo.worktree(info.commit_b, workdir) as tree_b:
        new_stats = await asyncio.to_thread(_scan_paths, tree_b / info.subdir, new_paths)

    results: list[FileUnsafeChangeStats] = []
    for change in info.changes:
        old = old_stats.get(change.path_a) if change.path_a else None
        new = new_stats.get(change.path_b) if change.path_b else None
        if old is None and new is None:
            continue
        delta = (new or _EMPTY) - (old or _EMPTY)
        results.append(
            FileUnsafeChangeStats(
                file_path=change.path,
                change_kind=change.kind,
                status=classify_unsafe_change(new, delta),
                delta=delta,
                post_state=new,
            )
        )

    log.debug(
        "unsafe_delta.analyzed",
        files=len(info.changes),
        scanned=len(results),
        commit_a=info.commit_a,
        commit_b=info.commit_b,
    )
    return results
