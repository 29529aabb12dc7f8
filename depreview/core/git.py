"""Async wrapper around the ``git`` command line.

Every call spawns a subprocess; nothing is cached between calls. A
:class:`GitRepository` is just a handle on a local directory, so two
handles on the same path share refs and objects. Scans that need
a commit's files use :meth:`GitRepository.worktree`, which gives every
commit its own directory instead of mutating the main working tree.
"""

from __future__ import annotations

import asyncio
import enum
import uuid
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

import structlog

from depreview.exceptions import GitCommandError

log = structlog.get_logger("depreview.git")

# Throwaway identity for the synthetic commits we create from registry tarballs.
_COMMIT_IDENTITY = [
    "-c",
    "user.name=depreview",
    "-c",
    "user.email=depreview@localhost",
    "-c",
    "commit.gpgsign=false",
]


class ChangeKind(str, enum.Enum):
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"


_STATUS_TO_KIND = {
    "A": ChangeKind.ADDED,
    "M": ChangeKind.MODIFIED,
    "T": ChangeKind.MODIFIED,  # type change, e.g. file <-> symlink
    "D": ChangeKind.DELETED,
}


@dataclass(frozen=True)
class TreeChange:
    """One path that differs between two trees.

    ``path_a`` is None for additions and ``path_b`` is None for deletions.
    """

    path_a: str | None
    path_b: str | None
    kind: ChangeKind

    @property
    def path(self) -> str:
        """The post-change path, or the pre-change one for deletions."""
        return self.path_b or self.path_a  # type: ignore[return-value]


@dataclass(frozen=True)
class LineStats:
    insertions: int
    deletions: int


async def run_git(args: Sequence[str], cwd: Path | None = None) -> str:
    """Run ``git *args`` and return stdout, raising GitCommandError on failure."""
    cmd = ["git", *args]
    proc = await asyncio.create_subprocess_exec(
        *cmd,
        cwd=str(cwd) if cwd is not None else None,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await proc.communicate()
    if proc.returncode != 0:
        raise GitCommandError(cmd, proc.returncode, stderr.decode(errors="replace").strip())
    return stdout.decode(errors="replace")


class GitRepository:
    """Handle on a local git repository with a working tree."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def __repr__(self) -> str:
        return f"GitRepository({str(self.path)!r})"

    # ── construction ──────────────────────────────────────────────────────

    @classmethod
    async def clone(cls, url: str, dest: Path) -> GitRepository:
        """Full clone of *url* into *dest* (all tags, full history)."""
        log.info("git.clone", url=url, dest=str(dest))
        await run_git(["clone", "--quiet", "--", url, str(dest)])
        return cls(dest)

    @classmethod
    async def init_from_directory(
        cls, path: Path, message: str = "initial commit"
    ) -> GitRepository:
        """Turn a plain directory into a repository with a single commit.

        Files are added with ``--force`` so a ``.gitignore`` shipped inside a
        registry tarball cannot hide published files from the diff.
        """
        await run_git(["init", "--quiet"], cwd=path)
        await run_git(["add", "--all", "--force", "."], cwd=path)
        await run_git(
            [*_COMMIT_IDENTITY, "commit", "--quiet", "--allow-empty", "-m", message],
            cwd=path,
        )
        return cls(path)

    # ── queries ───────────────────────────────────────────────────────────

    async def head(self) -> str:
        return (await run_git(["rev-parse", "HEAD^{commit}"], cwd=self.path)).strip()

    async def list_tags(self, pattern: str) -> list[tuple[str, str]]:
        """Return ``(tag, commit)`` pairs for tags matching the glob *pattern*.

        Annotated tags are peeled to the commit they point at.
        """
        out = await run_git(
            [
                "tag",
                "--list",
                pattern,
                "--format=%(refname:strip=2)%00%(objectname)%00%(*objectname)",
            ],
            cwd=self.path,
        )
        tags: list[tuple[str, str]] = []
        for line in out.splitlines():
            if not line:
                continue
            name, obj, peeled = line.split("\x00")
            tags.append((name, peeled or obj))
        return tags

    async def tree_id(self, commit: str, subdir: str = "") -> str:
        """Return the tree object of *commit*, or of *subdir* inside it."""
        subdir = subdir.strip("/")
        spec = f"{commit}:{subdir}" if subdir else f"{commit}^{{tree}}"
        return (await run_git(["rev-parse", "--verify", spec], cwd=self.path)).strip()

    async def diff_tree(self, tree_a: str, tree_b: str) -> list[TreeChange]:
        """Name-status diff between two trees (no rename detection)."""
        out = await run_git(
            ["diff-tree", "-r", "--no-renames", "--name-status", "-z", tree_a, tree_b],
            cwd=self.path,
        )
        fields = out.split("\x00")
        changes: list[TreeChange] = []
        i = 0
        while i + 1 < len(fields):
            status, path = fields[i], fields[i + 1]
            i += 2
            kind = _STATUS_TO_KIND.get(status[:1])
            if kind is None:
                continue
            changes.append(
                TreeChange(
                    path_a=None if kind is ChangeKind.ADDED else path,
                    path_b=None if kind is ChangeKind.DELETED else path,
                    kind=kind,
                )
            )
        return changes

    async def diff_numstat(self, tree_a: str, tree_b: str) -> LineStats:
        """Total inserted and deleted lines between two trees (binary files count 0)."""
        out = await run_git(
            ["diff-tree", "-r", "--no-renames", "--numstat", "-z", tree_a, tree_b],
            cwd=self.path,
        )
        insertions = deletions = 0
        for record in out.split("\x00"):
            parts = record.split("\t")
            if len(parts) < 3:
                continue
            added, removed = parts[0], parts[1]
            if added.isdigit():
                insertions += int(added)
            if removed.isdigit():
                deletions += int(removed)
        return LineStats(insertions=insertions, deletions=deletions)

    # ── mutation ──────────────────────────────────────────────────────────

    async def fetch(self, source: str, refspecs: Sequence[str]) -> None:
        """Fetch *refspecs* from *source* (URL or local path)."""
        await run_git(["fetch", "--quiet", "--no-tags", source, *refspecs], cwd=self.path)

    async def resolve(self, rev: str) -> str:
        out = await run_git(["rev-parse", "--verify", f"{rev}^{{commit}}"], cwd=self.path)
        return out.strip()

    @asynccontextmanager
    async def worktree(self, commit: str, parent: Path) -> AsyncIterator[Path]:
        """Materialize *commit* in a fresh worktree under *parent*.

        The worktree is removed on exit, also when the body raises.
        """
        dest = parent / f"wt-{uuid.uuid4().hex[:8]}"
        await run_git(
            ["worktree", "add", "--quiet", "--detach", "--force", str(dest), commit],
            cwd=self.path,
        )
        try:
            yield dest
        finally:
            try:
                await run_git(["worktree", "remove", "--force", str(dest)], cwd=self.path)
            except GitCommandError:
                log.warning("git.worktree_remove_failed", path=str(dest), exc_info=True)
