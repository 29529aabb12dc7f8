"""Tests for the source diff engine (registry archives vs upstream git)."""

from __future__ import annotations

import io
import shutil
import tarfile
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from depreview.core.git import ChangeKind, GitRepository, TreeChange
from depreview.engines.source_diff import (
    CrateSourceDiffReport,
    DiffAnalyzer,
    FileDiffStats,
    file_diff_stats,
    unpack_crate,
)
from depreview.exceptions import RegistryError, VersionNotResolvedError

MANIFEST = '[package]\nname = "foo"\nversion = "{version}"\nedition = "2021"\n'


def build_crate(dest: Path, root: str, files: dict[str, str]) -> Path:
    """Write a gzipped tarball with every file under *root*/."""
    dest.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(dest, "w:gz") as tar:
        for rel, content in files.items():
            data = content.encode()
            info = tarfile.TarInfo(f"{root}/{rel}")
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return dest


def published(version: str, lib: str, **extra: str) -> dict[str, str]:
    """Files of a ``foo`` archive as ``cargo publish`` would produce them."""
    files = {
        "Cargo.toml": "# normalized by cargo\n" + MANIFEST.format(version=version),
        "Cargo.toml.orig": MANIFEST.format(version=version),
        ".cargo_vcs_info.json": '{"git": {"sha1": "abc"}}\n',
        "src/lib.rs": lib,
    }
    files.update(extra)
    return files


def fake_registry(archives: dict[str, dict[str, str]]) -> MagicMock:
    """Registry whose ``download_version`` writes the archive for a version."""

    def download(name: str, version: str, dest: Path) -> Path:
        return build_crate(dest, f"{name}-{version}", archives[version])

    registry = MagicMock()
    registry.download_version = AsyncMock(side_effect=download)
    return registry


# ── archives ──────────────────────────────────────────────────────────────


class TestUnpackCrate:
    def test_returns_package_directory(self, tmp_path):
        archive = build_crate(tmp_path / "foo.crate", "foo-0.1.0", {"src/lib.rs": "x"})
        package = unpack_crate(archive, tmp_path / "out")
        assert package == tmp_path / "out" / "foo-0.1.0"
        assert (package / "src" / "lib.rs").read_text() == "x"

    def test_rejects_multiple_roots(self, tmp_path):
        archive = tmp_path / "bad.crate"
        with tarfile.open(archive, "w:gz") as tar:
            for name in ("a/x", "b/y"):
                info = tarfile.TarInfo(name)
                tar.addfile(info, io.BytesIO(b""))
        with pytest.raises(RegistryError):
            unpack_crate(archive, tmp_path / "out")

    def test_rejects_corrupt_archive(self, tmp_path):
        archive = tmp_path / "bad.crate"
        archive.write_bytes(b"definitely not gzip")
        with pytest.raises(RegistryError):
            unpack_crate(archive, tmp_path / "out")


class TestFileDiffStats:
    def test_publish_only_files_are_ignored(self):
        changes = [
            TreeChange("Cargo.toml", "Cargo.toml", ChangeKind.MODIFIED),
            TreeChange(None, "Cargo.toml.orig", ChangeKind.ADDED),
            TreeChange(None, ".cargo_vcs_info.json", ChangeKind.ADDED),
            TreeChange(None, "src/gen.rs", ChangeKind.ADDED),
            TreeChange("src/lib.rs", "src/lib.rs", ChangeKind.MODIFIED),
            TreeChange("tests/t.rs", None, ChangeKind.DELETED),
        ]
        assert file_diff_stats(changes) == FileDiffStats(
            files_added=1, files_modified=1, files_deleted=1
        )

    def test_nested_publish_file_names_count(self):
        changes = [TreeChange(None, "sub/Cargo.toml", ChangeKind.ADDED)]
        assert file_diff_stats(changes).files_added == 1


# ── analyzer ──────────────────────────────────────────────────────────────


class TestDiffAnalyzerLifecycle:
    def test_dir_outside_context(self):
        with pytest.raises(RuntimeError):
            DiffAnalyzer(MagicMock()).dir

    @pytest.mark.anyio
    async def test_scratch_removed_on_exit(self, tmp_path):
        async with DiffAnalyzer(MagicMock(), workdir=tmp_path) as analyzer:
            scratch = analyzer.dir
            assert scratch.is_dir()
        assert not scratch.exists()

    @pytest.mark.anyio
    async def test_no_repository_leaves_markers_unset(self, tmp_path):
        registry = fake_registry({})
        async with DiffAnalyzer(registry, workdir=tmp_path) as analyzer:
            report = await analyzer.analyze_crate_source_diff("foo", "0.1.0", None)
        assert report == CrateSourceDiffReport(name="foo", version="0.1.0")
        registry.download_version.assert_not_called()


@pytest.fixture
def upstream(make_repo):
    """``foo`` released twice from the repository root."""
    fx = make_repo("upstream")
    fx.write("Cargo.toml", MANIFEST.format(version="0.1.0"))
    fx.write("src/lib.rs", "pub fn one() {}\n")
    fx.write("README.md", "foo\n")
    fx.commit("release 0.1.0")
    fx.tag("v0.1.0")
    fx.write("Cargo.toml", MANIFEST.format(version="0.2.0"))
    fx.write("src/lib.rs", "pub fn one() {}\npub unsafe fn two() {}\n")
    fx.commit("release 0.2.0")
    fx.tag("v0.2.0")
    return fx


def patched_clone(fx):
    return patch.object(GitRepository, "clone", AsyncMock(return_value=GitRepository(fx.path)))


@pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
class TestCrateSourceDiff:
    @pytest.mark.anyio
    async def test_matching_archive(self, upstream, tmp_path):
        registry = fake_registry({"0.1.0": published("0.1.0", "pub fn one() {}\n")})
        with patched_clone(upstream) as clone:
            async with DiffAnalyzer(registry, workdir=tmp_path) as analyzer:
                report = await analyzer.analyze_crate_source_diff(
                    "foo", "0.1.0", "https://github.com/o/foo/tree/main"
                )
        assert clone.await_args.args[0] == "https://github.com/o/foo"
        assert report.release_commit_found is True
        assert report.release_commit_analyzed is True
        assert report.is_different is False
        # README.md exists only in git
        assert report.file_diff_stats == FileDiffStats(files_deleted=1)

    @pytest.mark.anyio
    async def test_archive_with_extra_file(self, upstream, tmp_path):
        files = published("0.1.0", "pub fn one() {}\n", **{"src/payload.rs": "evil\n"})
        registry = fake_registry({"0.1.0": files})
        with patched_clone(upstream):
            async with DiffAnalyzer(registry, workdir=tmp_path) as analyzer:
                report = await analyzer.analyze_crate_source_diff(
                    "foo", "0.1.0", "https://github.com/o/foo"
                )
        assert report.is_different is True
        assert report.file_diff_stats.files_added == 1

    @pytest.mark.anyio
    async def test_archive_with_modified_file(self, upstream, tmp_path):
        registry = fake_registry({"0.1.0": published("0.1.0", "pub fn other() {}\n")})
        with patched_clone(upstream):
            async with DiffAnalyzer(registry, workdir=tmp_path) as analyzer:
                report = await analyzer.analyze_crate_source_diff(
                    "foo", "0.1.0", "https://github.com/o/foo"
                )
        assert report.is_different is True
        assert report.file_diff_stats.files_modified == 1

    @pytest.mark.anyio
    async def test_release_commit_not_found(self, upstream, tmp_path):
        registry = fake_registry({"0.3.0": published("0.3.0", "x\n")})
        with patched_clone(upstream):
            async with DiffAnalyzer(registry, workdir=tmp_path) as analyzer:
                report = await analyzer.analyze_crate_source_diff(
                    "foo", "0.3.0", "https://github.com/o/foo"
                )
        assert report.release_commit_found is False
        assert report.release_commit_analyzed is None
        assert report.is_different is None

    @pytest.mark.anyio
    async def test_manifest_not_found(self, upstream, tmp_path):
        registry = fake_registry({"0.1.0": published("0.1.0", "x\n")})
        with patched_clone(upstream):
            async with DiffAnalyzer(registry, workdir=tmp_path) as analyzer:
                report = await analyzer.analyze_crate_source_diff(
                    "bar", "0.1.0", "https://github.com/o/foo"
                )
        assert report.release_commit_found is True
        assert report.release_commit_analyzed is False

    @pytest.mark.anyio
    async def test_repositories_are_cached(self, upstream, tmp_path):
        registry = fake_registry({"0.1.0": published("0.1.0", "pub fn one() {}\n")})
        with patched_clone(upstream) as clone:
            async with DiffAnalyzer(registry, workdir=tmp_path) as analyzer:
                first = await analyzer.get_registry_repo("foo", "0.1.0")
                second = await analyzer.get_registry_repo("foo", "0.1.0")
                await analyzer.get_git_repo("foo", "https://github.com/o/foo")
                await analyzer.get_git_repo("foo", "https://github.com/o/foo.git")
        assert first is second
        assert registry.download_version.await_count == 1
        assert clone.await_count == 1


@pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
class TestVersionDiff:
    @pytest.mark.anyio
    async def test_between_tags(self, upstream, tmp_path):
        async with DiffAnalyzer(MagicMock(), workdir=tmp_path) as analyzer:
            info = await analyzer.get_version_diff_info(
                "foo", GitRepository(upstream.path), "0.1.0", "0.2.0"
            )
        assert info.subdir == ""
        assert sorted(info.touched_paths) == ["Cargo.toml", "src/lib.rs"]
        assert [c.kind for c in info.changes] == [ChangeKind.MODIFIED, ChangeKind.MODIFIED]
        assert info.is_file_modified("src/lib.rs")
        assert not info.is_file_modified("README.md")
        assert info.line_stats.insertions == 2
        assert info.line_stats.deletions == 1

    @pytest.mark.anyio
    async def test_scoped_to_package_directory(self, make_repo, tmp_path):
        fx = make_repo("mono")
        fx.write_manifest("crates/foo", "foo", "1.0.0")
        fx.write("crates/foo/src/lib.rs", "fn a() {}\n")
        fx.write_manifest("crates/bar", "bar", "1.0.0")
        fx.commit()
        fx.tag("foo-1.0.0")
        fx.write_manifest("crates/foo", "foo", "1.1.0")
        fx.write("crates/bar/src/lib.rs", "fn b() {}\n")
        fx.commit()
        fx.tag("foo-1.1.0")

        async with DiffAnalyzer(MagicMock(), workdir=tmp_path) as analyzer:
            info = await analyzer.get_version_diff_info(
                "foo", GitRepository(fx.path), "1.0.0", "1.1.0"
            )
        assert info.subdir == "crates/foo"
        assert [c.path for c in info.changes] == ["Cargo.toml"]

    @pytest.mark.anyio
    async def test_unresolved_version(self, upstream, tmp_path):
        async with DiffAnalyzer(MagicMock(), workdir=tmp_path) as analyzer:
            with pytest.raises(VersionNotResolvedError):
                await analyzer.get_version_diff_info(
                    "foo", GitRepository(upstream.path), "0.1.0", "9.9.9"
                )

    @pytest.mark.anyio
    async def test_between_registry_archives(self, tmp_path):
        registry = fake_registry(
            {
                "0.1.0": published("0.1.0", "pub fn one() {}\n"),
                "0.2.0": published("0.2.0", "pub fn one() {}\npub fn two() {}\n"),
            }
        )
        async with DiffAnalyzer(registry, workdir=tmp_path) as analyzer:
            repo_a = await analyzer.get_registry_repo("foo", "0.1.0")
            repo_b = await analyzer.get_registry_repo("foo", "0.2.0")
            info = await analyzer.get_version_diff_info_between_repos(repo_a, repo_b)
            same = await analyzer.get_version_diff_info_between_repos(repo_a, repo_a)

        assert info.repo is repo_a
        assert info.subdir == ""
        assert sorted(info.touched_paths) == ["Cargo.toml", "Cargo.toml.orig", "src/lib.rs"]
        assert same.changes == []
        assert same.line_stats.insertions == same.line_stats.deletions == 0
