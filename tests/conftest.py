"""Shared pytest fixtures for depreview tests.

VCS-level tests drive the real ``git`` binary inside ``tmp_path``.
"""

from __future__ import annotations

import subprocess
from pathlib import Path

import pytest


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


class GitFixtureRepo:
    """Synchronous helper for building small repositories in tests."""

    def __init__(self, path: Path) -> None:
        self.path = path
        path.mkdir(parents=True, exist_ok=True)
        self.git("init", "--quiet")
        self.git("config", "user.name", "test")
        self.git("config", "user.email", "test@example.com")
        self.git("config", "commit.gpgsign", "false")

    def git(self, *args: str) -> str:
        result = subprocess.run(
            ["git", *args],
            cwd=self.path,
            check=True,
            capture_output=True,
            text=True,
        )
        return result.stdout.strip()

    def write(self, rel: str, content: str) -> None:
        target = self.path / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content)

    def write_manifest(self, rel_dir: str, name: str, version: str = "0.1.0") -> None:
        prefix = f"{rel_dir}/" if rel_dir else ""
        self.write(
            f"{prefix}Cargo.toml",
            f'[package]\nname = "{name}"\nversion = "{version}"\nedition = "2021"\n',
        )

    def remove(self, rel: str) -> None:
        (self.path / rel).unlink()

    def commit(self, message: str = "commit") -> str:
        self.git("add", "--all")
        self.git("commit", "--quiet", "--allow-empty", "-m", message)
        return self.git("rev-parse", "HEAD")

    def tag(self, name: str, annotated: bool = False) -> None:
        if annotated:
            self.git("tag", "-a", name, "-m", name)
        else:
            self.git("tag", name)


@pytest.fixture
def make_repo(tmp_path):
    """Factory: ``make_repo("name")`` returns a fresh GitFixtureRepo."""

    def _make(name: str = "repo") -> GitFixtureRepo:
        return GitFixtureRepo(tmp_path / name)

    return _make