"""Resolved dependency graph built from ``cargo metadata`` output."""

from __future__ import annotations

import asyncio
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

from depreview.engines.graph_diff.models import ResolutionOptions
from depreview.exceptions import GraphError

log = structlog.get_logger("depreview.graph")


@dataclass(frozen=True)
class PackageNode:
    """A single package in a resolved graph."""

    id: str
    name: str
    version: str
    source: str | None  # None for path dependencies and workspace members
    repository: str | None
    manifest_path: str
    build_script_paths: frozenset[str]
    is_proc_macro: bool
    in_workspace: bool


@dataclass(frozen=True)
class DependencyEdge:
    target: str
    kinds: frozenset[str]  # subset of {"normal", "build", "dev"}


class ResolvedGraph:
    """Packages, resolved edges and workspace members of one project state."""

    def __init__(
        self,
        packages: dict[str, PackageNode],
        edges: dict[str, tuple[DependencyEdge, ...]],
        workspace_members: frozenset[str],
        options: ResolutionOptions | None = None,
    ) -> None:
        self.packages = packages
        self.edges = edges
        self.workspace_members = workspace_members
        self.options = options or ResolutionOptions()

    @classmethod
    def from_metadata(
        cls, metadata: str | dict[str, Any], options: ResolutionOptions | None = None
    ) -> ResolvedGraph:
        """Build a graph from ``cargo metadata --format-version 1`` JSON."""
        data = json.loads(metadata) if isinstance(metadata, str) else metadata
        if not isinstance(data, dict):
            raise GraphError("cargo metadata must be a JSON object")

        resolve = data.get("resolve")
        if not resolve:
            raise GraphError("cargo metadata has no resolve section (was --no-deps used?)")

        packages: dict[str, PackageNode] = {}
        edges: dict[str, tuple[DependencyEdge, ...]] = {}
        try:
            members = frozenset(data.get("workspace_members", []))
            for pkg in data.get("packages", []):
                node = _package_node(pkg, pkg["id"] in members)
                packages[node.id] = node

            for resolved in resolve.get("nodes", []):
                pkg_id = resolved["id"]
                if pkg_id not in packages:
                    raise GraphError(f"resolved node {pkg_id!r} missing from packages")
                edges[pkg_id] = tuple(_node_edges(resolved))
        except (KeyError, TypeError, AttributeError) as exc:
            raise GraphError(f"malformed cargo metadata: {exc!r}") from exc

        return cls(packages, edges, members, options)

    # ── lookups ───────────────────────────────────────────────────────────

    def packages_named(self, name: str) -> list[PackageNode]:
        return sorted(
            (p for p in self.packages.values() if p.name == name),
            key=lambda p: (p.version, p.id),
        )

    def find_package(self, name: str, version: str | None = None) -> PackageNode | None:
        for pkg in self.packages_named(name):
            if version is None or pkg.version == version:
                return pkg
        return None

    def repository_for(self, name: str) -> str | None:
        """Declared repository of the first package called *name* that has one."""
        for pkg in self.packages_named(name):
            if pkg.repository:
                return pkg.repository
        return None

    def dependency_edges(self, pkg_id: str) -> tuple[DependencyEdge, ...]:
        """Edges of *pkg_id*, with dev edges dropped unless they may apply.

        Only workspace members contribute dev-dependencies, and only when
        the graph was resolved with dev-dependencies included.
        """
        edges = self.edges.get(pkg_id, ())
        if self.options.include_dev and pkg_id in self.workspace_members:
            return edges
        filtered = []
        for edge in edges:
            kinds = edge.kinds - {"dev"}
            if kinds:
                filtered.append(DependencyEdge(edge.target, kinds))
        return tuple(filtered)

    def direct_dependency_ids(self) -> set[str]:
        """Third-party packages linked directly from a workspace member."""
        direct: set[str] = set()
        for member in self.workspace_members:
            for edge in self.dependency_edges(member):
                if edge.target not in self.workspace_members:
                    direct.add(edge.target)
        return direct

    def direct_dependencies(self) -> list[PackageNode]:
        return sorted(
            (self.packages[pkg_id] for pkg_id in self.direct_dependency_ids()),
            key=lambda p: (p.name, p.version),
        )


def _package_node(pkg: dict[str, Any], in_workspace: bool) -> PackageNode:
    manifest_path = pkg.get("manifest_path", "")
    package_dir = os.path.dirname(manifest_path)
    build_scripts: set[str] = set()
    is_proc_macro = False
    for target in pkg.get("targets", []):
        kinds = target.get("kind", [])
        if "custom-build" in kinds:
            build_scripts.add(_relative_to(target.get("src_path", ""), package_dir))
        if "proc-macro" in kinds:
            is_proc_macro = True
    return PackageNode(
        id=pkg["id"],
        name=pkg["name"],
        version=pkg["version"],
        source=pkg.get("source"),
        repository=pkg.get("repository") or None,
        manifest_path=manifest_path,
        build_script_paths=frozenset(build_scripts),
        is_proc_macro=is_proc_macro,
        in_workspace=in_workspace,
    )


def _relative_to(path: str, base: str) -> str:
    if not base:
        return Path(path).as_posix()
    return Path(os.path.relpath(path, base)).as_posix()


def _node_edges(resolved: dict[str, Any]) -> list[DependencyEdge]:
    deps = resolved.get("deps")
    if deps is None:
        # cargo < 1.41 only lists ids; treat every edge as a normal dependency.
        return [
            DependencyEdge(target, frozenset({"normal"}))
            for target in resolved.get("dependencies", [])
        ]
    edges = []
    for dep in deps:
        kinds = {kind.get("kind") or "normal" for kind in dep.get("dep_kinds", [])}
        edges.append(DependencyEdge(dep["pkg"], frozenset(kinds or {"normal"})))
    return edges


class CargoMetadataProvider:
    """Graph Provider backed by ``cargo metadata``."""

    def __init__(self, cargo: str = "cargo") -> None:
        self._cargo = cargo

    async def _run_cargo(self, args: list[str], cwd: Path) -> str:
        cmd = [self._cargo, *args]
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=str(cwd),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise GraphError(f"cannot run {self._cargo}: {exc}") from exc
        stdout, stderr = await proc.communicate()
        if proc.returncode != 0:
            raise GraphError(
                f"cargo metadata failed (exit {proc.returncode}): "
                f"{stderr.decode(errors='replace').strip()}"
            )
        return stdout.decode(errors="replace")

    async def build_graph(
        self, project_root: Path, options: ResolutionOptions | None = None
    ) -> ResolvedGraph:
        options = options or ResolutionOptions()
        args = ["metadata", "--format-version", "1"]
        if options.all_features:
            args.append("--all-features")
        log.info("cargo.metadata", root=str(project_root))
        output = await self._run_cargo(args, project_root)
        try:
            return ResolvedGraph.from_metadata(output, options)
        except json.JSONDecodeError as exc:
            raise GraphError(f"cargo metadata printed invalid JSON: {exc}") from exc

    async def workspace_manifests(self, project_root: Path) -> dict[str, Path]:
        """Map each workspace member's package name to its absolute manifest path.

        Runs ``cargo metadata --no-deps``, which reads the manifests only and
        never touches the network.
        """
        output = await self._run_cargo(
            ["metadata", "--format-version", "1", "--no-deps"], project_root
        )
        try:
            data = json.loads(output)
        except json.JSONDecodeError as exc:
            raise GraphError(f"cargo metadata printed invalid JSON: {exc}") from exc
        members = set(data.get("workspace_members", []))
        return {
            pkg["name"]: Path(pkg["manifest_path"])
            for pkg in data.get("packages", [])
            if pkg.get("id") in members and pkg.get("manifest_path")
        }
