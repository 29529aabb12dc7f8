"""Locate a package's ``Cargo.toml`` inside a source checkout.

The workspace cargo itself sees is authoritative: :func:`find_package_manifest`
asks ``cargo metadata --no-deps`` for the member named like the package.
When cargo is missing or rejects the checkout, :func:`locate_package_manifest`
reads the manifests directly, restricted to the root ``[workspace].members``
when the root declares a workspace.
"""

from __future__ import annotations

import asyncio
import tomllib
from pathlib import Path
from typing import Any

import structlog

from depreview.engines.graph_diff.cargo_metadata import CargoMetadataProvider
from depreview.exceptions import GraphError, ManifestNotFoundError

log = structlog.get_logger("depreview.graph")

_SKIP_DIRS = {".git", "target"}


def _normalize(name: str) -> str:
    return name.replace("-", "_")


def _load(manifest: Path) -> dict[str, Any] | None:
    try:
        with manifest.open("rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError):
        log.debug("manifest.unreadable", path=str(manifest))
        return None


def _package_name(manifest: Path) -> str | None:
    data = _load(manifest)
    if data is None:
        return None
    package = data.get("package")
    if not isinstance(package, dict):
        return None
    name = package.get("name")
    return name if isinstance(name, str) else None


def _walk_manifests(checkout: Path) -> list[Path]:
    found = []
    for path in checkout.rglob("Cargo.toml"):
        rel = path.relative_to(checkout)
        if any(part in _SKIP_DIRS for part in rel.parts[:-1]):
            continue
        found.append(path)
    # Shallowest first, then lexicographic, so the result is stable.
    return sorted(found, key=lambda p: (len(p.relative_to(checkout).parts), p.as_posix()))


def _workspace_manifests(checkout: Path) -> list[Path] | None:
    """Manifests of the root workspace's members; None when there is no workspace."""
    root = checkout / "Cargo.toml"
    if not root.is_file():
        return None
    data = _load(root)
    workspace = data.get("workspace") if data else None
    if not isinstance(workspace, dict):
        return None

    excluded = {
        (checkout / p).resolve() for p in workspace.get("exclude", []) if isinstance(p, str)
    }
    found = [root] if isinstance(data.get("package"), dict) else []
    for pattern in workspace.get("members", []):
        if not isinstance(pattern, str) or Path(pattern).is_absolute():
            continue
        pattern = pattern.strip("/")
        dirs = [checkout] if pattern in ("", ".") else sorted(checkout.glob(pattern))
        for member_dir in dirs:
            manifest = member_dir / "Cargo.toml"
            if member_dir.resolve() in excluded or not manifest.is_file():
                continue
            if manifest not in found:
                found.append(manifest)
    return found


def _match(checkout: Path, manifests: list[Path], name: str) -> Path | None:
    named = [(p, _package_name(p)) for p in manifests]
    for path, declared in named:
        if declared == name:
            return path.relative_to(checkout)
    for path, declared in named:
        if declared is not None and _normalize(declared) == _normalize(name):
            return path.relative_to(checkout)
    return None


def locate_package_manifest(checkout: Path, name: str) -> Path:
    """Return the manifest path (relative to *checkout*) declaring package *name*.

    Members of the root workspace are searched first; the rest of the tree
    only when none of them declares the package. An exact ``[package].name``
    match wins over one that only matches after treating ``-`` and ``_`` as
    equal. Raises ManifestNotFoundError when no manifest declares the package.
    """
    members = _workspace_manifests(checkout)
    if members is not None:
        found = _match(checkout, members, name)
        if found is not None:
            return found
        log.debug("manifest.not_a_member", name=name, checkout=str(checkout))
    found = _match(checkout, _walk_manifests(checkout), name)
    if found is None:
        raise ManifestNotFoundError(f"no Cargo.toml for package {name!r} under {checkout}")
    return found


async def find_package_manifest(
    checkout: Path, name: str, provider: CargoMetadataProvider | None = None
) -> Path:
    """Resolve *name* to its manifest through cargo, falling back to the manifests on disk."""
    provider = provider or CargoMetadataProvider()
    try:
        members = await provider.workspace_manifests(checkout)
    except GraphError as exc:
        log.debug("manifest.cargo_unavailable", checkout=str(checkout), error=str(exc))
    else:
        manifest = members.get(name)
        if manifest is None:
            manifest = next(
                (p for n, p in members.items() if _normalize(n) == _normalize(name)), None
            )
        if manifest is not None:
            try:
                return manifest.resolve().relative_to(checkout.resolve())
            except ValueError:
                log.debug("manifest.outside_checkout", name=name, path=str(manifest))
    return await asyncio.to_thread(locate_package_manifest, checkout, name)
