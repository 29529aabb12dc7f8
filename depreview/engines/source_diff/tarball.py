"""Unpack ``.crate`` archives downloaded from the registry."""

from __future__ import annotations

import tarfile
from pathlib import Path

from depreview.exceptions import RegistryError


def unpack_crate(archive: Path, dest: Path) -> Path:
    """Extract *archive* into *dest* and return the package directory.

    A ``.crate`` file is a gzipped tarball with a single ``<name>-<version>/``
    root directory.
    """
    dest.mkdir(parents=True, exist_ok=True)
    try:
        with tarfile.open(archive, mode="r:gz") as tar:
            tar.extractall(dest, filter="data")
    except tarfile.TarError as exc:
        raise RegistryError(f"failed to extract {archive.name}: {exc}") from exc

    entries = list(dest.iterdir())
    if len(entries) != 1 or not entries[0].is_dir():
        raise RegistryError(f"{archive.name} does not contain a single package directory")
    return entries[0]
