"""RustSec advisory database: load a checkout and query it by crate version.

Advisories live under ``crates/<name>/`` as markdown files whose TOML front
matter sits in a fenced ``toml`` block, followed by a ``# Title`` heading.
Older checkouts use plain ``.toml`` files with ``title`` and
``patched_versions`` keys; both layouts are read.
"""

from __future__ import annotations

import re
import tempfile
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
from semantic_version import SimpleSpec, Version

from depreview.core.config import Settings
from depreview.core.git import GitRepository
from depreview.exceptions import AdvisoryDatabaseError

log = structlog.get_logger("depreview.advisory_db")

_FRONT_MATTER_RE = re.compile(r"```toml\s*\n(?P<toml>.*?)\n```", re.DOTALL)
_TITLE_RE = re.compile(r"^#\s+(?P<title>.+?)\s*$", re.MULTILINE)
_OPERATOR_RE = re.compile(r"^(<=|>=|==|!=|<|>|\^|~=|~|=)")


def _to_simple_spec(requirement: str) -> SimpleSpec:
    """Convert a Cargo-style requirement (``>= 1.2, < 2``) to a SimpleSpec.

    A clause without an operator is a caret requirement in Cargo.
    """
    clauses = []
    for raw in requirement.split(","):
        clause = raw.replace(" ", "")
        if not clause:
            continue
        match = _OPERATOR_RE.match(clause)
        if match is None:
            clause = f"^{clause}"
        elif match.group(1) == "=":
            clause = f"={clause}"
        clauses.append(clause)
    if not clauses:
        raise ValueError(f"empty version requirement {requirement!r}")
    return SimpleSpec(",".join(clauses))


@dataclass(frozen=True)
class Advisory:
    id: str
    package: str
    title: str
    url: str | None = None
    withdrawn: str | None = None  # date the advisory was withdrawn
    patched: tuple[str, ...] = field(default_factory=tuple)
    unaffected: tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_withdrawn(self) -> bool:
        return self.withdrawn is not None

    def affects(self, version: Version) -> bool:
        """True unless *version* is covered by a patched or unaffected requirement."""
        for requirement in (*self.patched, *self.unaffected):
            if version in _to_simple_spec(requirement):
                return False
        return True


def _parse_advisory(data: dict[str, Any], title: str | None, path: Path) -> Advisory:
    meta = data.get("advisory")
    if not isinstance(meta, dict) or "id" not in meta or "package" not in meta:
        raise AdvisoryDatabaseError(f"{path}: missing [advisory] id or package")

    versions = data.get("versions") or {}
    patched = versions.get("patched", meta.get("patched_versions", []))
    unaffected = versions.get("unaffected", meta.get("unaffected_versions", []))
    for requirement in (*patched, *unaffected):
        try:
            _to_simple_spec(requirement)
        except ValueError as exc:
            raise AdvisoryDatabaseError(f"{path}: bad requirement {requirement!r}") from exc
    withdrawn = meta.get("withdrawn")
    return Advisory(
        id=meta["id"],
        package=meta["package"],
        title=title or meta.get("title", ""),
        url=meta.get("url"),
        withdrawn=str(withdrawn) if withdrawn is not None else None,
        patched=tuple(patched),
        unaffected=tuple(unaffected),
    )


def parse_advisory_file(path: Path) -> Advisory:
    """Parse one advisory in either the markdown or the legacy TOML layout."""
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix == ".md":
            match = _FRONT_MATTER_RE.search(text)
            if match is None:
                raise AdvisoryDatabaseError(f"{path}: no toml front matter")
            body = text[match.end() :]
            title_match = _TITLE_RE.search(body)
            data = tomllib.loads(match.group("toml"))
            return _parse_advisory(data, title_match.group("title") if title_match else None, path)
        return _parse_advisory(tomllib.loads(text), None, path)
    except tomllib.TOMLDecodeError as exc:
        raise AdvisoryDatabaseError(f"{path}: {exc}") from exc


class AdvisoryDatabase:
    """In-memory index of RustSec advisories keyed by crate name."""

    def __init__(self, advisories: list[Advisory] | None = None) -> None:
        self._by_package: dict[str, list[Advisory]] = {}
        for advisory in advisories or []:
            self._by_package.setdefault(advisory.package, []).append(advisory)

    def __len__(self) -> int:
        return sum(len(v) for v in self._by_package.values())

    @classmethod
    def load(cls, root: Path) -> AdvisoryDatabase:
        """Read every advisory under ``<root>/crates``."""
        crates_dir = root / "crates"
        if not crates_dir.is_dir():
            raise AdvisoryDatabaseError(f"{root} is not an advisory-db checkout")
        advisories = []
        for path in sorted(crates_dir.glob("*/*")):
            if path.suffix not in (".md", ".toml"):
                continue
            try:
                advisories.append(parse_advisory_file(path))
            except AdvisoryDatabaseError:
                log.warning("advisory_db.skip_invalid", path=str(path), exc_info=True)
        log.info("advisory_db.loaded", path=str(root), advisories=len(advisories))
        return cls(advisories)

    @classmethod
    async def open(cls, settings: Settings | None = None) -> AdvisoryDatabase:
        """Load the configured checkout, or clone a fresh one into a temp directory."""
        settings = settings or Settings()
        if settings.advisory_db_path is not None:
            return cls.load(settings.advisory_db_path)
        tmp_parent = settings.workdir
        with tempfile.TemporaryDirectory(prefix="depreview-advisory-db-", dir=tmp_parent) as tmp:
            dest = Path(tmp) / "advisory-db"
            await GitRepository.clone(settings.advisory_db_url, dest)
            return cls.load(dest)

    def get_advisories(self, name: str, version: str) -> list[Advisory]:
        """Advisories for *name* that affect *version*, withdrawn ones included."""
        try:
            parsed = Version(version)
        except ValueError as exc:
            raise AdvisoryDatabaseError(f"invalid version {version!r} for {name}") from exc
        return [a for a in self._by_package.get(name, []) if a.affects(parsed)]
