"""Data models for the review assembler."""

from __future__ import annotations

import dataclasses
import enum
from dataclasses import dataclass, field
from typing import Any

from depreview.engines.graph_diff.models import VersionConflict
from depreview.engines.source_diff.models import CrateSourceDiffReport
from depreview.engines.unsafe_delta.models import FileUnsafeChangeStats

ReviewKey = tuple[str, str, str]  # (name, old_version, new_version)


@dataclass
class AdvisoryRef:
    """A non-withdrawn RustSec advisory affecting a version."""

    id: str
    title: str
    url: str | None = None


@dataclass
class VersionInfo:
    """Evidence gathered for one side of an update.

    A None field means that lookup failed; an empty advisory list means
    the lookup succeeded and found nothing.
    """

    name: str
    version: str
    registry_downloads: int | None = None
    known_advisories: list[AdvisoryRef] | None = None
    source_diff: CrateSourceDiffReport | None = None


@dataclass
class VersionDiffStats:
    files_changed: int
    scanned_files_changed: int  # files the unsafe scanner could parse
    insertions: int
    deletions: int
    modified_build_scripts: set[str] = field(default_factory=set)
    unsafe_file_changed: list[FileUnsafeChangeStats] = field(default_factory=list)


@dataclass
class DepUpdateReviewReport:
    name: str
    prior: VersionInfo
    updated: VersionInfo
    diff_stats: VersionDiffStats | None = None

    @property
    def key(self) -> ReviewKey:
        return (self.name, self.prior.version, self.updated.version)


@dataclass
class UpdateReviewReport:
    """Batch result of comparing two dependency graphs."""

    dep_update_review_reports: list[DepUpdateReviewReport] = field(default_factory=list)
    version_conflicts: list[VersionConflict] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return _jsonable(dataclasses.asdict(self))


def _jsonable(value: Any) -> Any:
    """Turn asdict() output into plain JSON types (sets sorted, enums by value)."""
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (set, frozenset)):
        return sorted(_jsonable(v) for v in value)
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, enum.Enum):
        return value.value
    return value
