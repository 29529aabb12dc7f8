"""Data models for the unsafe-delta analyzer."""

from __future__ import annotations

import enum
from dataclasses import dataclass, fields

from depreview.core.git import ChangeKind


@dataclass(frozen=True)
class UnsafeCounters:
    """Occurrences of ``unsafe`` in each syntactic position of one file."""

    functions: int = 0
    expressions: int = 0
    impls: int = 0
    traits: int = 0
    methods: int = 0

    @property
    def has_unsafe(self) -> bool:
        return any(getattr(self, f.name) for f in fields(self))

    def __sub__(self, other: UnsafeCounters) -> UnsafeDelta:
        return UnsafeDelta(
            **{f.name: getattr(self, f.name) - getattr(other, f.name) for f in fields(self)}
        )


@dataclass(frozen=True)
class UnsafeDelta:
    """Signed per-position change, post minus prior."""

    functions: int = 0
    expressions: int = 0
    impls: int = 0
    traits: int = 0
    methods: int = 0

    @property
    def has_no_change(self) -> bool:
        return not any(getattr(self, f.name) for f in fields(self))


class FileUnsafeCodeChangeStatus(str, enum.Enum):
    UNSAFE_COUNTER_MODIFIED = "unsafe_counter_modified"
    NO_UNSAFE_CODE = "no_unsafe_code"
    ALL_UNSAFE_CODE_REMOVED = "all_unsafe_code_removed"
    # Unsafe code present and counters unchanged: the edit may still touch it.
    UNCERTAIN = "uncertain"


@dataclass(frozen=True)
class FileUnsafeChangeStats:
    file_path: str
    change_kind: ChangeKind
    status: FileUnsafeCodeChangeStatus
    delta: UnsafeDelta
    post_state: UnsafeCounters | None  # None when the file is gone or unparsable
