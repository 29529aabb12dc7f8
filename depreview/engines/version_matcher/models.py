"""Result types of release-commit resolution."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union


@dataclass(frozen=True)
class Resolved:
    """The version maps to exactly one commit."""

    commit: str
    tags: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class Ambiguous:
    """Several distinct commits survived every filter."""

    candidates: dict[str, str] = field(default_factory=dict)  # tag -> commit

    @property
    def commits(self) -> frozenset[str]:
        return frozenset(self.candidates.values())


@dataclass(frozen=True)
class NotFound:
    """No tag plausibly names the version."""


VersionMatch = Union[Resolved, Ambiguous, NotFound]
