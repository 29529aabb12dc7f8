"""Map a published version to the upstream commit it was released from.

Projects tag releases in many styles (``v1.2.3``, ``1.2.3``,
``mycrate-v1.2.3``, ``mycrate/1.2.3``), and a monorepo carries tags for
several crates that share version numbers. Candidate tags are those ending
in the version string; a ladder of increasingly strict filters then narrows
them down, stopping as soon as the survivors point at a single commit.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Mapping

import structlog

from depreview.core.git import GitRepository
from depreview.engines.version_matcher.models import (
    Ambiguous,
    NotFound,
    Resolved,
    VersionMatch,
)

log = structlog.get_logger("depreview.version_matcher")

TagPredicate = Callable[[str], bool]
PredicateFactory = Callable[[str, str], TagPredicate]


def _fullmatch(pattern: str) -> TagPredicate:
    regex = re.compile(pattern)
    return lambda tag: regex.fullmatch(tag) is not None


def version_suffix(name: str, version: str) -> TagPredicate:
    """Tag ends with the version, which is not preceded by a digit 1-9.

    Tells ``v0.1.8`` apart from ``v10.1.8``.
    """
    return _fullmatch(rf"(?:.*[^1-9])?{re.escape(version)}")


def name_then_version(name: str, version: str) -> TagPredicate:
    """As :func:`version_suffix`, and the package name appears before the version."""
    return _fullmatch(rf".*{re.escape(name)}(?:.*[^1-9])?{re.escape(version)}")


def name_adjacent_version(name: str, version: str) -> TagPredicate:
    """Name and version separated only by non-alphanumeric characters.

    Tells ``guppy-0.3.0`` apart from ``guppy-summaries-0.3.0``.
    """
    return _fullmatch(rf".*{re.escape(name)}\W*{re.escape(version)}")


MATCH_LADDER: tuple[PredicateFactory, ...] = (
    version_suffix,
    name_then_version,
    name_adjacent_version,
)


def match_release_commit(
    tags: Mapping[str, str] | Iterable[tuple[str, str]],
    name: str,
    version: str,
    ladder: tuple[PredicateFactory, ...] = MATCH_LADDER,
) -> VersionMatch:
    """Narrow ``tag -> commit`` candidates down to a single release commit.

    Each filter removes tags that do not satisfy it; several tags pointing
    at the same commit count as one.
    """
    candidates = dict(tags.items() if isinstance(tags, Mapping) else tags)
    for factory in ladder:
        predicate = factory(name, version)
        candidates = {tag: commit for tag, commit in candidates.items() if predicate(tag)}
        commits = set(candidates.values())
        if len(commits) == 1:
            return Resolved(commit=commits.pop(), tags=tuple(sorted(candidates)))
        if not commits:
            return NotFound()
    return Ambiguous(candidates=candidates)


async def resolve_release_commit(
    repo: GitRepository, name: str, version: str
) -> VersionMatch:
    """Resolve *version* of package *name* against the tags of *repo*.

    Git errors propagate; an unmatched or ambiguous version does not raise.
    """
    tags = await repo.list_tags(f"*{version}")
    result = match_release_commit(tags, name, version)
    log.debug(
        "version_matcher.resolved",
        name=name,
        version=version,
        candidates=len(tags),
        result=type(result).__name__,
    )
    return result
