"""Version matcher: resolve a published version to its upstream commit."""

from depreview.engines.version_matcher.matcher import (
    MATCH_LADDER,
    match_release_commit,
    name_adjacent_version,
    name_then_version,
    resolve_release_commit,
    version_suffix,
)
from depreview.engines.version_matcher.models import Ambiguous, NotFound, Resolved, VersionMatch

__all__ = [
    "MATCH_LADDER",
    "Ambiguous",
    "NotFound",
    "Resolved",
    "VersionMatch",
    "match_release_commit",
    "name_adjacent_version",
    "name_then_version",
    "resolve_release_commit",
    "version_suffix",
]
