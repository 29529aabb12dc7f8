"""Review assembler: orchestrate the engines into per-upgrade reviews."""

from depreview.engines.update_review.cache import ReviewCache
from depreview.engines.update_review.models import (
    AdvisoryRef,
    DepUpdateReviewReport,
    UpdateReviewReport,
    VersionDiffStats,
    VersionInfo,
)
from depreview.engines.update_review.reviewer import UpdateReviewer, review_key

__all__ = [
    "AdvisoryRef",
    "DepUpdateReviewReport",
    "ReviewCache",
    "UpdateReviewReport",
    "UpdateReviewer",
    "VersionDiffStats",
    "VersionInfo",
    "review_key",
]
