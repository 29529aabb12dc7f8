"""Memoization of update reviews keyed by (name, old_version, new_version)."""

from __future__ import annotations

import asyncio
import copy
from collections.abc import Awaitable, Callable

from depreview.engines.update_review.models import DepUpdateReviewReport, ReviewKey
from depreview.exceptions import CacheError


class ReviewCache:
    """Shared store of finished reviews.

    Creation is serialized per key, so concurrent requests for the same
    update run the expensive review once. Readers always get a deep copy.
    """

    def __init__(self) -> None:
        self._reports: dict[ReviewKey, DepUpdateReviewReport] = {}
        self._locks: dict[ReviewKey, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._reports)

    def __contains__(self, key: object) -> bool:
        return key in self._reports

    def get(self, key: ReviewKey) -> DepUpdateReviewReport | None:
        report = self._reports.get(key)
        return copy.deepcopy(report) if report is not None else None

    def clear(self) -> None:
        self._reports.clear()
        self._locks.clear()

    async def get_or_create(
        self,
        key: ReviewKey,
        factory: Callable[[], Awaitable[DepUpdateReviewReport]],
    ) -> DepUpdateReviewReport:
        """Return the cached review for *key*, running *factory* on a miss."""
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            if key not in self._reports:
                report = await factory()
                if report.key != key:
                    raise CacheError(f"review for {report.key} stored under {key}")
                self._reports[key] = report
        cached = self.get(key)
        if cached is None:
            raise CacheError(f"review for {key} vanished from the cache")
        return cached
