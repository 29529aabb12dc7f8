"""Async crates.io API client with rate-limit handling and retries."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx
import structlog

from depreview.core.config import Settings
from depreview.exceptions import RegistryError

log = structlog.get_logger("depreview.crates_io")

_RETRY_BASE_DELAY = 1.0  # seconds
_DEFAULT_RATE_LIMIT_WAIT = 60


class RateLimitError(RegistryError):
    """Raised when crates.io keeps answering 429 after every retry."""

    def __init__(self, retry_after: int) -> None:
        self.retry_after = retry_after
        super().__init__(f"rate limit exceeded, retry after {retry_after}s")


@dataclass
class CrateMetadata:
    name: str
    downloads: int
    max_version: str | None = None
    repository: str | None = None
    description: str | None = None


class CratesIoClient:
    """Thin async wrapper around the crates.io web API.

    crates.io asks every client to send an identifying User-Agent and to
    keep to about one request per second; 429 responses are retried after
    the advertised ``Retry-After``.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = settings or Settings()
        self._max_retries = settings.http_max_retries
        self._client = httpx.AsyncClient(
            base_url=settings.crates_io_url,
            headers={"User-Agent": settings.user_agent, "Accept": "application/json"},
            timeout=settings.http_timeout,
            follow_redirects=True,
            transport=transport,
        )

    # ── lifecycle ──────────────────────────────────────────────────────────

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> CratesIoClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ── public ─────────────────────────────────────────────────────────────

    async def get_metadata(self, name: str) -> CrateMetadata:
        data = await self._get_json(f"/api/v1/crates/{name}")
        crate = data.get("crate")
        if not isinstance(crate, dict):
            raise RegistryError(f"crates.io returned no crate record for {name!r}")
        return CrateMetadata(
            name=crate.get("name", name),
            downloads=int(crate.get("downloads", 0)),
            max_version=crate.get("max_version"),
            repository=crate.get("repository"),
            description=crate.get("description"),
        )

    async def get_version_downloads(self, name: str, version: str) -> int:
        """Total downloads of one published version."""
        data = await self._get_json(f"/api/v1/crates/{name}/{version}")
        record = data.get("version")
        if not isinstance(record, dict) or "downloads" not in record:
            raise RegistryError(f"crates.io returned no version record for {name} {version}")
        return int(record["downloads"])

    async def get_reverse_dependents(self, name: str) -> int:
        """Number of crates that depend directly on *name*."""
        data = await self._get_json(
            f"/api/v1/crates/{name}/reverse_dependencies", params={"per_page": 1}
        )
        try:
            return int(data["meta"]["total"])
        except (KeyError, TypeError, ValueError) as exc:
            raise RegistryError(f"malformed reverse_dependencies response for {name!r}") from exc

    async def download_version(self, name: str, version: str, dest: Path) -> Path:
        """Download the ``.crate`` archive of *version* to the file *dest*."""
        response = await self._request_with_retry(f"/api/v1/crates/{name}/{version}/download")
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(response.content)
        log.debug("crates_io.downloaded", name=name, version=version, size=len(response.content))
        return dest

    # ── internal ───────────────────────────────────────────────────────────

    async def _get_json(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        response = await self._request_with_retry(path, params)
        data = response.json()
        if not isinstance(data, dict):
            raise RegistryError(f"unexpected JSON payload from {path}")
        return data

    async def _request_with_retry(
        self,
        url: str,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """GET with exponential backoff on 5xx, 429 and timeout errors."""
        last_exc: Exception | None = None
        for attempt in range(self._max_retries):
            try:
                resp = await self._client.get(url, params=params)

                if resp.status_code == 429:
                    wait = self._get_retry_after(resp)
                    log.warning(
                        "crates_io.rate_limit",
                        url=url,
                        wait_seconds=wait,
                        attempt=attempt + 1,
                        max_retries=self._max_retries,
                    )
                    last_exc = RateLimitError(wait)
                    if attempt < self._max_retries - 1:
                        await asyncio.sleep(wait)
                    continue

                if resp.status_code < 500:
                    resp.raise_for_status()
                    return resp

                log.warning(
                    "crates_io.server_error",
                    url=url,
                    status=resp.status_code,
                    attempt=attempt + 1,
                    max_retries=self._max_retries,
                )
                last_exc = httpx.HTTPStatusError(
                    f"{resp.status_code}", request=resp.request, response=resp
                )
            except httpx.TimeoutException as exc:
                log.warning(
                    "crates_io.timeout",
                    url=url,
                    attempt=attempt + 1,
                    max_retries=self._max_retries,
                )
                last_exc = exc

            if attempt < self._max_retries - 1:
                await asyncio.sleep(_RETRY_BASE_DELAY * (2**attempt))

        raise last_exc  # type: ignore[misc]

    @staticmethod
    def _get_retry_after(response: httpx.Response) -> int:
        retry_after = response.headers.get("Retry-After")
        if retry_after is not None:
            try:
                return max(int(retry_after), 1)
            except (ValueError, TypeError):
                pass
        return _DEFAULT_RATE_LIMIT_WAIT
