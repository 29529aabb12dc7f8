"""Tests for the crates.io client (no network; httpx.MockTransport)."""

from __future__ import annotations

import gzip
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from depreview.clients.crates_io import CratesIoClient, RateLimitError
from depreview.core.config import Settings
from depreview.exceptions import RegistryError

SETTINGS = Settings(crates_io_url="https://crates.test", user_agent="depreview-tests")


def make_client(handler) -> CratesIoClient:
    return CratesIoClient(SETTINGS, transport=httpx.MockTransport(handler))


class TestEndpoints:
    @pytest.mark.anyio
    async def test_metadata(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "crate": {
                        "name": "serde",
                        "downloads": 123,
                        "max_version": "1.0.200",
                        "repository": "https://github.com/serde-rs/serde",
                    }
                },
            )

        async with make_client(handler) as client:
            meta = await client.get_metadata("serde")

        assert meta.name == "serde"
        assert meta.downloads == 123
        assert meta.max_version == "1.0.200"
        assert meta.repository == "https://github.com/serde-rs/serde"
        assert seen[0].url.path == "/api/v1/crates/serde"
        assert seen[0].headers["User-Agent"] == "depreview-tests"

    @pytest.mark.anyio
    async def test_metadata_without_crate_record(self):
        async with make_client(lambda r: httpx.Response(200, json={"errors": []})) as client:
            with pytest.raises(RegistryError):
                await client.get_metadata("serde")

    @pytest.mark.anyio
    async def test_version_downloads(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/v1/crates/log/0.4.20"
            return httpx.Response(200, json={"version": {"num": "0.4.20", "downloads": 42}})

        async with make_client(handler) as client:
            assert await client.get_version_downloads("log", "0.4.20") == 42

    @pytest.mark.anyio
    async def test_reverse_dependents(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/v1/crates/log/reverse_dependencies"
            assert request.url.params["per_page"] == "1"
            return httpx.Response(200, json={"dependencies": [], "meta": {"total": 17}})

        async with make_client(handler) as client:
            assert await client.get_reverse_dependents("log") == 17

    @pytest.mark.anyio
    async def test_reverse_dependents_malformed(self):
        async with make_client(lambda r: httpx.Response(200, json={"meta": {}})) as client:
            with pytest.raises(RegistryError):
                await client.get_reverse_dependents("log")

    @pytest.mark.anyio
    async def test_download_follows_redirect(self, tmp_path):
        payload = gzip.compress(b"not really a tarball")

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/download"):
                return httpx.Response(
                    302, headers={"Location": "https://static.crates.test/log-0.4.20.crate"}
                )
            assert request.url.host == "static.crates.test"
            return httpx.Response(200, content=payload)

        async with make_client(handler) as client:
            dest = await client.download_version("log", "0.4.20", tmp_path / "dl" / "log.crate")

        assert dest == tmp_path / "dl" / "log.crate"
        assert dest.read_bytes() == payload

    @pytest.mark.anyio
    async def test_not_found_is_not_retried(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(404, json={"errors": [{"detail": "not found"}]})

        async with make_client(handler) as client:
            with pytest.raises(httpx.HTTPStatusError):
                await client.get_metadata("nope")
        assert len(calls) == 1


class TestRetry:
    @pytest.mark.anyio
    async def test_server_error_then_success(self):
        responses = iter(
            [httpx.Response(502), httpx.Response(200, json={"crate": {"downloads": 1}})]
        )

        async with make_client(lambda r: next(responses)) as client:
            with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
                meta = await client.get_metadata("x")

        assert meta.downloads == 1
        mock_sleep.assert_awaited_once_with(1.0)

    @pytest.mark.anyio
    async def test_server_error_exhausted(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(503)

        async with make_client(handler) as client:
            with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
                with pytest.raises(httpx.HTTPStatusError):
                    await client.get_metadata("x")

        assert len(calls) == SETTINGS.http_max_retries
        # exponential backoff between attempts, none after the last one
        assert [c.args[0] for c in mock_sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.anyio
    async def test_timeout_then_success(self):
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            if len(attempts) == 1:
                raise httpx.ReadTimeout("timeout", request=request)
            return httpx.Response(200, json={"version": {"downloads": 5}})

        async with make_client(handler) as client:
            with patch("asyncio.sleep", new_callable=AsyncMock):
                assert await client.get_version_downloads("x", "1.0.0") == 5

    @pytest.mark.anyio
    async def test_rate_limit_waits_retry_after(self):
        responses = iter(
            [
                httpx.Response(429, headers={"Retry-After": "7"}),
                httpx.Response(200, json={"version": {"downloads": 9}}),
            ]
        )

        async with make_client(lambda r: next(responses)) as client:
            with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
                assert await client.get_version_downloads("x", "1.0.0") == 9

        mock_sleep.assert_awaited_once_with(7)

    @pytest.mark.anyio
    async def test_rate_limit_exhausted(self):
        async with make_client(lambda r: httpx.Response(429)) as client:
            with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
                with pytest.raises(RateLimitError) as exc_info:
                    await client.get_metadata("x")

        assert exc_info.value.retry_after == 60
        assert isinstance(exc_info.value, RegistryError)
        assert [c.args[0] for c in mock_sleep.await_args_list] == [60, 60]

    def test_retry_after_parsing(self):
        def wait(value=None):
            headers = {"Retry-After": value} if value is not None else {}
            return CratesIoClient._get_retry_after(httpx.Response(429, headers=headers))

        assert wait("3") == 3
        assert wait("0") == 1
        assert wait("soon") == 60
        assert wait() == 60
