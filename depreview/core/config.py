"""Runtime settings read from ``DEPREVIEW_*`` environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_CRATES_IO_URL = "https://crates.io"
DEFAULT_USER_AGENT = "depreview (https://github.com/depreview/depreview)"
DEFAULT_ADVISORY_DB_URL = "https://github.com/rustsec/advisory-db"


def _env_float(key: str, default: float) -> float:
    return float(os.environ.get(key, default))


def _env_int(key: str, default: int) -> int:
    return int(os.environ.get(key, default))


def _env_path(key: str) -> Path | None:
    value = os.environ.get(key)
    return Path(value).expanduser() if value else None


@dataclass(frozen=True)
class Settings:
    """Knobs shared by the clients and the review assembler."""

    crates_io_url: str = DEFAULT_CRATES_IO_URL
    user_agent: str = DEFAULT_USER_AGENT
    http_timeout: float = 30.0
    http_max_retries: int = 3
    advisory_db_url: str = DEFAULT_ADVISORY_DB_URL
    # Pre-existing advisory-db checkout; when unset the database is cloned.
    advisory_db_path: Path | None = None
    max_concurrency: int = 4
    # Parent directory for temporary working copies (system default when unset).
    workdir: Path | None = None

    @classmethod
    def from_env(cls) -> Settings:
        """Build settings from the environment, falling back to defaults.

        Environment variables:
            DEPREVIEW_CRATES_IO_URL     registry base URL
            DEPREVIEW_USER_AGENT        User-Agent sent to crates.io (required by its policy)
            DEPREVIEW_HTTP_TIMEOUT      per-request timeout in seconds
            DEPREVIEW_HTTP_MAX_RETRIES  attempts per request on 5xx / 429 / timeout
            DEPREVIEW_ADVISORY_DB_URL   RustSec advisory-db git URL
            DEPREVIEW_ADVISORY_DB_PATH  local advisory-db checkout
            DEPREVIEW_MAX_CONCURRENCY   parallel update reviews
            DEPREVIEW_WORKDIR           parent of temporary directories
        """
        max_retries = _env_int("DEPREVIEW_HTTP_MAX_RETRIES", 3)
        max_concurrency = _env_int("DEPREVIEW_MAX_CONCURRENCY", 4)
        if max_retries < 1:
            raise ValueError("DEPREVIEW_HTTP_MAX_RETRIES must be at least 1")
        if max_concurrency < 1:
            raise ValueError("DEPREVIEW_MAX_CONCURRENCY must be at least 1")
        return cls(
            crates_io_url=os.environ.get("DEPREVIEW_CRATES_IO_URL", DEFAULT_CRATES_IO_URL),
            user_agent=os.environ.get("DEPREVIEW_USER_AGENT", DEFAULT_USER_AGENT),
            http_timeout=_env_float("DEPREVIEW_HTTP_TIMEOUT", 30.0),
            http_max_retries=max_retries,
            advisory_db_url=os.environ.get("DEPREVIEW_ADVISORY_DB_URL", DEFAULT_ADVISORY_DB_URL),
            advisory_db_path=_env_path("DEPREVIEW_ADVISORY_DB_PATH"),
            max_concurrency=max_concurrency,
            workdir=_env_path("DEPREVIEW_WORKDIR"),
        )
