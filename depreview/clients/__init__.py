"""Clients for the external evidence sources (crates.io, RustSec)."""

from depreview.clients.advisory_db import Advisory, AdvisoryDatabase
from depreview.clients.crates_io import CrateMetadata, CratesIoClient, RateLimitError

__all__ = [
    "Advisory",
    "AdvisoryDatabase",
    "CrateMetadata",
    "CratesIoClient",
    "RateLimitError",
]
