"""Unsafe-delta analyzer: track changes to unsafe Rust code across a diff."""

from depreview.engines.unsafe_delta.analyzer import analyze_unsafe_changes, classify_unsafe_change
from depreview.engines.unsafe_delta.models import (
    FileUnsafeChangeStats,
    FileUnsafeCodeChangeStatus,
    UnsafeCounters,
    UnsafeDelta,
)
from depreview.engines.unsafe_delta.scanner import scan_file, scan_source

__all__ = [
    "FileUnsafeChangeStats",
    "FileUnsafeCodeChangeStatus",
    "UnsafeCounters",
    "UnsafeDelta",
    "analyze_unsafe_changes",
    "classify_unsafe_change",
    "scan_file",
    "scan_source",
]
