"""Render update reviews as a GitHub comment (markdown, HTML tables, emoji)."""

from __future__ import annotations

import enum

from depreview.engines.unsafe_delta.models import FileUnsafeCodeChangeStatus
from depreview.engines.update_review.models import (
    DepUpdateReviewReport,
    UpdateReviewReport,
    VersionDiffStats,
    VersionInfo,
)


class TextStyle(str, enum.Enum):
    PLAIN = "plain"
    BOLD = "bold"
    ITALIC = "italic"
    CODE = "code"


class Emoji(str, enum.Enum):
    WHITE_CHECK_MARK = ":white_check_mark:"
    RED_CROSS = ":x:"
    WARNING = ":warning:"


class CommentBuilder:
    """Accumulates a markdown comment piece by piece.

    The ``add_*`` methods append to the comment; the static helpers return
    formatted fragments for composing table cells and section bodies.
    """

    def __init__(self) -> None:
        self._parts: list[str] = []

    def build(self) -> str:
        return "".join(self._parts)

    def append(self, s: str) -> None:
        self._parts.append(s)

    def add_text(self, s: str, style: TextStyle = TextStyle.PLAIN) -> None:
        self.append(self.styled(s, style))

    def add_newline(self, count: int = 1) -> None:
        self.append("\n" * count)

    def add_header(self, s: str, level: int) -> None:
        self.append(f"{'#' * level} {s}")
        self.add_newline()

    def add_bulleted_list(self, items: list[str], style: TextStyle = TextStyle.PLAIN) -> None:
        self.append(self.bulleted_list(items, style))
        self.add_newline(2)

    def add_collapsible_section(self, title: str, body: str) -> None:
        self.append(self.collapsible_section(title, body))
        self.add_newline(2)

    def add_html_table(self, rows: list[list[str]]) -> None:
        self.add_newline()
        self.append(self.html_table(rows))
        self.add_newline(2)

    # ── fragments ─────────────────────────────────────────────────────────

    @staticmethod
    def styled(s: str, style: TextStyle) -> str:
        if style is TextStyle.BOLD:
            return f"**{s}**"
        if style is TextStyle.ITALIC:
            return f"*{s}*"
        if style is TextStyle.CODE:
            return f"` {s} `"
        return s

    @staticmethod
    def bulleted_list(items: list[str], style: TextStyle = TextStyle.PLAIN) -> str:
        return "".join(f"\n   * {CommentBuilder.styled(item, style)}" for item in items)

    @staticmethod
    def collapsible_section(title: str, body: str) -> str:
        return f"<details>\n\t<summary>{title}</summary><br>\n{body}\n</details>"

    @staticmethod
    def html_table(rows: list[list[str]]) -> str:
        cells = "".join(
            "<tr>" + "".join(f"<td>{col}</td>" for col in row) + "</tr>" for row in rows
        )
        return f"<table>{cells}</table>"

    @staticmethod
    def hyperlink(body: str, url: str) -> str:
        return f"[{body}]({url})"

    @staticmethod
    def checkmark(flag: bool) -> str:
        return Emoji.WHITE_CHECK_MARK.value if flag else Emoji.RED_CROSS.value


# ── review rendering ──────────────────────────────────────────────────────────

_UNKNOWN = "unknown"
_FLAGGED_UNSAFE = {
    FileUnsafeCodeChangeStatus.UNSAFE_COUNTER_MODIFIED,
    FileUnsafeCodeChangeStatus.UNCERTAIN,
}


def _downloads(info: VersionInfo) -> str:
    return f"{info.registry_downloads:,}" if info.registry_downloads is not None else _UNKNOWN


def _advisories(info: VersionInfo) -> str:
    if info.known_advisories is None:
        return _UNKNOWN
    if not info.known_advisories:
        return CommentBuilder.checkmark(True)
    links = [
        CommentBuilder.hyperlink(a.id, a.url) if a.url else a.id for a in info.known_advisories
    ]
    return f"{Emoji.WARNING.value} " + ", ".join(links)


def _source_consistency(info: VersionInfo) -> str:
    report = info.source_diff
    if report is None or report.release_commit_found is None:
        return _UNKNOWN
    if not report.release_commit_found:
        return "release commit not found"
    if not report.release_commit_analyzed:
        return "release commit not analyzed"
    if report.is_different and report.file_diff_stats is not None:
        stats = report.file_diff_stats
        return (
            f"{Emoji.WARNING.value} differs "
            f"(+{stats.files_added} added, ~{stats.files_modified} modified)"
        )
    return CommentBuilder.checkmark(True)


def needs_attention(review: DepUpdateReviewReport) -> bool:
    """True when the updated version carries a signal a reviewer should check."""
    updated = review.updated
    if updated.known_advisories:
        return True
    if updated.source_diff is not None and updated.source_diff.is_different:
        return True
    stats = review.diff_stats
    if stats is None:
        return False
    if stats.modified_build_scripts:
        return True
    return any(s.status in _FLAGGED_UNSAFE for s in stats.unsafe_file_changed)


def _diff_stats_lines(stats: VersionDiffStats) -> list[str]:
    lines = [
        f"files changed: {stats.files_changed}",
        f"rust files scanned: {stats.scanned_files_changed}",
        f"insertions: +{stats.insertions}",
        f"deletions: -{stats.deletions}",
    ]
    if stats.modified_build_scripts:
        scripts = ", ".join(
            CommentBuilder.styled(p, TextStyle.CODE) for p in sorted(stats.modified_build_scripts)
        )
        lines.append(f"{Emoji.WARNING.value} build scripts modified: {scripts}")
    for change in stats.unsafe_file_changed:
        delta = change.delta
        lines.append(
            f"{CommentBuilder.styled(change.file_path, TextStyle.CODE)}: "
            f"{change.status.value.replace('_', ' ')} "
            f"(fn {delta.functions:+d}, expr {delta.expressions:+d}, impl {delta.impls:+d}, "
            f"trait {delta.traits:+d}, method {delta.methods:+d})"
        )
    return lines


def _render_review(builder: CommentBuilder, review: DepUpdateReviewReport) -> None:
    marker = Emoji.WARNING.value if needs_attention(review) else Emoji.WHITE_CHECK_MARK.value
    builder.add_header(
        f"{marker} {CommentBuilder.styled(review.name, TextStyle.CODE)} "
        f"{review.prior.version} --> {review.updated.version}",
        3,
    )
    prior, updated = review.prior, review.updated
    table = CommentBuilder.html_table(
        [
            ["", "**prior**", "**updated**"],
            ["crates.io downloads", _downloads(prior), _downloads(updated)],
            ["RustSec advisories", _advisories(prior), _advisories(updated)],
            ["source matches crates.io", _source_consistency(prior), _source_consistency(updated)],
        ]
    )
    if review.diff_stats is None:
        body = table + "\n\nversion diff unavailable"
    else:
        body = table + "\n" + CommentBuilder.bulleted_list(_diff_stats_lines(review.diff_stats))
    builder.add_collapsible_section("Click to show details", body)


def render_update_review(report: UpdateReviewReport) -> str:
    """Render a batch review as a GitHub comment."""
    builder = CommentBuilder()
    builder.add_header("Dependency update review", 2)

    if not (report.dep_update_review_reports or report.version_conflicts or report.errors):
        builder.add_text("No dependency updates found.")
        builder.add_newline()

    if report.version_conflicts:
        builder.add_header(f"{Emoji.WARNING.value} Version conflicts", 3)
        builder.add_bulleted_list(
            [
                f"{CommentBuilder.styled(c.name, TextStyle.CODE)} is a direct dependency at "
                f"{c.direct_version} but was updated to {c.transitive_version} transitively"
                for c in report.version_conflicts
            ]
        )

    for review in sorted(report.dep_update_review_reports, key=lambda r: r.key):
        _render_review(builder, review)

    if report.errors:
        builder.add_header(f"{Emoji.RED_CROSS.value} Errors", 3)
        builder.add_bulleted_list(report.errors)

    return builder.build()
