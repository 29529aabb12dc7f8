"""CLI entry point: depreview.

Subcommands:
    depreview update-review paths PRIOR POST            # two project directories
    depreview update-review commits REPO PRIOR POST     # one repository at two commits
    depreview update-review metadata PRIOR.json POST.json   # saved `cargo metadata` output
"""

from __future__ import annotations

import asyncio
import json
import sys
import tempfile
from pathlib import Path

import click
import structlog
from dotenv import load_dotenv

from depreview.clients.advisory_db import AdvisoryDatabase
from depreview.clients.crates_io import CratesIoClient
from depreview.core.config import Settings
from depreview.core.git import GitRepository
from depreview.core.logging import setup_logging
from depreview.engines.graph_diff import CargoMetadataProvider, ResolutionOptions, ResolvedGraph
from depreview.engines.update_review import UpdateReviewer, UpdateReviewReport
from depreview.exceptions import AdvisoryDatabaseError, DepReviewError, GitCommandError
from depreview.report.markdown import render_update_review

log = structlog.get_logger("depreview.cli")


async def _review_graphs(
    prior: ResolvedGraph,
    post: ResolvedGraph,
    settings: Settings,
    with_advisories: bool,
) -> UpdateReviewReport:
    advisories = None
    if with_advisories:
        try:
            advisories = await AdvisoryDatabase.open(settings)
        except (AdvisoryDatabaseError, GitCommandError, OSError) as exc:
            log.warning("cli.advisory_db_unavailable", error=str(exc))
    async with CratesIoClient(settings) as registry:
        reviewer = UpdateReviewer(registry, advisories, settings=settings)
        return await reviewer.analyze_updates(prior, post)


async def _graphs_from_paths(prior: Path, post: Path) -> tuple[ResolvedGraph, ResolvedGraph]:
    provider = CargoMetadataProvider()
    options = ResolutionOptions()
    return (
        await provider.build_graph(prior, options),
        await provider.build_graph(post, options),
    )


async def _review_commits(
    repo_path: Path,
    prior: str,
    post: str,
    settings: Settings,
    with_advisories: bool,
) -> UpdateReviewReport:
    repo = GitRepository(repo_path)
    with tempfile.TemporaryDirectory(prefix="depreview-commits-", dir=settings.workdir) as tmp:
        async with repo.worktree(prior, Path(tmp)) as prior_tree:
            async with repo.worktree(post, Path(tmp)) as post_tree:
                graphs = await _graphs_from_paths(prior_tree, post_tree)
    return await _review_graphs(*graphs, settings, with_advisories)


def _emit(report: UpdateReviewReport, output_format: str) -> None:
    if output_format == "json":
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        click.echo(render_update_review(report))


def _run(coro) -> UpdateReviewReport:
    try:
        return asyncio.run(coro)
    except DepReviewError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging")
def main(verbose: bool) -> None:
    """depreview: review dependency updates of a Cargo project."""
    load_dotenv()
    setup_logging("DEBUG" if verbose else None)


@main.group("update-review")
def update_review() -> None:
    """Review the dependency updates between two states of a project."""


def _common_options(fn):
    fn = click.option("--no-advisories", is_flag=True, help="Skip the RustSec advisory lookup")(fn)
    fn = click.option(
        "--markdown",
        "output_format",
        flag_value="markdown",
        default=True,
        help="GitHub comment output (default)",
    )(fn)
    fn = click.option(
        "--json",
        "output_format",
        flag_value="json",
        help="Machine-readable JSON output",
    )(fn)
    return fn


@update_review.command("paths")
@click.argument("prior", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.argument("post", type=click.Path(exists=True, file_okay=False, path_type=Path))
@_common_options
def paths(prior: Path, post: Path, output_format: str, no_advisories: bool) -> None:
    """Compare the project in directory PRIOR with the one in POST."""
    settings = Settings.from_env()

    async def _go() -> UpdateReviewReport:
        graphs = await _graphs_from_paths(prior, post)
        return await _review_graphs(*graphs, settings, not no_advisories)

    _emit(_run(_go()), output_format)


@update_review.command("commits")
@click.argument("repo", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.argument("prior")
@click.argument("post")
@_common_options
def commits(repo: Path, prior: str, post: str, output_format: str, no_advisories: bool) -> None:
    """Compare commit PRIOR with commit POST of the git repository REPO."""
    settings = Settings.from_env()
    _emit(_run(_review_commits(repo, prior, post, settings, not no_advisories)), output_format)


@update_review.command("metadata")
@click.argument("prior", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("post", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@_common_options
def metadata(prior: Path, post: Path, output_format: str, no_advisories: bool) -> None:
    """Compare two saved `cargo metadata --format-version 1` outputs."""
    settings = Settings.from_env()
    try:
        prior_graph = ResolvedGraph.from_metadata(prior.read_text())
        post_graph = ResolvedGraph.from_metadata(post.read_text())
    except (OSError, UnicodeDecodeError, json.JSONDecodeError, DepReviewError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    report = _run(_review_graphs(prior_graph, post_graph, settings, not no_advisories))
    _emit(report, output_format)


if __name__ == "__main__":
    main()
