"""CLI entry point: costar.

Subcommands:
    costar init-db                     # Create the kv_entries table
    costar seed alice torvalds/linux   # Add starting nodes to the frontier
    costar crawl --max-rounds 10       # Run the crawl scheduler
    costar reset-errors --type repo    # Let failed nodes be crawled again
    costar costars torvalds/linux      # Show stored costars for a repo
    costar stats                       # Record counts per keyspace
"""

from __future__ import annotations

import asyncio
import sys

import click
from dotenv import load_dotenv

from costar.core.config import ConfigError, CrawlConfig
from costar.core.database import create_engine
from costar.core.logging import setup_logging
from costar.crawler.merger import ResultMerger
from costar.crawler.progress import ProgressPrinter
from costar.crawler.scheduler import CrawlScheduler
from costar.github.client import GitHubClient
from costar.github.fetcher import GitHubTargetFetcher
from costar.similarity import StoreSimilarityRanker
from costar.store.graph import GraphStore


def _open_store(config: CrawlConfig) -> GraphStore:
    return GraphStore(create_engine(config.database_url), page_size=config.scan_page_size)


@click.group()
@click.option("--database-url", default=None, help="SQLAlchemy async URL (env COSTAR_DATABASE_URL)")
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging")
@click.pass_context
def main(ctx: click.Context, database_url: str | None, verbose: bool) -> None:
    """costar: crawl the GitHub stargazer graph and rank costars."""
    load_dotenv()
    setup_logging("DEBUG" if verbose else None)
    try:
        config = CrawlConfig.from_env().with_overrides(database_url=database_url)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)
    ctx.obj = config


@main.command("init-db")
@click.pass_obj
def init_db(config: CrawlConfig) -> None:
    """Create the storage table if it does not exist."""

    async def _run() -> None:
        store = _open_store(config)
        try:
            await store.create_schema()
        finally:
            await store.close()

    asyncio.run(_run())
    click.echo("Schema ready.")


@main.command("seed")
@click.argument("nodes", nargs=-1, required=True)
@click.pass_obj
def seed(config: CrawlConfig, nodes: tuple[str, ...]) -> None:
    """Add users (``login``) or repos (``owner/name``) to the frontier."""

    async def _run() -> int:
        store = _open_store(config)
        try:
            await store.create_schema()
            return await store.seed(list(nodes))
        finally:
            await store.close()

    created = asyncio.run(_run())
    click.echo(f"Seeded {created} new node(s); {len(nodes) - created} already known.")


@main.command("crawl")
@click.option("--max-rounds", type=int, default=None, help="Round budget (default: unbounded)")
@click.option("--workers", type=int, default=None, help="Concurrent workers per round")
@click.option("--freshness-days", type=float, default=None, help="Re-crawl nodes older than this")
@click.option("--batch-size", type=int, default=None, help="Frontier size per round, both modes")
@click.option("--backoff-seconds", type=float, default=None, help="Sleep after quota exhaustion")
@click.option(
    "--backoff-trigger",
    type=click.Choice(["all", "any", "never"]),
    default=None,
    help="Which chunk quota flags trigger backoff",
)
@click.option("--error-retry-days", type=float, default=None, help="Retry failed nodes after")
@click.option("--no-progress", is_flag=True, help="Hide per-item progress symbols")
@click.pass_obj
def crawl(
    config: CrawlConfig,
    max_rounds: int | None,
    workers: int | None,
    freshness_days: float | None,
    batch_size: int | None,
    backoff_seconds: float | None,
    backoff_trigger: str | None,
    error_retry_days: float | None,
    no_progress: bool,
) -> None:
    """Run alternating stars/gazers rounds until done or out of budget."""
    try:
        config = config.with_overrides(
            max_rounds=max_rounds,
            workers=workers,
            freshness_days=freshness_days,
            stars_batch_size=batch_size,
            gazers_batch_size=batch_size,
            backoff_seconds=backoff_seconds,
            backoff_trigger=backoff_trigger,
            error_retry_days=error_retry_days,
            progress_symbols=False if no_progress else None,
        )
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)

    summary = asyncio.run(_crawl(config))
    click.echo(
        f"\n{summary.rounds} round(s): {summary.succeeded} succeeded, "
        f"{summary.failed} failed, {summary.discovered} discovered, "
        f"{summary.backoffs} backoff(s); "
        + ("graph up to date." if summary.completed else "round budget spent.")
    )


async def _crawl(config: CrawlConfig):
    store = _open_store(config)
    try:
        await store.create_schema()
        async with GitHubClient() as client:
            merger = ResultMerger(
                store,
                StoreSimilarityRanker(store, limit=config.costars_limit),
                similarity_threshold=config.similarity_threshold,
                progress=ProgressPrinter(enabled=config.progress_symbols),
            )
            scheduler = CrawlScheduler(
                store,
                GitHubTargetFetcher(client, max_pages=config.github_max_pages),
                merger,
                config,
            )
            return await scheduler.run()
    finally:
        await store.close()


@main.command("reset-errors")
@click.option("--type", "node_type", type=click.Choice(["user", "repo"]), default=None)
@click.pass_obj
def reset_errors(config: CrawlConfig, node_type: str | None) -> None:
    """Clear the error flag so failed nodes re-enter the frontier."""

    async def _run() -> int:
        store = _open_store(config)
        try:
            return await store.reset_errors(node_type)  # type: ignore[arg-type]
        finally:
            await store.close()

    click.echo(f"Reset {asyncio.run(_run())} failed node(s).")


@main.command("costars")
@click.argument("repo")
@click.option("-n", "--top", type=int, default=10, help="How many to show")
@click.pass_obj
def costars(config: CrawlConfig, repo: str, top: int) -> None:
    """Show the stored costars of REPO."""

    async def _run():
        store = _open_store(config)
        try:
            return await store.get_costars(repo)
        finally:
            await store.close()

    record = asyncio.run(_run())
    if record is None:
        click.echo(f"No costars computed for {repo}.", err=True)
        sys.exit(1)
    click.echo(f"Costars of {repo} (computed {record.computed_at.isoformat()}):")
    for i, ranked in enumerate(record.ranked[:top], 1):
        click.echo(f"  {i:>3}. {ranked.repo:<40} {ranked.score:.4f}")


@main.command("stats")
@click.pass_obj
def stats(config: CrawlConfig) -> None:
    """Print the number of records in each keyspace."""

    async def _run() -> dict[str, int]:
        store = _open_store(config)
        try:
            return await store.counts()
        finally:
            await store.close()

    for name, count in asyncio.run(_run()).items():
        click.echo(f"  {name:<12} {count:>12,}")


if __name__ == "__main__":
    main()
