"""Crawl worker — drives the Target Fetcher over one chunk of sources."""

from __future__ import annotations

from collections.abc import Sequence

import structlog

from costar.crawler.fetcher import TargetFetcher
from costar.crawler.merger import ResultMerger
from costar.crawler.models import (
    ChunkResult,
    FetchComplete,
    FetchFailure,
    Mode,
    SourceCursor,
)

log = structlog.get_logger("costar.crawler")


async def crawl_chunk(
    fetcher: TargetFetcher,
    merger: ResultMerger,
    mode: Mode,
    chunk: Sequence[SourceCursor],
) -> ChunkResult:
    """Fetch every source in *chunk* and hand each outcome to *merger*.

    A failed source never stops its siblings. The returned accumulator is
    owned by this call alone; the scheduler combines them after the join.
    """
    result = ChunkResult()
    if not chunk:
        return result

    task = fetcher.fetch(mode, chunk)
    async for event in task:
        if isinstance(event, FetchComplete):
            result.discovered += await merger.on_complete(
                mode, event.source, event.targets, event.total_count
            )
            result.succeeded += 1
        elif isinstance(event, FetchFailure):
            await merger.on_fail(mode, event.source)
            result.failed += 1
            log.debug("worker.source_failed", mode=mode, source=event.source, reason=event.reason)
        else:
            raise TypeError(f"unexpected fetch event: {event!r}")

    result.queries_left = task.queries_left
    if not result.queries_left:
        log.info(
            "worker.quota_exhausted",
            mode=mode,
            chunk_size=len(chunk),
            attempted=result.processed,
        )
    return result
