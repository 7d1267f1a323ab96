"""Result merger — turns fetch outcomes into store writes.

``on_complete`` and ``on_fail`` are called from every worker of a round,
interleaved. Each write touches only the crawled source's keys, except
discovery seeds, whose value is fixed, so concurrent calls never conflict.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime
from typing import TYPE_CHECKING

import structlog

from costar.crawler.fetcher import SimilarityRanker
from costar.crawler.models import (
    Costars,
    Mode,
    Status,
    source_type,
    target_type,
    utcnow,
)
from costar.crawler.progress import ProgressPrinter

if TYPE_CHECKING:
    from costar.store.graph import GraphStore

log = structlog.get_logger("costar.crawler")

DEFAULT_SIMILARITY_THRESHOLD = 2


def merge_targets(existing: Iterable[str], incoming: Iterable[str]) -> list[str]:
    """Union of *existing* and *incoming*, existing order first.

    New targets are appended in fetch order; duplicates in either input
    are dropped.
    """
    return list(dict.fromkeys([*existing, *incoming]))


class ResultMerger:
    """Completion and failure handlers for crawled sources."""

    def __init__(
        self,
        store: GraphStore,
        ranker: SimilarityRanker,
        *,
        clock: Callable[[], datetime] = utcnow,
        similarity_threshold: int = DEFAULT_SIMILARITY_THRESHOLD,
        progress: ProgressPrinter | None = None,
    ) -> None:
        self._store = store
        self._ranker = ranker
        self._clock = clock
        self._threshold = similarity_threshold
        self._progress = progress or ProgressPrinter(enabled=False)

    async def on_complete(
        self,
        mode: Mode,
        source: str,
        targets: list[str],
        total_count: int | None = None,
    ) -> int:
        """Merge a successful fetch of *source*. Returns how many targets were new nodes.

        1. Union-merge *targets* into the stored edge list
        2. Mark *source* healthy and freshly pulled
        3. Persist the merged list
        4. Repos: record the authoritative gazer count
        5. Seed status records for unseen targets
        6. Repos with more than the threshold of gazers: refresh costars
        """
        now = self._clock()
        src_type = source_type(mode)
        is_repo = src_type == "repo"

        existing = await self._store.get_edges(mode, source)
        merged = merge_targets(existing, targets)

        await self._store.put_status(
            source, Status(type=src_type, last_pulled=now, had_error=False)
        )
        await self._store.put_edges(mode, source, merged)

        known_count = total_count if total_count is not None else len(merged)
        if is_repo:
            await self._store.put_num_gazers(source, known_count)

        discovered = await self._discover(mode, targets)
        self._progress.success(is_repo)

        if is_repo and known_count > self._threshold:
            ranked = await self._ranker.rank(source)
            await self._store.put_costars(source, Costars(computed_at=now, ranked=ranked))
            log.debug("merger.costars", repo=source, gazers=known_count, ranked=len(ranked))

        return discovered

    async def on_fail(self, mode: Mode, source: str) -> None:
        """Flag *source* as failed; edges and derived data stay as they are."""
        await self._store.put_status(
            source, Status(type=source_type(mode), last_pulled=self._clock(), had_error=True)
        )
        self._progress.failure()

    async def _discover(self, mode: Mode, targets: list[str]) -> int:
        """Create never-crawled status records for targets that have none."""
        unique = list(dict.fromkeys(targets))
        if not unique:
            return 0
        statuses = await self._store.get_statuses(unique)
        seed = Status(type=target_type(mode)).to_json()
        batch = self._store.status_batch()
        for target, status in zip(unique, statuses):
            if status is None:
                batch.put(target, seed)
        discovered = len(batch)
        await batch.write()
        return discovered
