"""Crawl scheduler — alternating stars/gazers rounds with rate-limit backoff."""

from __future__ import annotations

import asyncio
import enum
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import TYPE_CHECKING

import structlog

from costar.core.config import CrawlConfig
from costar.crawler.fetcher import TargetFetcher
from costar.crawler.frontier import attach_cursors, select_frontier
from costar.crawler.merger import ResultMerger
from costar.crawler.models import (
    MODES,
    CrawlSummary,
    Mode,
    RoundResult,
    source_type,
    utcnow,
)
from costar.crawler.partition import partition
from costar.crawler.worker import crawl_chunk

if TYPE_CHECKING:
    from costar.store.graph import GraphStore

log = structlog.get_logger("costar.crawler")


class SchedulerState(str, enum.Enum):
    IDLE = "idle"
    SELECTING_FRONTIER = "selecting_frontier"
    DISPATCHING = "dispatching"
    AWAITING_WORKERS = "awaiting_workers"
    SUMMARIZING = "summarizing"
    BACKING_OFF = "backing_off"
    NEXT_ROUND = "next_round"
    DONE = "done"


class CrawlScheduler:
    """Single driver that fans each round out to ``config.workers`` tasks.

    A round selects one mode's frontier, partitions it, runs one
    :func:`crawl_chunk` per partition concurrently and waits for all of
    them before summarizing. No round starts while a worker of the
    previous one is still running.
    """

    def __init__(
        self,
        store: GraphStore,
        fetcher: TargetFetcher,
        merger: ResultMerger,
        config: CrawlConfig,
        *,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self._store = store
        self._fetcher = fetcher
        self._merger = merger
        self._config = config
        self._clock = clock
        self._sleep = sleep
        self.state = SchedulerState.IDLE

    # ── public ─────────────────────────────────────────────────────────────

    async def run(self) -> CrawlSummary:
        """Alternate stars and gazers rounds until both frontiers are empty.

        Stops early once ``config.max_rounds`` rounds have run.
        """
        summary = CrawlSummary()
        complete: dict[str, bool] = {mode: False for mode in MODES}
        log.info(
            "crawl.start",
            workers=self._config.workers,
            freshness_days=self._config.freshness_days,
            max_rounds=self._config.max_rounds,
            backoff_trigger=self._config.backoff_trigger,
        )

        while not summary.completed and not self._budget_spent(summary):
            for mode in MODES:
                if self._budget_spent(summary):
                    break
                before = summary.processed
                result = await self.run_round(mode, summary.rounds + 1)
                summary.add(result)
                complete[mode] = result.frontier_empty
                self._log_progress(before, summary)

                if all(complete.values()):
                    summary.completed = True
                    break

                await self._pause_after(result, summary)
                self.state = SchedulerState.NEXT_ROUND

        self.state = SchedulerState.DONE
        log.info(
            "crawl.finished",
            rounds=summary.rounds,
            succeeded=summary.succeeded,
            failed=summary.failed,
            discovered=summary.discovered,
            backoffs=summary.backoffs,
            completed=summary.completed,
        )
        return summary

    async def run_round(self, mode: Mode, round_no: int = 1) -> RoundResult:
        """Select, partition, dispatch and join one round of *mode*."""
        self.state = SchedulerState.SELECTING_FRONTIER
        sources = await select_frontier(
            self._store,
            source_type(mode),
            window=self._config.freshness_window,
            limit=self._config.batch_size(mode),
            now=self._clock(),
            error_retry_after=self._config.error_retry_after,
        )
        result = RoundResult(mode=mode, round=round_no, selected=len(sources))

        if sources:
            cursors = await attach_cursors(self._store, mode, sources)
            chunks = partition(cursors, self._config.workers)

            self.state = SchedulerState.DISPATCHING
            tasks = [
                asyncio.create_task(
                    crawl_chunk(self._fetcher, self._merger, mode, chunk),
                    name=f"crawl-{mode}-{i}",
                )
                for i, chunk in enumerate(chunks)
            ]

            self.state = SchedulerState.AWAITING_WORKERS
            for chunk_result in await asyncio.gather(*tasks):
                result.add(chunk_result)

        self.state = SchedulerState.SUMMARIZING
        log.info(
            "crawl.round",
            mode=mode,
            round=round_no,
            selected=result.selected,
            succeeded=result.succeeded,
            failed=result.failed,
            discovered=result.discovered,
            exhausted_chunks=result.exhausted_chunks,
            chunks=result.chunks,
        )
        return result

    def should_back_off(self, result: RoundResult) -> bool:
        """Apply the configured backoff trigger to a round's quota flags."""
        trigger = self._config.backoff_trigger
        if trigger == "never" or result.chunks == 0:
            return False
        if trigger == "any":
            return result.exhausted_chunks > 0
        return result.exhausted_chunks == result.chunks

    # ── internal ───────────────────────────────────────────────────────────

    async def _pause_after(self, result: RoundResult, summary: CrawlSummary) -> None:
        if self.should_back_off(result):
            self.state = SchedulerState.BACKING_OFF
            summary.backoffs += 1
            log.warning(
                "crawl.backoff",
                mode=result.mode,
                round=result.round,
                exhausted_chunks=result.exhausted_chunks,
                chunks=result.chunks,
                wait_seconds=self._config.backoff_seconds,
            )
            await self._sleep(self._config.backoff_seconds)
        elif self._config.round_pause_seconds > 0:
            await self._sleep(self._config.round_pause_seconds)

    def _budget_spent(self, summary: CrawlSummary) -> bool:
        max_rounds = self._config.max_rounds
        return max_rounds is not None and summary.rounds >= max_rounds

    def _log_progress(self, before: int, summary: CrawlSummary) -> None:
        """Log totals each time another ``log_frequency`` sources are done."""
        freq = self._config.log_frequency
        if summary.processed // freq > before // freq:
            log.info(
                "crawl.progress",
                succeeded=summary.succeeded,
                failed=summary.failed,
                discovered=summary.discovered,
                by_mode=dict(summary.by_mode),
            )
