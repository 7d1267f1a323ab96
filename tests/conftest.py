"""Shared fixtures for costar tests.

Store-backed tests run against a throwaway SQLite file per test, so no
database server is needed. The scan page size is kept tiny so ordered
scans cross several pages even with a handful of keys.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from datetime import datetime, timezone

import pytest
import pytest_asyncio

from costar.core.database import create_engine
from costar.crawler.fetcher import FetchTask
from costar.crawler.merger import ResultMerger
from costar.crawler.models import (
    FetchComplete,
    FetchFailure,
    Mode,
    RankedRepo,
    SourceCursor,
)
from costar.store.graph import GraphStore

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest_asyncio.fixture
async def store(tmp_path):
    """A GraphStore on a fresh SQLite file."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'costar.db'}")
    graph = GraphStore(engine, page_size=3)
    await graph.create_schema()
    yield graph
    await graph.close()


class Clock:
    """Settable clock returning timezone-aware UTC datetimes."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return Clock()


class FakeRanker:
    """Records every repo it was asked to rank."""

    def __init__(self, result: list[RankedRepo] | None = None) -> None:
        self.calls: list[str] = []
        self.result = result if result is not None else [RankedRepo("x/y", 0.5)]

    async def rank(self, repo: str) -> list[RankedRepo]:
        self.calls.append(repo)
        return list(self.result)


@pytest.fixture
def ranker():
    return FakeRanker()


@pytest.fixture
def merger(store, ranker, clock):
    return ResultMerger(store, ranker, clock=clock)


class FakeFetchTask(FetchTask):
    def __init__(self, fetcher: FakeFetcher, mode: Mode, sources: Sequence[SourceCursor]):
        super().__init__(mode, sources)
        self._fetcher = fetcher

    async def events(self):
        for item in self.sources:
            # Yield control so concurrent workers interleave.
            await asyncio.sleep(0)
            self._fetcher.seen.append((self.mode, item))
            outcome = self._fetcher.graph.get((self.mode, item.source))
            if outcome == "quota":
                self.queries_left = False
                return
            if outcome is None or outcome == "fail":
                yield FetchFailure(item.source, "scripted failure")
                continue
            targets, total = outcome
            yield FetchComplete(item.source, list(targets), total)


class FakeFetcher:
    """Target Fetcher backed by a scripted graph.

    ``graph`` maps ``(mode, source)`` to ``(targets, total_count)``,
    ``"fail"`` or ``"quota"``; unknown sources fail.
    """

    def __init__(self, graph: dict | None = None) -> None:
        self.graph: dict = dict(graph or {})
        self.tasks: list[FakeFetchTask] = []
        self.seen: list[tuple[str, SourceCursor]] = []

    def fetch(self, mode: Mode, sources: Sequence[SourceCursor]) -> FakeFetchTask:
        task = FakeFetchTask(self, mode, sources)
        self.tasks.append(task)
        return task


@pytest.fixture
def make_fetcher():
    def _make(graph: dict | None = None) -> FakeFetcher:
        return FakeFetcher(graph)

    return _make
