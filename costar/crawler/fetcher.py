"""Collaborator contracts: the Target Fetcher and the Similarity Ranker."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Sequence
from typing import Protocol

from costar.crawler.models import FetchEvent, Mode, RankedRepo, SourceCursor


class FetchTask(ABC):
    """A finite sequence of fetch events for one chunk of sources.

    Iterate it once to drive the fetches. :attr:`queries_left` reflects
    the external quota once iteration has finished; it turns false when
    the API quota ran out while the chunk was being fetched.
    """

    def __init__(self, mode: Mode, sources: Sequence[SourceCursor]) -> None:
        self.mode = mode
        self.sources = list(sources)
        self.queries_left = True

    def __aiter__(self) -> AsyncIterator[FetchEvent]:
        return self.events()

    @abstractmethod
    def events(self) -> AsyncIterator[FetchEvent]:
        """Yield one ``FetchComplete`` or ``FetchFailure`` per attempted source."""


class TargetFetcher(Protocol):
    def fetch(self, mode: Mode, sources: Sequence[SourceCursor]) -> FetchTask: ...


class SimilarityRanker(Protocol):
    async def rank(self, repo: str) -> list[RankedRepo]: ...
