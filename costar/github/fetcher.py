"""GitHub implementation of the Target Fetcher.

``stars`` mode lists the repos a user starred; ``gazers`` mode lists the
users who starred a repo and reads the repo's ``stargazers_count`` as the
authoritative total. Both listings are requested oldest first, so a
stored edge list is a prefix of the next fetch and its last element is
a usable resume cursor.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from typing import Any

import httpx
import structlog

from costar.crawler.fetcher import FetchTask
from costar.crawler.models import (
    FetchComplete,
    FetchEvent,
    FetchFailure,
    Mode,
    SourceCursor,
)
from costar.github.client import GitHubClient, RateLimitError

log = structlog.get_logger("costar.github")

# Response shapes that cannot be turned into a target list.
_PARSE_ERRORS = (KeyError, TypeError, ValueError)


def skip_covered(targets: list[str], cursor: str | None) -> list[str]:
    """Drop the prefix up to and including *cursor*, when it is present."""
    if cursor is None:
        return targets
    try:
        index = targets.index(cursor)
    except ValueError:
        return targets
    return targets[index + 1 :]


class GitHubTargetFetcher:
    """Hands out one :class:`GitHubFetchTask` per chunk; shares one client."""

    def __init__(self, client: GitHubClient, *, max_pages: int = 100) -> None:
        self._client = client
        self._max_pages = max_pages

    def fetch(self, mode: Mode, sources: Sequence[SourceCursor]) -> GitHubFetchTask:
        return GitHubFetchTask(self._client, mode, sources, max_pages=self._max_pages)


class GitHubFetchTask(FetchTask):
    def __init__(
        self,
        client: GitHubClient,
        mode: Mode,
        sources: Sequence[SourceCursor],
        *,
        max_pages: int,
    ) -> None:
        super().__init__(mode, sources)
        self._client = client
        self._max_pages = max_pages

    async def events(self) -> AsyncIterator[FetchEvent]:
        """Fetch sources in order until done or the quota runs out.

        The source in flight when the quota runs out is reported failed;
        the rest of the chunk is left for a later round.
        """
        for item in self.sources:
            if not self._client.queries_left:
                self.queries_left = False
                return
            try:
                event = await self._fetch_one(item)
            except RateLimitError as exc:
                self.queries_left = False
                yield FetchFailure(item.source, str(exc))
                return
            except (httpx.HTTPError, *_PARSE_ERRORS) as exc:
                log.warning(
                    "github.fetch_failed",
                    mode=self.mode,
                    source=item.source,
                    error=f"{type(exc).__name__}: {exc}",
                )
                yield FetchFailure(item.source, f"{type(exc).__name__}: {exc}")
                continue
            yield event

        if not self._client.queries_left:
            self.queries_left = False

    async def _fetch_one(self, item: SourceCursor) -> FetchComplete:
        if self.mode == "stars":
            targets = await self._starred(item.source)
            return FetchComplete(item.source, skip_covered(targets, item.cursor))

        repo = await self._client.get(f"/repos/{item.source}")
        total = int(repo["stargazers_count"])
        targets = await self._stargazers(item.source)
        return FetchComplete(item.source, skip_covered(targets, item.cursor), total)

    async def _starred(self, user: str) -> list[str]:
        params: dict[str, Any] = {"sort": "created", "direction": "asc"}
        return [
            repo["full_name"]
            async for repo in self._client.get_paginated(
                f"/users/{user}/starred", params, max_pages=self._max_pages
            )
        ]

    async def _stargazers(self, repo: str) -> list[str]:
        return [
            user["login"]
            async for user in self._client.get_paginated(
                f"/repos/{repo}/stargazers", max_pages=self._max_pages
            )
        ]
