"""Costar ranking from shared gazers."""

from __future__ import annotations

import math
from collections import Counter

from costar.crawler.models import RankedRepo
from costar.store.graph import GraphStore

DEFAULT_LIMIT = 100


class StoreSimilarityRanker:
    """Rank repos by how many gazers they share with a given repo.

    Candidates are the repos starred by the repo's stored gazers. The
    score is cosine overlap, ``shared / sqrt(n_repo * n_other)``, where
    the ``n`` values are the authoritative gazer counts when known.
    """

    def __init__(self, store: GraphStore, *, limit: int = DEFAULT_LIMIT) -> None:
        self._store = store
        self._limit = limit

    async def rank(self, repo: str) -> list[RankedRepo]:
        gazers = await self._store.get_edges("gazers", repo)
        if not gazers:
            return []

        shared: Counter[str] = Counter()
        for starred in await self._store.stars.get_many(gazers):
            if starred:
                shared.update(set(starred))
        shared.pop(repo, None)
        if not shared:
            return []

        n_repo = await self._store.get_num_gazers(repo) or len(gazers)
        candidates = list(shared)
        totals = await self._store.get_many_num_gazers(candidates)

        ranked = []
        for other, total in zip(candidates, totals):
            n_shared = shared[other]
            n_other = max(total or 0, n_shared)
            score = n_shared / math.sqrt(max(n_repo, n_shared) * n_other)
            ranked.append(RankedRepo(repo=other, score=round(score, 6)))

        ranked.sort(key=lambda r: (-r.score, r.repo))
        return ranked[: self._limit]
