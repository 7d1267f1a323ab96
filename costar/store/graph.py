"""GraphStore — the five keyspaces of the stargazer graph on one engine."""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence

from sqlalchemy.ext.asyncio import AsyncEngine

from costar.core.database import create_schema, create_session_factory
from costar.crawler.models import (
    Costars,
    NodeType,
    SourceCursor,
    Status,
    node_type_of,
)
from costar.store.keyspace import Keyspace, WriteBatch

KEYSPACES = ("stars", "gazers", "status", "num_gazers", "costars")


class GraphStore:
    """Typed access to Stars, Gazers, Status, NumGazers and Costars.

    ``stars`` maps user -> repos, ``gazers`` maps repo -> users; both are
    lists in first-seen order.
    """

    def __init__(self, engine: AsyncEngine, *, page_size: int = 1000) -> None:
        self.engine = engine
        factory = create_session_factory(engine)
        dialect = engine.dialect.name

        def _ks(name: str) -> Keyspace:
            return Keyspace(name, factory, dialect=dialect, page_size=page_size)

        self.stars = _ks("stars")
        self.gazers = _ks("gazers")
        self.status = _ks("status")
        self.num_gazers = _ks("num_gazers")
        self.costars = _ks("costars")

    async def create_schema(self) -> None:
        await create_schema(self.engine)

    async def close(self) -> None:
        await self.engine.dispose()

    def edges(self, mode: str) -> Keyspace:
        """Edge keyspace written by *mode* (``stars`` or ``gazers``)."""
        if mode == "stars":
            return self.stars
        if mode == "gazers":
            return self.gazers
        raise ValueError(f"unknown crawl mode: {mode!r}")

    # ── status ────────────────────────────────────────────────────────────

    async def get_status(self, node: str) -> Status | None:
        raw = await self.status.get(node)
        return None if raw is None else Status.from_json(raw)

    async def get_statuses(self, nodes: Sequence[str]) -> list[Status | None]:
        raws = await self.status.get_many(nodes)
        return [None if raw is None else Status.from_json(raw) for raw in raws]

    async def put_status(self, node: str, status: Status) -> None:
        await self.status.put(node, status.to_json())

    def status_batch(self) -> WriteBatch:
        return self.status.batch()

    async def iter_statuses(self) -> AsyncIterator[tuple[str, Status]]:
        """Stream every status record in key order."""
        async for node, raw in self.status.items():
            yield node, Status.from_json(raw)

    async def seed(self, nodes: Sequence[str]) -> int:
        """Create never-crawled status records for *nodes* that have none.

        Returns the number of records created.
        """
        existing = await self.status.get_many(nodes)
        batch = self.status.batch()
        for node, raw in zip(nodes, existing):
            if raw is None:
                batch.put(node, Status(type=node_type_of(node)).to_json())
        created = len(batch)
        await batch.write()
        return created

    async def reset_errors(self, node_type: NodeType | None = None) -> int:
        """Clear ``had_error`` so failed nodes re-enter the frontier."""
        batch = self.status.batch()
        async for node, status in self.iter_statuses():
            if not status.had_error:
                continue
            if node_type is not None and status.type != node_type:
                continue
            batch.put(node, Status(type=status.type, last_pulled=None).to_json())
        reset = len(batch)
        await batch.write()
        return reset

    # ── edges ─────────────────────────────────────────────────────────────

    async def get_edges(self, mode: str, source: str) -> list[str]:
        """Stored targets of *source*, or an empty list when never crawled."""
        return list(await self.edges(mode).get(source) or [])

    async def put_edges(self, mode: str, source: str, targets: list[str]) -> None:
        await self.edges(mode).put(source, targets)

    async def get_cursors(self, mode: str, sources: Sequence[str]) -> list[SourceCursor]:
        """Pair each source with the last stored target of its edge list."""
        lists = await self.edges(mode).get_many(sources)
        return [
            SourceCursor(source=source, cursor=targets[-1] if targets else None)
            for source, targets in zip(sources, lists)
        ]

    # ── derived ───────────────────────────────────────────────────────────

    async def get_num_gazers(self, repo: str) -> int | None:
        return await self.num_gazers.get(repo)

    async def get_many_num_gazers(self, repos: Sequence[str]) -> list[int | None]:
        return await self.num_gazers.get_many(repos)

    async def put_num_gazers(self, repo: str, count: int) -> None:
        await self.num_gazers.put(repo, count)

    async def get_costars(self, repo: str) -> Costars | None:
        raw = await self.costars.get(repo)
        return None if raw is None else Costars.from_json(raw)

    async def put_costars(self, repo: str, costars: Costars) -> None:
        await self.costars.put(repo, costars.to_json())

    # ── reporting ─────────────────────────────────────────────────────────

    async def counts(self) -> dict[str, int]:
        return {name: await getattr(self, name).count() for name in KEYSPACES}
