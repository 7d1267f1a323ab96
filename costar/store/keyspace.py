"""Ordered key-value keyspaces on top of the kv_entries table.

Every keyspace is a slice of one table, keyed by ``(keyspace, key)``.
Reads of a missing key return ``None``; writes are upserts. Scans use
keyset pagination (``key > last``) so no transaction stays open while a
caller consumes the stream.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterable, Sequence
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from costar.models.kv_entry import KVEntry

# Bounded IN (...) / VALUES lists keep SQLite under its parameter limit.
_CHUNK_SIZE = 300

_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _chunks(items: Sequence[Any], size: int = _CHUNK_SIZE) -> Iterable[Sequence[Any]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


class Keyspace:
    """One named keyspace: get / get_many / put / ordered scans / batches."""

    def __init__(
        self,
        name: str,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        dialect: str,
        page_size: int = 1000,
    ) -> None:
        if dialect not in _INSERTS:
            raise ValueError(f"unsupported database dialect: {dialect!r}")
        self.name = name
        self._session_factory = session_factory
        self._insert = _INSERTS[dialect]
        self._page_size = page_size

    # ── read ──────────────────────────────────────────────────────────────

    async def get(self, key: str) -> Any | None:
        async with self._session_factory() as session:
            entry = await session.get(KVEntry, (self.name, key))
            return None if entry is None else entry.value

    async def get_many(self, keys: Sequence[str]) -> list[Any | None]:
        """Batched lookup; the result is aligned with *keys*."""
        found: dict[str, Any] = {}
        unique = list(dict.fromkeys(keys))
        if unique:
            async with self._session_factory() as session:
                for chunk in _chunks(unique):
                    stmt = select(KVEntry.key, KVEntry.value).where(
                        KVEntry.keyspace == self.name, KVEntry.key.in_(chunk)
                    )
                    result = await session.execute(stmt)
                    found.update({key: value for key, value in result.all()})
        return [found.get(key) for key in keys]

    async def items(self) -> AsyncIterator[tuple[str, Any]]:
        """Stream ``(key, value)`` pairs in ascending key order."""
        last: str | None = None
        while True:
            stmt = select(KVEntry.key, KVEntry.value).where(KVEntry.keyspace == self.name)
            if last is not None:
                stmt = stmt.where(KVEntry.key > last)
            stmt = stmt.order_by(KVEntry.key).limit(self._page_size)
            async with self._session_factory() as session:
                rows = (await session.execute(stmt)).all()
            for key, value in rows:
                yield key, value
            if len(rows) < self._page_size:
                return
            last = rows[-1][0]

    async def keys(self) -> AsyncIterator[str]:
        """Stream keys in ascending order."""
        async for key, _ in self.items():
            yield key

    async def count(self) -> int:
        stmt = select(func.count()).select_from(KVEntry).where(KVEntry.keyspace == self.name)
        async with self._session_factory() as session:
            return (await session.execute(stmt)).scalar_one()

    # ── write ─────────────────────────────────────────────────────────────

    async def put(self, key: str, value: Any) -> None:
        await self._write({key: value})

    def batch(self) -> WriteBatch:
        return WriteBatch(self)

    async def _write(self, values: dict[str, Any]) -> None:
        """Upsert *values* inside one transaction."""
        if not values:
            return
        rows = [{"keyspace": self.name, "key": k, "value": v} for k, v in values.items()]
        async with self._session_factory() as session:
            async with session.begin():
                for chunk in _chunks(rows):
                    stmt = self._insert(KVEntry).values(list(chunk))
                    stmt = stmt.on_conflict_do_update(
                        index_elements=["keyspace", "key"],
                        set_={"value": stmt.excluded["value"]},
                    )
                    await session.execute(stmt)


class WriteBatch:
    """Grouped puts against one keyspace, committed atomically by :meth:`write`.

    A key put twice keeps the last value.
    """

    def __init__(self, keyspace: Keyspace) -> None:
        self._keyspace = keyspace
        self._ops: dict[str, Any] = {}

    def put(self, key: str, value: Any) -> WriteBatch:
        self._ops[key] = value
        return self

    def __len__(self) -> int:
        return len(self._ops)

    async def write(self) -> None:
        ops, self._ops = self._ops, {}
        await self._keyspace._write(ops)
