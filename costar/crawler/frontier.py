"""Frontier selection — which nodes need (re)crawling."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING

import structlog

from costar.crawler.models import Mode, NodeType, SourceCursor, Status

if TYPE_CHECKING:
    from costar.store.graph import GraphStore

log = structlog.get_logger("costar.crawler")

_SKIP_LOG_EVERY = 100_000


def is_eligible(
    status: Status,
    node_type: NodeType,
    *,
    now: datetime,
    window: timedelta,
    error_retry_after: timedelta | None = None,
) -> bool:
    """True if a node of *node_type* with *status* should be crawled now.

    Never-crawled nodes are always eligible. Failed nodes stay out unless
    *error_retry_after* is set and their failure is older than that.
    """
    if status.type != node_type:
        return False
    if status.had_error:
        if error_retry_after is None or status.last_pulled is None:
            return False
        return status.last_pulled < now - error_retry_after
    if status.last_pulled is None:
        return True
    return status.last_pulled < now - window


async def select_frontier(
    store: GraphStore,
    node_type: NodeType,
    *,
    window: timedelta,
    limit: int,
    now: datetime,
    error_retry_after: timedelta | None = None,
) -> list[str]:
    """Return up to *limit* eligible node ids in store key order.

    A result shorter than *limit* means the stale and new population of
    *node_type* is exhausted.
    """
    selected: list[str] = []
    skipped = 0
    if limit <= 0:
        return selected
    async for node, status in store.iter_statuses():
        if is_eligible(
            status, node_type, now=now, window=window, error_retry_after=error_retry_after
        ):
            selected.append(node)
            if len(selected) >= limit:
                break
        elif status.type == node_type:
            skipped += 1
            if skipped % _SKIP_LOG_EVERY == 0:
                log.info("frontier.skipping", node_type=node_type, skipped=skipped)
    log.debug(
        "frontier.selected",
        node_type=node_type,
        selected=len(selected),
        limit=limit,
        skipped=skipped,
    )
    return selected


async def attach_cursors(store: GraphStore, mode: Mode, sources: list[str]) -> list[SourceCursor]:
    """Pair each selected source with its resume cursor (batched lookup)."""
    if not sources:
        return []
    return await store.get_cursors(mode, sources)
