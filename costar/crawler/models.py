"""Data models for the crawl scheduler.

These are pure data structures — no DB or network dependencies.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Union

NodeType = Literal["user", "repo"]
Mode = Literal["stars", "gazers"]

MODES: tuple[Mode, ...] = ("stars", "gazers")

# mode -> (source type, target type). Stars edges run user -> repo,
# gazer edges repo -> user.
MODE_TYPES: dict[str, tuple[NodeType, NodeType]] = {
    "stars": ("user", "repo"),
    "gazers": ("repo", "user"),
}


def node_type_of(identifier: str) -> NodeType:
    """Repos are ``owner/name``; anything without a slash is a user."""
    return "repo" if "/" in identifier else "user"


def source_type(mode: str) -> NodeType:
    return MODE_TYPES[mode][0]


def target_type(mode: str) -> NodeType:
    return MODE_TYPES[mode][1]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_ts(value: str | None) -> datetime | None:
    if not value:
        return None
    ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _format_ts(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


@dataclass(frozen=True)
class Status:
    """Crawl health of one node. ``last_pulled=None`` means never crawled."""

    type: NodeType
    last_pulled: datetime | None = None
    had_error: bool = False

    def to_json(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "last_pulled": None if self.last_pulled is None else _format_ts(self.last_pulled),
            "had_error": self.had_error,
        }

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> Status:
        return cls(
            type=data["type"],
            last_pulled=_parse_ts(data.get("last_pulled")),
            had_error=bool(data.get("had_error", False)),
        )


@dataclass(frozen=True)
class RankedRepo:
    repo: str
    score: float


@dataclass(frozen=True)
class Costars:
    computed_at: datetime
    ranked: list[RankedRepo] = field(default_factory=list)

    def to_json(self) -> dict[str, Any]:
        return {
            "computed_at": _format_ts(self.computed_at),
            "ranked": [{"repo": r.repo, "score": r.score} for r in self.ranked],
        }

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> Costars:
        computed_at = _parse_ts(data["computed_at"])
        if computed_at is None:
            raise ValueError("costars record has no computed_at")
        return cls(
            computed_at=computed_at,
            ranked=[RankedRepo(repo=r["repo"], score=float(r["score"])) for r in data["ranked"]],
        )


@dataclass(frozen=True)
class SourceCursor:
    """A source to crawl plus the last target already stored for it."""

    source: str
    cursor: str | None = None


# ── fetch events ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class FetchComplete:
    source: str
    targets: list[str]
    total_count: int | None = None


@dataclass(frozen=True)
class FetchFailure:
    source: str
    reason: str = ""


FetchEvent = Union[FetchComplete, FetchFailure]


# ── per-round accumulators ────────────────────────────────────────────────


@dataclass
class ChunkResult:
    """What one worker did with its chunk. Combined after the join barrier."""

    succeeded: int = 0
    failed: int = 0
    discovered: int = 0
    queries_left: bool = True

    @property
    def processed(self) -> int:
        return self.succeeded + self.failed


@dataclass
class RoundResult:
    """Summary of one scheduler round for one mode."""

    mode: Mode
    round: int
    selected: int = 0
    succeeded: int = 0
    failed: int = 0
    discovered: int = 0
    chunks: int = 0
    exhausted_chunks: int = 0

    @property
    def processed(self) -> int:
        return self.succeeded + self.failed

    @property
    def frontier_empty(self) -> bool:
        return self.selected == 0

    def add(self, chunk: ChunkResult) -> None:
        self.chunks += 1
        self.succeeded += chunk.succeeded
        self.failed += chunk.failed
        self.discovered += chunk.discovered
        if not chunk.queries_left:
            self.exhausted_chunks += 1


@dataclass
class CrawlSummary:
    """Totals across every round of a :meth:`CrawlScheduler.run` call."""

    rounds: int = 0
    succeeded: int = 0
    failed: int = 0
    discovered: int = 0
    backoffs: int = 0
    completed: bool = False
    by_mode: dict[str, int] = field(default_factory=dict)

    def add(self, result: RoundResult) -> None:
        self.rounds += 1
        self.succeeded += result.succeeded
        self.failed += result.failed
        self.discovered += result.discovered
        self.by_mode[result.mode] = self.by_mode.get(result.mode, 0) + result.processed

    @property
    def processed(self) -> int:
        return self.succeeded + self.failed
