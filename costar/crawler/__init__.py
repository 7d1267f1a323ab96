"""Crawl scheduler / frontier manager for the stargazer graph."""

from costar.crawler.fetcher import FetchTask, SimilarityRanker, TargetFetcher
from costar.crawler.frontier import attach_cursors, is_eligible, select_frontier
from costar.crawler.merger import ResultMerger, merge_targets
from costar.crawler.models import (
    ChunkResult,
    Costars,
    CrawlSummary,
    FetchComplete,
    FetchFailure,
    RankedRepo,
    RoundResult,
    SourceCursor,
    Status,
    node_type_of,
)
from costar.crawler.partition import partition
from costar.crawler.scheduler import CrawlScheduler, SchedulerState
from costar.crawler.worker import crawl_chunk

__all__ = [
    "ChunkResult",
    "Costars",
    "CrawlScheduler",
    "CrawlSummary",
    "FetchComplete",
    "FetchFailure",
    "FetchTask",
    "RankedRepo",
    "ResultMerger",
    "RoundResult",
    "SchedulerState",
    "SimilarityRanker",
    "SourceCursor",
    "Status",
    "TargetFetcher",
    "attach_cursors",
    "crawl_chunk",
    "is_eligible",
    "merge_targets",
    "node_type_of",
    "partition",
    "select_frontier",
]
