"""GitHub REST access: the default Target Fetcher."""

from costar.github.client import GitHubClient, RateLimitError
from costar.github.fetcher import GitHubFetchTask, GitHubTargetFetcher, skip_covered

__all__ = [
    "GitHubClient",
    "GitHubFetchTask",
    "GitHubTargetFetcher",
    "RateLimitError",
    "skip_covered",
]
