"""Tests for the GitHub client and the GitHub Target Fetcher (no network)."""

from __future__ import annotations

import time
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from costar.crawler.models import FetchComplete, FetchFailure, SourceCursor
from costar.github.client import GitHubClient, RateLimitError
from costar.github.fetcher import GitHubTargetFetcher, skip_covered

# ── TestGitHubClient ──────────────────────────────────────────────────────


class TestGitHubClient:
    def test_parse_next_link(self):
        header = (
            '<https://api.github.com/repos/a/b/stargazers?page=2>; rel="next", '
            '<https://api.github.com/repos/a/b/stargazers?page=5>; rel="last"'
        )
        url = "https://api.github.com/repos/a/b/stargazers?page=2"
        assert GitHubClient._parse_next_link(header) == url

    def test_parse_next_link_empty(self):
        assert GitHubClient._parse_next_link("") is None

    def test_parse_next_link_no_next(self):
        header = '<https://api.github.com/repos/a/b/stargazers?page=1>; rel="last"'
        assert GitHubClient._parse_next_link(header) is None

    def test_exhausted_quota_recorded(self):
        """remaining=0 with a future reset turns queries_left off."""
        client = GitHubClient.__new__(GitHubClient)
        response = MagicMock()
        response.headers = {
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": str(int(time.time()) + 3600),
        }
        client._record_quota(response)
        assert client.rate_remaining == 0
        assert client.queries_left is False

    def test_quota_left(self):
        client = GitHubClient.__new__(GitHubClient)
        response = MagicMock()
        response.headers = {
            "X-RateLimit-Remaining": "100",
            "X-RateLimit-Reset": "9999999999",
        }
        client._record_quota(response)
        assert client.queries_left is True

    def test_queries_left_after_reset(self):
        client = GitHubClient.__new__(GitHubClient)
        assert client.queries_left is True
        client.rate_remaining = 0
        client.rate_reset = int(time.time()) - 5
        assert client.queries_left is True
        client.rate_reset = int(time.time()) + 600
        assert client.queries_left is False
        client.rate_reset = None
        assert client.queries_left is False

    @pytest.mark.anyio
    async def test_retry_on_server_error(self):
        """5xx triggers retry with backoff."""
        client = GitHubClient.__new__(GitHubClient)
        client._client = AsyncMock()

        error_resp = MagicMock(spec=httpx.Response)
        error_resp.status_code = 502
        error_resp.request = MagicMock()

        ok_resp = MagicMock(spec=httpx.Response)
        ok_resp.status_code = 200
        ok_resp.raise_for_status = MagicMock()

        client._client.get = AsyncMock(side_effect=[error_resp, ok_resp])

        with patch("asyncio.sleep", new_callable=AsyncMock):
            result = await client._request_with_retry("/test")
            assert result.status_code == 200
            assert client._client.get.call_count == 2

    @pytest.mark.anyio
    async def test_retry_exhausted(self):
        client = GitHubClient.__new__(GitHubClient)
        client._client = AsyncMock()

        error_resp = MagicMock(spec=httpx.Response)
        error_resp.status_code = 503
        error_resp.request = MagicMock()

        client._client.get = AsyncMock(return_value=error_resp)

        with patch("asyncio.sleep", new_callable=AsyncMock):
            with pytest.raises(httpx.HTTPStatusError):
                await client._request_with_retry("/test")
            assert client._client.get.call_count == 3

    @pytest.mark.anyio
    async def test_retry_on_timeout(self):
        client = GitHubClient.__new__(GitHubClient)
        client._client = AsyncMock()

        ok_resp = MagicMock(spec=httpx.Response)
        ok_resp.status_code = 200
        ok_resp.raise_for_status = MagicMock()

        client._client.get = AsyncMock(side_effect=[httpx.ReadTimeout("timeout"), ok_resp])

        with patch("asyncio.sleep", new_callable=AsyncMock):
            result = await client._request_with_retry("/test")
            assert result.status_code == 200

    @pytest.mark.anyio
    async def test_403_rate_limit_raises_immediately(self):
        """A rate-limited 403 raises after one attempt, without sleeping."""
        client = GitHubClient.__new__(GitHubClient)
        client._client = AsyncMock()

        rate_limited_resp = MagicMock(spec=httpx.Response)
        rate_limited_resp.status_code = 403
        rate_limited_resp.headers = {
            "X-RateLimit-Remaining": "0",
            "Retry-After": "60",
        }
        client._client.get = AsyncMock(return_value=rate_limited_resp)

        with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            with pytest.raises(RateLimitError) as exc_info:
                await client._request_with_retry("/test")
            mock_sleep.assert_not_called()
        assert exc_info.value.retry_after == 60
        assert client._client.get.call_count == 1
        assert client.rate_remaining == 0

    @pytest.mark.anyio
    async def test_403_non_rate_limit_raises(self):
        client = GitHubClient.__new__(GitHubClient)
        client._client = AsyncMock()

        forbidden_resp = MagicMock(spec=httpx.Response)
        forbidden_resp.status_code = 403
        forbidden_resp.headers = {"X-RateLimit-Remaining": "50"}
        forbidden_resp.request = MagicMock()
        forbidden_resp.raise_for_status = MagicMock(
            side_effect=httpx.HTTPStatusError("403", request=MagicMock(), response=forbidden_resp)
        )
        client._client.get = AsyncMock(return_value=forbidden_resp)

        with pytest.raises(httpx.HTTPStatusError):
            await client._request_with_retry("/test")
        assert client._client.get.call_count == 1

    def test_parse_header_int(self):
        assert GitHubClient._parse_header_int("42") == 42
        assert GitHubClient._parse_header_int(None) is None
        assert GitHubClient._parse_header_int("not-a-number") is None

    def test_is_rate_limited(self):
        resp = MagicMock()
        resp.headers = {"X-RateLimit-Remaining": "0"}
        assert GitHubClient._is_rate_limited(resp) is True
        resp.headers = {"Retry-After": "120"}
        assert GitHubClient._is_rate_limited(resp) is True
        resp.headers = {"X-RateLimit-Remaining": "100"}
        assert GitHubClient._is_rate_limited(resp) is False

    @pytest.mark.anyio
    async def test_get_paginated_respects_max_pages(self):
        client = GitHubClient.__new__(GitHubClient)

        resp = MagicMock(spec=httpx.Response)
        resp.status_code = 200
        resp.json.return_value = [{"login": "a"}]
        resp.headers = {
            "Link": '<https://api.github.com/repos/o/r/stargazers?page=2>; rel="next"',
            "X-RateLimit-Remaining": "100",
        }

        with patch.object(
            client, "_request_with_retry", new_callable=AsyncMock, return_value=resp
        ):
            items = [
                item async for item in client.get_paginated("/repos/o/r/stargazers", max_pages=1)
            ]

        assert items == [{"login": "a"}]


# ── TestSkipCovered ───────────────────────────────────────────────────────


class TestSkipCovered:
    def test_no_cursor(self):
        assert skip_covered(["a", "b"], None) == ["a", "b"]

    def test_drops_prefix_through_cursor(self):
        assert skip_covered(["a", "b", "c"], "b") == ["c"]

    def test_cursor_at_end(self):
        assert skip_covered(["a", "b"], "b") == []

    def test_cursor_not_present(self):
        assert skip_covered(["a", "b"], "z") == ["a", "b"]


# ── TestGitHubTargetFetcher ───────────────────────────────────────────────

_RESET = str(int(time.time()) + 3600)


def _ok(payload, *, remaining: int = 4000, link: str | None = None) -> httpx.Response:
    headers = {"X-RateLimit-Remaining": str(remaining), "X-RateLimit-Reset": _RESET}
    if link:
        headers["Link"] = f'<{link}>; rel="next"'
    return httpx.Response(200, json=payload, headers=headers)


class FakeGitHub:
    """httpx transport handler serving a tiny slice of the REST API."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.starred: dict[str, list[str]] = {
            "alice": ["o/a", "o/b", "o/c"],
            "carol": ["o/c"],
        }
        self.exhausted: set[str] = set()
        self.last_call: set[str] = set()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path.startswith("/users/") and path.endswith("/starred"):
            user = path.split("/")[2]
            if user in self.exhausted:
                return httpx.Response(
                    403,
                    json={"message": "API rate limit exceeded"},
                    headers={"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": _RESET},
                )
            if user not in self.starred:
                return httpx.Response(404, json={"message": "Not Found"})
            remaining = 0 if user in self.last_call else 4000
            return _ok([{"full_name": r} for r in self.starred[user]], remaining=remaining)

        if path == "/repos/o/a":
            return _ok({"full_name": "o/a", "stargazers_count": 7})
        if path == "/repos/o/a/stargazers":
            if request.url.params.get("page") == "2":
                return _ok([{"login": "u3"}])
            return _ok(
                [{"login": "u1"}, {"login": "u2"}],
                link="https://api.github.com/repos/o/a/stargazers?page=2",
            )
        if path == "/repos/o/broken":
            return _ok({"full_name": "o/broken"})
        return httpx.Response(404, json={"message": "Not Found"})


async def _collect(github: FakeGitHub, mode, sources):
    async with GitHubClient(token="t", transport=httpx.MockTransport(github)) as client:
        task = GitHubTargetFetcher(client).fetch(mode, sources)
        events = [event async for event in task]
    return task, events


class TestGitHubTargetFetcher:
    @pytest.mark.anyio
    async def test_stars_mode(self):
        github = FakeGitHub()

        task, events = await _collect(github, "stars", [SourceCursor("alice")])

        assert events == [FetchComplete("alice", ["o/a", "o/b", "o/c"], None)]
        assert task.queries_left is True
        params = github.requests[0].url.params
        assert params["sort"] == "created"
        assert params["direction"] == "asc"
        assert github.requests[0].headers["Authorization"] == "token t"

    @pytest.mark.anyio
    async def test_stars_mode_resumes_after_cursor(self):
        task, events = await _collect(FakeGitHub(), "stars", [SourceCursor("alice", "o/a")])
        assert events == [FetchComplete("alice", ["o/b", "o/c"], None)]

    @pytest.mark.anyio
    async def test_gazers_mode_paginates_and_reports_total(self):
        github = FakeGitHub()

        _, events = await _collect(github, "gazers", [SourceCursor("o/a", "u1")])

        assert events == [FetchComplete("o/a", ["u2", "u3"], 7)]
        assert [r.url.path for r in github.requests] == [
            "/repos/o/a",
            "/repos/o/a/stargazers",
            "/repos/o/a/stargazers",
        ]

    @pytest.mark.anyio
    async def test_missing_source_fails_alone(self):
        _, events = await _collect(
            FakeGitHub(), "stars", [SourceCursor("ghost"), SourceCursor("carol")]
        )

        assert isinstance(events[0], FetchFailure)
        assert events[0].source == "ghost"
        assert "404" in events[0].reason
        assert events[1] == FetchComplete("carol", ["o/c"], None)

    @pytest.mark.anyio
    async def test_malformed_repo_payload_fails(self):
        _, events = await _collect(FakeGitHub(), "gazers", [SourceCursor("o/broken")])

        assert len(events) == 1
        assert isinstance(events[0], FetchFailure)
        assert "KeyError" in events[0].reason

    @pytest.mark.anyio
    async def test_rate_limit_stops_chunk(self):
        github = FakeGitHub()
        github.exhausted.add("bob")

        task, events = await _collect(
            github,
            "stars",
            [SourceCursor("alice"), SourceCursor("bob"), SourceCursor("carol")],
        )

        assert events[0] == FetchComplete("alice", ["o/a", "o/b", "o/c"], None)
        assert isinstance(events[1], FetchFailure) and events[1].source == "bob"
        assert len(events) == 2
        assert task.queries_left is False
        assert all("/users/carol/" not in r.url.path for r in github.requests)

    @pytest.mark.anyio
    async def test_last_query_spent_stops_chunk(self):
        github = FakeGitHub()
        github.last_call.add("alice")

        task, events = await _collect(
            github, "stars", [SourceCursor("alice"), SourceCursor("carol")]
        )

        assert events == [FetchComplete("alice", ["o/a", "o/b", "o/c"], None)]
        assert task.queries_left is False

    @pytest.mark.anyio
    async def test_no_requests_once_quota_known_empty(self):
        github = FakeGitHub()
        async with GitHubClient(transport=httpx.MockTransport(github)) as client:
            client.rate_remaining = 0
            client.rate_reset = int(time.time()) + 600
            task = GitHubTargetFetcher(client).fetch("stars", [SourceCursor("alice")])
            events = [event async for event in task]

        assert events == []
        assert task.queries_left is False
        assert github.requests == []
