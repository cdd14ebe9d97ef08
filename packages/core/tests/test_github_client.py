"""Tests for the PyGithub-backed client, with PyGithub mocked out."""

import asyncio
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from github import GithubException

from pear_reviewer_core.errors import DataError, InvariantError, TransportError
from pear_reviewer_core.gh.client import GitHubClient, pull_request_head_sha
from pear_reviewer_core.gh.fixture import FixtureClient
from pear_reviewer_core.remote import parse_remote

REMOTE = parse_remote("https://github.com/sapcc/keppel.git")
T0 = datetime(2024, 9, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def gh_repo(mocker):
    """Patch PyGithub so every get_repo() returns the same MagicMock repository."""
    github_cls = mocker.patch("pear_reviewer_core.gh.client.Github")
    repo = MagicMock()
    github_cls.return_value.get_repo.return_value = repo
    return repo


def _gh_commit(sha, message):
    c = MagicMock()
    c.sha = sha
    c.commit.message = message
    c.html_url = f"https://github.com/sapcc/keppel/commit/{sha}"
    return c


def _gh_review(user, state="APPROVED", commit_id="a" * 40, minutes=0, review_id=1):
    r = MagicMock()
    r.id = review_id
    r.state = state
    r.commit_id = commit_id
    r.submitted_at = T0 + timedelta(minutes=minutes)
    r.user.login = user
    return r


class TestGitHubClientSetup:
    def test_passes_token_and_base_url(self, mocker):
        github_cls = mocker.patch("pear_reviewer_core.gh.client.Github")
        GitHubClient("tok", "https://github.example.com/api/v3")
        kwargs = github_cls.call_args.kwargs
        assert kwargs["base_url"] == "https://github.example.com/api/v3"
        assert kwargs["auth"].token == "tok"


class TestCompare:
    @pytest.mark.asyncio
    async def test_maps_commits_in_order(self, gh_repo):
        gh_repo.compare.return_value.commits = [
            _gh_commit("1" * 40, "First change\n\nwith body"),
            _gh_commit("2" * 40, "Second change"),
        ]

        commits = await GitHubClient("tok").compare(REMOTE, "v1", "v2")

        gh_repo.compare.assert_called_once_with("v1", "v2")
        assert [c.sha for c in commits] == ["1" * 40, "2" * 40]
        assert commits[0].headline == "First change"
        assert commits[0].link == f"https://github.com/sapcc/keppel/commit/{'1' * 40}"

    @pytest.mark.asyncio
    async def test_api_failure_annotated(self, gh_repo):
        gh_repo.compare.side_effect = GithubException(404, {"message": "Not Found"}, None)

        with pytest.raises(TransportError) as excinfo:
            await GitHubClient("tok").compare(REMOTE, "v1", "v2")

        error = excinfo.value
        assert error.remote == REMOTE
        assert "v1...v2" in error.operation
        assert "https://github.com/sapcc/keppel" in str(error)
        assert "Not Found" in str(error)
        assert isinstance(error.__cause__, GithubException)


class TestAssociatedPullRequests:
    @pytest.mark.asyncio
    async def test_returns_number_and_url(self, gh_repo):
        pull = MagicMock(number=12, html_url="https://github.com/sapcc/keppel/pull/12")
        gh_repo.get_commit.return_value.get_pulls.return_value = [pull]

        prs = await GitHubClient("tok").associated_pull_requests(REMOTE, "a" * 40)

        gh_repo.get_commit.assert_called_once_with("a" * 40)
        assert [(p.number, p.url) for p in prs] == [(12, "https://github.com/sapcc/keppel/pull/12")]

    @pytest.mark.asyncio
    async def test_pr_without_html_link(self, gh_repo):
        gh_repo.get_commit.return_value.get_pulls.return_value = [MagicMock(number=3, html_url=None)]
        with pytest.raises(DataError, match="html link"):
            await GitHubClient("tok").associated_pull_requests(REMOTE, "a" * 40)

    @pytest.mark.asyncio
    async def test_more_than_one_page(self, gh_repo):
        pulls = [MagicMock(number=i, html_url=f"u{i}") for i in range(3)]
        gh_repo.get_commit.return_value.get_pulls.return_value = pulls
        with pytest.raises(InvariantError):
            await GitHubClient("tok", per_page=2).associated_pull_requests(REMOTE, "a" * 40)


class TestPullRequestCommits:
    @pytest.mark.asyncio
    async def test_head_sha_is_last_commit(self, gh_repo):
        pull = gh_repo.get_pull.return_value
        pull.commits = 2
        pull.get_commits.return_value = [MagicMock(sha="1" * 40), MagicMock(sha="2" * 40)]

        head = await pull_request_head_sha(GitHubClient("tok"), REMOTE, 8)

        gh_repo.get_pull.assert_called_with(8)
        assert head == "2" * 40

    @pytest.mark.asyncio
    async def test_too_many_commits(self, gh_repo):
        gh_repo.get_pull.return_value.commits = 251
        with pytest.raises(InvariantError, match="250"):
            await GitHubClient("tok").pull_request_commits(REMOTE, 8)

    @pytest.mark.asyncio
    async def test_head_sha_of_empty_pr(self):
        client = FixtureClient(pr_commits={8: []})
        with pytest.raises(DataError, match="no commits"):
            await pull_request_head_sha(client, REMOTE, 8)


class TestPullRequestReviews:
    @pytest.mark.asyncio
    async def test_sorted_by_submission_time(self, gh_repo):
        gh_repo.get_pull.return_value.get_reviews.return_value = [
            _gh_review("bob", state="CHANGES_REQUESTED", minutes=10, review_id=2),
            _gh_review("alice", minutes=0, review_id=1),
        ]

        reviews = await GitHubClient("tok").pull_request_reviews(REMOTE, 8)

        assert [r.user for r in reviews] == ["alice", "bob"]
        assert [r.approved for r in reviews] == [True, False]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("missing", ["commit_id", "submitted_at", "user"])
    async def test_incomplete_review(self, gh_repo, missing):
        review = _gh_review("alice")
        setattr(review, missing, None)
        gh_repo.get_pull.return_value.get_reviews.return_value = [review]

        with pytest.raises(DataError, match=missing if missing != "user" else "no user"):
            await GitHubClient("tok").pull_request_reviews(REMOTE, 8)


class TestConcurrencyLimit:
    @pytest.mark.asyncio
    async def test_at_most_five_calls_in_flight(self, gh_repo):
        lock = threading.Lock()
        state = {"current": 0, "max": 0}

        def slow_compare(base, head):
            with lock:
                state["current"] += 1
                state["max"] = max(state["max"], state["current"])
            time.sleep(0.02)
            with lock:
                state["current"] -= 1
            return MagicMock(commits=[])

        gh_repo.compare.side_effect = slow_compare
        client = GitHubClient("tok")

        await asyncio.gather(*(client.compare(REMOTE, "v1", f"v{i}") for i in range(12)))

        assert 1 <= state["max"] <= 5
        assert state["current"] == 0

    @pytest.mark.asyncio
    async def test_permit_released_after_failure(self, gh_repo):
        gh_repo.compare.side_effect = GithubException(500, {"message": "boom"}, None)
        client = GitHubClient("tok")

        for _ in range(6):
            with pytest.raises(TransportError):
                await client.compare(REMOTE, "v1", "v2")

        gh_repo.compare.side_effect = None
        gh_repo.compare.return_value.commits = []
        assert await client.compare(REMOTE, "v1", "v2") == []

    @pytest.mark.asyncio
    async def test_cancelled_calls_hold_permit_until_thread_returns(self, gh_repo):
        asyncio.get_running_loop().set_default_executor(ThreadPoolExecutor(max_workers=16))
        lock = threading.Lock()
        state = {"current": 0, "max": 0}

        def slow_compare(base, head):
            with lock:
                state["current"] += 1
                state["max"] = max(state["max"], state["current"])
            time.sleep(0.2)
            with lock:
                state["current"] -= 1
            return MagicMock(commits=[])

        gh_repo.compare.side_effect = slow_compare
        client = GitHubClient("tok")

        first = [asyncio.ensure_future(client.compare(REMOTE, "v1", f"a{i}")) for i in range(5)]
        await asyncio.sleep(0.05)
        for task in first:
            task.cancel()
        await asyncio.gather(*(client.compare(REMOTE, "v1", f"b{i}") for i in range(5)))
        results = await asyncio.gather(*first, return_exceptions=True)

        assert all(isinstance(r, asyncio.CancelledError) for r in results)
        assert state["max"] <= 5
        assert state["current"] == 0
