"""GitHub access for the approval audit.

Two things implement ReviewApi: GitHubClient talks to a real GitHub (or GitHub
Enterprise) instance through PyGithub, FixtureClient (gh/fixture.py) replays
recorded responses. Which one is used is decided when the ClientGateway is
built, never by the changeset logic.

PyGithub is synchronous, so every call runs in the event loop's default
executor via asyncio.to_thread. Each client owns a semaphore of
MAX_CONCURRENT_REQUESTS permits; one permit is held for the whole duration of
an operation, including any pagination PyGithub does underneath. A cancelled
call keeps its permit until its worker thread has returned.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Protocol, TypeVar

import requests
from github import Auth, Github, GithubException

from pear_reviewer_core.errors import DataError, InvariantError, TransportError
from pear_reviewer_core.models import CompareCommit, PullRequestRef, ReviewRecord, headline_of
from pear_reviewer_core.remote import RemoteRepository

logger = logging.getLogger(__name__)

# Up to 5 API calls in flight to the same GitHub instance.
MAX_CONCURRENT_REQUESTS = 5

# GitHub's pull request commits endpoint stops listing at 250 commits.
MAX_PR_COMMITS = 250

DEFAULT_API_URL = "https://api.github.com"

_T = TypeVar("_T")


class ReviewApi(Protocol):
    """What the changeset builder needs from a review-hosting provider."""

    async def compare(self, remote: RemoteRepository, base: str, head: str) -> list[CompareCommit]: ...

    async def associated_pull_requests(self, remote: RemoteRepository, sha: str) -> list[PullRequestRef]: ...

    async def pull_request_commits(self, remote: RemoteRepository, number: int) -> list[str]: ...

    async def pull_request_reviews(self, remote: RemoteRepository, number: int) -> list[ReviewRecord]: ...


async def pull_request_head_sha(api: ReviewApi, remote: RemoteRepository, number: int) -> str:
    """Return the sha of the last commit on a pull request."""
    commits = await api.pull_request_commits(remote, number)
    if not commits:
        raise DataError(f"PR {remote.full_name}/pull/{number} contains no commits")
    return commits[-1]


class GitHubClient:
    def __init__(self, token: str, base_url: str = DEFAULT_API_URL, per_page: int = 100):
        self.base_url = base_url
        self._per_page = per_page
        self._gh = Github(auth=Auth.Token(token), base_url=base_url, per_page=per_page)
        self._semaphore = asyncio.Semaphore(MAX_CONCURRENT_REQUESTS)

    async def _call(self, remote: RemoteRepository, operation: str, func: Callable[..., _T], *args) -> _T:
        async with self._semaphore:
            logger.debug("%s: %s", remote.full_name, operation)
            work = asyncio.ensure_future(asyncio.to_thread(func, *args))
            try:
                return await asyncio.shield(work)
            except asyncio.CancelledError:
                # The worker thread cannot be interrupted; keep the permit until it returns.
                await asyncio.wait([work])
                raise
            except GithubException as e:
                message = e.data.get("message") if isinstance(e.data, dict) else None
                raise TransportError(remote, operation, f"{e.status} {message or e}") from e
            except requests.RequestException as e:
                raise TransportError(remote, operation, str(e)) from e

    def _repo(self, remote: RemoteRepository):
        return self._gh.get_repo(remote.full_name, lazy=True)

    # ------------------------------------------------------------------ #
    # ReviewApi                                                           #
    # ------------------------------------------------------------------ #

    async def compare(self, remote: RemoteRepository, base: str, head: str) -> list[CompareCommit]:
        return await self._call(remote, f"compare {base}...{head}", self._compare, remote, base, head)

    async def associated_pull_requests(self, remote: RemoteRepository, sha: str) -> list[PullRequestRef]:
        return await self._call(
            remote, f"get associated prs of {sha}", self._associated_pull_requests, remote, sha
        )

    async def pull_request_commits(self, remote: RemoteRepository, number: int) -> list[str]:
        return await self._call(remote, f"get commits of #{number}", self._pull_request_commits, remote, number)

    async def pull_request_reviews(self, remote: RemoteRepository, number: int) -> list[ReviewRecord]:
        return await self._call(remote, f"get reviews of #{number}", self._pull_request_reviews, remote, number)

    # ------------------------------------------------------------------ #
    # Blocking PyGithub calls, run in a worker thread                     #
    # ------------------------------------------------------------------ #

    def _compare(self, remote: RemoteRepository, base: str, head: str) -> list[CompareCommit]:
        comparison = self._repo(remote).compare(base, head)
        return [
            CompareCommit(sha=c.sha, headline=headline_of(c.commit.message), link=c.html_url)
            for c in comparison.commits
        ]

    def _associated_pull_requests(self, remote: RemoteRepository, sha: str) -> list[PullRequestRef]:
        pulls = list(self._repo(remote).get_commit(sha).get_pulls())
        if len(pulls) > self._per_page:
            raise InvariantError(f"found more than one page of associated prs for {remote.full_name}@{sha}")

        prs = []
        for pull in pulls:
            if not pull.html_url:
                raise DataError(f"pr #{pull.number} in {remote.full_name} has no html link")
            prs.append(PullRequestRef(number=pull.number, url=pull.html_url))
        return prs

    def _pull_request_commits(self, remote: RemoteRepository, number: int) -> list[str]:
        pull = self._repo(remote).get_pull(number)
        if pull.commits > MAX_PR_COMMITS:
            raise InvariantError(
                f"PR {remote.full_name}/pull/{number} has more than {MAX_PR_COMMITS} commits "
                "which requires a different api endpoint"
            )
        shas = [c.sha for c in pull.get_commits()]
        if len(shas) > MAX_PR_COMMITS:
            raise InvariantError(f"PR {remote.full_name}/pull/{number} listed more than {MAX_PR_COMMITS} commits")
        return shas

    def _pull_request_reviews(self, remote: RemoteRepository, number: int) -> list[ReviewRecord]:
        reviews = []
        for review in self._repo(remote).get_pull(number).get_reviews():
            where = f"{remote.full_name}/pull/{number} review {review.id}"
            if review.commit_id is None:
                raise DataError(f"{where} has no commit_id")
            if review.submitted_at is None:
                raise DataError(f"{where} has no submitted_at")
            if review.user is None:
                raise DataError(f"{where} has no user")
            reviews.append(
                ReviewRecord(
                    approved=review.state == "APPROVED",
                    commit_id=review.commit_id,
                    submitted_at=review.submitted_at,
                    user=review.user.login,
                )
            )
        reviews.sort(key=lambda r: r.submitted_at)
        return reviews
