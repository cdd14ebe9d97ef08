"""Recorded-fixture implementation of ReviewApi.

Responses are looked up by commit sha or pull request number. A lookup that
has no recorded answer raises DataError, so a test fails loudly instead of
silently analysing an empty repository.

The client also counts how many calls are in flight at once, which lets
tests check the per-host concurrency ceiling without a network.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path

import yaml

from pear_reviewer_core.errors import DataError, ParseError
from pear_reviewer_core.gh.client import MAX_CONCURRENT_REQUESTS
from pear_reviewer_core.models import CompareCommit, PullRequestRef, ReviewRecord
from pear_reviewer_core.remote import RemoteRepository


class FixtureClient:
    def __init__(
        self,
        commits: list[CompareCommit] | None = None,
        associated_prs: dict[str, list[PullRequestRef]] | None = None,
        pr_commits: dict[int, list[str]] | None = None,
        pr_reviews: dict[int, list[ReviewRecord]] | None = None,
        delay: float = 0.0,
    ):
        self.commits = list(commits or [])
        self.associated_prs = dict(associated_prs or {})
        self.pr_commits = dict(pr_commits or {})
        self.pr_reviews = dict(pr_reviews or {})
        self.delay = delay

        self.calls: list[tuple[str, object]] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._semaphore = asyncio.Semaphore(MAX_CONCURRENT_REQUESTS)

    @classmethod
    def from_yaml(cls, path: str | Path, delay: float = 0.0) -> FixtureClient:
        """Load a recorded fixture file.

        Expected layout::

            compare:
              - {sha: ..., headline: ..., link: ...}
            associated_pull_requests:
              <sha>: [{number: 1, url: ...}]
            pull_request_commits:
              1: [<sha>, ...]
            pull_request_reviews:
              1: [{approved: true, commit_id: ..., submitted_at: ..., user: ...}]
        """
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ParseError(f"fixture {path} is not a mapping")

        try:
            return cls(
                commits=[CompareCommit(**c) for c in data.get("compare") or []],
                associated_prs={
                    str(sha): [PullRequestRef(**pr) for pr in prs or []]
                    for sha, prs in (data.get("associated_pull_requests") or {}).items()
                },
                pr_commits={
                    int(number): [str(sha) for sha in shas or []]
                    for number, shas in (data.get("pull_request_commits") or {}).items()
                },
                pr_reviews={
                    int(number): [ReviewRecord(**r) for r in reviews or []]
                    for number, reviews in (data.get("pull_request_reviews") or {}).items()
                },
                delay=delay,
            )
        except TypeError as e:
            raise ParseError(f"malformed fixture {path}: {e}") from e

    @asynccontextmanager
    async def _request(self, operation: str, key: object):
        async with self._semaphore:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
            self.calls.append((operation, key))
            try:
                if self.delay:
                    await asyncio.sleep(self.delay)
                yield
            finally:
                self.in_flight -= 1

    @staticmethod
    def _lookup(table: dict, key: object, what: str):
        try:
            return table[key]
        except KeyError:
            raise DataError(f"FixtureClient {what} contains no {key}") from None

    async def compare(self, remote: RemoteRepository, base: str, head: str) -> list[CompareCommit]:
        async with self._request("compare", (base, head)):
            return list(self.commits)

    async def associated_pull_requests(self, remote: RemoteRepository, sha: str) -> list[PullRequestRef]:
        async with self._request("associated_pull_requests", sha):
            return list(self._lookup(self.associated_prs, sha, "associated_prs"))

    async def pull_request_commits(self, remote: RemoteRepository, number: int) -> list[str]:
        async with self._request("pull_request_commits", number):
            return list(self._lookup(self.pr_commits, number, "pr_commits"))

    async def pull_request_reviews(self, remote: RemoteRepository, number: int) -> list[ReviewRecord]:
        async with self._request("pull_request_reviews", number):
            reviews = self._lookup(self.pr_reviews, number, "pr_reviews")
            for i, review in enumerate(reviews):
                for name in ("commit_id", "submitted_at", "user"):
                    if getattr(review, name) is None:
                        raise DataError(f"FixtureClient pr_reviews[{number}][{i}] has no {name}")
            return sorted(reviews, key=lambda r: r.submitted_at)
