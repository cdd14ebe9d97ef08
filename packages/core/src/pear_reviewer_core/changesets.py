"""Turn a commit range into review units and resolve their approvals.

analyze() runs one task per commit. Each task looks up the commit's pull
requests and, per PR, its reviews and head commit. Results are only merged
into the RepoChangeset once every task has finished, and they are merged in
the order the compare endpoint listed the commits (ancestor first), so the
output does not depend on which request happened to return first.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Iterable, Sequence
from typing import TYPE_CHECKING, TypeVar

from pear_reviewer_core.approvals import resolve_approvals
from pear_reviewer_core.gh.client import ReviewApi, pull_request_head_sha
from pear_reviewer_core.models import Changeset, CompareCommit, PullRequestRef, RepoChangeset
from pear_reviewer_core.remote import RemoteRepository

if TYPE_CHECKING:
    from pear_reviewer_core.gh.gateway import ClientGateway

logger = logging.getLogger(__name__)

_T = TypeVar("_T")


async def _gather_fail_fast(awaitables: Iterable[Awaitable[_T]]) -> list[_T]:
    """Await everything concurrently; on the first error cancel the rest and re-raise."""
    tasks = [asyncio.ensure_future(aw) for aw in awaitables]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


def merge_changesets(target: list[Changeset], provisional: Iterable[Changeset]) -> list[Changeset]:
    """Fold provisional single-commit changesets into ``target``.

    Changesets with the same non-empty PR link become one unit, commits
    appended in the order given and approvals unioned. Changesets without a
    PR link are never merged.
    """
    by_link = {c.pr_link: c for c in target if c.pr_link}
    for changeset in provisional:
        existing = by_link.get(changeset.pr_link) if changeset.pr_link else None
        if existing is None:
            merged = Changeset(
                commits=list(changeset.commits),
                pr_link=changeset.pr_link,
                approvals=set(changeset.approvals),
            )
            target.append(merged)
            if merged.pr_link:
                by_link[merged.pr_link] = merged
            continue

        existing.commits.extend(changeset.commits)
        existing.approvals |= changeset.approvals
    return target


async def _changeset_for_pull_request(
    api: ReviewApi, remote: RemoteRepository, commit: CompareCommit, pr: PullRequestRef
) -> Changeset:
    reviews, head_sha = await _gather_fail_fast(
        [
            api.pull_request_reviews(remote, pr.number),
            pull_request_head_sha(api, remote, pr.number),
        ]
    )
    approvals = resolve_approvals(reviews, head_sha)
    logger.debug("%s #%d: head %s approved by %s", remote.full_name, pr.number, head_sha, sorted(approvals))
    return Changeset(commits=[commit.metadata], pr_link=pr.url, approvals=set(approvals))


async def _analyze_commit(api: ReviewApi, remote: RemoteRepository, commit: CompareCommit) -> list[Changeset]:
    prs = await api.associated_pull_requests(remote, commit.sha)
    if not prs:
        logger.debug("%s@%s has no associated pull request", remote.full_name, commit.sha)
        return [Changeset(commits=[commit.metadata])]
    return await _gather_fail_fast(_changeset_for_pull_request(api, remote, commit, pr) for pr in prs)


async def analyze(repo_changeset: RepoChangeset, api: ReviewApi) -> RepoChangeset:
    """Fill ``repo_changeset.changesets`` with the review units between base and head.

    Fails fast: if any commit cannot be analysed the remaining work is
    cancelled, the error propagates and ``repo_changeset`` is left untouched.
    """
    remote = repo_changeset.remote
    commits = await api.compare(remote, repo_changeset.base_commit, repo_changeset.head_commit)
    logger.info(
        "%s: %d commit(s) between %s and %s",
        remote.full_name,
        len(commits),
        repo_changeset.base_commit,
        repo_changeset.head_commit,
    )

    per_commit = await _gather_fail_fast(_analyze_commit(api, remote, commit) for commit in commits)

    merge_changesets(repo_changeset.changesets, (c for results in per_commit for c in results))
    return repo_changeset


async def analyze_all(
    repo_changesets: Sequence[RepoChangeset], gateway: ClientGateway
) -> list[RepoChangeset | BaseException]:
    """Analyse several repositories concurrently.

    Repositories are independent: one failing does not cancel the others. The
    result has one entry per input, either the analysed RepoChangeset or the
    exception that aborted it.
    """

    async def _one(repo_changeset: RepoChangeset) -> RepoChangeset:
        api = gateway.client_for(repo_changeset.remote.host)
        return await analyze(repo_changeset, api)

    return list(await asyncio.gather(*(_one(rc) for rc in repo_changesets), return_exceptions=True))
