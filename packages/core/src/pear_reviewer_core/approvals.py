"""Decide who approved the commit that was actually merged."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from pear_reviewer_core.errors import DataError
from pear_reviewer_core.models import ReviewRecord

logger = logging.getLogger(__name__)


def resolve_approvals(reviews: Sequence[ReviewRecord], head_sha: str) -> frozenset[str]:
    """Return the users whose most recent review approves ``head_sha``.

    ``reviews`` must be sorted ascending by submission time. Only each user's
    latest review counts: a later APPROVE supersedes an earlier
    REQUEST_CHANGES and the other way round. Approvals given on an older
    commit of the PR do not count, so a PR that gained commits after being
    approved is treated as not re-approved.
    """
    for review in reviews:
        if review.user is None:
            raise DataError("review has no user")
        if review.submitted_at is None:
            raise DataError(f"review by {review.user} has no submitted_at")
        if review.commit_id is None:
            raise DataError(f"review by {review.user} has no commit_id")

    resolved: set[str] = set()
    approved: set[str] = set()

    for review in reversed(reviews):
        if review.user in resolved:
            continue
        resolved.add(review.user)

        if review.commit_id != head_sha:
            logger.debug("Ignoring review by %s on superseded commit %s", review.user, review.commit_id)
            continue
        if not review.approved:
            continue
        approved.add(review.user)

    return frozenset(approved)
