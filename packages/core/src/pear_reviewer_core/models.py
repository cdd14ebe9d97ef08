"""Data model for the approval audit.

Kept free of PyGithub types so the changeset logic can run against recorded
fixtures as easily as against the live API.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from pear_reviewer_core.remote import RemoteRepository


def headline_of(message: str | None) -> str:
    """Return the first line of a commit message."""
    lines = (message or "").splitlines()
    return lines[0] if lines else ""


@dataclass(frozen=True)
class CommitMetadata:
    headline: str
    link: str


@dataclass(frozen=True)
class CompareCommit:
    """A commit as reported by the compare endpoint."""

    sha: str
    headline: str
    link: str

    @property
    def metadata(self) -> CommitMetadata:
        return CommitMetadata(headline=self.headline, link=self.link)


@dataclass(frozen=True)
class PullRequestRef:
    number: int
    url: str


@dataclass(frozen=True)
class ReviewRecord:
    """A single review on a pull request.

    Fields are optional because GitHub occasionally returns reviews without a
    user (deleted accounts) or a submission time (pending reviews). The
    approval reducer refuses to guess in those cases.
    """

    approved: bool
    commit_id: str | None
    submitted_at: datetime | None
    user: str | None


@dataclass
class Changeset:
    """A logical review unit: one pull request, or one commit without a PR."""

    commits: list[CommitMetadata] = field(default_factory=list)
    pr_link: str | None = None
    approvals: set[str] = field(default_factory=set)


@dataclass
class RepoChangeset:
    """Everything that changed in one repository between two commits."""

    display_name: str
    remote: RemoteRepository
    base_commit: str
    head_commit: str
    changesets: list[Changeset] = field(default_factory=list)
