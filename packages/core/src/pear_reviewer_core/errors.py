"""Error taxonomy for the approval audit.

Nothing in the core recovers from these. Each one aborts the analysis of the
repository it was raised for and reaches the CLI with enough context
(repository, operation) to tell the user what was being attempted.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pear_reviewer_core.remote import RemoteRepository


class PearReviewerError(Exception):
    """Base class for every error raised by pear_reviewer_core."""


class ParseError(PearReviewerError):
    """A remote URL, manifest, or provider response has an unexpected shape."""


class AuthError(PearReviewerError):
    """No credential is available for a provider host."""

    def __init__(self, host: str, env_name: str):
        super().__init__(f"missing {env_name} env (needed for {host})")
        self.host = host
        self.env_name = env_name


class TransportError(PearReviewerError):
    """An API call failed. Always annotated with the repository and operation."""

    def __init__(self, remote: RemoteRepository, operation: str, detail: str):
        super().__init__(f"failed to {operation} for {remote.web_url}: {detail}")
        self.remote = remote
        self.operation = operation
        self.detail = detail


class DataError(PearReviewerError):
    """A response lacks a field the approval logic depends on."""


class InvariantError(PearReviewerError):
    """A pagination or size limit was exceeded; needs an API strategy we don't implement."""


class GitError(PearReviewerError):
    """A git command against the local workspace failed."""
