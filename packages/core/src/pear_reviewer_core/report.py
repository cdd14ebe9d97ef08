"""Markdown report, one table per repository, for pasting into a PR comment."""

from __future__ import annotations

from collections.abc import Iterable

from pear_reviewer_core.models import Changeset, CommitMetadata, RepoChangeset

COMMENT_MARKER = "<!-- written by pear-reviewer -->"
DEFAULT_HEADLINE_WIDTH = 45

_TABLE_HEADER = (
    "| Commit link | Pull Request link | Approvals | Reviewer's verdict |\n"
    "|-------------|-------------------|-----------|--------------------|"
)


def _shorten(headline: str, width: int) -> str:
    if len(headline) > width:
        return headline[:width] + "…"
    return headline


def _commit_links(commits: Iterable[CommitMetadata], width: int) -> str:
    return " ,<br>".join(f"[{_shorten(c.headline, width)}]({c.link})" for c in commits)


def format_pr_link(link: str | None) -> str:
    """Render ``https://github.com/sapcc/tenso/pull/187`` as ``[tenso #187](...)``."""
    if not link:
        return ""
    parts = link.rstrip("/").split("/")
    if len(parts) == 7 and parts[5] == "pull":
        return f"[{parts[4]} #{parts[6]}]({link})"
    return link


def _format_approvals(changeset: Changeset) -> str:
    return ", ".join(sorted(changeset.approvals)) or "None"


def render_repo(repo: RepoChangeset, headline_width: int = DEFAULT_HEADLINE_WIDTH) -> str:
    lines = [
        f"Name {repo.display_name} from {repo.remote.original_url} "
        f"moved from {repo.base_commit} to {repo.head_commit}",
        "",
        _TABLE_HEADER,
    ]
    for changeset in repo.changesets:
        lines.append(
            f"| {_commit_links(changeset.commits, headline_width)} "
            f"| {format_pr_link(changeset.pr_link)} "
            f"| {_format_approvals(changeset)} "
            "| <enter your decision> |"
        )
    return "\n".join(lines)


def render_markdown(repos: Iterable[RepoChangeset], headline_width: int = DEFAULT_HEADLINE_WIDTH) -> str:
    sections = [COMMENT_MARKER]
    sections.extend(render_repo(repo, headline_width) for repo in repos)
    return "\n\n".join(sections) + "\n"
