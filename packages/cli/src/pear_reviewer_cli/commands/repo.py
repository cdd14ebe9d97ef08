"""repo command — audit the commits between two refs of one remote."""

from __future__ import annotations

import click

from pear_reviewer_cli.analysis import TOKEN_HELP, require_base, run_and_report
from pear_reviewer_core.errors import ParseError
from pear_reviewer_core.models import RepoChangeset
from pear_reviewer_core.remote import parse_remote


@click.command("repo", epilog=TOKEN_HELP)
@click.argument("remote")
@click.option("--output", "-o", default=None, help="Write the markdown report to this file instead of stdout.")
@click.pass_context
def repo_cmd(ctx, remote: str, output: str | None):
    """Analyze commits in a repo and find relevant reviews.

    REMOTE is the GitHub URL of the repository, e.g.
    https://github.com/sapcc/pear-reviewer.git
    """
    base = require_base(ctx)
    try:
        parsed = parse_remote(remote)
    except ParseError as e:
        raise click.BadParameter(str(e), param_hint="REMOTE")

    repo = RepoChangeset(
        display_name=parsed.name,
        remote=parsed,
        base_commit=base,
        head_commit=ctx.obj["head"],
    )
    run_and_report([repo], ctx.obj["config"], output)
