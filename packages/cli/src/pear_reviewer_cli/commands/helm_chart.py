"""helm-chart command — audit every image source bumped in a helm-charts workspace."""

from __future__ import annotations

import click
from rich.console import Console

from pear_reviewer_cli.analysis import TOKEN_HELP, require_base, run_and_report
from pear_reviewer_core.errors import PearReviewerError
from pear_reviewer_core.manifest import find_repo_changesets

console = Console(stderr=True)


@click.command("helm-chart", epilog=TOKEN_HELP)
@click.argument("workspace", envvar="GITHUB_WORKSPACE", default=".")
@click.option("--output", "-o", default=None, help="Write the markdown report to this file instead of stdout.")
@click.pass_context
def helm_chart_cmd(ctx, workspace: str, output: str | None):
    """Find image sources in changed images.yaml files and analyze each of them.

    WORKSPACE is the local checkout of the helm-charts repository
    (defaults to GITHUB_WORKSPACE, then the current directory).
    """
    base = require_base(ctx)
    config = ctx.obj["config"]

    try:
        repos = find_repo_changesets(workspace, base, ctx.obj["head"], suffix=config["manifest_suffix"])
    except PearReviewerError as e:
        raise click.ClickException(f"while finding {config['manifest_suffix']} files: {e}")

    if not repos:
        console.print(f"[yellow]No image sources changed in {config['manifest_suffix']} files.[/yellow]")
        return

    console.print(f"Found {len(repos)} changed image source(s).")
    run_and_report(repos, config, output)
