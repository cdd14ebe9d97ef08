"""CLI entry point for pear-reviewer.

Commands:
  repo        — list the changes between two refs of one remote and who approved them
  helm-chart  — do the same for every image source whose pinned commit moved
                in a helm-charts workspace
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from pear_reviewer_cli.analysis import TOKEN_HELP
from pear_reviewer_cli.commands.helm_chart import helm_chart_cmd
from pear_reviewer_cli.commands.repo import repo_cmd


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@click.group(epilog=TOKEN_HELP)
@click.version_option(
    version=importlib.metadata.version("pear-reviewer"),
    prog_name="pear-reviewer",
)
@click.option(
    "--base",
    envvar="GITHUB_BASE_REF",
    default=None,
    help="The git base ref to compare against.",
)
@click.option(
    "--head",
    envvar="GITHUB_HEAD_REF",
    default="HEAD",
    show_default=True,
    help="The git head ref or source branch of the PR to compare against.",
)
@click.option(
    "--config",
    "config_path",
    default=".pear-reviewer.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="PEAR_REVIEWER_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Log every API call.")
@click.pass_context
def main(ctx: click.Context, base: str | None, head: str, config_path: str, verbose: bool):
    """Simplify the double approval process across repositories."""
    from pear_reviewer_core.config import load_config

    _configure_logging(verbose)

    ctx.ensure_object(dict)
    try:
        ctx.obj["config"] = load_config(config_path)
    except ValueError as e:
        raise click.UsageError(str(e))
    ctx.obj["base"] = base
    ctx.obj["head"] = head


main.add_command(repo_cmd)
main.add_command(helm_chart_cmd)
