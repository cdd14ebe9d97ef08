"""Shared tail of every command: analyse, then print or write the report."""

from __future__ import annotations

import asyncio
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape

from pear_reviewer_core.changesets import analyze_all
from pear_reviewer_core.errors import AuthError
from pear_reviewer_core.gh.gateway import ClientGateway
from pear_reviewer_core.models import RepoChangeset
from pear_reviewer_core.report import DEFAULT_HEADLINE_WIDTH, render_markdown

console = Console(stderr=True)

TOKEN_HELP = """\b
Environment variables:
  GITHUB_TOKEN               token for github.com
  GITHUB_<HOST>_TOKEN        token for a GitHub Enterprise host,
                             e.g. GITHUB_EXAMPLE_COM_TOKEN for github.example.com
"""


def require_base(ctx: click.Context) -> str:
    base = ctx.obj.get("base") if ctx.obj else None
    if not base:
        raise click.UsageError("No base ref given. Pass --base or set GITHUB_BASE_REF.")
    return base


def run_and_report(repo_changesets: list[RepoChangeset], config: dict, output: str | None) -> None:
    """Analyse every repository and emit the report, or fail with every error collected.

    A partial report is never written: if any repository fails, the command
    exits non-zero after listing each failure.
    """
    gateway = ClientGateway()
    results = asyncio.run(analyze_all(repo_changesets, gateway))

    failures = [(rc, r) for rc, r in zip(repo_changesets, results) if isinstance(r, BaseException)]
    if failures:
        for rc, error in failures:
            console.print(
                f"[red]{escape(rc.display_name)} ({escape(rc.remote.original_url)}):[/red] {escape(_describe(error))}",
                soft_wrap=True,
            )
        if any(isinstance(e, AuthError) for _, e in failures):
            console.print("[yellow]Create a token at https://github.com/settings/tokens[/yellow]")
        raise click.ClickException(f"{len(failures)} of {len(repo_changesets)} repositories could not be analysed.")

    report = render_markdown(results, headline_width=config.get("headline_width", DEFAULT_HEADLINE_WIDTH))

    destination = output or config.get("output")
    if destination:
        Path(destination).write_text(report, encoding="utf-8")
        console.print(f"[green]Report written to {destination}[/green]")
    else:
        click.echo(report, nl=False)


def _describe(error: BaseException) -> str:
    """Render an exception together with its cause chain."""
    parts = [str(error) or type(error).__name__]
    cause = error.__cause__
    while cause is not None:
        parts.append(f"caused by: {cause}")
        cause = cause.__cause__
    return "\n  ".join(parts)
