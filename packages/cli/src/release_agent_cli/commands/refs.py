"""refs command: find tags, branches and commits to use as a session range."""

from __future__ import annotations

import asyncio

import click
from github import GithubException
from rich.console import Console
from rich.table import Table

from release_agent_cli.github_token import resolve_github_token
from release_agent_core.gh.refs import RefSearch

console = Console()


@click.command("refs")
@click.argument("repo")
@click.argument("query", required=False, default="")
@click.pass_context
def refs_cmd(ctx, repo: str, query: str):
    """List tags and branches of REPO matching QUERY, plus commits for a SHA-like QUERY.

    Talks to GitHub directly, not to the release-agent backend. GITHUB_TOKEN
    or a gh CLI login raises the rate limit.
    """
    token = resolve_github_token(ctx.obj["config"])

    async def _search():
        search = RefSearch(repo, token=token)
        try:
            await search.load()
            return await search.search(query)
        finally:
            await search.aclose()

    try:
        refs = asyncio.run(_search())
    except GithubException as e:
        raise click.ClickException(f"Could not access {repo}: {e}") from e

    if not refs:
        console.print("[yellow]No matching refs.[/yellow]")
        return

    table = Table(title=f"Refs — {repo}", show_header=True, header_style="bold cyan")
    table.add_column("Type")
    table.add_column("Ref", style="bold", max_width=60)
    table.add_column("SHA", width=8)
    for ref in refs:
        table.add_row(ref.type, ref.display_name, ref.sha[:7])
    console.print(table)
