"""sessions and dashboard commands."""

from __future__ import annotations

import asyncio
from collections import Counter

import click
from rich.console import Console
from rich.table import Table

from release_agent_cli.commands.backend import run_backend
from release_agent_core.config import get_api_base_url
from release_agent_core.models import SESSION_GENERATING
from release_agent_core.sessions import SessionStore

console = Console()

_STATUS_STYLE = {
    "draft": "white",
    "generating": "yellow",
    "ready": "green",
    "exported": "cyan",
}


def _fmt_time(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else ""


def _sessions_table(sessions) -> Table:
    table = Table(title="Release Sessions", show_header=True, header_style="bold cyan")
    table.add_column("ID", style="bold")
    table.add_column("Name", max_width=30)
    table.add_column("Repo")
    table.add_column("Range")
    table.add_column("Status")
    table.add_column("Jobs", justify="right")
    table.add_column("Updated")

    for s in sessions:
        style = _STATUS_STYLE.get(s.status, "white")
        done = sum(1 for j in s.jobs if j.status == "completed")
        table.add_row(
            s.id,
            s.name,
            s.repo_full_name,
            f"{s.base_ref}...{s.head_ref}",
            f"[{style}]{s.status}[/{style}]",
            f"{done}/{len(s.jobs)}",
            _fmt_time(s.updated_at),
        )
    return table


def _print_sessions(sessions) -> None:
    if not sessions:
        console.print("[yellow]No sessions yet.[/yellow]")
        return
    console.print(_sessions_table(sessions))


@click.group("sessions")
def sessions_group():
    """List, create and delete release sessions."""


@sessions_group.command("list")
@click.option("--watch", is_flag=True, default=False, help="Keep polling until no session is generating.")
@click.pass_context
def sessions_list(ctx, watch: bool):
    """Show every session with its job progress."""
    poll_interval = ctx.obj["config"].get("poll_interval", 5.0)

    async def _list(api):
        store = SessionStore(api, poll_interval=poll_interval)
        if not watch:
            await store.refresh()
            return store

        async with store:
            _print_sessions(store.sessions)
            store.subscribe(lambda s: None if s.is_loading else _print_sessions(s.sessions))
            while store.error is None and any(s.status == SESSION_GENERATING for s in store.sessions):
                await asyncio.sleep(poll_interval)
        return None

    store = run_backend(ctx, _list)
    if store is None:
        return
    if store.error:
        raise click.ClickException(store.error)
    _print_sessions(store.sessions)


@sessions_group.command("create")
@click.option("--name", required=True, help="Session name, e.g. 'v0.90 release'.")
@click.option("--repo", default=None, help="Repository (owner/name). Defaults to the configured repo.")
@click.option("--base", "base_ref", required=True, help="Base ref: tag, branch or commit.")
@click.option("--head", "head_ref", required=True, help="Head ref: tag, branch or commit.")
@click.pass_context
def sessions_create(ctx, name: str, repo: str | None, base_ref: str, head_ref: str):
    """Create a session for the changes between two refs.

    Without a configured backend the session is only built locally.
    """
    config = ctx.obj["config"]
    repo = repo or config.get("repo")

    if not get_api_base_url(config):
        session = asyncio.run(SessionStore(None).create_session(name, repo, base_ref, head_ref))
        console.print(
            f"[green]Created session[/green] [bold]{session.id}[/bold] ({session.status}) "
            "[yellow](local only)[/yellow]"
        )
        return

    async def _create(api):
        return await SessionStore(api).create_session(name, repo, base_ref, head_ref)

    session = run_backend(ctx, _create)
    console.print(f"[green]Created session[/green] [bold]{session.id}[/bold] ({session.status})")


@sessions_group.command("delete")
@click.argument("session_id")
@click.option("--yes", "-y", is_flag=True, default=False, help="Skip the confirmation prompt.")
@click.pass_context
def sessions_delete(ctx, session_id: str, yes: bool):
    """Delete a session."""
    if not yes:
        click.confirm(f"Delete session {session_id}?", abort=True)

    async def _delete(api):
        await SessionStore(api).delete_session(session_id)

    run_backend(ctx, _delete)
    console.print(f"Deleted session {session_id}.")


@click.command("dashboard")
@click.pass_context
def dashboard_cmd(ctx):
    """Session counts by status and every job currently running."""

    async def _load(api):
        store = SessionStore(api)
        await store.refresh()
        return store

    store = run_backend(ctx, _load)
    if store.error:
        raise click.ClickException(store.error)

    counts = Counter(s.status for s in store.sessions)
    summary = Table(title="Dashboard", show_header=True, header_style="bold cyan")
    summary.add_column("Status")
    summary.add_column("Sessions", justify="right")
    for status in ("draft", "generating", "ready", "exported"):
        summary.add_row(status, str(counts.get(status, 0)))
    console.print(summary)

    running = store.running_jobs()
    if not running:
        console.print("No jobs running.")
        return

    table = Table(title="Running Jobs", show_header=True, header_style="bold cyan")
    table.add_column("Session")
    table.add_column("Job")
    table.add_column("Progress", justify="right")
    for session, job in running:
        table.add_row(session.name or session.id, job.type, f"{job.progress}%")
    console.print(table)
