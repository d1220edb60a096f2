"""Session artifact commands: changes, hotspots, release notes, test plan, export."""

from __future__ import annotations

import json

import click
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

from release_agent_cli.commands.backend import fail_on_error, run_backend
from release_agent_core.artifacts.release_notes import ReleaseNotesEditor
from release_agent_core.artifacts.test_plan import PRIORITY_ORDER, TestPlanEditor, infer_risk
from release_agent_core.artifacts.view import changes_view, hotspots_view

console = Console()

_RISK_STYLE = {"High": "red", "Medium": "yellow", "Low": "green"}


def _risk(value: str) -> str:
    style = _RISK_STYLE.get(value, "white")
    return f"[{style}]{value}[/{style}]"


def _load_view(ctx, factory, session_id: str):
    async def _load(api):
        view = factory(api, session_id)
        await view.refresh()
        return view

    view = run_backend(ctx, _load)
    fail_on_error(view.error)
    return view


# --------------------------------------------------------------------------- #
# Read-only artifacts                                                          #
# --------------------------------------------------------------------------- #


@click.command("changes")
@click.argument("session_id")
@click.pass_context
def changes_cmd(ctx, session_id: str):
    """Pull requests and commits in the session's range."""
    view = _load_view(ctx, changes_view, session_id)
    items = view.items()
    if not items:
        console.print("[yellow]No changes found.[/yellow]")
        return

    table = Table(title=f"Changes — {session_id}", show_header=True, header_style="bold cyan")
    table.add_column("PR", style="bold", width=7)
    table.add_column("Title", max_width=48)
    table.add_column("Author")
    table.add_column("Area")
    table.add_column("Type")
    table.add_column("Risk")
    table.add_column("+/-", justify="right")
    for item in items:
        table.add_row(
            f"#{item.get('number', '')}",
            item.get("title", ""),
            item.get("author", ""),
            item.get("area", ""),
            item.get("type", ""),
            _risk(item.get("risk", "")),
            f"+{item.get('additions', 0)}/-{item.get('deletions', 0)}",
        )
    console.print(table)


@click.command("hotspots")
@click.argument("session_id")
@click.pass_context
def hotspots_cmd(ctx, session_id: str):
    """Areas ranked by regression risk."""
    view = _load_view(ctx, hotspots_view, session_id)
    items = sorted(view.items(), key=lambda h: h.get("rank", 0))
    if not items:
        console.print("[yellow]No hotspots found.[/yellow]")
        return

    table = Table(title=f"Hotspots — {session_id}", show_header=True, header_style="bold cyan")
    table.add_column("#", justify="right", width=4)
    table.add_column("Area", style="bold")
    table.add_column("Score", justify="right")
    table.add_column("Drivers", max_width=50)
    table.add_column("PRs")
    for h in items:
        table.add_row(
            str(h.get("rank", "")),
            h.get("area", ""),
            f"{h.get('score', 0)}",
            "; ".join(h.get("drivers") or []),
            ", ".join(f"#{n}" for n in h.get("contributingPrs") or []),
        )
    console.print(table)


# --------------------------------------------------------------------------- #
# Release notes                                                                #
# --------------------------------------------------------------------------- #


def _notes_editor(ctx, api, session_id: str) -> ReleaseNotesEditor:
    config = ctx.obj["config"]
    return ReleaseNotesEditor(
        api,
        session_id,
        poll_interval=config.get("regenerate_poll_interval", 2.0),
        timeout=config.get("regenerate_timeout", 60.0),
    )


def _run_notes(ctx, session_id: str, action, refresh: bool = False) -> ReleaseNotesEditor:
    """Run one editor action and fail with its error, if any."""

    async def _run(api):
        editor = _notes_editor(ctx, api, session_id)
        try:
            if refresh and not await editor.refresh():
                return editor
            await action(editor)
        finally:
            await editor.close()
        return editor

    editor = run_backend(ctx, _run)
    fail_on_error(editor.error)
    return editor


@click.group("notes")
def notes_group():
    """View and edit a session's release notes."""


@notes_group.command("show")
@click.argument("session_id")
@click.option("--area", default=None, help="Only this area.")
@click.option("--markdown", "as_markdown", is_flag=True, default=False, help="Render the markdown preview.")
@click.option("--raw", is_flag=True, default=False, help="With --markdown, print the markdown source.")
@click.pass_context
def notes_show(ctx, session_id: str, area: str | None, as_markdown: bool, raw: bool):
    """Show release notes grouped by area."""

    async def _noop(editor):
        return None

    editor = _run_notes(ctx, session_id, _noop, refresh=True)

    if as_markdown:
        text = editor.markdown(area)
        if raw:
            click.echo(text)
        else:
            console.print(Markdown(text))
        return

    table = Table(title=f"Release Notes — {session_id}", show_header=True, header_style="bold cyan")
    table.add_column("ID", style="bold")
    table.add_column("Area")
    table.add_column("Text", max_width=60)
    table.add_column("State")
    for section in editor.sections or []:
        if area is not None and section.get("area") != area:
            continue
        for item in section.get("items", []):
            if item.get("status") == "regenerating":
                state = "[yellow]regenerating[/yellow]"
            elif item.get("excluded"):
                state = "[dim]excluded[/dim]"
            else:
                state = ""
            table.add_row(item.get("id", ""), section.get("area", ""), item.get("text", ""), state)
    console.print(table)
    console.print(f"{editor.visible_count(area)} visible item(s).")


@notes_group.command("edit")
@click.argument("session_id")
@click.argument("item_id")
@click.argument("text")
@click.pass_context
def notes_edit(ctx, session_id: str, item_id: str, text: str):
    """Replace an item's text."""

    async def _edit(editor):
        editor.update_local_text(item_id, text)
        await editor.save_text(item_id)

    _run_notes(ctx, session_id, _edit, refresh=True)
    console.print(f"Saved {item_id}.")


@notes_group.command("exclude")
@click.argument("session_id")
@click.argument("item_id")
@click.pass_context
def notes_exclude(ctx, session_id: str, item_id: str):
    """Hide an item from the published notes."""

    async def _exclude(editor):
        await editor.exclude(item_id)

    _run_notes(ctx, session_id, _exclude)
    console.print(f"Excluded {item_id}.")


@notes_group.command("include")
@click.argument("session_id")
@click.argument("item_id")
@click.pass_context
def notes_include(ctx, session_id: str, item_id: str):
    """Bring an excluded item back."""

    async def _include(editor):
        await editor.include(item_id)

    _run_notes(ctx, session_id, _include)
    console.print(f"Included {item_id}.")


@notes_group.command("add")
@click.argument("session_id")
@click.option("--area", required=True, help="Area the item belongs to.")
@click.option("--text", required=True, help="Item text.")
@click.pass_context
def notes_add(ctx, session_id: str, area: str, text: str):
    """Add a manual item."""

    async def _add(editor):
        await editor.add_item(area, text)

    _run_notes(ctx, session_id, _add)
    console.print(f"Added item to {area}.")


@notes_group.command("regenerate")
@click.argument("session_id")
@click.argument("item_id")
@click.option("--wait/--no-wait", default=True, show_default=True, help="Wait for the new text.")
@click.pass_context
def notes_regenerate(ctx, session_id: str, item_id: str, wait: bool):
    """Ask the backend to rewrite one item."""

    async def _regenerate(editor):
        if await editor.regenerate_item(item_id) and wait:
            await editor.wait_regenerations()

    editor = _run_notes(ctx, session_id, _regenerate)
    if not wait:
        console.print(f"Regeneration of {item_id} queued.")
        return
    item = editor.get_item(item_id)
    if item_id in editor.regenerating or item is None:
        console.print(f"[yellow]{item_id} is still regenerating.[/yellow] Check again later.")
        return
    console.print(f"[green]{item_id}:[/green] {item.get('text', '')}")


# --------------------------------------------------------------------------- #
# Test plan                                                                    #
# --------------------------------------------------------------------------- #


def _run_test_plan(ctx, session_id: str, action, refresh: bool = False) -> TestPlanEditor:
    async def _run(api):
        editor = TestPlanEditor(api, session_id)
        if refresh and not await editor.refresh():
            return editor
        await action(editor)
        return editor

    editor = run_backend(ctx, _run)
    fail_on_error(editor.error)
    return editor


@click.group("testplan")
def testplan_group():
    """View and edit a session's test plan."""


@testplan_group.command("show")
@click.argument("session_id")
@click.option("--markdown", "as_markdown", is_flag=True, default=False, help="Print the markdown export.")
@click.pass_context
def testplan_show(ctx, session_id: str, as_markdown: bool):
    """Show test cases grouped by area."""

    async def _noop(editor):
        return None

    editor = _run_test_plan(ctx, session_id, _noop, refresh=True)
    if as_markdown:
        click.echo(editor.markdown())
        return

    table = Table(title=f"Test Plan — {session_id}", show_header=True, header_style="bold cyan")
    table.add_column("", width=3)
    table.add_column("ID", style="bold")
    table.add_column("Area")
    table.add_column("Priority")
    table.add_column("Risk")
    table.add_column("Case", max_width=60)
    for section in editor.sections or []:
        for case in section.get("cases", []):
            priority = case.get("priority", "")
            table.add_row(
                "[green]✓[/green]" if case.get("checked") else "",
                case.get("id", ""),
                section.get("area", ""),
                priority,
                _risk(case.get("risk") or infer_risk(priority)),
                case.get("title") or case.get("text", ""),
            )
    console.print(table)

    totals = editor.totals()
    console.print(
        f"{totals['checked']}/{totals['total']} checked, {totals['must']} must, {totals['high_risk']} high risk."
    )


def _case_command(name: str, method: str, verb: str, help_text: str):
    @testplan_group.command(name, help=help_text)
    @click.argument("session_id")
    @click.argument("case_id")
    @click.pass_context
    def _cmd(ctx, session_id: str, case_id: str):
        async def _act(editor):
            await getattr(editor, method)(case_id)

        _run_test_plan(ctx, session_id, _act)
        console.print(f"{verb} {case_id}.")

    return _cmd


testplan_check = _case_command("check", "check", "Checked", "Mark a case as done.")
testplan_uncheck = _case_command("uncheck", "uncheck", "Unchecked", "Mark a case as not done.")
testplan_delete = _case_command("delete", "delete_case", "Deleted", "Remove a case.")


@testplan_group.command("priority")
@click.argument("session_id")
@click.argument("case_id")
@click.argument("priority", required=False, type=click.Choice(PRIORITY_ORDER))
@click.pass_context
def testplan_priority(ctx, session_id: str, case_id: str, priority: str | None):
    """Set a case's priority, or cycle Must → Recommended → Exploratory when omitted."""

    async def _set(editor):
        if priority is None:
            await editor.cycle_priority(case_id)
        else:
            await editor.change_priority(case_id, priority)

    editor = _run_test_plan(ctx, session_id, _set, refresh=priority is None)
    case = editor.get_case(case_id)
    console.print(f"{case_id} is now {case.get('priority') if case else priority}.")


@testplan_group.command("add")
@click.argument("session_id")
@click.option("--area", required=True, help="Area the case belongs to.")
@click.option("--text", required=True, help="Case text.")
@click.option("--priority", type=click.Choice(PRIORITY_ORDER), default=None, help="Initial priority.")
@click.pass_context
def testplan_add(ctx, session_id: str, area: str, text: str, priority: str | None):
    """Add a manual test case."""

    async def _add(editor):
        await editor.add_case(area, text, priority)

    _run_test_plan(ctx, session_id, _add)
    console.print(f"Added case to {area}.")


@testplan_group.command("queue-checklists")
@click.argument("session_id")
@click.pass_context
def testplan_queue_checklists(ctx, session_id: str):
    """Queue per-PR checklist generation."""
    result: dict = {}

    async def _queue(editor):
        result.update(await editor.queue_checklists() or {})

    _run_test_plan(ctx, session_id, _queue)
    queued = result.get("queued")
    console.print("Checklist generation queued." if queued is None else f"Queued checklists for {queued} PR(s).")


# --------------------------------------------------------------------------- #
# Export                                                                       #
# --------------------------------------------------------------------------- #


@click.command("export")
@click.argument("session_id")
@click.option(
    "--target",
    "targets",
    multiple=True,
    required=True,
    type=click.Choice(["markdown", "json", "github"]),
    help="Export target (repeatable).",
)
@click.option("--github-repo", default=None, help="Repository for the github target.")
@click.option("--mode", type=click.Choice(["comment", "pullRequest"]), default=None, help="GitHub export mode.")
@click.option("--number", type=int, default=None, help="Issue or PR number to comment on.")
@click.option("--title", default=None, help="Title for a created pull request.")
@click.pass_context
def export_cmd(ctx, session_id: str, targets, github_repo, mode, number, title):
    """Publish a session's artifacts."""
    github = None
    if "github" in targets:
        github = {
            "repoFullName": github_repo or ctx.obj["config"].get("repo"),
            "mode": mode or "comment",
            "issueOrPrNumber": number,
            "title": title,
        }

    async def _export(api):
        return await api.create_export(session_id, list(targets), github)

    result = run_backend(ctx, _export)
    console.print(f"[green]Export {result.get('exportId', '')} created.[/green]")
    console.print_json(json.dumps(result.get("results") or {}))
