"""issues command group: clustering, search and sync administration."""

from __future__ import annotations

import asyncio

import click
from rich.console import Console
from rich.table import Table

from release_agent_cli.commands.backend import fail_on_error, run_backend
from release_agent_core.api.release_agent import ALL
from release_agent_core.issues import IssueBrowser, IssueDetailView, SemanticSearch, load_recent_issues
from release_agent_store.prefs import IssueFilterPrefs

console = Console()

UNVERSIONED = "unversioned"

_version_option = click.option(
    "--target-version",
    default=None,
    help=f"Target version, or '{UNVERSIONED}' for issues without one.",
)
_repo_option = click.option("--repo", default=None, help="Repository (owner/name). Defaults to the configured repo.")


def _repo(ctx, repo: str | None) -> str:
    return repo or ctx.obj["config"].get("repo")


def _parse_version(value: str | None):
    """CLI value → API value: omitted is ALL, 'unversioned' is None."""
    if value is None:
        return ALL
    return None if value.lower() == UNVERSIONED else value


def _version_label(value) -> str:
    return "Unversioned" if value is None else str(value)


def _pct(value) -> str:
    return f"{float(value) * 100:.1f}%" if value is not None else ""


def _issues_table(title: str, issues: list[dict], with_similarity: bool = False) -> Table:
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("#", style="bold", width=7)
    table.add_column("Title", max_width=56)
    table.add_column("State")
    if with_similarity:
        table.add_column("Similarity", justify="right")
    table.add_column("Products", max_width=24)
    table.add_column("Updated", width=16)
    for issue in issues:
        state = issue.get("state", "")
        style = "green" if state == "open" else "magenta"
        row = [
            f"#{issue.get('issueNumber', '')}",
            issue.get("title", ""),
            f"[{style}]{state}[/{style}]",
        ]
        if with_similarity:
            row.append(_pct(issue.get("similarity")))
        row.append(", ".join(issue.get("productLabels") or []) or "-")
        row.append((issue.get("updatedAt") or "")[:16].replace("T", " "))
        table.add_row(*row)
    return table


@click.group("issues")
def issues_group():
    """Browse clustered GitHub issues."""


# --------------------------------------------------------------------------- #
# Filter cascade                                                               #
# --------------------------------------------------------------------------- #


@issues_group.command("versions")
@_repo_option
@click.pass_context
def issues_versions(ctx, repo: str | None):
    """Target versions that have indexed issues."""
    repo = _repo(ctx, repo)
    prefs = IssueFilterPrefs(ctx.obj["store"])

    async def _load(api):
        browser = IssueBrowser(api, repo, prefs)
        await browser.load_versions()
        return browser

    browser = run_backend(ctx, _load)
    table = Table(title=f"Versions — {repo}", show_header=True, header_style="bold cyan")
    table.add_column("", width=2)
    table.add_column("Version")
    table.add_column("Issues", justify="right")
    for v in browser.versions:
        marker = "*" if v.get("targetVersion") == browser.version else ""
        table.add_row(marker, _version_label(v.get("targetVersion")), str(v.get("issueCount", "")))
    console.print(table)


@issues_group.command("products")
@_repo_option
@_version_option
@click.pass_context
def issues_products(ctx, repo: str | None, target_version: str | None):
    """Product labels for a version (the remembered one by default)."""
    repo = _repo(ctx, repo)
    prefs = IssueFilterPrefs(ctx.obj["store"])

    async def _load(api):
        browser = IssueBrowser(api, repo, prefs)
        await browser.load_versions()
        if target_version is not None:
            browser.version = _parse_version(target_version)
        await browser.load_products()
        return browser

    browser = run_backend(ctx, _load)
    table = Table(
        title=f"Products — {repo} ({_version_label(browser.version)})",
        show_header=True,
        header_style="bold cyan",
    )
    table.add_column("Product")
    table.add_column("Issues", justify="right")
    for p in browser.products:
        table.add_row(p.get("productLabel", ""), str(p.get("issueCount", "")))
    console.print(table)


@issues_group.command("clusters")
@_repo_option
@_version_option
@click.option("--product", default=None, help="Product label. Defaults to the remembered one.")
@click.option("--limit", type=int, default=None, help="Maximum clusters to return.")
@click.pass_context
def issues_clusters(ctx, repo: str | None, target_version: str | None, product: str | None, limit: int | None):
    """Semantic clusters for a version and product.

    An explicit --target-version or --product is remembered for next time.
    """
    repo = _repo(ctx, repo)
    prefs = IssueFilterPrefs(ctx.obj["store"])

    async def _load(api):
        browser = IssueBrowser(api, repo, prefs, cluster_limit=limit)
        if target_version is None and product is None:
            await browser.load()
            return browser
        await browser.load_versions()
        if target_version is not None:
            await browser.select_version(_parse_version(target_version))
        else:
            await browser.load_products()
        if product is not None:
            await browser.select_product(product)
        elif target_version is None:
            await browser.load_clusters()
        return browser

    browser = run_backend(ctx, _load)
    fail_on_error(browser.error)

    clusters = browser.clusters
    if not clusters:
        console.print("[yellow]No clusters found.[/yellow]")
        return

    table = Table(
        title=f"Clusters — {browser.product} ({_version_label(browser.version)})",
        show_header=True,
        header_style="bold cyan",
    )
    table.add_column("Cluster", style="bold")
    table.add_column("Representative", max_width=56)
    table.add_column("Size", justify="right")
    table.add_column("Popularity", justify="right")
    for c in clusters:
        table.add_row(
            str(c.get("clusterId", "")),
            f"#{c.get('representativeIssueNumber', '')} {c.get('representativeTitle', '')}",
            str(c.get("size", "")),
            str(c.get("popularity", "")),
        )
    console.print(table)


@issues_group.command("cluster")
@click.argument("cluster_id")
@_repo_option
@click.pass_context
def issues_cluster(ctx, cluster_id: str, repo: str | None):
    """Issues in one cluster."""
    repo = _repo(ctx, repo)

    async def _load(api):
        return await api.get_issue_cluster(repo, cluster_id)

    res = run_backend(ctx, _load)
    console.print(_issues_table(f"Cluster {cluster_id}", res.get("issues") or [], with_similarity=True))


@issues_group.command("top")
@_repo_option
@_version_option
@click.option("--product", default=None, help="Product label.")
@click.option("--limit", type=int, default=20, show_default=True, help="Maximum issues to return.")
@click.pass_context
def issues_top(ctx, repo: str | None, target_version: str | None, product: str | None, limit: int):
    """Issues with the most reactions."""
    repo = _repo(ctx, repo)

    async def _load(api):
        browser = IssueBrowser(api, repo)
        browser.version = _parse_version(target_version)
        browser.product = product
        await browser.load_top_issues(limit)
        return browser

    browser = run_backend(ctx, _load)
    fail_on_error(browser.error)

    table = Table(title=f"Top issues — {repo}", show_header=True, header_style="bold cyan")
    table.add_column("#", style="bold", width=7)
    table.add_column("Title", max_width=56)
    table.add_column("Reactions", justify="right")
    table.add_column("State")
    for issue in browser.top_issues:
        table.add_row(
            f"#{issue.get('issueNumber', '')}",
            issue.get("title", ""),
            str(issue.get("reactionsCount", "")),
            issue.get("state", ""),
        )
    console.print(table)


# --------------------------------------------------------------------------- #
# Lists and search                                                             #
# --------------------------------------------------------------------------- #


@issues_group.command("recent")
@_repo_option
@_version_option
@click.option("--product", "products", multiple=True, help="Product label (repeatable).")
@click.option("--state", type=click.Choice(["all", "open", "closed"]), default="all", show_default=True)
@click.option("--cluster", "cluster_id", default=None, help="Only issues in this cluster.")
@click.option("--query", "q", default=None, help="Text filter.")
@click.option("--page", type=int, default=0, show_default=True, help="Zero-based page number.")
@click.pass_context
def issues_recent(ctx, repo, target_version, products, state, cluster_id, q, page):
    """Recently updated issues, one page at a time."""
    repo = _repo(ctx, repo)

    async def _load(api):
        return await load_recent_issues(
            api,
            repo,
            page=page,
            target_version=_parse_version(target_version),
            product_labels=list(products) or None,
            state=None if state == "all" else state,
            cluster_id=cluster_id,
            q=q,
        )

    result = run_backend(ctx, _load)
    if not result.issues:
        console.print("[yellow]No issues found.[/yellow]")
        return
    console.print(_issues_table(f"Recent issues — {repo} (page {result.page + 1})", result.issues))
    if result.has_more:
        console.print(f"More results: --page {result.page + 1}")


@issues_group.command("detail")
@click.argument("issue_number", type=int)
@_repo_option
@click.pass_context
def issues_detail(ctx, issue_number: int, repo: str | None):
    """One issue with its nearest neighbours."""
    repo = _repo(ctx, repo)

    async def _load(api):
        view = IssueDetailView(api, repo, issue_number)
        await view.load()
        return view

    view = run_backend(ctx, _load)
    if view.not_found:
        console.print(f"[yellow]{view.message}[/yellow]")
        return
    fail_on_error(view.error)

    issue = view.detail.get("issue") or {}
    console.print(f"[bold]#{issue.get('issueNumber', issue_number)}[/bold] {issue.get('title', '')}")
    console.print(
        f"{issue.get('state', '')} | Version: {_version_label(issue.get('targetVersion'))} | "
        f"Comments: {issue.get('commentsCount', 0)} | Reactions: {issue.get('reactionsCount', 0)}"
    )
    labels = issue.get("productLabels") or []
    console.print(f"Product labels: {', '.join(labels) if labels else 'none'}")
    body = (issue.get("body") or "").strip() or (issue.get("bodySnip") or "").strip()
    console.print(body or "[dim]No issue body content available.[/dim]")

    similar = view.detail.get("similarIssues") or []
    if not similar:
        console.print("No similar issues found for this issue.")
        return
    console.print(_issues_table("Similar issues", similar, with_similarity=True))


@issues_group.command("similar")
@click.argument("issue_number", type=int)
@_repo_option
@click.option("--product", default=None, help="Restrict to a product label.")
@click.option("--min-similarity", type=float, default=0.85, show_default=True)
@click.option("--limit", type=int, default=10, show_default=True)
@click.pass_context
def issues_similar(ctx, issue_number: int, repo, product, min_similarity: float, limit: int):
    """Issues semantically close to ISSUE_NUMBER."""
    repo = _repo(ctx, repo)

    async def _load(api):
        return await api.find_similar_issues(
            repo, issue_number, product_label=product, min_similarity=min_similarity, limit=limit
        )

    res = run_backend(ctx, _load)
    similar = res.get("similarIssues") or []
    if not similar:
        console.print("[yellow]No similar issues found.[/yellow]")
        return
    console.print(_issues_table(f"Similar to #{issue_number}", similar, with_similarity=True))


@issues_group.command("search")
@click.argument("query", required=False)
@_repo_option
@click.option("--issue", "issue_number", type=int, default=None, help="Search by an indexed issue instead of text.")
@click.option("--product", default=None, help="Restrict to a product label.")
@click.option("--min-similarity", type=float, default=0.80, show_default=True)
@click.option("--limit", type=int, default=20, show_default=True)
@click.pass_context
def issues_search(ctx, query, repo, issue_number, product, min_similarity: float, limit: int):
    """Semantic search by free text or by issue number."""
    if not query and issue_number is None:
        raise click.UsageError("Give a QUERY or --issue.")
    repo = _repo(ctx, repo)

    async def _search(api):
        search = SemanticSearch(api, repo, product_label=product, min_similarity=min_similarity, limit=limit)
        try:
            await search.search(query=query, issue_number=issue_number)
        finally:
            await search.aclose()
        return search

    search = run_backend(ctx, _search)
    fail_on_error(search.error)
    if not search.results:
        console.print("[yellow]No matches.[/yellow]")
        return
    console.print(_issues_table("Semantic search", search.results, with_similarity=True))


# --------------------------------------------------------------------------- #
# Sync administration                                                          #
# --------------------------------------------------------------------------- #


@issues_group.command("stats")
@_repo_option
@click.pass_context
def issues_stats(ctx, repo: str | None):
    """Indexed issue counts and sync progress."""
    repo = _repo(ctx, repo)

    async def _load(api):
        return await asyncio.gather(api.get_issue_stats(repo), api.get_issue_sync_status(repo))

    stats, sync = run_backend(ctx, _load)
    table = Table(title=f"Issue index — {repo}", show_header=False)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Total issues", str(stats.get("totalIssues", 0)))
    table.add_row("Open issues", str(stats.get("openIssues", 0)))
    table.add_row("Embedded open issues", str(stats.get("embeddedOpenIssues", 0)))
    table.add_row("Syncing", "yes" if sync.get("isSyncing") else "no")
    if sync.get("isSyncing"):
        table.add_row("Progress", f"{sync.get('currentCount', 0)}/{sync.get('estimatedTotal') or '?'}")
    table.add_row("Last synced", str(sync.get("lastSyncedAt") or "never"))
    console.print(table)


@issues_group.command("sync")
@_repo_option
@click.option("--full", "full_sync", is_flag=True, default=False, help="Re-fetch every issue, not just updates.")
@click.pass_context
def issues_sync(ctx, repo: str | None, full_sync: bool):
    """Queue an issue sync."""
    repo = _repo(ctx, repo)

    async def _sync(api):
        return await api.enqueue_issue_sync(repo, full_sync)

    res = run_backend(ctx, _sync)
    console.print(f"Sync {res.get('status', 'queued')}.")


@issues_group.command("sync-reset")
@_repo_option
@click.option("--mode", type=click.Choice(["soft", "hard"]), default="soft", show_default=True)
@click.option("--queue-full-sync/--no-queue-full-sync", default=True, show_default=True)
@click.option("--yes", "-y", is_flag=True, default=False, help="Skip the confirmation prompt.")
@click.pass_context
def issues_sync_reset(ctx, repo: str | None, mode: str, queue_full_sync: bool, yes: bool):
    """Clear embeddings and clusters (soft) or every issue row (hard)."""
    repo = _repo(ctx, repo)
    if mode == "hard" and not yes:
        click.confirm(f"Hard reset deletes issue rows in DB for {repo}. Continue?", abort=True)

    async def _reset(api):
        return await api.reset_and_queue_issue_sync(repo, mode, queue_full_sync)

    res = run_backend(ctx, _reset)
    done = f"Reset complete ({mode})"
    console.print(f"{done} and full sync queued." if res.get("queuedFullSync") else f"{done}.")
    for key, value in (res.get("reset") or {}).items():
        console.print(f"  {key}: {value}")


@issues_group.command("recluster")
@_repo_option
@_version_option
@click.option("--product", required=True, help="Product label to recluster.")
@click.option("--threshold", type=float, default=0.86, show_default=True)
@click.option("--top-k", type=int, default=10, show_default=True)
@click.pass_context
def issues_recluster(ctx, repo, target_version, product: str, threshold: float, top_k: int):
    """Queue re-clustering for one version and product."""
    repo = _repo(ctx, repo)
    version = _parse_version(target_version)
    version = None if version == ALL else version

    async def _recluster(api):
        return await api.enqueue_issue_recluster(repo, version, product, threshold, top_k)

    res = run_backend(ctx, _recluster)
    console.print(f"Recluster {res.get('status', 'queued')}.")


@issues_group.command("dashboard")
@_repo_option
@click.option("--semantic-limit", type=int, default=None)
@click.option("--issues-per-semantic", type=int, default=None)
@click.option("--min-similarity", type=float, default=None)
@click.pass_context
def issues_dashboard(ctx, repo, semantic_limit, issues_per_semantic, min_similarity):
    """Issue overview: semantic groups with their top issues."""
    repo = _repo(ctx, repo)

    async def _load(api):
        return await api.get_issue_dashboard(
            repo,
            semantic_limit=semantic_limit,
            issues_per_semantic=issues_per_semantic,
            min_similarity=min_similarity,
        )

    res = run_backend(ctx, _load)
    groups = res.get("semanticGroups") or res.get("groups") or []
    if not groups:
        console.print("[yellow]No semantic groups yet.[/yellow]")
        return
    for group in groups:
        title = group.get("title") or group.get("representativeTitle") or group.get("clusterId", "")
        console.print(_issues_table(str(title), group.get("issues") or [], with_similarity=True))
