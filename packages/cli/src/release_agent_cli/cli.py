"""CLI entry point for release-agent.

Each command stands in for a page of the release dashboard:
  login / logout / whoami  : the auth gate
  dashboard                : session counts and running jobs
  sessions                 : list, create and delete release sessions
  changes / hotspots       : read-only session artifacts
  notes / testplan         : editable session artifacts
  export                   : publish a session
  issues                   : issue clustering and semantic search
  refs                     : tag/branch/commit lookup on GitHub

`runs` and `create-draft` are hidden aliases kept for old scripts.
"""

from __future__ import annotations

import copy
import importlib.metadata
import logging

import click
from rich.console import Console

from release_agent_cli.commands.artifacts import (
    changes_cmd,
    export_cmd,
    hotspots_cmd,
    notes_group,
    testplan_group,
)
from release_agent_cli.commands.issues import issues_group
from release_agent_cli.commands.login import login_cmd, logout_cmd, whoami_cmd
from release_agent_cli.commands.refs import refs_cmd
from release_agent_cli.commands.sessions import dashboard_cmd, sessions_create, sessions_group, sessions_list

console = Console()


def _build_store(config: dict):
    """Instantiate the configured store from .release-agent.yml settings.

    Store selection:
      store: sqlite → SQLiteStore (store_path, default .release-agent.db)
      store: memory → MemoryStore (nothing survives the process)

    This factory lives in cli.py so neither release_agent_core nor
    release_agent_store know about the CLI config format.
    """
    from release_agent_store.memory import MemoryStore

    store_type = config.get("store", "sqlite")

    if store_type == "sqlite":
        from release_agent_store.sqlite import SQLiteStore

        db_path = config.get("store_path", ".release-agent.db")
        return SQLiteStore(db_path=db_path)

    if store_type != "memory":
        console.print(f"[yellow]Unknown store '{store_type}'. Falling back to an in-memory store.[/yellow]")
    return MemoryStore()


def _legacy_alias(command: click.Command, name: str) -> click.Command:
    alias = copy.copy(command)
    alias.name = name
    alias.hidden = True
    return alias


@click.group()
@click.version_option(
    version=importlib.metadata.version("release-agent"),
    prog_name="release-agent",
)
@click.option(
    "--config",
    "config_path",
    default=".release-agent.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="RELEASE_AGENT_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, default=False, help="Log debug output.")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """Release sessions, release notes, test plans and issue clusters."""
    from release_agent_core.config import load_config

    if verbose:
        logging.basicConfig(level=logging.DEBUG)

    ctx.ensure_object(dict)

    config = load_config(config_path)
    store = _build_store(config)
    ctx.obj["store"] = store
    ctx.obj["config"] = config
    ctx.call_on_close(store.close)


main.add_command(login_cmd)
main.add_command(logout_cmd)
main.add_command(whoami_cmd)
main.add_command(dashboard_cmd)
main.add_command(sessions_group)
main.add_command(changes_cmd)
main.add_command(hotspots_cmd)
main.add_command(notes_group)
main.add_command(testplan_group)
main.add_command(export_cmd)
main.add_command(issues_group)
main.add_command(refs_cmd)

main.add_command(_legacy_alias(sessions_list, "runs"))
main.add_command(_legacy_alias(sessions_create, "create-draft"))
