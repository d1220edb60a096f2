"""login / logout / whoami: the auth gate."""

from __future__ import annotations

import asyncio

import click
import httpx
from rich.console import Console

from release_agent_cli.auth import Location
from release_agent_cli.commands.backend import NOT_SIGNED_IN, make_auth, require_base_url
from release_agent_core.api.client import ApiError, error_message
from release_agent_core.config import ConfigurationError

console = Console()


def _signed_in(user) -> None:
    console.print(f"[green]Signed in as[/green] [bold]{user.login}[/bold] ({user.source})")


def _login_with_callback(ctx: click.Context, callback_url: str) -> None:
    auth = make_auth(ctx, location=Location(callback_url))
    asyncio.run(auth.boot())
    if auth.user is None:
        raise click.ClickException(auth.error or "Sign-in did not complete.")
    _signed_in(auth.user)


@click.command("login")
@click.option("--token", default=None, help="Backend bearer token to verify and store.")
@click.option("--github", "use_github", is_flag=True, default=False, help="Sign in through GitHub in the browser.")
@click.option(
    "--callback-url",
    default=None,
    help="URL the GitHub sign-in redirected to (its #token=... fragment is consumed).",
)
@click.pass_context
def login_cmd(ctx, token: str | None, use_github: bool, callback_url: str | None):
    """Sign in to the release-agent backend.

    With no option, prompts for a token. --github opens the backend's GitHub
    OAuth page and then asks for the URL the browser landed on.
    """
    require_base_url(ctx.obj["config"])

    if callback_url:
        _login_with_callback(ctx, callback_url)
        return

    if use_github:
        try:
            url = make_auth(ctx).github_sign_in_url()
        except ConfigurationError as e:
            raise click.UsageError(str(e)) from e
        console.print(f"Opening [link={url}]{url}[/link]")
        click.launch(url)
        landed = click.prompt("Paste the URL your browser was redirected to")
        _login_with_callback(ctx, landed)
        return

    if token is None:
        token = click.prompt("Token", hide_input=True)

    auth = make_auth(ctx)
    try:
        user = asyncio.run(auth.sign_in(token))
    except ValueError as e:
        raise click.UsageError(str(e)) from e
    except (ApiError, httpx.HTTPError) as e:
        raise click.ClickException(error_message(e, "Sign-in failed")) from e
    _signed_in(user)


@click.command("logout")
@click.pass_context
def logout_cmd(ctx):
    """Forget the stored token and its cached identity."""
    make_auth(ctx).sign_out()
    console.print("Signed out.")


@click.command("whoami")
@click.pass_context
def whoami_cmd(ctx):
    """Show who the stored token belongs to."""
    require_base_url(ctx.obj["config"])
    auth = make_auth(ctx)
    asyncio.run(auth.boot())
    if auth.user is None:
        raise click.ClickException(auth.error or NOT_SIGNED_IN)
    console.print(f"[bold]{auth.user.login}[/bold] ({auth.user.source})")
