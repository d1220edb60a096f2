"""Shared plumbing for commands that talk to the release-agent backend."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

import click
import httpx
from rich.console import Console

from release_agent_cli.auth import AuthManager
from release_agent_core.api.client import ApiError
from release_agent_core.api.release_agent import ReleaseAgentApi
from release_agent_core.config import MISSING_BASE_URL_MESSAGE, get_api_base_url

console = Console()

T = TypeVar("T")

NOT_SIGNED_IN = "Not signed in. Run `release-agent login` first."


def make_api(base_url: str, token: str | None = None, config: dict | None = None) -> ReleaseAgentApi:
    timeout = (config or {}).get("request_timeout", 30.0)
    return ReleaseAgentApi(base_url, token=token, timeout=timeout)


def make_auth(ctx: click.Context, **kwargs) -> AuthManager:
    config = ctx.obj["config"]
    return AuthManager(
        ctx.obj["store"],
        config,
        api_factory=lambda base_url: make_api(base_url, config=config),
        **kwargs,
    )


def require_base_url(config: dict) -> str:
    base_url = get_api_base_url(config)
    if not base_url:
        raise click.UsageError(MISSING_BASE_URL_MESSAGE)
    return base_url


def run_backend(ctx: click.Context, fn: Callable[[ReleaseAgentApi], Awaitable[T]]) -> T:
    """Boot auth, then run fn with an authenticated API client.

    Backend failures become ClickException so the user sees one line, not a
    traceback.
    """
    config = ctx.obj["config"]
    base_url = require_base_url(config)

    async def _run() -> T:
        auth = make_auth(ctx)
        await auth.boot()
        if auth.status != "authenticated":
            raise click.UsageError(auth.error or NOT_SIGNED_IN)
        async with make_api(base_url, token=auth.token, config=config) as api:
            try:
                return await fn(api)
            except ApiError as e:
                raise click.ClickException(e.message) from e
            except httpx.HTTPError as e:
                raise click.ClickException(str(e) or "Request failed") from e

    return asyncio.run(_run())


def fail_on_error(error: str | None) -> None:
    """Raise the page-local error of a view controller, if it has one."""
    if error:
        raise click.ClickException(error)
