"""GitHub token for ref lookup, with a gh CLI fallback.

This token only ever goes to api.github.com for listing tags, branches and
commits. It is unrelated to the release-agent backend token in auth.py.

Resolution order (stops at first success):
  1. github_token from config (filled from GITHUB_TOKEN)
  2. `gh auth token` (GitHub CLI session)
  3. None: anonymous access, with GitHub's low rate limit
"""

from __future__ import annotations

import logging
import subprocess

logger = logging.getLogger(__name__)


def resolve_github_token(config: dict) -> str | None:
    """Return a GitHub token or None. Never raises."""
    token = config.get("github_token")
    if token:
        return token

    try:
        result = subprocess.run(
            ["gh", "auth", "token"],
            capture_output=True,
            text=True,
            timeout=5,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired):
        logger.debug("gh CLI unavailable; looking up refs anonymously.")
        return None

    gh_token = result.stdout.strip() if result.returncode == 0 else ""
    if gh_token:
        logger.debug("Resolved GitHub token via gh CLI session.")
        return gh_token
    return None
