import os
from pathlib import Path
from typing import Optional

import yaml

DEFAULT_CONFIG: dict = {
    "api_base_url": None,
    "probe_access_control_disabled": False,  # probe /auth/me without a token at boot
    "repo": "microsoft/PowerToys",  # default repository for issue commands
    "poll_interval": 5.0,
    "regenerate_poll_interval": 2.0,
    "regenerate_timeout": 60.0,
    "request_timeout": 30.0,
    "store": "sqlite",
    "store_path": ".release-agent.db",
}

_TRUTHY = {"1", "true", "yes", "on"}


def load_config(config_path: str = ".release-agent.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .release-agent.yml in the current directory
      3. CLI argument overrides
      4. Environment variables
    """
    config = dict(DEFAULT_CONFIG)

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    env_base_url = os.environ.get("RELEASE_AGENT_API_BASE_URL")
    if env_base_url:
        config["api_base_url"] = env_base_url

    env_probe = os.environ.get("RELEASE_AGENT_PROBE_NO_AUTH")
    if env_probe is not None:
        config["probe_access_control_disabled"] = env_probe.strip().lower() in _TRUTHY

    env_repo = os.environ.get("RELEASE_AGENT_REPO")
    if env_repo:
        config["repo"] = env_repo

    # Only used for GitHub ref lookup; the backend has its own auth.
    config["github_token"] = os.environ.get("GITHUB_TOKEN")

    return config


def get_api_base_url(config: dict) -> Optional[str]:
    """Return the configured backend base URL, or None when missing or blank."""
    value = config.get("api_base_url")
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


MISSING_BASE_URL_MESSAGE = "Missing RELEASE_AGENT_API_BASE_URL"


class ConfigurationError(RuntimeError):
    """A required configuration value is missing. Not retryable."""
