"""GitHub credentials for CLI commands.

The bot must write as its GitHub App: voting, welcome and help comments are
recognised by ``performed_via_github_app``, so a token that posts as a user or
as ``github-actions`` produces comments the bot will later ignore.

Token sources, first hit wins:
  1. QUORUM_GITHUB_TOKEN, an installation token minted for the App
  2. GITHUB_TOKEN
  3. `gh auth token`, for local read-only runs such as ``quorum tally``
"""

from __future__ import annotations

import logging
import os
import subprocess

import click

logger = logging.getLogger(__name__)

GH_CLI_TIMEOUT_SECONDS = 5


def _token_from_env(name: str) -> str | None:
    return os.environ.get(name) or None


def _token_from_gh_cli() -> str | None:
    try:
        result = subprocess.run(
            ["gh", "auth", "token"],
            capture_output=True,
            text=True,
            timeout=GH_CLI_TIMEOUT_SECONDS,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired) as e:
        logger.debug("gh CLI unavailable: %s", e)
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


_TOKEN_SOURCES = (
    ("QUORUM_GITHUB_TOKEN", lambda: _token_from_env("QUORUM_GITHUB_TOKEN")),
    ("GITHUB_TOKEN", lambda: _token_from_env("GITHUB_TOKEN")),
    ("gh CLI session", _token_from_gh_cli),
)


def resolve_github_token() -> str | None:
    """Return a GitHub token, or None when no source has one. Never raises."""
    for source, lookup in _TOKEN_SOURCES:
        token = lookup()
        if token:
            logger.debug("Using GitHub token from %s", source)
            return token
    return None


def require_token(config: dict) -> str:
    token = config.get("github_token")
    if not token:
        raise click.UsageError(
            "No GitHub token found. Set QUORUM_GITHUB_TOKEN to the App's installation token, "
            "set GITHUB_TOKEN, or run `gh auth login` first."
        )
    return token


def require_app_id(config: dict) -> int:
    """The App id that marks comments as the bot's own."""
    app_id = config.get("app_id")
    if app_id is None:
        raise click.UsageError(
            "No GitHub App id configured. Set app_id in .quorum.yml or the QUORUM_APP_ID environment variable; "
            "without it bot comments cannot be told apart from copies."
        )
    return app_id
