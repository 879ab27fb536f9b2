"""GitHub token lookup for the CLI.

Order, first hit wins:
  1. GITHUB_TOKEN (injected by GitHub Actions, or set explicitly)
  2. ``gh auth token``, the session stored by ``gh auth login``
"""

from __future__ import annotations

import logging
import os
import subprocess

logger = logging.getLogger(__name__)

_GH_TIMEOUT_SECONDS = 5


def _token_from_gh_cli() -> str | None:
    try:
        result = subprocess.run(
            ["gh", "auth", "token"],
            capture_output=True,
            text=True,
            timeout=_GH_TIMEOUT_SECONDS,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired) as e:
        logger.debug("gh CLI token unavailable: %s", e)
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


def resolve_github_token() -> str | None:
    """Return a GitHub token, or None when neither source has one."""
    token = os.environ.get("GITHUB_TOKEN")
    if token:
        return token

    token = _token_from_gh_cli()
    if token:
        logger.debug("Using GitHub token from the gh CLI session")
    return token
