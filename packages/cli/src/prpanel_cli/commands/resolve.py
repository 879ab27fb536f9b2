"""resolve command: re-check earlier review comments on a pull request."""

from __future__ import annotations

import asyncio

import click
from rich.console import Console

from prpanel_cli.commands.review import require_token, resolve_target
from prpanel_core.config import ConfigError, check_credentials
from prpanel_core.gh.pull_request import get_client
from prpanel_core.pipeline import check_resolutions

console = Console()


@click.command("resolve")
@click.option("--repo", default=None, help="GitHub repository in owner/name format. Defaults to $GITHUB_REPOSITORY.")
@click.option("--pr", "pr_number", type=int, default=None, help="Pull request number. Defaults to the Actions event.")
@click.pass_context
def resolve_cmd(ctx, repo: str | None, pr_number: int | None):
    """Resolve prpanel comments that later commits have addressed.

    Comments on deleted files are resolved outright. The rest are judged
    once by the model: fixed threads get a reply and are resolved, partially
    fixed ones get a reply and stay open.
    """
    config = ctx.obj["config"]
    repo, pr_number, _ = resolve_target(repo, pr_number)
    token = require_token(config)

    try:
        check_credentials(config, [(config.get("resolution") or {}).get("model")])
    except ConfigError as e:
        raise click.UsageError(str(e))

    asyncio.run(check_resolutions(get_client(token, repo), pr_number, config))
