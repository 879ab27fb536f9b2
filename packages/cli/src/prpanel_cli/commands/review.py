"""review command: run the reviewer panel on a pull request."""

from __future__ import annotations

import asyncio
import copy

import click
from rich.console import Console

from prpanel_core.config import ConfigError
from prpanel_core.gh.pull_request import get_client, pr_context_from_event
from prpanel_core.pipeline import review_pull_request
from prpanel_core.resolution.triggers import detect_trigger_event

console = Console()


def resolve_target(repo: str | None, pr_number: int | None):
    """Return ``(repo, pr_number, event)``, filling gaps from the GitHub Actions event payload."""
    event = pr_context_from_event()
    if repo is None and event is not None:
        repo = event.repository
    if pr_number is None and event is not None and event.repository == repo:
        pr_number = event.number
    if not repo or pr_number is None:
        raise click.UsageError(
            "Could not determine the pull request. Pass --repo and --pr, "
            "or run inside a GitHub Actions pull_request workflow."
        )
    if event is not None and (event.repository != repo or event.number != pr_number):
        event = None
    return repo, pr_number, event


def require_token(config: dict) -> str:
    token = config.get("github_token")
    if not token:
        raise click.UsageError(
            "No GitHub token found. Set GITHUB_TOKEN or run `gh auth login` first.\n"
            "Create a token at https://github.com/settings/tokens"
        )
    return token


@click.command("review")
@click.option("--repo", default=None, help="GitHub repository in owner/name format. Defaults to $GITHUB_REPOSITORY.")
@click.option("--pr", "pr_number", type=int, default=None, help="Pull request number. Defaults to the Actions event.")
@click.option(
    "--model",
    type=click.Choice(["anthropic", "openai"]),
    default=None,
    help="Default AI model provider. Overrides config file.",
)
@click.option(
    "--level",
    type=click.Choice(["critical", "warning", "info"]),
    default=None,
    help="Minimum severity kept in the review. Overrides config file.",
)
@click.option("--dry-run", "-s", "dry_run", is_flag=True, help="Print the review without posting to GitHub.")
@click.option("--legacy", is_flag=True, help="Use a single general-purpose reviewer instead of the panel.")
@click.option("--force", is_flag=True, help="Review even if the head commit was already reviewed.")
@click.pass_context
def review_cmd(
    ctx,
    repo: str | None,
    pr_number: int | None,
    model: str | None,
    level: str | None,
    dry_run: bool,
    legacy: bool,
    force: bool,
):
    """Review a pull request with every configured reviewer.

    Reviewers run concurrently; their findings are merged by location and
    posted as a single GitHub review, updating prpanel's previous review in
    place when there is one.

    \b
    Required environment variables:
      GITHUB_TOKEN         GitHub personal access token (or use gh CLI)
      ANTHROPIC_API_KEY    Required when using --model anthropic
      OPENAI_API_KEY       Required when using --model openai
    """
    config = copy.deepcopy(ctx.obj["config"])
    if model:
        config["model"] = model
    if level:
        config["verifier"] = {**(config.get("verifier") or {}), "level": level}

    repo, pr_number, event = resolve_target(repo, pr_number)
    token = require_token(config)
    trigger = detect_trigger_event(event.action, event.comment_body) if event else None

    try:
        run = asyncio.run(
            review_pull_request(
                get_client(token, repo),
                pr_number,
                config,
                dry_run=dry_run,
                legacy=legacy,
                force=force,
                trigger=trigger,
            )
        )
    except ConfigError as e:
        raise click.UsageError(str(e))

    if run is None:
        return
    s = run.review.summary
    console.print(
        f"[bold]{s.successful_reviewers}/{s.total_reviewers}[/bold] reviewer(s) succeeded · "
        f"[bold]{s.total_findings}[/bold] finding(s) ({s.critical} critical, {s.warnings} warning, {s.infos} info)"
    )
