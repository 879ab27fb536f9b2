"""End-to-end entry points: review a pull request, or re-check earlier comments."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from rich.console import Console

from prpanel_core.config import (
    ConfigError,
    check_credentials,
    load_reviewer_specs,
    load_verifier_prompt,
    validate_level,
    validate_trigger_policy,
)
from prpanel_core.diff.position import parse_diff
from prpanel_core.gh.pull_request import (
    GitHubClient,
    fetch_change_context,
    fetch_diff,
    get_last_reviewed_sha,
)
from prpanel_core.gh.review import PreparedReview, prepare_review, publish
from prpanel_core.models import (
    ChangeContext,
    PublishResult,
    ResolutionResult,
    ReviewerOutput,
    ReviewerSpec,
    SynthesizedReview,
)
from prpanel_core.orchestrator import run_all
from prpanel_core.prompts import DEFAULT_LEGACY_PROMPT
from prpanel_core.providers.router import ModelRouter
from prpanel_core.resolution.checker import check
from prpanel_core.resolution.judgment import ModelJudgment
from prpanel_core.resolution.triggers import should_run_resolution
from prpanel_core.synthesis import synthesize
from prpanel_core.utils.context import context_paths, fetch_file_context

console = Console()
logger = logging.getLogger(__name__)

LEGACY_REVIEWER = ReviewerSpec(name="reviewer", prompt=DEFAULT_LEGACY_PROMPT, focus="general")

_SEVERITY_COLOR = {"critical": "red", "warning": "yellow", "info": "blue"}


@dataclass
class ReviewRun:
    """What a review run produced; ``published`` is None for dry runs."""

    repo: str
    pr_number: int
    head_sha: str
    event: str
    review: SynthesizedReview
    outputs: list[ReviewerOutput] = field(default_factory=list)
    published: PublishResult | None = None
    resolution: ResolutionResult | None = None
    reviewed_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


def select_reviewers(config: dict, legacy: bool = False) -> list[ReviewerSpec]:
    if legacy:
        return [LEGACY_REVIEWER]
    specs = load_reviewer_specs(config)
    if not any(spec.enabled for spec in specs):
        raise ConfigError("No reviewers enabled. Enable at least one entry under 'reviewers'.")
    return specs


def print_dry_run(outputs: list[ReviewerOutput], review: SynthesizedReview, prepared: PreparedReview) -> None:
    """Print the review to the terminal without posting to GitHub."""
    console.print("\n[bold]Dry run (not posted)[/bold]\n")
    for output in outputs:
        if output.success:
            count = len(output.review.findings) if output.review else 0
            console.print(f"  [green]✓[/green] {output.name}: {count} finding(s) in {output.duration_seconds:.1f}s")
        else:
            console.print(f"  [red]✗[/red] {output.name}: {output.error}")

    console.print(f"\n[bold]Event:[/bold] {prepared.event}")
    console.print(review.overview)
    console.print()

    if not review.findings:
        console.print("[yellow]No inline findings.[/yellow]")
        return
    unmapped = set(id(f) for f in prepared.unmapped)
    for f in review.findings:
        color = _SEVERITY_COLOR.get(f.severity, "white")
        where = "  [dim](outside diff)[/dim]" if id(f) in unmapped else ""
        console.print(
            f"[bold cyan]{f.path}[/bold cyan]  line [bold]{f.line}[/bold] {f.side}  "
            f"[{color}]{f.severity.upper()}[/{color}]  [dim]{', '.join(f.reviewers)}[/dim]{where}"
        )
        console.print(f"  {f.body}")
        console.print()


async def check_resolutions(
    client: GitHubClient,
    number: int,
    config: dict,
    model_caller=None,
    context: ChangeContext | None = None,
    diff: str | None = None,
) -> ResolutionResult:
    """Re-check prpanel's earlier comments on a PR and resolve the addressed ones."""
    if context is None:
        context = await asyncio.to_thread(fetch_change_context, client, number)
    if diff is None:
        diff = await asyncio.to_thread(fetch_diff, client, number)

    model_caller = model_caller or ModelRouter(config)
    judgment = ModelJudgment(model_caller, (config.get("resolution") or {}).get("model"))
    result = await check(client, context, diff, judgment)
    console.print(
        f"[cyan]Resolution check: {result.checked} checked, {result.fixed} fixed, "
        f"{result.partially_fixed} partially fixed, {result.not_fixed} not fixed, "
        f"{result.deleted_files} on deleted files.[/cyan]"
    )
    return result


async def review_pull_request(
    client: GitHubClient,
    number: int,
    config: dict,
    model_caller=None,
    dry_run: bool = False,
    legacy: bool = False,
    force: bool = False,
    trigger: str | None = None,
    repo_root: str = ".",
) -> ReviewRun | None:
    """Run the full review pipeline for one PR.

    Returns None when the head commit was already reviewed (unless ``force``).
    Configuration problems raise ConfigError before anything is fetched or
    posted; every later failure degrades instead of aborting.
    """
    specs = select_reviewers(config, legacy)
    verifier = config.get("verifier") or {}
    resolution = config.get("resolution") or {}
    level = validate_level(verifier.get("level", "info"))
    policy = validate_trigger_policy(resolution.get("trigger", "first-push"))
    if model_caller is None:
        hints = [s.model for s in specs if s.enabled]
        hints += [verifier.get("model"), resolution.get("model")]
        check_credentials(config, hints)
        model_caller = ModelRouter(config)

    pr = await asyncio.to_thread(client.pull, number)
    head_sha = pr.head.sha
    if not force and not dry_run:
        last_sha = await asyncio.to_thread(get_last_reviewed_sha, pr)
        if last_sha == head_sha:
            logger.info("Head %s of PR #%d was already reviewed", head_sha[:7], number)
            console.print("[yellow]No new commits since the last review. Nothing to do.[/yellow]")
            return None

    context, diff = await asyncio.gather(
        asyncio.to_thread(fetch_change_context, client, number),
        asyncio.to_thread(fetch_diff, client, number),
    )
    parsed = parse_diff(diff)
    console.print(
        f"Reviewing [bold]{context.full_name}#{number}[/bold] "
        f"({len(context.files)} file(s), +{context.additions}/-{context.deletions})"
    )

    file_context = None
    context_config = config.get("context") or {}
    if context_config.get("enabled"):
        file_context = await asyncio.to_thread(
            fetch_file_context,
            client,
            context_paths(context),
            context.head_sha,
            context_config.get("max_file_size_kb", 100),
            context_config.get("max_total_size_kb", 500),
        )

    outputs = await run_all(
        context,
        diff,
        specs,
        model_caller,
        timeout=config.get("reviewer_timeout", 180),
        file_context=file_context,
        repo_root=repo_root,
    )

    use_verifier = verifier.get("enabled", True) and not legacy
    review = await synthesize(
        outputs,
        min_severity=level,
        overview_caller=model_caller if use_verifier else None,
        overview_prompt=load_verifier_prompt(config, repo_root),
        overview_model=verifier.get("model"),
    )
    approve_on_pass = bool(config.get("approve_on_pass", False))
    prepared = prepare_review(context, review, parsed, approve_on_pass)
    run = ReviewRun(
        repo=context.full_name,
        pr_number=number,
        head_sha=context.head_sha,
        event=prepared.event,
        review=review,
        outputs=outputs,
    )

    if dry_run:
        print_dry_run(outputs, review, prepared)
        return run

    # Must run before publishing: updating the review deletes the old inline comments.
    if resolution.get("enabled", True) and should_run_resolution(trigger, policy):
        try:
            run.resolution = await check_resolutions(client, number, config, model_caller, context, diff)
        except Exception as e:
            logger.warning("Resolution check failed, publishing the review anyway: %s", e)
            console.print(f"[yellow]Resolution check failed: {e}[/yellow]")

    run.published = await asyncio.to_thread(publish, client, context, review, parsed, approve_on_pass)
    verb = "updated" if run.published.is_update else "posted"
    console.print(f"\n[green]Review {verb}: {run.event}. {run.published.review_url}[/green]")
    return run
