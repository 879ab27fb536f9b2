"""init command: write a starter configuration and CI workflow.

Runs once per repository: writes .prpanel.yml and optionally a GitHub
Actions workflow, so CI reviews need no further setup after `git push`.
"""

from __future__ import annotations

import subprocess
from pathlib import Path

import click
import yaml
from rich.console import Console

from prpanel_core.config import TRIGGER_POLICIES

console = Console()

_WORKFLOW_TEMPLATE = """\
name: prpanel review

on:
  pull_request:
    types: [opened, synchronize, reopened]
  issue_comment:
    types: [created]

jobs:
  review:
    if: github.event_name == 'pull_request' || github.event.issue.pull_request
    runs-on: ubuntu-latest
    permissions:
      contents: read
      pull-requests: write

    steps:
      - uses: actions/checkout@v4

      - name: Set up Python
        uses: actions/setup-python@v5
        with:
          python-version: "3.12"

      - name: Install prpanel
        run: pip install "prpanel[{provider}]=={version}"

      - name: Run PR review
        env:
          GITHUB_TOKEN: ${{{{ secrets.GITHUB_TOKEN }}}}
          {api_key_env}: ${{{{ secrets.{api_key_env} }}}}
        run: prpanel review
"""


@click.command("init")
@click.option("--repo", default=None, help="GitHub repository (owner/name). Auto-detected from git remote.")
def init_cmd(repo: str | None):
    """Set up prpanel for a repository.

    Creates .prpanel.yml with the built-in quality and security reviewers,
    and optionally a GitHub Actions workflow that reviews every push and
    answers `@prpanel review` comments.
    """
    console.print("\n[bold cyan]prpanel init[/bold cyan]: repository setup\n")

    if repo is None:
        repo = _detect_repo_from_git()
        if repo:
            console.print(f"[dim]Detected repository: {repo}[/dim]")
        else:
            repo = click.prompt("GitHub repository (owner/name)")

    provider = click.prompt(
        "AI provider",
        type=click.Choice(["anthropic", "openai"]),
        default="anthropic",
    )
    api_key_env = "ANTHROPIC_API_KEY" if provider == "anthropic" else "OPENAI_API_KEY"

    level = click.prompt(
        "Minimum severity to post",
        type=click.Choice(["critical", "warning", "info"]),
        default="info",
    )
    trigger = click.prompt(
        "When should earlier comments be re-checked",
        type=click.Choice(list(TRIGGER_POLICIES)),
        default="first-push",
    )

    config: dict = {
        "model": provider,
        "reviewers": [
            {"name": "quality", "focus": "code quality"},
            {"name": "security", "focus": "security"},
        ],
        "verifier": {"enabled": True, "level": level},
        "resolution": {"enabled": True, "trigger": trigger},
    }
    _write_config(config)
    console.print("[green]Created .prpanel.yml[/green]")
    console.print(
        "[dim]The quality and security reviewers use built-in prompts; add `prompt:` or "
        "`prompt_file:` to an entry to customise it, or add your own reviewers.[/dim]"
    )

    setup_ci = click.confirm("\nGenerate .github/workflows/prpanel.yml for GitHub Actions?", default=True)
    if setup_ci:
        _write_workflow(provider, api_key_env)
        console.print("[green]Created .github/workflows/prpanel.yml[/green]")
        console.print(
            f"\n[yellow]Remember to add [bold]{api_key_env}[/bold] to your "
            "GitHub repository secrets (Settings → Secrets → Actions).[/yellow]"
        )

    console.print("\n[bold green]Setup complete![/bold green]")
    console.print(f"Run a review with: [bold]prpanel review --repo {repo} --pr <number>[/bold]")


def _detect_repo_from_git() -> str | None:
    """Try to detect the GitHub repo slug from the git remote URL."""
    try:
        result = subprocess.run(
            ["git", "remote", "get-url", "origin"],
            capture_output=True,
            text=True,
            timeout=5,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return None
    if result.returncode != 0:
        return None
    url = result.stdout.strip()
    # https://github.com/owner/repo.git and git@github.com:owner/repo.git
    if "github.com" not in url:
        return None
    slug = url.split("github.com")[-1].lstrip("/:").removesuffix(".git")
    return slug if "/" in slug else None


def _write_config(config: dict) -> None:
    """Write or update .prpanel.yml, preserving any existing keys."""
    path = Path(".prpanel.yml")
    existing: dict = {}
    if path.exists():
        existing = yaml.safe_load(path.read_text()) or {}
    existing.update(config)
    path.write_text(yaml.dump(existing, default_flow_style=False, sort_keys=False))


def _get_version() -> str:
    from importlib.metadata import PackageNotFoundError, version

    try:
        return version("prpanel")
    except PackageNotFoundError:
        return "0.1.0"


def _write_workflow(provider: str, api_key_env: str) -> None:
    workflow_dir = Path(".github/workflows")
    workflow_dir.mkdir(parents=True, exist_ok=True)
    (workflow_dir / "prpanel.yml").write_text(
        _WORKFLOW_TEMPLATE.format(provider=provider, api_key_env=api_key_env, version=_get_version())
    )
