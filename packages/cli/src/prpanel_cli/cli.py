"""CLI entry point for prpanel.

Commands:
  review   run every configured reviewer on a pull request and post one review
  resolve  re-check earlier prpanel comments and resolve the ones that were fixed
  init     write a starter .prpanel.yml and GitHub Actions workflow
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from prpanel_cli.commands.init import init_cmd
from prpanel_cli.commands.resolve import resolve_cmd
from prpanel_cli.commands.review import review_cmd

console = Console()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=verbose, show_path=verbose)],
        force=True,
    )
    # PyGithub and the HTTP stack are noisy at DEBUG.
    for name in ("github", "urllib3", "httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)


@click.group()
@click.version_option(
    version=importlib.metadata.version("prpanel"),
    prog_name="prpanel",
)
@click.option(
    "--config",
    "config_path",
    default=".prpanel.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="PRPANEL_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """Multi-reviewer AI code review for GitHub pull requests."""
    from prpanel_cli.auth import resolve_github_token
    from prpanel_core.config import ConfigError, load_config

    _configure_logging(verbose)
    ctx.ensure_object(dict)

    try:
        config = load_config(config_path)
    except ConfigError as e:
        raise click.UsageError(str(e))

    # Resolve token early so all subcommands share the same resolution.
    token = resolve_github_token()
    if token:
        config["github_token"] = token

    ctx.obj["config"] = config
    ctx.obj["config_path"] = config_path


main.add_command(review_cmd)
main.add_command(resolve_cmd)
main.add_command(init_cmd)
