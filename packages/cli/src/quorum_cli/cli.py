"""CLI entry point for quorum.

Commands:
  sweep      advance issues whose discussion or voting period has ended
  reconcile  re-evaluate the merge-ready label on implementation PRs
  preflight  show the merge-readiness checklist for one PR
  tally      show the current vote on one issue
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from quorum_cli.commands.preflight import preflight_cmd
from quorum_cli.commands.reconcile import reconcile_cmd
from quorum_cli.commands.sweep import sweep_cmd
from quorum_cli.commands.tally import tally_cmd

console = Console()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )
    # PyGithub and urllib3 are noisy at DEBUG.
    logging.getLogger("github").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


@click.group()
@click.version_option(
    version=importlib.metadata.version("quorum-gov"),
    prog_name="quorum",
)
@click.option(
    "--config",
    "config_path",
    default=".quorum.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="QUORUM_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """Consensus-driven governance for GitHub issues and pull requests."""
    from quorum_cli.auth import resolve_github_token
    from quorum_core.config import load_config

    _configure_logging(verbose)
    ctx.ensure_object(dict)

    config = load_config(config_path)

    # Resolve token early so all subcommands share the same resolution.
    token = resolve_github_token()
    if token:
        config["github_token"] = token

    ctx.obj["config"] = config


main.add_command(sweep_cmd)
main.add_command(reconcile_cmd)
main.add_command(preflight_cmd)
main.add_command(tally_cmd)
