"""reconcile command: converge the merge-ready label on implementation PRs."""

from __future__ import annotations

import click
from rich.console import Console

from quorum_cli.auth import require_token
from quorum_core.config import load_governance_config
from quorum_core.gh.pull_request import PROperations, get_client
from quorum_core.sweep import reconcile_merge_ready

console = Console()


@click.command("reconcile")
@click.option("--repo", required=True, help="GitHub repository in owner/name format.")
@click.pass_context
def reconcile_cmd(ctx, repo: str):
    """Re-evaluate merge readiness for every open implementation PR.

    Catches state changes no event reported (e.g. a check run finishing
    after the last review).
    """
    config = ctx.obj["config"]
    token = require_token(config)
    governance_config = load_governance_config(config)

    if governance_config.merge_ready is None:
        console.print("[yellow]merge_ready is not configured; nothing to reconcile.[/yellow]")
        return

    prs = PROperations(get_client(token), config.get("app_id"))
    summary = reconcile_merge_ready(prs, repo, governance_config)

    console.print(f"[green]+{summary.added}[/green] [red]-{summary.removed}[/red] ={summary.unchanged}")
    if summary.errors:
        failed = ", ".join(f"#{n}" for n in summary.errors)
        raise click.ClickException(f"Failed to evaluate {len(summary.errors)} PR(s): {failed}")
