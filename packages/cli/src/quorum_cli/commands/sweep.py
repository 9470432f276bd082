"""sweep command: advance issues whose phase period has ended."""

from __future__ import annotations

import click
from rich.console import Console

from quorum_cli.auth import require_app_id, require_token
from quorum_core.config import load_governance_config
from quorum_core.gh.issues import IssueOperations
from quorum_core.gh.pull_request import PROperations, get_client
from quorum_core.governance import GovernanceService, get_summarizer
from quorum_core.sweep import PhaseSweeper

console = Console()


@click.command("sweep")
@click.option("--repo", required=True, help="GitHub repository in owner/name format.")
@click.option("--dry-run", is_flag=True, help="Report what would change without touching GitHub.")
@click.pass_context
def sweep_cmd(ctx, repo: str, dry_run: bool):
    """Move issues out of discussion, voting and extended voting when due.

    Intended to run on a schedule. Every transition is idempotent, so an
    interrupted run is finished by the next one.

    \b
    Required environment variables:
      GITHUB_TOKEN         GitHub token (or use gh CLI)
      QUORUM_APP_ID        GitHub App id (or app_id in .quorum.yml)
    """
    config = ctx.obj["config"]
    token = require_token(config)
    app_id = require_app_id(config)
    governance_config = load_governance_config(config)

    client = get_client(token)
    issues = IssueOperations(client, app_id)
    prs = PROperations(client, app_id)
    try:
        summarizer = get_summarizer(config)
    except ValueError as e:
        raise click.UsageError(str(e))
    governance = GovernanceService(issues, summarizer)

    summary = PhaseSweeper(issues, prs, governance, governance_config, dry_run=dry_run).run(repo)

    for number, outcome in summary.transitioned:
        console.print(f"  [bold]#{number}[/bold]  {outcome}")
    console.print(
        f"[green]{len(summary.transitioned)} transitioned[/green], "
        f"{summary.pending} still in progress"
    )

    if summary.skipped:
        issues_list = ", ".join(f"#{n}" for n in summary.skipped)
        console.print(f"[yellow]{len(summary.skipped)} issue(s) need human attention: {issues_list}[/yellow]")
    if summary.rate_limited:
        issues_list = ", ".join(f"#{n}" for n in summary.rate_limited)
        console.print(f"[yellow]Rate limited on {len(summary.rate_limited)} issue(s): {issues_list}[/yellow]")
    if summary.forbidden:
        issues_list = ", ".join(f"#{n}" for n in summary.forbidden)
        console.print(f"[red]Forbidden on {len(summary.forbidden)} issue(s): {issues_list}[/red]")
