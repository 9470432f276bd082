"""preflight command: merge-readiness checklist for a pull request."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from quorum_cli.auth import require_token
from quorum_core.config import load_governance_config
from quorum_core.gh.pull_request import PROperations, get_client
from quorum_core.merge_readiness import evaluate_preflight_checks
from quorum_core.types import PRRef

console = Console()


@click.command("preflight")
@click.option("--repo", required=True, help="GitHub repository in owner/name format.")
@click.option("--pr", "pr_number", type=int, required=True, help="Pull request number.")
@click.pass_context
def preflight_cmd(ctx, repo: str, pr_number: int):
    """Show every merge-readiness check for a pull request.

    Unlike the label automation, nothing short-circuits: all checks run
    so the report shows everything that is blocking.
    """
    config = ctx.obj["config"]
    token = require_token(config)
    governance_config = load_governance_config(config)
    try:
        ref = PRRef.parse(repo, pr_number)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--repo")

    prs = PROperations(get_client(token), config.get("app_id"))
    result = evaluate_preflight_checks(
        prs,
        ref,
        governance_config.merge_ready,
        governance_config.trusted_reviewers,
    )

    table = Table(title=f"Preflight: {repo}#{pr_number}", show_header=True, header_style="bold cyan")
    table.add_column("", width=3)
    table.add_column("Check", style="bold")
    table.add_column("Severity", width=10)
    table.add_column("Detail")

    for check in result.checks:
        if check.passed:
            mark = "[green]✓[/green]"
        elif check.severity == "hard":
            mark = "[red]✗[/red]"
        else:
            mark = "[yellow]•[/yellow]"
        table.add_row(mark, check.name, check.severity, check.detail)

    console.print(table)
    if result.all_hard_checks_passed:
        console.print("[green]All hard checks passed.[/green]")
    else:
        console.print("[red]Not ready to merge.[/red]")
