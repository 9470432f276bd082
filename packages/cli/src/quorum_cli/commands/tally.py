"""tally command: current vote on an issue."""

from __future__ import annotations

import click
from rich.console import Console

from quorum_cli.auth import require_app_id, require_token
from quorum_core.config import load_governance_config
from quorum_core.gh.issues import IssueOperations
from quorum_core.gh.pull_request import get_client
from quorum_core.labels import LABELS, has_label
from quorum_core.messages import shortfall_reason
from quorum_core.types import IssueRef
from quorum_core.votes import decide_outcome, determine_outcome

console = Console()


@click.command("tally")
@click.option("--repo", required=True, help="GitHub repository in owner/name format.")
@click.option("--issue", "issue_number", type=int, required=True, help="Issue number.")
@click.pass_context
def tally_cmd(ctx, repo: str, issue_number: int):
    """Show the validated vote on an issue's current voting comment.

    Read-only: labels and comments are not changed. The outcome applies the
    deadline exit of the current phase, so quorum, required voters and
    unanimity count as they would when the vote closes.
    """
    config = ctx.obj["config"]
    token = require_token(config)
    app_id = require_app_id(config)
    try:
        ref = IssueRef.parse(repo, issue_number)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--repo")

    issues = IssueOperations(get_client(token), app_id)
    comment_id = issues.find_voting_comment_id(ref)
    if comment_id is None:
        console.print(f"[yellow]No voting comment found on #{issue_number}.[/yellow]")
        return

    validated = issues.get_validated_vote_counts(ref, comment_id)
    votes = validated.votes
    discarded = len(validated.participants) - len(validated.voters)

    console.print(f"[bold]{repo}#{issue_number}[/bold]")
    console.print(f"  👍 {votes.thumbs_up}  👎 {votes.thumbs_down}  😕 {votes.confused}  👀 {votes.eyes}")
    console.print(f"  {len(validated.voters)} valid voter(s), {discarded} discarded (multiple reactions)")
    governance_config = load_governance_config(config)
    if has_label(issues.get_issue_labels(ref), LABELS["EXTENDED_VOTING"]):
        deadline = governance_config.extended_voting_exits[-1]
    else:
        deadline = governance_config.voting_exits[-1]
    outcome, shortfall = decide_outcome(validated, deadline)
    console.print(f"  Outcome if closed now: [bold]{outcome}[/bold]")
    if shortfall is not None:
        reason = shortfall_reason(
            shortfall.min_voters,
            shortfall.valid_voters,
            shortfall.missing_required,
            shortfall.required_needed,
            shortfall.required_participated,
        )
        console.print(f"  [yellow]{reason}[/yellow]")
    elif outcome != determine_outcome(votes):
        console.print("  [yellow]Unanimity required; the vote is split.[/yellow]")
