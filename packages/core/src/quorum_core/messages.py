"""Visible text of every comment the bot posts."""

from __future__ import annotations

from quorum_core.metadata import SIGNATURES
from quorum_core.types import READY_TO_IMPLEMENT, REJECTED, VoteCounts

SIGNATURE = "\n\n---\n_quorum governance bot_"

VOTING_INSTRUCTIONS = f"""**{SIGNATURES["VOTING"]} (react once; multiple reactions = no vote):**
- 👍 **Ready**: approve for implementation
- 👎 **Not Ready**: close this proposal
- 😕 **Needs Discussion**: back to discussion
- 👀 **Needs Human Input**: escalate for human review"""


def format_votes(votes: VoteCounts) -> str:
    return (
        f"**Results:** 👍 {votes.thumbs_up} | 👎 {votes.thumbs_down} | "
        f"😕 {votes.confused} | 👀 {votes.eyes}"
    )


def welcome() -> str:
    return f"""# Discussion Phase

Share your analysis, proposals, or concerns.

React with 👍 when you think this is ready for a vote. Voting opens when the discussion period ends.{SIGNATURE}"""


def voting_start(priority: str | None = None) -> str:
    header = f" ({priority.upper()} PRIORITY)" if priority else ""
    note = f"\nThis issue is marked **{priority}-priority**; your timely vote is appreciated.\n" if priority else ""
    return f"""# Voting Phase{header}

Time to decide whether this proposal is ready to implement.
{note}
{VOTING_INSTRUCTIONS}

Voting closes when the voting period ends.{SIGNATURE}"""


def ready_to_implement(votes: VoteCounts) -> str:
    return f"""# Ready to Implement ✅

{format_votes(votes)}

The vote passed. Ready for implementation.

Next steps:
- Open a PR if you plan to implement this.
- Link this issue in the PR description (e.g. `Fixes #<issue-number>`).{SIGNATURE}"""


def rejected(votes: VoteCounts) -> str:
    return f"""# Rejected ❌

{format_votes(votes)}

The vote did not pass. This proposal is closed.{SIGNATURE}"""


def needs_more_discussion(votes: VoteCounts) -> str:
    return f"""# Needs More Discussion 💬

{format_votes(votes)}

Most voters asked for more discussion. Returning to the discussion phase.{SIGNATURE}"""


def needs_human_input(votes: VoteCounts) -> str:
    return f"""# Needs Human Input 👀

{format_votes(votes)}

Most voters asked for a human to weigh in. A maintainer should review this proposal.{SIGNATURE}"""


def inconclusive(votes: VoteCounts) -> str:
    return f"""# Inconclusive ⚖️

{format_votes(votes)}

The vote is split. Extended voting begins; keep voting on the comment above.{SIGNATURE}"""


def inconclusive_resolved(votes: VoteCounts, outcome: str) -> str:
    if outcome == READY_TO_IMPLEMENT:
        title, explanation = "Ready to Implement ✅", "Extended voting settled it. Ready for implementation."
    elif outcome == REJECTED:
        title, explanation = "Rejected ❌", "Extended voting settled it. This proposal is closed."
    else:
        title, explanation = "Needs Human Input 👀", "Extended voting asked for a human to weigh in."
    return f"""# {title}

{format_votes(votes)}

{explanation}{SIGNATURE}"""


def inconclusive_final(votes: VoteCounts) -> str:
    return f"""# Inconclusive (Final) 🔒

{format_votes(votes)}

No consensus after two voting periods. Closing this issue.

A maintainer can reopen it if circumstances change.{SIGNATURE}"""


def shortfall_reason(
    min_voters: int,
    valid_voters: int,
    missing_required: list[str],
    required_needed: int = 0,
    required_participated: int = 0,
) -> str:
    """One sentence naming the unmet voting requirement."""
    if not (missing_required and required_needed):
        return f"Quorum not reached: {valid_voters} valid voter(s), {min_voters} required."
    names = ", ".join(f"@{login}" for login in missing_required)
    if required_needed >= required_participated + len(missing_required):
        return f"Required voters have not voted: {names}."
    total = required_participated + len(missing_required)
    return (
        f"Only {required_participated} of {total} required voters participated "
        f"({required_needed} needed). Not yet voted: {names}."
    )


def requirements_not_met(
    votes: VoteCounts,
    min_voters: int,
    valid_voters: int,
    missing_required: list[str],
    required_needed: int = 0,
    required_participated: int = 0,
    final: bool = False,
) -> str:
    """Explain why a vote was forced to inconclusive."""
    reason = shortfall_reason(min_voters, valid_voters, missing_required, required_needed, required_participated)

    if final:
        title = "# Inconclusive (Final) 🔒"
        closing = "Voting requirements were still not met after extended voting. Closing this issue."
    else:
        title = "# Inconclusive ⚖️"
        closing = "Extended voting begins; keep voting on the comment above."

    return f"""{title}

{format_votes(votes)}

{reason}

{closing}{SIGNATURE}"""


def voting_comment_not_found() -> str:
    return f"""**{SIGNATURES["HUMAN_HELP"]}**

This issue is in a voting phase, but the voting comment could not be found or recreated.

**Please:**
1. Check whether a comment containing "{SIGNATURES["VOTING"]}" still exists.
2. If it is gone, resolve this issue manually or restart voting.{SIGNATURE}"""


def issue_implemented(pr_number: int) -> str:
    return f"""# Implemented ✅

Merged via #{pr_number}.{SIGNATURE}"""


def issue_voting_passed(issue_number: int, author: str | None = None) -> str:
    mention = f"@{author} " if author else ""
    return f"""# Issue #{issue_number} Ready to Implement ✅

{mention}Good news: issue #{issue_number} passed voting. This PR can now be tracked as an implementation.
Push a new commit or leave a comment to activate it.{SIGNATURE}"""
