"""Vote tally and outcome rules.

Everything here is pure: reactions in, counts and outcomes out. Fetching the
reactions is the job of ``quorum_core.gh.issues``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from quorum_core.config import DiscussionExit, VotingConfig, VotingExit
from quorum_core.types import (
    INCONCLUSIVE,
    NEEDS_HUMAN_INPUT,
    NEEDS_MORE_DISCUSSION,
    READY_TO_IMPLEMENT,
    REJECTED,
    ValidatedVoteResult,
    VoteCounts,
)

logger = logging.getLogger(__name__)

# Reaction content -> VoteCounts field.
VOTING_REACTIONS = {
    "+1": "thumbs_up",
    "-1": "thumbs_down",
    "confused": "confused",
    "eyes": "eyes",
}


def tally_reactions(reactions: Iterable[tuple[str | None, str]], context: str = "") -> ValidatedVoteResult:
    """Count (login, content) reaction pairs with multi-reaction discard.

    Non-voting reactions are ignored. Logins are compared case-insensitively
    and the same reaction twice counts once. A user with more than one voting
    kind is a participant but casts no vote. Reactions without a user are
    skipped and counted in the log.
    """
    kinds_by_user: dict[str, set[str]] = {}
    skipped = 0
    for login, content in reactions:
        if content not in VOTING_REACTIONS:
            continue
        if not login:
            skipped += 1
            continue
        kinds_by_user.setdefault(login.lower(), set()).add(content)

    if skipped:
        logger.warning("%sSkipped %d voting reaction(s) with no user", f"{context}: " if context else "", skipped)

    counts = dict.fromkeys(VOTING_REACTIONS.values(), 0)
    voters: list[str] = []
    for login, kinds in kinds_by_user.items():
        if len(kinds) != 1:
            continue
        (kind,) = kinds
        counts[VOTING_REACTIONS[kind]] += 1
        voters.append(login)

    return ValidatedVoteResult(
        votes=VoteCounts(**counts),
        voters=voters,
        participants=list(kinds_by_user),
    )


def determine_outcome(votes: VoteCounts) -> str:
    """Map counts to an outcome. Priority: eyes, confused, up/down, tie."""
    if votes.eyes > votes.thumbs_up + votes.thumbs_down + votes.confused:
        return NEEDS_HUMAN_INPUT
    if votes.confused > votes.thumbs_up + votes.thumbs_down:
        return NEEDS_MORE_DISCUSSION
    if votes.thumbs_up > votes.thumbs_down:
        return READY_TO_IMPLEMENT
    if votes.thumbs_down > votes.thumbs_up:
        return REJECTED
    return INCONCLUSIVE


def is_unanimous(votes: VoteCounts) -> bool:
    """True when exactly one reaction kind has votes."""
    counts = (votes.thumbs_up, votes.thumbs_down, votes.confused, votes.eyes)
    return sum(1 for c in counts if c > 0) == 1


def is_decisive(votes: VoteCounts) -> bool:
    return determine_outcome(votes) != INCONCLUSIVE


@dataclass(frozen=True)
class RequirementsShortfall:
    """Why a vote cannot be decided. ``reason`` is "quorum" or "required"."""

    reason: str
    min_voters: int
    valid_voters: int
    missing_required: list[str] = field(default_factory=list)
    required_needed: int = 0
    required_participated: int = 0


def check_voting_requirements(
    validated: ValidatedVoteResult, voting_config: VotingConfig | None
) -> RequirementsShortfall | None:
    """Return the first unmet requirement, or None when the vote may be decided.

    Quorum counts only voters whose vote was kept. Required-voter participation
    counts every participant, including those whose votes were discarded.
    """
    if voting_config is None:
        return None

    valid_voters = len(validated.voters)
    if valid_voters < voting_config.min_voters:
        return RequirementsShortfall(
            reason="quorum",
            min_voters=voting_config.min_voters,
            valid_voters=valid_voters,
        )

    required = voting_config.required_voters
    if required.voters and required.min_count > 0:
        participants = set(validated.participants)
        participated = [v for v in required.voters if v in participants]
        if len(participated) < required.min_count:
            return RequirementsShortfall(
                reason="required",
                min_voters=voting_config.min_voters,
                valid_voters=valid_voters,
                missing_required=[v for v in required.voters if v not in participants],
                required_needed=required.min_count,
                required_participated=len(participated),
            )
    return None


def decide_outcome(
    validated: ValidatedVoteResult, voting_config: VotingConfig | None
) -> tuple[str, RequirementsShortfall | None]:
    """Outcome of closing the vote now under *voting_config*.

    An unmet requirement or a non-unanimous vote under ``requires: unanimous``
    is inconclusive.
    """
    shortfall = check_voting_requirements(validated, voting_config)
    if shortfall is not None:
        return INCONCLUSIVE, shortfall
    if voting_config is not None and voting_config.requires == "unanimous" and not is_unanimous(validated.votes):
        return INCONCLUSIVE, None
    return determine_outcome(validated.votes), None


def early_decision_reason(voting_config: VotingConfig | None) -> str:
    required = voting_config.required_voters if voting_config else None
    if required is None or not required.voters or required.min_count <= 0:
        return "quorum reached"
    if required.min_count >= len(required.voters):
        return "all required voters have participated"
    if required.min_count == 1:
        return "a required voter has participated"
    return f"{required.min_count} of {len(required.voters)} required voters have participated"


def is_exit_eligible(voting_exit: VotingExit, validated: ValidatedVoteResult) -> bool:
    """Whether an early voting exit may fire for the current tally."""
    if check_voting_requirements(validated, voting_exit) is not None:
        return False
    if voting_exit.requires == "unanimous":
        return is_unanimous(validated.votes)
    return is_decisive(validated.votes)


def is_discussion_exit_eligible(discussion_exit: DiscussionExit, ready_users: set[str]) -> bool:
    if len(ready_users) < discussion_exit.min_ready:
        return False
    required = discussion_exit.required_ready
    if required.users and required.min_count > 0:
        ready_count = sum(1 for user in required.users if user in ready_users)
        if ready_count < required.min_count:
            return False
    return True
